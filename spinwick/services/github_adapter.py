from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx

from spinwick.transport import decode_object, send_request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitStatus:
    context: str
    state: str
    target_url: str | None = None


@dataclass(frozen=True)
class CheckRun:
    name: str
    status: str
    conclusion: str | None = None
    html_url: str | None = None


class GitHubAdapter:
    """Adapter for the GitHub REST endpoints SpinWick reads and writes.

    Reads the CI signal of a commit (combined statuses and check runs) and
    posts pull request comments.
    """

    def __init__(
        self,
        *,
        token: str = "",
        base_url: str = "https://api.github.com",
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "SpinWick/1.0",
        }
        if token:
            self._headers["Authorization"] = f"token {token}"

    def close(self) -> None:
        self._client.close()

    def combined_statuses(self, owner: str, repo: str, sha: str) -> list[CommitStatus]:
        url = f"{self._base_url}/repos/{owner}/{repo}/commits/{sha}/status"
        payload = self._get_object(url, error_message=f"Failed to fetch combined status for {owner}/{repo}@{sha}")
        statuses = []
        for entry in payload.get("statuses") or []:
            if not isinstance(entry, dict):
                continue
            statuses.append(
                CommitStatus(
                    context=entry.get("context") or "",
                    state=entry.get("state") or "",
                    target_url=entry.get("target_url") or None,
                )
            )
        logger.debug("Fetched %s commit statuses for %s/%s@%s", len(statuses), owner, repo, sha)
        return statuses

    def check_runs(self, owner: str, repo: str, sha: str) -> list[CheckRun]:
        url = f"{self._base_url}/repos/{owner}/{repo}/commits/{sha}/check-runs"
        payload = self._get_object(url, error_message=f"Failed to list check runs for {owner}/{repo}@{sha}")
        runs = []
        for entry in payload.get("check_runs") or []:
            if not isinstance(entry, dict):
                continue
            runs.append(
                CheckRun(
                    name=entry.get("name") or "",
                    status=entry.get("status") or "",
                    conclusion=entry.get("conclusion"),
                    html_url=entry.get("html_url"),
                )
            )
        logger.debug("Fetched %s check runs for %s/%s@%s", len(runs), owner, repo, sha)
        return runs

    def post_comment(self, owner: str, repo: str, number: int, body: str) -> None:
        logger.info("Commenting on %s/%s#%s", owner, repo, number)
        send_request(
            self._client,
            "POST",
            f"{self._base_url}/repos/{owner}/{repo}/issues/{number}/comments",
            json={"body": body},
            headers=self._headers,
            expected_status=(201,),
            error_message=f"Failed to comment on {owner}/{repo}#{number}",
        )

    def _get_object(self, url: str, *, error_message: str) -> dict:
        response = send_request(self._client, "GET", url, headers=self._headers, error_message=error_message)
        return decode_object(response, error_message=error_message)
