from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx

from spinwick.transport import decode_object, send_request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JenkinsBuild:
    job_path: str
    number: int
    building: bool
    result: str | None = None


class JenkinsAdapter:
    """Adapter for reading build results from a Jenkins server."""

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        api_token: str,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = (username, api_token)
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def get_build(self, job_path: str, number: int) -> JenkinsBuild:
        """Fetch one build of a job; ``job_path`` may span folders (``a/job/b``)."""
        url = f"{self._base_url}/job/{job_path}/{number}/api/json"
        logger.debug("Fetching Jenkins build %s #%s", job_path, number)
        response = send_request(
            self._client,
            "GET",
            url,
            auth=self._auth,
            error_message=f"Failed to get Jenkins build {job_path} #{number}",
        )
        payload = decode_object(response, error_message=f"Invalid JSON for Jenkins build {job_path} #{number}")
        result = payload.get("result")
        return JenkinsBuild(
            job_path=job_path,
            number=number,
            building=bool(payload.get("building")),
            result=result if isinstance(result, str) else None,
        )
