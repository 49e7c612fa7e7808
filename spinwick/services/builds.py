"""Waiting on CI: build results, build links and published images.

How a repository surfaces its CI signal differs (commit status API, check
runs, optionally a Jenkins job behind the status link), so the reading side
is picked from lookup tables keyed by the repository's configuration rather
than branching on repository names.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable

from spinwick.clock import Deadline, wait_tick
from spinwick.models import PullRequestRef
from spinwick.services.context import ServiceContext
from spinwick.services.errors import ConfigurationException, TerminalFailure
from spinwick.services.github_adapter import GitHubAdapter
from spinwick.services.naming import installation_version
from spinwick.settings import RepositoryConfig, Settings
from spinwick.transport import AdapterRequestError

logger = logging.getLogger(__name__)

BUILD_QUEUED = "queued"
BUILD_IN_PROGRESS = "in_progress"
BUILD_COMPLETED = "completed"
CONCLUSION_SUCCESS = "success"

_PENDING_STATUSES = frozenset({BUILD_QUEUED, BUILD_IN_PROGRESS, "pending", "waiting", "requested"})
_JENKINS_FAILED_RESULTS = frozenset({"FAILURE", "ABORTED"})


@dataclass(frozen=True)
class BuildStatus:
    status: str
    conclusion: str | None = None
    link: str | None = None


@dataclass(frozen=True)
class JobRef:
    path: str
    number: int


StatusReader = Callable[[GitHubAdapter, RepositoryConfig, PullRequestRef], BuildStatus]
JobPathParser = Callable[[str, str], JobRef]


def _from_commit_status(github: GitHubAdapter, repository: RepositoryConfig, pr: PullRequestRef) -> BuildStatus:
    for status in github.combined_statuses(pr.repo_owner, pr.repo_name, pr.sha):
        if status.context != repository.status_context:
            continue
        if status.state == "pending":
            return BuildStatus(status=BUILD_IN_PROGRESS, link=status.target_url)
        if status.state in ("success", "failure", "error"):
            return BuildStatus(status=BUILD_COMPLETED, conclusion=status.state, link=status.target_url)
        return BuildStatus(status=status.state, link=status.target_url)
    return BuildStatus(status=BUILD_QUEUED)


def _from_check_run(github: GitHubAdapter, repository: RepositoryConfig, pr: PullRequestRef) -> BuildStatus:
    for run in github.check_runs(pr.repo_owner, pr.repo_name, pr.sha):
        if run.name == repository.status_context:
            return BuildStatus(status=run.status, conclusion=run.conclusion, link=run.html_url)
    return BuildStatus(status=BUILD_QUEUED)


def parse_multibranch_job(link: str, folder: str) -> JobRef:
    """Job of a multibranch pipeline build link.

    ``.../job/<job>/job/PR-123/7/display/redirect`` becomes
    ``<folder>/job/<job>/job/PR-123`` build 7.
    """
    parts = link.split("/")
    if len(parts) < 6 or parts[-5] != "job" or not parts[-3].isdigit():
        raise TerminalFailure(f"unable to parse build link {link!r}")
    job_name = parts[-6]
    branch_job = parts[-4]
    return JobRef(path=f"{folder}/job/{job_name}/job/{branch_job}", number=int(parts[-3]))


STATUS_READERS: dict[str, StatusReader] = {
    "status": _from_commit_status,
    "check_run": _from_check_run,
}

JOB_PATH_PARSERS: dict[str, JobPathParser] = {
    "multibranch": parse_multibranch_job,
}


@dataclass(frozen=True)
class BuildStrategy:
    repository: RepositoryConfig
    read_status: StatusReader
    parse_job: JobPathParser | None = None


def resolve_strategy(settings: Settings, pr: PullRequestRef) -> BuildStrategy:
    repository = settings.get_repository(pr.repo_owner, pr.repo_name)
    if repository is None:
        raise ConfigurationException(f"Repository {pr.full_name} is not configured for SpinWick")
    reader = STATUS_READERS.get(repository.status_source)
    if reader is None:
        raise ConfigurationException(f"Unsupported status source {repository.status_source!r} for {pr.full_name}")
    if not repository.jenkins_server:
        return BuildStrategy(repository=repository, read_status=reader)

    parser = JOB_PATH_PARSERS.get(repository.job_path or "")
    if parser is None:
        raise ConfigurationException(f"Unsupported Jenkins job path {repository.job_path!r} for {pr.full_name}")
    return BuildStrategy(repository=repository, read_status=reader, parse_job=parser)


def _latest_snapshot(ctx: ServiceContext, pr: PullRequestRef) -> PullRequestRef:
    # A new push may have changed the head commit or build link since the workflow started.
    return ctx.store.get_pull_request(pr) or pr


class BuildStatusWaiter:
    """Block until the CI signal for a pull request's head commit is terminal."""

    def __init__(self, ctx: ServiceContext) -> None:
        self._ctx = ctx

    def wait(self, pr: PullRequestRef, *, deadline: Deadline | None = None) -> PullRequestRef:
        settings = self._ctx.settings
        strategy = resolve_strategy(settings, pr)
        deadline = deadline or Deadline.from_seconds(self._ctx.clock, settings.timeouts.build)
        logger.info(
            "Waiting up to %ss for the build of %s#%s sha=%s",
            deadline.seconds,
            pr.full_name,
            pr.number,
            pr.sha,
        )
        while True:
            wait_tick(self._ctx.clock, deadline, settings.poll.build, stage="the build to finish")
            pr = _latest_snapshot(self._ctx, pr)
            try:
                status = strategy.read_status(self._ctx.github, strategy.repository, pr)
                pr = pr.model_copy(
                    update={
                        "build_status": status.status,
                        "build_conclusion": status.conclusion,
                        "build_link": status.link or pr.build_link,
                    }
                )
                logger.info(
                    "Current PR status %s#%s build_status=%s build_conclusion=%s",
                    pr.full_name,
                    pr.number,
                    pr.build_status,
                    pr.build_conclusion,
                )
                if strategy.parse_job is not None:
                    finished = self._jenkins_finished(strategy, pr)
                else:
                    finished = self._status_finished(status)
            except AdapterRequestError as exc:
                if not exc.retryable:
                    raise
                logger.warning("Transient error reading the build of %s#%s: %s", pr.full_name, pr.number, exc)
                continue

            if finished:
                logger.info("Build for %s#%s succeeded", pr.full_name, pr.number)
                return self._ctx.store.save_pull_request(pr)
            logger.info("Build is still in progress; sleeping...")

    @staticmethod
    def _status_finished(status: BuildStatus) -> bool:
        if status.status == BUILD_COMPLETED:
            if status.conclusion == CONCLUSION_SUCCESS:
                return True
            raise TerminalFailure(f"build failed with conclusion {status.conclusion!r}")
        if status.status in _PENDING_STATUSES:
            return False
        raise TerminalFailure(f"unknown build status {status.status!r}")

    def _jenkins_finished(self, strategy: BuildStrategy, pr: PullRequestRef) -> bool:
        if not pr.build_link:
            logger.info("No build link found for %s#%s; skipping...", pr.full_name, pr.number)
            return False
        assert strategy.parse_job is not None
        assert strategy.repository.jenkins_server is not None
        job = strategy.parse_job(pr.build_link, strategy.repository.jenkins_folder)
        build = self._ctx.jenkins_factory(strategy.repository.jenkins_server).get_build(job.path, job.number)
        if not build.building and build.result == "SUCCESS":
            return True
        if build.result in _JENKINS_FAILED_RESULTS:
            raise TerminalFailure(f"build {build.number} failed with status {build.result!r}")
        logger.info("Jenkins build %s #%s is running (building=%s)", job.path, build.number, build.building)
        return False


class BuildLinkResolver:
    """Find the CI link of the head commit once the build has registered."""

    def __init__(self, ctx: ServiceContext) -> None:
        self._ctx = ctx

    def resolve(self, pr: PullRequestRef, *, deadline: Deadline | None = None) -> str:
        settings = self._ctx.settings
        repository = settings.get_repository(pr.repo_owner, pr.repo_name)
        if repository is None:
            raise ConfigurationException(f"Repository {pr.full_name} is not configured for SpinWick")
        deadline = deadline or Deadline.from_seconds(self._ctx.clock, settings.timeouts.build_link)
        while True:
            try:
                link = self._find_link(repository, pr)
            except AdapterRequestError as exc:
                if not exc.retryable:
                    raise
                logger.warning("Transient error looking up the build link of %s#%s: %s", pr.full_name, pr.number, exc)
                link = None
            if link:
                logger.info("Build link for %s#%s: %s", pr.full_name, pr.number, link)
                return link
            wait_tick(self._ctx.clock, deadline, settings.poll.build_link, stage="the build link")

    def _find_link(self, repository: RepositoryConfig, pr: PullRequestRef) -> str | None:
        github = self._ctx.github
        for status in github.combined_statuses(pr.repo_owner, pr.repo_name, pr.sha):
            if status.context == repository.status_context and status.target_url:
                return status.target_url
        for run in github.check_runs(pr.repo_owner, pr.repo_name, pr.sha):
            if run.name == repository.status_context and run.html_url:
                return run.html_url
        return None


class ImagePublishWaiter:
    """Block until the registry serves the image tag built from the head commit."""

    def __init__(self, ctx: ServiceContext) -> None:
        self._ctx = ctx

    def wait(self, pr: PullRequestRef, *, deadline: Deadline | None = None) -> PullRequestRef:
        settings = self._ctx.settings
        image = settings.image
        deadline = deadline or Deadline.from_seconds(self._ctx.clock, settings.timeouts.image)
        while True:
            wait_tick(self._ctx.clock, deadline, settings.poll.image, stage=f"image {image} to be published")
            pr = _latest_snapshot(self._ctx, pr)
            tag = installation_version(pr.sha)
            try:
                self._ctx.registry.manifest_digest(image, tag)
            except AdapterRequestError as exc:
                if not exc.not_found:
                    raise
                logger.info(
                    "Image tag not found yet for %s#%s (image=%s tag=%s); waiting a bit more...",
                    pr.full_name,
                    pr.number,
                    image,
                    tag,
                )
                continue
            logger.info("Image tag found, image was uploaded (image=%s tag=%s)", image, tag)
            return pr
