"""
Create, update and destroy workflows for one pull request.

Each handler runs to completion on the calling thread and reports how it
ended through a ``WorkflowResult``. Failures are never retried here; the next
trigger for the pull request starts a fresh attempt. Every failure the user
should know about ends in exactly one comment on the pull request.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from spinwick.clock import pause
from spinwick.logging_config import pull_request_scope
from spinwick.models import PullRequestRef
from spinwick.services.bootstrap import ADMIN_ACCOUNT, TEST_ACCOUNT, BootstrapManifest
from spinwick.services.builds import BuildLinkResolver, BuildStatusWaiter, ImagePublishWaiter
from spinwick.services.context import ServiceContext
from spinwick.services.errors import SpinWickException, WaitTimeout
from spinwick.services.installations import InstallationProvisioner
from spinwick.transport import AdapterRequestError

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "completed-success"
OUTCOME_FAILURE = "completed-failure"
OUTCOME_TIMED_OUT = "timed-out"
OUTCOME_SKIPPED = "skipped"

# ValueError covers a head sha too short to name an image tag.
_WORKFLOW_ERRORS = (SpinWickException, AdapterRequestError, ValueError)

ACCOUNT_TABLE = (
    "| Account Type | Username | Password |\n"
    "|---|---|---|\n"
    f"| Admin | {ADMIN_ACCOUNT.username} | {ADMIN_ACCOUNT.password} |\n"
    f"| User | {TEST_ACCOUNT.username} | {TEST_ACCOUNT.password} |"
)


@dataclass(frozen=True)
class WorkflowResult:
    outcome: str
    installation_id: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None


def created_message(url: str, manifest: BootstrapManifest | None = None) -> str:
    message = f"Mattermost test server created! :tada:\n\nAccess here: {url}\n\n{ACCOUNT_TABLE}"
    if manifest is not None and not manifest.ok:
        message += f"\n\nSome setup steps did not complete: {', '.join(manifest.failed_steps)}"
    return message


def updated_message(url: str) -> str:
    return f"Mattermost test server updated!\n\nAccess here: {url}"


def timeout_message(exc: WaitTimeout) -> str:
    return f"Timed out waiting for {exc.stage}. Please check the logs."


def _scope_label(pr: PullRequestRef) -> str:
    return f"{pr.full_name}#{pr.number}"


class LifecycleController:
    def __init__(
        self,
        ctx: ServiceContext,
        *,
        builds: BuildStatusWaiter | None = None,
        build_links: BuildLinkResolver | None = None,
        images: ImagePublishWaiter | None = None,
        installations: InstallationProvisioner | None = None,
    ) -> None:
        self._ctx = ctx
        self._builds = builds or BuildStatusWaiter(ctx)
        self._build_links = build_links or BuildLinkResolver(ctx)
        self._images = images or ImagePublishWaiter(ctx)
        self._installations = installations or InstallationProvisioner(ctx)

    def handle_create(self, pr: PullRequestRef, size: str | None = None) -> WorkflowResult:
        with pull_request_scope(_scope_label(pr)):
            return self._create(pr, size)

    def handle_update(self, pr: PullRequestRef) -> WorkflowResult:
        with pull_request_scope(_scope_label(pr)):
            return self._update(pr)

    def handle_destroy(self, pr: PullRequestRef, installation_id: str | None = None) -> WorkflowResult:
        """Delete the installation and forget it. Safe to repeat."""
        with pull_request_scope(_scope_label(pr)):
            return self._destroy(pr, installation_id)

    def _create(self, pr: PullRequestRef, size: str | None) -> WorkflowResult:
        settings = self._ctx.settings
        store = self._ctx.store
        size = size or settings.size_for_labels(pr.labels) or settings.installation_size
        logger.info("Creating SpinWick for %s#%s (size=%s sha=%s)", pr.full_name, pr.number, size, pr.sha)

        try:
            pr = store.save_pull_request(pr)
            pr = self._builds.wait(pr)
            pr = self._images.wait(pr)

            existing = store.get(pr)
            if existing is not None:
                logger.info(
                    "%s#%s already has installation %s; nothing to create",
                    pr.full_name,
                    pr.number,
                    existing.installation_id,
                )
                return WorkflowResult(outcome=OUTCOME_SKIPPED, installation_id=existing.installation_id)

            result = self._installations.create(pr, size=size)
            try:
                store.save(pr, result.installation_id)
            except SpinWickException:
                logger.error("Unable to record installation %s; deleting it", result.installation_id)
                self._delete_quietly(result.installation_id)
                raise
        except _WORKFLOW_ERRORS as exc:
            return self._fail(pr, exc)

        logger.info("SpinWick for %s#%s is ready at %s", pr.full_name, pr.number, result.url)
        self._ctx.notify(pr, created_message(result.url, result.manifest))
        return WorkflowResult(outcome=OUTCOME_SUCCESS, installation_id=result.installation_id, url=result.url)

    def _update(self, pr: PullRequestRef) -> WorkflowResult:
        settings = self._ctx.settings
        store = self._ctx.store
        if settings.size_for_labels(pr.labels) is None:
            logger.info("%s#%s has no SpinWick label; nothing to update", pr.full_name, pr.number)
            return WorkflowResult(outcome=OUTCOME_SKIPPED)
        logger.info("Checking SpinWick upgrade for %s#%s (sha=%s)", pr.full_name, pr.number, pr.sha)

        try:
            pr = store.save_pull_request(pr)
            # The new push needs a moment before CI registers a build for it.
            pause(self._ctx.clock, settings.timeouts.build_start_delay, stage="the new build to register")
            link = self._build_links.resolve(pr)
            pr = store.save_pull_request(pr.model_copy(update={"build_link": link}))
            pr = self._builds.wait(pr)
            pr = self._images.wait(pr)

            record = store.get(pr)
            if record is None:
                logger.error("No installation recorded for %s#%s; nothing to upgrade", pr.full_name, pr.number)
                return WorkflowResult(outcome=OUTCOME_SKIPPED)

            self._ctx.notify(pr, settings.messages.upgrade_notice)
            result = self._installations.upgrade(pr, record.installation_id)
        except _WORKFLOW_ERRORS as exc:
            return self._fail(pr, exc)

        logger.info("SpinWick for %s#%s upgraded to %s", pr.full_name, pr.number, pr.short_sha)
        self._ctx.notify(pr, updated_message(result.url))
        return WorkflowResult(outcome=OUTCOME_SUCCESS, installation_id=result.installation_id, url=result.url)

    def _destroy(self, pr: PullRequestRef, installation_id: str | None) -> WorkflowResult:
        store = self._ctx.store
        if installation_id is None:
            record = store.get(pr)
            installation_id = record.installation_id if record is not None else None

        logger.info("Destroying SpinWick for %s#%s (installation=%s)", pr.full_name, pr.number, installation_id)
        if installation_id:
            self._delete_quietly(installation_id)
        else:
            logger.info("No installation recorded for %s#%s", pr.full_name, pr.number)

        store.delete(pr)
        return WorkflowResult(outcome=OUTCOME_SUCCESS, installation_id=installation_id)

    def _delete_quietly(self, installation_id: str) -> None:
        try:
            result = self._installations.delete(installation_id)
        except AdapterRequestError:
            logger.error("Error deleting installation %s", installation_id, exc_info=True)
            return
        logger.info("Installation %s delete: %s", installation_id, result.status)

    def _fail(self, pr: PullRequestRef, exc: Exception) -> WorkflowResult:
        if isinstance(exc, WaitTimeout):
            logger.error("SpinWick workflow for %s#%s timed out: %s", pr.full_name, pr.number, exc)
            self._ctx.notify(pr, timeout_message(exc))
            return WorkflowResult(outcome=OUTCOME_TIMED_OUT, error=str(exc))

        logger.error("SpinWick workflow for %s#%s failed: %s", pr.full_name, pr.number, exc)
        self._ctx.notify(pr, self._ctx.settings.messages.setup_failed)
        return WorkflowResult(outcome=OUTCOME_FAILURE, error=str(exc))
