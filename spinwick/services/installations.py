from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from spinwick.clock import Deadline, pause, wait_tick
from spinwick.models import PullRequestRef
from spinwick.services.bootstrap import BootstrapManifest, EnvironmentBootstrapper
from spinwick.services.cloud_adapter import (
    STATE_CREATION_FAILED,
    STATE_NO_COMPATIBLE_CLUSTERS,
    STATE_STABLE,
    STATE_UPDATE_FAILED,
    STATE_UPDATE_REQUESTED,
    Installation,
    InstallationDeleteResult,
)
from spinwick.services.clusters import ClusterProvisioner
from spinwick.services.context import ServiceContext
from spinwick.services.errors import TerminalFailure
from spinwick.services.naming import (
    dns_name_for_owner,
    installation_version,
    instance_url,
    owner_id_for_pull_request,
)
from spinwick.transport import AdapterRequestError

logger = logging.getLogger(__name__)

FAILED_STATES = frozenset({STATE_CREATION_FAILED, STATE_UPDATE_FAILED})


@dataclass(frozen=True)
class InstallationResult:
    installation_id: str
    dns: str
    url: str
    manifest: Optional[BootstrapManifest] = None


class InstallationProvisioner:
    """Create, upgrade and delete installations on the cloud provisioner.

    A fresh create owns the installation until it is handed back: any failure
    after the provisioner assigned an id deletes it again. An upgrade never
    deletes, since the previous version keeps serving.
    """

    def __init__(
        self,
        ctx: ServiceContext,
        *,
        clusters: ClusterProvisioner | None = None,
        bootstrapper: EnvironmentBootstrapper | None = None,
    ) -> None:
        self._ctx = ctx
        self._clusters = clusters or ClusterProvisioner(ctx)
        self._bootstrapper = bootstrapper or EnvironmentBootstrapper(ctx)

    def create(self, pr: PullRequestRef, *, size: str) -> InstallationResult:
        settings = self._ctx.settings
        owner_id = owner_id_for_pull_request(pr.repo_name, pr.number)
        dns = dns_name_for_owner(owner_id, settings.dns_base_domain)
        installation = self._ctx.cloud.create_installation(
            owner_id=owner_id,
            version=installation_version(pr.sha),
            dns=dns,
            size=size,
            affinity=settings.installation_affinity,
        )

        try:
            pause(self._ctx.clock, settings.poll.creation_settle, stage=f"installation {installation.id} to start")
            self._await_stable(self._observe(installation), cluster_for=pr)
            manifest = self._bootstrapper.bootstrap(dns=dns, pr_number=pr.number)
        except Exception:
            self._compensate(installation.id)
            raise

        return InstallationResult(
            installation_id=installation.id,
            dns=dns,
            url=instance_url(dns),
            manifest=manifest,
        )

    def upgrade(self, pr: PullRequestRef, installation_id: str) -> InstallationResult:
        settings = self._ctx.settings
        try:
            self._ctx.cloud.upgrade_installation(installation_id, version=installation_version(pr.sha))
        except AdapterRequestError as exc:
            raise TerminalFailure(f"upgrade of installation {installation_id} was not accepted: {exc}") from exc

        pause(self._ctx.clock, settings.poll.creation_settle, stage=f"installation {installation_id} to start upgrading")
        requested = Installation(
            id=installation_id, owner_id="", version="", dns="", size="", affinity="", state=STATE_UPDATE_REQUESTED
        )
        installation = self._await_stable(self._observe(requested))
        dns = installation.dns or dns_name_for_owner(
            owner_id_for_pull_request(pr.repo_name, pr.number), settings.dns_base_domain
        )
        return InstallationResult(installation_id=installation_id, dns=dns, url=instance_url(dns))

    def delete(self, installation_id: str) -> InstallationDeleteResult:
        return self._ctx.cloud.delete_installation(installation_id)

    def _await_stable(self, installation: Installation, *, cluster_for: PullRequestRef | None = None) -> Installation:
        """Poll until stable, starting from an observation already in hand.

        With ``cluster_for`` set, the first report of no compatible cluster
        provisions one and restarts the installation deadline.
        """
        settings = self._ctx.settings
        deadline = Deadline.from_seconds(self._ctx.clock, settings.timeouts.installation)
        installation_id = installation.id
        while True:
            if installation.state == STATE_STABLE:
                logger.info("Installation %s is stable", installation_id)
                return installation
            if installation.state in FAILED_STATES:
                raise TerminalFailure(f"installation {installation_id} reached state {installation.state}")
            if installation.state == STATE_NO_COMPATIBLE_CLUSTERS and cluster_for is not None:
                logger.info("No compatible cluster for installation %s; creating one", installation_id)
                self._clusters.provision(cluster_for)
                cluster_for = None
                deadline = Deadline.from_seconds(self._ctx.clock, settings.timeouts.installation)
            logger.info("Installation %s is %s; sleeping...", installation_id, installation.state)

            wait_tick(
                self._ctx.clock,
                deadline,
                settings.poll.installation,
                stage=f"installation {installation_id}",
            )
            installation = self._observe(installation)

    def _observe(self, installation: Installation) -> Installation:
        """Fresh view of the installation; the previous one on a transient error."""
        try:
            return self._ctx.cloud.get_installation(installation.id)
        except AdapterRequestError as exc:
            if not exc.retryable:
                raise
            logger.warning("Transient error fetching installation %s: %s", installation.id, exc)
            return installation

    def _compensate(self, installation_id: str) -> None:
        logger.info("Deleting installation %s after a failed create", installation_id)
        try:
            self._ctx.cloud.delete_installation(installation_id)
        except AdapterRequestError:
            logger.error("Unable to delete installation %s", installation_id, exc_info=True)
