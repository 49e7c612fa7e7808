from __future__ import annotations

import logging

from spinwick.clock import Deadline, wait_tick
from spinwick.models import PullRequestRef
from spinwick.services.cloud_adapter import STATE_CREATION_FAILED, STATE_STABLE, Cluster
from spinwick.services.context import ServiceContext
from spinwick.services.errors import TerminalFailure
from spinwick.transport import AdapterRequestError

logger = logging.getLogger(__name__)

CLUSTER_WAIT_MESSAGE = "Please wait while a new kubernetes cluster is created for your SpinWick"
CLUSTER_READY_MESSAGE = "Kubernetes cluster created. Now will deploy Mattermost... Hang on!"


class ClusterProvisioner:
    """Request cluster capacity and wait until it is usable.

    Clusters are shared between installations, so a failed or timed out
    cluster is never deleted here.
    """

    def __init__(self, ctx: ServiceContext) -> None:
        self._ctx = ctx

    def provision(self, pr: PullRequestRef, *, deadline: Deadline | None = None) -> Cluster:
        settings = self._ctx.settings
        self._ctx.notify(pr, CLUSTER_WAIT_MESSAGE)
        cluster = self._ctx.cloud.create_cluster(size=settings.cluster_size)
        deadline = deadline or Deadline.from_seconds(self._ctx.clock, settings.timeouts.cluster)

        while True:
            try:
                cluster = self._ctx.cloud.get_cluster(cluster.id)
            except AdapterRequestError as exc:
                if not exc.retryable:
                    raise
                logger.warning("Transient error fetching cluster %s: %s", cluster.id, exc)
            else:
                if cluster.state == STATE_STABLE:
                    logger.info("Cluster %s is stable", cluster.id)
                    self._ctx.notify(pr, CLUSTER_READY_MESSAGE)
                    return cluster
                if cluster.state == STATE_CREATION_FAILED:
                    raise TerminalFailure(f"cluster {cluster.id} creation failed")
                logger.info("Cluster %s is %s; waiting...", cluster.id, cluster.state)
            wait_tick(self._ctx.clock, deadline, settings.poll.cluster, stage=f"cluster {cluster.id} to be created")
