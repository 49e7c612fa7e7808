from __future__ import annotations

from dataclasses import dataclass
import logging
import socket
from typing import Callable, Protocol

import httpx

from spinwick.clock import Clock, SystemClock
from spinwick.models import PullRequestRef
from spinwick.services.cloud_adapter import CloudAdapter
from spinwick.services.errors import ConfigurationException
from spinwick.services.github_adapter import GitHubAdapter
from spinwick.services.instance_adapter import InstanceAdapter
from spinwick.services.jenkins_adapter import JenkinsAdapter
from spinwick.services.records import RecordStore
from spinwick.services.registry_adapter import RegistryAdapter
from spinwick.settings import Settings
from spinwick.transport import AdapterRequestError

logger = logging.getLogger(__name__)

PortCheck = Callable[[str, int], bool]


class Notifier(Protocol):
    def post_comment(self, owner: str, repo: str, number: int, body: str) -> None: ...


def tcp_port_open(host: str, port: int, timeout: float = 2.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


@dataclass(frozen=True)
class ServiceContext:
    """Everything a workflow talks to, passed explicitly into each component."""

    settings: Settings
    store: RecordStore
    github: GitHubAdapter
    notifier: Notifier
    registry: RegistryAdapter
    cloud: CloudAdapter
    jenkins_factory: Callable[[str], JenkinsAdapter]
    instance_factory: Callable[[str], InstanceAdapter]
    port_open: PortCheck
    clock: Clock
    closers: tuple[Callable[[], None], ...] = ()

    def notify(self, pr: PullRequestRef, body: str) -> None:
        """Comment on the pull request; delivery failures are only logged."""
        try:
            self.notifier.post_comment(pr.repo_owner, pr.repo_name, pr.number, body)
        except AdapterRequestError:
            logger.warning("Unable to comment on %s#%s", pr.full_name, pr.number, exc_info=True)

    def close(self) -> None:
        """Interrupt pending waits, then release the HTTP connection pools."""
        for closer in self.closers:
            closer()


def _jenkins_factory(settings: Settings, adapters: dict[str, JenkinsAdapter]) -> Callable[[str], JenkinsAdapter]:
    def factory(server: str) -> JenkinsAdapter:
        if server not in adapters:
            credentials = settings.jenkins_servers.get(server)
            if credentials is None:
                raise ConfigurationException(f"Jenkins server {server!r} credentials are not configured")
            adapters[server] = JenkinsAdapter(
                base_url=credentials.url,
                username=credentials.username,
                api_token=credentials.api_token,
                timeout=settings.timeouts.request,
            )
        return adapters[server]

    return factory


def build_context(
    settings: Settings,
    *,
    store: RecordStore | None = None,
    clock: Clock | None = None,
) -> ServiceContext:
    """Production wiring. The caller owns the result and must ``close()`` it."""
    timeout = settings.timeouts.request
    github = GitHubAdapter(
        token=settings.github_token,
        base_url=settings.github_api_url,
        client=httpx.Client(timeout=timeout),
    )
    registry = RegistryAdapter(base_url=settings.registry_url, timeout=timeout)
    cloud = CloudAdapter(base_url=settings.provisioner_url, timeout=timeout)
    jenkins_adapters: dict[str, JenkinsAdapter] = {}
    closers: list[Callable[[], None]] = []
    if clock is None:
        system_clock = SystemClock()
        closers.append(system_clock.cancel)
        clock = system_clock

    def close_jenkins() -> None:
        for adapter in list(jenkins_adapters.values()):
            adapter.close()

    closers += [github.close, registry.close, cloud.close, close_jenkins]
    return ServiceContext(
        settings=settings,
        store=store or RecordStore(),
        github=github,
        notifier=github,
        registry=registry,
        cloud=cloud,
        jenkins_factory=_jenkins_factory(settings, jenkins_adapters),
        instance_factory=lambda base_url: InstanceAdapter(base_url=base_url, timeout=timeout),
        port_open=tcp_port_open,
        clock=clock,
        closers=tuple(closers),
    )
