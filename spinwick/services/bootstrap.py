"""
One-time seeding of a freshly created SpinWick.

Reachability and the application ping are hard requirements; everything
after them is a list of steps that each record their own outcome. A step
whose prerequisite did not succeed is skipped instead of attempted, and
independent steps keep running, so the returned manifest tells exactly what
the environment ended up with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, Optional

from spinwick.clock import Deadline, wait_tick
from spinwick.services.config_profile import apply_config_profile
from spinwick.services.context import ServiceContext
from spinwick.services.instance_adapter import InstanceAdapter, InstanceTeam, InstanceUser
from spinwick.services.naming import instance_url
from spinwick.transport import AdapterRequestError

logger = logging.getLogger(__name__)

SERVICE_PORT = 443

STEP_OK = "ok"
STEP_FAILED = "failed"
STEP_SKIPPED = "skipped"


@dataclass(frozen=True)
class Account:
    username: str
    email: str
    password: str


ADMIN_ACCOUNT = Account("sysadmin", "sysadmin@example.mattermost.com", "Sys@dmin123")
TEST_ACCOUNT = Account("user-1", "user-1@example.mattermost.com", "User-1@123")


@dataclass(frozen=True)
class StepOutcome:
    name: str
    status: str
    detail: str = ""


@dataclass
class BootstrapManifest:
    url: str
    steps: list[StepOutcome] = field(default_factory=list)

    def status_of(self, name: str) -> str | None:
        for step in self.steps:
            if step.name == name:
                return step.status
        return None

    @property
    def ok(self) -> bool:
        return all(step.status == STEP_OK for step in self.steps)

    @property
    def failed_steps(self) -> list[str]:
        return [step.name for step in self.steps if step.status != STEP_OK]


@dataclass
class _Seed:
    instance: InstanceAdapter
    team_name: str
    admin: Optional[InstanceUser] = None
    test_user: Optional[InstanceUser] = None
    team: Optional[InstanceTeam] = None


@dataclass(frozen=True)
class _Step:
    name: str
    run: Callable[[_Seed], None]
    requires: tuple[str, ...] = ()


class EnvironmentBootstrapper:
    def __init__(self, ctx: ServiceContext) -> None:
        self._ctx = ctx
        self._steps = (
            _Step("create-admin", self._create_admin),
            _Step("login", self._login, requires=("create-admin",)),
            _Step("create-team", self._create_team, requires=("login",)),
            _Step("add-admin-to-team", self._add_admin_to_team, requires=("login", "create-team")),
            _Step("create-test-user", self._create_test_user, requires=("login",)),
            _Step("add-test-user-to-team", self._add_test_user_to_team, requires=("create-team", "create-test-user")),
            _Step("apply-config-profile", self._apply_config_profile, requires=("login",)),
        )

    def bootstrap(self, *, dns: str, pr_number: int) -> BootstrapManifest:
        url = instance_url(dns)
        logger.info("Waiting for %s:%s to become reachable", dns, SERVICE_PORT)
        self._wait_reachable(dns)

        instance = self._ctx.instance_factory(url)
        try:
            logger.info("Waiting for %s to answer its ping", url)
            self._wait_ping(instance, url)

            seed = _Seed(instance=instance, team_name=f"pr{pr_number}")
            manifest = BootstrapManifest(url=url)
            for step in self._steps:
                manifest.steps.append(self._run_step(step, seed, manifest))
        finally:
            instance.close()

        if manifest.ok:
            logger.info("Bootstrap of %s done. All good.", url)
        else:
            logger.warning("Bootstrap of %s incomplete; steps not done: %s", url, ", ".join(manifest.failed_steps))
        return manifest

    @staticmethod
    def _run_step(step: _Step, seed: _Seed, manifest: BootstrapManifest) -> StepOutcome:
        missing = [name for name in step.requires if manifest.status_of(name) != STEP_OK]
        if missing:
            logger.info("Skipping %s; prerequisite not done: %s", step.name, ", ".join(missing))
            return StepOutcome(step.name, STEP_SKIPPED, f"requires {', '.join(missing)}")
        try:
            step.run(seed)
        except AdapterRequestError as exc:
            logger.error("Bootstrap step %s failed: %s", step.name, exc)
            return StepOutcome(step.name, STEP_FAILED, str(exc))
        logger.debug("Bootstrap step %s done", step.name)
        return StepOutcome(step.name, STEP_OK)

    def _wait_reachable(self, dns: str) -> None:
        settings = self._ctx.settings
        deadline = Deadline.from_seconds(self._ctx.clock, settings.timeouts.reachability)
        while not self._ctx.port_open(dns, SERVICE_PORT):
            logger.debug("%s:%s not reachable yet", dns, SERVICE_PORT)
            wait_tick(self._ctx.clock, deadline, settings.poll.reachability, stage=f"{dns}:{SERVICE_PORT} to be reachable")

    def _wait_ping(self, instance: InstanceAdapter, url: str) -> None:
        settings = self._ctx.settings
        deadline = Deadline.from_seconds(self._ctx.clock, settings.timeouts.ping)
        while True:
            try:
                status = instance.ping()
            except AdapterRequestError as exc:
                logger.debug("Ping of %s failed: %s", url, exc)
                status = ""
            if status == "OK":
                return
            wait_tick(self._ctx.clock, deadline, settings.poll.ping, stage=f"{url} to answer its ping")

    def _create_admin(self, seed: _Seed) -> None:
        seed.instance.create_user(
            username=ADMIN_ACCOUNT.username,
            email=ADMIN_ACCOUNT.email,
            password=ADMIN_ACCOUNT.password,
        )

    def _login(self, seed: _Seed) -> None:
        seed.admin = seed.instance.login(login_id=ADMIN_ACCOUNT.username, password=ADMIN_ACCOUNT.password)

    def _create_team(self, seed: _Seed) -> None:
        seed.team = seed.instance.create_team(name=seed.team_name, display_name=seed.team_name, team_type="O")

    def _add_admin_to_team(self, seed: _Seed) -> None:
        assert seed.team is not None and seed.admin is not None
        seed.instance.add_team_member(team_id=seed.team.id, user_id=seed.admin.id)

    def _create_test_user(self, seed: _Seed) -> None:
        seed.test_user = seed.instance.create_user(
            username=TEST_ACCOUNT.username,
            email=TEST_ACCOUNT.email,
            password=TEST_ACCOUNT.password,
        )

    def _add_test_user_to_team(self, seed: _Seed) -> None:
        assert seed.team is not None and seed.test_user is not None
        seed.instance.add_team_member(team_id=seed.team.id, user_id=seed.test_user.id)

    def _apply_config_profile(self, seed: _Seed) -> None:
        current = seed.instance.get_config()
        seed.instance.update_config(apply_config_profile(current, self._ctx.settings.smtp))
