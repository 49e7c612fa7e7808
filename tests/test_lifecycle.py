from __future__ import annotations

from spinwick.services.github_adapter import CommitStatus
from spinwick.services.lifecycle import (
    ACCOUNT_TABLE,
    OUTCOME_FAILURE,
    OUTCOME_SKIPPED,
    OUTCOME_SUCCESS,
    OUTCOME_TIMED_OUT,
    LifecycleController,
)
from tests.spinwick_fakes import (
    FakeClock,
    FakeCloud,
    FakeGitHub,
    FakeInstance,
    FakeRegistry,
    make_context,
    make_pr,
    request_error,
)

URL = "https://mattermost-server-pr-1234.test.mattermost.cloud"
SETUP_FAILED = "Failed to set up the SpinWick. Please check the logs and try again."
UPGRADE_NOTICE = "New commit detected. SpinWick upgrade will occur after the build is successful."


def _github(state: str = "success") -> FakeGitHub:
    return FakeGitHub(statuses=[[CommitStatus(context="ci/build", state=state, target_url="https://ci.example.com/1")]])


def _controller(store, *, github=None, cloud=None, instance=None, registry=None, clock=None):
    github = github or _github()
    cloud = cloud or FakeCloud()
    ctx = make_context(store, github=github, cloud=cloud, instance=instance, registry=registry, clock=clock)
    return LifecycleController(ctx), github, cloud


def test_create_provisions_records_and_announces(store) -> None:
    controller, github, cloud = _controller(store)

    result = controller.handle_create(make_pr())

    assert result.outcome == OUTCOME_SUCCESS
    assert result.installation_id == "inst-1"
    assert result.url == URL
    record = store.get(make_pr())
    assert record is not None and record.installation_id == "inst-1"
    assert github.comments == [f"Mattermost test server created! :tada:\n\nAccess here: {URL}\n\n{ACCOUNT_TABLE}"]
    assert cloud.calls[0][1]["size"] == "miniSingleton"


def test_create_uses_ha_size_for_ha_label(store) -> None:
    controller, _, cloud = _controller(store)

    controller.handle_create(make_pr(labels=["Setup HA Cloud Test Server"]))

    assert cloud.calls[0] == (
        "create_installation",
        {
            "owner_id": "mattermost-server-pr-1234",
            "version": "abcdef1",
            "dns": "mattermost-server-pr-1234.test.mattermost.cloud",
            "size": "miniHA",
            "affinity": "multitenant",
        },
    )


def test_create_with_existing_record_is_skipped(store) -> None:
    store.save(make_pr(), "inst-0")
    controller, github, cloud = _controller(store)

    result = controller.handle_create(make_pr())

    assert result.outcome == OUTCOME_SKIPPED
    assert result.installation_id == "inst-0"
    assert cloud.calls == []
    assert github.comments == []


def test_create_build_failure_posts_one_comment_and_touches_nothing(store) -> None:
    controller, github, cloud = _controller(store, github=_github("failure"))

    result = controller.handle_create(make_pr())

    assert result.outcome == OUTCOME_FAILURE
    assert github.comments == [SETUP_FAILED]
    assert cloud.calls == []
    assert store.get(make_pr()) is None


def test_create_timeout_deletes_installation_and_names_stage(store) -> None:
    controller, github, cloud = _controller(store, cloud=FakeCloud(installation_states=["creating"]))

    result = controller.handle_create(make_pr())

    assert result.outcome == OUTCOME_TIMED_OUT
    assert github.comments == ["Timed out waiting for installation inst-1. Please check the logs."]
    assert cloud.call_names()[-1] == "delete_installation"
    assert store.get(make_pr()) is None


def test_create_failure_deletes_installation(store) -> None:
    controller, github, cloud = _controller(store, cloud=FakeCloud(installation_states=["creation-failed"]))

    result = controller.handle_create(make_pr())

    assert result.outcome == OUTCOME_FAILURE
    assert github.comments == [SETUP_FAILED]
    assert "inst-1" in cloud.deleted
    assert store.get(make_pr()) is None


def test_create_deletes_installation_it_cannot_record(store) -> None:
    store.save(make_pr(number=99), "inst-1")
    controller, github, cloud = _controller(store)

    result = controller.handle_create(make_pr())

    assert result.outcome == OUTCOME_FAILURE
    assert "inst-1" in cloud.deleted
    assert github.comments == [SETUP_FAILED]


def test_create_reports_incomplete_bootstrap(store) -> None:
    controller, github, _ = _controller(store, instance=FakeInstance(fail={"update_config"}))

    result = controller.handle_create(make_pr())

    assert result.outcome == OUTCOME_SUCCESS
    assert github.comments[-1].endswith("Some setup steps did not complete: apply-config-profile")


def test_create_waits_for_image_before_provisioning(store) -> None:
    registry = FakeRegistry([request_error(404), "sha256:beef"])
    controller, _, cloud = _controller(store, registry=registry)

    assert controller.handle_create(make_pr()).outcome == OUTCOME_SUCCESS
    assert len(registry.calls) == 2
    assert cloud.call_names()[0] == "create_installation"


def test_update_without_label_is_a_no_op(store) -> None:
    controller, github, cloud = _controller(store)

    result = controller.handle_update(make_pr(labels=["bug"]))

    assert result.outcome == OUTCOME_SKIPPED
    assert github.status_calls == []
    assert cloud.calls == []


def test_update_upgrades_recorded_installation(store) -> None:
    clock = FakeClock()
    store.save(make_pr(), "inst-9")
    controller, github, cloud = _controller(store, clock=clock)

    result = controller.handle_update(make_pr(sha="9876543210abcdef"))

    assert result.outcome == OUTCOME_SUCCESS
    assert result.installation_id == "inst-9"
    assert clock.sleeps[0] == 60
    assert ("upgrade_installation", {"installation_id": "inst-9", "version": "9876543"}) in cloud.calls
    assert github.comments == [UPGRADE_NOTICE, f"Mattermost test server updated!\n\nAccess here: {URL}"]
    snapshot = store.get_pull_request(make_pr())
    assert snapshot is not None and snapshot.build_link == "https://ci.example.com/1"
    assert snapshot.sha == "9876543210abcdef"


def test_update_without_record_is_skipped(store) -> None:
    controller, github, cloud = _controller(store)

    result = controller.handle_update(make_pr())

    assert result.outcome == OUTCOME_SKIPPED
    assert cloud.calls == []
    assert github.comments == []


def test_rejected_upgrade_fails_without_polling_or_deleting(store) -> None:
    store.save(make_pr(), "inst-9")
    cloud = FakeCloud(upgrade_error=request_error(409, method="PUT"))
    controller, github, _ = _controller(store, cloud=cloud)

    result = controller.handle_update(make_pr())

    assert result.outcome == OUTCOME_FAILURE
    assert cloud.call_names() == ["upgrade_installation"]
    assert github.comments == [UPGRADE_NOTICE, SETUP_FAILED]
    assert store.get(make_pr()) is not None


def test_upgrade_timeout_keeps_installation(store) -> None:
    store.save(make_pr(), "inst-9")
    cloud = FakeCloud(installation_states=["updating"])
    controller, github, _ = _controller(store, cloud=cloud)

    result = controller.handle_update(make_pr())

    assert result.outcome == OUTCOME_TIMED_OUT
    assert "delete_installation" not in cloud.call_names()
    assert github.comments[-1] == "Timed out waiting for installation inst-9. Please check the logs."
    assert store.get(make_pr()) is not None


def test_destroy_twice_is_idempotent(store) -> None:
    store.save(make_pr(), "inst-1")
    controller, github, cloud = _controller(store)

    first = controller.handle_destroy(make_pr(), "inst-1")
    second = controller.handle_destroy(make_pr(), "inst-1")

    assert first.outcome == second.outcome == OUTCOME_SUCCESS
    assert cloud.call_names() == ["delete_installation", "delete_installation"]
    assert store.get(make_pr()) is None
    assert github.comments == []


def test_destroy_looks_up_recorded_installation(store) -> None:
    store.save(make_pr(), "inst-5")
    controller, _, cloud = _controller(store)

    result = controller.handle_destroy(make_pr())

    assert result.installation_id == "inst-5"
    assert cloud.calls == [("delete_installation", {"installation_id": "inst-5"})]


def test_destroy_logs_remote_errors_and_still_forgets_record(store) -> None:
    store.save(make_pr(), "inst-5")
    cloud = FakeCloud(delete_error=request_error(503, method="DELETE"))
    controller, _, _ = _controller(store, cloud=cloud)

    result = controller.handle_destroy(make_pr())

    assert result.outcome == OUTCOME_SUCCESS
    assert store.get(make_pr()) is None


def test_destroy_without_record_or_id_does_nothing_remote(store) -> None:
    controller, _, cloud = _controller(store)

    assert controller.handle_destroy(make_pr()).outcome == OUTCOME_SUCCESS
    assert cloud.calls == []
