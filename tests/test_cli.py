from __future__ import annotations

from typing import Any

import yaml

from spinwick.services.lifecycle import OUTCOME_FAILURE, OUTCOME_SUCCESS, WorkflowResult


def _stdout(result) -> str:
    return getattr(result, "stdout", result.output)


def _stderr(result) -> str:
    return getattr(result, "stderr", result.output)


def _parse_yaml_stdout(result) -> Any:
    return yaml.safe_load(_stdout(result))


class ScriptedController:
    def __init__(self, result: WorkflowResult) -> None:
        self.result = result
        self.calls: list[tuple] = []

    def handle_create(self, pr, size=None) -> WorkflowResult:
        self.calls.append(("create", pr, size))
        return self.result

    def handle_update(self, pr) -> WorkflowResult:
        self.calls.append(("update", pr))
        return self.result

    def handle_destroy(self, pr, installation_id=None) -> WorkflowResult:
        self.calls.append(("destroy", pr, installation_id))
        return self.result


def _use_controller(monkeypatch, cli, result: WorkflowResult) -> ScriptedController:
    controller = ScriptedController(result)
    monkeypatch.setattr(cli, "_controller", lambda: controller)
    return controller


def test_create_prints_workflow_result(cli_runner, monkeypatch):
    runner, cli = cli_runner
    controller = _use_controller(
        monkeypatch,
        cli,
        WorkflowResult(outcome=OUTCOME_SUCCESS, installation_id="inst-1", url="https://pr.test"),
    )

    result = runner.invoke(
        cli.app,
        [
            "create",
            "mattermost",
            "mattermost-server",
            "1234",
            "--sha",
            "abcdef1234567890",
            "--label",
            "Setup Cloud Test Server",
            "--size",
            "miniHA",
        ],
    )

    assert result.exit_code == 0, _stderr(result)
    assert _parse_yaml_stdout(result) == {
        "outcome": "completed-success",
        "installation_id": "inst-1",
        "url": "https://pr.test",
        "error": None,
    }
    [(action, pr, size)] = controller.calls
    assert action == "create"
    assert pr.labels == ["Setup Cloud Test Server"]
    assert size == "miniHA"


def test_failed_workflow_exits_non_zero(cli_runner, monkeypatch):
    runner, cli = cli_runner
    _use_controller(monkeypatch, cli, WorkflowResult(outcome=OUTCOME_FAILURE, error="build failed"))

    result = runner.invoke(cli.app, ["update", "mattermost", "mattermost-server", "1234", "--sha", "abcdef1234567890"])

    assert result.exit_code == 1
    assert "Error: build failed" in _stderr(result)


def test_destroy_passes_installation_id(cli_runner, monkeypatch):
    runner, cli = cli_runner
    controller = _use_controller(monkeypatch, cli, WorkflowResult(outcome=OUTCOME_SUCCESS, installation_id="inst-3"))

    result = runner.invoke(
        cli.app, ["destroy", "mattermost", "mattermost-server", "1234", "--installation-id", "inst-3"]
    )

    assert result.exit_code == 0, _stderr(result)
    assert controller.calls[0][2] == "inst-3"


def test_list_and_get_records(cli_runner):
    runner, cli = cli_runner
    from spinwick.models import PullRequestRef
    from spinwick.services import records

    with cli.session_scope() as session:
        records.save_record(
            session,
            pr=PullRequestRef(repo_owner="mattermost", repo_name="mattermost-server", number=5, sha="abcdef1"),
            installation_id="inst-5",
        )

    listed = runner.invoke(cli.app, ["list-records"])
    assert listed.exit_code == 0, _stderr(listed)
    assert [r["installation_id"] for r in _parse_yaml_stdout(listed)] == ["inst-5"]

    found = runner.invoke(cli.app, ["get-record", "mattermost", "mattermost-server", "5"])
    assert found.exit_code == 0
    assert _parse_yaml_stdout(found)["number"] == 5

    missing = runner.invoke(cli.app, ["get-record", "mattermost", "mattermost-server", "6"])
    assert missing.exit_code == 1
    assert "Error: Installation record not found" in _stderr(missing)
