from __future__ import annotations

from spinwick.api.installations import get_controller
from spinwick.main import app
from spinwick.services import records
from spinwick.services.lifecycle import OUTCOME_SUCCESS, WorkflowResult
from tests.spinwick_fakes import make_pr


class RecordingController:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def handle_create(self, pr, size=None) -> WorkflowResult:
        self.calls.append(("create", pr, size))
        return WorkflowResult(outcome=OUTCOME_SUCCESS)

    def handle_update(self, pr) -> WorkflowResult:
        self.calls.append(("update", pr))
        return WorkflowResult(outcome=OUTCOME_SUCCESS)

    def handle_destroy(self, pr, installation_id=None) -> WorkflowResult:
        self.calls.append(("destroy", pr, installation_id))
        return WorkflowResult(outcome=OUTCOME_SUCCESS)


def _override_controller() -> RecordingController:
    controller = RecordingController()
    app.dependency_overrides[get_controller] = lambda: controller
    return controller


PAYLOAD = {
    "repo_owner": "mattermost",
    "repo_name": "mattermost-server",
    "number": 1234,
    "sha": "abcdef1234567890",
    "labels": ["Setup Cloud Test Server"],
}


def test_create_spinwick_runs_in_background(client):
    controller = _override_controller()

    response = client.post("/pull-requests/spinwick", json={**PAYLOAD, "size": "miniHA"})

    assert response.status_code == 202
    assert response.json() == {
        "action": "create",
        "repo_owner": "mattermost",
        "repo_name": "mattermost-server",
        "number": 1234,
    }
    [(action, pr, size)] = controller.calls
    assert action == "create"
    assert pr.sha == "abcdef1234567890"
    assert pr.labels == ["Setup Cloud Test Server"]
    assert size == "miniHA"


def test_upgrade_spinwick_runs_in_background(client):
    controller = _override_controller()

    response = client.post("/pull-requests/spinwick/upgrade", json=PAYLOAD)

    assert response.status_code == 202
    assert [call[0] for call in controller.calls] == ["update"]


def test_installation_records(client, db_session):
    records.save_record(db_session, pr=make_pr(), installation_id="inst-1")

    listed = client.get("/installations")
    assert listed.status_code == 200
    assert [r["installation_id"] for r in listed.json()] == ["inst-1"]

    found = client.get("/installations/mattermost/mattermost-server/1234")
    assert found.status_code == 200
    assert found.json()["number"] == 1234

    missing = client.get("/installations/mattermost/mattermost-server/1")
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Installation record not found"}


def test_destroy_spinwick_uses_recorded_installation(client, db_session):
    records.save_record(db_session, pr=make_pr(), installation_id="inst-1")
    controller = _override_controller()

    response = client.delete("/installations/mattermost/mattermost-server/1234")

    assert response.status_code == 202
    [(action, pr, installation_id)] = controller.calls
    assert action == "destroy"
    assert pr.number == 1234
    assert installation_id == "inst-1"

    assert client.delete("/installations/mattermost/mattermost-server/1").status_code == 404


def test_invalid_trigger_payload_is_rejected(client):
    _override_controller()

    response = client.post("/pull-requests/spinwick", json={"repo_owner": "mattermost"})

    assert response.status_code == 422


def test_domain_errors_map_along_class_hierarchy():
    from spinwick.api.utils import status_for
    from spinwick.services.errors import (
        IntegrityException,
        SpinWickException,
        TerminalFailure,
        WaitCancelled,
    )

    assert status_for(IntegrityException("dup")) == 409
    assert status_for(TerminalFailure("gone")) == 502
    assert status_for(WaitCancelled("the build")) == 504
    assert status_for(SpinWickException("other")) == 500


class ClosingContext:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


def test_service_context_is_built_once_and_closed_at_shutdown(monkeypatch):
    from types import SimpleNamespace

    from spinwick.api import installations

    built: list[ClosingContext] = []

    def fake_build_context(settings):
        built.append(ClosingContext())
        return built[-1]

    monkeypatch.setattr(installations, "build_context", fake_build_context)
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace()))

    first = installations.get_service_context(request)
    second = installations.get_service_context(request)

    assert first is second
    assert len(built) == 1

    installations.close_service_context(request.app.state)
    assert first.closed
    assert request.app.state.service_context is None


def test_app_shutdown_closes_service_context():
    from starlette.testclient import TestClient

    ctx = ClosingContext()
    app.state.service_context = ctx

    with TestClient(app):
        assert not ctx.closed

    assert ctx.closed
    assert app.state.service_context is None
