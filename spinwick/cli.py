from __future__ import annotations

import logging
from typing import Optional

import typer
import yaml
from fastapi.encoders import jsonable_encoder

from spinwick.db import engine, init_db, session_scope
from spinwick.logging_config import configure_logging
from spinwick.models import PullRequestRef
from spinwick.services import records as record_service
from spinwick.services.context import build_context
from spinwick.services.errors import SpinWickException
from spinwick.services.lifecycle import OUTCOME_FAILURE, OUTCOME_TIMED_OUT, LifecycleController, WorkflowResult
from spinwick.services.records import RecordStore
from spinwick.settings import get_settings

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(help="SpinWick CLI", pretty_exceptions_show_locals=False)


def _exit_for_domain_error(exc: SpinWickException) -> None:
    logger.warning("CLI command failed with domain error: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _echo_yaml_entity(entity: object) -> None:
    encoded = jsonable_encoder(entity)
    typer.echo(yaml.safe_dump(encoded, sort_keys=False), nl=False)


def _controller() -> LifecycleController:
    ctx = build_context(get_settings(), store=RecordStore(session_factory=session_scope))
    return LifecycleController(ctx)


def _report(result: WorkflowResult) -> None:
    _echo_yaml_entity(result)
    if result.outcome in (OUTCOME_FAILURE, OUTCOME_TIMED_OUT):
        typer.echo(f"Error: {result.error}", err=True)
        raise typer.Exit(code=1)


def _pull_request(
    repo_owner: str, repo_name: str, number: int, sha: str, ref: str, labels: list[str] | None
) -> PullRequestRef:
    return PullRequestRef(
        repo_owner=repo_owner,
        repo_name=repo_name,
        number=number,
        sha=sha,
        ref=ref,
        labels=labels or [],
    )


@app.command("init-db")
def init_database() -> None:
    init_db(engine)
    typer.echo("Database initialized")


@app.command("create")
def create(
    repo_owner: str,
    repo_name: str,
    number: int,
    *,
    sha: str = typer.Option(..., "--sha"),
    ref: str = typer.Option("", "--ref"),
    label: Optional[list[str]] = typer.Option(None, "--label"),
    size: Optional[str] = typer.Option(None, "--size"),
) -> None:
    pr = _pull_request(repo_owner, repo_name, number, sha, ref, label)
    try:
        result = _controller().handle_create(pr, size)
    except SpinWickException as e:
        _exit_for_domain_error(e)
    _report(result)


@app.command("update")
def update(
    repo_owner: str,
    repo_name: str,
    number: int,
    *,
    sha: str = typer.Option(..., "--sha"),
    ref: str = typer.Option("", "--ref"),
    label: Optional[list[str]] = typer.Option(None, "--label"),
) -> None:
    pr = _pull_request(repo_owner, repo_name, number, sha, ref, label)
    try:
        result = _controller().handle_update(pr)
    except SpinWickException as e:
        _exit_for_domain_error(e)
    _report(result)


@app.command("destroy")
def destroy(
    repo_owner: str,
    repo_name: str,
    number: int,
    *,
    installation_id: Optional[str] = typer.Option(None, "--installation-id"),
) -> None:
    pr = _pull_request(repo_owner, repo_name, number, "", "", None)
    try:
        result = _controller().handle_destroy(pr, installation_id)
    except SpinWickException as e:
        _exit_for_domain_error(e)
    _report(result)


@app.command("list-records")
def list_records() -> None:
    with session_scope() as session:
        _echo_yaml_entity(record_service.list_records(session))


@app.command("get-record")
def get_record(repo_owner: str, repo_name: str, number: int) -> None:
    with session_scope() as session:
        try:
            record = record_service.require_record(
                session, repo_owner=repo_owner, repo_name=repo_name, number=number
            )
        except SpinWickException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(record)


if __name__ == "__main__":
    app()
