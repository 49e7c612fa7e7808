from __future__ import annotations

import threading

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlmodel import Session

from spinwick.db import get_session
from spinwick.models import (
    InstallationRecordRead,
    PullRequestRef,
    SpinWickRequest,
    WorkflowAccepted,
)
from spinwick.services import records as record_service
from spinwick.services.context import ServiceContext, build_context
from spinwick.services.lifecycle import LifecycleController
from spinwick.settings import get_settings

router = APIRouter(tags=["spinwick"])


_context_lock = threading.Lock()


def get_service_context(request: Request) -> ServiceContext:
    """The process-wide context, built on first use and closed at shutdown."""
    state = request.app.state
    with _context_lock:
        ctx = getattr(state, "service_context", None)
        if ctx is None:
            ctx = state.service_context = build_context(get_settings())
    return ctx


def close_service_context(state) -> None:
    with _context_lock:
        ctx = getattr(state, "service_context", None)
        state.service_context = None
    if ctx is not None:
        ctx.close()


def get_controller(ctx: ServiceContext = Depends(get_service_context)) -> LifecycleController:
    return LifecycleController(ctx)


def _accepted(action: str, pr: PullRequestRef) -> WorkflowAccepted:
    return WorkflowAccepted(action=action, repo_owner=pr.repo_owner, repo_name=pr.repo_name, number=pr.number)


@router.post("/pull-requests/spinwick", response_model=WorkflowAccepted, status_code=status.HTTP_202_ACCEPTED)
def create_spinwick(
    payload: SpinWickRequest,
    background_tasks: BackgroundTasks,
    controller: LifecycleController = Depends(get_controller),
) -> WorkflowAccepted:
    pr = PullRequestRef.model_validate(payload.model_dump(exclude={"size"}))
    background_tasks.add_task(controller.handle_create, pr, payload.size)
    return _accepted("create", pr)


@router.post(
    "/pull-requests/spinwick/upgrade",
    response_model=WorkflowAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
def upgrade_spinwick(
    payload: SpinWickRequest,
    background_tasks: BackgroundTasks,
    controller: LifecycleController = Depends(get_controller),
) -> WorkflowAccepted:
    pr = PullRequestRef.model_validate(payload.model_dump(exclude={"size"}))
    background_tasks.add_task(controller.handle_update, pr)
    return _accepted("update", pr)


@router.get("/installations", response_model=list[InstallationRecordRead])
def list_installations(session: Session = Depends(get_session)) -> list[InstallationRecordRead]:
    return record_service.list_records(session)


@router.get("/installations/{repo_owner}/{repo_name}/{number}", response_model=InstallationRecordRead)
def get_installation(
    repo_owner: str, repo_name: str, number: int, session: Session = Depends(get_session)
) -> InstallationRecordRead:
    return record_service.require_record(session, repo_owner=repo_owner, repo_name=repo_name, number=number)


@router.delete(
    "/installations/{repo_owner}/{repo_name}/{number}",
    response_model=WorkflowAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
def destroy_spinwick(
    repo_owner: str,
    repo_name: str,
    number: int,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    controller: LifecycleController = Depends(get_controller),
) -> WorkflowAccepted:
    record = record_service.require_record(session, repo_owner=repo_owner, repo_name=repo_name, number=number)
    pr = PullRequestRef(repo_owner=repo_owner, repo_name=repo_name, number=number, sha="")
    background_tasks.add_task(controller.handle_destroy, pr, record.installation_id)
    return _accepted("destroy", pr)
