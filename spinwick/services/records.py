from __future__ import annotations

import logging
from typing import Callable, ContextManager

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from spinwick.db import session_scope
from spinwick.models import (
    InstallationRecordORM,
    InstallationRecordRead,
    PullRequestORM,
    PullRequestRef,
    utc_now,
)
from spinwick.services.errors import IntegrityException, NotFoundException

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]


def _get_pull_request_orm(session: Session, *, repo_owner: str, repo_name: str, number: int) -> PullRequestORM | None:
    stmt = select(PullRequestORM).where(
        PullRequestORM.repo_owner == repo_owner,
        PullRequestORM.repo_name == repo_name,
        PullRequestORM.number == number,
    )
    return session.exec(stmt).one_or_none()


def _get_record_orm(session: Session, *, repo_owner: str, repo_name: str, number: int) -> InstallationRecordORM | None:
    stmt = select(InstallationRecordORM).where(
        InstallationRecordORM.repo_owner == repo_owner,
        InstallationRecordORM.repo_name == repo_name,
        InstallationRecordORM.number == number,
    )
    return session.exec(stmt).one_or_none()


def get_pull_request(session: Session, *, repo_owner: str, repo_name: str, number: int) -> PullRequestRef | None:
    if not (pr := _get_pull_request_orm(session, repo_owner=repo_owner, repo_name=repo_name, number=number)):
        return None
    return PullRequestRef.model_validate(pr.model_dump())


def save_pull_request(session: Session, pr: PullRequestRef) -> PullRequestRef:
    """Insert or overwrite the stored snapshot of a pull request."""
    orm = _get_pull_request_orm(session, repo_owner=pr.repo_owner, repo_name=pr.repo_name, number=pr.number)
    if orm is None:
        orm = PullRequestORM.model_validate(pr.model_dump())
    else:
        for key, value in pr.model_dump().items():
            setattr(orm, key, value)
        orm.updated_at = utc_now()
    session.add(orm)
    session.commit()
    session.refresh(orm)
    logger.debug("Saved pull request snapshot %s#%s sha=%s", pr.full_name, pr.number, pr.sha)
    return PullRequestRef.model_validate(orm.model_dump())


def get_record(session: Session, *, repo_owner: str, repo_name: str, number: int) -> InstallationRecordRead | None:
    if not (record := _get_record_orm(session, repo_owner=repo_owner, repo_name=repo_name, number=number)):
        return None
    return InstallationRecordRead.model_validate(record.model_dump())


def require_record(session: Session, *, repo_owner: str, repo_name: str, number: int) -> InstallationRecordRead:
    if not (record := get_record(session, repo_owner=repo_owner, repo_name=repo_name, number=number)):
        raise NotFoundException("Installation record not found")
    return record


def list_records(session: Session) -> list[InstallationRecordRead]:
    stmt = select(InstallationRecordORM).order_by(InstallationRecordORM.created_at, InstallationRecordORM.id)
    return [InstallationRecordRead.model_validate(record.model_dump()) for record in session.exec(stmt).all()]


def save_record(session: Session, *, pr: PullRequestRef, installation_id: str) -> InstallationRecordRead:
    """Persist the pull request -> installation mapping.

    Saving the same installation again is a no-op; the identifier of an
    existing record never changes.
    """
    existing = _get_record_orm(session, repo_owner=pr.repo_owner, repo_name=pr.repo_name, number=pr.number)
    if existing is not None:
        if existing.installation_id != installation_id:
            raise IntegrityException(
                f"Pull request {pr.full_name}#{pr.number} already maps to installation {existing.installation_id}"
            )
        return InstallationRecordRead.model_validate(existing.model_dump())

    record = InstallationRecordORM(
        repo_owner=pr.repo_owner,
        repo_name=pr.repo_name,
        number=pr.number,
        installation_id=installation_id,
    )
    try:
        session.add(record)
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise IntegrityException(f"Installation {installation_id} is already recorded") from exc
    session.refresh(record)
    logger.info(
        "Recorded installation id=%s for %s#%s",
        installation_id,
        pr.full_name,
        pr.number,
    )
    return InstallationRecordRead.model_validate(record.model_dump())


def delete_record(session: Session, *, repo_owner: str, repo_name: str, number: int) -> bool:
    """Remove the record of a pull request; False when there was none."""
    record = _get_record_orm(session, repo_owner=repo_owner, repo_name=repo_name, number=number)
    if record is None:
        logger.debug("No installation record to delete for %s/%s#%s", repo_owner, repo_name, number)
        return False
    installation_id = record.installation_id
    session.delete(record)
    session.commit()
    logger.info(
        "Deleted installation record id=%s for %s/%s#%s",
        installation_id,
        repo_owner,
        repo_name,
        number,
    )
    return True


class RecordStore:
    """Get/save/delete access to the persisted records, one session per call."""

    def __init__(self, *, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or session_scope

    def get(self, pr: PullRequestRef) -> InstallationRecordRead | None:
        with self._session_factory() as session:
            return get_record(session, repo_owner=pr.repo_owner, repo_name=pr.repo_name, number=pr.number)

    def save(self, pr: PullRequestRef, installation_id: str) -> InstallationRecordRead:
        with self._session_factory() as session:
            return save_record(session, pr=pr, installation_id=installation_id)

    def delete(self, pr: PullRequestRef) -> bool:
        with self._session_factory() as session:
            return delete_record(session, repo_owner=pr.repo_owner, repo_name=pr.repo_name, number=pr.number)

    def get_pull_request(self, pr: PullRequestRef) -> PullRequestRef | None:
        with self._session_factory() as session:
            return get_pull_request(session, repo_owner=pr.repo_owner, repo_name=pr.repo_name, number=pr.number)

    def save_pull_request(self, pr: PullRequestRef) -> PullRequestRef:
        with self._session_factory() as session:
            return save_pull_request(session, pr)
