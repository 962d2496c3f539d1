"""Persistence for EmailLog entries

The only mutable shared state in the service. Creates happen on the send path,
updates on the webhook path; every update is one commit keyed by entry id.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mailrelay.models.email_log import EmailLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


class EmailLogStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, values: Dict[str, Any]) -> EmailLog:
        """Insert a new entry; created_at/updated_at default to now"""
        now = datetime.now(timezone.utc)
        entry = EmailLog(created_at=now, updated_at=now, **values)
        self.db.add(entry)
        self._commit()
        self.db.refresh(entry)
        return entry

    def get(self, email_id: str) -> Optional[EmailLog]:
        return self.db.query(EmailLog).filter(EmailLog.id == email_id).first()

    def find_by_provider_id(self, provider_id: str) -> Optional[EmailLog]:
        return self.db.query(EmailLog).filter(EmailLog.provider_id == provider_id).first()

    def update(self, email_id: str, values: Dict[str, Any]) -> Optional[EmailLog]:
        """Apply values to the entry with this id and bump updated_at"""
        entry = self.get(email_id)
        if entry is None:
            logger.warning(f"Email log entry {email_id} not found for update")
            return None

        for key, value in values.items():
            setattr(entry, key, value)
        entry.updated_at = datetime.now(timezone.utc)

        self._commit()
        self.db.refresh(entry)
        return entry

    def find_many(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        provider: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0
    ) -> List[EmailLog]:
        """Newest first, filtered by any combination of scope fields"""
        query = self._scoped(user_id=user_id, provider=provider)
        if status:
            query = query.filter(EmailLog.status == status)
        if from_date:
            query = query.filter(EmailLog.created_at >= from_date)
        if to_date:
            query = query.filter(EmailLog.created_at <= to_date)

        return (
            query.order_by(EmailLog.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def all_for_scope(self, user_id: Optional[str] = None, provider: Optional[str] = None) -> List[EmailLog]:
        """Every entry for a user/provider scope, used for statistics"""
        return self._scoped(user_id=user_id, provider=provider).all()

    def _commit(self) -> None:
        """Commit, or roll back so the session stays usable, and re-raise"""
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Email log commit failed, rolling back: {e}")
            self.db.rollback()
            raise

    def _scoped(self, user_id: Optional[str], provider: Optional[str]):
        query = self.db.query(EmailLog)
        if user_id:
            query = query.filter(EmailLog.user_id == user_id)
        if provider:
            query = query.filter(EmailLog.provider == provider)
        return query
