"""
Outbound side effects of the core: user notifications and the audit log.
Delivery of notifications (push, e-mail) is external; we only write the outbox.
"""
import logging
from abc import ABC, abstractmethod

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from rostercore.errors import PersistenceFailure
from rostercore.models import EventLog, Notification

logger = logging.getLogger(__name__)


class Notifier(ABC):

    @abstractmethod
    def notify(self, org_id: str, user_ids: list[str], title: str, message: str,
               type: str = "warning") -> None:
        """Fire-and-forget: must not raise."""


class OutboxNotifier(Notifier):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def notify(self, org_id, user_ids, title, message, type="warning"):
        recipients = [u for u in dict.fromkeys(user_ids) if u]
        if not recipients:
            return
        try:
            with self._session_factory() as db, db.begin():
                db.add_all([
                    Notification(org_id=org_id, user_id=u, title=title,
                                 message=message, type=type)
                    for u in recipients
                ])
        except SQLAlchemyError as e:
            logger.error("notification to %s dropped: %s", recipients, e)


class AuditLog:

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record(self, org_id: str, type: str, message: str, metadata: dict) -> None:
        try:
            with self._session_factory() as db, db.begin():
                db.add(EventLog(org_id=org_id, type=type, category="roster",
                                message=message, event_metadata=metadata))
        except SQLAlchemyError as e:
            logger.error("audit event %s not recorded: %s", type, e)
            raise PersistenceFailure("Could not record audit event") from e
        logger.info("[audit] %s: %s", type, message)
