"""
Session-hook publisher for the change feed.

Notification inserts and ``is_read`` flips are collected on the session while
the transaction is open and only published once it commits; a rollback drops
them. Rows written with bulk INSERT/UPDATE statements bypass the unit of work,
so the code issuing them registers the events itself via ``record_change``.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import event, inspect as sa_inspect
from sqlalchemy.orm import Session

from townsquare.modules.notifications.models.notification import Notification
from townsquare.modules.notifications.realtime.change_feed import ChangeEvent, ChangeFeed, INSERT, UPDATE

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "townsquare.pending_changes"

_feed: Optional[ChangeFeed] = None
_installed_on = set()

NOTIFICATION_COLUMNS = ("id", "recipient_id", "sender_id", "type", "message", "post_id", "is_read", "created_at")

def notification_row(values: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-safe row dict with the same shape the database trigger emits"""
    row = {}
    for column in NOTIFICATION_COLUMNS:
        value = values.get(column)
        if hasattr(value, "value"):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        row[column] = value
    return row

def record_change(session: Session, change: ChangeEvent) -> None:
    """Queue an event to publish when ``session`` commits"""
    if _feed is None:
        return
    session.info.setdefault(PENDING_CHANGES_KEY, []).append(change)

def _after_flush(session: Session, flush_context) -> None:
    for obj in session.new:
        if isinstance(obj, Notification):
            record_change(session, ChangeEvent(INSERT, Notification.__tablename__, notification_row(sa_inspect(obj).dict)))

    for obj in session.dirty:
        if not isinstance(obj, Notification):
            continue
        history = sa_inspect(obj).attrs.is_read.history
        if not history.has_changes() or not history.deleted:
            continue
        new_row = notification_row(sa_inspect(obj).dict)
        old_row = dict(new_row, is_read=history.deleted[0])
        record_change(session, ChangeEvent(UPDATE, Notification.__tablename__, new_row, old_row))

def _after_commit(session: Session) -> None:
    pending = session.info.pop(PENDING_CHANGES_KEY, [])
    if not pending or _feed is None:
        return
    for change in pending:
        try:
            _feed.publish(change)
        except Exception as e:
            logger.error(f"Failed to publish {change.op} on {change.table} for row {change.new.get('id')}: {e}")

def _after_rollback(session: Session) -> None:
    session.info.pop(PENDING_CHANGES_KEY, None)

def install_session_capture(session_factory, feed: ChangeFeed) -> None:
    """Attach the hooks to every session made by ``session_factory``"""
    global _feed
    _feed = feed
    if id(session_factory) in _installed_on:
        return
    event.listen(session_factory, "after_flush", _after_flush)
    event.listen(session_factory, "after_commit", _after_commit)
    event.listen(session_factory, "after_rollback", _after_rollback)
    _installed_on.add(id(session_factory))
    logger.info("Session change capture installed")
