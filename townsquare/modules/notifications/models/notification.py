import enum

from sqlalchemy import DDL, Boolean, CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, String, Text, event
from sqlalchemy.sql import func

from townsquare.core.config import settings
from townsquare.db.session import Base

NOTIFY_TRIGGER_NAME = "notifications_change_notify"
NOTIFY_FUNCTION_NAME = "notify_notification_change"

class NotificationType(str, enum.Enum):
    FOLLOW = "FOLLOW"
    LIKE = "LIKE"
    COMMENT = "COMMENT"
    POST = "POST"

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, index=True)
    recipient_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(Enum(NotificationType, name="notification_type"), nullable=False)
    message = Column(Text, nullable=False)
    post_id = Column(String, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("sender_id != recipient_id", name="no_self_notification"),
        Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
    )


def notify_function_sql(channel: str) -> str:
    """Trigger function publishing every row change as JSON on ``channel``"""
    return f"""
        CREATE OR REPLACE FUNCTION {NOTIFY_FUNCTION_NAME}() RETURNS trigger AS $$
        BEGIN
            PERFORM pg_notify(
                '{channel}',
                json_build_object(
                    'op', TG_OP,
                    'table', TG_TABLE_NAME,
                    'new', row_to_json(NEW),
                    'old', CASE WHEN TG_OP = 'UPDATE' THEN row_to_json(OLD) END
                )::text
            );
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """

NOTIFY_TRIGGER_SQL = f"""
    CREATE TRIGGER {NOTIFY_TRIGGER_NAME}
    AFTER INSERT OR UPDATE ON notifications
    FOR EACH ROW EXECUTE FUNCTION {NOTIFY_FUNCTION_NAME}()
"""

DROP_NOTIFY_FUNCTION_SQL = f"DROP FUNCTION IF EXISTS {NOTIFY_FUNCTION_NAME}()"

# Run by create_all; the initial migration executes the same SQL
create_notify_function = DDL(notify_function_sql(settings.CHANGE_FEED_CHANNEL)).execute_if(dialect="postgresql")
create_notify_trigger = DDL(NOTIFY_TRIGGER_SQL).execute_if(dialect="postgresql")
drop_notify_function = DDL(DROP_NOTIFY_FUNCTION_SQL).execute_if(dialect="postgresql")

event.listen(Notification.__table__, "after_create", create_notify_function)
event.listen(Notification.__table__, "after_create", create_notify_trigger)
event.listen(Notification.__table__, "after_drop", drop_notify_function)
