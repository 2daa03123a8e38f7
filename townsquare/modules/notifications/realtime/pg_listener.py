"""
PostgreSQL publisher for the change feed.

Table creation (create_all or the initial migration) installs a trigger that
calls ``pg_notify`` with ``{"op", "table", "new", "old"}`` for every insert
and update on the notifications table. This listener holds one dedicated
connection, LISTENs on that channel and republishes each payload into the
in-process feed.
"""
import json
import logging
import select
import threading
from typing import Optional

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy import text
from sqlalchemy.engine import Engine, make_url

from townsquare.modules.notifications.realtime.change_feed import ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)

def dsn_from_url(database_url: str) -> str:
    """Turn a SQLAlchemy URL (possibly with a +driver suffix) into a libpq URI"""
    return make_url(database_url).set(drivername="postgresql").render_as_string(hide_password=False)

def trigger_installed(engine: Engine, trigger_name: str) -> bool:
    """Whether the change trigger exists; without it LISTEN never receives anything"""
    with engine.connect() as conn:
        found = conn.execute(
            text("SELECT 1 FROM pg_trigger WHERE tgname = :name AND NOT tgisinternal"),
            {"name": trigger_name},
        ).first()
    return found is not None

def parse_payload(payload: str) -> Optional[ChangeEvent]:
    try:
        data = json.loads(payload)
        return ChangeEvent(
            op=data["op"],
            table=data["table"],
            new=data["new"],
            old=data.get("old"),
        )
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring malformed change payload: {e}")
        return None


class PostgresChangeListener(threading.Thread):
    """Background LISTEN loop with reconnect"""

    def __init__(self, dsn: str, channel: str, feed: ChangeFeed, poll_interval: float = 1.0, reconnect_delay: float = 2.0):
        super().__init__(name="change-feed-listener", daemon=True)
        self.dsn = dsn
        self.channel = channel
        self.feed = feed
        self.poll_interval = poll_interval
        self.reconnect_delay = reconnect_delay
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            conn = None
            try:
                conn = psycopg2.connect(self.dsn)
                conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
                with conn.cursor() as cur:
                    cur.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self.channel)))
                logger.info(f"Listening for changes on channel {self.channel}")
                self._listen(conn)
            except psycopg2.Error as e:
                logger.error(f"Change feed listener connection error: {e}")
                self._stop_event.wait(self.reconnect_delay)
            finally:
                if conn is not None:
                    conn.close()

    def _listen(self, conn) -> None:
        while not self._stop_event.is_set():
            readable, _, _ = select.select([conn], [], [], self.poll_interval)
            if not readable:
                continue
            conn.poll()
            while conn.notifies:
                notify = conn.notifies.pop(0)
                change = parse_payload(notify.payload)
                if change is not None:
                    self.feed.publish(change)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        self.join(timeout)
