"""
Realtime Change Feed - table change notifications fanned out to in-process listeners.

Row changes committed through SQLAlchemy are published on a channel named
``<table>_changes``. The SubscriptionManager keeps exactly one subscription per
channel no matter how many consumers ask for it: listeners are reference
counted and the channel is torn down when the last one detaches.
"""

import logging
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

CHANNEL_SUFFIX = '_changes'
CHANGE_TYPES = ('INSERT', 'UPDATE', 'DELETE')

# Global manager instance
_manager = None
_feed_installed = False


def channel_for_table(table: str) -> str:
    return f"{table}{CHANNEL_SUFFIX}"


def table_for_channel(channel_name: str) -> str:
    if channel_name.endswith(CHANNEL_SUFFIX):
        return channel_name[:-len(CHANNEL_SUFFIX)]
    return channel_name


class Channel:
    """One subscription to a table's changes, shared by every listener."""

    def __init__(self, name: str):
        self.name = name
        self.table = table_for_channel(name)
        self.listeners: List[Callable[[Dict], None]] = []
        self.subscribed_at = datetime.utcnow()
        self.delivered = 0


class SubscriptionManager:
    """Reference-counted map of channel name -> Channel."""

    def __init__(self):
        self._channels: Dict[str, Channel] = {}
        self._lock = threading.RLock()

    def subscribe(self, channel_name: str, callback: Callable[[Dict], None]) -> Callable[[], None]:
        """
        Attach a listener to a channel, creating the channel on first use.

        Returns:
            A cleanup function that detaches this listener. The channel is
            unsubscribed once its last listener is gone. Calling the cleanup
            more than once has no further effect.
        """
        with self._lock:
            channel = self._channels.get(channel_name)
            if channel is None:
                channel = Channel(channel_name)
                self._channels[channel_name] = channel
                logger.info(f"Subscribed to channel '{channel_name}' (table: {channel.table})")
            channel.listeners.append(callback)

        released = threading.Event()

        def unsubscribe():
            if released.is_set():
                return
            released.set()
            self._release(channel_name, callback)

        return unsubscribe

    def _release(self, channel_name: str, callback: Callable):
        with self._lock:
            channel = self._channels.get(channel_name)
            if channel is None:
                return
            try:
                channel.listeners.remove(callback)
            except ValueError:
                pass
            if not channel.listeners:
                del self._channels[channel_name]
                logger.info(f"Unsubscribed from channel '{channel_name}'")

    def publish(self, table: str, change_type: str, record: Optional[Dict[str, Any]] = None) -> int:
        """
        Deliver a change to every listener of the table's channel.

        Returns:
            Number of listeners notified.
        """
        if change_type not in CHANGE_TYPES:
            raise ValueError(f"Unknown change type: {change_type}")

        channel_name = channel_for_table(table)
        with self._lock:
            channel = self._channels.get(channel_name)
            if channel is None:
                return 0
            listeners = list(channel.listeners)
            channel.delivered += 1

        payload = {
            'table': table,
            'type': change_type,
            'id': (record or {}).get('id'),
            'record': record or {},
            'timestamp': datetime.utcnow().isoformat()
        }
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                logger.error(f"Listener on '{channel_name}' failed: {e}", exc_info=True)
        return len(listeners)

    def channel_names(self) -> List[str]:
        with self._lock:
            return sorted(self._channels)

    def listener_count(self, channel_name: str) -> int:
        with self._lock:
            channel = self._channels.get(channel_name)
            return len(channel.listeners) if channel else 0

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                name: {
                    'table': channel.table,
                    'listeners': len(channel.listeners),
                    'delivered': channel.delivered,
                    'subscribed_at': channel.subscribed_at.isoformat()
                }
                for name, channel in self._channels.items()
            }

    def clear(self):
        with self._lock:
            self._channels.clear()


class Debouncer:
    """
    Coalesce bursts of calls into one.

    Each call restarts the timer; ``func`` runs once, ``wait`` seconds after
    the last call, with the arguments of that last call.
    """

    def __init__(self, wait: float, func: Callable):
        self.wait = wait
        self.func = func
        self._timer: Optional[threading.Timer] = None
        self._pending = None
        self._lock = threading.Lock()

    def __call__(self, *args, **kwargs):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (args, kwargs)
            self._timer = threading.Timer(self.wait, self._fire)
            self._timer.daemon = True
            self._timer.start()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def _take_pending(self):
        with self._lock:
            pending = self._pending
            self._pending = None
            self._timer = None
            return pending

    def _fire(self):
        pending = self._take_pending()
        if pending is None:
            return
        args, kwargs = pending
        try:
            self.func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Debounced call failed: {e}", exc_info=True)

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    def flush(self):
        """Run a pending call now instead of waiting for the timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
        self._fire()


def get_subscription_manager() -> SubscriptionManager:
    """Get or create the global subscription manager."""
    global _manager
    if _manager is None:
        _manager = SubscriptionManager()
    return _manager


# =============================================================================
# SQLALCHEMY CHANGE FEED
# =============================================================================

PENDING_KEY = 'realtime_changes'


def _serialize(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def snapshot(obj) -> Dict[str, Any]:
    """Column values of a mapped object (no relationship loading)."""
    state = inspect(obj)
    return {attr.key: _serialize(getattr(obj, attr.key)) for attr in state.mapper.column_attrs}


def _collect_changes(session, flush_context):
    pending = session.info.setdefault(PENDING_KEY, [])
    for obj in session.new:
        pending.append((obj, 'INSERT', snapshot(obj)))
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            pending.append((obj, 'UPDATE', snapshot(obj)))
    for obj in session.deleted:
        pending.append((obj, 'DELETE', snapshot(obj)))


def _survived(obj, change_type) -> bool:
    # Rows written inside a rolled-back savepoint are no longer persistent
    state = inspect(obj)
    if change_type == 'DELETE':
        return state.was_deleted
    return state.persistent


def _publish_changes(session):
    if session.in_nested_transaction():
        return
    changes = session.info.pop(PENDING_KEY, [])
    manager = get_subscription_manager()
    for obj, change_type, record in changes:
        if _survived(obj, change_type):
            manager.publish(obj.__tablename__, change_type, record)


def _discard_changes(session):
    if session.in_nested_transaction():
        return
    session.info.pop(PENDING_KEY, None)


def install_change_feed(manager: SubscriptionManager = None):
    """
    Publish committed row changes from every SQLAlchemy session.

    Changes are gathered on flush and delivered after commit; a rollback
    discards them.
    """
    global _manager, _feed_installed
    if manager is not None:
        _manager = manager
    if _feed_installed:
        return get_subscription_manager()

    event.listen(Session, 'after_flush', _collect_changes)
    event.listen(Session, 'after_commit', _publish_changes)
    event.listen(Session, 'after_rollback', _discard_changes)
    _feed_installed = True
    logger.info("Realtime change feed installed")
    return get_subscription_manager()


def remove_change_feed():
    global _feed_installed
    if not _feed_installed:
        return
    event.remove(Session, 'after_flush', _collect_changes)
    event.remove(Session, 'after_commit', _publish_changes)
    event.remove(Session, 'after_rollback', _discard_changes)
    _feed_installed = False
