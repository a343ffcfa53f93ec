"""
Live Data Collections - fetch, refetch on change, and optimistic mutations.

A LiveCollection keeps the latest result of a fetch function and refreshes it
(debounced) whenever the backing table publishes a change. Mutations can be
applied optimistically: the local list changes at once, the real write runs,
and the list is refetched; a failed write restores the previous list.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from services.realtime import Debouncer, SubscriptionManager, channel_for_table, get_subscription_manager

logger = logging.getLogger(__name__)


class LiveCollection:
    """A self-refreshing list of records for one table."""

    def __init__(self, table: str, fetch: Callable[[], List[Dict[str, Any]]],
                 manager: Optional[SubscriptionManager] = None,
                 debounce_seconds: float = 0.1, key: str = 'id'):
        self.table = table
        self.fetch = fetch
        self.manager = manager or get_subscription_manager()
        self.key = key
        self.loading = False
        self.error: Optional[str] = None
        self._items: List[Dict[str, Any]] = []
        self._lock = threading.RLock()
        self._listeners: List[Callable[[List[Dict[str, Any]]], None]] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._debounced_refresh = Debouncer(debounce_seconds, self.refresh)

    @property
    def items(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._items)

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def on_change(self, listener: Callable[[List[Dict[str, Any]]], None]) -> Callable[[], None]:
        """Register a consumer of refreshed lists. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return remove

    def _notify(self):
        items = self.items
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(items)
            except Exception as e:
                logger.error(f"Live collection listener for '{self.table}' failed: {e}", exc_info=True)

    def refresh(self) -> List[Dict[str, Any]]:
        """Load the current rows. A failed fetch keeps the previous list and records the error."""
        self.loading = True
        try:
            items = list(self.fetch())
        except Exception as e:
            logger.error(f"Error fetching {self.table}: {e}")
            self.error = str(e)
            return self.items
        finally:
            self.loading = False

        with self._lock:
            self._items = items
            self.error = None
        self._notify()
        return items

    def start(self, initial_fetch: bool = True):
        """Subscribe to the table's change channel."""
        if self._unsubscribe is not None:
            return self
        self._unsubscribe = self.manager.subscribe(channel_for_table(self.table), self._handle_change)
        if initial_fetch:
            self.refresh()
        return self

    def stop(self):
        """Release the channel and drop any pending refetch."""
        self._debounced_refresh.cancel()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_change(self, payload: Dict[str, Any]):
        logger.debug(f"{payload['type']} on {self.table}, scheduling refetch")
        self._debounced_refresh()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_value, traceback):
        self.stop()

    # =========================================================================
    # OPTIMISTIC MUTATIONS
    # =========================================================================

    def _apply_optimistic(self, change: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]],
                          mutation: Callable[[], Any]) -> Any:
        with self._lock:
            previous = list(self._items)
            self._items = change(list(self._items))
        self._notify()

        try:
            result = mutation()
        except Exception:
            with self._lock:
                self._items = previous
            self._notify()
            raise

        self.refresh()
        return result

    def optimistic_add(self, record: Dict[str, Any], mutation: Callable[[], Any]) -> Any:
        return self._apply_optimistic(lambda items: items + [dict(record)], mutation)

    def optimistic_update(self, record_id: Any, changes: Dict[str, Any], mutation: Callable[[], Any]) -> Any:
        def change(items):
            return [{**item, **changes} if item.get(self.key) == record_id else item for item in items]
        return self._apply_optimistic(change, mutation)

    def optimistic_remove(self, record_id: Any, mutation: Callable[[], Any]) -> Any:
        return self._apply_optimistic(
            lambda items: [item for item in items if item.get(self.key) != record_id],
            mutation
        )
