"""
Tests for self-refreshing collections
"""
import time
import pytest
from services.live_data import LiveCollection
from services.realtime import SubscriptionManager


def wait_for(condition, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


class FakeTable:
    """In-memory rows standing in for a repository list call"""

    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.fetches = 0
        self.fail_with = None

    def fetch(self):
        self.fetches += 1
        if self.fail_with:
            raise self.fail_with
        return [dict(row) for row in self.rows]


@pytest.fixture
def manager():
    return SubscriptionManager()


@pytest.fixture
def table():
    return FakeTable([{'id': 1, 'name': 'North crew'}, {'id': 2, 'name': 'South crew'}])


@pytest.mark.unit
class TestLifecycle:
    """Tests for start, refresh and stop"""

    def test_start_fetches_and_subscribes(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start()

        assert live.active
        assert [row['id'] for row in live.items] == [1, 2]
        assert manager.listener_count('crews_changes') == 1
        live.stop()

    def test_start_without_initial_fetch(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start(initial_fetch=False)
        assert live.items == []
        assert table.fetches == 0
        live.stop()

    def test_start_twice_keeps_one_listener(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager)
        live.start()
        live.start()
        assert manager.listener_count('crews_changes') == 1
        live.stop()

    def test_context_manager_releases_channel(self, manager, table):
        with LiveCollection('crews', table.fetch, manager=manager) as live:
            assert live.active
        assert not live.active
        assert manager.channel_names() == []

    def test_two_collections_share_channel(self, manager, table):
        first = LiveCollection('crews', table.fetch, manager=manager).start()
        second = LiveCollection('crews', table.fetch, manager=manager).start()

        assert manager.channel_names() == ['crews_changes']
        first.stop()
        assert manager.listener_count('crews_changes') == 1
        second.stop()
        assert manager.channel_names() == []

    def test_failed_fetch_keeps_previous_items(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start()
        table.fail_with = RuntimeError('connection lost')

        assert len(live.refresh()) == 2
        assert live.error == 'connection lost'
        assert not live.loading

        table.fail_with = None
        live.refresh()
        assert live.error is None
        live.stop()


@pytest.mark.unit
class TestChangeRefresh:

    def test_changes_trigger_one_debounced_refresh(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager, debounce_seconds=0.05).start()
        table.rows.append({'id': 3, 'name': 'East crew'})

        for _ in range(3):
            manager.publish('crews', 'INSERT', {'id': 3})

        assert wait_for(lambda: len(live.items) == 3)
        time.sleep(0.1)
        assert table.fetches == 2
        live.stop()

    def test_on_change_listener(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager)
        seen = []
        remove = live.on_change(seen.append)

        live.refresh()
        remove()
        live.refresh()

        assert len(seen) == 1
        assert seen[0][0]['name'] == 'North crew'

    def test_stop_drops_pending_refresh(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager, debounce_seconds=0.05).start()
        manager.publish('crews', 'UPDATE', {'id': 1})
        live.stop()

        time.sleep(0.15)
        assert table.fetches == 1


@pytest.mark.unit
class TestOptimisticMutations:
    """Tests for local changes applied ahead of the write"""

    def test_add_refreshes_after_success(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start()
        seen = []
        live.on_change(seen.append)

        def write():
            table.rows.append({'id': 3, 'name': 'East crew'})
            return 3

        assert live.optimistic_add({'id': 'temp', 'name': 'East crew'}, write) == 3
        assert seen[0][-1]['id'] == 'temp'
        assert [row['id'] for row in live.items] == [1, 2, 3]
        live.stop()

    def test_add_rolls_back_on_failure(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start()
        seen = []
        live.on_change(seen.append)

        def write():
            raise RuntimeError('duplicate name')

        with pytest.raises(RuntimeError):
            live.optimistic_add({'id': 'temp', 'name': 'North crew'}, write)

        assert len(seen[0]) == 3
        assert [row['id'] for row in live.items] == [1, 2]
        live.stop()

    def test_update_rolls_back_on_failure(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start()

        def write():
            assert live.items[0]['name'] == 'Renamed'
            raise ValueError('rejected')

        with pytest.raises(ValueError):
            live.optimistic_update(1, {'name': 'Renamed'}, write)
        assert live.items[0]['name'] == 'North crew'
        live.stop()

    def test_update_success(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start()

        def write():
            table.rows[0]['name'] = 'Renamed'

        live.optimistic_update(1, {'name': 'Renamed'}, write)
        assert live.items[0]['name'] == 'Renamed'
        live.stop()

    def test_remove(self, manager, table):
        live = LiveCollection('crews', table.fetch, manager=manager).start()

        with pytest.raises(RuntimeError):
            live.optimistic_remove(2, lambda: (_ for _ in ()).throw(RuntimeError('in use')))
        assert len(live.items) == 2

        live.optimistic_remove(2, lambda: table.rows.pop())
        assert [row['id'] for row in live.items] == [1]
        live.stop()
