"""
Unit tests for the generation lease (single-flight guard).

These tests verify:
1. At most one live record per store and key
2. Stale records count as released and are overwritten
3. Malformed records are cleared
4. SQLite store survives a new mutex instance
5. hold() releases on every exit path

Usage:
    pytest tests/test_lease.py -v
"""
import sys
import pytest
from datetime import timedelta
from pathlib import Path

# Add src directory to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from plan_generation.errors import AlreadyGeneratingError
from plan_generation.lease import (
    HOLDER_SUFFIX,
    MUTEX_KEY,
    GenerationMutex,
    InMemoryLeaseStore,
    SQLiteLeaseStore,
    to_epoch_ms,
)


# ============================================================================
# Exclusivity
# ============================================================================


class TestMutexExclusivity:
    """Test that only one holder can own the slot."""

    def test_first_acquire_succeeds(self, lease_store, clock):
        """Should acquire a free slot and persist an epoch-ms record."""
        mutex = GenerationMutex(lease_store, holder="tab-a", clock=clock)

        assert mutex.try_acquire() is True
        assert lease_store.get(MUTEX_KEY) == str(to_epoch_ms(clock.now))
        assert lease_store.get(MUTEX_KEY + HOLDER_SUFFIX) == "tab-a"
        assert mutex.is_generating() is True

    def test_second_acquire_refused_while_live(self, lease_store, clock):
        """Should refuse a second acquire while the record is live."""
        first = GenerationMutex(lease_store, holder="tab-a", clock=clock)
        second = GenerationMutex(lease_store, holder="tab-b", clock=clock)

        assert first.try_acquire() is True
        clock.advance(minutes=9)
        assert second.try_acquire() is False
        assert first.try_acquire() is False

    def test_acquire_raises_already_generating(self, lease_store, clock):
        """acquire() should raise instead of returning False."""
        GenerationMutex(lease_store, holder="tab-a", clock=clock).acquire()

        with pytest.raises(AlreadyGeneratingError) as exc_info:
            GenerationMutex(lease_store, holder="tab-b", clock=clock).acquire()
        assert exc_info.value.code == "already_generating"

    def test_lease_expiry(self, lease_store, clock):
        """Lease should expire one ttl after it started."""
        mutex = GenerationMutex(lease_store, ttl=timedelta(minutes=10), clock=clock)
        lease = mutex.acquire()

        assert lease.expires_at == lease.started_at + timedelta(minutes=10)
        assert lease.is_expired(clock.now) is False
        assert lease.is_expired(clock.advance(minutes=11)) is True

    def test_release_frees_slot(self, lease_store, clock):
        """Should allow a new acquire after release."""
        first = GenerationMutex(lease_store, holder="tab-a", clock=clock)
        second = GenerationMutex(lease_store, holder="tab-b", clock=clock)

        first.acquire()
        first.release()

        assert lease_store.get(MUTEX_KEY) is None
        assert second.try_acquire() is True


# ============================================================================
# Staleness
# ============================================================================


class TestMutexStaleness:
    """Test the ten minute staleness self-heal."""

    def test_stale_record_is_overwritten(self, lease_store, clock):
        """A record older than ten minutes should not block a new acquire."""
        crashed = GenerationMutex(lease_store, holder="crashed-tab", clock=clock)
        crashed.acquire()

        clock.advance(minutes=11)
        fresh = GenerationMutex(lease_store, holder="new-tab", clock=clock)

        assert fresh.try_acquire() is True
        assert fresh.read().holder == "new-tab"
        assert fresh.read().started_at == clock.now

    def test_record_at_exactly_ttl_is_live(self, lease_store, clock):
        """Staleness starts strictly after the threshold."""
        mutex = GenerationMutex(lease_store, clock=clock)
        mutex.acquire()
        record = mutex.read()

        assert mutex.is_stale(record, clock.now + timedelta(minutes=10)) is False
        assert mutex.is_stale(record, clock.now + timedelta(minutes=10, seconds=1)) is True

    def test_stale_record_reads_as_not_generating(self, lease_store, clock):
        """Should report no generation once the record is stale."""
        mutex = GenerationMutex(lease_store, clock=clock)
        mutex.acquire()
        clock.advance(minutes=15)

        assert mutex.read() is not None
        assert mutex.current() is None
        assert mutex.is_generating() is False

    def test_clear_if_stale(self, lease_store, clock):
        """Should delete a stale record and leave a live one alone."""
        mutex = GenerationMutex(lease_store, clock=clock)
        mutex.acquire()

        assert mutex.clear_if_stale() is False
        assert lease_store.get(MUTEX_KEY) is not None

        clock.advance(minutes=12)
        assert mutex.clear_if_stale() is True
        assert lease_store.get(MUTEX_KEY) is None

    def test_malformed_record_is_cleared(self, lease_store, clock):
        """A value that is not an epoch timestamp should count as absent."""
        lease_store.set(MUTEX_KEY, "not-a-timestamp")
        mutex = GenerationMutex(lease_store, clock=clock)

        assert mutex.read() is None
        assert lease_store.get(MUTEX_KEY) is None
        assert mutex.try_acquire() is True

    def test_renew_restarts_window(self, lease_store, clock):
        """Renew should push the record forward for its holder only."""
        owner = GenerationMutex(lease_store, holder="tab-a", clock=clock)
        other = GenerationMutex(lease_store, holder="tab-b", clock=clock)
        owner.acquire()

        clock.advance(minutes=8)
        assert other.renew() is None
        lease = owner.renew()

        assert lease is not None
        assert lease.started_at == clock.now
        clock.advance(minutes=8)
        assert owner.owns() is True


# ============================================================================
# Ownership helpers
# ============================================================================


class TestMutexOwnership:
    """Test adopt and release_if_owned."""

    def test_adopt_replaces_live_record(self, lease_store, clock):
        """Adopt should take over the slot even while another holder is live."""
        GenerationMutex(lease_store, holder="old-tab", clock=clock).acquire()
        reloaded = GenerationMutex(lease_store, holder="reloaded-tab", clock=clock)

        reloaded.adopt()

        assert reloaded.owns() is True
        assert reloaded.read().holder == "reloaded-tab"

    def test_release_if_owned_keeps_foreign_live_record(self, lease_store, clock):
        """Should not delete another holder's live record."""
        GenerationMutex(lease_store, holder="tab-a", clock=clock).acquire()
        other = GenerationMutex(lease_store, holder="tab-b", clock=clock)

        assert other.release_if_owned() is False
        assert lease_store.get(MUTEX_KEY) is not None

    def test_release_if_owned_clears_own_and_stale_records(self, lease_store, clock):
        """Should delete its own record and any stale foreign record."""
        mine = GenerationMutex(lease_store, holder="tab-a", clock=clock)
        mine.acquire()
        assert mine.release_if_owned() is True
        assert lease_store.get(MUTEX_KEY) is None

        GenerationMutex(lease_store, holder="tab-b", clock=clock).acquire()
        clock.advance(minutes=20)
        assert mine.release_if_owned() is True
        assert lease_store.get(MUTEX_KEY) is None


# ============================================================================
# hold() context manager
# ============================================================================


class TestMutexHold:
    """Test the release guarantee of hold()."""

    def test_hold_releases_on_success(self, lease_store, clock):
        mutex = GenerationMutex(lease_store, clock=clock)

        with mutex.hold() as lease:
            assert lease.holder == mutex.holder
            assert mutex.is_generating() is True

        assert mutex.is_generating() is False

    def test_hold_releases_on_error(self, lease_store, clock):
        """Should release even when the block raises."""
        mutex = GenerationMutex(lease_store, clock=clock)

        with pytest.raises(RuntimeError):
            with mutex.hold():
                raise RuntimeError("job crashed")

        assert lease_store.get(MUTEX_KEY) is None

    def test_hold_refused_while_held(self, lease_store, clock):
        """Should raise without touching the existing record."""
        GenerationMutex(lease_store, holder="tab-a", clock=clock).acquire()
        mutex = GenerationMutex(lease_store, holder="tab-b", clock=clock)

        with pytest.raises(AlreadyGeneratingError):
            with mutex.hold():
                pass

        assert mutex.read().holder == "tab-a"


# ============================================================================
# SQLite store
# ============================================================================


class TestSQLiteLeaseStore:
    """Test the durable store."""

    def test_get_set_delete(self, tmp_path):
        store = SQLiteLeaseStore(str(tmp_path / "lease.db"))

        assert store.get("key") is None
        store.set("key", "one")
        store.set("key", "two")
        assert store.get("key") == "two"
        store.delete("key")
        assert store.get("key") is None

    def test_record_survives_restart(self, tmp_path, clock):
        """A new store on the same file should still see the live record."""
        db_path = str(tmp_path / "lease.db")
        GenerationMutex(SQLiteLeaseStore(db_path), holder="before-restart", clock=clock).acquire()

        restarted = GenerationMutex(SQLiteLeaseStore(db_path), holder="after-restart", clock=clock)

        assert restarted.is_generating() is True
        assert restarted.try_acquire() is False

        clock.advance(minutes=11)
        assert restarted.clear_if_stale() is True
        assert restarted.try_acquire() is True
