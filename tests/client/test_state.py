"""Tests for the last-known checksum store.

States such as in-sync or conflict are never stored; only the checksum
both sides shared at the last successful sync of each mapping.
"""

from pathlib import Path

from dotsync.client.state import SyncedFile, SyncStateStore


class TestSyncStateCreation:
    """Tests for SyncStateStore initialization."""

    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        """Should create parent directories."""
        db_path = tmp_path / "subdir" / "nested" / "state.db"
        store = SyncStateStore(db_path)

        assert db_path.exists()
        store.close()

    def test_reopens_existing_db(self, tmp_path: Path) -> None:
        """Should reopen existing database with data preserved."""
        db_path = tmp_path / "state.db"

        store1 = SyncStateStore(db_path)
        store1.mark_synced("default", ".bashrc", "abc")
        store1.close()

        store2 = SyncStateStore(db_path)
        record = store2.get_file("default", ".bashrc")
        assert record is not None
        assert record.checksum == "abc"
        store2.close()


class TestSyncedFiles:
    """Tests for synced file records."""

    def test_get_missing(self, state: SyncStateStore) -> None:
        """Should return None for unknown mappings."""
        assert state.get_file("default", ".bashrc") is None

    def test_mark_synced_upserts(self, state: SyncStateStore) -> None:
        """Marking twice keeps only the latest checksum."""
        state.mark_synced("default", ".bashrc", "first")
        state.mark_synced("default", ".bashrc", "second")

        records = state.list_files("default")
        assert len(records) == 1
        assert isinstance(records[0], SyncedFile)
        assert records[0].checksum == "second"

    def test_profiles_are_separate(self, state: SyncStateStore) -> None:
        """The same key in two profiles has two records."""
        state.mark_synced("home", ".bashrc", "h")
        state.mark_synced("work", ".bashrc", "w")

        assert state.last_known_checksums("home") == {".bashrc": "h"}
        assert state.last_known_checksums("work") == {".bashrc": "w"}

    def test_remove_file(self, state: SyncStateStore) -> None:
        """Removed mappings are forgotten."""
        state.mark_synced("default", ".vimrc", "abc")
        state.remove_file("default", ".vimrc")

        assert state.last_known_checksums("default") == {}


class TestSyncState:
    """Tests for key-value sync state."""

    def test_last_sync_at(self, state: SyncStateStore) -> None:
        """Should store the time of the last completed pass."""
        assert state.get_last_sync_at() is None
        state.set_last_sync_at(1700000000.5)
        assert state.get_last_sync_at() == 1700000000.5

    def test_set_state_overwrites(self, state: SyncStateStore) -> None:
        """Should overwrite existing values."""
        state.set_state("key", "one")
        state.set_state("key", "two")
        assert state.get_state("key") == "two"
