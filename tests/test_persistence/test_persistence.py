"""
Tests for the persistence layer.

Run with: python3 tests/test_persistence/test_persistence.py
"""

import json
import sys
import tempfile
import unittest
import uuid
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from server.game_engine import Match, Player
from server.network.session_directory import Identity, MatchConfig, SessionDirectory
from server.persistence import (
    Database,
    init_database,
    MatchRepository,
    MatchRecord,
    SeatRecord,
    StaleSnapshotError,
)
from shared.protocol import MatchSettings


class PersistenceTestCase(unittest.TestCase):
    """Base test case with database setup/teardown."""

    def setUp(self):
        """Create a temporary database for each test."""
        self.temp_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
        self.db_path = self.temp_file.name
        self.temp_file.close()

        self.db = init_database(self.db_path)
        self.repository = MatchRepository(self.db)

    def tearDown(self):
        """Clean up the temporary database."""
        self.db.close_connection()
        Path(self.db_path).unlink(missing_ok=True)

    def create_sample_match(self, max_players: int = 4, status: str = "WAITING") -> MatchRecord:
        """Create and save a sample match record."""
        record = MatchRecord(
            id=str(uuid.uuid4()),
            name="Test Match",
            host_id="host",
            max_players=max_players,
            status=status,
            settings_json=json.dumps({"max_players": max_players}),
        )
        self.repository.create_match(record)
        return record

    def seat(self, record: MatchRecord, user_id: str, seat: int) -> SeatRecord:
        return self.repository.record_join(SeatRecord(
            match_id=record.id,
            user_id=user_id,
            player_id=f"player-{user_id}",
            username=user_id.title(),
            seat=seat,
        ))

    def snapshot(self, match_id: str, version: int, **extra) -> dict:
        state = {
            "id": match_id,
            "version": version,
            "status": "WAITING",
            "current_phase": "WAITING",
        }
        state.update(extra)
        return state


class TestDatabase(PersistenceTestCase):
    """Tests for Database class."""

    def test_schema_created(self):
        with self.db.get_connection() as conn:
            tables = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        self.assertTrue({"matches", "seats", "match_snapshots"} <= tables)

    def test_foreign_keys_enabled(self):
        with self.db.get_connection() as conn:
            row = conn.execute("PRAGMA foreign_keys").fetchone()
        self.assertEqual(row[0], 1)

    def test_rollback_on_error(self):
        record = self.create_sample_match()

        with self.assertRaises(RuntimeError):
            with self.db.get_connection() as conn:
                conn.execute("UPDATE matches SET name = 'Changed' WHERE id = ?", (record.id,))
                raise RuntimeError("boom")

        self.assertEqual(self.repository.get_match(record.id).name, "Test Match")

    def test_reset_database(self):
        self.create_sample_match()
        self.db.reset_database()
        self.assertEqual(self.repository.list_matches(), [])

    def test_separate_instances_share_file(self):
        record = self.create_sample_match()
        other = Database(self.db_path)
        try:
            self.assertIsNotNone(MatchRepository(other).get_match(record.id))
        finally:
            other.close_connection()


class TestMatchOperations(PersistenceTestCase):
    """Match directory rows."""

    def test_create_and_get(self):
        record = self.create_sample_match()

        loaded = self.repository.get_match(record.id)

        self.assertEqual(loaded.name, "Test Match")
        self.assertEqual(loaded.version, 0)
        self.assertEqual(loaded.status, "WAITING")
        self.assertIsNotNone(loaded.created_at)
        self.assertIsNone(self.repository.get_match("missing"))

    def test_delete_cascades(self):
        record = self.create_sample_match()
        self.seat(record, "host", 0)
        self.repository.save_snapshot(record.id, self.snapshot(record.id, 1), 0)

        self.assertTrue(self.repository.delete_match(record.id))

        self.assertEqual(self.repository.get_seats(record.id), [])
        self.assertIsNone(self.repository.get_latest_snapshot(record.id))
        self.assertFalse(self.repository.delete_match(record.id))

    def test_list_counts_players(self):
        record = self.create_sample_match()
        self.seat(record, "host", 0)
        self.seat(record, "guest", 1)

        summaries = self.repository.list_matches()

        self.assertEqual(len(summaries), 1)
        self.assertEqual(summaries[0].player_count, 2)
        self.assertTrue(summaries[0].is_open)

    def test_list_open_matches(self):
        full = self.create_sample_match(max_players=2)
        self.seat(full, "a", 0)
        self.seat(full, "b", 1)
        started = self.create_sample_match(status="IN_PROGRESS")
        self.seat(started, "c", 0)
        waiting = self.create_sample_match()
        self.seat(waiting, "d", 0)

        open_ids = [m.id for m in self.repository.list_open_matches()]

        self.assertEqual(open_ids, [waiting.id])

    def test_list_by_status(self):
        self.create_sample_match(status="IN_PROGRESS")
        self.create_sample_match()

        self.assertEqual(len(self.repository.list_matches(status="IN_PROGRESS")), 1)
        self.assertEqual(len(self.repository.list_matches(limit=1)), 1)


class TestSeatOperations(PersistenceTestCase):
    """Seats in the session directory."""

    def test_seats_in_order(self):
        record = self.create_sample_match()
        self.seat(record, "second", 1)
        self.seat(record, "first", 0)

        seats = self.repository.get_seats(record.id)

        self.assertEqual([s.user_id for s in seats], ["first", "second"])

    def test_record_join_is_upsert(self):
        record = self.create_sample_match()
        self.seat(record, "host", 0)
        self.seat(record, "host", 3)

        seats = self.repository.get_seats(record.id)

        self.assertEqual(len(seats), 1)
        self.assertEqual(seats[0].seat, 3)

    def test_remove_seat(self):
        record = self.create_sample_match()
        self.seat(record, "guest", 1)

        self.assertTrue(self.repository.remove_seat(record.id, "guest"))
        self.assertFalse(self.repository.remove_seat(record.id, "guest"))

    def test_matches_for_user(self):
        first = self.create_sample_match()
        second = self.create_sample_match()
        self.seat(first, "vito", 0)
        self.seat(second, "vito", 2)

        self.assertEqual(
            sorted(self.repository.get_matches_for_user("vito")),
            sorted([first.id, second.id])
        )
        self.assertEqual(self.repository.get_matches_for_user("nobody"), [])


class TestSnapshots(PersistenceTestCase):
    """Versioned snapshots with compare-and-swap."""

    def test_save_and_load(self):
        record = self.create_sample_match()
        state = self.snapshot(record.id, 1, players=["host"])

        snapshot_id = self.repository.save_snapshot(record.id, state, 0)

        self.assertIsNotNone(snapshot_id)
        self.assertEqual(self.repository.load_match_state(record.id), state)
        self.assertEqual(self.repository.get_match(record.id).version, 1)

    def test_stale_write_is_rejected(self):
        record = self.create_sample_match()
        self.repository.save_snapshot(record.id, self.snapshot(record.id, 1), 0)

        with self.assertRaises(StaleSnapshotError) as ctx:
            self.repository.save_snapshot(record.id, self.snapshot(record.id, 1), 0)

        self.assertEqual(ctx.exception.expected_version, 0)
        self.assertEqual(ctx.exception.actual_version, 1)
        self.assertEqual(self.repository.get_latest_snapshot(record.id).version, 1)

    def test_write_to_missing_match(self):
        with self.assertRaises(StaleSnapshotError) as ctx:
            self.repository.save_snapshot("missing", self.snapshot("missing", 1), 0)
        self.assertIsNone(ctx.exception.actual_version)

    def test_row_tracks_status(self):
        record = self.create_sample_match()

        self.repository.save_snapshot(
            record.id,
            self.snapshot(record.id, 1, status="COMPLETED", current_phase="FINISHED"),
            0
        )

        loaded = self.repository.get_match(record.id)
        self.assertEqual(loaded.status, "COMPLETED")
        self.assertEqual(loaded.phase, "FINISHED")
        self.assertIsNotNone(loaded.finished_at)

    def test_snapshot_at_version(self):
        record = self.create_sample_match()
        for version in range(1, 4):
            self.repository.save_snapshot(record.id, self.snapshot(record.id, version),
                                          version - 1)

        self.assertEqual(self.repository.get_snapshot_at_version(record.id, 2).version, 2)
        self.assertEqual(self.repository.get_latest_snapshot(record.id).version, 3)
        self.assertIsNone(self.repository.get_snapshot_at_version(record.id, 0))

    def test_cleanup_keeps_newest(self):
        record = self.create_sample_match()
        for version in range(1, 6):
            self.repository.save_snapshot(record.id, self.snapshot(record.id, version),
                                          version - 1)

        deleted = self.repository.cleanup_old_snapshots(record.id, keep_count=2)

        self.assertEqual(deleted, 3)
        self.assertIsNone(self.repository.get_snapshot_at_version(record.id, 3))
        self.assertEqual(self.repository.get_latest_snapshot(record.id).version, 5)

    def test_load_unsaved_match(self):
        record = self.create_sample_match()
        self.assertIsNone(self.repository.load_match_state(record.id))


class TestSessionDirectory(PersistenceTestCase):
    """Match creation against the store."""

    def setUp(self):
        super().setUp()
        self.directory = SessionDirectory(self.repository)
        self.host = Identity("host", "Host")

    def test_create_match_writes_everything(self):
        match_id = self.directory.create_match(
            MatchConfig(name="Friday Night", host=self.host, settings=MatchSettings(max_players=5))
        )

        record = self.repository.get_match(match_id)
        self.assertEqual(record.name, "Friday Night")
        self.assertEqual(record.max_players, 5)
        self.assertEqual(json.loads(record.settings_json), {"max_players": 5})

        seats = self.repository.get_seats(match_id)
        self.assertEqual([(s.user_id, s.seat) for s in seats], [("host", 0)])

        state = self.repository.load_match_state(match_id)
        self.assertEqual(state["version"], 0)
        restored = Match.from_dict(state)
        self.assertEqual(restored.players[0].user_id, "host")

    def test_create_match_rejects_bad_size(self):
        with self.assertRaises(ValueError):
            self.directory.create_match(
                MatchConfig(name="Too Big", host=self.host, settings=MatchSettings(max_players=12))
            )
        self.assertEqual(self.repository.list_matches(), [])

    def test_joins_take_next_seat(self):
        match_id = self.directory.create_match(MatchConfig(name="Lobby", host=self.host))

        seat = self.directory.record_join(match_id, Player(user_id="guest", username="Guest"))

        self.assertEqual(seat.seat, 1)
        self.assertEqual(self.directory.matches_for_user("guest"), [match_id])

        self.assertTrue(self.directory.record_leave(match_id, "guest"))
        self.assertEqual(self.directory.matches_for_user("guest"), [])

    def test_open_listing(self):
        match_id = self.directory.create_match(MatchConfig(name="Lobby", host=self.host))

        listing = self.directory.list_open_matches()

        self.assertEqual([m.id for m in listing], [match_id])
        self.assertEqual(listing[0].player_count, 1)


def run_tests():
    """Run all persistence tests."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    test_classes = [
        TestDatabase,
        TestMatchOperations,
        TestSeatOperations,
        TestSnapshots,
        TestSessionDirectory,
    ]

    for test_class in test_classes:
        tests = loader.loadTestsFromTestCase(test_class)
        suite.addTests(tests)

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
