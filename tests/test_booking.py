import unittest
from datetime import datetime, timedelta, timezone

from smartdesk import (
    Catalog,
    InvalidInterval,
    Reservation,
    ReservationConflict,
    ReservationNotFound,
    Table,
    TimeInterval,
    overlaps,
)
from smartdesk.booking import parse_instant


def at(hour: int, minute: int = 0, day: int = 24) -> datetime:
    return datetime(2026, 2, day, hour, minute, tzinfo=timezone.utc)


class TestTimeInterval(unittest.TestCase):
    def setUp(self) -> None:
        self.existing = TimeInterval(at(10), at(11))

    def test_non_overlapping_before_passes(self) -> None:
        self.assertFalse(overlaps(TimeInterval(at(9), at(9, 59)), self.existing))

    def test_non_overlapping_after_passes(self) -> None:
        self.assertFalse(overlaps(TimeInterval(at(11, 1), at(12)), self.existing))

    def test_exactly_touching_boundary_passes(self) -> None:
        self.assertFalse(overlaps(TimeInterval(at(11), at(12)), self.existing))
        self.assertFalse(overlaps(TimeInterval(at(9), at(10)), self.existing))

    def test_partially_overlapping_fails(self) -> None:
        self.assertTrue(overlaps(TimeInterval(at(10, 30), at(11, 30)), self.existing))

    def test_fully_contained_fails(self) -> None:
        self.assertTrue(overlaps(TimeInterval(at(10, 15), at(10, 45)), self.existing))

    def test_overlap_is_commutative(self) -> None:
        candidates = [
            TimeInterval(at(9), at(10)),
            TimeInterval(at(9), at(10, 1)),
            TimeInterval(at(10, 15), at(10, 45)),
            TimeInterval(at(8), at(12)),
            TimeInterval(at(11), at(12)),
        ]
        for candidate in candidates:
            self.assertEqual(overlaps(candidate, self.existing), overlaps(self.existing, candidate))
            self.assertEqual(candidate.overlaps(self.existing), self.existing.overlaps(candidate))

    def test_zero_length_interval_is_rejected(self) -> None:
        with self.assertRaises(InvalidInterval):
            TimeInterval(at(10), at(10))

    def test_reversed_interval_is_rejected(self) -> None:
        with self.assertRaises(InvalidInterval):
            TimeInterval(at(11), at(10))

    def test_parse_rejects_unparsable_and_missing_values(self) -> None:
        with self.assertRaises(InvalidInterval):
            TimeInterval.parse("not-a-date", "2026-02-24T11:00:00Z")
        with self.assertRaises(InvalidInterval):
            TimeInterval.parse("2026-02-24T10:00:00Z", None)
        with self.assertRaises(InvalidInterval):
            TimeInterval.parse("", "2026-02-24T11:00:00Z")

    def test_parse_normalizes_to_utc(self) -> None:
        interval = TimeInterval.parse("2026-02-24T11:00:00+01:00", "2026-02-24T11:00:00")
        self.assertEqual(interval.start, at(10))
        self.assertEqual(interval.end, at(11))
        self.assertEqual(interval.duration, timedelta(hours=1))

    def test_parse_truncates_to_stored_precision(self) -> None:
        self.assertEqual(parse_instant("2026-02-24T12:00:00.123456Z").microsecond, 123000)
        with self.assertRaises(InvalidInterval):
            TimeInterval.parse("2026-02-24T12:00:00.000100", "2026-02-24T12:00:00.000200")

        interval = TimeInterval.parse("2026-02-24T12:00:00.000100", "2026-02-24T12:00:00.001200")
        self.assertEqual(interval.start, at(12))
        self.assertEqual(interval.end, at(12).replace(microsecond=1000))

    def test_parse_rejects_timestamps_outside_datetime_range(self) -> None:
        with self.assertRaises(InvalidInterval):
            TimeInterval.parse("9999-12-31T22:00:00-05:00", "9999-12-31T23:00:00-05:00")
        with self.assertRaises(InvalidInterval):
            parse_instant("0001-01-01T01:00:00+05:00")

    def test_contains_is_half_open(self) -> None:
        self.assertTrue(self.existing.contains(at(10)))
        self.assertTrue(self.existing.contains(at(10, 59)))
        self.assertFalse(self.existing.contains(at(11)))


class TestReservation(unittest.TestCase):
    def test_owner_is_required(self) -> None:
        with self.assertRaises(InvalidInterval):
            Reservation("  ", TimeInterval(at(10), at(11)))

    def test_to_dict_uses_canonical_timestamps(self) -> None:
        reservation = Reservation(" alice ", TimeInterval(at(10), at(11)))
        self.assertEqual(
            reservation.to_dict(),
            {"username": "alice", "start": "2026-02-24T10:00:00.000Z", "end": "2026-02-24T11:00:00.000Z"},
        )
        self.assertEqual(Reservation.from_dict(reservation.to_dict()), reservation)

    def test_from_dict_rejects_non_string_username(self) -> None:
        with self.assertRaises(ValueError):
            Reservation.from_dict({"username": None, "start": "2026-02-24T10:00:00Z", "end": "2026-02-24T11:00:00Z"})


class TestTable(unittest.TestCase):
    def setUp(self) -> None:
        self.table = Table(id=1)
        self.table.reserve("alice", TimeInterval(at(10), at(11)))

    def test_overlapping_request_conflicts(self) -> None:
        with self.assertRaises(ReservationConflict) as caught:
            self.table.reserve("bruno", TimeInterval(at(10, 30), at(11, 30)))
        self.assertEqual(caught.exception.existing.owner, "alice")
        self.assertEqual(len(self.table.reservations), 1)

    def test_back_to_back_requests_are_admitted(self) -> None:
        self.table.reserve("bruno", TimeInterval(at(11), at(12)))
        self.table.reserve("chiara", TimeInterval(at(9), at(10)))
        self.assertEqual([r.owner for r in self.table.reservations], ["alice", "bruno", "chiara"])

    def test_find_reservation_conflict_checks_every_reservation(self) -> None:
        self.table.reserve("bruno", TimeInterval(at(14), at(15)))
        conflict = self.table.find_reservation_conflict(TimeInterval(at(14, 30), at(16)))
        self.assertIsNotNone(conflict)
        self.assertEqual(conflict.owner, "bruno")
        self.assertIsNone(self.table.find_reservation_conflict(TimeInterval(at(12), at(14))))

    def test_release_clears_everything(self) -> None:
        self.table.reserve("bruno", TimeInterval(at(20), at(21)))
        self.assertIs(self.table.release(), self.table)
        self.assertEqual(self.table.reservations, [])

    def test_sweep_expired_is_boundary_inclusive(self) -> None:
        table = Table(id=2)
        table.reserve("past", TimeInterval(at(8), at(9)))
        table.reserve("future", TimeInterval(at(13), at(14)))
        table.reserve("boundary", TimeInterval(at(11), at(12)))
        table.reserve("current", TimeInterval(at(12), at(13)))

        removed = table.sweep_expired(at(12))

        self.assertEqual(removed, 2)
        self.assertEqual([r.owner for r in table.reservations], ["future", "current"])

    def test_cancel_removes_single_reservation(self) -> None:
        self.table.reserve("bruno", TimeInterval(at(12), at(13)))
        cancelled = self.table.cancel("bruno", "2026-02-24T12:00:00Z")
        self.assertEqual(cancelled.owner, "bruno")
        self.assertEqual([r.owner for r in self.table.reservations], ["alice"])

        with self.assertRaises(ReservationNotFound):
            self.table.cancel("bruno", at(10))

    def test_current_reservation(self) -> None:
        self.assertEqual(self.table.current_reservation(at(10, 30)).owner, "alice")
        self.assertIsNone(self.table.current_reservation(at(11)))

    def test_from_dict_rejects_non_integer_ids(self) -> None:
        for bad_id in (1.5, "1", True, None):
            with self.assertRaises(ValueError):
                Table.from_dict({"id": bad_id, "reservations": []})

    def test_id_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            Table(id=0)


class TestCatalog(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = Catalog([Table(id=3), Table(id=1), Table(id=2)])
        self.catalog.get(1).reserve("alice", TimeInterval(at(8), at(9)))
        self.catalog.get(2).reserve("alice", TimeInterval(at(10), at(11)))
        self.catalog.get(2).reserve("bruno", TimeInterval(at(8), at(9)))

    def test_find_by_id(self) -> None:
        self.assertEqual(self.catalog.find_by_id(2).id, 2)
        self.assertIsNone(self.catalog.find_by_id(99))

    def test_list_all_keeps_catalog_order(self) -> None:
        self.assertEqual([table.id for table in self.catalog.list_all()], [3, 1, 2])
        self.assertEqual([table.id for table in self.catalog.list_all()], [3, 1, 2])

    def test_sweep_all_sums_removed(self) -> None:
        self.assertEqual(self.catalog.sweep_all(at(9)), 2)
        self.assertEqual(len(self.catalog.get(2).reservations), 1)

    def test_duplicate_ids_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Catalog([Table(id=1), Table(id=1)])
        with self.assertRaises(ValueError):
            self.catalog.add_table(Table(id=3))

    def test_reservations_for_owner(self) -> None:
        owned = self.catalog.reservations_for_owner("alice")
        self.assertEqual([table.id for table, _ in owned], [1, 2])

    def test_dict_round_trip_preserves_order(self) -> None:
        restored = Catalog.from_dict(self.catalog.to_dict())
        self.assertEqual(restored, self.catalog)
        self.assertEqual(restored.to_dict(), self.catalog.to_dict())


if __name__ == "__main__":
    unittest.main()
