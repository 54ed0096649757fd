from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator


class TableReservationError(Exception):
    pass


class InvalidInterval(TableReservationError, ValueError):
    pass


class TableNotFound(TableReservationError, LookupError):
    def __init__(self, table_id: int) -> None:
        super().__init__(f"Table {table_id} not found.")
        self.table_id = table_id


class ReservationNotFound(TableReservationError, LookupError):
    pass


class ReservationConflict(TableReservationError):
    def __init__(self, table_id: int, existing: "Reservation") -> None:
        super().__init__(f"Table {table_id} is already reserved in that interval.")
        self.table_id = table_id
        self.existing = existing


def parse_instant(value: datetime | str | None) -> datetime:
    """Parse an ISO-8601 timestamp (or datetime) into an aware UTC datetime.

    Naive values are taken to be UTC. The result is truncated to whole
    milliseconds, the precision timestamps are stored with.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError as error:
            raise InvalidInterval(f"Invalid timestamp: {value!r}") from error
    else:
        raise InvalidInterval("Timestamp is missing.")

    try:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        else:
            parsed = parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError) as error:
        raise InvalidInterval(f"Timestamp out of range: {value!r}") from error
    return parsed.replace(microsecond=parsed.microsecond // 1000 * 1000)


def format_instant(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class TimeInterval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", parse_instant(self.start))
        object.__setattr__(self, "end", parse_instant(self.end))
        if self.start >= self.end:
            raise InvalidInterval("Interval start time must be earlier than end time.")

    @classmethod
    def parse(cls, start: datetime | str | None, end: datetime | str | None) -> "TimeInterval":
        return cls(parse_instant(start), parse_instant(end))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)

    def contains(self, instant: datetime) -> bool:
        return self.start <= parse_instant(instant) < self.end


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Return True when two intervals share at least one instant.

    Intervals are half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    return a.start < b.end and b.start < a.end


@dataclass(frozen=True)
class Reservation:
    owner: str
    interval: TimeInterval

    def __post_init__(self) -> None:
        owner = self.owner.strip() if isinstance(self.owner, str) else ""
        if not owner:
            raise InvalidInterval("Reservation owner must not be empty.")
        object.__setattr__(self, "owner", owner)

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end

    def to_dict(self) -> dict[str, str]:
        return {
            "username": self.owner,
            "start": format_instant(self.start),
            "end": format_instant(self.end),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        if not isinstance(data["username"], str):
            raise ValueError(f"Reservation username must be a string, got {data['username']!r}.")
        return Reservation(
            owner=data["username"],
            interval=TimeInterval.parse(data["start"], data["end"]),
        )


@dataclass
class Table:
    id: int
    reservations: list[Reservation] = field(default_factory=list)

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise ValueError(f"Table id must be a positive integer, got {self.id!r}.")

    def find_reservation_conflict(self, candidate: TimeInterval) -> Reservation | None:
        for reservation in self.reservations:
            if overlaps(reservation.interval, candidate):
                return reservation
        return None

    def reserve(self, owner: str, candidate: TimeInterval) -> "Table":
        reservation = Reservation(owner, candidate)
        conflict = self.find_reservation_conflict(candidate)
        if conflict is not None:
            raise ReservationConflict(self.id, conflict)
        self.reservations.append(reservation)
        return self

    def release(self) -> "Table":
        self.reservations = []
        return self

    def sweep_expired(self, now: datetime) -> int:
        now = parse_instant(now)
        remaining = [reservation for reservation in self.reservations if reservation.end > now]
        removed = len(self.reservations) - len(remaining)
        self.reservations = remaining
        return removed

    def cancel(self, owner: str, start: datetime | str) -> Reservation:
        start = parse_instant(start)
        for index, reservation in enumerate(self.reservations):
            if reservation.owner == owner.strip() and reservation.start == start:
                return self.reservations.pop(index)
        raise ReservationNotFound(f"No reservation by {owner!r} starting at {format_instant(start)} on table {self.id}.")

    def current_reservation(self, now: datetime) -> Reservation | None:
        for reservation in self.reservations:
            if reservation.interval.contains(now):
                return reservation
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "reservations": [reservation.to_dict() for reservation in self.reservations],
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Table":
        if isinstance(data["id"], bool) or not isinstance(data["id"], int):
            raise ValueError(f"Table id must be an integer, got {data['id']!r}.")
        return Table(
            id=data["id"],
            reservations=[Reservation.from_dict(row) for row in data.get("reservations") or []],
        )


@dataclass
class Catalog:
    tables: list[Table] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[int] = set()
        for table in self.tables:
            if table.id in seen:
                raise ValueError(f"Duplicate table id {table.id}.")
            seen.add(table.id)

    def __iter__(self) -> Iterator[Table]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)

    def find_by_id(self, table_id: int) -> Table | None:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def get(self, table_id: int) -> Table:
        table = self.find_by_id(table_id)
        if table is None:
            raise TableNotFound(table_id)
        return table

    def list_all(self) -> list[Table]:
        return list(self.tables)

    def add_table(self, table: Table) -> Table:
        if self.find_by_id(table.id) is not None:
            raise ValueError(f"Duplicate table id {table.id}.")
        self.tables.append(table)
        return table

    def sweep_all(self, now: datetime) -> int:
        return sum(table.sweep_expired(now) for table in self.tables)

    def reservations_for_owner(self, owner: str) -> list[tuple[Table, Reservation]]:
        owner = owner.strip()
        return [
            (table, reservation)
            for table in self.tables
            for reservation in table.reservations
            if reservation.owner == owner
        ]

    def to_dict(self) -> dict[str, Any]:
        return {"tables": [table.to_dict() for table in self.tables]}

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> "Catalog":
        if data is None:
            return Catalog()
        if not isinstance(data, dict):
            raise ValueError("top-level catalog is not a mapping")
        rows = data.get("tables") or []
        if not isinstance(rows, list):
            raise ValueError("'tables' is not a list")
        return Catalog([Table.from_dict(row) for row in rows])
