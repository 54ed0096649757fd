from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from pathlib import Path
from typing import Any, Callable
import random
import shutil
import threading

import yaml

from .booking import (
    Catalog,
    Reservation,
    ReservationConflict,
    Table,
    TableReservationError,
    TimeInterval,
    format_instant,
    parse_instant,
)

logger = logging.getLogger(__name__)


class StoreUnavailable(TableReservationError, RuntimeError):
    pass


class CatalogCorrupt(StoreUnavailable):
    pass


SAMPLE_OWNERS = ["alice", "bruno", "chiara", "dario", "elena", "fabio"]
SAMPLE_DAY_START_HOUR = 8
SAMPLE_DAY_END_HOUR = 19
SAMPLE_WINDOW_DAYS = 7
MAX_EVENT_LOG_ENTRIES = 1000

_FILE_LOCKS: dict[Path, threading.RLock] = {}
_FILE_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    resolved = path.resolve()
    with _FILE_LOCKS_GUARD:
        if resolved not in _FILE_LOCKS:
            _FILE_LOCKS[resolved] = threading.RLock()
        return _FILE_LOCKS[resolved]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TableCatalogYamlStore:
    """Flat-file persistence for the table catalog.

    The whole catalog is one YAML document, rewritten atomically on each save.
    Legacy JSON catalogs load unchanged since JSON is valid YAML. Every store
    bound to the same file shares one lock, exposed as ``self.lock``.
    """

    def __init__(
        self,
        catalog_file: str | Path = Path("data") / "tables.yaml",
        max_events: int = MAX_EVENT_LOG_ENTRIES,
    ) -> None:
        if max_events <= 0:
            raise ValueError("max_events must be greater than zero")
        self.catalog_file = Path(catalog_file)
        self.max_events = max_events
        self.log_file = self.catalog_file.with_name("reservation_events.yaml")
        self.lock = _lock_for(self.catalog_file)
        with self.lock:
            self._ensure_files()

    def _ensure_files(self) -> None:
        try:
            self.catalog_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise StoreUnavailable(f"Failed to create data directory: {self.catalog_file.parent}") from error
        if not self.catalog_file.exists():
            self.save(Catalog())
        if not self.log_file.exists():
            self._write_yaml(self.log_file, [])

    def load(self) -> Catalog:
        try:
            text = self.catalog_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            catalog = Catalog()
            self.save(catalog)
            return catalog
        except (OSError, UnicodeDecodeError) as error:
            raise StoreUnavailable(f"Failed to read catalog file: {self.catalog_file}") from error

        try:
            return Catalog.from_dict(yaml.safe_load(text))
        except (yaml.YAMLError, KeyError, TypeError, ValueError) as error:
            raise CatalogCorrupt(f"Failed to parse catalog file: {self.catalog_file} ({error})") from error

    def save(self, catalog: Catalog) -> None:
        self._write_yaml(self.catalog_file, catalog.to_dict())

    def _write_yaml(self, path: Path, payload: Any) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise StoreUnavailable(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def recover(self, error: Exception) -> Path | None:
        """Back up an unparsable catalog file and reset it to an empty catalog.

        The file is left untouched when the backup copy cannot be made.
        """
        backup_path = self._backup(self.catalog_file)
        if backup_path is None and self.catalog_file.exists():
            logger.error("Leaving unparsable catalog file %s in place; no backup could be made", self.catalog_file)
            return None
        try:
            self.save(Catalog())
        except StoreUnavailable:
            logger.exception("Could not reset unparsable catalog file %s", self.catalog_file)
        self.log_event(
            "CATALOG_RECOVERED",
            {
                "file": self.catalog_file.name,
                "backup": backup_path.name if backup_path else None,
                "reason": str(error),
            },
        )
        return backup_path

    def _backup(self, path: Path) -> Path | None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
                return backup_path
        except OSError:
            logger.warning("Could not back up %s before resetting it", path, exc_info=True)
        return None

    def read_events(self) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(self.log_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError):
            logger.warning("Event log %s is unreadable; starting a new one", self.log_file, exc_info=True)
            self._backup(self.log_file)
            return []

        if not isinstance(payload, list):
            return []
        return [row for row in payload if isinstance(row, dict)]

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or _utc_now()).isoformat(timespec="seconds")
        with self.lock:
            events = self.read_events()
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            # oldest entries are dropped once the log is full
            events = events[-self.max_events:]
            try:
                self._write_yaml(self.log_file, events)
            except StoreUnavailable:
                logger.error("Failed to record %s event in %s", event_type, self.log_file, exc_info=True)


class TableReservationRepository:
    def __init__(
        self,
        catalog_file: str | Path = Path("data") / "tables.yaml",
        store: TableCatalogYamlStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store or TableCatalogYamlStore(catalog_file)
        self.clock: Callable[[], datetime] = clock or _utc_now

    def _load(self, strict: bool = False) -> Catalog:
        try:
            return self.store.load()
        except CatalogCorrupt as error:
            logger.warning("Catalog unparsable, continuing with an empty catalog: %s", error)
            if self.store.recover(error) is None and strict:
                raise
            return Catalog()
        except StoreUnavailable as error:
            if strict:
                raise
            # the file may still hold valid data; nothing is written back
            logger.warning("Catalog unreadable, continuing with an empty catalog: %s", error)
            return Catalog()

    def list_tables(self) -> list[Table]:
        with self.store.lock:
            return self._load().list_all()

    def get_table(self, table_id: int) -> Table:
        with self.store.lock:
            return self._load().get(table_id)

    def list_owner_reservations(self, owner: str) -> list[tuple[Table, Reservation]]:
        with self.store.lock:
            return self._load().reservations_for_owner(owner)

    def reserve_table(
        self,
        table_id: int,
        owner: str,
        start: datetime | str,
        end: datetime | str,
    ) -> Table:
        with self.store.lock:
            catalog = self._load()
            table = catalog.get(table_id)
            interval = TimeInterval.parse(start, end)
            try:
                table.reserve(owner, interval)
            except ReservationConflict as conflict:
                logger.info(
                    "Rejected reservation on table %s for %s: overlaps %s -> %s",
                    table_id,
                    owner,
                    format_instant(conflict.existing.start),
                    format_instant(conflict.existing.end),
                )
                raise
            self.store.save(catalog)

            created = table.reservations[-1]
            self.store.log_event("RESERVATION_CREATED", {"table_id": table_id, **created.to_dict()}, self.clock())

        logger.info(
            "Reserved table %s: %s (%s -> %s)",
            table_id,
            created.owner,
            format_instant(created.start),
            format_instant(created.end),
        )
        return table

    def release_table(self, table_id: int) -> Table:
        with self.store.lock:
            catalog = self._load()
            table = catalog.get(table_id)
            released = len(table.reservations)
            table.release()
            self.store.save(catalog)
            self.store.log_event("TABLE_RELEASED", {"table_id": table_id, "removed": released}, self.clock())

        logger.info("Table %s released manually (%d reservations removed)", table_id, released)
        return table

    def cancel_reservation(self, table_id: int, owner: str, start: datetime | str) -> Table:
        with self.store.lock:
            catalog = self._load()
            table = catalog.get(table_id)
            cancelled = table.cancel(owner, parse_instant(start))
            self.store.save(catalog)
            self.store.log_event("RESERVATION_CANCELLED", {"table_id": table_id, **cancelled.to_dict()}, self.clock())

        logger.info("Cancelled reservation on table %s for %s at %s", table_id, cancelled.owner, format_instant(cancelled.start))
        return table

    def cleanup_expired(self, now: datetime | None = None) -> int:
        effective_now = parse_instant(now if now is not None else self.clock())

        with self.store.lock:
            catalog = self._load()
            removed = catalog.sweep_all(effective_now)
            if not removed:
                return 0

            self.store.save(catalog)
            self.store.log_event(
                "RESERVATIONS_EXPIRED",
                {"removed": removed, "now": format_instant(effective_now)},
                effective_now,
            )

        logger.info("Cleanup removed %d expired reservations", removed)
        return removed

    def seed_tables(
        self,
        count: int,
        overwrite: bool = True,
        with_sample_reservations: bool = False,
        now: datetime | None = None,
    ) -> Catalog:
        if count <= 0:
            raise ValueError("count must be greater than zero")

        effective_now = parse_instant(now if now is not None else self.clock())
        if with_sample_reservations:
            generated = generate_test_catalog(count, effective_now)
        else:
            generated = Catalog([Table(id=table_id) for table_id in range(1, count + 1)])

        with self.store.lock:
            if overwrite:
                catalog = generated
            else:
                catalog = self._load(strict=True)
                for table in generated:
                    if catalog.find_by_id(table.id) is None:
                        catalog.add_table(table)

            self.store.save(catalog)
            self.store.log_event(
                "CATALOG_SEEDED",
                {
                    "tables": len(catalog),
                    "reservations": sum(len(table.reservations) for table in catalog),
                    "overwrite": overwrite,
                },
                effective_now,
            )
        return catalog


def generate_test_catalog(
    table_count: int,
    reference_now: datetime,
    reservations_per_table: int = 3,
) -> Catalog:
    if table_count <= 0:
        raise ValueError("table_count must be greater than zero")
    if reservations_per_table < 0:
        raise ValueError("reservations_per_table must not be negative")

    reference_now = parse_instant(reference_now)
    rng = random.Random(f"tables:{reference_now.date().isoformat()}:{table_count}:{reservations_per_table}")
    first_day = reference_now.replace(hour=0, minute=0, second=0, microsecond=0)

    catalog = Catalog()
    for table_id in range(1, table_count + 1):
        table = catalog.add_table(Table(id=table_id))
        attempts = 0
        while len(table.reservations) < reservations_per_table and attempts < reservations_per_table * 8:
            attempts += 1
            day = first_day + timedelta(days=rng.randrange(SAMPLE_WINDOW_DAYS))
            start_hour = rng.randint(SAMPLE_DAY_START_HOUR, SAMPLE_DAY_END_HOUR - 2)
            start = day.replace(hour=start_hour, minute=rng.choice([0, 30]))
            end = start + timedelta(minutes=rng.choice([30, 60, 90, 120]))
            candidate = TimeInterval(start, end)
            if table.find_reservation_conflict(candidate) is not None:
                continue
            table.reserve(rng.choice(SAMPLE_OWNERS), candidate)

    return catalog
