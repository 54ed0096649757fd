from __future__ import annotations

import argparse
import logging
import traceback

from smartdesk import TableReservationRepository
from smartdesk.settings import load_settings


def main(argv: list[str] | None = None) -> int:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Create the table catalog used by the SmartDesk server.")
    parser.add_argument("--tables", type=int, default=10, help="number of tables to create (ids 1..N)")
    parser.add_argument("--data-file", default=str(settings.data_file))
    parser.add_argument("--sample-reservations", action="store_true", help="add generated reservations")
    parser.add_argument("--keep-existing", action="store_true", help="only add tables that are missing")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    repo = TableReservationRepository(args.data_file)
    catalog = repo.seed_tables(
        args.tables,
        overwrite=not args.keep_existing,
        with_sample_reservations=args.sample_reservations,
    )

    print(f"[OK] Tables: {len(catalog)}")
    print(f"[OK] Reservations: {sum(len(table.reservations) for table in catalog)}")
    print(f"[OK] Catalog file: {repo.store.catalog_file.resolve()}")
    print(f"[OK] Event Log YAML: {repo.store.log_file.resolve()}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Seeding failed.")
        traceback.print_exc()
        raise SystemExit(1)
