from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .booking import (
    InvalidInterval,
    ReservationConflict,
    ReservationNotFound,
    Table,
    TableNotFound,
    TableReservationError,
)
from .settings import load_settings
from .yaml_store import StoreUnavailable, TableReservationRepository

logger = logging.getLogger(__name__)

ERROR_STATUS: list[tuple[type[TableReservationError], str, int]] = [
    (InvalidInterval, "invalid_interval", 400),
    (TableNotFound, "not_found", 404),
    (ReservationNotFound, "not_found", 404),
    (ReservationConflict, "conflict", 409),
    (StoreUnavailable, "store_unavailable", 503),
]


def create_app(
    data_file: str | Path = Path("data") / "tables.yaml",
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    app = Flask(__name__)
    clock: Callable[[], datetime] = now_provider or (lambda: datetime.now(timezone.utc))
    repository = TableReservationRepository(data_file, clock=clock)
    app.config["REPOSITORY"] = repository

    def _serialize_table(table: Table) -> dict[str, Any]:
        return {
            **table.to_dict(),
            "occupied": table.current_reservation(clock()) is not None,
        }

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        return response

    @app.before_request
    def answer_preflight() -> Any:
        if request.method == "OPTIONS":
            return app.response_class(status=200)
        return None

    @app.errorhandler(TableReservationError)
    def handle_reservation_error(error: TableReservationError) -> Any:
        for error_type, kind, status in ERROR_STATUS:
            if isinstance(error, error_type):
                if status >= 500:
                    logger.error("Request failed: %s", error)
                # the conflicting reservation is not disclosed to clients
                message = "Table is already reserved in that interval." if kind == "conflict" else str(error)
                return jsonify({"ok": False, "error": kind, "message": message}), status
        logger.error("Unhandled reservation error: %r", error)
        return jsonify({"ok": False, "error": "internal", "message": str(error)}), 500

    @app.get("/api/tables")
    def list_tables() -> Any:
        return jsonify([_serialize_table(table) for table in repository.list_tables()])

    @app.get("/api/tables/<int:table_id>")
    def get_table(table_id: int) -> Any:
        return jsonify(_serialize_table(repository.get_table(table_id)))

    @app.post("/api/tables/<int:table_id>/reserve")
    def reserve_table(table_id: int) -> Any:
        payload = _json_object()
        username = str(payload.get("username") or "").strip()
        start = str(payload.get("start") or "").strip()
        end = str(payload.get("end") or "").strip()
        if not username or not start or not end:
            raise InvalidInterval("username, start and end are required.")

        table = repository.reserve_table(table_id, username, start, end)
        return jsonify(_serialize_table(table)), 201

    @app.post("/api/tables/<int:table_id>/release")
    def release_table(table_id: int) -> Any:
        return jsonify(_serialize_table(repository.release_table(table_id)))

    @app.post("/api/tables/<int:table_id>/cancel")
    def cancel_reservation(table_id: int) -> Any:
        payload = _json_object()
        username = str(payload.get("username") or "").strip()
        start = str(payload.get("start") or "").strip()
        if not username or not start:
            raise InvalidInterval("username and start are required.")

        return jsonify(_serialize_table(repository.cancel_reservation(table_id, username, start)))

    @app.post("/api/cleanup")
    def cleanup_expired() -> Any:
        removed = repository.cleanup_expired(clock())
        return jsonify({"ok": True, "removed": removed})

    @app.get("/api/users/<username>/reservations")
    def list_user_reservations(username: str) -> Any:
        owned = repository.list_owner_reservations(username)
        owned.sort(key=lambda pair: (pair[1].start, pair[0].id))
        return jsonify(
            {
                "ok": True,
                "reservations": [
                    {"table_id": table.id, **reservation.to_dict()}
                    for table, reservation in owned
                ],
            }
        )

    return app


def _json_object() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidInterval("Request body must be a JSON object.")
    return payload


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings.data_file)
    logger.info("Server listening on http://%s:%s", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port, debug=False)


if __name__ == "__main__":
    main()
