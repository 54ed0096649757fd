from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from smartdesk import TableReservationError, TableReservationRepository
from smartdesk.settings import load_settings

mcp = FastMCP(
    "SmartDesk Table MCP Server",
    instructions="Expose table reservations from the smartdesk project.",
    json_response=True,
)

SETTINGS = load_settings()
REPOSITORY = TableReservationRepository(SETTINGS.data_file)


def _error(error: TableReservationError) -> dict[str, Any]:
    return {"ok": False, "error": type(error).__name__, "message": str(error)}


@mcp.resource("reservation://tables")
async def list_table_ids() -> list[int]:
    """List the ids of all reservable tables."""
    return [table.id for table in REPOSITORY.list_tables()]


@mcp.tool()
def list_tables() -> list[dict[str, Any]]:
    """Return every table with its reservations."""
    return [table.to_dict() for table in REPOSITORY.list_tables()]


@mcp.tool()
def reserve_table(table_id: int, username: str, start_iso: str, end_iso: str) -> dict[str, Any]:
    """Reserve a table for the half-open interval [start_iso, end_iso)."""
    try:
        table = REPOSITORY.reserve_table(table_id, username, start_iso, end_iso)
    except TableReservationError as error:
        return _error(error)
    return {"ok": True, "table": table.to_dict()}


@mcp.tool()
def release_table(table_id: int) -> dict[str, Any]:
    """Remove every reservation from a table."""
    try:
        table = REPOSITORY.release_table(table_id)
    except TableReservationError as error:
        return _error(error)
    return {"ok": True, "table": table.to_dict()}


@mcp.tool()
def cleanup_expired() -> dict[str, Any]:
    """Remove reservations that have already ended."""
    try:
        removed = REPOSITORY.cleanup_expired()
    except TableReservationError as error:
        return _error(error)
    return {"ok": True, "removed": removed}


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
