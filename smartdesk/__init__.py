from .booking import (
	Catalog,
	InvalidInterval,
	Reservation,
	ReservationConflict,
	ReservationNotFound,
	Table,
	TableNotFound,
	TableReservationError,
	TimeInterval,
	overlaps,
)
from .yaml_store import (
	StoreUnavailable,
	CatalogCorrupt,
	TableCatalogYamlStore,
	TableReservationRepository,
	generate_test_catalog,
)

__all__ = [
	"Catalog",
	"InvalidInterval",
	"Reservation",
	"ReservationConflict",
	"ReservationNotFound",
	"Table",
	"TableNotFound",
	"TableReservationError",
	"TimeInterval",
	"overlaps",
	"StoreUnavailable",
	"CatalogCorrupt",
	"TableCatalogYamlStore",
	"TableReservationRepository",
	"generate_test_catalog",
]
