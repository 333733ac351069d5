from ticketing.models.resource import Resource, ResourceKind
from ticketing.models.inventory_unit import InventoryUnit, UnitStatus
from ticketing.models.booking import Booking, BookingStatus

__all__ = [
    "Resource", "ResourceKind",
    "InventoryUnit", "UnitStatus",
    "Booking", "BookingStatus",
]
