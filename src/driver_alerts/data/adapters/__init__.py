from .base import SheetAdapter, FlatSheetAdapter
from .time_attendance import TimeAttendanceAdapter
from .stop_events import StopEventsAdapter
from .vehicle_movements import VehicleMovementsAdapter
from .generic import GenericTableAdapter

__all__ = [
    "SheetAdapter",
    "FlatSheetAdapter",
    "TimeAttendanceAdapter",
    "StopEventsAdapter",
    "VehicleMovementsAdapter",
    "GenericTableAdapter",
]
