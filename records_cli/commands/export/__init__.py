# Export commands module

from .seat_assignments import export_seat_assignments

__all__ = [
    "export_seat_assignments",
]
