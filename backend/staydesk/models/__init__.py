"""SQLAlchemy models for StayDesk.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_schema`` runs. If you add a new model, import it in this file.
"""

from staydesk.models.client import Client
from staydesk.models.reservation import Reservation, ReservationStatusChange, RoomHold
from staydesk.models.room import Room

__all__ = [
    "Client",
    "Reservation",
    "ReservationStatusChange",
    "Room",
    "RoomHold",
]
