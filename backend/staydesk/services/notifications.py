"""Fire-and-forget collaborators told about committed reservation changes.

Delivery (e-mail, PDF invoices) lives outside the core; the defaults here
compose the message and log it.
"""

import logging
from typing import Protocol

from staydesk.domain.enums import ReservationStatus
from staydesk.domain.records import Reservation, StatusChange

logger = logging.getLogger(__name__)

TEMPLATES = {
    ReservationStatus.CONFIRMED: "Reservation confirmed: {check_in} to {check_out}, {guests} guest(s), total {total} {currency}",
    ReservationStatus.CANCELED: "Reservation cancelled: {check_in} to {check_out}{reason}",
    ReservationStatus.CHECKED_IN: "Welcome! Checked in for {check_in} to {check_out}",
    ReservationStatus.CHECKED_OUT: "Checked out. Thank you for staying with us",
    ReservationStatus.COMPLETED: "Stay completed. We would love your feedback",
}


class Notifier(Protocol):
    async def reservation_changed(self, reservation: Reservation, change: StatusChange) -> None: ...


class InvoiceIssuer(Protocol):
    async def issue(self, reservation: Reservation) -> str | None:
        """Return an invoice reference, or None when nothing was issued."""
        ...


def compose_message(reservation: Reservation, change: StatusChange) -> str:
    template = TEMPLATES.get(change.to_status, "Reservation is now {status}")
    return template.format(
        check_in=reservation.check_in.isoformat(),
        check_out=reservation.check_out.isoformat(),
        guests=reservation.guests,
        total=reservation.total_price,
        currency=reservation.currency,
        status=reservation.status.value,
        reason=f" ({change.reason})" if change.reason else "",
    )


class LoggingNotifier:
    async def reservation_changed(self, reservation: Reservation, change: StatusChange) -> None:
        logger.info(
            "Notify client %s about reservation %s: %s",
            reservation.client_id,
            reservation.id,
            compose_message(reservation, change),
        )


class LoggingInvoiceIssuer:
    async def issue(self, reservation: Reservation) -> str | None:
        ref = f"INV-{reservation.id.hex[:8].upper()}"
        logger.info("Invoice %s issued for reservation %s (%s %s)", ref, reservation.id, reservation.total_price, reservation.currency)
        return ref
