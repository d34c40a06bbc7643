"""Pricing calculator: nights, subtotal, tax and total for a stay."""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from staydesk.domain.records import CartItem, Room
from staydesk.domain.results import Ok, Result, invalid_input

CENT = Decimal("0.01")
_SECONDS_PER_DAY = 24 * 3600


def nights_between(check_in: date | datetime, check_out: date | datetime) -> int:
    """Billable nights: partial days round up and a same-day stay counts as one."""
    if isinstance(check_in, datetime) and isinstance(check_out, datetime):
        days = math.ceil((check_out - check_in).total_seconds() / _SECONDS_PER_DAY)
    else:
        days = (check_out - check_in).days
    return max(1, days)


@dataclass(frozen=True)
class PriceQuote:
    nightly_rate: Decimal
    nights: int
    tax_rate: Decimal
    subtotal: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class CartQuote:
    items: tuple[CartItem, ...]
    subtotal: Decimal
    tax: Decimal
    total: Decimal


class PricingCalculator:
    """Pure and deterministic: the same inputs always give the same quote.

    ``tax`` is the only rounded figure (half-up to the cent); ``subtotal`` is
    exact for two-decimal rates and ``total`` is their exact sum.
    """

    def __init__(self, default_tax_rate: Decimal = Decimal("0.10")) -> None:
        self.default_tax_rate = default_tax_rate

    def price(
        self,
        room: Room,
        check_in: date,
        check_out: date,
        tax_rate: Decimal | None = None,
    ) -> Result[PriceQuote]:
        rate = self.default_tax_rate if tax_rate is None else Decimal(str(tax_rate))
        if rate < 0 or rate > 1:
            return invalid_input("Tax rate must be between 0 and 1.", tax_rate=str(rate))
        if check_out < check_in:
            return invalid_input("check_out must not be before check_in.")

        nights = nights_between(check_in, check_out)
        subtotal = room.price_per_night * nights
        tax = (subtotal * rate).quantize(CENT, rounding=ROUND_HALF_UP)
        return Ok(
            PriceQuote(
                nightly_rate=room.price_per_night,
                nights=nights,
                tax_rate=rate,
                subtotal=subtotal,
                tax=tax,
                total=subtotal + tax,
            )
        )

    def cart_item(
        self,
        room: Room,
        check_in: date,
        check_out: date,
        adults: int,
        children: int,
        tax_rate: Decimal | None = None,
    ) -> Result[CartItem]:
        quoted = self.price(room, check_in, check_out, tax_rate)
        if not isinstance(quoted, Ok):
            return quoted
        quote = quoted.value
        return Ok(
            CartItem(
                room_id=room.id,
                room_number=room.room_number,
                check_in=check_in,
                check_out=check_out,
                adults=adults,
                children=children,
                nightly_rate=quote.nightly_rate,
                nights=quote.nights,
                subtotal=quote.subtotal,
                tax=quote.tax,
                total=quote.total,
            )
        )

    @staticmethod
    def price_cart(items: Iterable[CartItem]) -> CartQuote:
        """Each room is priced on its own; the cart just adds them up."""
        items = tuple(items)
        zero = Decimal("0")
        return CartQuote(
            items=items,
            subtotal=sum((i.subtotal for i in items), zero),
            tax=sum((i.tax for i in items), zero),
            total=sum((i.total for i in items), zero),
        )
