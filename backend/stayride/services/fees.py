"""Money and fee calculator — pure functions, no I/O.

All amounts are ``Decimal`` and every derived component is rounded to the
minor currency unit with ``ROUND_HALF_UP`` before it is used further, so
the components of a split always add back up to the input exactly
(``host_payout + host_fee == gross``).

Fee percentages come from a ``FeeSchedule`` value object that callers pass
in explicitly; ``FeeSchedule.from_settings`` builds the production one.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from stayride.config import Settings
from stayride.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def to_money(value: Decimal | int | str) -> Decimal:
    """Round a value to the minor currency unit (half-up)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return to_money(amount * percent / _HUNDRED)


@dataclass(frozen=True)
class FeeSchedule:
    """Platform fee percentages."""

    guest_fee_percent: Decimal = Decimal("10")
    guest_fee_gross_percent: Decimal = Decimal("115")  # gross = 115% of the fee base
    host_fee_percent: Decimal = Decimal("5")
    vat_percent: Decimal = Decimal("15")
    ride_service_fee_percent: Decimal = Decimal("10")
    combined_service_fee_percent: Decimal = Decimal("10")

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeeSchedule":
        return cls(
            guest_fee_percent=settings.guest_fee_percent,
            guest_fee_gross_percent=settings.guest_fee_gross_percent,
            host_fee_percent=settings.host_fee_percent,
            vat_percent=settings.vat_percent,
            ride_service_fee_percent=settings.ride_service_fee_percent,
            combined_service_fee_percent=settings.combined_service_fee_percent,
        )


@dataclass(frozen=True)
class StayTotals:
    nights: int
    price_per_night: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class StayPayoutSplit:
    gross: Decimal
    guest_fee: Decimal
    host_fee: Decimal
    vat: Decimal
    host_payout: Decimal

    @property
    def platform_revenue(self) -> Decimal:
        return self.guest_fee + self.host_fee


@dataclass(frozen=True)
class RidePayoutSplit:
    seats: int
    fare_per_seat: Decimal
    subtotal: Decimal
    service_fee: Decimal
    vat: Decimal
    driver_payout: Decimal


@dataclass(frozen=True)
class CombinedOrderTotal:
    stay_subtotal: Decimal
    trip_fare: Decimal
    service_fee: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


def stay_totals(price_per_night: Decimal, nights: int) -> StayTotals:
    """Subtotal for ``nights`` at ``price_per_night``."""
    if nights <= 0:
        raise ValidationError("A stay must be at least one night")
    if price_per_night < ZERO:
        raise ValidationError("Price per night cannot be negative")
    price = to_money(price_per_night)
    return StayTotals(nights=nights, price_per_night=price, subtotal=to_money(price * nights))


def stay_payout_split(gross: Decimal, schedule: FeeSchedule) -> StayPayoutSplit:
    """Split a guest's gross payment into platform fees, VAT and host payout.

    The guest fee is embedded in the gross (``gross * 10 / 115`` with the
    default schedule); the host fee is charged on what remains; VAT is
    levied on the platform's revenue (both fees). The host receives the
    gross minus the host fee.

    Example with the default schedule::

        >>> split = stay_payout_split(Decimal("2300"), FeeSchedule())
        >>> split.guest_fee, split.host_fee, split.vat, split.host_payout
        (Decimal('200.00'), Decimal('105.00'), Decimal('45.75'), Decimal('2195.00'))
    """
    if gross < ZERO:
        raise ValidationError("Gross amount cannot be negative")
    gross = to_money(gross)
    guest_fee = to_money(gross * schedule.guest_fee_percent / schedule.guest_fee_gross_percent)
    host_fee = _percent_of(gross - guest_fee, schedule.host_fee_percent)
    vat = _percent_of(guest_fee + host_fee, schedule.vat_percent)
    return StayPayoutSplit(
        gross=gross,
        guest_fee=guest_fee,
        host_fee=host_fee,
        vat=vat,
        host_payout=gross - host_fee,
    )


def ride_payout_split(fare_per_seat: Decimal, seats: int, schedule: FeeSchedule) -> RidePayoutSplit:
    """Split the fare for ``seats`` seats into service fee, VAT and driver payout."""
    if seats <= 0:
        raise ValidationError("At least one seat is required")
    if fare_per_seat < ZERO:
        raise ValidationError("Fare per seat cannot be negative")
    fare = to_money(fare_per_seat)
    subtotal = to_money(fare * seats)
    service_fee = _percent_of(subtotal, schedule.ride_service_fee_percent)
    vat = _percent_of(service_fee, schedule.vat_percent)
    return RidePayoutSplit(
        seats=seats,
        fare_per_seat=fare,
        subtotal=subtotal,
        service_fee=service_fee,
        vat=vat,
        driver_payout=subtotal - service_fee,
    )


def combined_order_total(
    stay_subtotal: Decimal,
    trip_fare: Decimal,
    discount: Decimal,
    schedule: FeeSchedule,
) -> CombinedOrderTotal:
    """Price a stay+ride order.

    The service fee is charged on stay and ride together; the tax is the VAT
    share contained in that fee and is reported, not added on top. A
    discount larger than the order never produces a negative total.
    """
    if min(stay_subtotal, trip_fare, discount) < ZERO:
        raise ValidationError("Order components cannot be negative")
    stay_subtotal = to_money(stay_subtotal)
    trip_fare = to_money(trip_fare)
    discount = to_money(discount)
    service_fee = _percent_of(stay_subtotal + trip_fare, schedule.combined_service_fee_percent)
    tax = _percent_of(service_fee, schedule.vat_percent)
    total = max(stay_subtotal + trip_fare + service_fee - discount, ZERO)
    return CombinedOrderTotal(
        stay_subtotal=stay_subtotal,
        trip_fare=trip_fare,
        service_fee=service_fee,
        tax=tax,
        discount=discount,
        total=to_money(total),
    )
