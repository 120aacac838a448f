"""Tests for the money and fee calculator."""

from decimal import Decimal

import pytest

from stayride.errors import ValidationError
from stayride.services.fees import (
    FeeSchedule,
    combined_order_total,
    ride_payout_split,
    stay_payout_split,
    stay_totals,
    to_money,
)


class TestToMoney:
    def test_rounds_half_up(self) -> None:
        assert to_money(Decimal("10.005")) == Decimal("10.01")
        assert to_money(Decimal("10.004")) == Decimal("10.00")

    def test_accepts_ints_and_strings(self) -> None:
        assert to_money(5) == Decimal("5.00")
        assert to_money("2.5") == Decimal("2.50")


class TestStayTotals:
    def test_subtotal_is_nights_times_rate(self) -> None:
        totals = stay_totals(Decimal("1000"), 3)
        assert totals.subtotal == Decimal("3000.00")
        assert totals.price_per_night == Decimal("1000.00")
        assert totals.nights == 3

    def test_zero_nights_rejected(self) -> None:
        with pytest.raises(ValidationError):
            stay_totals(Decimal("1000"), 0)

    def test_negative_rate_rejected(self) -> None:
        with pytest.raises(ValidationError):
            stay_totals(Decimal("-1"), 2)


class TestStayPayoutSplit:
    def test_gross_2300(self) -> None:
        split = stay_payout_split(Decimal("2300"), FeeSchedule())
        assert split.guest_fee == Decimal("200.00")
        assert split.host_fee == Decimal("105.00")
        assert split.vat == Decimal("45.75")
        assert split.host_payout == Decimal("2195.00")
        assert split.platform_revenue == Decimal("305.00")

    def test_components_add_back_to_gross(self) -> None:
        for gross in ("0.01", "99.99", "1234.56", "7777.77"):
            split = stay_payout_split(Decimal(gross), FeeSchedule())
            assert split.host_payout + split.host_fee == split.gross

    def test_zero_gross(self) -> None:
        split = stay_payout_split(Decimal("0"), FeeSchedule())
        assert split.host_payout == Decimal("0.00")
        assert split.vat == Decimal("0.00")

    def test_negative_gross_rejected(self) -> None:
        with pytest.raises(ValidationError):
            stay_payout_split(Decimal("-5"), FeeSchedule())

    def test_schedule_is_respected(self) -> None:
        schedule = FeeSchedule(host_fee_percent=Decimal("10"))
        split = stay_payout_split(Decimal("2300"), schedule)
        assert split.host_fee == Decimal("210.00")
        assert split.host_payout == Decimal("2090.00")


class TestRidePayoutSplit:
    def test_three_seats(self) -> None:
        split = ride_payout_split(Decimal("800"), 3, FeeSchedule())
        assert split.subtotal == Decimal("2400.00")
        assert split.service_fee == Decimal("240.00")
        assert split.vat == Decimal("36.00")
        assert split.driver_payout == Decimal("2160.00")

    def test_zero_seats_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ride_payout_split(Decimal("800"), 0, FeeSchedule())


class TestCombinedOrderTotal:
    def test_service_fee_on_stay_and_ride(self) -> None:
        total = combined_order_total(Decimal("4600"), Decimal("1600"), Decimal("0"), FeeSchedule())
        assert total.service_fee == Decimal("620.00")
        assert total.tax == Decimal("93.00")
        # Tax is contained in the fee, not added on top
        assert total.total == Decimal("6820.00")

    def test_discount_is_subtracted(self) -> None:
        total = combined_order_total(Decimal("4600"), Decimal("0"), Decimal("150"), FeeSchedule())
        assert total.total == Decimal("4910.00")
        assert total.discount == Decimal("150.00")

    def test_discount_never_makes_total_negative(self) -> None:
        total = combined_order_total(Decimal("100"), Decimal("0"), Decimal("500"), FeeSchedule())
        assert total.total == Decimal("0.00")

    def test_negative_component_rejected(self) -> None:
        with pytest.raises(ValidationError):
            combined_order_total(Decimal("100"), Decimal("-1"), Decimal("0"), FeeSchedule())
