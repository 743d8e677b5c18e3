# =============================================================================
# tests/unit/test_records.py
# Unit Tests for the Record Model
# =============================================================================

import pytest

from delivery_core.errors import DataValidationError
from delivery_core.models import (
    DailyAggregate,
    Delivery,
    DeliveryStatus,
    PaymentStatus,
    Store,
    ViewMode,
    build_daily_data,
    compute_summary,
    new_delivery,
    new_record_id,
    new_store,
    slice_window,
)


class TestPaymentStatus:
    """Test payment breakdown validation"""

    def test_consistent_amounts_accepted(self):
        """total == paid + pending is valid"""
        payment = PaymentStatus(total=100, paid=40, pending=60, overdue=10)

        assert payment.total == 100.0
        assert payment.overdue == 10.0

    def test_inconsistent_total_rejected(self):
        """total != paid + pending raises"""
        with pytest.raises(DataValidationError) as exc_info:
            PaymentStatus(total=100, paid=40, pending=50)

        assert exc_info.value.details["field"] == "payment_status"

    def test_cent_rounding_tolerated(self):
        """Float noise below half a cent is accepted"""
        PaymentStatus(total=0.3, paid=0.1, pending=0.2)

    def test_negative_amount_rejected(self):
        with pytest.raises(DataValidationError):
            PaymentStatus(total=-5, paid=0, pending=-5)

    def test_non_numeric_amount_rejected(self):
        with pytest.raises(DataValidationError):
            PaymentStatus(total="abc", paid=0, pending=0)

    def test_for_order_is_unpaid(self):
        payment = PaymentStatus.for_order(75)

        assert payment.to_dict() == {"total": 75.0, "paid": 0.0, "pending": 75.0, "overdue": 0.0}


class TestDeliveryStatus:
    """Test status parsing"""

    def test_underscore_spelling_accepted(self):
        assert DeliveryStatus("pending_pickup") is DeliveryStatus.PENDING_PICKUP
        assert DeliveryStatus("PICKED_UP") is DeliveryStatus.PICKED_UP

    def test_only_delivered_is_terminal(self):
        assert DeliveryStatus.DELIVERED.is_terminal
        assert not DeliveryStatus.PICKED_UP.is_terminal
        assert not DeliveryStatus.PENDING_PICKUP.is_terminal

    def test_unknown_status_rejected_on_delivery(self, delivery_factory):
        with pytest.raises(DataValidationError):
            delivery_factory("a").with_updates({"delivery_status": "lost"})


class TestFactories:
    """Test record creation"""

    def test_new_record_ids_are_unique(self):
        ids = {new_record_id() for _ in range(1000)}

        assert len(ids) == 1000

    def test_new_store_requires_name(self):
        with pytest.raises(DataValidationError):
            new_store("   ")

    def test_new_delivery_defaults_price_from_store(self, sample_store):
        """Order price falls back to the store's price per order"""
        delivery = new_delivery(sample_store, date="2024-01-10", customer_name="A. Rao")

        assert delivery.order_price == 50.0
        assert delivery.payment_status == PaymentStatus.for_order(50.0)
        assert delivery.store_name == "Corner Bakery"
        assert delivery.total_deliveries == 1
        assert delivery.bills == 1

    def test_new_delivery_counters_follow_status(self, sample_store):
        pending = new_delivery(sample_store, date="2024-01-10")
        picked = new_delivery(sample_store, date="2024-01-10", delivery_status="picked up")
        done = new_delivery(sample_store, date="2024-01-10", delivery_status="delivered")

        assert (pending.delivered, pending.pending) == (0, 1)
        assert (picked.delivered, picked.pending) == (0, 0)
        assert (done.delivered, done.pending) == (1, 0)


class TestDeliveryUpdates:
    """Test partial updates"""

    def test_status_change_rederives_counters(self, delivery_factory):
        delivery = delivery_factory("a")

        updated = delivery.with_updates({"delivery_status": "delivered"})

        assert updated.delivery_status is DeliveryStatus.DELIVERED
        assert updated.delivered == 1
        assert updated.pending == 0
        assert delivery.delivered == 0  # input record untouched

    def test_payment_patch_merges_with_existing(self, delivery_factory):
        delivery = delivery_factory("a", price=80)

        updated = delivery.with_updates({"payment_status": {"paid": 80, "pending": 0}})

        assert updated.payment_status.total == 80.0
        assert updated.payment_status.paid == 80.0

    def test_invalid_payment_patch_rejected(self, delivery_factory):
        with pytest.raises(DataValidationError):
            delivery_factory("a", price=80).with_updates({"payment_status": {"paid": 10}})

    def test_id_cannot_change(self, delivery_factory):
        with pytest.raises(DataValidationError):
            delivery_factory("a").with_updates({"id": "b"})

    def test_unknown_field_rejected(self, delivery_factory):
        with pytest.raises(DataValidationError) as exc_info:
            delivery_factory("a").with_updates({"colour": "red"})

        assert exc_info.value.details["field"] == "colour"


class TestSerialization:
    """Test the cache and remote shapes"""

    def test_dict_uses_camel_case(self, delivery_factory):
        data = delivery_factory("a").to_dict()

        assert data["storeName"] == "Corner Bakery"
        assert data["deliveryStatus"] == "pending pickup"
        assert data["paymentStatus"]["pending"] == 50.0

    def test_row_flattens_payment(self, delivery_factory):
        row = delivery_factory("a", status="delivered").to_row()

        assert row["payment_total"] == 50.0
        assert row["delivery_status"] == "delivered"
        assert row["delivered"] == 1

    def test_row_with_nulls_uses_defaults(self):
        """Rows from a partially migrated table still load"""
        delivery = Delivery.from_row({
            "id": 7, "store_id": "s", "store_name": "S", "date": "2024-01-10",
            "customer_name": None, "order_price": None, "delivery_status": None,
        })

        assert delivery.id == "7"
        assert delivery.customer_name == ""
        assert delivery.order_price == 0.0
        assert delivery.delivery_status is DeliveryStatus.PENDING_PICKUP

    def test_stored_inconsistent_payment_is_kept(self):
        """Rows saved before validation load with their amounts as given"""
        delivery = Delivery.from_row({
            "id": "legacy", "store_id": "s", "store_name": "S", "date": "2024-01-10",
            "payment_total": 100, "payment_paid": 0, "payment_pending": 50,
        })
        cached = Delivery.from_dict(delivery.to_dict())

        assert delivery.payment_status.to_dict() == {
            "total": 100.0, "paid": 0.0, "pending": 50.0, "overdue": 0.0,
        }
        assert cached.payment_status == delivery.payment_status

    def test_patching_stored_inconsistent_payment_validates(self):
        delivery = Delivery.from_row({
            "id": "legacy", "store_id": "s", "store_name": "S", "date": "2024-01-10",
            "payment_total": 100, "payment_paid": 0, "payment_pending": 50,
        })

        delivered = delivery.with_updates({"delivery_status": "delivered"})
        with pytest.raises(DataValidationError):
            delivery.with_updates({"payment_status": {"paid": 10}})

        assert delivered.delivered == 1
        assert delivered.payment_status.total == 100.0

    def test_store_from_row_drops_empty_strings(self):
        store = Store.from_row({"id": "s1", "name": "Deli", "address": "", "contact": None})

        assert store.address is None
        assert store.price_per_order is None


class TestAggregation:
    """Test daily summaries and windows"""

    def test_summary_counts_distinct_stores(self, delivery_factory):
        deliveries = [
            delivery_factory("a", store_id="s1", status="delivered", price=10),
            delivery_factory("b", store_id="s1", price=20),
            delivery_factory("c", store_id="s2", status="picked up", price=30),
        ]

        summary = compute_summary(deliveries)

        assert summary.total_stores == 2
        assert summary.total_deliveries == 3
        assert summary.total_delivered == 1
        assert summary.total_pending == 1
        assert summary.total_bills == 3
        assert summary.total_revenue == 60.0
        assert summary.total_outstanding == 60.0

    def test_empty_summary_is_zero(self):
        assert compute_summary([]).total_revenue == 0.0
        assert DailyAggregate(date="2024-01-10").summary.total_stores == 0

    def test_build_daily_data_newest_first(self, delivery_factory):
        deliveries = [
            delivery_factory("a", date="2024-01-08"),
            delivery_factory("b", date="2024-01-10"),
            delivery_factory("c", date="2024-01-08"),
        ]

        days = build_daily_data(deliveries)

        assert [d.date for d in days] == ["2024-01-10", "2024-01-08"]
        assert days[1].ids() == ["a", "c"]

    def test_daily_window_returns_today_even_when_empty(self, delivery_factory):
        days = build_daily_data([delivery_factory("a", date="2024-01-09")])

        window = slice_window(days, ViewMode.DAILY, "2024-01-10")

        assert len(window) == 1
        assert window[0].date == "2024-01-10"
        assert window[0].deliveries == ()

    def test_weekly_and_monthly_windows_count_days(self, delivery_factory):
        deliveries = [
            delivery_factory(str(day), date=f"2024-01-{day:02d}") for day in range(1, 32)
        ]
        days = build_daily_data(deliveries)

        weekly = slice_window(days, ViewMode.WEEKLY, "2024-01-31")
        monthly = slice_window(days, "monthly", "2024-01-31")

        assert len(weekly) == 7
        assert weekly[0].date == "2024-01-31"
        assert len(monthly) == 30
        assert monthly[-1].date == "2024-01-02"

    def test_aggregate_round_trip_recomputes_summary(self, delivery_factory):
        day = DailyAggregate(date="2024-01-10", deliveries=[delivery_factory("a")])

        data = day.to_dict(include_summary=True)
        restored = DailyAggregate.from_dict(data)

        assert data["summary"]["totalDeliveries"] == 1
        assert restored == day
