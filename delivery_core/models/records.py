# =============================================================================
# delivery_core/models/records.py
# Stores, deliveries and the per-day aggregate derived from them
# =============================================================================
"""
Record Model.

Pure data definitions plus the aggregation that turns a flat list of
deliveries into per-day summaries. Nothing in this module performs I/O.

Two serialized shapes exist for each record:
- to_dict()/from_dict(): camelCase, used by the local cache and exports
- to_row()/from_row():   snake_case columns of the remote tables
"""

from __future__ import annotations
import math
import uuid
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
import logging

from delivery_core.errors import DataValidationError

logger = logging.getLogger(__name__)

# Payment amounts are compared to the cent
AMOUNT_TOLERANCE = 0.005


class DeliveryStatus(str, Enum):
    """Lifecycle of a single order."""
    PENDING_PICKUP = "pending pickup"
    PICKED_UP = "picked up"
    DELIVERED = "delivered"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", " ")
            for status in cls:
                if status.value == normalized:
                    return status
        return None

    @property
    def is_terminal(self) -> bool:
        return self is DeliveryStatus.DELIVERED


class ViewMode(Enum):
    """Trailing windows offered by the dashboard."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


WINDOW_DAYS = {
    ViewMode.DAILY: 1,
    ViewMode.WEEKLY: 7,
    ViewMode.MONTHLY: 30,
}


def new_record_id() -> str:
    """Globally unique record id."""
    return str(uuid.uuid4())


def _amount(value: Any, name: str) -> float:
    if value is None or value == "":
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise DataValidationError(
            f"{name} must be a number",
            field=name,
            actual=repr(value),
        ) from e
    if math.isnan(amount) or amount < 0:
        raise DataValidationError(
            f"{name} must be a non-negative amount",
            field=name,
            actual=repr(value),
        )
    return amount


def _optional_str(value: Any) -> Optional[str]:
    return value if value else None


def _check_patch(record: Any, patch: Dict[str, Any]) -> Dict[str, Any]:
    """Reject unknown fields and id changes; return the applicable changes."""
    known = {f.name for f in fields(record)}
    unknown = sorted(set(patch) - known)
    if unknown:
        raise DataValidationError(
            f"Unknown fields: {', '.join(unknown)}",
            field=unknown[0],
        )
    if "id" in patch and patch["id"] != record.id:
        raise DataValidationError("Record id cannot be changed", field="id")
    return {k: v for k, v in patch.items() if k != "id"}


# =============================================================================
# PAYMENT
# =============================================================================

@dataclass(frozen=True)
class PaymentStatus:
    """Payment breakdown for one delivery. Validated on construction."""
    total: float = 0.0
    paid: float = 0.0
    pending: float = 0.0
    overdue: float = 0.0

    def __post_init__(self):
        for name in ("total", "paid", "pending", "overdue"):
            object.__setattr__(self, name, _amount(getattr(self, name), f"payment.{name}"))

        if not math.isclose(self.total, self.paid + self.pending, abs_tol=AMOUNT_TOLERANCE):
            raise DataValidationError(
                "Payment total must equal paid + pending",
                field="payment_status",
                expected=f"{self.paid + self.pending:.2f}",
                actual=f"{self.total:.2f}",
            )

    @classmethod
    def for_order(cls, order_price: float) -> PaymentStatus:
        """Unpaid order: the whole price is pending."""
        return cls(total=order_price, paid=0.0, pending=order_price, overdue=0.0)

    def to_dict(self) -> Dict[str, float]:
        return {
            "total": self.total,
            "paid": self.paid,
            "pending": self.pending,
            "overdue": self.overdue,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> PaymentStatus:
        data = data or {}
        return cls(
            total=data.get("total", 0.0),
            paid=data.get("paid", 0.0),
            pending=data.get("pending", 0.0),
            overdue=data.get("overdue", 0.0),
        )

    @classmethod
    def from_stored(cls, total: Any, paid: Any, pending: Any, overdue: Any) -> PaymentStatus:
        """
        Decode a breakdown that was already persisted.

        Older rows were saved without validation, so an inconsistent
        breakdown is logged and kept as given instead of rejected.
        """
        try:
            return cls(total=total, paid=paid, pending=pending, overdue=overdue)
        except DataValidationError as e:
            logger.warning(f"Keeping stored payment breakdown as given: {e}")

        payment = object.__new__(cls)
        for name, value in (("total", total), ("paid", paid), ("pending", pending), ("overdue", overdue)):
            try:
                amount = float(value or 0.0)
            except (TypeError, ValueError):
                amount = 0.0
            object.__setattr__(payment, name, 0.0 if math.isnan(amount) else amount)
        return payment


# =============================================================================
# STORE
# =============================================================================

@dataclass(frozen=True)
class Store:
    """A shop that hands orders over for delivery."""
    id: str
    name: str
    address: Optional[str] = None
    contact: Optional[str] = None
    price_per_order: Optional[float] = None

    def __post_init__(self):
        if not self.id:
            raise DataValidationError("Store id is required", field="id")
        if not self.name or not self.name.strip():
            raise DataValidationError("Store name is required", field="name")
        if self.price_per_order is not None:
            object.__setattr__(
                self, "price_per_order", _amount(self.price_per_order, "price_per_order")
            )

    def with_updates(self, patch: Dict[str, Any]) -> Store:
        return replace(self, **_check_patch(self, patch))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "contact": self.contact,
            "pricePerOrder": self.price_per_order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Store:
        return cls(
            id=str(data["id"]),
            name=data["name"],
            address=_optional_str(data.get("address")),
            contact=_optional_str(data.get("contact")),
            price_per_order=data.get("pricePerOrder"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "contact": self.contact,
            "price_per_order": self.price_per_order,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Store:
        return cls(
            id=str(row["id"]),
            name=row["name"],
            address=_optional_str(row.get("address")),
            contact=_optional_str(row.get("contact")),
            price_per_order=row.get("price_per_order"),
        )


# =============================================================================
# DELIVERY
# =============================================================================

@dataclass(frozen=True)
class Delivery:
    """
    One order for one customer on one logical day.

    store_name is a snapshot taken at creation so the record stays readable
    after its store is deleted. The counters (total_deliveries, delivered,
    pending, bills) are the per-record tallies the daily summary adds up.
    """
    id: str
    store_id: str
    store_name: str
    date: str
    customer_name: str = ""
    phone_number: str = ""
    address: str = ""
    item_details: str = ""
    order_number: str = ""
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING_PICKUP
    order_price: float = 0.0
    payment_status: PaymentStatus = field(default_factory=PaymentStatus)
    total_deliveries: int = 1
    delivered: int = 0
    pending: int = 1
    bills: int = 1
    notes: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise DataValidationError("Delivery id is required", field="id")
        if not self.date:
            raise DataValidationError("Delivery date is required", field="date")
        try:
            status = DeliveryStatus(self.delivery_status)
        except ValueError as e:
            raise DataValidationError(
                "Unknown delivery status",
                field="delivery_status",
                expected="pending pickup | picked up | delivered",
                actual=repr(self.delivery_status),
            ) from e
        object.__setattr__(self, "delivery_status", status)
        object.__setattr__(self, "order_price", _amount(self.order_price, "order_price"))
        if isinstance(self.payment_status, dict):
            object.__setattr__(self, "payment_status", PaymentStatus.from_dict(self.payment_status))

    @property
    def is_delivered(self) -> bool:
        return self.delivery_status.is_terminal

    def with_updates(self, patch: Dict[str, Any]) -> Delivery:
        """
        Apply a partial update and return the new validated record.

        A status change re-derives the delivered/pending counters.
        """
        changes = _check_patch(self, patch)
        if "payment_status" in changes and isinstance(changes["payment_status"], dict):
            changes["payment_status"] = PaymentStatus.from_dict(
                {**self.payment_status.to_dict(), **changes["payment_status"]}
            )
        updated = replace(self, **changes)
        if "delivery_status" in changes:
            status = updated.delivery_status
            counters = {
                "delivered": 1 if status is DeliveryStatus.DELIVERED else 0,
                "pending": 1 if status is DeliveryStatus.PENDING_PICKUP else 0,
            }
            updated = replace(updated, **{k: v for k, v in counters.items() if k not in changes})

        return updated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "storeId": self.store_id,
            "storeName": self.store_name,
            "date": self.date,
            "customerName": self.customer_name,
            "phoneNumber": self.phone_number,
            "address": self.address,
            "itemDetails": self.item_details,
            "orderNumber": self.order_number,
            "deliveryStatus": self.delivery_status.value,
            "orderPrice": self.order_price,
            "totalDeliveries": self.total_deliveries,
            "delivered": self.delivered,
            "pending": self.pending,
            "bills": self.bills,
            "paymentStatus": self.payment_status.to_dict(),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Delivery:
        payment = data.get("paymentStatus") or {}
        return cls(
            id=str(data["id"]),
            store_id=str(data.get("storeId", "")),
            store_name=data.get("storeName", ""),
            date=data["date"],
            customer_name=data.get("customerName") or "",
            phone_number=data.get("phoneNumber") or "",
            address=data.get("address") or "",
            item_details=data.get("itemDetails") or "",
            order_number=data.get("orderNumber") or "",
            delivery_status=data.get("deliveryStatus") or DeliveryStatus.PENDING_PICKUP,
            order_price=data.get("orderPrice", 0.0),
            payment_status=PaymentStatus.from_stored(
                total=payment.get("total"),
                paid=payment.get("paid"),
                pending=payment.get("pending"),
                overdue=payment.get("overdue"),
            ),
            total_deliveries=int(data.get("totalDeliveries", 1) or 0),
            delivered=int(data.get("delivered", 0) or 0),
            pending=int(data.get("pending", 0) or 0),
            bills=int(data.get("bills", 0) or 0),
            notes=_optional_str(data.get("notes")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "store_name": self.store_name,
            "date": self.date,
            "customer_name": self.customer_name,
            "phone_number": self.phone_number,
            "address": self.address,
            "item_details": self.item_details,
            "order_number": self.order_number,
            "delivery_status": self.delivery_status.value,
            "order_price": self.order_price,
            "total_deliveries": self.total_deliveries,
            "delivered": self.delivered,
            "pending": self.pending,
            "bills": self.bills,
            "payment_total": self.payment_status.total,
            "payment_paid": self.payment_status.paid,
            "payment_pending": self.payment_status.pending,
            "payment_overdue": self.payment_status.overdue,
            "notes": self.notes,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Delivery:
        return cls(
            id=str(row["id"]),
            store_id=str(row.get("store_id") or ""),
            store_name=row.get("store_name") or "",
            date=row["date"],
            customer_name=row.get("customer_name") or "",
            phone_number=row.get("phone_number") or "",
            address=row.get("address") or "",
            item_details=row.get("item_details") or "",
            order_number=row.get("order_number") or "",
            delivery_status=row.get("delivery_status") or DeliveryStatus.PENDING_PICKUP,
            order_price=row.get("order_price") or 0.0,
            payment_status=PaymentStatus.from_stored(
                total=row.get("payment_total"),
                paid=row.get("payment_paid"),
                pending=row.get("payment_pending"),
                overdue=row.get("payment_overdue"),
            ),
            total_deliveries=int(row.get("total_deliveries") or 0),
            delivered=int(row.get("delivered") or 0),
            pending=int(row.get("pending") or 0),
            bills=int(row.get("bills") or 0),
            notes=_optional_str(row.get("notes")),
        )


# =============================================================================
# FACTORIES
# =============================================================================

def new_store(
    name: str,
    address: Optional[str] = None,
    contact: Optional[str] = None,
    price_per_order: Optional[float] = None,
) -> Store:
    """Create a store with a fresh id."""
    return Store(
        id=new_record_id(),
        name=name,
        address=address,
        contact=contact,
        price_per_order=price_per_order,
    )


def new_delivery(
    store: Store,
    date: str,
    customer_name: str = "",
    phone_number: str = "",
    address: str = "",
    item_details: str = "",
    order_number: str = "",
    delivery_status: Any = DeliveryStatus.PENDING_PICKUP,
    order_price: Optional[float] = None,
    payment_status: Optional[PaymentStatus] = None,
    notes: Optional[str] = None,
) -> Delivery:
    """
    Create a delivery for a store with a fresh id.

    The order price defaults to the store's price per order, and an unpaid
    payment breakdown is derived from it when none is given.
    """
    status = DeliveryStatus(delivery_status)
    price = order_price if order_price is not None else (store.price_per_order or 0.0)
    return Delivery(
        id=new_record_id(),
        store_id=store.id,
        store_name=store.name,
        date=date,
        customer_name=customer_name,
        phone_number=phone_number,
        address=address,
        item_details=item_details,
        order_number=order_number,
        delivery_status=status,
        order_price=price,
        payment_status=payment_status or PaymentStatus.for_order(price),
        total_deliveries=1,
        delivered=1 if status is DeliveryStatus.DELIVERED else 0,
        pending=1 if status is DeliveryStatus.PENDING_PICKUP else 0,
        bills=1,
        notes=notes,
    )


# =============================================================================
# AGGREGATION
# =============================================================================

@dataclass(frozen=True)
class DailySummary:
    total_stores: int = 0
    total_deliveries: int = 0
    total_delivered: int = 0
    total_pending: int = 0
    total_bills: int = 0
    total_revenue: float = 0.0
    total_paid: float = 0.0
    total_outstanding: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalStores": self.total_stores,
            "totalDeliveries": self.total_deliveries,
            "totalDelivered": self.total_delivered,
            "totalPending": self.total_pending,
            "totalBills": self.total_bills,
            "totalRevenue": self.total_revenue,
            "totalPaid": self.total_paid,
            "totalOutstanding": self.total_outstanding,
        }


def compute_summary(deliveries: Iterable[Delivery]) -> DailySummary:
    """Summarize a set of deliveries (normally one logical day)."""
    deliveries = list(deliveries)
    return DailySummary(
        total_stores=len({d.store_id for d in deliveries}),
        total_deliveries=sum(d.total_deliveries for d in deliveries),
        total_delivered=sum(d.delivered for d in deliveries),
        total_pending=sum(d.pending for d in deliveries),
        total_bills=sum(d.bills for d in deliveries),
        total_revenue=sum(d.payment_status.total for d in deliveries),
        total_paid=sum(d.payment_status.paid for d in deliveries),
        total_outstanding=sum(
            d.payment_status.pending + d.payment_status.overdue for d in deliveries
        ),
    )


@dataclass(frozen=True)
class DailyAggregate:
    """All deliveries of one logical day. The summary is always recomputed."""
    date: str
    deliveries: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "deliveries", tuple(self.deliveries))

    @property
    def summary(self) -> DailySummary:
        return compute_summary(self.deliveries)

    def ids(self) -> List[str]:
        return [d.id for d in self.deliveries]

    def find(self, record_id: str) -> Optional[Delivery]:
        for delivery in self.deliveries:
            if delivery.id == record_id:
                return delivery
        return None

    def to_dict(self, include_summary: bool = False) -> Dict[str, Any]:
        data = {
            "date": self.date,
            "deliveries": [d.to_dict() for d in self.deliveries],
        }
        if include_summary:
            data["summary"] = self.summary.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DailyAggregate:
        return cls(
            date=data["date"],
            deliveries=[Delivery.from_dict(d) for d in data.get("deliveries", [])],
        )


def build_daily_data(deliveries: Iterable[Delivery]) -> List[DailyAggregate]:
    """Group deliveries by logical day, newest day first."""
    by_date: Dict[str, List[Delivery]] = {}
    for delivery in deliveries:
        by_date.setdefault(delivery.date, []).append(delivery)

    return [
        DailyAggregate(date=date, deliveries=by_date[date])
        for date in sorted(by_date, reverse=True)
    ]


def slice_window(
    daily_data: List[DailyAggregate],
    mode: ViewMode,
    today: str,
) -> List[DailyAggregate]:
    """
    Trailing-days window over a newest-first aggregate list.

    The daily view always returns today's aggregate, empty if nothing was
    recorded yet.
    """
    mode = ViewMode(mode)
    if mode is ViewMode.DAILY:
        for day in daily_data:
            if day.date == today:
                return [day]
        return [DailyAggregate(date=today)]

    ordered = sorted(daily_data, key=lambda d: d.date, reverse=True)
    return ordered[:WINDOW_DAYS[mode]]
