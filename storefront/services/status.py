"""
Order Status Transitions

State machine of the order lifecycle:

    pending    -> processing, shipped, cancelled
    processing -> shipped, cancelled
    shipped    -> delivered, cancelled
    delivered, cancelled: terminal

Any order may be rolled back to pending (administrative override, clears
the progression timestamps), and re-applying the current status is allowed
so tracking details can be amended.

build_status_update() is pure: it returns the column values a transition
writes. update_status() and apply_payment_notification() apply it in a
transaction and read the order back in the same session.
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.database.models import Order, OrderStatus, PaymentStatus, utcnow
from storefront.errors import AuthorizationError, NotFoundError, ValidationError
from storefront.services.orders import CompleteOrder, get_order_by_id, get_order_by_reference
from storefront.services.payment import PaymentNotification, verify_notification_signature

logger = structlog.get_logger(__name__)


ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.SHIPPED: frozenset({
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class StatusUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_status: OrderStatus
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    cancellation_reason: Optional[str] = None


def is_forward_transition(current: str, new: OrderStatus) -> bool:
    """Transition table only, without the rollback to pending."""
    try:
        current_status = OrderStatus(current)
    except ValueError:
        return False

    return new in ALLOWED_TRANSITIONS[current_status]


def is_transition_allowed(current: str, new: OrderStatus) -> bool:
    """Transition table plus the administrative rollback to pending."""
    if current not in {status.value for status in OrderStatus}:
        return False

    if new == OrderStatus.PENDING or new.value == current:
        return True
    return is_forward_transition(current, new)


def build_status_update(current: str, update: StatusUpdate, now: datetime) -> Dict[str, Any]:
    """
    Column values written by a status change.

    | new status | shipped_at | delivered_at | cancelled_at | reason     | tracking/carrier |
    |------------|------------|--------------|--------------|------------|------------------|
    | pending    | cleared    | cleared      | cleared      | cleared    | unchanged        |
    | processing | unchanged  | unchanged    | unchanged    | unchanged  | unchanged        |
    | shipped    | now        | cleared      | cleared      | cleared    | set if provided  |
    | delivered  | unchanged  | now          | cleared      | cleared    | unchanged        |
    | cancelled  | unchanged  | unchanged    | now          | if provided| unchanged        |

    Raises:
        ValidationError: Transition not allowed from the current status
    """
    new = update.order_status
    if not is_transition_allowed(current, new):
        raise ValidationError(
            f"Cannot change order status from {current} to {new.value}",
            details={"from": current, "to": new.value},
        )

    values: Dict[str, Any] = {"order_status": new.value}

    if new == OrderStatus.PENDING:
        values.update(
            shipped_at=None,
            delivered_at=None,
            cancelled_at=None,
            cancellation_reason=None,
        )
    elif new == OrderStatus.SHIPPED:
        values.update(
            shipped_at=now,
            delivered_at=None,
            cancelled_at=None,
            cancellation_reason=None,
        )
        if update.tracking_number is not None:
            values["tracking_number"] = update.tracking_number
        if update.carrier is not None:
            values["carrier"] = update.carrier
    elif new == OrderStatus.DELIVERED:
        values.update(
            delivered_at=now,
            cancelled_at=None,
            cancellation_reason=None,
        )
    elif new == OrderStatus.CANCELLED:
        values["cancelled_at"] = now
        if update.cancellation_reason is not None:
            values["cancellation_reason"] = update.cancellation_reason

    return values


async def update_status(
    session_factory: async_sessionmaker,
    order_id: UUID,
    update: StatusUpdate,
    *,
    now: Optional[datetime] = None,
) -> CompleteOrder:
    """
    Change the status of an order and return it as written.

    Raises:
        NotFoundError: Unknown order
        ValidationError: Transition not allowed
    """
    async with session_factory() as session, session.begin():
        order = await session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")

        previous = order.order_status
        values = build_status_update(previous, update, now or utcnow())
        for column, value in values.items():
            setattr(order, column, value)
        await session.flush()

        completed = await get_order_by_id(session, order_id)

    logger.info(
        "Order status updated",
        order_id=str(order_id),
        previous=previous,
        order_status=update.order_status.value,
    )
    return completed


def map_transaction_status(
    transaction_status: str,
    fraud_status: Optional[str],
) -> Optional[tuple]:
    """(payment_status, order_status) for a provider transaction status, or None."""
    if transaction_status == "capture":
        if fraud_status == "accept":
            return PaymentStatus.PAID, OrderStatus.PROCESSING
        return None
    if transaction_status == "settlement":
        return PaymentStatus.PAID, OrderStatus.PROCESSING
    if transaction_status == "pending":
        return PaymentStatus.PENDING, OrderStatus.PENDING
    if transaction_status in ("deny", "expire", "cancel"):
        return PaymentStatus.FAILED, OrderStatus.CANCELLED
    return None


async def apply_payment_notification(
    session_factory: async_sessionmaker,
    notification: PaymentNotification,
    server_key: str,
    *,
    now: Optional[datetime] = None,
) -> CompleteOrder:
    """
    Apply a provider payment notification to its order.

    A notification that would move a paid order back (late pending, expire
    or deny) is skipped entirely. Otherwise the payment status is recorded.
    The order status only moves forward through the transition table; a
    change the table forbids (e.g. a late settlement on a delivered order,
    or a late pending on a shipped one) is logged and skipped.

    Raises:
        AuthorizationError: Signature mismatch (403)
        NotFoundError: No order carries this provider order id
    """
    if not verify_notification_signature(notification, server_key):
        logger.warning("Invalid payment notification signature", order_id=notification.order_id)
        raise AuthorizationError("Invalid signature", status_code=403)

    now = now or utcnow()

    async with session_factory() as session, session.begin():
        order = await get_order_by_reference(session, notification.order_id)
        if order is None:
            logger.warning("Payment notification for unknown order", order_id=notification.order_id)
            raise NotFoundError("Order not found")

        mapped = map_transaction_status(notification.transaction_status, notification.fraud_status)
        if mapped is not None and order.payment_status == PaymentStatus.PAID.value:
            if mapped[0] != PaymentStatus.PAID:
                logger.warning(
                    "Payment notification for a paid order skipped",
                    order_id=str(order.id),
                    transaction_status=notification.transaction_status,
                )
                mapped = None

        if mapped is None:
            logger.info(
                "Payment notification ignored",
                order_id=str(order.id),
                transaction_status=notification.transaction_status,
                fraud_status=notification.fraud_status,
            )
        else:
            payment_status, order_status = mapped
            order.payment_status = payment_status.value
            if payment_status == PaymentStatus.PAID and order.paid_at is None:
                order.paid_at = now

            if order_status.value != order.order_status:
                if is_forward_transition(order.order_status, order_status):
                    values = build_status_update(
                        order.order_status, StatusUpdate(order_status=order_status), now
                    )
                    for column, value in values.items():
                        setattr(order, column, value)
                else:
                    logger.warning(
                        "Order status change from payment notification skipped",
                        order_id=str(order.id),
                        current=order.order_status,
                        requested=order_status.value,
                    )

            logger.info(
                "Payment notification applied",
                order_id=str(order.id),
                order_number=order.order_number,
                transaction_status=notification.transaction_status,
                payment_status=order.payment_status,
                order_status=order.order_status,
            )

        await session.flush()
        completed = await get_order_by_id(session, order.id)

    return completed
