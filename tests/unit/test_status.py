"""
Unit Tests - Order Status Transitions and Payment Notifications
"""
import uuid
from datetime import datetime, timezone

import pytest

from storefront.database.models import OrderStatus, PaymentStatus
from storefront.errors import AuthorizationError, NotFoundError, ValidationError
from storefront.services.addresses import AddressFields
from storefront.services.orders import (
    GuestCheckoutInput,
    attach_payment,
    create_guest_order,
    get_order_by_id,
)
from storefront.services.payment import (
    PaymentNotification,
    PaymentToken,
    compute_notification_signature,
)
from storefront.services.status import (
    StatusUpdate,
    apply_payment_notification,
    build_status_update,
    is_forward_transition,
    is_transition_allowed,
    map_transaction_status,
    update_status,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
SERVER_KEY = "test-server-key"


@pytest.fixture
async def order(session_factory, test_settings, catalog):
    """Committed pending order with an attached payment reference"""
    group = await catalog.group("Backpack")
    product = await catalog.product(group, "BP-1", price=300000, stock=3)
    await catalog.cart_item(product, 1, session_id="status-1")

    result = await create_guest_order(
        session_factory,
        GuestCheckoutInput(
            session_id="status-1",
            customer_email="status@example.com",
            customer_name="Rina",
            address=AddressFields(
                address_label="Home",
                street_address="Jl. Asia Afrika 8",
                village="Braga",
                district="Sumur Bandung",
                city="Bandung",
                province="Jawa Barat",
                postal_code="40111",
            ),
        ),
        settings=test_settings,
    )
    await attach_payment(
        session_factory,
        result.order_id,
        PaymentToken(token="snap-token", redirect_url="https://pay/x", external_order_id="EXT-1"),
    )
    return result


def _notification(transaction_status, fraud_status=None, order_id="EXT-1", key=SERVER_KEY):
    status_code, gross_amount = "200", "315000.00"
    return PaymentNotification(
        order_id=order_id,
        status_code=status_code,
        gross_amount=gross_amount,
        signature_key=compute_notification_signature(order_id, status_code, gross_amount, key),
        transaction_status=transaction_status,
        fraud_status=fraud_status,
    )


class TestTransitionTable:
    """Tests for is_transition_allowed"""

    @pytest.mark.parametrize(
        "current,new",
        [
            ("pending", OrderStatus.PROCESSING),
            ("pending", OrderStatus.SHIPPED),
            ("pending", OrderStatus.CANCELLED),
            ("processing", OrderStatus.SHIPPED),
            ("shipped", OrderStatus.DELIVERED),
            ("shipped", OrderStatus.CANCELLED),
            ("delivered", OrderStatus.PENDING),
            ("cancelled", OrderStatus.PENDING),
            ("shipped", OrderStatus.SHIPPED),
        ],
    )
    def test_allowed(self, current, new):
        assert is_transition_allowed(current, new) is True

    @pytest.mark.parametrize(
        "current,new",
        [
            ("delivered", OrderStatus.CANCELLED),
            ("delivered", OrderStatus.SHIPPED),
            ("cancelled", OrderStatus.PROCESSING),
            ("shipped", OrderStatus.PROCESSING),
            ("pending", OrderStatus.DELIVERED),
        ],
    )
    def test_forbidden(self, current, new):
        assert is_transition_allowed(current, new) is False

    def test_unknown_current_status(self):
        assert is_transition_allowed("lost", OrderStatus.SHIPPED) is False

    @pytest.mark.parametrize(
        "current,new,expected",
        [
            ("pending", OrderStatus.PROCESSING, True),
            ("processing", OrderStatus.CANCELLED, True),
            ("shipped", OrderStatus.PENDING, False),
            ("processing", OrderStatus.PENDING, False),
            ("shipped", OrderStatus.SHIPPED, False),
            ("lost", OrderStatus.PROCESSING, False),
        ],
    )
    def test_forward_transition_excludes_rollback(self, current, new, expected):
        assert is_forward_transition(current, new) is expected


class TestBuildStatusUpdate:
    """Tests for the side effects of each status"""

    def test_shipped_sets_timestamp_and_tracking(self):
        values = build_status_update(
            "processing",
            StatusUpdate(order_status=OrderStatus.SHIPPED, tracking_number="JNE123", carrier="JNE"),
            NOW,
        )

        assert values["order_status"] == "shipped"
        assert values["shipped_at"] == NOW
        assert values["tracking_number"] == "JNE123"
        assert values["carrier"] == "JNE"
        assert values["cancelled_at"] is None

    def test_shipped_without_tracking_keeps_existing(self):
        values = build_status_update("pending", StatusUpdate(order_status=OrderStatus.SHIPPED), NOW)

        assert "tracking_number" not in values
        assert "carrier" not in values

    def test_delivered_sets_delivered_at_only(self):
        values = build_status_update("shipped", StatusUpdate(order_status=OrderStatus.DELIVERED), NOW)

        assert values["delivered_at"] == NOW
        assert "shipped_at" not in values

    def test_cancelled_keeps_shipped_at(self):
        values = build_status_update(
            "shipped",
            StatusUpdate(order_status=OrderStatus.CANCELLED, cancellation_reason="Lost parcel"),
            NOW,
        )

        assert values["cancelled_at"] == NOW
        assert values["cancellation_reason"] == "Lost parcel"
        assert "shipped_at" not in values

    def test_pending_clears_progress(self):
        values = build_status_update("delivered", StatusUpdate(order_status=OrderStatus.PENDING), NOW)

        assert values == {
            "order_status": "pending",
            "shipped_at": None,
            "delivered_at": None,
            "cancelled_at": None,
            "cancellation_reason": None,
        }

    def test_processing_writes_only_status(self):
        values = build_status_update("pending", StatusUpdate(order_status=OrderStatus.PROCESSING), NOW)

        assert values == {"order_status": "processing"}

    def test_forbidden_transition_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            build_status_update("delivered", StatusUpdate(order_status=OrderStatus.CANCELLED), NOW)

        assert exc_info.value.details == {"from": "delivered", "to": "cancelled"}

    def test_status_update_accepts_camel_case(self):
        update = StatusUpdate.model_validate({"orderStatus": "shipped", "trackingNumber": "X1"})

        assert update.order_status == OrderStatus.SHIPPED
        assert update.tracking_number == "X1"


class TestUpdateStatus:
    """Tests for update_status"""

    async def test_ship_then_deliver(self, session_factory, order):
        shipped = await update_status(
            session_factory,
            order.order_id,
            StatusUpdate(order_status=OrderStatus.SHIPPED, tracking_number="JNE123"),
        )
        delivered = await update_status(
            session_factory, order.order_id, StatusUpdate(order_status=OrderStatus.DELIVERED)
        )

        assert shipped.order_status == "shipped"
        assert shipped.tracking_number == "JNE123"
        assert shipped.shipped_at is not None
        assert delivered.order_status == "delivered"
        assert delivered.delivered_at is not None
        assert delivered.shipped_at is not None
        assert delivered.tracking_number == "JNE123"

    async def test_cancel_shipped_order(self, session_factory, order):
        await update_status(
            session_factory, order.order_id, StatusUpdate(order_status=OrderStatus.SHIPPED)
        )

        cancelled = await update_status(
            session_factory,
            order.order_id,
            StatusUpdate(order_status=OrderStatus.CANCELLED, cancellation_reason="Returned"),
        )

        assert cancelled.order_status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert cancelled.shipped_at is not None
        assert cancelled.cancellation_reason == "Returned"

    async def test_rollback_to_pending_clears_timestamps(self, session_factory, order):
        await update_status(
            session_factory,
            order.order_id,
            StatusUpdate(order_status=OrderStatus.CANCELLED, cancellation_reason="Mistake"),
        )

        pending = await update_status(
            session_factory, order.order_id, StatusUpdate(order_status=OrderStatus.PENDING)
        )

        assert pending.order_status == "pending"
        assert pending.cancelled_at is None
        assert pending.cancellation_reason is None

    async def test_forbidden_transition_changes_nothing(self, session_factory, order):
        await update_status(
            session_factory, order.order_id, StatusUpdate(order_status=OrderStatus.CANCELLED)
        )

        with pytest.raises(ValidationError):
            await update_status(
                session_factory, order.order_id, StatusUpdate(order_status=OrderStatus.SHIPPED)
            )

        async with session_factory() as session:
            current = await get_order_by_id(session, order.order_id)
        assert current.order_status == "cancelled"
        assert current.shipped_at is None

    async def test_unknown_order(self, session_factory):
        with pytest.raises(NotFoundError):
            await update_status(
                session_factory, uuid.uuid4(), StatusUpdate(order_status=OrderStatus.SHIPPED)
            )


class TestMapTransactionStatus:
    """Tests for map_transaction_status"""

    @pytest.mark.parametrize(
        "transaction_status,fraud_status,expected",
        [
            ("capture", "accept", (PaymentStatus.PAID, OrderStatus.PROCESSING)),
            ("settlement", None, (PaymentStatus.PAID, OrderStatus.PROCESSING)),
            ("pending", None, (PaymentStatus.PENDING, OrderStatus.PENDING)),
            ("deny", None, (PaymentStatus.FAILED, OrderStatus.CANCELLED)),
            ("expire", None, (PaymentStatus.FAILED, OrderStatus.CANCELLED)),
            ("cancel", None, (PaymentStatus.FAILED, OrderStatus.CANCELLED)),
            ("capture", "challenge", None),
            ("refund", None, None),
        ],
    )
    def test_mapping(self, transaction_status, fraud_status, expected):
        assert map_transaction_status(transaction_status, fraud_status) == expected


class TestPaymentNotification:
    """Tests for apply_payment_notification"""

    async def test_settlement_marks_paid_and_processing(self, session_factory, order):
        updated = await apply_payment_notification(
            session_factory, _notification("settlement"), SERVER_KEY
        )

        assert updated.id == order.order_id
        assert updated.payment_status == "paid"
        assert updated.order_status == "processing"
        assert updated.paid_at is not None

    async def test_expire_cancels_order(self, session_factory, order):
        updated = await apply_payment_notification(
            session_factory, _notification("expire"), SERVER_KEY
        )

        assert updated.payment_status == "failed"
        assert updated.order_status == "cancelled"
        assert updated.cancelled_at is not None

    async def test_challenged_capture_changes_nothing(self, session_factory, order):
        updated = await apply_payment_notification(
            session_factory, _notification("capture", fraud_status="challenge"), SERVER_KEY
        )

        assert updated.payment_status == "unpaid"
        assert updated.order_status == "pending"

    async def test_forbidden_status_change_is_skipped(self, session_factory, order):
        """Test a late settlement records payment but keeps a delivered order delivered"""
        await update_status(
            session_factory, order.order_id, StatusUpdate(order_status=OrderStatus.SHIPPED)
        )
        await update_status(
            session_factory, order.order_id, StatusUpdate(order_status=OrderStatus.DELIVERED)
        )

        updated = await apply_payment_notification(
            session_factory, _notification("settlement"), SERVER_KEY
        )

        assert updated.payment_status == "paid"
        assert updated.order_status == "delivered"

    async def test_late_pending_does_not_roll_back_shipped_order(self, session_factory, order):
        await apply_payment_notification(session_factory, _notification("settlement"), SERVER_KEY)
        await update_status(
            session_factory,
            order.order_id,
            StatusUpdate(order_status=OrderStatus.SHIPPED, tracking_number="JNE123"),
        )

        updated = await apply_payment_notification(
            session_factory, _notification("pending"), SERVER_KEY
        )

        assert updated.order_status == "shipped"
        assert updated.payment_status == "paid"
        assert updated.shipped_at is not None
        assert updated.tracking_number == "JNE123"
        assert updated.paid_at is not None

    async def test_late_expire_does_not_unpay_order(self, session_factory, order):
        await apply_payment_notification(session_factory, _notification("settlement"), SERVER_KEY)

        updated = await apply_payment_notification(
            session_factory, _notification("expire"), SERVER_KEY
        )

        assert updated.payment_status == "paid"
        assert updated.order_status == "processing"
        assert updated.cancelled_at is None

    async def test_bad_signature_is_rejected(self, session_factory, order):
        with pytest.raises(AuthorizationError) as exc_info:
            await apply_payment_notification(
                session_factory, _notification("settlement", key="wrong-key"), SERVER_KEY
            )

        assert exc_info.value.status_code == 403

    async def test_unknown_reference(self, session_factory, order):
        with pytest.raises(NotFoundError):
            await apply_payment_notification(
                session_factory, _notification("settlement", order_id="EXT-404"), SERVER_KEY
            )
