"""
Order Service

Turns a validated cart into a persisted order, for guests (a user account is
created on the fly) and for signed-in users (a saved address is used).

Each creation flow runs in one database transaction opened here:

    duplicate-email check -> user -> order number -> cart re-validation
    -> order row -> item rows -> (stock reservation) -> cart clearing

Any failure rolls everything back. Saving the guest's address to the new
address book happens after commit and never fails the checkout.

Also holds the order read queries used by the customer and admin views.
"""

import csv
import io
import secrets
import string
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.config.settings import Settings, get_settings
from storefront.database.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    User,
    UserRole,
)
from storefront.errors import CartValidationError, NotFoundError, ValidationError
from storefront.services import inventory
from storefront.services.addresses import (
    AddressFields,
    AddressSnapshot,
    create_address_from_checkout,
    get_address_by_id,
)
from storefront.services.cart import (
    CartLine,
    CartValidationErrorType,
    CartValidationIssue,
    clear_cart,
    get_cart,
    get_cart_lines,
    validate_cart,
)
from storefront.services.payment import (
    PaymentCustomer,
    PaymentGateway,
    PaymentToken,
    build_line_items,
    split_name,
)

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
ORDER_NUMBER_SUFFIX_LENGTH = 8
EXPORT_ROW_LIMIT = 10000

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# =============================================================================
# INPUT / RESULT MODELS
# =============================================================================

class _CheckoutOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    selected_courier: Optional[str] = None
    selected_service: Optional[str] = None
    shipping_cost: Optional[int] = Field(default=None, ge=0)
    customer_notes: Optional[str] = None


class GuestCheckoutInput(_CheckoutOptions):
    """Guest checkout: contact details plus the address typed at checkout"""

    session_id: str = Field(min_length=1)
    customer_email: str = Field(pattern=EMAIL_PATTERN)
    customer_name: str = Field(min_length=1)
    customer_phone: Optional[str] = None
    address: AddressFields


class AuthenticatedCheckoutInput(_CheckoutOptions):
    user_id: UUID
    address_id: UUID


class GuestOrderResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: UUID
    order_number: str
    user_id: UUID


class AuthenticatedOrderResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: UUID
    order_number: str


class OrderItemView(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: UUID
    product_id: Optional[UUID] = None
    product_name: str
    product_sku: str
    image_url: Optional[str] = None
    quantity: int
    unit_price: int
    subtotal: int


class CompleteOrder(BaseModel):
    """Order with its decoded address snapshots and its items"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    order_number: str
    user_id: UUID
    customer_email: str
    customer_name: str
    shipping_address: AddressSnapshot
    billing_address: AddressSnapshot

    subtotal: int
    tax: int
    shipping_cost: int
    discount: int
    total: int
    currency: str

    order_status: str
    payment_status: str
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_token: Optional[str] = None

    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None

    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    items: List[OrderItemView] = Field(default_factory=list)

    @classmethod
    def from_rows(cls, order: Order, items: Sequence[OrderItem]) -> "CompleteOrder":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            customer_email=order.customer_email,
            customer_name=order.customer_name,
            shipping_address=AddressSnapshot.from_json(order.shipping_address),
            billing_address=AddressSnapshot.from_json(order.billing_address),
            subtotal=order.subtotal,
            tax=order.tax,
            shipping_cost=order.shipping_cost,
            discount=order.discount,
            total=order.total,
            currency=order.currency,
            order_status=order.order_status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_reference=order.payment_reference,
            payment_token=order.payment_token,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
            customer_notes=order.customer_notes,
            admin_notes=order.admin_notes,
            paid_at=order.paid_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            cancelled_at=order.cancelled_at,
            cancellation_reason=order.cancellation_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemView.model_validate(item) for item in items],
        )


class OrderFilters(BaseModel):
    """Admin listing filters; "all" or empty means no filter"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    search: Optional[str] = None
    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class ExportRow(BaseModel):
    """One order item joined with its order, for the CSV export"""

    order_number: str
    created_at: datetime
    customer_name: str
    customer_email: str
    shipping_address: str
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    quantity: Optional[int] = None
    unit_price: Optional[int] = None
    item_subtotal: Optional[int] = None
    subtotal: int
    shipping_cost: int
    total: int
    order_status: str
    payment_status: str
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None


# =============================================================================
# CREATION HELPERS
# =============================================================================

def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-YYYYMMDD-XXXXXXXX with a random uppercase alphanumeric suffix."""
    now = now or datetime.now()
    suffix = "".join(
        secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(ORDER_NUMBER_SUFFIX_LENGTH)
    )
    return f"ORD-{now:%Y%m%d}-{suffix}"


async def _unique_order_number(session: AsyncSession, attempts: int = 5) -> str:
    for _ in range(attempts):
        order_number = generate_order_number()
        result = await session.execute(
            select(Order.id).where(Order.order_number == order_number)
        )
        if result.scalar_one_or_none() is None:
            return order_number
    raise RuntimeError("Could not generate a unique order number")


def format_carrier(courier: Optional[str], service: Optional[str]) -> Optional[str]:
    if courier and service:
        return f"{courier} - {service}"
    return courier or None


async def _load_checkout_lines(session: AsyncSession, cart_id: UUID) -> List[CartLine]:
    lines = await get_cart_lines(session, cart_id)
    if not lines:
        raise ValidationError("Cart is empty")

    validation = await validate_cart(session, lines)
    if not validation.valid:
        messages = ", ".join(issue.message for issue in validation.errors)
        raise CartValidationError(f"Cart validation failed: {messages}", validation.errors)

    return lines


async def _insert_order(
    session: AsyncSession,
    *,
    settings: Settings,
    order_number: str,
    user_id: UUID,
    customer_email: str,
    customer_name: str,
    snapshot: AddressSnapshot,
    lines: Sequence[CartLine],
    options: _CheckoutOptions,
) -> Order:
    subtotal = sum(line.line_total for line in lines)
    shipping_cost = (
        options.shipping_cost
        if options.shipping_cost is not None
        else settings.checkout.default_shipping_cost
    )
    tax = 0
    discount = 0

    order = Order(
        order_number=order_number,
        user_id=user_id,
        customer_email=customer_email,
        customer_name=customer_name,
        shipping_address=snapshot.to_json(),
        billing_address=snapshot.to_json(),
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping_cost,
        discount=discount,
        total=subtotal + shipping_cost + tax - discount,
        currency=settings.checkout.currency,
        order_status=OrderStatus.PENDING.value,
        payment_status=settings.checkout.initial_payment_status,
        carrier=format_carrier(options.selected_courier, options.selected_service),
        customer_notes=options.customer_notes,
    )
    session.add(order)
    await session.flush()
    return order


async def _insert_order_items(
    session: AsyncSession,
    order: Order,
    lines: Sequence[CartLine],
) -> List[OrderItem]:
    items = [
        OrderItem(
            order_id=order.id,
            product_id=line.product_id,
            product_name=line.name,
            product_sku=line.sku,
            image_url=line.thumbnail_url,
            quantity=line.quantity,
            unit_price=line.price,
            subtotal=line.line_total,
        )
        for line in lines
    ]
    session.add_all(items)
    await session.flush()
    return items


async def _reserve_stock(session: AsyncSession, lines: Sequence[CartLine]) -> None:
    issues = []
    for line in lines:
        if not await inventory.reserve_stock(session, line.product_id, line.quantity):
            issues.append(CartValidationIssue(
                type=CartValidationErrorType.OUT_OF_STOCK,
                message=f"Not enough stock left of {line.name}",
                product_id=line.product_id,
            ))

    if issues:
        raise CartValidationError("Cart validation failed: not enough stock", issues)


def _is_email_conflict(error: IntegrityError) -> bool:
    return "email" in str(error.orig).lower()


async def _save_checkout_address(
    session_factory: async_sessionmaker,
    user_id: UUID,
    fields: AddressFields,
) -> None:
    try:
        async with session_factory() as session, session.begin():
            await create_address_from_checkout(session, user_id, fields)
    except Exception as e:
        logger.error(
            "Failed to save checkout address",
            user_id=str(user_id),
            error=str(e),
        )


# =============================================================================
# CREATION FLOWS
# =============================================================================

async def create_guest_order(
    session_factory: async_sessionmaker,
    payload: GuestCheckoutInput,
    *,
    settings: Optional[Settings] = None,
) -> GuestOrderResult:
    """
    Create an order for a guest and register them as a user.

    Args:
        session_factory: Factory the transaction is opened on
        payload: Contact details, address, shipping choice and session id
        settings: Checkout settings (defaults to the process settings)

    Returns:
        GuestOrderResult with the new order and user ids

    Raises:
        ValidationError: Email already registered, no cart, empty cart
        CartValidationError: Cart no longer matches inventory
    """
    settings = settings or get_settings()
    email = payload.customer_email.strip().lower()

    try:
        async with session_factory() as session, session.begin():
            existing = await session.execute(
                select(User.id).where(func.lower(User.email) == email)
            )
            if existing.scalar_one_or_none() is not None:
                raise ValidationError("Email already registered")

            user = User(
                email=email,
                name=payload.customer_name,
                phone=payload.customer_phone,
                password_hash=pwd_context.hash(secrets.token_urlsafe(32)),
                role=UserRole.USER.value,
                is_confirmed=True,
            )
            session.add(user)
            await session.flush()

            cart = await get_cart(session, session_id=payload.session_id)
            if cart is None:
                raise ValidationError("Cart not found for this session")

            order_number = await _unique_order_number(session)
            lines = await _load_checkout_lines(session, cart.id)

            order = await _insert_order(
                session,
                settings=settings,
                order_number=order_number,
                user_id=user.id,
                customer_email=email,
                customer_name=payload.customer_name,
                snapshot=AddressSnapshot.from_fields(payload.address, phone=payload.customer_phone),
                lines=lines,
                options=payload,
            )
            await _insert_order_items(session, order, lines)

            if settings.checkout.reserve_stock:
                await _reserve_stock(session, lines)

            await clear_cart(session, cart.id)

            result = GuestOrderResult(
                order_id=order.id,
                order_number=order.order_number,
                user_id=user.id,
            )
    except IntegrityError as e:
        if _is_email_conflict(e):
            raise ValidationError("Email already registered") from e
        raise

    logger.info(
        "Guest order created",
        order_id=str(result.order_id),
        order_number=result.order_number,
        user_id=str(result.user_id),
        total=order.total,
    )

    await _save_checkout_address(session_factory, result.user_id, payload.address)
    return result


async def create_authenticated_order(
    session_factory: async_sessionmaker,
    payload: AuthenticatedCheckoutInput,
    *,
    settings: Optional[Settings] = None,
) -> AuthenticatedOrderResult:
    """
    Create an order for a signed-in user shipping to one of their saved
    addresses.

    Raises:
        ValidationError: Unknown user, address not owned by the user,
            no cart, empty cart
        CartValidationError: Cart no longer matches inventory
    """
    settings = settings or get_settings()

    async with session_factory() as session, session.begin():
        user = await session.get(User, payload.user_id)
        if user is None or user.is_deleted or not user.is_active:
            raise ValidationError("User not found")

        address = await get_address_by_id(session, payload.address_id, payload.user_id)
        if address is None:
            raise ValidationError("Address not found")

        cart = await get_cart(session, user_id=payload.user_id)
        if cart is None:
            raise ValidationError("Cart is empty")

        order_number = await _unique_order_number(session)
        lines = await _load_checkout_lines(session, cart.id)

        order = await _insert_order(
            session,
            settings=settings,
            order_number=order_number,
            user_id=user.id,
            customer_email=user.email,
            customer_name=user.name,
            snapshot=AddressSnapshot.from_address(address, phone=user.phone),
            lines=lines,
            options=payload,
        )
        await _insert_order_items(session, order, lines)

        if settings.checkout.reserve_stock:
            await _reserve_stock(session, lines)

        await clear_cart(session, cart.id)

        result = AuthenticatedOrderResult(order_id=order.id, order_number=order.order_number)

    logger.info(
        "Authenticated order created",
        order_id=str(result.order_id),
        order_number=result.order_number,
        user_id=str(payload.user_id),
        total=order.total,
    )
    return result


async def attach_payment(
    session_factory: async_sessionmaker,
    order_id: UUID,
    token: PaymentToken,
) -> None:
    """Store the provider's order id and token on an order."""
    async with session_factory() as session, session.begin():
        result = await session.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(
                payment_reference=token.external_order_id,
                payment_token=token.token,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Order not found")

    logger.info(
        "Payment attached to order",
        order_id=str(order_id),
        external_order_id=token.external_order_id,
    )


async def request_payment(
    session_factory: async_sessionmaker,
    gateway: PaymentGateway,
    order_id: UUID,
    *,
    retry: bool = False,
) -> PaymentToken:
    """
    Issue a payment token for a committed order and store it on the order.

    Args:
        retry: Refuse orders that are already paid or cancelled

    Raises:
        NotFoundError: Unknown order
        ValidationError: Retry of a paid or cancelled order
        PaymentError: Gateway refused or unreachable
    """
    async with session_factory() as session:
        order = await get_order_by_id(session, order_id)

    if order is None:
        raise NotFoundError("Order not found")

    if retry:
        if order.payment_status == PaymentStatus.PAID.value:
            raise ValidationError("Order is already paid")
        if order.order_status == OrderStatus.CANCELLED.value:
            raise ValidationError("Order is cancelled")

    first_name, last_name = split_name(order.customer_name)
    token = await gateway.create_payment_token(
        order_id=str(order.id),
        order_number=order.order_number,
        gross_amount=order.total,
        customer=PaymentCustomer(
            first_name=first_name,
            last_name=last_name,
            email=order.customer_email,
            phone=order.shipping_address.phone,
        ),
        line_items=build_line_items(order.items, order.shipping_cost),
    )

    await attach_payment(session_factory, order.id, token)
    return token


# =============================================================================
# QUERIES
# =============================================================================

async def _load_items(session: AsyncSession, order_ids: Sequence[UUID]) -> Dict[UUID, List[OrderItem]]:
    grouped: Dict[UUID, List[OrderItem]] = {order_id: [] for order_id in order_ids}
    if not order_ids:
        return grouped

    result = await session.execute(
        select(OrderItem)
        .where(OrderItem.order_id.in_(order_ids))
        .order_by(OrderItem.created_at, OrderItem.product_sku)
    )
    for item in result.scalars().all():
        grouped[item.order_id].append(item)
    return grouped


async def _complete(session: AsyncSession, orders: Sequence[Order]) -> List[CompleteOrder]:
    items = await _load_items(session, [order.id for order in orders])
    return [CompleteOrder.from_rows(order, items[order.id]) for order in orders]


async def get_order_by_id(session: AsyncSession, order_id: UUID) -> Optional[CompleteOrder]:
    result = await session.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        return None

    completed = await _complete(session, [order])
    return completed[0]


async def get_order_by_reference(session: AsyncSession, payment_reference: str) -> Optional[Order]:
    """Order by the provider-side order id stored by attach_payment()."""
    result = await session.execute(
        select(Order).where(Order.payment_reference == payment_reference)
    )
    return result.scalar_one_or_none()


def _filter_conditions(filters: OrderFilters) -> list:
    conditions = []

    if filters.search and filters.search.strip():
        term = f"%{filters.search.strip()}%"
        conditions.append(
            or_(Order.order_number.ilike(term), Order.customer_name.ilike(term))
        )

    if filters.order_status and filters.order_status != "all":
        conditions.append(Order.order_status == filters.order_status)

    if filters.payment_status and filters.payment_status != "all":
        conditions.append(Order.payment_status == filters.payment_status)

    return conditions


async def get_orders(session: AsyncSession, filters: OrderFilters) -> List[CompleteOrder]:
    """Filtered page of orders, newest first."""
    result = await session.execute(
        select(Order)
        .where(*_filter_conditions(filters))
        .order_by(Order.created_at.desc())
        .limit(filters.page_size)
        .offset((filters.page - 1) * filters.page_size)
    )
    return await _complete(session, list(result.scalars().all()))


async def count_orders(session: AsyncSession, filters: OrderFilters) -> int:
    result = await session.execute(
        select(func.count(Order.id)).where(*_filter_conditions(filters))
    )
    return result.scalar() or 0


async def get_user_orders(session: AsyncSession, user_id: UUID) -> List[CompleteOrder]:
    result = await session.execute(
        select(Order)
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
    )
    return await _complete(session, list(result.scalars().all()))


async def get_orders_for_export(session: AsyncSession, filters: OrderFilters) -> List[ExportRow]:
    """
    One row per order item (orders without items get a single row), with
    the shipping address flattened to one line. Pagination is ignored.
    """
    result = await session.execute(
        select(Order, OrderItem)
        .outerjoin(OrderItem, OrderItem.order_id == Order.id)
        .where(*_filter_conditions(filters))
        .order_by(Order.created_at.desc(), OrderItem.created_at)
        .limit(EXPORT_ROW_LIMIT)
    )

    rows = []
    for order, item in result.all():
        rows.append(ExportRow(
            order_number=order.order_number,
            created_at=order.created_at,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            shipping_address=AddressSnapshot.from_json(order.shipping_address).one_line(),
            product_name=item.product_name if item else None,
            product_sku=item.product_sku if item else None,
            quantity=item.quantity if item else None,
            unit_price=item.unit_price if item else None,
            item_subtotal=item.subtotal if item else None,
            subtotal=order.subtotal,
            shipping_cost=order.shipping_cost,
            total=order.total,
            order_status=order.order_status,
            payment_status=order.payment_status,
            carrier=order.carrier,
            tracking_number=order.tracking_number,
            customer_notes=order.customer_notes,
            admin_notes=order.admin_notes,
        ))
    return rows


EXPORT_HEADERS = [
    "Order Number",
    "Date",
    "Customer Name",
    "Email",
    "Shipping Address",
    "Product",
    "SKU",
    "Qty",
    "Unit Price",
    "Item Subtotal",
    "Order Subtotal",
    "Shipping",
    "Total",
    "Order Status",
    "Payment Status",
    "Carrier",
    "Tracking Number",
    "Customer Notes",
    "Admin Notes",
]


def export_orders_csv(rows: Iterable[ExportRow]) -> str:
    """Render export rows as CSV text with a header line."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)

    for row in rows:
        writer.writerow([
            row.order_number,
            row.created_at.strftime("%Y-%m-%d %H:%M"),
            row.customer_name,
            row.customer_email,
            row.shipping_address,
            row.product_name or "",
            row.product_sku or "",
            "" if row.quantity is None else row.quantity,
            "" if row.unit_price is None else row.unit_price,
            "" if row.item_subtotal is None else row.item_subtotal,
            row.subtotal,
            row.shipping_cost,
            row.total,
            row.order_status,
            row.payment_status,
            row.carrier or "",
            row.tracking_number or "",
            row.customer_notes or "",
            row.admin_notes or "",
        ])

    return buffer.getvalue()


async def update_admin_notes(
    session_factory: async_sessionmaker,
    order_id: UUID,
    notes: Optional[str],
) -> CompleteOrder:
    async with session_factory() as session, session.begin():
        order = await session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")

        order.admin_notes = notes
        await session.flush()

        completed = await get_order_by_id(session, order_id)

    logger.info("Admin notes updated", order_id=str(order_id))
    return completed
