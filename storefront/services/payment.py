"""
Payment Gateway Client

Issues hosted-payment tokens for orders and checks the signature of the
provider's asynchronous notifications.

The gateway is only called after the order transaction has committed; the
returned external order id and token are written back onto the order by
orders.attach_payment().
"""

import hashlib
import hmac
import time
from typing import Iterable, List, Optional, Protocol, Tuple

import httpx
import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storefront.config.settings import PaymentSettings
from storefront.errors import PaymentError

logger = structlog.get_logger(__name__)

# Provider limit on item_details[].name
MAX_ITEM_NAME_LENGTH = 50


class PaymentToken(BaseModel):
    """Hosted-payment session issued for one order"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    token: str
    redirect_url: str
    external_order_id: str


class PaymentCustomer(BaseModel):
    first_name: str
    last_name: str = ""
    email: str
    phone: Optional[str] = None


class PaymentLineItem(BaseModel):
    id: str
    name: str
    price: int
    quantity: int


class PaymentNotification(BaseModel):
    """Transaction status callback posted by the provider"""
    model_config = ConfigDict(extra="ignore")

    order_id: str
    status_code: str
    gross_amount: str
    signature_key: str
    transaction_status: str
    fraud_status: Optional[str] = None
    payment_type: Optional[str] = None
    transaction_id: Optional[str] = None


class PaymentGateway(Protocol):
    async def create_payment_token(
        self,
        order_id: str,
        order_number: str,
        gross_amount: int,
        customer: PaymentCustomer,
        line_items: List[PaymentLineItem],
    ) -> PaymentToken:
        ...


def build_external_order_id(order_number: str, now_ms: Optional[int] = None) -> str:
    """
    Provider-side order id. The provider rejects reused ids, so every token
    request, including retries, gets a fresh millisecond suffix.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{order_number}-{now_ms}"


def split_name(full_name: str) -> Tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def build_line_items(items: Iterable, shipping_cost: int) -> List[PaymentLineItem]:
    """
    Line items for a token request. Shipping is sent as its own line so the
    item total matches the order total.

    Args:
        items: Order items (anything with product_id, product_sku,
            product_name, unit_price and quantity)
        shipping_cost: Shipping cost of the order
    """
    line_items = [
        PaymentLineItem(
            id=str(item.product_id or item.product_sku),
            name=item.product_name[:MAX_ITEM_NAME_LENGTH],
            price=item.unit_price,
            quantity=item.quantity,
        )
        for item in items
    ]

    if shipping_cost > 0:
        line_items.append(
            PaymentLineItem(id="shipping", name="Shipping", price=shipping_cost, quantity=1)
        )

    return line_items


def compute_notification_signature(
    order_id: str,
    status_code: str,
    gross_amount: str,
    server_key: str,
) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_notification_signature(notification: PaymentNotification, server_key: str) -> bool:
    """SHA-512 of order_id + status_code + gross_amount + server_key."""
    expected = compute_notification_signature(
        notification.order_id,
        notification.status_code,
        notification.gross_amount,
        server_key,
    )
    return hmac.compare_digest(expected, notification.signature_key)


class SnapPaymentGateway:
    """
    Snap-style hosted payment API client.

    Usage:
        gateway = SnapPaymentGateway(settings.payment)
        token = await gateway.create_payment_token(...)
        await gateway.close()
    """

    def __init__(self, settings: PaymentSettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    async def close(self) -> None:
        await self._client.aclose()

    async def create_payment_token(
        self,
        order_id: str,
        order_number: str,
        gross_amount: int,
        customer: PaymentCustomer,
        line_items: List[PaymentLineItem],
    ) -> PaymentToken:
        external_order_id = build_external_order_id(order_number)

        payload = {
            "transaction_details": {
                "order_id": external_order_id,
                "gross_amount": gross_amount,
            },
            "customer_details": customer.model_dump(exclude_none=True),
            "item_details": [item.model_dump() for item in line_items],
            "callbacks": {"finish": self.settings.finish_url},
        }

        url = f"{self.settings.base_url}/snap/v1/transactions"
        try:
            response = await self._client.post(
                url,
                json=payload,
                auth=(self.settings.server_key.get_secret_value(), ""),
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Payment gateway rejected token request",
                order_id=order_id,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise PaymentError(
                "Payment gateway rejected the request",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error("Payment gateway unreachable", order_id=order_id, error=str(e))
            raise PaymentError("Payment gateway is unavailable") from e

        data = response.json()
        token = data.get("token")
        redirect_url = data.get("redirect_url")
        if not token or not redirect_url:
            logger.error("Payment gateway response missing token", order_id=order_id)
            raise PaymentError("Payment gateway returned an incomplete response")

        logger.info(
            "Payment token issued",
            order_id=order_id,
            external_order_id=external_order_id,
            gross_amount=gross_amount,
        )

        return PaymentToken(
            token=token,
            redirect_url=redirect_url,
            external_order_id=external_order_id,
        )
