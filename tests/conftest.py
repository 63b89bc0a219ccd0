"""
Test Suite Configuration
"""
from typing import AsyncGenerator, Dict, Optional
from uuid import UUID

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.config import Settings
from storefront.config.settings import CheckoutSettings, PaymentSettings, SecuritySettings
from storefront.database.connection import create_session_factory
from storefront.database.models import (
    Address,
    Base,
    Cart,
    CartItem,
    Product,
    ProductGroup,
    ProductVariant,
    ProductVariantCombination,
    User,
)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
        payment=PaymentSettings(server_key="test-server-key"),
        checkout=CheckoutSettings(default_shipping_cost=15000),
        security=SecuritySettings(jwt_secret_key="test-jwt-secret", rate_limit_requests=1000),
    )


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine, so concurrent sessions see each other's commits"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


class Catalog:
    """Writes catalog, user and cart rows, each call in its own transaction"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def group(self, name: str = "Phone X", **fields) -> ProductGroup:
        slug = fields.pop("slug", name.lower().replace(" ", "-"))
        group = ProductGroup(
            name=name,
            slug=slug,
            category=fields.pop("category", "phones"),
            brand=fields.pop("brand", "Acme"),
            images=fields.pop("images", [f"https://cdn.example.com/{slug}.jpg"]),
            weight=fields.pop("weight", 400),
            **fields,
        )
        async with self.session_factory() as session, session.begin():
            session.add(group)
        return group

    async def product(
        self,
        group: ProductGroup,
        sku: str,
        *,
        price: int = 100000,
        stock: int = 10,
        variants: Optional[Dict[str, str]] = None,
        **fields,
    ) -> Product:
        """Product plus its variant rows (created on first use) and combination rows"""
        product = Product(
            product_group_id=group.id,
            sku=sku,
            name=fields.pop("name", f"{group.name} {sku}"),
            price=price,
            stock=stock,
            **fields,
        )
        async with self.session_factory() as session, session.begin():
            session.add(product)
            await session.flush()

            for axis, value in (variants or {}).items():
                result = await session.execute(
                    select(ProductVariant).where(
                        ProductVariant.product_group_id == group.id,
                        ProductVariant.variant == axis,
                        ProductVariant.value == value,
                    )
                )
                variant = result.scalar_one_or_none()
                if variant is None:
                    variant = ProductVariant(product_group_id=group.id, variant=axis, value=value)
                    session.add(variant)
                    await session.flush()

                session.add(ProductVariantCombination(product_id=product.id, variant_id=variant.id))
        return product

    async def variant(self, group: ProductGroup, axis: str, value: str) -> ProductVariant:
        """Variant value no product carries (yet)"""
        variant = ProductVariant(product_group_id=group.id, variant=axis, value=value)
        async with self.session_factory() as session, session.begin():
            session.add(variant)
        return variant

    async def update_product(self, product_id: UUID, **values) -> None:
        async with self.session_factory() as session, session.begin():
            product = await session.get(Product, product_id)
            for column, value in values.items():
                setattr(product, column, value)

    async def user(self, email: str = "buyer@example.com", **fields) -> User:
        user = User(
            email=email,
            name=fields.pop("name", "Budi Santoso"),
            phone=fields.pop("phone", "081234567890"),
            is_confirmed=True,
            **fields,
        )
        async with self.session_factory() as session, session.begin():
            session.add(user)
        return user

    async def address(self, user: User, **fields) -> Address:
        address = Address(
            user_id=user.id,
            address_label=fields.pop("address_label", "Home"),
            street_address=fields.pop("street_address", "Jl. Merdeka No. 1"),
            village=fields.pop("village", "Gambir"),
            district=fields.pop("district", "Gambir"),
            city=fields.pop("city", "Jakarta Pusat"),
            state=fields.pop("state", "DKI Jakarta"),
            postal_code=fields.pop("postal_code", "10110"),
            province_code=fields.pop("province_code", "31"),
            regency_code=fields.pop("regency_code", "31.71"),
            **fields,
        )
        async with self.session_factory() as session, session.begin():
            session.add(address)
        return address

    async def cart_item(
        self,
        product: Product,
        quantity: int = 1,
        *,
        session_id: Optional[str] = None,
        user_id: Optional[UUID] = None,
        price: Optional[int] = None,
        variant_selections: Optional[Dict[str, str]] = None,
    ) -> CartItem:
        """Put a product in a cart, capturing `price` (defaults to the current price)"""
        async with self.session_factory() as session, session.begin():
            owner = Cart.user_id == user_id if user_id else Cart.session_id == session_id
            cart = (await session.execute(select(Cart).where(owner))).scalar_one_or_none()
            if cart is None:
                cart = Cart(session_id=session_id, user_id=user_id)
                session.add(cart)
                await session.flush()

            item = CartItem(
                cart_id=cart.id,
                product_id=product.id,
                quantity=quantity,
                variant_selections=variant_selections or {},
                unit_price=product.price if price is None else price,
                product_name=product.name,
                product_sku=product.sku,
                thumbnail_url="https://cdn.example.com/thumb.jpg",
            )
            session.add(item)
        return item


@pytest.fixture
def catalog(session_factory) -> Catalog:
    return Catalog(session_factory)
