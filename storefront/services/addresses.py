"""
Address Service

Saved addresses of a user and the frozen address snapshot stored on orders.
An order keeps its own copy of the address as JSON, so editing or deleting a
saved address never changes a historical order.
"""

from typing import Optional
from uuid import UUID

import pydantic
import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import Address
from storefront.errors import SnapshotDecodeError

logger = structlog.get_logger(__name__)


class AddressFields(BaseModel):
    """Address as entered at checkout"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    address_label: str
    street_address: str
    village: str
    district: str
    city: str
    province: str
    postal_code: str
    country: str = "ID"
    province_code: Optional[str] = None
    regency_code: Optional[str] = None
    district_code: Optional[str] = None
    village_code: Optional[str] = None


class AddressSnapshot(BaseModel):
    """
    Immutable copy of a shipping or billing address at order time.

    Serialized with camelCase keys into the order row; decoding validates
    the stored JSON and raises SnapshotDecodeError instead of guessing.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    address_label: str
    phone: Optional[str] = None
    full_address: str
    village: str
    district: str
    city: str
    province: str
    postal_code: str
    country: str = "ID"
    province_code: Optional[str] = None
    regency_code: Optional[str] = None
    district_code: Optional[str] = None
    village_code: Optional[str] = None

    @classmethod
    def from_fields(cls, fields: AddressFields, phone: Optional[str] = None) -> "AddressSnapshot":
        return cls(
            address_label=fields.address_label,
            phone=phone,
            full_address=fields.street_address,
            village=fields.village,
            district=fields.district,
            city=fields.city,
            province=fields.province,
            postal_code=fields.postal_code,
            country=fields.country,
            province_code=fields.province_code,
            regency_code=fields.regency_code,
            district_code=fields.district_code,
            village_code=fields.village_code,
        )

    @classmethod
    def from_address(cls, address: Address, phone: Optional[str] = None) -> "AddressSnapshot":
        return cls(
            address_label=address.address_label,
            phone=phone,
            full_address=address.street_address,
            village=address.village,
            district=address.district,
            city=address.city,
            province=address.state,
            postal_code=address.postal_code,
            country=address.country,
            province_code=address.province_code,
            regency_code=address.regency_code,
            district_code=address.district_code,
            village_code=address.village_code,
        )

    @classmethod
    def from_json(cls, raw: str) -> "AddressSnapshot":
        try:
            return cls.model_validate_json(raw)
        except pydantic.ValidationError as e:
            raise SnapshotDecodeError(
                "Stored address snapshot is malformed",
                details={"errors": e.errors(include_url=False, include_input=False)},
            ) from e

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def one_line(self) -> str:
        """Comma-separated address for exports and labels"""
        parts = [
            self.full_address,
            self.village,
            self.district,
            self.city,
            self.province,
            self.postal_code,
        ]
        return ", ".join(part for part in parts if part)


async def get_address_by_id(
    session: AsyncSession,
    address_id: UUID,
    owner_user_id: UUID,
) -> Optional[Address]:
    """Address by id, only if it belongs to owner_user_id."""
    result = await session.execute(
        select(Address).where(
            Address.id == address_id,
            Address.user_id == owner_user_id,
        )
    )
    return result.scalar_one_or_none()


async def create_address_from_checkout(
    session: AsyncSession,
    user_id: UUID,
    fields: AddressFields,
) -> Address:
    """
    Save a checkout address to the user's address book.

    The first address a user saves becomes the default one.
    """
    existing = await session.execute(
        select(func.count(Address.id)).where(Address.user_id == user_id)
    )
    is_first = (existing.scalar() or 0) == 0

    address = Address(
        user_id=user_id,
        address_label=fields.address_label,
        street_address=fields.street_address,
        village=fields.village,
        district=fields.district,
        city=fields.city,
        state=fields.province,
        postal_code=fields.postal_code,
        country=fields.country,
        province_code=fields.province_code,
        regency_code=fields.regency_code,
        district_code=fields.district_code,
        village_code=fields.village_code,
        is_default=is_first,
    )
    session.add(address)
    await session.flush()

    logger.info("Address saved from checkout", user_id=str(user_id), address_id=str(address.id))
    return address
