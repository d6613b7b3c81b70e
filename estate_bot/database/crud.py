import logging
import secrets
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from estate_bot.database.models import MapRequest, Property, PropertyImage, SavedProperty, User
from estate_bot.listing_form.images import ImageFile
from estate_bot.listing_form.states import ListingPayload
from estate_bot.schemas import MapViewData


logger = logging.getLogger(__name__)

CRORE = 10_000_000

# key -> (min price inclusive, max price exclusive); None is unbounded
PRICE_RANGES: dict[str, tuple[float | None, float | None]] = {
    "0-2cr": (None, 2 * CRORE),
    "2cr-5cr": (2 * CRORE, 5 * CRORE),
    "5cr-10cr": (5 * CRORE, 10 * CRORE),
    "10cr+": (10 * CRORE, None),
}

DEFAULT_SEARCH_LIMIT = 10


@dataclass
class PropertyFilters:
    search: str | None = None
    property_type: str | None = None
    price_range: str | None = None
    min_beds: int | None = None
    limit: int = DEFAULT_SEARCH_LIMIT

    def is_empty(self) -> bool:
        return not (self.search or self.property_type or self.price_range or self.min_beds)


# --- Users ---


async def get_user_by_telegram_id(session: AsyncSession, telegram_id: int) -> User | None:
    logger.info(f"Fetching user by telegram_id: {telegram_id}")
    stmt = select(User).where(User.telegram_id == telegram_id)
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()

    if user:
        logger.info(f"User with telegram_id {telegram_id} found: ID={user.id}")
    else:
        logger.info(f"User with telegram_id {telegram_id} not found.")
    return user


async def get_or_create_user(
    session: AsyncSession,
    telegram_id: int,
    username: str | None = None,
    display_name: str | None = None,
) -> User:
    """Returns the user, creating it on first contact. Username and name are refreshed."""
    user = await get_user_by_telegram_id(session, telegram_id)
    if user is None:
        user = User(telegram_id=telegram_id, username=username, display_name=display_name)
        session.add(user)
        await session.flush()
        logger.info(f"User {telegram_id} created with ID={user.id}")
        return user

    if username != user.username or (display_name and display_name != user.display_name):
        user.username = username
        user.display_name = display_name or user.display_name
        await session.flush()
        logger.info(f"User {telegram_id} profile refreshed")
    return user


async def update_user_phone(
    session: AsyncSession, telegram_id: int, phone: str | None
) -> User | None:
    """Stores the profile phone. None clears it."""
    user = await get_user_by_telegram_id(session, telegram_id)
    if user is None:
        logger.warning(f"Cannot store phone: user {telegram_id} not found.")
        return None
    user.phone = phone
    await session.flush()
    return user


# --- Properties ---


async def create_property(
    session: AsyncSession,
    payload: ListingPayload,
    images: Sequence[ImageFile],
    owner_telegram_id: int | None = None,
) -> Property:
    details = payload.details
    logger.info(
        f"Creating property '{details.title}' for owner {owner_telegram_id} with {len(images)} image(s)"
    )
    prop = Property(
        title=details.title,
        property_type=details.property_type,
        description=details.description,
        price=details.price,
        beds=details.beds,
        baths=details.baths,
        sqft=details.sqft,
        address=details.address,
        latitude=details.latitude,
        longitude=details.longitude,
        contact_name=payload.contact_name,
        contact_phone=payload.phone,
        contact_email=payload.email,
        notes=payload.notes or None,
        owner_telegram_id=owner_telegram_id,
        images=[
            PropertyImage(
                file_id=image.file_id or image.name,
                file_name=image.name,
                file_size=image.size,
                position=position,
            )
            for position, image in enumerate(images)
        ],
    )
    session.add(prop)
    await session.flush()
    logger.info(f"Property created with ID={prop.id}")
    return prop


async def get_property_by_id(session: AsyncSession, property_id: int) -> Property | None:
    logger.info(f"Fetching property by ID: {property_id}")
    return await session.get(Property, property_id)


async def search_properties(session: AsyncSession, filters: PropertyFilters) -> Sequence[Property]:
    """Active listings matching the filters, newest first."""
    logger.info(f"Searching properties with filters: {filters}")
    stmt = select(Property).where(Property.is_active.is_(True))

    if filters.search:
        pattern = f"%{filters.search.strip().lower()}%"
        stmt = stmt.where(
            or_(func.lower(Property.title).like(pattern), func.lower(Property.address).like(pattern))
        )
    if filters.property_type:
        stmt = stmt.where(Property.property_type == filters.property_type)
    if filters.price_range:
        if filters.price_range not in PRICE_RANGES:
            raise ValueError(f"Unknown price range: {filters.price_range}")
        low, high = PRICE_RANGES[filters.price_range]
        if low is not None:
            stmt = stmt.where(Property.price >= low)
        if high is not None:
            stmt = stmt.where(Property.price < high)
    if filters.min_beds:
        stmt = stmt.where(Property.beds >= filters.min_beds)

    stmt = stmt.order_by(Property.created_at.desc(), Property.id.desc()).limit(filters.limit)
    result = await session.execute(stmt)
    properties = result.scalars().all()
    logger.info(f"Found {len(properties)} properties")
    return properties


async def count_user_listings(session: AsyncSession, telegram_id: int) -> int:
    stmt = select(func.count(Property.id)).where(Property.owner_telegram_id == telegram_id)
    return (await session.execute(stmt)).scalar_one()


# --- Saved properties ---


async def is_property_saved(session: AsyncSession, telegram_id: int, property_id: int) -> bool:
    stmt = select(SavedProperty.id).where(
        SavedProperty.user_telegram_id == telegram_id,
        SavedProperty.property_id == property_id,
    )
    return (await session.execute(stmt)).scalar_one_or_none() is not None


async def toggle_saved_property(session: AsyncSession, telegram_id: int, property_id: int) -> bool:
    """
    Saves the property for the user, or unsaves it when it is already saved.

    :return: True when the property is saved after the call.
    """
    logger.info(f"Toggling saved property {property_id} for user {telegram_id}")
    if await is_property_saved(session, telegram_id, property_id):
        await session.execute(
            delete(SavedProperty).where(
                SavedProperty.user_telegram_id == telegram_id,
                SavedProperty.property_id == property_id,
            )
        )
        await session.flush()
        logger.info(f"Property {property_id} removed from saved for user {telegram_id}")
        return False

    session.add(SavedProperty(user_telegram_id=telegram_id, property_id=property_id))
    await session.flush()
    logger.info(f"Property {property_id} saved for user {telegram_id}")
    return True


async def get_saved_properties(session: AsyncSession, telegram_id: int) -> Sequence[Property]:
    logger.info(f"Fetching saved properties of user {telegram_id}")
    stmt = (
        select(Property)
        .join(SavedProperty, SavedProperty.property_id == Property.id)
        .where(SavedProperty.user_telegram_id == telegram_id)
        .order_by(SavedProperty.created_at.desc(), SavedProperty.id.desc())
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def count_saved_properties(session: AsyncSession, telegram_id: int) -> int:
    stmt = select(func.count(SavedProperty.id)).where(SavedProperty.user_telegram_id == telegram_id)
    return (await session.execute(stmt)).scalar_one()


# --- Map requests ---


async def create_map_request(
    session: AsyncSession,
    user_telegram_id: int,
    map_data: MapViewData,
    ttl_minutes: int,
) -> str:
    """Stores the map payload and returns the token of the link that shows it."""
    token = secrets.token_urlsafe(32)
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)
    session.add(
        MapRequest(
            request_token=token,
            user_telegram_id=user_telegram_id,
            map_data_json=map_data.model_dump_json(),
            expires_at=expires_at,
        )
    )
    await session.flush()
    logger.info(
        f"Map request {token[:8]}... created for user {user_telegram_id} "
        f"with {len(map_data.markers)} marker(s), expires at {expires_at}"
    )
    return token


async def delete_expired_map_requests(session: AsyncSession) -> int:
    result = await session.execute(
        delete(MapRequest).where(MapRequest.expires_at < datetime.now(timezone.utc))
    )
    await session.flush()
    logger.info(f"Deleted {result.rowcount} expired map requests")
    return result.rowcount
