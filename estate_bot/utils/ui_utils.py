import html
import logging
from collections.abc import Sequence
from urllib.parse import urljoin

from sqlalchemy.ext.asyncio import AsyncSession

from estate_bot.config.config import EnvSettings
from estate_bot.database import crud
from estate_bot.database.models import Property
from estate_bot.geo_service.schemas import Coordinate
from estate_bot.map_service.marker_controller import MapMarkerController, PropertyMarker
from estate_bot.map_service.renderer import SnapshotMapRenderer


logger = logging.getLogger(__name__)

CRORE = crud.CRORE
LAKH = 100_000

# Telegram limit for photo captions
CAPTION_LIMIT = 1024
DESCRIPTION_PREVIEW_LENGTH = 300


def _trim(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def format_inr_price(price: float) -> str:
    """
    Formats a rupee amount the way Indian listings show it.

    >>> format_inr_price(35_000_000)
    '₹3.5 Cr'
    >>> format_inr_price(4_500_000)
    '₹45 L'
    """
    if price >= CRORE:
        return f"₹{_trim(price / CRORE)} Cr"
    if price >= LAKH:
        return f"₹{_trim(price / LAKH)} L"
    return f"₹{price:,.0f}"


def _shorten(text: str, length: int) -> str:
    if len(text) <= length:
        return text
    if length <= 1:
        return ""
    return text[: length - 1].rstrip() + "…"


def _render_card(prop: Property, title: str, address: str, description: str) -> str:
    lines = [
        f"🏠 <b>{html.escape(title)}</b>",
        f"💰 {format_inr_price(prop.price)}",
        f"📍 {html.escape(address)}",
        f"🛏 {prop.beds} beds · 🛁 {prop.baths} baths · 📐 {prop.sqft:,.0f} sqft",
        f"🏷 {html.escape(prop.property_type)}",
    ]
    if description:
        lines.append(f"\n{html.escape(description)}")
    return "\n".join(lines)


def format_property_card(prop: Property, limit: int | None = None) -> str:
    """
    :param limit: longest allowed result, `CAPTION_LIMIT` for photo captions.
        The description is cut first, then the address, then the title.
    """
    texts = {
        "title": prop.title.strip(),
        "address": prop.address.strip(),
        "description": _shorten(prop.description.strip(), DESCRIPTION_PREVIEW_LENGTH),
    }
    card = _render_card(prop, **texts)
    for field in ("description", "address", "title"):
        # Cut the raw text so no HTML entity is split
        while limit is not None and len(card) > limit and texts[field]:
            excess = len(card) - limit
            texts[field] = _shorten(texts[field], len(texts[field]) - excess)
            card = _render_card(prop, **texts)
    return card


def build_property_markers(properties: Sequence[Property]) -> list[PropertyMarker]:
    markers = []
    for prop in properties:
        try:
            coordinate = Coordinate(latitude=prop.latitude, longitude=prop.longitude)
        except ValueError:
            logger.warning(f"Property {prop.id} has invalid coordinates, left off the map")
            continue
        markers.append(
            PropertyMarker(
                id=str(prop.id),
                title=prop.title,
                price_label=format_inr_price(prop.price),
                location_label=prop.address,
                coordinate=coordinate,
            )
        )
    return markers


async def create_properties_map_url(
    session: AsyncSession,
    user_telegram_id: int,
    properties: Sequence[Property],
    settings: EnvSettings,
) -> str | None:
    """
    Lays the properties out on a map and stores the result behind a short-lived link.

    :return: the map URL, or None when there is nothing to show or the map
        could not be built.
    """
    markers = build_property_markers(properties)
    if not markers:
        return None

    renderer = SnapshotMapRenderer()
    controller = MapMarkerController(renderer)
    try:
        await controller.initialize(settings.MAPBOX_ACCESS_TOKEN)
        controller.sync(markers)
        map_data = renderer.to_view_data()
    except Exception as e:
        logger.error(f"Map for user {user_telegram_id} could not be built: {e}", exc_info=True)
        return None
    finally:
        controller.dispose()

    token = await crud.create_map_request(
        session, user_telegram_id, map_data, ttl_minutes=settings.MAP_LINK_TTL_MINUTES
    )
    map_url = urljoin(settings.FRONTEND_BASE_URL, f"/map/{token}")
    logger.info(f"Map link generated for user {user_telegram_id}: {map_url}")
    return map_url
