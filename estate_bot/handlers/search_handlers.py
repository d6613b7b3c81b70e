import html
import logging
from collections.abc import Sequence
from dataclasses import asdict

from aiogram import F, Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from estate_bot.auth.user_session import UserSession
from estate_bot.config.config import EnvSettings
from estate_bot.database import crud
from estate_bot.database.models import Property
from estate_bot.filters.auth_filters import IsLoggedInFilter
from estate_bot.keyboards.common_keyboards import get_main_menu_kb, get_map_url_kb
from estate_bot.keyboards.property_keyboards import (
    PRICE_RANGE_LABELS,
    PropertyActionCallback,
    SearchFilterCallback,
    get_property_card_kb,
    get_search_filters_kb,
)
from estate_bot.utils.ui_utils import (
    CAPTION_LIMIT,
    create_properties_map_url,
    format_property_card,
)


search_router = Router()
logger = logging.getLogger(__name__)


async def _load_filters(state: FSMContext) -> crud.PropertyFilters:
    data = await state.get_data()
    return crud.PropertyFilters(**data.get("search_filters", {}))


def _describe_filters(filters: crud.PropertyFilters) -> str:
    parts = []
    if filters.search:
        parts.append(f"«{html.escape(filters.search)}»")
    if filters.property_type:
        parts.append(filters.property_type)
    if filters.price_range:
        parts.append(PRICE_RANGE_LABELS[filters.price_range])
    if filters.min_beds:
        parts.append(f"{filters.min_beds}+ beds")
    return ", ".join(parts) if parts else "all properties"


async def send_property_list(
    message: Message,
    session: AsyncSession,
    user_session: UserSession,
    properties: Sequence[Property],
    env_settings: EnvSettings,
) -> None:
    """Sends one card per property and, below them, a map link for the whole list."""
    for prop in properties:
        is_saved = await crud.is_property_saved(session, user_session.telegram_id, prop.id)
        kb = get_property_card_kb(prop.id, is_saved)
        if prop.images:
            await message.answer_photo(
                prop.images[0].file_id,
                caption=format_property_card(prop, limit=CAPTION_LIMIT),
                reply_markup=kb,
            )
        else:
            await message.answer(format_property_card(prop), reply_markup=kb)

    map_url = await create_properties_map_url(session, user_session.telegram_id, properties, env_settings)
    if map_url:
        await message.answer(
            f"🗺️ All {len(properties)} on the map (the link is valid for "
            f"{env_settings.MAP_LINK_TTL_MINUTES} minutes):",
            reply_markup=get_map_url_kb(map_url),
        )


async def run_search(
    message: Message,
    session: AsyncSession,
    user_session: UserSession,
    filters: crud.PropertyFilters,
    env_settings: EnvSettings,
) -> None:
    properties = await crud.search_properties(session, filters)
    if not properties:
        await message.answer(
            f"🤷 Nothing found for {_describe_filters(filters)}.",
            reply_markup=get_search_filters_kb(filters),
        )
        return

    await message.answer(f"🔍 Found {len(properties)} for {_describe_filters(filters)}:")
    await send_property_list(message, session, user_session, properties, env_settings)


@search_router.callback_query(F.data == "search_properties", IsLoggedInFilter())
async def search_menu(query: CallbackQuery, state: FSMContext):
    await query.answer()
    filters = await _load_filters(state)
    await query.message.answer(
        "🔍 <b>Search properties</b>\n\nChoose filters or send /search followed by a name or area.",
        reply_markup=get_search_filters_kb(filters),
    )


@search_router.message(Command("search"), IsLoggedInFilter())
async def search_cmd(
    message: Message,
    command: CommandObject,
    state: FSMContext,
    session: AsyncSession,
    user_session: UserSession,
    env_settings: EnvSettings,
):
    """/search [text]: text search on title and address, combined with the saved filters."""
    filters = await _load_filters(state)
    filters.search = (command.args or "").strip() or None
    await state.update_data(search_filters=asdict(filters))
    await run_search(message, session, user_session, filters, env_settings)


@search_router.callback_query(SearchFilterCallback.filter(), IsLoggedInFilter())
async def process_search_filter(
    query: CallbackQuery,
    callback_data: SearchFilterCallback,
    state: FSMContext,
    session: AsyncSession,
    user_session: UserSession,
    env_settings: EnvSettings,
):
    await query.answer()
    filters = await _load_filters(state)

    if callback_data.field == "run":
        await run_search(query.message, session, user_session, filters, env_settings)
        return

    if callback_data.field == "reset":
        filters = crud.PropertyFilters()
    elif callback_data.field == "type":
        filters.property_type = callback_data.value or None
    elif callback_data.field == "price":
        filters.price_range = callback_data.value or None
    elif callback_data.field == "beds":
        filters.min_beds = int(callback_data.value) if callback_data.value else None
    else:
        logger.warning(f"Unknown search filter field: {callback_data.field}")
        return

    await state.update_data(search_filters=asdict(filters))
    await query.message.edit_reply_markup(reply_markup=get_search_filters_kb(filters))


@search_router.callback_query(PropertyActionCallback.filter(F.action == "save"), IsLoggedInFilter())
async def process_toggle_saved(
    query: CallbackQuery,
    callback_data: PropertyActionCallback,
    session: AsyncSession,
    user_session: UserSession,
):
    prop = await crud.get_property_by_id(session, callback_data.property_id)
    if prop is None:
        await query.answer("This property is no longer available.", show_alert=True)
        return

    is_saved = await crud.toggle_saved_property(session, user_session.telegram_id, prop.id)
    await query.answer("⭐ Saved" if is_saved else "Removed from saved")
    await query.message.edit_reply_markup(reply_markup=get_property_card_kb(prop.id, is_saved))


@search_router.callback_query(PropertyActionCallback.filter(F.action == "map"), IsLoggedInFilter())
async def process_property_map(
    query: CallbackQuery,
    callback_data: PropertyActionCallback,
    session: AsyncSession,
    user_session: UserSession,
    env_settings: EnvSettings,
):
    await query.answer()
    prop = await crud.get_property_by_id(session, callback_data.property_id)
    if prop is None:
        await query.message.answer("This property is no longer available.")
        return

    map_url = await create_properties_map_url(session, user_session.telegram_id, [prop], env_settings)
    if map_url is None:
        await query.message.answer("⚠️ The map is not available right now.", reply_markup=get_main_menu_kb())
        return
    await query.message.answer(f"🗺️ {html.escape(prop.title)}", reply_markup=get_map_url_kb(map_url))
