import html
import logging
from datetime import timedelta, timezone

from aiogram import F, Router
from aiogram.filters import Command, CommandStart, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from estate_bot.auth.user_session import SessionManager, UserSession
from estate_bot.config.config import get_env_settings
from estate_bot.database import crud
from estate_bot.filters.auth_filters import IsLoggedInFilter
from estate_bot.keyboards.common_keyboards import (
    get_login_kb,
    get_main_menu_kb,
    get_profile_kb,
    get_profile_phone_kb,
)
from estate_bot.listing_form.registry import ListingFormRegistry
from estate_bot.listing_form.validators import validate_profile_phone


common_router = Router()
fallback_router = Router()
logger = logging.getLogger(__name__)

settings = get_env_settings()
APP_TIMEZONE = timezone(timedelta(hours=settings.APP_TIMEZONE_OFFSET))

GREETING_TEXT = (
    "Welcome to <b>Estate Bot</b>!\n\n"
    "Browse and save properties, see them on the map or list your own. "
    "Choose an action:"
)


class ProfileFSM(StatesGroup):
    phone = State()


@common_router.message(CommandStart())
async def start_cmd(message: Message, session: AsyncSession, session_manager: SessionManager):
    """
    Handles /start: registers the user on first contact, starts the session
    and shows the main menu.
    """
    tg_user = message.from_user
    user = await crud.get_or_create_user(
        session,
        telegram_id=tg_user.id,
        username=tg_user.username,
        display_name=tg_user.full_name,
    )
    session_manager.login(user)
    await message.answer(GREETING_TEXT, reply_markup=get_main_menu_kb())


@common_router.callback_query(F.data == "login")
async def login_callback(
    query: CallbackQuery, session: AsyncSession, session_manager: SessionManager
):
    await query.answer()
    tg_user = query.from_user
    user = await crud.get_or_create_user(
        session, telegram_id=tg_user.id, username=tg_user.username, display_name=tg_user.full_name
    )
    session_manager.login(user)
    await query.message.answer(GREETING_TEXT, reply_markup=get_main_menu_kb())


@common_router.callback_query(F.data == "main_menu", IsLoggedInFilter())
async def main_menu_callback(query: CallbackQuery):
    await query.answer()
    await query.message.answer("Choose an action:", reply_markup=get_main_menu_kb())


async def _send_profile(message: Message, session: AsyncSession, user_session: UserSession):
    user = await crud.get_user_by_telegram_id(session, user_session.telegram_id)
    listings = await crud.count_user_listings(session, user_session.telegram_id)
    saved = await crud.count_saved_properties(session, user_session.telegram_id)

    has_phone = bool(user and user.phone)
    phone = user.phone if has_phone else "not set"
    logged_in_at = user_session.started_at.astimezone(APP_TIMEZONE)
    text = (
        "👤 <b>Your profile</b>\n\n"
        f"<b>Name:</b> {html.escape(user_session.display_name)}\n"
        f"<b>Phone:</b> {html.escape(phone)}\n"
        f"<b>Listings submitted:</b> {listings}\n"
        f"<b>Saved properties:</b> {saved}\n"
        f"<b>Logged in:</b> {logged_in_at.strftime('%d.%m.%Y %H:%M')}\n\n"
        "/logout to end the session."
    )
    await message.answer(text, reply_markup=get_profile_kb(has_phone))


@common_router.message(Command("profile"), IsLoggedInFilter())
async def profile_cmd(message: Message, session: AsyncSession, user_session: UserSession):
    await _send_profile(message, session, user_session)


@common_router.callback_query(F.data == "profile", IsLoggedInFilter())
async def profile_callback(query: CallbackQuery, session: AsyncSession, user_session: UserSession):
    await query.answer()
    await _send_profile(query.message, session, user_session)


# --- Profile phone ---


@common_router.callback_query(F.data == "profile_edit_phone", IsLoggedInFilter())
async def profile_edit_phone(
    query: CallbackQuery, state: FSMContext, session: AsyncSession, user_session: UserSession
):
    await query.answer()
    user = await crud.get_user_by_telegram_id(session, user_session.telegram_id)
    has_phone = bool(user and user.phone)
    await state.set_state(ProfileFSM.phone)
    await query.message.answer(
        "📞 Send your phone number (e.g. +91 98765 43210):",
        reply_markup=get_profile_phone_kb(has_phone),
    )


@common_router.message(ProfileFSM.phone, F.text, ~F.text.startswith("/"), IsLoggedInFilter())
async def profile_phone_entered(
    message: Message, state: FSMContext, session: AsyncSession, user_session: UserSession
):
    phone = message.text.strip()
    error = validate_profile_phone(phone)
    if error:
        await message.answer(f"⚠️ {error}. Try again or press «Cancel».")
        return

    await crud.update_user_phone(session, user_session.telegram_id, phone)
    await state.clear()
    logger.info(f"User {user_session.telegram_id} changed their profile phone")
    await message.answer("✅ Phone saved.")
    await _send_profile(message, session, user_session)


@common_router.callback_query(
    StateFilter(ProfileFSM.phone), F.data == "profile_phone_remove", IsLoggedInFilter()
)
async def profile_phone_remove(
    query: CallbackQuery, state: FSMContext, session: AsyncSession, user_session: UserSession
):
    await query.answer("Phone removed")
    await crud.update_user_phone(session, user_session.telegram_id, None)
    await state.clear()
    await _send_profile(query.message, session, user_session)


@common_router.callback_query(F.data == "profile_edit_cancel", IsLoggedInFilter())
async def profile_edit_cancel(
    query: CallbackQuery, state: FSMContext, session: AsyncSession, user_session: UserSession
):
    await query.answer()
    await state.clear()
    await _send_profile(query.message, session, user_session)


@common_router.message(Command("logout"))
async def logout_cmd(
    message: Message,
    state: FSMContext,
    session_manager: SessionManager,
    listing_registry: ListingFormRegistry,
):
    """Ends the session. An open listing form is thrown away with it."""
    telegram_id = message.from_user.id
    listing_registry.discard(telegram_id)
    await state.clear()

    if session_manager.logout(telegram_id):
        await message.answer("👋 You are logged out.", reply_markup=get_login_kb())
    else:
        await message.answer("You are not logged in.", reply_markup=get_login_kb())


# --- Fallbacks, included last ---


@fallback_router.message(~IsLoggedInFilter())
async def not_logged_in_message(message: Message):
    await message.answer("Please log in first.", reply_markup=get_login_kb())


@fallback_router.callback_query(~IsLoggedInFilter())
async def not_logged_in_callback(query: CallbackQuery):
    await query.answer("Please log in first.", show_alert=True)
