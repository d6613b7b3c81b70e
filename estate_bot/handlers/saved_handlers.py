import logging

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message
from sqlalchemy.ext.asyncio import AsyncSession

from estate_bot.auth.user_session import UserSession
from estate_bot.config.config import EnvSettings
from estate_bot.database import crud
from estate_bot.filters.auth_filters import IsLoggedInFilter
from estate_bot.handlers.search_handlers import send_property_list
from estate_bot.keyboards.common_keyboards import get_main_menu_kb


saved_router = Router()
logger = logging.getLogger(__name__)


async def show_saved(
    message: Message, session: AsyncSession, user_session: UserSession, env_settings: EnvSettings
) -> None:
    properties = await crud.get_saved_properties(session, user_session.telegram_id)
    if not properties:
        await message.answer(
            "⭐ You have no saved properties yet. Press «Save» on any property to keep it here.",
            reply_markup=get_main_menu_kb(),
        )
        return

    await message.answer(f"⭐ <b>Saved properties ({len(properties)})</b>")
    await send_property_list(message, session, user_session, properties, env_settings)


@saved_router.message(Command("saved"), IsLoggedInFilter())
async def saved_cmd(
    message: Message, session: AsyncSession, user_session: UserSession, env_settings: EnvSettings
):
    await show_saved(message, session, user_session, env_settings)


@saved_router.callback_query(F.data == "saved_properties", IsLoggedInFilter())
async def saved_callback(
    query: CallbackQuery, session: AsyncSession, user_session: UserSession, env_settings: EnvSettings
):
    await query.answer()
    await show_saved(query.message, session, user_session, env_settings)
