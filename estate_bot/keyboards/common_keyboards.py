from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder


def get_main_menu_kb() -> InlineKeyboardMarkup:
    """Main menu shown after /start."""
    builder = InlineKeyboardBuilder()
    builder.row(InlineKeyboardButton(text="🔍 Search properties", callback_data="search_properties"))
    builder.row(InlineKeyboardButton(text="🏠 List your property", callback_data="list_property"))
    builder.row(
        InlineKeyboardButton(text="⭐ Saved", callback_data="saved_properties"),
        InlineKeyboardButton(text="👤 Profile", callback_data="profile"),
    )
    return builder.as_markup()


def get_login_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="🔑 Log in", callback_data="login")
    return builder.as_markup()


def get_map_url_kb(map_url: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="🗺️ Open on the map", url=map_url)
    return builder.as_markup()


def get_profile_kb(has_phone: bool) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="📞 Change phone" if has_phone else "📞 Add phone", callback_data="profile_edit_phone"
        )
    )
    builder.row(InlineKeyboardButton(text="🏠 Main menu", callback_data="main_menu"))
    return builder.as_markup()


def get_profile_phone_kb(has_phone: bool) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    if has_phone:
        builder.button(text="🗑 Remove phone", callback_data="profile_phone_remove")
    builder.button(text="❌ Cancel", callback_data="profile_edit_cancel")
    builder.adjust(1)
    return builder.as_markup()
