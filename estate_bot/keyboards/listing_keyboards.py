from aiogram.filters.callback_data import CallbackData
from aiogram.types import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    ReplyKeyboardMarkup,
)
from aiogram.utils.keyboard import InlineKeyboardBuilder

from estate_bot.geo_service.device_location import DENY_LOCATION_TEXT
from estate_bot.geo_service.schemas import LocationSuggestion
from estate_bot.listing_form.validators import PROPERTY_TYPES


class PropertyTypeCallback(CallbackData, prefix="listing_type"):
    property_type: str


class SuggestionCallback(CallbackData, prefix="listing_loc"):
    """
    Pick from the live suggestion list.
    - index: position in the list the user saw; -1 keeps the typed text.
    """

    index: int


class ImageActionCallback(CallbackData, prefix="listing_img"):
    """
    - action: 'remove' | 'done'
    - index: image position for 'remove'.
    """

    action: str
    index: int = -1


def get_listing_cancel_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="❌ Cancel", callback_data="listing_cancel")
    return builder.as_markup()


def get_property_type_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for property_type in PROPERTY_TYPES:
        builder.button(
            text=property_type, callback_data=PropertyTypeCallback(property_type=property_type)
        )
    builder.adjust(2)
    builder.row(InlineKeyboardButton(text="❌ Cancel", callback_data="listing_cancel"))
    return builder.as_markup()


def get_location_suggestions_kb(suggestions: list[LocationSuggestion]) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for index, suggestion in enumerate(suggestions):
        builder.row(
            InlineKeyboardButton(
                text=f"📍 {suggestion.display_label[:60]}",
                callback_data=SuggestionCallback(index=index).pack(),
            )
        )
    builder.row(
        InlineKeyboardButton(
            text="✍️ Use the address as typed",
            callback_data=SuggestionCallback(index=-1).pack(),
        )
    )
    builder.row(InlineKeyboardButton(text="❌ Cancel", callback_data="listing_cancel"))
    return builder.as_markup()


def get_share_location_kb() -> ReplyKeyboardMarkup:
    """Reply keyboard with the device location request and the refusal button."""
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="📍 Use my current location", request_location=True)],
            [KeyboardButton(text=DENY_LOCATION_TEXT)],
        ],
        resize_keyboard=True,
        one_time_keyboard=True,
        input_field_placeholder="Type an address or share a location",
    )


def get_images_kb(image_names: list[str]) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for index, name in enumerate(image_names):
        builder.row(
            InlineKeyboardButton(
                text=f"🗑 {name[:40]}",
                callback_data=ImageActionCallback(action="remove", index=index).pack(),
            )
        )
    builder.row(
        InlineKeyboardButton(
            text="✅ Done", callback_data=ImageActionCallback(action="done").pack()
        )
    )
    return builder.as_markup()


def get_skip_kb(callback_data: str) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="⏭ Skip", callback_data=callback_data)
    return builder.as_markup()


def get_details_review_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="➡️ Next: contact details", callback_data="listing_next")
    builder.button(text="❌ Cancel", callback_data="listing_cancel")
    builder.adjust(1)
    return builder.as_markup()


def get_submit_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="✅ Submit listing", callback_data="listing_submit")
    builder.button(text="⬅️ Back to details", callback_data="listing_back")
    builder.button(text="❌ Cancel", callback_data="listing_cancel")
    builder.adjust(1)
    return builder.as_markup()


def get_confirm_close_kb() -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="🗑 Yes, discard", callback_data="listing_cancel_confirm")
    builder.button(text="↩️ Keep editing", callback_data="listing_cancel_abort")
    builder.adjust(2)
    return builder.as_markup()
