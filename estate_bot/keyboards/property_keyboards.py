from aiogram.filters.callback_data import CallbackData
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from estate_bot.database.crud import PRICE_RANGES, PropertyFilters
from estate_bot.listing_form.validators import PROPERTY_TYPES


class PropertyActionCallback(CallbackData, prefix="prop"):
    """
    - action: 'save' toggles the saved flag, 'map' sends a map link for one property.
    """

    action: str
    property_id: int


class SearchFilterCallback(CallbackData, prefix="search_f"):
    """
    - field: 'type' | 'price' | 'beds' | 'run' | 'reset'
    - value: chosen value, empty string clears the filter.
    """

    field: str
    value: str = ""


PRICE_RANGE_LABELS = {
    "0-2cr": "Under ₹2 Cr",
    "2cr-5cr": "₹2 Cr - ₹5 Cr",
    "5cr-10cr": "₹5 Cr - ₹10 Cr",
    "10cr+": "₹10 Cr+",
}
BED_OPTIONS = (1, 2, 3, 4)


def get_property_card_kb(property_id: int, is_saved: bool) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(
        text="💔 Unsave" if is_saved else "⭐ Save",
        callback_data=PropertyActionCallback(action="save", property_id=property_id),
    )
    builder.button(
        text="🗺️ Map",
        callback_data=PropertyActionCallback(action="map", property_id=property_id),
    )
    builder.adjust(2)
    return builder.as_markup()


def _mark(selected: bool, text: str) -> str:
    return f"✅ {text}" if selected else text


def get_search_filters_kb(filters: PropertyFilters) -> InlineKeyboardMarkup:
    """Filter panel. Pressing a selected option again clears it."""
    builder = InlineKeyboardBuilder()

    type_buttons = [
        InlineKeyboardButton(
            text=_mark(filters.property_type == property_type, property_type),
            callback_data=SearchFilterCallback(
                field="type", value="" if filters.property_type == property_type else property_type
            ).pack(),
        )
        for property_type in PROPERTY_TYPES
    ]
    for i in range(0, len(type_buttons), 3):
        builder.row(*type_buttons[i : i + 3])

    price_buttons = [
        InlineKeyboardButton(
            text=_mark(filters.price_range == key, PRICE_RANGE_LABELS[key]),
            callback_data=SearchFilterCallback(
                field="price", value="" if filters.price_range == key else key
            ).pack(),
        )
        for key in PRICE_RANGES
    ]
    builder.row(*price_buttons[:2])
    builder.row(*price_buttons[2:])

    builder.row(
        *[
            InlineKeyboardButton(
                text=_mark(filters.min_beds == beds, f"{beds}+ beds"),
                callback_data=SearchFilterCallback(
                    field="beds", value="" if filters.min_beds == beds else str(beds)
                ).pack(),
            )
            for beds in BED_OPTIONS
        ]
    )

    builder.row(
        InlineKeyboardButton(
            text="🔍 Show results", callback_data=SearchFilterCallback(field="run").pack()
        ),
        InlineKeyboardButton(
            text="♻️ Reset", callback_data=SearchFilterCallback(field="reset").pack()
        ),
    )
    builder.row(InlineKeyboardButton(text="🏠 Main menu", callback_data="main_menu"))
    return builder.as_markup()
