import html
import logging

from aiogram import F, Router
from aiogram.filters import Command, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message, ReplyKeyboardRemove
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from estate_bot.auth.user_session import UserSession
from estate_bot.filters.auth_filters import IsLoggedInFilter
from estate_bot.geo_service.device_location import DENY_LOCATION_TEXT, SharedLocationLocator
from estate_bot.geo_service.errors import (
    CredentialError,
    NoResultsError,
    PermissionDeniedError,
    ProviderError,
    SupersededError,
    UnavailableError,
)
from estate_bot.geo_service.location_resolver import Intent
from estate_bot.geo_service.schemas import Coordinate, SelectedLocation
from estate_bot.keyboards.common_keyboards import get_main_menu_kb
from estate_bot.keyboards.listing_keyboards import (
    ImageActionCallback,
    PropertyTypeCallback,
    SuggestionCallback,
    get_confirm_close_kb,
    get_details_review_kb,
    get_images_kb,
    get_listing_cancel_kb,
    get_location_suggestions_kb,
    get_property_type_kb,
    get_share_location_kb,
    get_skip_kb,
    get_submit_kb,
)
from estate_bot.listing_form.errors import (
    ImageRejectedError,
    InvalidTransitionError,
    MissingImagesError,
    SubmissionError,
    ValidationError,
)
from estate_bot.listing_form.images import MAX_IMAGES, ImageFile
from estate_bot.listing_form.registry import ListingFormRegistry, ListingSession
from estate_bot.listing_form.validators import validate_contact, validate_details
from estate_bot.listing_service.submitter import DatabaseListingSubmitter
from estate_bot.utils.ui_utils import format_inr_price


add_listing_router = Router()
logger = logging.getLogger(__name__)


class ListingFSM(StatesGroup):
    """Chat steps of the listing form. Step 1 ends at details_review, step 2 at submit_review."""

    title = State()
    property_type = State()
    location = State()
    price = State()
    beds = State()
    baths = State()
    sqft = State()
    description = State()
    details_review = State()
    contact_name = State()
    phone = State()
    email = State()
    notes = State()
    images = State()
    submit_review = State()


DETAILS_FLOW = ("title", "property_type", "location", "price", "beds", "baths", "sqft", "description")
CONTACT_FLOW = ("contact_name", "phone", "email", "notes", "images")

TEXT_DETAILS_FIELDS = ("title", "price", "beds", "baths", "sqft", "description")
TEXT_CONTACT_FIELDS = ("contact_name", "phone", "email", "notes")

FIELD_STATES: dict[str, State] = {name: getattr(ListingFSM, name) for name in DETAILS_FLOW + CONTACT_FLOW}
STATE_FIELDS: dict[str, str] = {s.state: name for name, s in FIELD_STATES.items()}

FIELD_PROMPTS = {
    "title": "🏷 <b>Step 1 of 2: property details</b>\n\nEnter the property title:",
    "property_type": "🏘 Choose the property type:",
    "location": (
        "📍 <b>Where is the property?</b>\n\n"
        "Type the address and pick one of the suggestions, "
        "or share a location pin (📎 → Location)."
    ),
    "price": "💰 Enter the price in rupees (e.g. 35000000 for ₹3.5 Cr):",
    "beds": "🛏 How many bedrooms?",
    "baths": "🛁 How many bathrooms?",
    "sqft": "📐 Enter the area in square feet:",
    "description": "📝 Describe the property (at least 50 characters):",
    "contact_name": "👤 <b>Step 2 of 2: contact details</b>\n\nEnter your name:",
    "phone": "📞 Enter your phone number (e.g. +91 98765 43210):",
    "email": "📧 Enter your email:",
    "notes": "🗒 Any additional notes? Send them or press «Skip».",
    "images": (
        f"🖼 Send photos of the property, up to {MAX_IMAGES} images, 10 MB each.\n"
        "Press «Done» when finished."
    ),
}

FIELD_LABELS = {
    "title": "Title",
    "property_type": "Property type",
    "location": "Location",
    "price": "Price",
    "beds": "Bedrooms",
    "baths": "Bathrooms",
    "sqft": "Area",
    "description": "Description",
    "contact_name": "Name",
    "phone": "Phone",
    "email": "Email",
}


# --- Helpers ---


async def _get_listing(
    event: Message | CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry
) -> ListingSession | None:
    listing = listing_registry.get(event.from_user.id)
    if listing is None:
        await state.clear()
        message = event.message if isinstance(event, CallbackQuery) else event
        await message.answer(
            "There is no open listing form. Start a new one from the menu.",
            reply_markup=get_main_menu_kb(),
        )
    return listing


def _format_errors(errors: dict[str, str]) -> str:
    return "\n".join(f"• <b>{FIELD_LABELS.get(name, name)}:</b> {html.escape(text)}" for name, text in errors.items())


async def _prompt_field(message: Message, state: FSMContext, field: str) -> None:
    await state.set_state(FIELD_STATES[field])
    if field == "property_type":
        kb = get_property_type_kb()
    elif field == "location":
        kb = get_share_location_kb()
    elif field == "notes":
        kb = get_skip_kb("listing_skip_notes")
    elif field == "images":
        kb = get_images_kb([])
    else:
        kb = get_listing_cancel_kb()
    await message.answer(FIELD_PROMPTS[field], reply_markup=kb)


async def _show_details_review(message: Message, state: FSMContext, listing: ListingSession) -> None:
    details = listing.form.details
    price = details.price
    try:
        price = format_inr_price(float(details.price))
    except ValueError:
        pass
    text = (
        "🔔 <b>Check the property details:</b>\n\n"
        f"<b>Title:</b> {html.escape(details.title)}\n"
        f"<b>Type:</b> {html.escape(details.property_type)}\n"
        f"<b>Location:</b> {html.escape(details.location_text)}\n"
        f"<b>Price:</b> {html.escape(price)}\n"
        f"<b>Bedrooms / bathrooms:</b> {html.escape(details.beds)} / {html.escape(details.baths)}\n"
        f"<b>Area:</b> {html.escape(details.sqft)} sqft\n"
        f"<b>Description:</b>\n{html.escape(details.description)}"
    )
    await state.set_state(ListingFSM.details_review)
    await message.answer(text, reply_markup=get_details_review_kb())


async def _show_submit_review(message: Message, state: FSMContext, listing: ListingSession) -> None:
    form = listing.form
    contact = form.contact
    names = [image.file.name for image in form.images.items]
    files_list = "\n".join(f" - 🖼 {html.escape(name)}" for name in names) or " - none"
    text = (
        "🔔 <b>Check the listing before submitting:</b>\n\n"
        f"<b>Property:</b> {html.escape(form.details.title)}, {html.escape(form.details.location_text)}\n"
        f"<b>Name:</b> {html.escape(contact.contact_name)}\n"
        f"<b>Phone:</b> {html.escape(contact.phone)}\n"
        f"<b>Email:</b> {html.escape(contact.email)}\n"
        f"<b>Notes:</b> {html.escape(contact.notes) or '-'}\n\n"
        f"<b>Images ({len(names)}):</b>\n{files_list}"
    )
    await state.set_state(ListingFSM.submit_review)
    await message.answer(text, reply_markup=get_submit_kb())


async def _after_field(message: Message, state: FSMContext, listing: ListingSession, field: str) -> None:
    """Moves on after a field was accepted: to the next field, or back to the review when fixing."""
    data = await state.get_data()
    if data.get("fixing"):
        await state.update_data(fixing=False)
        if field in DETAILS_FLOW:
            await _show_details_review(message, state, listing)
        else:
            await _show_submit_review(message, state, listing)
        return

    flow = DETAILS_FLOW if field in DETAILS_FLOW else CONTACT_FLOW
    position = flow.index(field)
    if position + 1 < len(flow):
        await _prompt_field(message, state, flow[position + 1])
    elif flow is DETAILS_FLOW:
        await _show_details_review(message, state, listing)
    else:
        await _show_submit_review(message, state, listing)


async def _location_selected(
    message: Message, state: FSMContext, listing: ListingSession, selection: SelectedLocation
) -> None:
    listing.form.set_location(selection)
    await message.answer(
        f"📍 Location set: <b>{html.escape(selection.address)}</b>",
        reply_markup=ReplyKeyboardRemove(),
    )
    await _after_field(message, state, listing, "location")


# --- Start ---


@add_listing_router.callback_query(F.data == "list_property", IsLoggedInFilter())
async def start_listing_callback(
    query: CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry
):
    await query.answer()
    await start_listing(query.message, state, listing_registry, query.from_user.id)


@add_listing_router.message(Command("list"), IsLoggedInFilter())
async def start_listing_cmd(message: Message, state: FSMContext, listing_registry: ListingFormRegistry):
    await start_listing(message, state, listing_registry, message.from_user.id)


async def start_listing(
    message: Message, state: FSMContext, listing_registry: ListingFormRegistry, user_id: int
) -> None:
    """Opens the listing form. A form left open earlier is continued from its review."""
    existing = listing_registry.get(user_id)
    if existing is not None and existing.form.is_dirty:
        await message.answer("📝 You have an unfinished listing, let's continue it.")
        if existing.form.step == 1:
            await _show_details_review(message, state, existing)
        else:
            await _show_submit_review(message, state, existing)
        return

    listing_registry.open(user_id)
    await state.clear()
    await _prompt_field(message, state, "title")


# --- Text fields ---


@add_listing_router.message(
    StateFilter(*(FIELD_STATES[f] for f in TEXT_DETAILS_FIELDS + TEXT_CONTACT_FIELDS)),
    F.text,
    IsLoggedInFilter(),
)
async def process_text_field(message: Message, state: FSMContext, listing_registry: ListingFormRegistry):
    """
    Stores a typed field into the draft. The field is checked right away so
    the user can retype it; the step gate still checks everything again.
    """
    listing = await _get_listing(message, state, listing_registry)
    if listing is None:
        return

    field = STATE_FIELDS[await state.get_state()]
    value = message.text.strip()
    form = listing.form

    try:
        if field in TEXT_DETAILS_FIELDS:
            form.update_details(**{field: value})
            errors = validate_details(form.details)
        else:
            form.update_contact(**{field: value})
            errors = validate_contact(form.contact)
    except InvalidTransitionError as e:
        logger.warning(f"Field '{field}' typed out of order by user {message.from_user.id}: {e}")
        await message.answer("⚠️ This field cannot be changed right now.")
        return

    if field in errors:
        await message.answer(f"❌ {html.escape(errors[field])}", reply_markup=get_listing_cancel_kb())
        return

    await _after_field(message, state, listing, field)


@add_listing_router.callback_query(ListingFSM.property_type, PropertyTypeCallback.filter(), IsLoggedInFilter())
async def process_property_type(
    query: CallbackQuery,
    callback_data: PropertyTypeCallback,
    state: FSMContext,
    listing_registry: ListingFormRegistry,
):
    await query.answer()
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        return
    listing.form.update_details(property_type=callback_data.property_type)
    await query.message.edit_text(f"🏘 Property type: <b>{callback_data.property_type}</b>")
    await _after_field(query.message, state, listing, "property_type")


# --- Location ---


@add_listing_router.message(
    ListingFSM.location, F.text, F.text != DENY_LOCATION_TEXT, IsLoggedInFilter()
)
async def process_location_query(message: Message, state: FSMContext, listing_registry: ListingFormRegistry):
    """Typed address: debounced autocomplete. Only the newest message gets an answer."""
    listing = await _get_listing(message, state, listing_registry)
    if listing is None:
        return

    resolver = listing.resolver
    query = message.text.strip()
    listing.form.set_location_text(query)

    suggestions = await resolver.search(query)
    if suggestions is None:
        return

    if isinstance(resolver.last_error, CredentialError):
        await message.answer(
            "⚠️ Address search is not available right now. "
            "Please share a location pin (📎 → Location) instead."
        )
        return

    if len(query) < resolver.min_query_length:
        await message.answer(f"✍️ Type at least {resolver.min_query_length} characters of the address.")
        return

    if not suggestions:
        await message.answer(
            "🤷 No suggestions for this address. Use it as typed, refine it or share a location pin.",
            reply_markup=get_location_suggestions_kb([]),
        )
        return

    await message.answer(
        "📍 Pick the matching address:", reply_markup=get_location_suggestions_kb(suggestions)
    )


@add_listing_router.callback_query(ListingFSM.location, SuggestionCallback.filter(), IsLoggedInFilter())
async def process_location_pick(
    query: CallbackQuery,
    callback_data: SuggestionCallback,
    state: FSMContext,
    listing_registry: ListingFormRegistry,
):
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        await query.answer()
        return

    resolver = listing.resolver
    if callback_data.index >= 0:
        if callback_data.index >= len(resolver.suggestions):
            await query.answer("This list is outdated, type the address again.", show_alert=True)
            return
        await query.answer()
        selection = resolver.select_suggestion(resolver.suggestions[callback_data.index])
        await _location_selected(query.message, state, listing, selection)
        return

    await query.answer()
    address = resolver.query or listing.form.details.location_text
    try:
        selection = await resolver.resolve_forward(address)
    except SupersededError:
        return
    except NoResultsError as e:
        await query.message.answer(
            f"🤷 Nothing found for «{html.escape(e.query)}». Refine the address or share a location pin."
        )
        return
    except ProviderError as e:
        logger.warning(f"Forward geocoding failed for user {query.from_user.id}: {e}")
        await query.message.answer(
            "⚠️ The address could not be checked right now. Please share a location pin instead."
        )
        return

    await _location_selected(query.message, state, listing, selection)


@add_listing_router.message(ListingFSM.location, F.location | F.venue, IsLoggedInFilter())
async def process_location_pin(message: Message, state: FSMContext, listing_registry: ListingFormRegistry):
    """A shared location. Venues are pins picked on the Telegram map, plain locations come from the device."""
    listing = await _get_listing(message, state, listing_registry)
    if listing is None:
        return

    resolver = listing.resolver
    try:
        if message.venue is not None:
            coordinate = Coordinate(
                latitude=message.venue.location.latitude,
                longitude=message.venue.location.longitude,
            )
            selection = await resolver.resolve_reverse(coordinate, intent=Intent.MAP_CLICK)
        else:
            selection = await resolver.locate_device(SharedLocationLocator(message))
    except SupersededError:
        return
    except (UnavailableError, ValueError) as e:
        logger.info(f"Shared location of user {message.from_user.id} not usable: {e}")
        await message.answer("⚠️ This location cannot be used. Type the address instead.")
        return

    await _location_selected(message, state, listing, selection)


@add_listing_router.message(ListingFSM.location, F.text == DENY_LOCATION_TEXT, IsLoggedInFilter())
async def process_location_denied(message: Message, state: FSMContext, listing_registry: ListingFormRegistry):
    listing = await _get_listing(message, state, listing_registry)
    if listing is None:
        return
    try:
        await listing.resolver.use_current_device(SharedLocationLocator(message))
    except PermissionDeniedError:
        await message.answer(
            "👌 No problem. Type the address and pick it from the suggestions.",
            reply_markup=ReplyKeyboardRemove(),
        )


# --- Step gate ---


@add_listing_router.callback_query(F.data == "listing_next", IsLoggedInFilter())
async def process_details_next(query: CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry):
    await query.answer()
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        return

    try:
        listing.form.advance()
    except ValidationError as e:
        first_field = next(iter(e.errors))
        await query.message.answer(
            f"❌ <b>Please fix these fields:</b>\n{_format_errors(e.errors)}"
        )
        await state.update_data(fixing=True)
        await _prompt_field(query.message, state, first_field)
        return
    except InvalidTransitionError:
        await _show_submit_review(query.message, state, listing)
        return

    await query.message.edit_reply_markup(reply_markup=None)
    if listing.form.contact.is_empty():
        await _prompt_field(query.message, state, "contact_name")
    else:
        await _show_submit_review(query.message, state, listing)


@add_listing_router.callback_query(F.data == "listing_back", IsLoggedInFilter())
async def process_back(query: CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry):
    await query.answer()
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        return
    try:
        listing.form.back()
    except InvalidTransitionError:
        pass
    await _show_details_review(query.message, state, listing)


# --- Notes and images ---


@add_listing_router.callback_query(ListingFSM.notes, F.data == "listing_skip_notes", IsLoggedInFilter())
async def process_skip_notes(query: CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry):
    await query.answer()
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        return
    await _after_field(query.message, state, listing, "notes")


@add_listing_router.message(
    ListingFSM.images, F.content_type.in_({"photo", "document"}), IsLoggedInFilter()
)
async def process_image(message: Message, state: FSMContext, listing_registry: ListingFormRegistry):
    """Catches a photo (or an image sent as a file) and attaches it to the draft."""
    listing = await _get_listing(message, state, listing_registry)
    if listing is None:
        return

    if message.photo:
        photo = message.photo[-1]
        image = ImageFile(
            name=f"Photo_{photo.file_unique_id[:6]}.jpg",
            size=photo.file_size or 0,
            content_type="image/jpeg",
            file_id=photo.file_id,
        )
    else:
        document = message.document
        if not (document.mime_type or "").startswith("image/"):
            await message.answer("❌ Only images can be attached.")
            return
        image = ImageFile(
            name=document.file_name or f"Image_{document.file_unique_id[:6]}",
            size=document.file_size or 0,
            content_type=document.mime_type,
            file_id=document.file_id,
        )

    try:
        listing.form.add_images([image])
    except ImageRejectedError as e:
        await message.answer(f"❌ {html.escape(str(e))}")
        return

    names = [item.file.name for item in listing.form.images.items]
    await message.answer(
        f"✅ Image «{html.escape(image.name)}» added ({len(names)}/{MAX_IMAGES}).",
        reply_markup=get_images_kb(names),
    )


@add_listing_router.callback_query(ImageActionCallback.filter(F.action == "remove"), IsLoggedInFilter())
async def process_image_remove(
    query: CallbackQuery,
    callback_data: ImageActionCallback,
    state: FSMContext,
    listing_registry: ListingFormRegistry,
):
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        await query.answer()
        return
    try:
        removed = listing.form.remove_image(callback_data.index)
    except (IndexError, InvalidTransitionError):
        await query.answer("This image is already gone.", show_alert=True)
        return
    await query.answer(f"Removed {removed.name}")
    names = [item.file.name for item in listing.form.images.items]
    await query.message.edit_reply_markup(reply_markup=get_images_kb(names))


@add_listing_router.callback_query(ImageActionCallback.filter(F.action == "done"), IsLoggedInFilter())
async def process_images_done(query: CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry):
    await query.answer()
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        return
    await state.update_data(fixing=False)
    await _show_submit_review(query.message, state, listing)


# --- Submit ---


@add_listing_router.callback_query(F.data == "listing_submit", IsLoggedInFilter())
async def process_submit(
    query: CallbackQuery,
    state: FSMContext,
    listing_registry: ListingFormRegistry,
    session_pool: async_sessionmaker[AsyncSession],
    user_session: UserSession,
):
    await query.answer()
    listing = await _get_listing(query, state, listing_registry)
    if listing is None:
        return

    submitter = DatabaseListingSubmitter(session_pool, user_session)
    loading_msg = await query.message.answer("⏳ Submitting your listing...")
    try:
        listing_id = await listing.form.submit(submitter)
    except ValidationError as e:
        notice = f"\n\n⚠️ {html.escape(e.notice)}" if e.notice else ""
        await loading_msg.edit_text(f"❌ <b>Please fix these fields:</b>\n{_format_errors(e.errors)}{notice}")
        await state.update_data(fixing=True)
        await _prompt_field(query.message, state, next(iter(e.errors)))
        return
    except MissingImagesError as e:
        await loading_msg.edit_text(f"⚠️ {html.escape(str(e))}")
        await _prompt_field(query.message, state, "images")
        return
    except SubmissionError:
        await loading_msg.edit_text(
            f"❌ {html.escape(listing.form.notice or 'Failed to submit property.')}",
            reply_markup=get_submit_kb(),
        )
        return
    except InvalidTransitionError:
        await loading_msg.edit_text("⚠️ Go to the contact step first.", reply_markup=get_details_review_kb())
        return

    listing_registry.discard(query.from_user.id)
    await state.clear()
    await loading_msg.edit_text(
        f"✅ <b>Property listed successfully!</b> (listing #{listing_id})\n\n"
        "Our team will review your listing and get back to you within 24 hours."
    )
    await query.message.answer("Choose an action:", reply_markup=get_main_menu_kb())


# --- Cancel ---


@add_listing_router.callback_query(F.data == "listing_cancel", IsLoggedInFilter())
async def process_cancel(query: CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry):
    listing = listing_registry.get(query.from_user.id)
    try:
        closed = listing is None or listing.form.close(confirmed=False)
    except InvalidTransitionError:
        await query.answer("The listing is being submitted, please wait.", show_alert=True)
        return
    await query.answer()
    if closed:
        listing_registry.discard(query.from_user.id)
        await state.clear()
        await query.message.answer("Listing form closed.", reply_markup=get_main_menu_kb())
        return

    await query.message.answer(
        "Are you sure you want to close? Your progress will be lost.",
        reply_markup=get_confirm_close_kb(),
    )


@add_listing_router.callback_query(F.data == "listing_cancel_confirm", IsLoggedInFilter())
async def process_cancel_confirm(
    query: CallbackQuery, state: FSMContext, listing_registry: ListingFormRegistry
):
    listing = listing_registry.get(query.from_user.id)
    if listing is not None:
        try:
            listing.form.close(confirmed=True)
        except InvalidTransitionError:
            await query.answer("The listing is being submitted, please wait.", show_alert=True)
            return
    await query.answer()
    listing_registry.discard(query.from_user.id)
    await state.clear()
    await query.message.edit_text("🗑 Listing draft discarded.")
    await query.message.answer("Choose an action:", reply_markup=get_main_menu_kb())


@add_listing_router.callback_query(F.data == "listing_cancel_abort", IsLoggedInFilter())
async def process_cancel_abort(query: CallbackQuery):
    await query.answer("Continue where you left off.")
    await query.message.delete()
