import pytest

from helpers import MB, fill_valid_contact, fill_valid_details, image
from estate_bot.geo_service.schemas import Coordinate, SelectedLocation
from estate_bot.listing_form.errors import (
    ImageRejectedError,
    InvalidTransitionError,
    MissingImagesError,
    SubmissionError,
    ValidationError,
)
from estate_bot.listing_form.images import MAX_IMAGE_BYTES, ImageAttachments, PreviewRegistry
from estate_bot.listing_form.state_machine import (
    ListingFormStateMachine,
    MISSING_IMAGES_NOTICE,
    SUBMISSION_FAILED_NOTICE,
)
from estate_bot.listing_form.states import Completed, Step1, Step2, Submitting


class RecordingSubmitter:
    def __init__(self, listing_id: int = 7, error: Exception | None = None):
        self.listing_id = listing_id
        self.error = error
        self.calls = []
        self.state_during_submit = None

    def bind(self, form):
        self.form = form
        return self

    async def submit(self, payload, images):
        self.calls.append((payload, images))
        self.state_during_submit = type(self.form.state)
        if self.error is not None:
            raise self.error
        return self.listing_id


def ready_for_submit(form, with_images: bool = True):
    fill_valid_details(form)
    if with_images:
        form.add_images([image("front.jpg"), image("kitchen.jpg")])
    form.advance()
    fill_valid_contact(form)


# --- Step 1 ---


def test_new_form_starts_pristine(form):
    assert isinstance(form.state, Step1)
    assert form.step == 1
    assert not form.is_dirty
    assert not form.requires_close_confirmation


def test_advance_reports_all_failing_fields_at_once(form):
    form.update_details(title="Flat", description="too short")
    with pytest.raises(ValidationError) as exc_info:
        form.advance()

    errors = exc_info.value.errors
    assert "title" not in errors
    assert {"property_type", "location", "price", "description"} <= set(errors)
    assert isinstance(form.state, Step1)


def test_description_of_49_characters_blocks_and_50_passes(form):
    fill_valid_details(form)
    form.update_details(description="d" * 49)
    with pytest.raises(ValidationError) as exc_info:
        form.advance()
    assert set(exc_info.value.errors) == {"description"}

    form.update_details(description="d" * 50)
    assert isinstance(form.advance(), Step2)


def test_typed_location_must_be_resolved(form):
    fill_valid_details(form)
    form.set_location_text("Somewhere near Pune station")

    assert form.details.location is None
    with pytest.raises(ValidationError) as exc_info:
        form.advance()
    assert exc_info.value.errors == {"location": "Please select a location on the map"}


def test_same_location_text_keeps_the_coordinate(form):
    fill_valid_details(form)
    form.set_location_text("Bandra West, Mumbai, Maharashtra, India")
    assert form.details.location is not None


def test_validated_details_are_typed(form):
    fill_valid_details(form)
    form.update_details(price="3,50,00,000")
    step = form.advance()

    assert step.validated.price == 35000000.0
    assert step.validated.beds == 3
    assert step.validated.latitude == 19.0596
    assert step.validated.address == "Bandra West, Mumbai, Maharashtra, India"


def test_location_goes_through_its_own_setters(form):
    with pytest.raises(ValueError):
        form.update_details(location_text="Pune")
    with pytest.raises(ValueError):
        form.update_details(colour="red")


def test_contact_cannot_be_edited_in_step1(form):
    with pytest.raises(InvalidTransitionError):
        form.update_contact(contact_name="Asha")


def test_back_keeps_both_drafts(form):
    fill_valid_details(form)
    form.advance()
    fill_valid_contact(form)

    form.back()

    assert isinstance(form.state, Step1)
    assert form.details.title == "Bandra Sea View"
    assert form.contact.contact_name == "Asha Rao"

    form.advance()
    assert form.contact.phone == "+91 98765 43210"


# --- Images ---


def test_eleventh_image_is_refused_and_the_rest_kept(form):
    form.add_images([image(f"{i}.jpg") for i in range(10)])
    before = form.images.files

    with pytest.raises(ImageRejectedError, match="Maximum 10 images allowed"):
        form.add_images([image("extra.jpg")])

    assert form.images.files == before
    assert len(form.images) == 10


def test_batch_that_overflows_is_refused_whole(form):
    form.add_images([image(f"{i}.jpg") for i in range(8)])
    with pytest.raises(ImageRejectedError):
        form.add_images([image("a.jpg"), image("b.jpg"), image("c.jpg")])
    assert len(form.images) == 8


def test_size_limit_is_inclusive(form):
    form.add_images([image("exact.jpg", size=MAX_IMAGE_BYTES)])
    assert len(form.images) == 1

    with pytest.raises(ImageRejectedError):
        form.add_images([image("small.jpg", size=MB), image("huge.jpg", size=10 * MB + 1)])
    assert len(form.images) == 1


def test_removing_an_image_releases_its_preview(form):
    added = form.add_images([image("a.jpg"), image("b.jpg")])
    previews = form.images.previews
    assert previews.live_count == 2

    removed = form.remove_image(0)

    assert removed.name == "a.jpg"
    assert previews.live_count == 1
    assert previews.resolve(added[0].preview) is None
    assert previews.resolve(added[1].preview).name == "b.jpg"


def test_removing_a_missing_index_fails(form):
    with pytest.raises(IndexError):
        form.remove_image(0)


def test_form_uses_the_attachments_it_is_given():
    registry = PreviewRegistry()
    attachments = ImageAttachments(registry)
    form = ListingFormStateMachine(attachments)

    form.add_images([image("a.jpg"), image("b.jpg")])

    assert form.images is attachments
    assert registry.live_count == 2

    form.remove_image(0)
    assert registry.live_count == 1

    form.close(confirmed=True)
    assert registry.live_count == 0


# --- Submit ---


@pytest.mark.asyncio
async def test_successful_submit_completes_and_releases_previews(form):
    ready_for_submit(form)
    submitter = RecordingSubmitter(listing_id=42).bind(form)

    listing_id = await form.submit(submitter)

    assert listing_id == 42
    assert submitter.state_during_submit is Submitting
    assert form.state == Completed(listing_id=42)
    assert form.images.previews.live_count == 0
    assert not form.is_open

    payload, images = submitter.calls[0]
    assert payload.contact_name == "Asha Rao"
    assert payload.details.title == "Bandra Sea View"
    assert [i.name for i in images] == ["front.jpg", "kitchen.jpg"]


@pytest.mark.asyncio
async def test_failed_submit_returns_to_step2_with_drafts(form):
    ready_for_submit(form)
    submitter = RecordingSubmitter(error=SubmissionError("database is down")).bind(form)

    with pytest.raises(SubmissionError):
        await form.submit(submitter)

    assert isinstance(form.state, Step2)
    assert form.notice == SUBMISSION_FAILED_NOTICE
    assert form.contact.email == "asha@example.in"
    assert form.details.title == "Bandra Sea View"
    assert len(form.images) == 2
    assert form.is_open


@pytest.mark.asyncio
async def test_submit_after_a_failure_can_succeed(form):
    ready_for_submit(form)
    with pytest.raises(SubmissionError):
        await form.submit(RecordingSubmitter(error=SubmissionError("x")).bind(form))

    assert await form.submit(RecordingSubmitter(listing_id=3).bind(form)) == 3
    assert form.notice is None


@pytest.mark.asyncio
async def test_submit_without_images(form):
    ready_for_submit(form, with_images=False)
    submitter = RecordingSubmitter().bind(form)

    with pytest.raises(MissingImagesError) as exc_info:
        await form.submit(submitter)

    assert str(exc_info.value) == MISSING_IMAGES_NOTICE
    assert submitter.calls == []
    assert isinstance(form.state, Step2)


@pytest.mark.asyncio
async def test_contact_errors_carry_the_image_notice(form):
    fill_valid_details(form)
    form.advance()
    form.update_contact(contact_name="Asha", phone="12345", email="asha@example.in")

    with pytest.raises(ValidationError) as exc_info:
        await form.submit(RecordingSubmitter().bind(form))

    assert set(exc_info.value.errors) == {"phone"}
    assert exc_info.value.notice == MISSING_IMAGES_NOTICE


@pytest.mark.asyncio
async def test_submit_from_step1_is_refused(form):
    with pytest.raises(InvalidTransitionError):
        await form.submit(RecordingSubmitter().bind(form))


# --- Closing ---


def test_pristine_form_closes_without_confirmation(form):
    assert form.close() is True
    assert not form.is_open


def test_dirty_form_needs_confirmation(form):
    form.update_details(title="Villa")

    assert form.requires_close_confirmation
    assert form.close() is False
    assert form.is_open
    assert form.details.title == "Villa"

    assert form.close(confirmed=True) is True
    assert not form.is_open


def test_step2_needs_confirmation_even_when_untouched(form):
    fill_valid_details(form)
    form.advance()
    assert form.requires_close_confirmation


def test_confirmed_close_discards_images(form):
    form.add_images([image("a.jpg")])
    form.close(confirmed=True)
    assert len(form.images) == 0
    assert form.images.previews.live_count == 0


def test_reopen_after_close_starts_fresh(form):
    form.update_details(title="Old draft")
    form.close(confirmed=True)
    form.reopen()

    assert form.is_open
    assert form.details.title == ""


def test_completed_form_has_no_drafts():
    form = ListingFormStateMachine()
    form.state = Completed(listing_id=1)
    with pytest.raises(InvalidTransitionError):
        form.details
    assert form.close() is True


def test_location_selection_survives_until_changed(form):
    selection = SelectedLocation(
        coordinate=Coordinate(latitude=12.9698, longitude=77.7499), address="Whitefield"
    )
    form.set_location(selection)
    assert form.details.location_text == "Whitefield"
    form.set_location_text("Whitefield, Bengaluru")
    assert form.details.location is None
