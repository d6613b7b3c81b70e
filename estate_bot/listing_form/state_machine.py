import logging
from dataclasses import fields
from typing import Protocol

from estate_bot.geo_service.schemas import SelectedLocation
from estate_bot.listing_form.errors import (
    InvalidTransitionError,
    MissingImagesError,
    SubmissionError,
    ValidationError,
)
from estate_bot.listing_form.images import AttachedImage, ImageAttachments, ImageFile
from estate_bot.listing_form.states import (
    Completed,
    ContactStep,
    DetailsStep,
    FormState,
    ListingPayload,
    Step1,
    Step2,
    Submitting,
    ValidatedDetails,
)
from estate_bot.listing_form.validators import validate_contact


logger = logging.getLogger(__name__)

SUBMISSION_FAILED_NOTICE = (
    "Failed to submit property. Please try again or contact support if the problem persists."
)
MISSING_IMAGES_NOTICE = "Please upload at least one image of your property"


class ListingSubmitter(Protocol):
    async def submit(self, payload: ListingPayload, images: list[ImageFile]) -> int:
        """
        Stores the listing and returns its id.

        :raises SubmissionError: the listing was not stored.
        """
        ...


class ListingFormStateMachine:
    """
    Two-step "list a property" form.

    Step1 collects the property details, Step2 the contact data and images.
    Step2 is only reachable with details that passed validation; going back
    to Step1 keeps both drafts. A failed submit lands back in Step2 with the
    drafts untouched and `notice` set.
    """

    def __init__(self, attachments: ImageAttachments | None = None):
        self.images = attachments if attachments is not None else ImageAttachments()
        self.state: FormState = Step1()
        self.notice: str | None = None
        self.is_open = True

    # --- Drafts ---

    @property
    def details(self) -> DetailsStep:
        if isinstance(self.state, Completed):
            raise InvalidTransitionError("Form is already submitted")
        return self.state.details

    @property
    def contact(self) -> ContactStep:
        if isinstance(self.state, Completed):
            raise InvalidTransitionError("Form is already submitted")
        return self.state.contact

    @property
    def step(self) -> int:
        return 1 if isinstance(self.state, Step1) else 2

    @property
    def is_dirty(self) -> bool:
        if isinstance(self.state, Completed):
            return False
        return (
            not self.state.details.is_empty()
            or not self.state.contact.is_empty()
            or len(self.images) > 0
        )

    def _require(self, *states: type) -> None:
        if not isinstance(self.state, states):
            names = ", ".join(s.__name__ for s in states)
            raise InvalidTransitionError(
                f"Operation needs the form in {names}, not {type(self.state).__name__}"
            )

    @staticmethod
    def _apply(draft, changes: dict) -> None:
        known = {f.name for f in fields(draft)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown form fields: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            setattr(draft, name, value)

    def update_details(self, **changes: str) -> DetailsStep:
        self._require(Step1)
        if "location" in changes or "location_text" in changes:
            raise ValueError("Use set_location / set_location_text for the location")
        self._apply(self.state.details, changes)
        return self.state.details

    def set_location(self, selection: SelectedLocation) -> None:
        """Stores a resolved location: address text and coordinate together."""
        self._require(Step1)
        self.state.details.location = selection
        self.state.details.location_text = selection.address

    def set_location_text(self, text: str) -> None:
        """Typed address without a coordinate. It has to be resolved before advancing."""
        self._require(Step1)
        details = self.state.details
        if details.location is None or details.location.address != text:
            details.location = None
        details.location_text = text

    def update_contact(self, **changes: str) -> ContactStep:
        self._require(Step2)
        self._apply(self.state.contact, changes)
        return self.state.contact

    # --- Images ---

    def add_images(self, files: list[ImageFile]) -> list[AttachedImage]:
        """:raises ImageRejectedError: nothing was attached."""
        self._require(Step1, Step2)
        return self.images.add(files)

    def remove_image(self, index: int) -> ImageFile:
        self._require(Step1, Step2)
        return self.images.remove(index)

    # --- Transitions ---

    def advance(self) -> Step2:
        """:raises ValidationError: every failing details field at once."""
        self._require(Step1)
        validated = ValidatedDetails.from_draft(self.state.details)
        self.state = Step2(details=self.state.details, validated=validated, contact=self.state.contact)
        self.notice = None
        return self.state

    def back(self) -> Step1:
        self._require(Step2)
        self.state = Step1(details=self.state.details, contact=self.state.contact)
        return self.state

    async def submit(self, submitter: ListingSubmitter) -> int:
        """
        Validates the contact step and hands the listing to `submitter`.

        :raises ValidationError: failing contact fields (the missing image
            notice rides along when there are no images either).
        :raises MissingImagesError: fields are fine but no image is attached.
        :raises SubmissionError: the submitter refused; the form is back in Step2.
        """
        self._require(Step2)
        step = self.state

        errors = validate_contact(step.contact)
        has_images = len(self.images) > 0
        if errors:
            raise ValidationError(errors, notice=None if has_images else MISSING_IMAGES_NOTICE)
        if not has_images:
            raise MissingImagesError(MISSING_IMAGES_NOTICE)

        payload = ListingPayload(
            details=step.validated,
            contact_name=step.contact.contact_name.strip(),
            phone=step.contact.phone.strip(),
            email=step.contact.email.strip(),
            notes=step.contact.notes.strip(),
        )
        files = self.images.files
        self.state = Submitting(details=step.details, validated=step.validated, contact=step.contact)
        self.notice = None
        logger.info(f"Submitting listing: {payload.summary(len(files))}")

        try:
            listing_id = await submitter.submit(payload, files)
        except SubmissionError as e:
            logger.error(f"Listing submission failed: {e}", exc_info=True)
            self.notice = SUBMISSION_FAILED_NOTICE
            raise
        finally:
            if isinstance(self.state, Submitting):
                self.state = step

        self.images.clear()
        self.state = Completed(listing_id=listing_id)
        self.is_open = False
        logger.info(f"Listing {listing_id} submitted")
        return listing_id

    # --- Closing ---

    @property
    def requires_close_confirmation(self) -> bool:
        return self.step > 1 or self.is_dirty

    def close(self, confirmed: bool = False) -> bool:
        """
        Dismisses the form. A non-pristine draft is only discarded when `confirmed`.

        :return: True when the form was closed.
        """
        if isinstance(self.state, Submitting):
            raise InvalidTransitionError("Form cannot be closed while it is being submitted")
        if not isinstance(self.state, Completed) and self.requires_close_confirmation and not confirmed:
            return False
        self.reset()
        self.is_open = False
        return True

    def reset(self) -> None:
        self.images.clear()
        self.state = Step1()
        self.notice = None

    def reopen(self) -> None:
        if not isinstance(self.state, (Step1, Step2)):
            self.reset()
        self.is_open = True
