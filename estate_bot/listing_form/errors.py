class ListingFormError(Exception):
    """Base class of listing form failures. All of them are recoverable."""


class ValidationError(ListingFormError):
    """
    One or more fields failed validation.

    :param errors: field name -> message, every failing field of the step.
    :param notice: standalone message that is not tied to a field.
    """

    def __init__(self, errors: dict[str, str], notice: str | None = None):
        self.errors = dict(errors)
        self.notice = notice
        message = "; ".join(f"{field}: {text}" for field, text in self.errors.items())
        super().__init__(message or notice or "Validation failed")


class MissingImagesError(ListingFormError):
    def __init__(self, message: str = "Please upload at least one image of your property"):
        super().__init__(message)


class ImageRejectedError(ListingFormError):
    """The whole batch was refused; nothing was attached."""


class SubmissionError(ListingFormError):
    """The persistence collaborator refused the listing."""


class InvalidTransitionError(ListingFormError):
    """Operation is not possible in the current form state."""
