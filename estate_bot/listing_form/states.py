from dataclasses import dataclass, field, fields

from estate_bot.geo_service.schemas import SelectedLocation
from estate_bot.listing_form.errors import ValidationError
from estate_bot.listing_form.validators import parse_number, validate_details


@dataclass
class DetailsStep:
    """Raw strings as typed by the user, plus the resolved location."""

    title: str = ""
    property_type: str = ""
    location_text: str = ""
    location: SelectedLocation | None = None
    price: str = ""
    beds: str = ""
    baths: str = ""
    sqft: str = ""
    description: str = ""

    def is_empty(self) -> bool:
        return self.location is None and not any(
            getattr(self, f.name).strip() for f in fields(self) if f.name != "location"
        )


@dataclass
class ContactStep:
    contact_name: str = ""
    phone: str = ""
    email: str = ""
    notes: str = ""

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name).strip() for f in fields(self))


@dataclass(frozen=True)
class ValidatedDetails:
    """Details that passed the first gate. Only `ValidatedDetails.from_draft` builds them."""

    title: str
    property_type: str
    address: str
    latitude: float
    longitude: float
    price: float
    beds: int
    baths: int
    sqft: float
    description: str

    @classmethod
    def from_draft(cls, details: DetailsStep) -> "ValidatedDetails":
        """:raises ValidationError: with every failing field of the draft."""
        errors = validate_details(details)
        if errors:
            raise ValidationError(errors)
        return cls(
            title=details.title.strip(),
            property_type=details.property_type,
            address=details.location.address,
            latitude=details.location.coordinate.latitude,
            longitude=details.location.coordinate.longitude,
            price=parse_number(details.price),
            beds=int(parse_number(details.beds)),
            baths=int(parse_number(details.baths)),
            sqft=parse_number(details.sqft),
            description=details.description.strip(),
        )


# --- Form states ---


@dataclass
class Step1:
    details: DetailsStep = field(default_factory=DetailsStep)
    contact: ContactStep = field(default_factory=ContactStep)


@dataclass
class Step2:
    details: DetailsStep
    validated: ValidatedDetails
    contact: ContactStep = field(default_factory=ContactStep)


@dataclass
class Submitting:
    details: DetailsStep
    validated: ValidatedDetails
    contact: ContactStep


@dataclass(frozen=True)
class Completed:
    listing_id: int


FormState = Step1 | Step2 | Submitting | Completed


@dataclass(frozen=True)
class ListingPayload:
    """What the persistence collaborator receives on submit."""

    details: ValidatedDetails
    contact_name: str
    phone: str
    email: str
    notes: str

    def summary(self, image_count: int) -> dict:
        return {
            "title": self.details.title,
            "property_type": self.details.property_type,
            "address": self.details.address,
            "price": self.details.price,
            "contact_name": self.contact_name,
            "image_count": image_count,
        }
