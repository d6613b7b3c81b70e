import math
import re


# --- Field rules ---
PROPERTY_TYPES = ("House", "Apartment", "Condo", "Townhouse", "Villa")
MIN_DESCRIPTION_LENGTH = 50

# Indian mobile: 10 digits starting 6-9, optional 91 / +91 prefix
PHONE_PATTERN = re.compile(r"^[\+]?[9][1][\s]?[6-9]\d{4}\s?\d{5}$")
PHONE_DIGITS_PATTERN = re.compile(r"^[6-9]\d{9}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Profile phone: any format, digits and separators only
PROFILE_PHONE_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]+$")


def parse_number(raw: str) -> float | None:
    """Parses a user-typed number. Returns None for anything that is not a finite number."""
    if raw is None:
        return None
    try:
        value = float(raw.strip().replace(",", ""))
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def is_valid_phone(phone: str) -> bool:
    phone = phone.strip()
    if PHONE_PATTERN.match(phone):
        return True
    digits = re.sub(r"\D", "", phone)
    return bool(PHONE_DIGITS_PATTERN.match(digits))


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email.strip()))


def validate_details(details) -> dict[str, str]:
    """
    Checks every field of the details step.

    :param details: a `DetailsStep` draft.
    :return: field -> message for every failing field; empty when valid.
    """
    errors: dict[str, str] = {}

    if not details.title.strip():
        errors["title"] = "Property title is required"

    if not details.property_type.strip():
        errors["property_type"] = "Property type is required"
    elif details.property_type not in PROPERTY_TYPES:
        errors["property_type"] = "Please choose one of the listed property types"

    if not details.location_text.strip():
        errors["location"] = "Location is required"
    elif details.location is None:
        errors["location"] = "Please select a location on the map"

    if not details.price.strip():
        errors["price"] = "Price is required"
    else:
        price = parse_number(details.price)
        if price is None or price <= 0:
            errors["price"] = "Please enter a valid price"

    for field, label in (("beds", "Number of bedrooms"), ("baths", "Number of bathrooms")):
        raw = getattr(details, field)
        if not raw.strip():
            errors[field] = f"{label} is required"
            continue
        value = parse_number(raw)
        if value is None or value < 0:
            errors[field] = "Please enter a valid number"

    if not details.sqft.strip():
        errors["sqft"] = "Square footage is required"
    else:
        sqft = parse_number(details.sqft)
        if sqft is None or sqft <= 0:
            errors["sqft"] = "Please enter a valid square footage"

    description = details.description.strip()
    if not description:
        errors["description"] = "Description is required"
    elif len(description) < MIN_DESCRIPTION_LENGTH:
        errors["description"] = f"Description should be at least {MIN_DESCRIPTION_LENGTH} characters"

    return errors


def validate_contact(contact) -> dict[str, str]:
    """Same as `validate_details` for a `ContactStep` draft. Images are checked elsewhere."""
    errors: dict[str, str] = {}

    if not contact.contact_name.strip():
        errors["contact_name"] = "Your name is required"

    if not contact.phone.strip():
        errors["phone"] = "Phone number is required"
    elif not is_valid_phone(contact.phone):
        errors["phone"] = "Please enter a valid Indian phone number"

    if not contact.email.strip():
        errors["email"] = "Email is required"
    elif not is_valid_email(contact.email):
        errors["email"] = "Please enter a valid email"

    return errors


def validate_profile_phone(phone: str) -> str | None:
    """Returns the error message for a phone typed on the profile, or None when it is fine."""
    phone = phone.strip()
    if not PROFILE_PHONE_PATTERN.match(phone) or not re.search(r"\d", phone):
        return "Please enter a valid phone number"
    return None
