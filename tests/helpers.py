import httpx

from estate_bot.geo_service.mapbox_client import MapboxGeocodingClient
from estate_bot.geo_service.schemas import Coordinate, SelectedLocation
from estate_bot.listing_form.images import ImageFile
from estate_bot.listing_form.state_machine import ListingFormStateMachine


VALID_TOKEN = "pk.test-token"
VALID_DESCRIPTION = "Sea facing apartment with two balconies, close to the station."
MB = 1024 * 1024


def feature(place_name: str, lng: float, lat: float, text: str = "") -> dict:
    return {"center": [lng, lat], "place_name": place_name, "text": text or place_name.split(",")[0]}


def make_client(handler, token: str = VALID_TOKEN) -> MapboxGeocodingClient:
    return MapboxGeocodingClient(access_token=token, transport=httpx.MockTransport(handler))


def image(name: str = "front.jpg", size: int = 2 * MB) -> ImageFile:
    return ImageFile(name=name, size=size, file_id=f"AgAC-{name}")


def fill_valid_details(form: ListingFormStateMachine) -> None:
    form.update_details(
        title="Bandra Sea View",
        property_type="Apartment",
        price="35000000",
        beds="3",
        baths="2",
        sqft="1450",
        description=VALID_DESCRIPTION,
    )
    form.set_location(
        SelectedLocation(
            coordinate=Coordinate(latitude=19.0596, longitude=72.8295),
            address="Bandra West, Mumbai, Maharashtra, India",
        )
    )


def fill_valid_contact(form: ListingFormStateMachine) -> None:
    form.update_contact(
        contact_name="Asha Rao", phone="+91 98765 43210", email="asha@example.in", notes=""
    )
