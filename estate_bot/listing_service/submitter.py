import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from estate_bot.auth.user_session import UserSession
from estate_bot.database import crud
from estate_bot.listing_form.errors import SubmissionError
from estate_bot.listing_form.images import ImageFile
from estate_bot.listing_form.states import ListingPayload


logger = logging.getLogger(__name__)


class DatabaseListingSubmitter:
    """
    Stores a submitted listing with its images in its own transaction.

    Images are kept as Telegram file references; the files themselves stay
    on Telegram's side.
    """

    def __init__(self, session_pool: async_sessionmaker[AsyncSession], user_session: UserSession):
        self.session_pool = session_pool
        self.user_session = user_session

    async def submit(self, payload: ListingPayload, images: list[ImageFile]) -> int:
        missing = [image.name for image in images if not image.file_id]
        if missing:
            raise SubmissionError(f"Images were not uploaded: {', '.join(missing)}")

        try:
            async with self.session_pool.begin() as session:
                prop = await crud.create_property(
                    session, payload, images, owner_telegram_id=self.user_session.telegram_id
                )
                return prop.id
        except SQLAlchemyError as e:
            logger.error(f"Database error while storing listing: {e}", exc_info=True)
            raise SubmissionError("Listing could not be stored") from e
