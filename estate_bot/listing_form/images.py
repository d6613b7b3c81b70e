import itertools
import logging
from dataclasses import dataclass

from estate_bot.listing_form.errors import ImageRejectedError


logger = logging.getLogger(__name__)

MAX_IMAGES = 10
MAX_IMAGE_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class ImageFile:
    """Image picked by the user. `file_id` is the Telegram file reference."""

    name: str
    size: int
    content_type: str = "image/jpeg"
    file_id: str | None = None


class PreviewRegistry:
    """Live preview handles of one form session. Handles must be revoked when no longer shown."""

    def __init__(self):
        self._counter = itertools.count(1)
        self._live: dict[str, ImageFile] = {}

    def create(self, image: ImageFile) -> str:
        handle = f"preview:{next(self._counter)}"
        self._live[handle] = image
        return handle

    def resolve(self, handle: str) -> ImageFile | None:
        return self._live.get(handle)

    def revoke(self, handle: str) -> None:
        self._live.pop(handle, None)

    @property
    def live_count(self) -> int:
        return len(self._live)


@dataclass(frozen=True)
class AttachedImage:
    file: ImageFile
    preview: str


class ImageAttachments:
    def __init__(self, previews: PreviewRegistry | None = None):
        self.previews = previews if previews is not None else PreviewRegistry()
        self._items: list[AttachedImage] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[AttachedImage]:
        return list(self._items)

    @property
    def files(self) -> list[ImageFile]:
        return [item.file for item in self._items]

    def add(self, files: list[ImageFile]) -> list[AttachedImage]:
        """
        Attaches a batch. Either every file is accepted or none is.

        :raises ImageRejectedError: the batch would exceed the image count
            or contains an oversized file.
        """
        if len(self._items) + len(files) > MAX_IMAGES:
            raise ImageRejectedError(f"Maximum {MAX_IMAGES} images allowed")
        if any(f.size > MAX_IMAGE_BYTES for f in files):
            raise ImageRejectedError("Some files are too large. Maximum size is 10MB per image.")

        added = [AttachedImage(file=f, preview=self.previews.create(f)) for f in files]
        self._items.extend(added)
        logger.debug(f"{len(added)} image(s) attached, {len(self._items)} in total")
        return added

    def remove(self, index: int) -> ImageFile:
        if not 0 <= index < len(self._items):
            raise IndexError(f"No image at position {index}")
        item = self._items.pop(index)
        self.previews.revoke(item.preview)
        return item.file

    def clear(self) -> None:
        for item in self._items:
            self.previews.revoke(item.preview)
        self._items.clear()
