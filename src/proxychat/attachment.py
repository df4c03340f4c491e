"""Image attachment selection, preview handles, and encoding.

The pending image lives in an :class:`AttachmentSlot` until it is replaced,
cleared, or dispatched. Each selection owns exactly one preview handle from a
:class:`PreviewRegistry`; every transition releases the previous handle once.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
import logging
import mimetypes
from pathlib import Path
from uuid import uuid4

from .exceptions import AttachmentError, AttachmentErrorKind
from .models import EncodedImage

LOGGER = logging.getLogger(__name__)

MAX_IMAGE_BYTES = int(3.8 * 1024 * 1024)

# Extensions mimetypes does not know on every platform.
_EXTRA_IMAGE_TYPES = {
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".avif": "image/avif",
}


def _guess_media_type(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in _EXTRA_IMAGE_TYPES:
        return _EXTRA_IMAGE_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


@dataclass(frozen=True)
class ImageFile:
    """A user-selected file that may be sent as an image."""

    path: Path
    name: str
    media_type: str
    size: int

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    @classmethod
    def from_path(cls, path: str | Path) -> ImageFile:
        """Describe a file on disk; raises AttachmentError when it cannot be read."""
        resolved = Path(path).expanduser()
        try:
            resolved = resolved.resolve()
            if not resolved.is_file():
                raise AttachmentError(
                    AttachmentErrorKind.UNREADABLE, f"Not a file: {path}"
                )
            size = resolved.stat().st_size
        except OSError as exc:
            raise AttachmentError(
                AttachmentErrorKind.UNREADABLE, f"Image not found: {path}"
            ) from exc
        return cls(
            path=resolved,
            name=resolved.name,
            media_type=_guess_media_type(resolved),
            size=size,
        )


class PreviewHandle:
    """Transient preview resource for the selected image."""

    def __init__(self, registry: PreviewRegistry, file: ImageFile) -> None:
        self.uri = f"preview://{uuid4().hex}"
        self.file = file
        self._registry = registry
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    @property
    def label(self) -> str:
        size_kb = self.file.size / 1024
        return f"{self.file.name} ({size_kb:.0f} KB)"

    def release(self) -> bool:
        """Release the handle; returns False when it was already released."""
        if self._released:
            return False
        self._released = True
        self._registry._forget(self)
        return True


class PreviewRegistry:
    """Issues preview handles and tracks the ones still alive."""

    def __init__(self) -> None:
        self._live: dict[str, PreviewHandle] = {}

    @property
    def live_count(self) -> int:
        return len(self._live)

    def create(self, file: ImageFile) -> PreviewHandle:
        handle = PreviewHandle(self, file)
        self._live[handle.uri] = handle
        return handle

    def _forget(self, handle: PreviewHandle) -> None:
        self._live.pop(handle.uri, None)


class AttachmentSlot:
    """Owns the single pending image and its preview handle."""

    def __init__(self, registry: PreviewRegistry | None = None) -> None:
        self.registry = registry or PreviewRegistry()
        self._selected: ImageFile | None = None
        self._preview: PreviewHandle | None = None

    @property
    def selected(self) -> ImageFile | None:
        return self._selected

    @property
    def preview(self) -> PreviewHandle | None:
        return self._preview

    def select(self, file: ImageFile) -> PreviewHandle:
        """Replace the pending image; non-images leave the slot empty."""
        if not file.is_image:
            self.clear()
            raise AttachmentError(
                AttachmentErrorKind.INVALID_TYPE,
                "Please select a valid image file (PNG, JPG, GIF, WEBP).",
            )
        self._release_preview()
        self._selected = file
        self._preview = self.registry.create(file)
        LOGGER.info(
            "attachment.selected",
            extra={
                "event": "attachment.selected",
                "media_type": file.media_type,
                "size": file.size,
            },
        )
        return self._preview

    def clear(self) -> None:
        self._release_preview()
        self._selected = None

    def dispose(self) -> None:
        self.clear()

    def _release_preview(self) -> None:
        if self._preview is not None:
            self._preview.release()
            self._preview = None


class AttachmentPreparer:
    """Validates a selected image and encodes it as a data URL."""

    def __init__(self, max_bytes: int = MAX_IMAGE_BYTES) -> None:
        self.max_bytes = max_bytes

    def validate(self, file: ImageFile) -> None:
        if not file.is_image:
            raise AttachmentError(
                AttachmentErrorKind.INVALID_TYPE,
                f"{file.name} is not an image ({file.media_type}).",
            )
        if file.size > self.max_bytes:
            max_mb = self.max_bytes / (1024 * 1024)
            raise AttachmentError(
                AttachmentErrorKind.TOO_LARGE,
                f"Image too large (max {max_mb:.1f}MB).",
            )

    async def prepare(self, file: ImageFile) -> EncodedImage:
        """Validate and encode ``file``; the disk read happens off the event loop."""
        self.validate(file)
        try:
            data = await asyncio.to_thread(file.path.read_bytes)
        except OSError as exc:
            LOGGER.warning(
                "attachment.read_failed",
                extra={"event": "attachment.read_failed", "reason": str(exc)},
            )
            raise AttachmentError(
                AttachmentErrorKind.UNREADABLE, "Could not read image file."
            ) from exc
        if len(data) > self.max_bytes:
            raise AttachmentError(
                AttachmentErrorKind.TOO_LARGE,
                f"Image too large (max {self.max_bytes / (1024 * 1024):.1f}MB).",
            )
        encoded = base64.b64encode(data).decode("ascii")
        return EncodedImage(
            media_type=file.media_type,
            data_url=f"data:{file.media_type};base64,{encoded}",
        )
