"""Image codec built on Pillow: format resolution, resizing and probing."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from PIL import Image, ImageOps, UnidentifiedImageError

from bilde.errors import InvalidInputError, TransformFailedError

MAX_QUALITY = 100


class ImageFormat(Enum):
    """Encodable formats: ``(pillow name, canonical extension, aliases, mime type)``."""

    BMP = ("BMP", "bmp", ("bmp", "dib"), "image/bmp")
    GIF = ("GIF", "gif", ("gif",), "image/gif")
    JPEG = ("JPEG", "jpeg", ("jpeg", "jpg", "jpe", "jfif"), "image/jpeg")
    PNG = ("PNG", "png", ("png",), "image/png")
    TIFF = ("TIFF", "tiff", ("tiff", "tif"), "image/tiff")
    WEBP = ("WEBP", "webp", ("webp",), "image/webp")

    def __init__(self, pil_format: str, extension: str, aliases: tuple[str, ...], mime_type: str) -> None:
        self.pil_format = pil_format
        self.extension = extension
        self.aliases = aliases
        self.mime_type = mime_type


# Every accepted spelling, mapped to its format
FORMAT_TABLE: dict[str, ImageFormat] = {
    alias: fmt for fmt in ImageFormat for alias in fmt.aliases
}


@dataclass(frozen=True)
class FormatDescriptor:
    """A resolved output format together with its encoder quality."""

    format: ImageFormat
    quality: int

    @property
    def extension(self) -> str:
        return self.format.extension

    @property
    def content_type(self) -> str:
        return self.format.mime_type


@dataclass(frozen=True)
class ImagingOptions:
    """Immutable codec configuration, built once and passed in at construction."""

    formats: frozenset[ImageFormat] = field(default_factory=lambda: frozenset(ImageFormat))
    default_format: ImageFormat = ImageFormat.JPEG
    default_quality: int = MAX_QUALITY

    @classmethod
    def from_config(cls, config) -> ImagingOptions:
        """Build options from an ``ImagingConfig``; unknown names are rejected."""
        formats = set()
        for name in config.formats:
            fmt = FORMAT_TABLE.get(name.strip().lower())
            if fmt is None:
                raise ValueError(f"Unsupported image format in config: {name!r}")
            formats.add(fmt)
        default = FORMAT_TABLE.get(config.default_format.strip().lower())
        if default is None:
            raise ValueError(f"Unsupported default format: {config.default_format!r}")
        formats.add(default)
        return cls(
            formats=frozenset(formats),
            default_format=default,
            default_quality=config.default_quality,
        )


def detect_image_content_type(data: bytes) -> str | None:
    """Detect image content type from magic bytes.

    Returns ``None`` if the data does not match a known image signature.
    """
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:2] == b"BM":
        return "image/bmp"
    if data[:4] in (b"II*\x00", b"MM\x00*"):
        return "image/tiff"
    return None


def target_size(original: tuple[int, int], width: int, height: int) -> tuple[int, int]:
    """Fill in a zero dimension from the original aspect ratio."""
    orig_w, orig_h = original
    if width > 0 and height > 0:
        return width, height
    if width > 0:
        return width, max(1, round(orig_h * width / orig_w))
    if height > 0:
        return max(1, round(orig_w * height / orig_h)), height
    raise InvalidInputError("width and height are both zero")


@runtime_checkable
class Codec(Protocol):
    """Interface the orchestrators need from an image library."""

    def resolve_format(self, name: str | None, quality: int = 0) -> FormatDescriptor: ...
    def resize(self, data: bytes, width: int, height: int, descriptor: FormatDescriptor) -> bytes: ...
    def dimensions(self, data: bytes) -> tuple[int, int]: ...


class PillowCodec:
    """Decode, resize and encode images with Pillow."""

    def __init__(self, options: ImagingOptions | None = None) -> None:
        self.options = options or ImagingOptions()

    def resolve_format(self, name: str | None, quality: int = 0) -> FormatDescriptor:
        """Map a format name to a descriptor.

        Matching is case-insensitive over every alias of a supported format.
        Blank, unknown or disabled names fall back to the default format, and
        a quality of zero or less falls back to the default quality.
        """
        quality = quality if quality > 0 else self.options.default_quality
        fmt = FORMAT_TABLE.get((name or "").strip().lower())
        if fmt is None or fmt not in self.options.formats:
            fmt = self.options.default_format
        return FormatDescriptor(format=fmt, quality=quality)

    def dimensions(self, data: bytes) -> tuple[int, int]:
        if not data:
            raise InvalidInputError("data is empty")
        try:
            with Image.open(io.BytesIO(data)) as img:
                return img.size
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise TransformFailedError(f"Cannot read image dimensions: {exc}") from exc

    def resize(self, data: bytes, width: int, height: int, descriptor: FormatDescriptor) -> bytes:
        """Resize *data* and encode it as *descriptor*.

        With both dimensions set the image is scaled to fit and padded to the
        exact box; with one set the other follows the aspect ratio.
        """
        if not data:
            raise InvalidInputError("data is empty")
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                exif = img.info.get("exif")
                size = target_size(img.size, width, height)
                if width > 0 and height > 0:
                    resized = ImageOps.pad(img, size, method=Image.LANCZOS)
                else:
                    resized = img.resize(size, Image.LANCZOS)
                return self._encode(resized, descriptor, exif)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            if isinstance(exc, InvalidInputError):
                raise
            raise TransformFailedError(f"Cannot resize image: {exc}") from exc

    @staticmethod
    def _encode(img: Image.Image, descriptor: FormatDescriptor, exif: bytes | None) -> bytes:
        fmt = descriptor.format
        save_kwargs: dict = {}
        if fmt is ImageFormat.JPEG:
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            save_kwargs["quality"] = descriptor.quality
            save_kwargs["optimize"] = True
        elif fmt is ImageFormat.WEBP:
            save_kwargs["quality"] = descriptor.quality
        elif fmt is ImageFormat.PNG:
            save_kwargs["optimize"] = True
        elif fmt is ImageFormat.BMP and img.mode not in ("1", "L", "P", "RGB", "RGBA"):
            img = img.convert("RGB")

        if exif and fmt in (ImageFormat.JPEG, ImageFormat.WEBP):
            save_kwargs["exif"] = exif

        buf = io.BytesIO()
        img.save(buf, format=fmt.pil_format, **save_kwargs)
        return buf.getvalue()
