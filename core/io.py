from __future__ import annotations

import base64
import binascii
from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

from core.errors import ImageDecodeError


ImageSource = Union[bytes, bytearray, str, Path]


def _data_uri_bytes(uri: str) -> bytes:
    # data:<mime>;base64,<payload>
    header, sep, payload = uri.partition(",")
    if not sep or ";base64" not in header:
        raise ImageDecodeError("Unsupported data URI (expected base64 payload)")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 image data: {e}") from e


def decode_image(source: ImageSource) -> Image.Image:
    """Decode bytes, a data URI or a file path into an RGB image."""
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(BytesIO(bytes(source)))
        elif isinstance(source, str) and source.startswith("data:"):
            img = Image.open(BytesIO(_data_uri_bytes(source)))
        else:
            img = Image.open(str(source))
        img.load()
    except ImageDecodeError:
        raise
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e
    # Alpha is ignored; samples are treated as fully opaque
    return img.convert("RGB")


def encode_data_uri(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def save_image(path: str, img: Image.Image) -> None:
    img.save(path)
