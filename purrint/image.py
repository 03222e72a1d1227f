import io
from dataclasses import dataclass
from typing import Tuple, Union

import PIL.Image
import PIL.ImageOps

from purrint.errors import DecodeError


PRINTER_WIDTH = 384  # pixels
CHANNELS = 4  # RGBA


@dataclass(frozen=True)
class PixelBuffer:
    """An RGBA image, 4 bytes per pixel, row-major."""

    width: int
    height: int
    data: bytes

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"invalid size {self.width}x{self.height}")
        if len(self.data) != self.width * self.height * CHANNELS:
            raise ValueError(
                f"expected {self.width * self.height * CHANNELS} bytes, got {len(self.data)}"
            )

    @classmethod
    def from_image(cls, img: PIL.Image.Image) -> "PixelBuffer":
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        return cls(img.width, img.height, img.tobytes())

    def to_image(self) -> PIL.Image.Image:
        return PIL.Image.frombytes("RGBA", (self.width, self.height), self.data)

    def pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        i = (y * self.width + x) * CHANNELS
        return tuple(self.data[i : i + CHANNELS])


def decode_image(source: Union[bytes, str]) -> PIL.Image.Image:
    """Open raw image bytes or a filename, applying any EXIF rotation."""
    try:
        if isinstance(source, (bytes, bytearray)):
            img = PIL.Image.open(io.BytesIO(source))
        else:
            img = PIL.Image.open(source)
        img.load()
    except (
        PIL.UnidentifiedImageError,
        PIL.Image.DecompressionBombError,
        OSError,
        ValueError,
    ) as e:
        raise DecodeError(f"cannot decode image: {e}") from e
    return PIL.ImageOps.exif_transpose(img)


def scaled_height(width: int, height: int, target_width: int = PRINTER_WIDTH) -> int:
    return max(1, round(height * target_width / width))


def normalize(img: PIL.Image.Image) -> PixelBuffer:
    """Scale an image to the printer width, keeping its aspect ratio."""
    # RGBA first: palette and 1-bit images only resample with NEAREST, and
    # grey images stay grey (r == g == b) after the conversion.
    img = img.convert("RGBA")
    size = (PRINTER_WIDTH, scaled_height(img.width, img.height))
    if img.size != size:
        img = img.resize(size, resample=PIL.Image.LANCZOS)
    return PixelBuffer.from_image(img)


def load_pixels(source: Union[bytes, str]) -> PixelBuffer:
    """Decode and normalize in one step."""
    return normalize(decode_image(source))
