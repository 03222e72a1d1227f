from dataclasses import dataclass
from typing import List

import PIL.Image

from purrint.image import CHANNELS, PixelBuffer


BLACK = 0
WHITE = 255
THRESHOLD = 128  # samples below this become black

# Atkinson diffusion: 1/8 of the error to each of these (dx, dy) neighbours.
ATKINSON_OFFSETS = [(1, 0), (2, 0), (-1, 1), (0, 1), (1, 1), (0, 2)]


@dataclass(frozen=True)
class GrayscaleBuffer:
    """One luminance sample per pixel plus the image's luminance range."""

    width: int
    height: int
    samples: List[float]
    minimum: float
    maximum: float

    @classmethod
    def from_pixels(cls, pixels: PixelBuffer) -> "GrayscaleBuffer":
        data = pixels.data
        samples = [
            (data[i] + data[i + 1] + data[i + 2]) / 3
            for i in range(0, len(data), CHANNELS)
        ]
        return cls(pixels.width, pixels.height, samples, min(samples), max(samples))

    def stretched(self) -> List[float]:
        """A copy of the samples with the range mapped onto 0..255."""
        lo, hi = self.minimum, self.maximum
        if lo == hi:
            return list(self.samples)
        return [(s - lo) * 255 / (hi - lo) for s in self.samples]


@dataclass(frozen=True)
class MonoBitmap:
    """A 1-bit image. Each byte of `pixels` is 1 for ink, 0 for paper."""

    width: int
    height: int
    pixels: bytes

    def __post_init__(self):
        if len(self.pixels) != self.width * self.height:
            raise ValueError(
                f"expected {self.width * self.height} pixels, got {len(self.pixels)}"
            )

    @classmethod
    def from_rows(cls, rows: List[List[bool]]) -> "MonoBitmap":
        width = len(rows[0])
        if any(len(r) != width for r in rows):
            raise ValueError("rows differ in width")
        return cls(width, len(rows), bytes(1 if p else 0 for r in rows for p in r))

    def row(self, y: int) -> bytes:
        return self.pixels[y * self.width : (y + 1) * self.width]

    def rows(self):
        for y in range(self.height):
            yield self.row(y)

    def ink(self, x: int, y: int) -> bool:
        return bool(self.pixels[y * self.width + x])

    @property
    def ink_count(self) -> int:
        return sum(self.pixels)

    def to_image(self) -> PIL.Image.Image:
        """Render as a mode "1" image: ink black, paper white."""
        return PIL.Image.frombytes(
            "L", (self.width, self.height), bytes(0 if p else 255 for p in self.pixels)
        ).convert("1", dither=PIL.Image.Dither.NONE)


def _quantize(value: float) -> int:
    return BLACK if value < THRESHOLD else WHITE


def atkinson(samples: List[float], width: int, height: int) -> List[int]:
    """Dither `samples` in place and return the quantized values.

    Pixels are visited left to right, top to bottom; each one's error is
    pushed onto neighbours that have not been visited yet, so the pass is
    strictly sequential.
    """
    out = [WHITE] * (width * height)
    for y in range(height):
        row = y * width
        for x in range(width):
            old = samples[row + x]
            new = _quantize(old)
            out[row + x] = new
            err = (old - new) / 8
            if not err:
                continue
            for dx, dy in ATKINSON_OFFSETS:
                nx, ny = x + dx, y + dy
                if 0 <= nx < width and ny < height:
                    samples[ny * width + nx] += err
    return out


def dither(pixels: PixelBuffer) -> MonoBitmap:
    """Convert an image to a bitmap with contrast stretch and Atkinson dithering."""
    gray = GrayscaleBuffer.from_pixels(pixels)
    working = gray.stretched()
    quantized = atkinson(working, gray.width, gray.height)
    return MonoBitmap(
        gray.width, gray.height, bytes(1 if v == BLACK else 0 for v in quantized)
    )


def threshold(pixels: PixelBuffer) -> MonoBitmap:
    """Same as dither() without error diffusion, for near-binary input like text."""
    gray = GrayscaleBuffer.from_pixels(pixels)
    return MonoBitmap(
        gray.width,
        gray.height,
        bytes(1 if _quantize(v) == BLACK else 0 for v in gray.stretched()),
    )
