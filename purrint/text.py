import logging
import math
import os
from dataclasses import dataclass
from typing import List, Optional

import PIL.Image
import PIL.ImageDraw
import PIL.ImageFont

from purrint.dither import MonoBitmap, threshold
from purrint.errors import EmptyInput
from purrint.image import PRINTER_WIDTH, PixelBuffer


logger = logging.getLogger(__name__)

FONT_PATH = os.getenv("PURRINT_FONT", "DejaVuSansMono.ttf")
FONT_SIZE = 16  # pixels
LINE_HEIGHT_RATIO = 1.15
MIN_HEIGHT = 64  # pixels; short messages still print a readable strip
BREAK_AFTER = " \t-"
MONOSPACE_FONTS = [  # tried in order when the configured font is missing
    "DejaVuSansMono.ttf",
    "LiberationMono-Regular.ttf",
    "FreeMono.ttf",
    "cour.ttf",
    "Courier New.ttf",
    "Menlo.ttc",
]


@dataclass
class TextStyle:
    """How text is laid out before printing."""

    font_path: Optional[str] = FONT_PATH
    font_size: int = FONT_SIZE
    line_height_ratio: float = LINE_HEIGHT_RATIO
    min_height: int = MIN_HEIGHT
    width: int = PRINTER_WIDTH

    @property
    def line_height(self) -> int:
        return round(self.font_size * self.line_height_ratio)

    def load_font(self):
        candidates = [self.font_path] if self.font_path else []
        candidates += [f for f in MONOSPACE_FONTS if f not in candidates]
        for path in candidates:
            try:
                font = PIL.ImageFont.truetype(path, self.font_size)
            except OSError:
                continue
            if path != self.font_path:
                logger.warning("Font %s not found, using %s", self.font_path, path)
            return font
        logger.warning(
            "No monospace font found (tried %s); text will use Pillow's "
            "proportional default font",
            ", ".join(candidates),
        )
        return PIL.ImageFont.load_default(self.font_size)


def wrap_line(line: str, fits) -> List[str]:
    """Greedily split one paragraph into lines accepted by `fits`.

    A line ends after the last space, tab or hyphen that still fits. A run
    with no such break point is cut after the last character that fits.
    Whitespace at a break is dropped.
    """
    lines = []
    while line and not fits(line):
        cut = 1
        last_break = 0
        while cut < len(line) and fits(line[: cut + 1]):
            cut += 1
            if line[cut - 1] in BREAK_AFTER:
                last_break = cut
        if last_break:
            cut = last_break
        lines.append(line[:cut].rstrip(" \t"))
        line = line[cut:].lstrip(" \t")
    if line or not lines:
        lines.append(line)
    return lines


def wrap_text(text: str, font, width: int = PRINTER_WIDTH) -> List[str]:
    """Wrap text to the given pixel width. Newlines always break."""

    def fits(s: str) -> bool:
        return font.getlength(s) <= width

    lines = []
    for paragraph in text.splitlines() or [""]:
        lines += wrap_line(paragraph.rstrip(), fits)
    return lines


def text_height(line_count: int, style: TextStyle) -> int:
    return max(style.min_height, math.ceil(max(line_count, 1) * style.line_height))


def render_text(text: str, style: Optional[TextStyle] = None) -> PixelBuffer:
    """Draw black text on a white strip as wide as the printer."""
    style = style or TextStyle()
    if not text.strip():
        raise EmptyInput("text is blank")

    font = style.load_font()
    lines = wrap_text(text, font, style.width)
    img = PIL.Image.new("RGBA", (style.width, text_height(len(lines), style)), "white")
    draw = PIL.ImageDraw.Draw(img)
    draw.fontmode = "1"  # no antialiasing
    for i, line in enumerate(lines):
        draw.text((0, i * style.line_height), line, font=font, fill="black")
    logger.debug("Rendered %d lines of text, %dpx high", len(lines), img.height)
    return PixelBuffer.from_image(img)


def text_bitmap(text: str, style: Optional[TextStyle] = None) -> MonoBitmap:
    return threshold(render_text(text, style))
