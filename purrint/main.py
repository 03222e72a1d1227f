"""Entry points used by the HTTP and command-line surfaces.

Everything that prints goes through `print_to`, and everything shown to a
user goes through `preview`. Both produce the bitmap with `render`, so a
preview is always the exact bitmap that would be printed.
"""
import asyncio
import io
import logging
from typing import Callable, Optional, Union

from purrint.dither import MonoBitmap, dither
from purrint.errors import EmptyInput
from purrint.image import PRINTER_WIDTH, PixelBuffer, load_pixels, normalize
from purrint.printer import Printer
from purrint.protocol import PrintArgs, cmd_feed_paper, cmd_print_and_feed
from purrint.text import TextStyle, text_bitmap


logger = logging.getLogger(__name__)


Printable = Union[MonoBitmap, PixelBuffer, str, bytes]


def render(source: Printable, style: Optional[TextStyle] = None) -> MonoBitmap:
    """Turn anything printable into the bitmap that will be printed.

    `bytes` are decoded as an image file, a `str` is text laid out with `style`,
    a PixelBuffer is scaled to the printer width if needed and dithered, and a MonoBitmap is
    used as is.
    """
    if isinstance(source, MonoBitmap):
        return source
    if isinstance(source, PixelBuffer):
        if source.width != PRINTER_WIDTH:
            source = normalize(source.to_image())
        return dither(source)
    if isinstance(source, str):
        return text_bitmap(source, style)
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise EmptyInput("no image data")
        return dither(load_pixels(bytes(source)))
    raise TypeError(f"cannot print {type(source).__name__}")


def preview(
    source: Printable,
    style: Optional[TextStyle] = None,
    on_preview: Optional[Callable[[MonoBitmap], None]] = None,
) -> MonoBitmap:
    bitmap = render(source, style)
    if on_preview is not None:
        on_preview(bitmap)
    return bitmap


def preview_png(bitmap: MonoBitmap) -> bytes:
    out = io.BytesIO()
    bitmap.to_image().save(out, format="PNG")
    return out.getvalue()


async def print_to(
    printer: Printer,
    source: Printable,
    args: Optional[PrintArgs] = None,
    style: Optional[TextStyle] = None,
    cancel: Optional[asyncio.Event] = None,
    on_preview: Optional[Callable[[MonoBitmap], None]] = None,
) -> MonoBitmap:
    """Render `source` and print it, then feed `args.padding` lines.

    Rendering finishes before anything is sent, so a bad input never puts a
    partial job on the wire. Returns the printed bitmap.
    """
    args = args or PrintArgs()
    # CPU bound, so off the event loop
    bitmap = await asyncio.to_thread(preview, source, style, on_preview)
    job = cmd_print_and_feed(bitmap, args)
    logger.info("Printing %dx%d bitmap, %d frames", bitmap.width, bitmap.height, len(job.frames))
    await printer.send(
        job, cancel=cancel, settle_time=job.print_time if args.wait_for_print else 0
    )
    logger.info("Print complete.")
    return bitmap


async def feed(printer: Printer, lines: int, wait_for_print: bool = True):
    """Feed some paper."""
    job = cmd_feed_paper(lines)
    await printer.send(job, settle_time=job.print_time if wait_for_print else 0)
    logger.info("Feed complete.")
