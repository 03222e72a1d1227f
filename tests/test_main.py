import asyncio
import io

import PIL.Image
import pytest

from purrint.dither import MonoBitmap, dither
from purrint.errors import DecodeError, EmptyInput
from purrint.image import PixelBuffer, load_pixels
from purrint.main import feed, preview, preview_png, print_to, render
from purrint.printer import Printer
from purrint.protocol import Command, PrintArgs
from purrint.scanline import unpack_row
from purrint.text import TextStyle

from tests.conftest import FakeConnector, parse, png_bytes, solid


def args(**kwargs) -> PrintArgs:
    return PrintArgs(padding=kwargs.pop("padding", 0), wait_for_print=False, **kwargs)


def test_render_dispatches_on_type():
    bitmap = MonoBitmap.from_rows([[True] * 8])
    assert render(bitmap) is bitmap
    assert render(solid("black")).ink_count == 384 * 16
    assert render("Hi").width == 384
    assert render(png_bytes(PIL.Image.new("RGB", (10, 5), "white"))).height == 192


def test_render_scales_odd_width_pixel_buffers():
    pixels = PixelBuffer.from_image(PIL.Image.new("RGBA", (96, 10), "black"))
    bitmap = render(pixels)
    assert (bitmap.width, bitmap.height) == (384, 40)


def test_render_rejects_bad_input():
    with pytest.raises(DecodeError):
        render(b"garbage")
    with pytest.raises(EmptyInput):
        render(b"")
    with pytest.raises(EmptyInput):
        render("  ")
    with pytest.raises(TypeError):
        render(42)


def test_preview_calls_back_with_the_bitmap():
    seen = []
    bitmap = preview(solid((128, 128, 128, 255)), on_preview=seen.append)
    assert seen == [bitmap]


def test_preview_png_is_the_bitmap():
    bitmap = dither(solid((100, 100, 100, 255), (384, 8)))
    img = PIL.Image.open(io.BytesIO(preview_png(bitmap)))
    assert img.size == (384, 8)
    for y in range(8):
        for x in range(0, 384, 7):
            assert (img.getpixel((x, y)) == 0) == bitmap.ink(x, y)


def test_printed_bitmap_matches_preview():
    data = png_bytes(PIL.Image.linear_gradient("L").resize((200, 60)))
    connector = FakeConnector()
    printed = []
    printer = Printer(connector, delay=0)
    bitmap = asyncio.run(print_to(printer, data, args(), on_preview=printed.append))
    assert printed == [bitmap]
    assert bitmap == dither(load_pixels(data))

    draws = [p for c, p in parse(connector.written) if c == Command.DrawBitmap]
    assert len(draws) == bitmap.height
    for y, packed in enumerate(draws):
        assert unpack_row(packed, bitmap.width) == [bool(p) for p in bitmap.row(y)]


def test_print_text():
    connector = FakeConnector()
    printer = Printer(connector, delay=0)
    style = TextStyle()
    bitmap = asyncio.run(print_to(printer, "Hello", args(padding=20), style))
    assert bitmap.height == style.min_height
    frames = parse(connector.written)
    assert frames[-1] == (Command.FeedPaper, bytes([20, 0]))


def test_bad_input_sends_nothing():
    connector = FakeConnector()
    printer = Printer(connector, delay=0)
    with pytest.raises(DecodeError):
        asyncio.run(print_to(printer, b"garbage", args()))
    assert connector.connects == 0
    assert connector.log == []


def test_feed():
    connector = FakeConnector()
    asyncio.run(feed(Printer(connector, delay=0), 10, wait_for_print=False))
    assert parse(connector.written)[-1] == (Command.FeedPaper, bytes([10, 0]))


def test_print_to_keeps_the_event_loop_responsive():
    data = png_bytes(PIL.Image.linear_gradient("L").resize((384, 512)))
    printer = Printer(FakeConnector(), delay=0)

    async def job():
        loop = asyncio.get_running_loop()
        gaps = []
        done = asyncio.Event()

        async def ticker():
            last = loop.time()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = loop.time()
                gaps.append(now - last)
                last = now

        task = asyncio.create_task(ticker())
        await print_to(printer, data, args())
        done.set()
        await task
        return gaps

    gaps = asyncio.run(job())
    assert gaps
    assert max(gaps) < 0.2
