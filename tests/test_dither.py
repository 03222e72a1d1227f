import random

import pytest

from purrint.dither import GrayscaleBuffer, MonoBitmap, atkinson, dither, threshold
from purrint.image import CHANNELS, PRINTER_WIDTH, PixelBuffer

from tests.conftest import solid


def noise(width=PRINTER_WIDTH, height=32, seed=1) -> PixelBuffer:
    rng = random.Random(seed)
    return PixelBuffer(width, height, bytes(rng.randrange(256) for _ in range(width * height * CHANNELS)))


def test_grayscale_is_unweighted_average():
    pixels = PixelBuffer(2, 1, bytes([30, 60, 90, 0, 255, 0, 0, 255]))
    gray = GrayscaleBuffer.from_pixels(pixels)
    assert gray.samples == [60, 85]
    assert (gray.minimum, gray.maximum) == (60, 85)


def test_grayscale_range_bounds_every_sample():
    gray = GrayscaleBuffer.from_pixels(noise())
    assert all(gray.minimum <= s <= gray.maximum for s in gray.samples)


def test_stretch_maps_range_to_full_scale():
    pixels = PixelBuffer(3, 1, bytes([100] * 4 + [150] * 4 + [200] * 4))
    assert GrayscaleBuffer.from_pixels(pixels).stretched() == [0, 127.5, 255]


def test_stretch_skips_flat_images():
    gray = GrayscaleBuffer.from_pixels(solid((90, 90, 90, 255), (4, 4)))
    assert gray.stretched() == gray.samples


def test_dither_keeps_dimensions():
    bitmap = dither(noise(width=384, height=21))
    assert (bitmap.width, bitmap.height) == (384, 21)
    assert len(bitmap.pixels) == 384 * 21


def test_dither_is_deterministic():
    pixels = noise()
    assert dither(pixels) == dither(pixels)


def test_dither_does_not_touch_input():
    pixels = noise()
    before = pixels.data
    dither(pixels)
    assert pixels.data == before


def test_all_white_has_no_ink():
    assert dither(solid("white")).ink_count == 0


def test_all_black_is_all_ink():
    bitmap = dither(solid("black"))
    assert bitmap.ink_count == bitmap.width * bitmap.height


def test_alpha_is_ignored():
    assert dither(solid((0, 0, 0, 0))).ink_count == PRINTER_WIDTH * 16


def test_mid_gray_is_about_half_ink():
    bitmap = dither(solid((128, 128, 128, 255), (384, 384)))
    ratio = bitmap.ink_count / (384 * 384)
    assert 0.35 <= ratio <= 0.65


def test_contrast_stretch_spreads_narrow_range():
    # Left half slightly darker than right half; after the stretch the
    # halves become pure black and pure white.
    width, height = 16, 4
    data = bytearray()
    for _ in range(height):
        for x in range(width):
            v = 120 if x < width // 2 else 130
            data += bytes([v, v, v, 255])
    bitmap = dither(PixelBuffer(width, height, bytes(data)))
    for y in range(height):
        assert bitmap.row(y) == bytes([1] * 8 + [0] * 8)


def test_atkinson_diffuses_along_the_row():
    samples = [127.0, 200.0, 200.0, 200.0]
    out = atkinson(samples, 4, 1)
    assert out == [0, 255, 255, 255]
    assert samples[1] == pytest.approx(200 + 127 / 8)


def test_atkinson_diffuses_down_the_column():
    samples = [127.0, 200.0, 200.0]
    out = atkinson(samples, 1, 3)
    assert out == [0, 255, 255]
    first = 127 / 8
    assert samples[1] == pytest.approx(200 + first)
    assert samples[2] == pytest.approx(200 + first + (200 + first - 255) / 8)


def test_threshold_without_diffusion():
    pixels = PixelBuffer(4, 1, bytes([0, 0, 0, 255, 100, 100, 100, 255, 200, 200, 200, 255, 255, 255, 255, 255]))
    assert threshold(pixels).pixels == bytes([1, 1, 0, 0])


def test_mono_bitmap_preview_image():
    bitmap = MonoBitmap.from_rows([[True, False], [False, True]])
    img = bitmap.to_image()
    assert img.mode == "1"
    assert img.getpixel((0, 0)) == 0
    assert img.getpixel((1, 0)) == 255


def test_mono_bitmap_rejects_ragged_rows():
    with pytest.raises(ValueError):
        MonoBitmap.from_rows([[True], [True, False]])
