"""Packing bitmap rows into the bytes the print head expects.

The printer's bit order is the reverse of on-screen order: the head scans
right to left, and a set bit means "leave paper white". Both corrections
are applied here and nowhere else.
"""
from typing import Iterator, List, Sequence

from purrint.dither import MonoBitmap


def row_bytes(width: int) -> int:
    return (width + 7) // 8


def pack_row(row: Sequence[int]) -> bytes:
    """Pack one row of ink flags (truthy = ink) into printer bytes.

    The row is mirrored, then packed 8 pixels per byte, most significant bit
    first, with a 1 bit for paper and a 0 bit for ink. A trailing partial
    byte is padded with paper.
    """
    packed = bytearray(row_bytes(len(row)))
    for i, ink in enumerate(reversed(row)):
        if not ink:
            packed[i // 8] |= 0x80 >> (i % 8)
    for i in range(len(row), len(packed) * 8):
        packed[i // 8] |= 0x80 >> (i % 8)
    return bytes(packed)


def unpack_row(packed: bytes, width: int) -> List[bool]:
    """The inverse of pack_row(): ink flags in on-screen order."""
    mirrored = [not (packed[i // 8] & (0x80 >> (i % 8))) for i in range(width)]
    return mirrored[::-1]


def pack_bitmap(bitmap: MonoBitmap) -> Iterator[bytes]:
    """Packed rows, top to bottom."""
    for row in bitmap.rows():
        yield pack_row(row)
