import asyncio
import io
from typing import List, Optional, Tuple

import PIL.Image
import pytest

from purrint.errors import ConnectionLost, DeviceNotFound, WriteFailed
from purrint.image import PRINTER_WIDTH, PixelBuffer
from purrint.protocol import checksum
from purrint.printer import ConnectionHandle, Printer


class FakeHandle(ConnectionHandle):
    """Records chunks instead of writing them to a characteristic."""

    def __init__(self, log: List[bytes], fail_at: Optional[int] = None, disconnect_at=None):
        self.log = log
        self.fail_at = fail_at
        self.disconnect_at = disconnect_at
        self.connected = True
        self.closed = False
        self.writes = 0
        self.on_disconnect = None

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def write(self, chunk: bytes) -> None:
        self.writes += 1
        if self.disconnect_at is not None and self.writes >= self.disconnect_at:
            self.connected = False
            self.on_disconnect()
            raise ConnectionLost("link dropped")
        if self.fail_at is not None and self.writes >= self.fail_at:
            raise WriteFailed("write rejected")
        await asyncio.sleep(0)
        self.log.append(bytes(chunk))

    async def close(self) -> None:
        self.closed = True
        self.connected = False


class FakeConnector:
    """Hands out FakeHandles and counts how often discovery ran."""

    def __init__(self, found: bool = True, **handle_kwargs):
        self.found = found
        self.handle_kwargs = handle_kwargs
        self.log: List[bytes] = []
        self.handles: List[FakeHandle] = []

    @property
    def connects(self) -> int:
        return len(self.handles)

    @property
    def written(self) -> bytes:
        return b"".join(self.log)

    async def __call__(self, on_disconnect) -> FakeHandle:
        await asyncio.sleep(0)
        if not self.found:
            raise DeviceNotFound("Printer not found")
        handle = FakeHandle(self.log, **self.handle_kwargs)
        handle.on_disconnect = on_disconnect
        self.handles.append(handle)
        # later handles behave
        self.handle_kwargs = {}
        return handle


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def printer(connector):
    return Printer(connector, delay=0)


def solid(color, size=(PRINTER_WIDTH, 16)) -> PixelBuffer:
    return PixelBuffer.from_image(PIL.Image.new("RGBA", size, color))


def png_bytes(img: PIL.Image.Image) -> bytes:
    out = io.BytesIO()
    img.save(out, format="PNG")
    return out.getvalue()


def parse(stream: bytes) -> List[Tuple[int, bytes]]:
    """Split a byte stream back into (command, payload) pairs, checking each frame."""
    frames = []
    pos = 0
    while pos < len(stream):
        assert stream[pos : pos + 2] == b"\x51\x78"
        length = stream[pos + 3] | stream[pos + 4] << 8
        end = pos + 5 + length
        assert stream[end] == checksum(stream[pos + 2 : end])
        frames.append((stream[pos + 2], stream[pos + 5 : end]))
        pos = end + 1
    return frames
