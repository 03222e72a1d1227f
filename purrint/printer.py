import asyncio
import logging
import os
from enum import Enum
from time import time
from typing import Awaitable, Callable, Iterable, Iterator, List, Optional, Tuple, Union

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from purrint.errors import (
    CancellationError,
    ConnectionLost,
    DeviceBusy,
    DeviceNotFound,
    WriteFailed,
)
from purrint.protocol import CommandFrame, Job


logger = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 15  # seconds to scan for a printer
SERVICE_UUID = "0000AE30-0000-1000-8000-00805F9B34FB"
CHR_PRINT = "0000AE01-0000-1000-8000-00805F9B34FB"
CHR_NOTIFY = "0000AE02-0000-1000-8000-00805F9B34FB"
CHUNK_SIZE = 64  # max number of bytes to send in each WriteWithoutResponse
CMD_DELAY = 0.01  # seconds between WriteWithoutResponse calls
CONNECT_ATTEMPTS = 5  # number of times to try and connect to a printer before aborting
PRINTER_NAMES = [  # cat printers have one of these names as their BLE-advertised name.
    "GT01",
    "GB01",
    "GB02",
    "GB03",
]


def printer_names() -> List[str]:
    """Advertised names to look for, overridable with PURRINT_NAMES."""
    env = os.getenv("PURRINT_NAMES")
    if not env:
        return list(PRINTER_NAMES)
    return [n.strip() for n in env.split(",") if n.strip()]


class State(Enum):
    Unconnected = "unconnected"
    Discovering = "discovering"
    Connected = "connected"
    Writing = "writing"


def chunks(data: bytes, size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Split a byte stream into pieces no longer than `size`."""
    for pos in range(0, len(data), size):
        yield data[pos : pos + size]


def to_stream(data: Union[bytes, Job, Iterable[CommandFrame]]) -> bytes:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, Job):
        return bytes(data)
    return b"".join(bytes(f) for f in data)


def _matches(
    device: BLEDevice,
    adv: AdvertisementData,
    names: List[str],
    service_uuid: Optional[str],
) -> bool:
    name = adv.local_name or device.name
    if name not in names:
        return False
    if service_uuid is None:
        return True
    return service_uuid.lower() in [u.lower() for u in adv.service_uuids]


async def scan_for(
    names: List[str],
    service_uuid: Optional[str] = None,
    timeout: float = DISCOVERY_TIMEOUT,
) -> Optional[BLEDevice]:
    """Return the first advertising printer with a matching name, if any."""
    device: Optional[BLEDevice] = None
    found = asyncio.Event()

    def detection_callback(cand: BLEDevice, adv: AdvertisementData):
        nonlocal device
        if device:
            return
        if _matches(cand, adv, names, service_uuid):
            device = cand
            found.set()

    logger.info("Scanning for %s...", ", ".join(names))
    async with BleakScanner(detection_callback=detection_callback):
        try:
            await asyncio.wait_for(found.wait(), timeout)
        except asyncio.TimeoutError:
            pass
    return device


async def scan_all(
    names: List[str], timeout: float = 5.0
) -> List[Tuple[BLEDevice, AdvertisementData]]:
    """List every advertising printer with a matching name."""
    seen = await BleakScanner.discover(timeout=timeout, return_adv=True)
    return [(d, adv) for d, adv in seen.values() if _matches(d, adv, names, None)]


class ConnectionHandle:
    """A connected printer with a resolved print characteristic."""

    @property
    def is_connected(self) -> bool:
        raise NotImplementedError

    async def write(self, chunk: bytes) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


# Builds a connected handle; the callback fires when the link drops.
Connector = Callable[[Callable[[], None]], Awaitable[ConnectionHandle]]


class BleakHandle(ConnectionHandle):
    def __init__(self, client: BleakClient, characteristic):
        self.client = client
        self.characteristic = characteristic

    @property
    def is_connected(self) -> bool:
        return self.client.is_connected

    async def write(self, chunk: bytes) -> None:
        try:
            await self.client.write_gatt_char(self.characteristic, chunk, response=False)
        except BleakError as e:
            if not self.client.is_connected:
                raise ConnectionLost(str(e)) from e
            raise WriteFailed(str(e)) from e

    async def close(self) -> None:
        if self.client.is_connected:
            await self.client.disconnect()


def on_notify(sender, data: bytearray):
    logger.debug("Notify: %s: %s", sender, data.hex())


class BleakConnector:
    """Finds a printer over BLE and connects to it."""

    def __init__(
        self,
        names: Optional[List[str]] = None,
        service_uuid: Optional[str] = None,
        timeout: float = DISCOVERY_TIMEOUT,
    ):
        self.names = names or printer_names()
        self.service_uuid = service_uuid
        self.timeout = timeout

    async def __call__(self, on_disconnect: Callable[[], None]) -> BleakHandle:
        try:
            device = await scan_for(self.names, self.service_uuid, self.timeout)
        except BleakError as e:
            raise DeviceNotFound(f"Bluetooth unavailable: {e}") from e
        if not device:
            raise DeviceNotFound("Printer not found")
        logger.info("Found %s (%s)", device.name, device.address)

        client = BleakClient(device, disconnected_callback=lambda _client: on_disconnect())
        for attempt in range(1, CONNECT_ATTEMPTS + 1):
            try:
                await client.connect()
                break
            except (BleakError, asyncio.TimeoutError) as e:
                logger.warning(
                    "Connection attempt %d of %d failed: %s", attempt, CONNECT_ATTEMPTS, e
                )
        if not client.is_connected:
            raise DeviceNotFound("Failed to connect to printer")

        try:
            characteristic = self.resolve(client)
        except DeviceNotFound:
            await client.disconnect()
            raise
        try:
            await client.start_notify(CHR_NOTIFY, on_notify)
        except BleakError as e:
            logger.warning("Printer notifications unavailable: %s", e)
        return BleakHandle(client, characteristic)

    @staticmethod
    def resolve(client: BleakClient):
        """Find the print characteristic, preferring the one under the print service."""
        service = client.services.get_service(SERVICE_UUID)
        if service is not None:
            characteristic = service.get_characteristic(CHR_PRINT)
            if characteristic is not None:
                return characteristic
        characteristic = client.services.get_characteristic(CHR_PRINT)
        if characteristic is None:
            raise DeviceNotFound(f"Printer has no characteristic {CHR_PRINT}")
        return characteristic


class Printer:
    """Owns the printer connection and writes jobs to it one at a time.

    The connection is made on first use and kept for later jobs. A failed
    write or a disconnect drops it, so the next job scans again. Jobs that
    arrive while another is writing wait their turn.
    """

    def __init__(
        self,
        connector: Optional[Connector] = None,
        chunk_size: int = CHUNK_SIZE,
        delay: float = CMD_DELAY,
    ):
        self.connector = connector or BleakConnector()
        self.chunk_size = chunk_size
        self.delay = delay
        self.state = State.Unconnected
        self._handle: Optional[ConnectionHandle] = None
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def invalidate(self):
        """Forget the cached connection."""
        if self._handle is not None:
            logger.info("Dropping printer connection")
        self._handle = None
        self.state = State.Unconnected

    def _on_disconnect(self):
        logger.info("Disconnected")
        if self._handle is not None and self._handle.is_connected:
            return  # an older connection went away
        self.invalidate()

    async def _connect(self) -> ConnectionHandle:
        if self._handle is not None and self._handle.is_connected:
            return self._handle
        self.invalidate()
        self.state = State.Discovering
        try:
            handle = await self.connector(self._on_disconnect)
        except BaseException:
            self.state = State.Unconnected
            raise
        self._handle = handle
        self.state = State.Connected
        logger.info("Connected")
        return handle

    async def connect(self) -> ConnectionHandle:
        async with self._lock:
            return await self._connect()

    async def disconnect(self):
        async with self._lock:
            handle = self._handle
            self.invalidate()
            if handle is not None:
                await handle.close()

    async def send(
        self,
        data: Union[bytes, Job, Iterable[CommandFrame]],
        cancel: Optional[asyncio.Event] = None,
        settle_time: float = 0.0,
        wait: bool = True,
    ):
        """Write a job to the printer, chunk by chunk, in order.

        With `wait=False` a printer that is busy raises DeviceBusy instead of
        queueing. Setting `cancel` stops further chunks and raises
        CancellationError; chunks already written stay written. After the
        last chunk the printer stays held until `settle_time` seconds have
        passed since writing began.
        """
        stream = to_stream(data)
        if not wait and self.busy:
            raise DeviceBusy("Printer is busy")

        async with self._lock:
            handle = await self._connect()
            self.state = State.Writing
            start = time()
            written = 0
            try:
                for i, chunk in enumerate(chunks(stream, self.chunk_size)):
                    if i:
                        await asyncio.sleep(self.delay)
                    if cancel is not None and cancel.is_set():
                        raise CancellationError(
                            f"Cancelled after {written} of {len(stream)} bytes"
                        )
                    await handle.write(chunk)
                    written += len(chunk)
                    logger.debug("Wrote %d/%d bytes", written, len(stream))
            except (ConnectionLost, WriteFailed) as e:
                logger.error("Write failed after %d bytes: %s", written, e)
                self.invalidate()
                raise
            finally:
                if self.state is State.Writing:
                    self.state = State.Connected

            remaining = settle_time - (time() - start)
            if remaining > 0:
                logger.info("Waiting for print to complete...")
                await asyncio.sleep(remaining)

    async def __aenter__(self) -> "Printer":
        return self

    async def __aexit__(self, *exc):
        await self.disconnect()
