import os
from dataclasses import dataclass, field
from typing import Iterable, List, Union

from crc8 import crc8

from purrint.dither import MonoBitmap
from purrint.errors import ConfigError, FrameTooLarge
from purrint.scanline import pack_bitmap


PREAMBLE = bytes([0x51, 0x78])
MAX_PAYLOAD_LEN = 0xFF  # bytes of payload the printer accepts in one command
MAX_FEED = 0xFF  # lines per FeedPaper command
SECS_PER_LINE = 0.0372  # seconds taken per line of image printed


def uint16_le(i: int) -> List[int]:
    """Convert a number to little-endian uint16 bytes."""
    return [i & 0xFF, (i >> 8) & 0xFF]


def checksum(data: bytes) -> int:
    """CRC-8 (polynomial 0x07) of the given bytes."""
    c = crc8()
    c.update(bytes(data))
    return c.digest()[0]


class Command:
    """Commands for controlling the printer."""

    FeedPaper = 0xA1  # steps to advance paper
    DrawBitmap = 0xA2  # one packed scanline or more
    SetFeedRate = 0xBD
    SetDrawingMode = 0xBE
    SetEnergy = 0xAF  # 0x0001 to 0xFFFF
    SetQuality = 0xA4
    SetControlLattice = 0xA6  # 11-byte magic data


class FeedRate:
    """Fixed feed rates for printer functions."""

    Print = 0x23
    Blank = 0x19


class DrawingMode:
    """The drawing mode for the printer's graphics."""

    Image = 0x00
    Text = 0x01


class EnergyMode:
    """The energy mode for the printer, from 0x0000 to 0xFFFF.

    Higher energy modes use more power and produce darker pixels.
    """

    Low = 8000
    Medium = 12000
    High = 17500


class PrintQuality:
    """The print quality. The Android app always uses C."""

    A = 0x31
    B = 0x32
    C = 0x33
    D = 0x34
    E = 0x35


class Lattice:
    """Magic data sent around every bitmap transfer."""

    Start = [0xAA, 0x55, 0x17, 0x38, 0x44, 0x5F, 0x5F, 0x5F, 0x44, 0x38, 0x2C]
    Finish = [0xAA, 0x55, 0x17, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x17]


@dataclass(frozen=True)
class CommandFrame:
    """One framed command: preamble, opcode, length, payload, checksum."""

    command: int
    payload: bytes

    def __post_init__(self):
        if len(self.payload) > MAX_PAYLOAD_LEN:
            raise FrameTooLarge(
                f"payload of {len(self.payload)} bytes for command 0x{self.command:02X} "
                f"exceeds {MAX_PAYLOAD_LEN}"
            )

    @property
    def body(self) -> bytes:
        """The checksummed part of the frame."""
        return bytes([self.command, *uint16_le(len(self.payload))]) + self.payload

    @property
    def crc(self) -> int:
        return checksum(self.body)

    def __bytes__(self) -> bytes:
        return PREAMBLE + self.body + bytes([self.crc])

    def __len__(self) -> int:
        return len(PREAMBLE) + 3 + len(self.payload) + 1


def format_message(command: int, data: Union[int, Iterable[int]]) -> CommandFrame:
    """Build a message for the printer."""
    if isinstance(data, int):
        data = [data]
    return CommandFrame(command, bytes(data))


def int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be a whole number, got {value!r}") from None


def energy_from_env(default: int = EnergyMode.Medium) -> int:
    return int_from_env("PURRINT_ENERGY", default)


def padding_from_env(default: int = 40) -> int:
    return int_from_env("PURRINT_PADDING", default)


@dataclass
class PrintArgs:
    """The arguments for a print job."""

    padding: int = field(default_factory=padding_from_env)  # lines fed after printing
    drawing_mode: int = DrawingMode.Image
    energy_mode: int = field(default_factory=energy_from_env)
    print_quality: int = PrintQuality.C
    rows_per_command: int = 1  # packed scanlines batched in one DrawBitmap
    wait_for_print: bool = True  # hold the printer until the paper stops moving


@dataclass
class Job:
    """Frames for one print job, in the order they must be sent."""

    frames: List[CommandFrame]
    lines: int = 0  # paper lines the printer will move

    @property
    def print_time(self) -> float:
        return self.lines * SECS_PER_LINE

    def __bytes__(self) -> bytes:
        return b"".join(bytes(f) for f in self.frames)

    def __add__(self, other: "Job") -> "Job":
        return Job(self.frames + other.frames, self.lines + other.lines)


def cmd_print_bitmap(bitmap: MonoBitmap, args: PrintArgs) -> Job:
    """Build the commands that print a bitmap."""
    frames = [
        format_message(Command.SetDrawingMode, args.drawing_mode),
        format_message(Command.SetEnergy, uint16_le(args.energy_mode)),
        format_message(Command.SetQuality, args.print_quality),
        format_message(Command.SetFeedRate, FeedRate.Print),
        format_message(Command.SetControlLattice, Lattice.Start),
    ]

    if args.rows_per_command < 1:
        raise ValueError("rows_per_command must be at least 1")
    batch = b""
    for i, row in enumerate(pack_bitmap(bitmap), start=1):
        batch += row
        if i % args.rows_per_command == 0:
            frames.append(format_message(Command.DrawBitmap, batch))
            batch = b""
    if batch:
        frames.append(format_message(Command.DrawBitmap, batch))

    frames.append(format_message(Command.SetControlLattice, Lattice.Finish))
    return Job(frames, bitmap.height)


def cmd_feed_paper(lines: int) -> Job:
    """Build a command that feeds paper."""
    frames = [format_message(Command.SetFeedRate, FeedRate.Blank)]
    remaining = lines
    while remaining > 0:
        feed = min(remaining, MAX_FEED)
        frames.append(format_message(Command.FeedPaper, uint16_le(feed)))
        remaining -= feed
    return Job(frames, max(lines, 0))


def cmd_print_and_feed(bitmap: MonoBitmap, args: PrintArgs) -> Job:
    """Build a command that prints a bitmap, then feeds paper."""
    return cmd_print_bitmap(bitmap, args) + cmd_feed_paper(args.padding)
