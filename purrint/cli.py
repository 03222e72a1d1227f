#!/usr/bin/env python3
"""Print images and text on a cat thermal printer.

Usage examples:

  purrint scan
  purrint image picture.jpg --energy high
  purrint text "Hello, world"
  purrint preview picture.jpg -o preview.png
  purrint feed 80
"""
import argparse
import asyncio
import logging
import sys

from purrint.errors import PrintError
from purrint.main import feed, preview, preview_png, print_to
from purrint.printer import BleakConnector, Printer, printer_names, scan_all
from purrint.protocol import EnergyMode, PrintArgs
from purrint.text import TextStyle


logger = logging.getLogger("purrint")

ENERGY = {
    "low": EnergyMode.Low,
    "medium": EnergyMode.Medium,
    "high": EnergyMode.High,
}


def read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="purrint", description=__doc__.splitlines()[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument(
        "--name",
        action="append",
        dest="names",
        help="advertised printer name to look for (repeatable)",
    )
    parser.add_argument("--service-uuid", help="only match printers advertising this service")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("scan", help="list nearby printers")

    def add_print_options(p):
        p.add_argument("--energy", choices=sorted(ENERGY), help="print darkness")
        p.add_argument("--padding", type=int, help="lines to feed after printing")
        p.add_argument("--rows-per-command", type=int, default=1)
        p.add_argument("--no-wait", action="store_true", help="don't wait for the paper")

    def add_text_options(p):
        p.add_argument("--font", help="TrueType font file")
        p.add_argument("--font-size", type=int)

    p = sub.add_parser("image", help="print an image file")
    p.add_argument("file")
    add_print_options(p)

    p = sub.add_parser("text", help="print text")
    p.add_argument("text", help="text to print, or - to read stdin")
    add_print_options(p)
    add_text_options(p)

    p = sub.add_parser("preview", help="write the bitmap that would be printed")
    p.add_argument("file", help="image file, or text with --text")
    p.add_argument("-o", "--output", required=True, help="PNG file to write")
    p.add_argument("--text", action="store_true", help="treat FILE as text to print")
    add_text_options(p)

    p = sub.add_parser("feed", help="feed paper")
    p.add_argument("lines", type=int, nargs="?", default=80)

    return parser


def print_args(ns) -> PrintArgs:
    args = PrintArgs(rows_per_command=ns.rows_per_command, wait_for_print=not ns.no_wait)
    if ns.energy:
        args.energy_mode = ENERGY[ns.energy]
    if ns.padding is not None:
        args.padding = ns.padding
    return args


def text_style(ns) -> TextStyle:
    style = TextStyle()
    if ns.font:
        style.font_path = ns.font
    if ns.font_size:
        style.font_size = ns.font_size
    return style


def source_text(ns) -> str:
    return sys.stdin.read() if ns.text == "-" else ns.text


async def run(ns) -> None:
    names = ns.names or printer_names()
    if ns.command == "scan":
        found = await scan_all(names)
        if not found:
            print("No printers found.")
        for device, adv in found:
            print(f"{device.address}  {adv.local_name or device.name}  rssi={adv.rssi}")
        return

    if ns.command == "preview":
        source = ns.file if ns.text else read_file(ns.file)
        bitmap = preview(source, text_style(ns))
        with open(ns.output, "wb") as f:
            f.write(preview_png(bitmap))
        print(f"Wrote {bitmap.width}x{bitmap.height} preview to {ns.output}")
        return

    async with Printer(BleakConnector(names, ns.service_uuid)) as printer:
        if ns.command == "image":
            await print_to(printer, read_file(ns.file), print_args(ns))
        elif ns.command == "text":
            await print_to(printer, source_text(ns), print_args(ns), text_style(ns))
        elif ns.command == "feed":
            await feed(printer, ns.lines)


def main(argv=None) -> int:
    ns = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        asyncio.run(run(ns))
    except PrintError as e:
        logger.debug("Print failed", exc_info=True)
        print(f"{e.message} {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
