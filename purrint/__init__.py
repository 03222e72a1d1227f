from purrint.dither import MonoBitmap, dither
from purrint.errors import PrintError
from purrint.image import PRINTER_WIDTH, PixelBuffer, normalize
from purrint.main import preview, print_to
from purrint.printer import Printer
from purrint.protocol import PrintArgs
from purrint.text import TextStyle

__all__ = [
    "MonoBitmap",
    "PRINTER_WIDTH",
    "PixelBuffer",
    "PrintArgs",
    "PrintError",
    "Printer",
    "TextStyle",
    "dither",
    "normalize",
    "preview",
    "print_to",
]
