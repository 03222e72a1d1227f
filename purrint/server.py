import logging

from fastapi import Depends, FastAPI, File, Form, Request
from fastapi.responses import JSONResponse, Response

from purrint.errors import (
    CancellationError,
    ConfigError,
    DecodeError,
    DeviceBusy,
    DeviceNotFound,
    EmptyInput,
    PrintError,
)
from purrint.main import feed, preview, preview_png, print_to
from purrint.printer import Printer
from purrint.protocol import EnergyMode, PrintArgs, energy_from_env
from purrint.text import TextStyle


logger = logging.getLogger(__name__)

FEED_AMOUNT = 80  # Number of lines to feed when asked to feed paper without printing.

STATUS_CODES = {
    DecodeError: 400,
    EmptyInput: 400,
    DeviceNotFound: 404,
    DeviceBusy: 409,
    CancellationError: 409,
    ConfigError: 500,
}

app = FastAPI()
shared_printer = Printer()  # shared by every request; jobs queue on it


def get_printer() -> Printer:
    return shared_printer


def get_print_args() -> PrintArgs:
    """Default arguments for a print job."""
    return PrintArgs(energy_mode=energy_from_env(EnergyMode.High))


def get_text_style() -> TextStyle:
    return TextStyle()


@app.exception_handler(PrintError)
async def print_error_handler(request: Request, exc: PrintError):
    status = STATUS_CODES.get(type(exc), 502)
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": exc.message})


@app.post("/print")
async def print_ep(
    image: bytes = File(...),
    printer: Printer = Depends(get_printer),
    args: PrintArgs = Depends(get_print_args),
):
    """Handle print requests."""
    bitmap = await print_to(printer, image, args)
    return {"width": bitmap.width, "height": bitmap.height}


@app.post("/print/text")
async def print_text_ep(
    text: str = Form(...),
    printer: Printer = Depends(get_printer),
    args: PrintArgs = Depends(get_print_args),
    style: TextStyle = Depends(get_text_style),
):
    bitmap = await print_to(printer, text, args, style)
    return {"width": bitmap.width, "height": bitmap.height}


@app.post("/preview")
def preview_ep(image: bytes = File(...)):
    """Show exactly what /print would print, as a PNG."""
    return Response(content=preview_png(preview(image)), media_type="image/png")


@app.post("/preview/text")
def preview_text_ep(text: str = Form(...), style: TextStyle = Depends(get_text_style)):
    return Response(content=preview_png(preview(text, style)), media_type="image/png")


@app.post("/feed")
async def feed_ep(
    printer: Printer = Depends(get_printer),
    args: PrintArgs = Depends(get_print_args),
):
    """Feed some paper."""
    await feed(printer, FEED_AMOUNT, args.wait_for_print)
    return "OK"
