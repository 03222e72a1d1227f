class PrintError(Exception):
    """Base class for everything that can stop a print job."""

    message = "Printing failed."


class DecodeError(PrintError):
    """The input could not be decoded as an image."""

    message = "Rendering failed."


class EmptyInput(PrintError):
    """There is nothing to print."""

    message = "Rendering failed."


class FrameTooLarge(PrintError):
    """A command payload exceeds the printer's maximum payload length."""


class DeviceNotFound(PrintError):
    """No matching printer was discovered, or it could not be resolved."""

    message = "No printer found."


class DeviceBusy(PrintError):
    """The printer is already writing another job."""


class ConnectionLost(PrintError):
    """The printer disconnected in the middle of a job."""


class WriteFailed(PrintError):
    """The printer rejected a characteristic write."""


class CancellationError(PrintError):
    """The caller aborted the job before all chunks were written."""

    message = "Printing cancelled."


class ConfigError(PrintError):
    """An environment setting has an unusable value."""

    message = "Printer is misconfigured."
