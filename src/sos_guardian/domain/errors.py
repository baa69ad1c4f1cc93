"""Errors raised by the SOS core."""


class SOSError(Exception):
    """Base class for SOS core failures."""


class FinalizeError(SOSError):
    """A recording device failed while stopping; evidence may be lost."""


class UploadError(SOSError):
    """A single artifact could not be uploaded or its metadata saved."""


class PersistenceError(SOSError):
    """Session deactivation could not be written to durable storage."""
