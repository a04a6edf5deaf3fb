"""Error kinds raised by the clinic services.

Routes translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""


class ClinicError(Exception):
    """Base class for every error the services surface to callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError):
    """Input was rejected before any state was touched."""

    status_code = 400


class NotFoundError(ClinicError):
    status_code = 404


class InvalidStateError(ClinicError):
    """A transition was attempted from a terminal or otherwise wrong state."""

    status_code = 409


class StoreError(ClinicError):
    """The underlying store failed, timed out, or reported a write conflict."""

    status_code = 503
