"""
Domain errors for the booking core.

Each error carries a stable machine-readable ``code`` (what gets logged and
returned to API callers) and the HTTP status the API layer answers with.
Callers never see raw store errors; those are logged and wrapped.
"""


class BookingError(Exception):
    code = "booking_error"
    status_code = 400

    def __init__(self, detail: str = None):
        self.detail = detail or self.code
        super().__init__(self.detail)


# --- Validation ---

class InvalidPhone(BookingError):
    code = "invalid_phone"


class InvalidTimeWindow(BookingError):
    code = "invalid_time_window"


class InvalidToolArgs(BookingError):
    code = "invalid_tool_args"


class InvalidTransition(BookingError):
    code = "invalid_transition"


class HoldExpired(BookingError):
    code = "hold_expired"


class InvalidDepositAmount(BookingError):
    code = "invalid_amount"


# --- Authorization ---

class PermissionDenied(BookingError):
    code = "permission_denied"
    status_code = 403


# --- Referential ---

class ServiceNotFound(BookingError):
    code = "service_not_found"
    status_code = 404


class ProfessionalNotFound(BookingError):
    code = "professional_not_found"
    status_code = 404


class AppointmentNotFound(BookingError):
    code = "appointment_not_found"
    status_code = 404


# --- Conflict ---

class SlotUnavailable(BookingError):
    code = "slot_unavailable"
    status_code = 409


# --- Transient / upstream ---

class HoldCreationFailed(BookingError):
    code = "hold_creation_failed"
    status_code = 502


class PaymentProviderError(BookingError):
    code = "payment_provider_error"
    status_code = 502
