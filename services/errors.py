class BookingError(Exception):
    """Base for every expected booking-domain failure.

    Each subclass carries a stable ``code`` and the HTTP status the API
    answers with. ``extra`` is merged into the JSON body.
    """
    code = "BookingError"
    http_status = 400
    default_message = "Booking request failed"

    def __init__(self, message=None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self):
        body = {"success": False, "error": self.code, "message": self.message}
        body.update(self.extra)
        return body


class InvalidAction(BookingError):
    code = "InvalidAction"
    default_message = "Invalid action"


class InvalidOrExpiredToken(BookingError):
    code = "InvalidOrExpiredToken"
    default_message = "Invalid or expired email-action token"


class TokenActionMismatch(BookingError):
    code = "TokenActionMismatch"
    default_message = "This link does not allow that action"


class BookingNotFound(BookingError):
    code = "BookingNotFound"
    http_status = 404
    default_message = "Booking not found"


class AlreadyProcessed(BookingError):
    code = "AlreadyProcessed"

    def __init__(self, current_status: str):
        self.current_status = current_status
        super().__init__(
            f"This booking has already been processed. Its current status is: {current_status}",
            currentStatus=current_status,
        )


class SlotNoLongerAvailable(BookingError):
    code = "SlotNoLongerAvailable"
    http_status = 409
    default_message = "This timeslot is no longer available"


class GuestLimitReached(BookingError):
    code = "GuestLimitReached"
    http_status = 429
    default_message = "Guests can submit only one booking request per day"


class InvalidBookingRequest(BookingError):
    code = "InvalidBookingRequest"
    default_message = "Invalid booking request"


class CancellationWindowClosed(BookingError):
    code = "CancellationWindowClosed"
    http_status = 403


class TransactionFailure(BookingError):
    code = "TransactionFailure"
    http_status = 500
    default_message = "The booking store could not complete the operation, please retry"

    def __init__(self, message=None):
        super().__init__(message, retryable=True)
