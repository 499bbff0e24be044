"""
Error taxonomy for ticket issuance and lookup.

Every error carries the HTTP status it maps to and a message that is safe to
show to the user. The server installs a single handler for ``TicketError``.
"""


class TicketError(Exception):
    status_code = 500
    message = "Internal error."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidTaxpayerId(TicketError):
    status_code = 400
    message = "OIB must have exactly 11 digits."


class InvalidName(TicketError):
    status_code = 400
    message = "First name and last name must be letters only."


class QuotaExceeded(TicketError):
    status_code = 400
    message = "Cannot generate more than 3 tickets for this OIB."


class NotFound(TicketError):
    status_code = 404
    message = "Ticket not found."


class StoreUnavailable(TicketError):
    status_code = 500
    message = "Ticket store unavailable."
