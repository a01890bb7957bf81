# payroll_api/services/errors.py
"""
Domain errors raised by the payroll engine.

Every error is raised before anything is written; the caller's session is
rolled back by the error handler so no partial state survives.
"""


class PayrollError(Exception):
    code = "PAYROLL_ERROR"
    http_status = 400

    def __init__(self, message: str, **detail):
        super().__init__(message)
        self.message = message
        self.detail = detail or None


class NotFound(PayrollError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidTransition(PayrollError):
    """Status change not allowed from the entry's current state (e.g. releasing twice)."""
    code = "INVALID_TRANSITION"
    http_status = 409


class DuplicatePeriod(PayrollError):
    code = "DUPLICATE_PERIOD"
    http_status = 409


class DataInconsistency(PayrollError):
    """Inputs exist but cannot yield a trustworthy figure (no personnel type / salary)."""
    code = "DATA_INCONSISTENCY"
    http_status = 422
