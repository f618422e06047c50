"""
Error taxonomy of the billing engine.

Every error carries a human readable ``message`` and the HTTP status the API
answers with, so views can map them without knowing each subclass.
"""


class BillingError(Exception):
    """Base class for billing errors"""
    status_code = 400

    def __init__(self, message, errors=None):
        self.message = message
        self.errors = errors or {}
        super().__init__(self.message)


class ValidationError(BillingError):
    """Missing or out-of-range input"""
    status_code = 400


class NotFoundError(BillingError):
    """Referenced student or bill does not exist"""
    status_code = 404


class DuplicateError(BillingError):
    """An active bill already exists for the period, or a bill number collided"""
    status_code = 409


class StateError(BillingError):
    """Mutation attempted on a bill whose state forbids it"""
    status_code = 409


class PersistenceError(BillingError):
    """Underlying storage failure"""
    status_code = 500
