"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    kind = "DomainError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainException):
    """Input is malformed or out of range (amount bounds, dates, required fields)"""

    kind = "ValidationError"
    status_code = 400


class StateConflictError(DomainException):
    """Operation is illegal for the entity's current lifecycle state"""

    kind = "StateConflictError"
    status_code = 409


class NotFoundError(DomainException):
    """Referenced loan, contribution, member or record does not exist"""

    kind = "NotFoundError"
    status_code = 404


class ConcurrencyConflictError(DomainException):
    """Entity changed underneath a read-modify-write; safe to retry"""

    kind = "ConcurrencyConflictError"
    status_code = 409


class DuplicateError(DomainException):
    """Unique key already taken, e.g. a contribution for the same member and month"""

    kind = "DuplicateError"
    status_code = 409
