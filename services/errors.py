"""
Booking error taxonomy

Every anticipated condition is reduced to one of these kinds; the HTTP
layer turns a kind into a status code.
"""

NOT_FOUND = 'NotFound'
CONFLICT = 'Conflict'
FORBIDDEN = 'Forbidden'
UNAUTHENTICATED = 'Unauthenticated'
VALIDATION = 'Validation'
UNEXPECTED = 'Unexpected'

HTTP_STATUS = {
    NOT_FOUND: 404,
    CONFLICT: 409,
    FORBIDDEN: 403,
    UNAUTHENTICATED: 401,
    VALIDATION: 400,
    UNEXPECTED: 500,
}


def status_for(kind):
    """HTTP status code for an error kind (500 for anything unknown)"""
    return HTTP_STATUS.get(kind, 500)


class BookingError(Exception):
    """Base error carrying a taxonomy kind and a machine-readable code"""
    kind = UNEXPECTED

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__

    @property
    def status(self):
        return status_for(self.kind)


class NotFoundError(BookingError):
    kind = NOT_FOUND


class ConflictError(BookingError):
    kind = CONFLICT


class ForbiddenError(BookingError):
    kind = FORBIDDEN


class UnauthenticatedError(BookingError):
    kind = UNAUTHENTICATED


class ValidationError(BookingError):
    kind = VALIDATION
