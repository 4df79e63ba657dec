class EatRealError(Exception):
    """Base error. `status_code` is the HTTP status the API answers with."""
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationFailed(EatRealError):
    status_code = 400


class NotAuthenticated(EatRealError):
    status_code = 401


class Forbidden(EatRealError):
    status_code = 403


class NotFound(EatRealError):
    status_code = 404


class Conflict(EatRealError):
    status_code = 409
