"""
Client Errors
=============

Every failure raised by the LMS client is an ``LmsError``. ``status`` follows the
HTTP status of the response, or 0 when the server could not be reached.
"""


class LmsError(Exception):
    def __init__(self, message, status=500, data=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data


class NetworkFailure(LmsError):
    """The request never produced a response (connection error or timeout)."""

    def __init__(self, message="Network error: Unable to connect to server"):
        super().__init__(message, status=0)


class ServerRejection(LmsError):
    """The server answered with an error status."""


class AuthExpiry(ServerRejection):
    """The session is missing or expired (HTTP 401)."""

    def __init__(self, message="You are not logged in!", data=None):
        super().__init__(message, status=401, data=data)


class ValidationFailure(LmsError):
    """A client-side form check failed; nothing was sent to the server."""

    def __init__(self, message):
        super().__init__(message, status=400)
