"""Error taxonomy shared by the services and rendered by the API layer."""


class PortalError(Exception):
    """Base exception for all records-portal errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(PortalError):
    """No valid caller identity."""
    status_code = 401


class Forbidden(PortalError):
    """Authenticated, but the role does not allow the operation."""
    status_code = 403


class NotFound(PortalError):
    """Unknown record, or one the caller cannot reach. The two are not told apart."""
    status_code = 404


class InvalidInput(PortalError):
    """Malformed identifiers, dates or enum values."""
    status_code = 400
