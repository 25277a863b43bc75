"""
Outcome taxonomy shared by the stores, the consistency engine and the API.

Each error carries the HTTP status it is rendered with; the message is shown to
the client for everything except StoreFault, whose detail stays in the logs.
"""


class TaskboardError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailure(TaskboardError):
    """Missing or invalid field, bad reference, completed-task constraint."""

    status_code = 400


class NotFound(TaskboardError):
    """Entity absent, or a malformed id used as a by-id lookup key."""

    status_code = 404


class Conflict(TaskboardError):
    """Unique-constraint violation (duplicate email)."""

    status_code = 400


class StoreFault(TaskboardError):
    """Persistence error not otherwise classified."""

    status_code = 500
