"""Exceptions raised by the gateway and the view-state stores"""


class BezaSpaceError(Exception):
    """Base exception for BezaSpace errors"""
    pass


class PreconditionError(BezaSpaceError):
    """Raised when a caller violates a contract before any I/O happens"""
    pass


class NotFoundError(BezaSpaceError):
    """Raised when a write targets a document or entry that does not exist"""
    pass


class WriteConflictError(BezaSpaceError):
    """Raised when a conditional write keeps losing to concurrent writers"""
    pass


class GatewayError(BezaSpaceError):
    """Raised when a backend call fails.

    The message is safe to show to users; the backend detail stays on
    ``cause``.
    """
    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}")
