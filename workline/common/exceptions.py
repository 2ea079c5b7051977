"""
Custom Exception Classes for the Workline Gateway

Hierarchical exception structure for error handling across services.
"""


class WorklineError(Exception):
    """Base exception for all Workline gateway errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(WorklineError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceError(WorklineError):
    """Device link errors"""

    def __init__(
        self,
        message: str,
        port: str | None = None,
        recoverable: bool = True,
    ):
        self.port = port
        super().__init__(f"Device Error: {message}", recoverable)


class CommunicationError(DeviceError):
    """Serial open/read/write failures"""

    def __init__(self, message: str, port: str | None = None):
        super().__init__(message, port, recoverable=True)


class ProtocolError(WorklineError):
    """A device line that does not match the wire contract"""

    def __init__(self, message: str, line: str | None = None):
        self.line = line
        super().__init__(f"Protocol Error: {message}", recoverable=True)


class StoreError(WorklineError):
    """Work store (SQLite) errors"""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        recoverable: bool = True,
    ):
        self.operation = operation
        super().__init__(f"Store Error: {message}", recoverable)
