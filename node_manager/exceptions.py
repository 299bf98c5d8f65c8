"""Custom exceptions for node manager."""


class NodeManagerError(Exception):
    """Base exception for all node manager errors."""

    def __init__(self, message: str, details: str = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class UsageError(NodeManagerError):
    """Exception raised when required input is missing or invalid."""

    pass


class ConfigLoadError(NodeManagerError):
    """Exception raised when a profile cannot be read or parsed."""

    pass


class ConfigurationError(NodeManagerError):
    """Exception raised for configuration errors."""

    pass


class ValidationError(NodeManagerError):
    """Exception raised for validation errors."""

    pass


class NotFoundError(NodeManagerError):
    """Exception raised when a named node, profile or file does not exist."""

    pass


class ExecutionError(NodeManagerError):
    """Exception raised when a runner command exits non-zero or the transport fails."""

    def __init__(
        self,
        message: str,
        details: str = None,
        argv: list[str] | None = None,
        exit_code: int | None = None,
        stderr: str = "",
    ):
        self.argv = list(argv or [])
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message, details)


class UnregisteredCommandError(ExecutionError):
    """Exception raised by the fake runner for a command it was not told about."""

    def __init__(self, command: str, registered: list[str]):
        self.command = command
        self.registered = registered
        expected = ", ".join(f"`{c}`" for c in registered) or "(none)"
        super().__init__(
            f"unregistered command: `{command}`",
            f"expected one of: {expected}",
            argv=command.split(" "),
        )


class CacheError(NodeManagerError):
    """Exception raised when one or more artifacts could not be cached.

    Artifacts that were cached successfully stay on disk; ``results`` holds the
    outcome of every artifact in the request.
    """

    def __init__(self, message: str, details: str = None, results: list | None = None):
        self.results = list(results or [])
        super().__init__(message, details)


class DriverError(NodeManagerError):
    """Exception raised by a backend driver."""

    pass


class FatalDeleteError(NodeManagerError):
    """Exception raised when a node's backend could not be destroyed."""

    pass
