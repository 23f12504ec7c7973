"""Structured error types for the agent system."""


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class TransportError(AgentError):
    """The chat backend failed during a turn. Fatal to the conversation loop."""

    def __init__(self, message: str):
        super().__init__(message)
        self.transcript = ""


class RequestCancelled(AgentError):
    """The in-flight request was cancelled before the turn completed."""

    def __init__(self, message: str = "request cancelled", partial: str = ""):
        self.partial = partial
        super().__init__(message)


class RegistryError(AgentError):
    """Invalid tool catalog (raised at startup, never per call)."""
    pass


class CompactionError(AgentError):
    """The backend did not produce a usable conversation summary."""
    pass


class ToolError(AgentError):
    """Error raised during tool execution.

    ``output`` keeps whatever text the tool produced before failing so it can
    still be reported back to the model.
    """

    def __init__(self, tool_name: str, message: str, output: str = ""):
        self.tool_name = tool_name
        self.message = message
        self.output = output
        super().__init__(f"{tool_name} error: {message}")


class ToolArgumentError(ToolError):
    """The argument bag for a tool call could not be decoded."""
    pass


class ToolExecutionError(ToolError):
    """The tool handler ran and failed."""
    pass


class ShellBlockedError(ToolExecutionError):
    """Raised when a shell command is blocked by safety guards."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__("shell", f"Blocked: {reason}")


class ShellTimeoutError(ToolExecutionError):
    """Raised when a shell command exceeds its timeout."""

    def __init__(self, timeout: int, output: str = ""):
        self.timeout = timeout
        super().__init__("shell", f"Timed out after {timeout}s", output=output)
