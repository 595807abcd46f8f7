from dataclasses import dataclass


class ErrorCode:
    TRANSPORT_ERROR = "transport_error"
    PROTOCOL_ERROR = "protocol_error"
    TOOL_ERROR = "tool_error"
    PARSE_AMBIGUITY = "parse_ambiguity"
    LOOP_EXCEEDED = "loop_exceeded"
    UNKNOWN_TOOL = "unknown_tool"
    VALIDATION_ERROR = "validation_error"
    TIMEOUT = "timeout"
    CONFIG_ERROR = "config_error"


class MooncowError(Exception):
    """Base class for every error raised by the engine."""

    code: str = ""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(MooncowError):
    """Non-2xx response after the fallback ladder was exhausted."""

    code = ErrorCode.TRANSPORT_ERROR

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body[:400]


class ProtocolError(MooncowError):
    """An otherwise successful response did not carry a usable message."""

    code = ErrorCode.PROTOCOL_ERROR


class ToolExecutionError(MooncowError):
    """A tool provider failed; recovered by feeding the error back to the model."""

    code = ErrorCode.TOOL_ERROR

    def __init__(self, tool_name: str, message: str, code: str = ErrorCode.TOOL_ERROR) -> None:
        super().__init__(f"tool {tool_name} error: {message}")
        self.tool_name = tool_name
        self.reason = message
        self.code = code


class ParseAmbiguityError(MooncowError):
    """A textual tool call was detected but could not be parsed."""

    code = ErrorCode.PARSE_AMBIGUITY


class LoopExceededError(MooncowError):
    """The tool loop ran more rounds than allowed."""

    code = ErrorCode.LOOP_EXCEEDED

    def __init__(self, limit: int) -> None:
        super().__init__(f"Tool loop exceeded {limit} turns")
        self.limit = limit


class UnknownToolError(MooncowError):
    code = ErrorCode.UNKNOWN_TOOL

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        available = available or []
        suffix = f" (available: {', '.join(available)})" if available else ""
        super().__init__(f"Unknown tool: {name}{suffix}")
        self.name = name
        self.available = available


class ConfigError(MooncowError):
    code = ErrorCode.CONFIG_ERROR


@dataclass
class ContextBudgetReport:
    max_total_chars: int
    max_message_chars: int
    max_tool_chars: int
    total_chars: int
    kept_messages: int
    dropped_messages: int
    truncated_messages: int
    over_budget: bool
