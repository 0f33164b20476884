# ruff: noqa: D107
"""Tool registry exceptions."""

from typing import Any

from .base import BaseAppException


class ToolError(BaseAppException):
    """Base exception for tool failures that abort a generation step."""

    def __init__(
        self,
        message: str = "Tool execution failed",
        error_code: str = "TOOL_ERROR",
        details: dict[str, Any] | None = None,
        status_code: int = 500,
    ):
        super().__init__(
            message=message, status_code=status_code, error_code=error_code, details=details
        )


class ToolConfigurationError(ToolError):
    """Raised when a tool's upstream credentials are missing."""

    def __init__(self, tool_name: str, setting: str):
        super().__init__(
            message=f"{setting} is not configured",
            error_code="TOOL_CONFIGURATION_ERROR",
            details={"tool": tool_name, "setting": setting},
        )


class UnknownToolError(ToolError):
    """Raised when the model requests a tool that is not registered."""

    def __init__(self, tool_name: str):
        super().__init__(
            message=f"Unknown tool '{tool_name}'",
            error_code="UNKNOWN_TOOL",
            details={"tool": tool_name},
            status_code=400,
        )


class ToolInputValidationError(ToolError):
    """Raised when model-supplied tool arguments fail validation."""

    def __init__(self, tool_name: str, errors: list[dict[str, Any]]):
        summary = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'input'}: {err.get('msg')}"
            for err in errors
        )
        super().__init__(
            message=f"Invalid input for {tool_name}: {summary}",
            error_code="TOOL_INPUT_INVALID",
            details={"tool": tool_name, "errors": errors},
            status_code=422,
        )
