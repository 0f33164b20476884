"""Chat, project and message exceptions."""

from typing import Any

from .base import BadRequestError, BaseAppException, NotFoundError, ValidationError


class ChatNotFoundError(NotFoundError):
    """Raised when a chat does not exist or belongs to another user."""

    def __init__(self, message: str = "Chat not found"):
        super().__init__(message=message, error_code="CHAT_NOT_FOUND")


class ProjectNotFoundError(NotFoundError):
    """Raised when a project does not exist or belongs to another user."""

    def __init__(self, message: str = "Project not found"):
        super().__init__(message=message, error_code="PROJECT_NOT_FOUND")


class EmptyMessageError(BadRequestError):
    """Raised when a message has neither text nor parts."""

    def __init__(self, message: str = "Message text or parts are required"):
        super().__init__(message=message, error_code="EMPTY_MESSAGE")


class InvalidPartError(ValidationError):
    """Raised when a message part cannot be accepted for storage."""

    def __init__(self, message: str = "Invalid message part", details: dict[str, Any] | None = None):
        super().__init__(message=message, error_code="INVALID_MESSAGE_PART", details=details)


class InvalidToolStateTransition(BaseAppException):
    """Raised when a tool part is moved backwards through its lifecycle."""

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Cannot move tool part from '{current}' to '{target}'",
            status_code=409,
            error_code="INVALID_TOOL_STATE_TRANSITION",
            details={"current": current, "target": target},
        )


class StreamProtocolError(BaseAppException):
    """Raised when stream events arrive in an order the assembler cannot apply."""

    def __init__(self, message: str = "Unexpected stream event", details: dict[str, Any] | None = None):
        super().__init__(
            message=message, status_code=500, error_code="STREAM_PROTOCOL_ERROR", details=details
        )
