import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


class MessagingError(Exception):
    """Base class for every error surfaced to the caller of the messaging API."""

    status_code = 400
    code = "messaging_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.code}


class NotAuthenticated(MessagingError):
    status_code = 401
    code = "not_authenticated"

    def __init__(self, message: str = "You need to be logged in to send messages"):
        super().__init__(message)


class SelfMessaging(MessagingError):
    status_code = 400
    code = "self_messaging"

    def __init__(self, message: str = "You cannot message yourself"):
        super().__init__(message)


class ConversationNotFound(MessagingError):
    status_code = 404
    code = "conversation_not_found"

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} not found")


class NotParticipant(MessagingError):
    status_code = 403
    code = "not_participant"

    def __init__(self, message: str = "You are not a participant in this conversation"):
        super().__init__(message)


class EmptyMessage(MessagingError):
    status_code = 422
    code = "empty_message"

    def __init__(self, message: str = "Message content cannot be empty"):
        super().__init__(message)


class StoreError(MessagingError):
    """
    Wraps a failed query or insert against the remote store.

    Carries PostgREST's `code`, `details` and `hint` when the store returned them.
    """

    status_code = 502
    code = "store_error"

    def __init__(
        self,
        message: str,
        store_code: Optional[str] = None,
        details: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        self.store_code = store_code
        self.details = details
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        if self.store_code:
            return f"{self.message} ({self.store_code})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["detail"] = str(self)
        body["store"] = {
            "message": self.message,
            "code": self.store_code,
            "details": self.details,
            "hint": self.hint,
        }
        return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MessagingError)
    async def messaging_error_handler(request: Request, exc: MessagingError):
        if isinstance(exc, StoreError):
            logger.error(
                f"store_error path={request.url.path} code={exc.store_code} "
                f"message={exc.message} details={exc.details} hint={exc.hint}"
            )
        else:
            logger.warning(f"{exc.code} path={request.url.path} message={exc.message}")

        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
