from dataclasses import asdict
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request

from inbox.chat.resolver import ConversationResolver
from inbox.chat.service import MessagingService
from inbox.chat.store import DataStore
from inbox.core.dependencies import get_current_user_id, get_store

from .schemas import (
    CreateDirectConversationModel,
    CreateDirectConversationResponseModel,
    GetConversationsResponseModel,
    GetMessagesResponseModel,
    MarkReadResponseModel,
    SendMessageModel,
    SendMessageResponseModel,
)


router = APIRouter()


def get_resolver(request: Request, store: DataStore = Depends(get_store)) -> ConversationResolver:
    # The pair locks live on the app so every request shares them
    return ConversationResolver(store, pair_locks=request.app.state.pair_locks)


def get_messaging_service(store: DataStore = Depends(get_store)) -> MessagingService:
    return MessagingService(store)


@router.post(
    "/conversations/direct",
    response_model=CreateDirectConversationResponseModel,
    status_code=200,
)
def get_or_create_direct_conversation(
    data: CreateDirectConversationModel,
    user_id: str = Depends(get_current_user_id),
    resolver: ConversationResolver = Depends(get_resolver),
    accept_language: Optional[str] = Header(default=None),
):
    """
    Get or create a direct (1-on-1) conversation with another user.

    Used when a user starts a chat from outside an existing conversation
    (e.g. the "Message" button on a profile).

    If a non-group conversation with both users as participants already exists,
    it is returned. Otherwise a new conversation is created, both users are added
    as participants and a seed message from the caller is written so the thread
    shows up in the inbox right away. The seed message follows `Accept-Language`.

    **Input**
    - `other_user_id`: UUID of the user to message

    **Returns**
    - `conversation_id`: UUID of the direct conversation
    - `is_new`: Whether the conversation was newly created

    **Errors**
    - 400: Trying to message yourself
    - 401: Unauthorized
    - 502: Data store error
    """
    resolved = resolver.resolve_direct_conversation(
        user_id, str(data.other_user_id), locale=accept_language
    )

    return {
        "conversation_id": resolved.conversation_id,
        "is_new": resolved.is_new,
    }


@router.get(
    "/conversations",
    response_model=GetConversationsResponseModel,
    status_code=200,
)
def get_conversations(
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """
    Retrieve all conversations for the authenticated user.

    Conversations are ordered by `last_message_at`, newest first. Each one
    carries its participants, the last message and the caller's unread count.

    **Errors**
    - 401: Invalid or expired JWT
    - 502: Data store error
    """
    summaries = service.list_conversations(user_id)
    return {"conversations": [asdict(summary) for summary in summaries]}


@router.get(
    "/messages/{conversation_id}",
    response_model=GetMessagesResponseModel,
    status_code=200,
)
def get_messages(
    conversation_id: UUID,
    mark_read: bool = True,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """
    Retrieve the message history of a conversation, oldest first.

    Unless `mark_read=false`, the caller's read position is moved to now.

    **Errors**
    - 401: Invalid or expired authentication token
    - 422: `conversation_id` is not a UUID
    - 403: User is not a participant
    - 404: Conversation does not exist
    - 502: Data store error
    """
    messages = service.get_messages(user_id, str(conversation_id), mark_read=mark_read)
    return {"messages": messages}


@router.post(
    "/messages",
    response_model=SendMessageResponseModel,
    status_code=201,
)
def send_message(
    data: SendMessageModel,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    """
    Send a message to a conversation the caller participates in.

    **Input**
    - `conversation_id`: UUID of the conversation
    - `content`: Message text (trimmed; may be empty only when `media_url` is set)
    - `media_url`, `media_type`: Optional attachment, `media_type` defaults to `text`

    **Errors**
    - 401: Unauthorized
    - 403: User is not a participant
    - 404: Conversation not found
    - 422: Empty message
    - 502: Data store error
    """
    message = service.send_message(
        user_id,
        str(data.conversation_id),
        data.content,
        media_url=data.media_url,
        media_type=data.media_type,
    )
    return {"message": message}


@router.post(
    "/conversations/{conversation_id}/read",
    response_model=MarkReadResponseModel,
    status_code=200,
)
def mark_conversation_read(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: MessagingService = Depends(get_messaging_service),
):
    last_read_at = service.mark_read(user_id, str(conversation_id))
    return {"conversation_id": conversation_id, "last_read_at": last_read_at}
