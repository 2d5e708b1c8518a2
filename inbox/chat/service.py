import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from inbox.chat.resolver import utc_now_iso
from inbox.chat.store import DataStore, Row
from inbox.core.errors import (
    ConversationNotFound,
    EmptyMessage,
    NotAuthenticated,
    NotParticipant,
    StoreError,
)


logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = "id, conversation_id, sender_id, content, media_url, media_type, created_at"
PROFILE_COLUMNS = "id, username, display_name, avatar_url"


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _activity_key(conversation: Row) -> tuple[bool, datetime]:
    # Threads without any activity stamp go last instead of Postgres' NULLS FIRST
    stamp = _parse_ts(conversation.get("last_message_at") or conversation.get("created_at"))
    if stamp is None:
        return (False, datetime.min.replace(tzinfo=timezone.utc))
    return (True, stamp)


@dataclass
class ConversationSummary:
    id: str
    is_group: bool
    created_at: Optional[str]
    last_message_at: Optional[str]
    participant_ids: list[str] = field(default_factory=list)
    participants: list[Row] = field(default_factory=list)
    last_read_at: Optional[str] = None
    last_message: Optional[Row] = None
    unread_count: int = 0


class MessagingService:
    """Inbox, history and send operations on top of the participant tables."""

    def __init__(self, store: DataStore, clock: Callable[[], str] = utc_now_iso):
        self.store = store
        self.clock = clock

    def list_conversations(self, user_id: Optional[str]) -> list[ConversationSummary]:
        """
        All conversations `user_id` takes part in, most recently active first.

        Each thread is queried on its own (participants, newest message, unread
        count) so a busy conversation can't crowd the others out of a capped
        response. Unread counts cover messages from other participants newer
        than the user's `last_read_at`, or all of them when the user never read
        the thread.
        """
        if not user_id:
            raise NotAuthenticated()

        memberships = self.store.select(
            "conversation_participants",
            "conversation_id, last_read_at",
            eq={"user_id": user_id},
        )
        if not memberships:
            return []

        last_read = {str(row["conversation_id"]): row.get("last_read_at") for row in memberships}

        conversations = self.store.select(
            "conversations",
            "id, is_group, created_at, last_message_at",
            in_={"id": list(last_read)},
            order="last_message_at",
            desc=True,
        )
        conversations = sorted(conversations, key=_activity_key, reverse=True)

        summaries = []
        for conversation in conversations:
            conversation_id = str(conversation["id"])
            read_at = last_read.get(conversation_id)

            participants = self.store.select(
                "conversation_participants",
                "user_id",
                eq={"conversation_id": conversation_id},
            )

            newest = self.store.select(
                "messages",
                MESSAGE_COLUMNS,
                eq={"conversation_id": conversation_id},
                order="created_at",
                desc=True,
                limit=1,
            )

            unread = self.store.count(
                "messages",
                eq={"conversation_id": conversation_id},
                neq={"sender_id": user_id},
                gt={"created_at": read_at} if read_at else None,
            )

            summaries.append(
                ConversationSummary(
                    id=conversation_id,
                    is_group=bool(conversation.get("is_group")),
                    created_at=conversation.get("created_at"),
                    last_message_at=conversation.get("last_message_at"),
                    participant_ids=[str(row["user_id"]) for row in participants],
                    last_read_at=read_at,
                    last_message=newest[0] if newest else None,
                    unread_count=unread,
                )
            )

        user_ids = {uid for s in summaries for uid in s.participant_ids}
        user_ids.update(str(s.last_message["sender_id"]) for s in summaries if s.last_message)
        profiles = self._profiles(user_ids)

        for summary in summaries:
            summary.participants = [profiles[uid] for uid in summary.participant_ids]
            if summary.last_message:
                summary.last_message["sender"] = profiles[str(summary.last_message["sender_id"])]

        return summaries

    def get_messages(
        self, user_id: Optional[str], conversation_id: str, mark_read: bool = True
    ) -> list[Row]:
        self._require_participant(user_id, conversation_id)

        messages = self.store.select(
            "messages",
            "*",
            eq={"conversation_id": conversation_id},
            order="created_at",
            desc=False,
        )

        profiles = self._profiles(str(m["sender_id"]) for m in messages)
        for message in messages:
            message["sender"] = profiles[str(message["sender_id"])]

        if mark_read:
            self._touch_last_read(user_id, conversation_id)

        return messages

    def send_message(
        self,
        user_id: Optional[str],
        conversation_id: str,
        content: str,
        media_url: Optional[str] = None,
        media_type: str = "text",
    ) -> Row:
        content = (content or "").strip()
        if not content and not media_url:
            raise EmptyMessage()

        self._require_participant(user_id, conversation_id)

        inserted = self.store.insert(
            "messages",
            {
                "conversation_id": conversation_id,
                "sender_id": user_id,
                "content": content,
                "media_url": media_url,
                "media_type": media_type or "text",
            },
        )
        if not inserted:
            raise StoreError("The data store did not return the new message.")

        message = inserted[0]

        self.store.update(
            "conversations",
            {"last_message_at": message.get("created_at") or self.clock()},
            eq={"id": conversation_id},
        )

        message["sender"] = self._profiles([user_id])[user_id]

        logger.info(
            f"message_sent conversation_id={conversation_id} sender={user_id} "
            f"media_type={message.get('media_type', media_type)}"
        )
        return message

    def mark_read(self, user_id: Optional[str], conversation_id: str) -> str:
        self._require_participant(user_id, conversation_id)
        return self._touch_last_read(user_id, conversation_id)

    def _touch_last_read(self, user_id: str, conversation_id: str) -> str:
        """
        Move the read position up to the newest message.

        The stamp is that message's `created_at`, written by the store's clock,
        so unread counts don't drift when this process' clock disagrees with it.
        """
        newest = self.store.select(
            "messages",
            "created_at",
            eq={"conversation_id": conversation_id},
            order="created_at",
            desc=True,
            limit=1,
        )
        stamp = newest[0]["created_at"] if newest and newest[0].get("created_at") else self.clock()

        self.store.update(
            "conversation_participants",
            {"last_read_at": stamp},
            eq={"conversation_id": conversation_id, "user_id": user_id},
        )
        return stamp

    def _profiles(self, user_ids: Iterable[str]) -> dict[str, Row]:
        """Public profile per user id; users without a profile row get empty fields."""
        ids = sorted(set(user_ids))
        rows = self.store.select("profiles", PROFILE_COLUMNS, in_={"id": ids})
        found = {str(row["id"]): row for row in rows}

        return {
            uid: {
                "user_id": uid,
                "username": found.get(uid, {}).get("username"),
                "display_name": found.get(uid, {}).get("display_name"),
                "avatar_url": found.get(uid, {}).get("avatar_url"),
            }
            for uid in ids
        }

    def _require_participant(self, user_id: Optional[str], conversation_id: str) -> None:
        if not user_id:
            raise NotAuthenticated()

        conversation = self.store.select(
            "conversations", "id", eq={"id": conversation_id}, limit=1
        )
        if not conversation:
            raise ConversationNotFound(conversation_id)

        membership = self.store.select(
            "conversation_participants",
            "id",
            eq={"conversation_id": conversation_id, "user_id": user_id},
            limit=1,
        )
        if not membership:
            raise NotParticipant()
