"""
Direct (1-on-1) conversation resolution.

Finds the non-group conversation two users already share, or creates one
together with a seed message so it shows up right away in inbox views that
sort by `last_message_at`.

The store has no unique constraint on the participant pair, so an existing
conversation is found by intersecting the participant rows of both users.
"""

import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from inbox.chat.store import DataStore
from inbox.core.errors import NotAuthenticated, SelfMessaging, StoreError


logger = logging.getLogger(__name__)

SEED_MESSAGES = {
    "en": "Hi there! Send me a message.",
    "ar": "مرحباً! أرسل لي رسالة.",
}
DEFAULT_LOCALE = "en"


def seed_message_for(locale: Optional[str]) -> str:
    """Pick the seed message for an Accept-Language style value ("ar-SA,ar;q=0.9")."""
    if not locale:
        return SEED_MESSAGES[DEFAULT_LOCALE]

    primary = locale.split(",")[0].split(";")[0].strip().lower()
    language = primary.split("-")[0]
    return SEED_MESSAGES.get(language, SEED_MESSAGES[DEFAULT_LOCALE])


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ResolvedConversation:
    conversation_id: str
    is_new: bool


class _PairLock:
    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()


class PairLocks:
    """One lock per unordered user pair, dropped once nobody holds a reference."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[tuple[str, ...], _PairLock]" = (
            weakref.WeakValueDictionary()
        )

    def for_pair(self, user_a: str, user_b: str) -> _PairLock:
        key = tuple(sorted([user_a, user_b]))
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = _PairLock()
                self._locks[key] = lock
            return lock


class ConversationResolver:
    def __init__(
        self,
        store: DataStore,
        clock: Callable[[], str] = utc_now_iso,
        pair_locks: Optional[PairLocks] = None,
    ):
        self.store = store
        self.clock = clock
        self._pair_locks = pair_locks or PairLocks()

    def resolve_direct_conversation(
        self,
        current_user_id: Optional[str],
        other_user_id: str,
        locale: Optional[str] = None,
    ) -> ResolvedConversation:
        if not current_user_id:
            raise NotAuthenticated()

        current_user_id = str(current_user_id)
        other_user_id = str(other_user_id)

        if current_user_id == other_user_id:
            raise SelfMessaging()

        # Serialise lookups for the same pair so a double submit can't create two threads
        with self._pair_locks.for_pair(current_user_id, other_user_id):
            existing = self.find_direct_conversation(current_user_id, other_user_id)
            if existing:
                logger.info(
                    f"conversation_lookup found=true conversation_id={existing} "
                    f"user={current_user_id} other={other_user_id}"
                )
                return ResolvedConversation(conversation_id=existing, is_new=False)

            logger.info(
                f"conversation_lookup found=false user={current_user_id} other={other_user_id}"
            )
            conversation_id = self.create_direct_conversation(
                current_user_id, other_user_id, seed_message_for(locale)
            )
            return ResolvedConversation(conversation_id=conversation_id, is_new=True)

    def find_direct_conversation(self, current_user_id: str, other_user_id: str) -> Optional[str]:
        # 1. Conversations the current user is in
        mine = self.store.select(
            "conversation_participants",
            "conversation_id",
            eq={"user_id": current_user_id},
        )
        my_ids = [row["conversation_id"] for row in mine]
        if not my_ids:
            return None

        # 2. The subset the other user is also in
        shared = self.store.select(
            "conversation_participants",
            "conversation_id",
            eq={"user_id": other_user_id},
            in_={"conversation_id": my_ids},
        )
        shared_ids = [row["conversation_id"] for row in shared]
        if not shared_ids:
            return None

        # 3. Keep the direct ones. First row wins if the pair somehow has several.
        direct = self.store.select(
            "conversations",
            "id, is_group",
            eq={"is_group": False},
            in_={"id": shared_ids},
        )
        if not direct:
            return None

        return str(direct[0]["id"])

    def create_direct_conversation(
        self, current_user_id: str, other_user_id: str, seed_message: str
    ) -> str:
        now = self.clock()

        created = self.store.insert(
            "conversations",
            {"is_group": False, "last_message_at": now},
        )
        if not created:
            raise StoreError("The data store did not return the new conversation.")

        conversation_id = str(created[0]["id"])

        try:
            self.store.insert(
                "conversation_participants",
                [
                    {
                        "conversation_id": conversation_id,
                        "user_id": current_user_id,
                        "last_read_at": now,
                    },
                    {
                        "conversation_id": conversation_id,
                        "user_id": other_user_id,
                        "last_read_at": None,
                    },
                ],
            )

            seed = self.store.insert(
                "messages",
                {
                    "conversation_id": conversation_id,
                    "sender_id": current_user_id,
                    "content": seed_message,
                    "media_url": None,
                    "media_type": "text",
                },
            )

            # Activity and read position follow the store clock, not ours
            seeded_at = seed[0].get("created_at") if seed else None
            if seeded_at and seeded_at != now:
                self.store.update(
                    "conversations", {"last_message_at": seeded_at}, eq={"id": conversation_id}
                )
                self.store.update(
                    "conversation_participants",
                    {"last_read_at": seeded_at},
                    eq={"conversation_id": conversation_id, "user_id": current_user_id},
                )
        except StoreError:
            self._rollback(conversation_id)
            raise

        logger.info(
            f"conversation_created conversation_id={conversation_id} "
            f"user={current_user_id} other={other_user_id}"
        )
        return conversation_id

    def _rollback(self, conversation_id: str) -> None:
        """Remove a half-created conversation, children first."""
        try:
            self.store.delete("messages", eq={"conversation_id": conversation_id})
            self.store.delete("conversation_participants", eq={"conversation_id": conversation_id})
            self.store.delete("conversations", eq={"id": conversation_id})
            logger.warning(f"conversation_rollback conversation_id={conversation_id}")
        except StoreError as error:
            logger.error(
                f"conversation_rollback_failed conversation_id={conversation_id} error={error}"
            )


def resolve_direct_conversation(
    store: DataStore,
    current_user_id: Optional[str],
    other_user_id: str,
    locale: Optional[str] = None,
    pair_locks: Optional[PairLocks] = None,
) -> ResolvedConversation:
    """
    One-shot resolution without keeping a resolver around.

    Concurrent calls for the same pair are only serialised when they share
    `pair_locks`; without it every call gets a private registry and two
    simultaneous calls can each create a conversation.
    """
    return ConversationResolver(store, pair_locks=pair_locks).resolve_direct_conversation(
        current_user_id, other_user_id, locale=locale
    )
