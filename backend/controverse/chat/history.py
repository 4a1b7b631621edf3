"""Bounded in-memory message history shared by all participants.

Messages are kept oldest-first. Once the store grows past its bound, the
oldest entries are evicted. Edit and delete are restricted to the message's
author: lookups match on both message id and author public id.
"""
import threading
from typing import Any, List, Optional

from .schemas import ChatMessage, utc_now_iso

# Default number of messages retained and replayed to new connections
MAX_HISTORY = 50


class HistoryStore:
    """Thread-safe, bounded, append-ordered message log.

    Callers never receive the stored objects themselves; every read returns
    copies so history can only change through this class.
    """

    def __init__(self, max_history: int = MAX_HISTORY) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history
        self._messages: List[ChatMessage] = []
        self._lock = threading.Lock()

    def append(self, message: ChatMessage) -> List[ChatMessage]:
        """Append a message, evicting from the head to stay within bounds.

        Returns:
            The evicted messages, oldest first (usually empty or one entry).
        """
        with self._lock:
            self._messages.append(message.model_copy(deep=True))
            overflow = len(self._messages) - self.max_history
            if overflow <= 0:
                return []
            evicted = self._messages[:overflow]
            del self._messages[:overflow]
            return evicted

    def find_by_id_and_author(
        self, message_id: Any, author_public_id: str
    ) -> Optional[ChatMessage]:
        with self._lock:
            index = self._index_of(message_id, author_public_id)
            if index is None:
                return None
            return self._messages[index].model_copy(deep=True)

    def remove_by_id_and_author(self, message_id: Any, author_public_id: str) -> bool:
        with self._lock:
            index = self._index_of(message_id, author_public_id)
            if index is None:
                return False
            del self._messages[index]
            return True

    def edit_by_id_and_author(
        self, message_id: Any, author_public_id: str, new_text: str
    ) -> Optional[ChatMessage]:
        """Overwrite a message's text in place and mark it edited.

        Returns:
            A copy of the edited message, or None if no message by this
            author has the given id.
        """
        with self._lock:
            index = self._index_of(message_id, author_public_id)
            if index is None:
                return None
            message = self._messages[index]
            message.text = new_text
            message.edited = True
            message.editedAt = utc_now_iso()
            return message.model_copy(deep=True)

    def snapshot(self) -> List[ChatMessage]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._messages]

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def _index_of(self, message_id: Any, author_public_id: str) -> Optional[int]:
        # Ids are client-supplied and may collide; the oldest match wins.
        # Types must match too, so True never stands in for 1.
        for i, message in enumerate(self._messages):
            if (
                type(message.id) is type(message_id)
                and message.id == message_id
                and message.userId == author_public_id
            ):
                return i
        return None
