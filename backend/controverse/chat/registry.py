"""Registry of connected chat participants.

Maps the transport's connection id to the Participant record for that
connection. All reads and writes go through a single lock, and every
read-modify-write the coordinator needs is exposed as one method so callers
never observe a half-applied change.
"""
import logging
import random
import string
import threading
from typing import Dict, List, Optional

from .schemas import Participant, ParticipantView

logger = logging.getLogger(__name__)

PUBLIC_ID_LENGTH = 9
PUBLIC_ID_ALPHABET = string.digits + string.ascii_lowercase

# Fixed saturation/lightness; only the hue is random
COLOR_TEMPLATE = "hsl({hue}, 70%, 60%)"

NICKNAME_PREFIX = "User"
NICKNAME_SUFFIX_MAX = 9999

# Bound on re-draws when a generated public id is already taken
_MAX_ID_ATTEMPTS = 8


class ConnectionAlreadyRegistered(KeyError):
    """Raised when add() is called twice for the same connection id."""


class ParticipantRegistry:
    """Thread-safe mapping from connection id to Participant."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._participants: Dict[str, Participant] = {}
        self._lock = threading.Lock()
        self._rng = rng or random.SystemRandom()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def add(self, connection_id: str) -> Participant:
        """Create and register a participant for a new connection.

        Raises:
            ConnectionAlreadyRegistered: If the connection id is already present.
        """
        with self._lock:
            if connection_id in self._participants:
                raise ConnectionAlreadyRegistered(connection_id)

            participant = Participant(
                connectionId=connection_id,
                publicId=self._new_public_id(),
                color=COLOR_TEMPLATE.format(hue=self._rng.randrange(360)),
                nickname=f"{NICKNAME_PREFIX}{self._rng.randint(0, NICKNAME_SUFFIX_MAX)}",
            )
            self._participants[connection_id] = participant
            return participant

    def get(self, connection_id: str) -> Optional[Participant]:
        with self._lock:
            return self._participants.get(connection_id)

    def remove(self, connection_id: str) -> Optional[Participant]:
        with self._lock:
            return self._participants.pop(connection_id, None)

    def list_snapshot(self) -> List[ParticipantView]:
        """Presence list in join order, copied out of live state."""
        with self._lock:
            return [p.view() for p in self._participants.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._participants)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._participants

    # -----------------------------------------------------------------------
    # Mutators
    # -----------------------------------------------------------------------

    def set_typing(self, connection_id: str, is_typing: bool) -> Optional[Participant]:
        """Set the typing flag.

        Returns:
            The participant if the flag actually changed, None if the
            participant is gone or was already in the requested state.
        """
        with self._lock:
            participant = self._participants.get(connection_id)
            if participant is None or participant.isTyping == is_typing:
                return None
            participant.isTyping = is_typing
            return participant

    def set_nickname(self, connection_id: str, nickname: str) -> Optional[str]:
        """Replace the nickname and return the previous one (None if absent)."""
        with self._lock:
            participant = self._participants.get(connection_id)
            if participant is None:
                return None
            old = participant.nickname
            participant.nickname = nickname
            return old

    def increment_burst(self, connection_id: str) -> Optional[int]:
        with self._lock:
            participant = self._participants.get(connection_id)
            if participant is None:
                return None
            participant.messageBurstCount += 1
            return participant.messageBurstCount

    def decrement_burst(self, participant: Participant) -> bool:
        """Decrement the burst count if this exact participant is still registered.

        A connection id can be reused by the transport after a disconnect, so
        liveness is checked by identity rather than by id alone.
        """
        with self._lock:
            current = self._participants.get(participant.connectionId)
            if current is not participant:
                return False
            current.messageBurstCount = max(0, current.messageBurstCount - 1)
            return True

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _new_public_id(self) -> str:
        taken = {p.publicId for p in self._participants.values()}
        candidate = ""
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = "".join(
                self._rng.choice(PUBLIC_ID_ALPHABET) for _ in range(PUBLIC_ID_LENGTH)
            )
            if candidate not in taken:
                return candidate
        logger.warning("[Registry] Public id collision not resolved after %d draws", _MAX_ID_ATTEMPTS)
        return candidate
