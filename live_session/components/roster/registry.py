"""
Participant Registry.

Authoritative roster of one session. The server always sends full
snapshots, so the only mutation is a wholesale replace; there is no
partial-update API to get out of sync with the server.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator

from shared.config.logging import get_logger
from live_session.components.core.constants import SessionConstants
from live_session.components.events.types import Participant

logger = get_logger(__name__)


class ParticipantRegistry:
    """
    Order-preserving participant snapshot keyed by participant_key.

    One registry per session client. Never share a registry between
    sessions: scores would bleed across them.
    """

    def __init__(self) -> None:
        self._participants: MappingProxyType[str, Participant] = MappingProxyType({})
        self._version = 0

    @property
    def version(self) -> int:
        """Number of snapshots applied so far."""
        return self._version

    def apply(self, participants: Iterable[Participant]) -> None:
        """
        Replace the full participant set.

        Input order is kept. If a key appears twice, the later entry's data
        wins and the earlier entry's position is kept.
        """
        snapshot: dict[str, Participant] = {}
        duplicates = 0
        for participant in participants:
            if participant.participant_key in snapshot:
                duplicates += 1
            snapshot[participant.participant_key] = participant

        if duplicates:
            logger.warning("Roster snapshot contained duplicate keys", duplicates=duplicates)
        if len(snapshot) > SessionConstants.MAX_PARTICIPANTS:
            logger.info("Roster exceeds full-snapshot sizing", size=len(snapshot))

        # Swap in one assignment so readers never see a half-applied roster
        self._participants = MappingProxyType(snapshot)
        self._version += 1

    def get(self, participant_key: str) -> Participant | None:
        return self._participants.get(participant_key)

    def all(self) -> list[Participant]:
        """Participants in snapshot order."""
        return list(self._participants.values())

    def size(self) -> int:
        return len(self._participants)

    def __len__(self) -> int:
        return len(self._participants)

    def __contains__(self, participant_key: object) -> bool:
        return participant_key in self._participants

    def __iter__(self) -> Iterator[Participant]:
        return iter(self.all())
