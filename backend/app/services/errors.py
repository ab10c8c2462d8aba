"""Service-level exceptions surfaced to API callers."""

from __future__ import annotations


class ParticipantNotFoundError(ValueError):
    def __init__(self, participant_id) -> None:
        super().__init__(f"Participant {participant_id} not found")
        self.participant_id = participant_id


class InvalidSearchArgumentsError(ValueError):
    pass


class EmptyCacheError(ValueError):
    pass


class ClusteringInputError(ValueError):
    pass
