from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from roulette.api.models import SessionState
from roulette.errors import Conflict, InvalidInput, NotFound, RateLimited


@dataclass(frozen=True, slots=True)
class SubmissionContext:
    """A queue submission being validated.

    `device_id` is the submitting device for self-submissions, or the operator
    marker for operator submissions.
    """

    name: str
    participant_id: str
    device_id: str
    source: str  # "player" | "operator"


class SubmissionValidator(ABC):
    """A small, composable check run against the current state."""

    @abstractmethod
    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class RequiredFieldsValidator(SubmissionValidator):
    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        if not ctx.name:
            raise InvalidInput("Game name is required.")
        if not ctx.device_id:
            raise InvalidInput("device_id is required.")
        if not ctx.participant_id:
            raise InvalidInput("participant_id is required.")


@dataclass(frozen=True, slots=True)
class ParticipantExistsValidator(SubmissionValidator):
    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        if ctx.participant_id not in state.participants:
            raise NotFound("Participant not found.", code="participant-not-found")


@dataclass(frozen=True, slots=True)
class UnlockedQueueValidator(SubmissionValidator):
    """Players can't add to the wheel while it is spinning."""

    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        if state.is_locked:
            raise Conflict("The wheel is locked while spinning.", code="queue-locked")


@dataclass(frozen=True, slots=True)
class DeviceLimitValidator(SubmissionValidator):
    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        if ctx.device_id in state.submitted_by:
            raise RateLimited("This device has already submitted a game this round.")


@dataclass(frozen=True, slots=True)
class UniqueNameValidator(SubmissionValidator):
    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        key = ctx.name.casefold()
        if any(item.name.casefold() == key for item in state.queue_items):
            raise Conflict("Game already exists.", code="duplicate-name")


@dataclass(frozen=True, slots=True)
class OneItemPerParticipantValidator(SubmissionValidator):
    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        if any(item.participant_id == ctx.participant_id for item in state.queue_items):
            raise Conflict("Participant already has a game in this round.", code="participant-already-queued")


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[SubmissionValidator, ...]

    def validate(self, *, ctx: SubmissionContext, state: SessionState) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, state=state)


# Order matters: the first failing check decides the error the caller sees.
# The lock only gates players; operator paths stay open while the wheel spins.
SUBMISSION_PIPELINES: dict[str, ValidatorPipeline] = {
    "player": ValidatorPipeline(
        validators=(
            RequiredFieldsValidator(),
            ParticipantExistsValidator(),
            UnlockedQueueValidator(),
            DeviceLimitValidator(),
            UniqueNameValidator(),
            OneItemPerParticipantValidator(),
        )
    ),
    "operator": ValidatorPipeline(
        validators=(
            RequiredFieldsValidator(),
            ParticipantExistsValidator(),
            UniqueNameValidator(),
            OneItemPerParticipantValidator(),
        )
    ),
}


def pipeline_for_source(source: str) -> ValidatorPipeline:
    pipe = SUBMISSION_PIPELINES.get(source)
    if pipe is None:
        raise ValueError(f"Unknown submission source: {source}")
    return pipe
