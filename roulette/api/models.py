from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, StrictBool


# --- persisted session state ---


class QueueItem(BaseModel):
    id: str
    name: str
    # Resolved once from the catalog when the item is created; legacy records may lack it.
    category: str | None = None
    created_at: datetime
    participant_id: str
    # Submitting device, or "operator:<participant_id>" for operator-created items.
    device_id: str


class RoundResult(BaseModel):
    id: str
    item_id: str
    item_name: str
    category: str | None = None
    participant_id: str
    participant_name: str
    before: float
    after: float
    delta: float
    created_at: datetime


class Participant(BaseModel):
    id: str
    name: str
    total_profit: float = 0.0
    device_ids: list[str] = Field(default_factory=list)
    rounds: list[RoundResult] = Field(default_factory=list)


class SessionState(BaseModel):
    # Insertion order is the wheel order.
    queue_items: list[QueueItem] = Field(default_factory=list)
    is_locked: bool = False

    # device id -> queue item id submitted this round.
    submitted_by: dict[str, str] = Field(default_factory=dict)

    # participant id -> participant, in creation order.
    participants: dict[str, Participant] = Field(default_factory=dict)

    history: list[RoundResult] = Field(default_factory=list)

    spin_counter: int = 0
    last_bonus_at: int = 0

    # device id -> participant id; mirrors Participant.device_ids.
    device_index: dict[str, str] = Field(default_factory=dict)


# --- derived views ---


class CategoryStats(BaseModel):
    category: str
    rounds_played: int = 0
    total_profit: float = 0.0
    biggest_win: float = 0.0
    biggest_loss: float = 0.0


class ConnectedDevice(BaseModel):
    device_id: str
    participant_name: str
    has_submitted: bool


class SessionView(BaseModel):
    revision: int
    queue_items: list[QueueItem]
    is_locked: bool
    leaderboard: list[Participant]
    category_stats: list[CategoryStats]
    connected_devices: list[ConnectedDevice]
    submitted_device_ids: list[str]
    device_limit: int
    # Only meaningful on one-shot queries made with a device id.
    has_submitted: bool = False


# --- requests ---


class RegisterParticipantRequest(BaseModel):
    name: str = ""
    device_id: str = ""


class CreateParticipantRequest(BaseModel):
    name: str = ""


class EnqueueRequest(BaseModel):
    name: str = ""
    device_id: str = ""
    participant_id: str = ""


class OperatorEnqueueRequest(BaseModel):
    participant_id: str = ""
    name: str = ""


class SpinRequest(BaseModel):
    locked: StrictBool


class RecordResultRequest(BaseModel):
    item_id: str = ""
    before: float
    after: float


# --- responses ---


class ParticipantResponse(BaseModel):
    participant: Participant
    leaderboard: list[Participant]


class LeaderboardResponse(BaseModel):
    leaderboard: list[Participant]


class QueueItemResponse(BaseModel):
    item: QueueItem


class SpinResponse(BaseModel):
    is_locked: bool
    spin_counter: int


class BonusCheckResponse(BaseModel):
    eligible: bool
    spins_since_last_bonus: int
    total_spins: int


class BonusDrawResponse(BaseModel):
    amount: int


class RecordResultResponse(BaseModel):
    result: RoundResult
    leaderboard: list[Participant]


class HistoryResponse(BaseModel):
    history: list[RoundResult]


class ResetResponse(BaseModel):
    success: bool
    message: str


class CatalogReloadResponse(BaseModel):
    categories: int
    items: int
