from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from dealflow.models import Difficulty, ExitType, GameSnapshot, LifestyleLevel, StatChanges


class GameCreateRequest(BaseModel):
    # None picks DEALFLOW_DEFAULT_DIFFICULTY.
    difficulty: Difficulty | None = None
    seed: int | None = Field(default=None, ge=0)


class GameListResponse(BaseModel):
    games: list[GameSnapshot]


class GameIdResponse(BaseModel):
    game_id: UUID


class ActionResponse(BaseModel):
    state: GameSnapshot
    accepted: bool
    reason: str | None = None
    feed_entry_ids: list[str] = Field(default_factory=list)


class FeedEntry(BaseModel):
    id: str
    fields: dict[str, str]


class FeedResponse(BaseModel):
    entries: list[FeedEntry]


class AdvisorRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=4000)
    recent_dialogue: list[str] = Field(default_factory=list, max_length=20)


class AdvisorResponse(BaseModel):
    text: str
    accepted: bool
    reason: str | None = None
    effects_applied: bool = False
    state: GameSnapshot


# --- action payloads ---------------------------------------------------------------


class EmptyPayload(BaseModel):
    pass


class CompanyPayload(BaseModel):
    company_id: int


class OfferPayload(BaseModel):
    company_id: int
    bid: int = Field(..., gt=0)


class DealBidPayload(BaseModel):
    deal_id: int
    bid: int = Field(..., gt=0)


class ManagementPayload(BaseModel):
    company_id: int
    action_id: str


class ExitPayload(BaseModel):
    company_id: int
    exit_type: ExitType


class ScenarioChoicePayload(BaseModel):
    choice_index: int = Field(..., ge=0)


class EventChoicePayload(BaseModel):
    # None lets the event resolve itself with its passive option.
    option_id: str | None = None


class DramaChoicePayload(BaseModel):
    choice_index: int | None = Field(default=None, ge=0)


class LifestylePayload(BaseModel):
    lifestyle: LifestyleLevel


class SkillPayload(BaseModel):
    skill_id: str


class LoanPayload(BaseModel):
    amount: int = Field(..., gt=0)


class MeetPayload(BaseModel):
    npc_id: str


class ChangesPayload(BaseModel):
    changes: StatChanges
    source: str = "external"
