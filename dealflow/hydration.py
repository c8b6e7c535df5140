"""Rebuild valid entities from loosely-typed persisted or external data.

Nothing in here raises on bad input: wrong shapes fall back to the documented
starting values, out-of-range stats are clamped, arrays default to empty.
Keys are accepted in snake_case or camelCase.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ValidationError

from dealflow.core.clamp import as_float, as_int, clamp_loan_rate, clamp_stat
from dealflow.models import (
    ActiveSkill,
    ActorKind,
    AIState,
    CompanyEvent,
    CompletedExit,
    CompetitiveDeal,
    DayType,
    DealPhase,
    DealType,
    Difficulty,
    ExitType,
    Faction,
    GamePhase,
    GameSnapshot,
    GameTime,
    KnowledgeEntry,
    LifestyleLevel,
    MarketVolatility,
    Memory,
    NarrativeActor,
    NpcDrama,
    NpcSchedule,
    NpcStanding,
    PersonalFinances,
    PlayerLevel,
    PlayerState,
    PlayerWarning,
    PortfolioCompany,
    RivalFund,
    RivalPortfolioEntry,
    RivalStrategy,
    TimeSlot,
)
from dealflow.roster import (
    DEFAULT_FACTION_REPUTATION,
    MAX_ACTION_LOG,
    MAX_KNOWLEDGE_ENTRIES,
    MAX_MEMORIES,
    difficulty_spec,
)
from dealflow.finance import LIFESTYLE_TIERS

_CAMEL_RE = re.compile(r"_([a-z])")


def _camel(name: str) -> str:
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


def _get(raw: Mapping[str, Any], name: str, default: Any = None) -> Any:
    if name in raw:
        return raw[name]
    return raw.get(_camel(name), default)


def _mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _items(value: object) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _str(value: object, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _enum(enum_cls: type, value: object, default: Any) -> Any:
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        pass
    if isinstance(value, str):
        # Accept member names as well as values ("lbo" / "LBO").
        member = getattr(enum_cls, value.strip().lower(), None)
        if member is not None:
            return member
    return default


def slugify(text: str, *, max_len: int = 40) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return slug[:max_len] or "entry"


def clamp_memories(memories: list[Memory]) -> list[Memory]:
    return memories[-MAX_MEMORIES:]


def clamp_knowledge(entries: list[KnowledgeEntry]) -> list[KnowledgeEntry]:
    return entries[-MAX_KNOWLEDGE_ENTRIES:]


def clamp_action_log(lines: list[str]) -> list[str]:
    return lines[:MAX_ACTION_LOG]


def generate_unique_portfolio_id(existing_ids: Iterable[int]) -> int:
    ids = set(existing_ids)
    candidate = max(ids, default=0) + 1
    while candidate in ids:
        candidate += 1
    return candidate


def hydrate_faction_reputation(raw: object) -> dict[Faction, int]:
    data = _mapping(raw)
    out: dict[Faction, int] = {}
    for faction, default in DEFAULT_FACTION_REPUTATION.items():
        out[faction] = clamp_stat(data.get(faction.value, data.get(faction)), fallback=default)
    return out


def normalize_memory(raw: object, *, npc_id: str | None = None, tick: int = 0) -> Memory:
    if isinstance(raw, str):
        raw = {"summary": raw}
    data = _mapping(raw)
    summary = _str(_get(data, "summary"), "Interaction noted")
    sentiment = _get(data, "sentiment")
    if sentiment not in ("positive", "negative", "neutral"):
        sentiment = "neutral"
    source = _str(_get(data, "source_npc_id"), npc_id or "") or None
    mem_tick = as_int(_get(data, "tick"), tick)
    return Memory(
        id=_str(_get(data, "id"), f"{source or 'memory'}_{mem_tick}_{slugify(summary, max_len=24)}"),
        summary=summary,
        sentiment=sentiment,
        impact=as_int(_get(data, "impact"), 0),
        tags=[str(t) for t in _items(_get(data, "tags"))],
        source_npc_id=source,
        tick=mem_tick,
    )


def normalize_knowledge_entry(raw: object, *, source: str = "", tick: int = 0) -> KnowledgeEntry:
    if isinstance(raw, str):
        raw = {"summary": raw}
    data = _mapping(raw)
    summary = _str(_get(data, "summary"), "Unverified rumor")
    faction = _get(data, "faction")
    return KnowledgeEntry(
        id=_str(_get(data, "id"), slugify(summary)),
        summary=summary,
        source=_str(_get(data, "source"), source),
        npc_id=_str(_get(data, "npc_id")) or None,
        faction=_enum(Faction, faction, None) if faction is not None else None,
        tags=[str(t) for t in _items(_get(data, "tags"))],
        confidence=clamp_stat(_get(data, "confidence"), fallback=70),
        tick=as_int(_get(data, "tick"), tick),
    )


def _validate_or_none(model: type[BaseModel], raw: object) -> Any:
    if raw is None:
        return None
    try:
        return model.model_validate(raw)
    except ValidationError:
        return None


def hydrate_npc(raw: object) -> NarrativeActor | None:
    data = _mapping(raw)
    npc_id = _str(_get(data, "id"))
    if not npc_id:
        return None
    relationship = clamp_stat(_get(data, "relationship"), fallback=50)
    schedule = _validate_or_none(NpcSchedule, _get(data, "schedule")) or NpcSchedule()
    faction = _get(data, "faction")
    return NarrativeActor(
        id=npc_id,
        name=_str(_get(data, "name"), npc_id),
        role=_str(_get(data, "role")),
        kind=_enum(ActorKind, _get(data, "kind", _get(data, "relationship_type")), ActorKind.work),
        relationship=relationship,
        # Mood/trust fall back to the legacy relationship scalar.
        mood=clamp_stat(_get(data, "mood"), fallback=relationship),
        trust=clamp_stat(_get(data, "trust"), fallback=relationship),
        traits=[str(t) for t in _items(_get(data, "traits"))],
        memories=clamp_memories([normalize_memory(m, npc_id=npc_id) for m in _items(_get(data, "memories"))]),
        is_rival=bool(_get(data, "is_rival", False)),
        faction=_enum(Faction, faction, None) if faction is not None else None,
        schedule=schedule,
        last_contact_tick=as_int(_get(data, "last_contact_tick"), 0),
        goals=[str(g) for g in _items(_get(data, "goals"))],
    )


def hydrate_rival_fund(raw: object) -> RivalFund | None:
    data = _mapping(raw)
    fund_id = _str(_get(data, "id"))
    if not fund_id:
        return None
    portfolio = [p for p in (_validate_or_none(RivalPortfolioEntry, e) for e in _items(_get(data, "portfolio"))) if p]
    return RivalFund(
        id=fund_id,
        name=_str(_get(data, "name"), fund_id),
        managing_partner=_str(_get(data, "managing_partner"), "Unknown Partner"),
        npc_id=_str(_get(data, "npc_id")),
        strategy=_enum(RivalStrategy, _get(data, "strategy"), RivalStrategy.opportunistic),
        aum=max(0, as_int(_get(data, "aum"), 0)),
        dry_powder=max(0, as_int(_get(data, "dry_powder"), 0)),
        reputation=clamp_stat(_get(data, "reputation"), fallback=50),
        aggression_level=clamp_stat(_get(data, "aggression_level"), fallback=50),
        risk_tolerance=clamp_stat(_get(data, "risk_tolerance"), fallback=50),
        vendetta=clamp_stat(_get(data, "vendetta"), fallback=40),
        win_streak=max(0, as_int(_get(data, "win_streak"), 0)),
        total_deals=max(0, as_int(_get(data, "total_deals"), 0)),
        portfolio=portfolio,
        last_action_tick=as_int(_get(data, "last_action_tick"), -1),
    )


def hydrate_competitive_deal(raw: object) -> CompetitiveDeal | None:
    data = _mapping(raw)
    metrics = _mapping(_get(data, "metrics"))
    deal_id = as_int(_get(data, "id"), 0)
    if deal_id <= 0:
        return None
    asking = max(0, as_int(_get(data, "asking_price"), 0))
    return CompetitiveDeal(
        id=deal_id,
        company_name=_str(_get(data, "company_name"), "Unknown Target"),
        sector=_str(_get(data, "sector"), "Misc"),
        description=_str(_get(data, "description")),
        deal_type=_enum(DealType, _get(data, "deal_type"), DealType.lbo),
        fair_value=max(0, as_int(_get(data, "fair_value"), asking)),
        asking_price=asking,
        revenue=as_int(_get(data, "revenue", metrics.get("revenue")), 0),
        ebitda=as_int(_get(data, "ebitda", metrics.get("ebitda")), 0),
        growth=as_float(_get(data, "growth", metrics.get("growth")), 0.0),
        deadline=as_int(_get(data, "deadline"), 3),
        interested_rivals=[str(r) for r in _items(_get(data, "interested_rivals"))],
        is_hot=bool(_get(data, "is_hot", False)),
    )


def hydrate_company(raw: object, *, company_id: int | None = None) -> PortfolioCompany | None:
    """Fill a portfolio company's operating fields from a partial payload.

    Missing operating metrics are derived from the ones present (headcount from
    revenue, margin from EBITDA/revenue, cash from half a year of EBITDA).
    """

    data = _mapping(raw)
    name = _str(_get(data, "name"))
    if not name:
        return None
    revenue = as_int(_get(data, "revenue"), 0)
    ebitda = as_int(_get(data, "ebitda"), 0)
    margin_default = ebitda / max(1, revenue) if revenue else 0.0
    event_history = [str(e) for e in _items(_get(data, "event_history"))]
    last_actions = {str(k): as_int(v, 0) for k, v in _mapping(_get(data, "last_management_actions")).items()}
    exit_type = _get(data, "exit_type")

    return PortfolioCompany(
        id=company_id if company_id is not None else as_int(_get(data, "id"), 0),
        name=name,
        ceo=_str(_get(data, "ceo"), "Unknown"),
        sector=_str(_get(data, "sector"), "Misc"),
        deal_type=_enum(DealType, _get(data, "deal_type"), DealType.lbo),
        deal_phase=_enum(DealPhase, _get(data, "deal_phase"), DealPhase.pipeline),
        current_valuation=max(0, as_int(_get(data, "current_valuation"), 0)),
        investment_cost=max(0, as_int(_get(data, "investment_cost"), 0)),
        ownership_percentage=as_float(_get(data, "ownership_percentage"), 0.0),
        revenue=revenue,
        ebitda=ebitda,
        debt=max(0, as_int(_get(data, "debt"), 0)),
        revenue_growth=as_float(_get(data, "revenue_growth"), 0.0),
        ebitda_margin=as_float(_get(data, "ebitda_margin"), margin_default),
        cash_balance=as_int(_get(data, "cash_balance"), max(0, ebitda // 2)),
        employee_count=max(0, as_int(_get(data, "employee_count"), (revenue or 10_000_000) // 200_000)),
        runway_months=as_int(_get(data, "runway_months"), 999),
        ceo_performance=clamp_stat(_get(data, "ceo_performance"), fallback=70),
        board_alignment=clamp_stat(_get(data, "board_alignment"), fallback=80),
        has_board_crisis=bool(_get(data, "has_board_crisis", False)),
        analyzed=bool(_get(data, "analyzed", False)),
        acquisition_week=_optional_int(_get(data, "acquisition_week")),
        acquisition_year=_optional_int(_get(data, "acquisition_year")),
        acquisition_month=_optional_int(_get(data, "acquisition_month")),
        exit_type=_enum(ExitType, exit_type, None) if exit_type is not None else None,
        exit_started_week=_optional_int(_get(data, "exit_started_week")),
        actions_this_week=[str(a) for a in _items(_get(data, "actions_this_week"))],
        last_management_actions=last_actions,
        event_history=event_history,
    )


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    return as_int(value, 0)


def hydrate_game_time(raw: object) -> GameTime:
    data = _mapping(raw)
    max_actions = max(0, as_int(_get(data, "max_actions"), 2))
    return GameTime(
        week=max(1, as_int(_get(data, "week"), 1)),
        year=max(1, as_int(_get(data, "year"), 1)),
        quarter=min(4, max(1, as_int(_get(data, "quarter"), 1))),
        month=min(12, max(1, as_int(_get(data, "month"), 1))),
        actions_remaining=min(max_actions, max(0, as_int(_get(data, "actions_remaining"), max_actions))),
        max_actions=max_actions,
        overtime_active=bool(_get(data, "overtime_active", False)),
        actions_performed_this_week=[str(k) for k in _items(_get(data, "actions_performed_this_week"))],
        actions_used_this_week=[str(k) for k in _items(_get(data, "actions_used_this_week"))],
    )


def hydrate_player(raw: object, *, difficulty: Difficulty | str | None = None) -> PlayerState | None:
    data = _mapping(raw)
    if not data:
        return None
    start = difficulty_spec(difficulty).stats

    finances_raw = _mapping(_get(data, "personal_finances"))
    cash = as_int(_get(data, "cash"), as_int(_get(finances_raw, "bank_balance"), start.cash))
    lifestyle = _enum(LifestyleLevel, _get(finances_raw, "lifestyle"), start.lifestyle)
    finances = PersonalFinances(
        # The mirror is authoritative on load; bank balance follows cash.
        bank_balance=cash,
        total_earnings=as_int(_get(finances_raw, "total_earnings"), 0),
        salary_ytd=as_int(_get(finances_raw, "salary_ytd"), 0),
        bonus_ytd=as_int(_get(finances_raw, "bonus_ytd"), 0),
        outstanding_loan=max(0, as_int(_get(finances_raw, "outstanding_loan"), start.loan_balance)),
        loan_rate=clamp_loan_rate(as_float(_get(finances_raw, "loan_rate"), start.loan_rate)),
        lifestyle=lifestyle,
        monthly_burn=max(0, as_int(_get(finances_raw, "monthly_burn"), LIFESTYLE_TIERS[lifestyle].monthly_burn)),
    )

    cursor = max(0, as_int(_get(data, "time_cursor"), 0))
    portfolio: list[PortfolioCompany] = []
    seen_ids: set[int] = set()
    for item in _items(_get(data, "portfolio")):
        company = hydrate_company(item)
        if company is None:
            continue
        if company.id <= 0 or company.id in seen_ids:
            company = company.model_copy(update={"id": generate_unique_portfolio_id(seen_ids)})
        seen_ids.add(company.id)
        portfolio.append(company)

    standing = {
        str(k): NpcStanding(mood=clamp_stat(_get(_mapping(v), "mood"), fallback=50), trust=clamp_stat(_get(_mapping(v), "trust"), fallback=50))
        for k, v in _mapping(_get(data, "npc_standing")).items()
    }

    return PlayerState(
        level=_enum(PlayerLevel, _get(data, "level"), start.level),
        cash=cash,
        aum=as_int(_get(data, "aum"), 0),
        score=as_int(_get(data, "score"), 0),
        stress=clamp_stat(_get(data, "stress"), fallback=start.stress),
        energy=clamp_stat(_get(data, "energy"), fallback=start.energy),
        health=clamp_stat(_get(data, "health"), fallback=start.health),
        reputation=clamp_stat(_get(data, "reputation"), fallback=start.reputation),
        ethics=clamp_stat(_get(data, "ethics"), fallback=start.ethics),
        audit_risk=clamp_stat(_get(data, "audit_risk"), fallback=start.audit_risk),
        analyst_rating=clamp_stat(_get(data, "analyst_rating"), fallback=start.analyst_rating),
        financial_engineering=clamp_stat(_get(data, "financial_engineering"), fallback=start.financial_engineering),
        dependency=clamp_stat(_get(data, "dependency"), fallback=0),
        faction_reputation=hydrate_faction_reputation(_get(data, "faction_reputation")),
        portfolio=portfolio,
        game_time=hydrate_game_time(_get(data, "game_time")),
        personal_finances=finances,
        knowledge_log=clamp_knowledge([normalize_knowledge_entry(k) for k in _items(_get(data, "knowledge_log"))]),
        flags=sorted({str(f) for f in _items(_get(data, "flags"))}),
        played_scenario_ids=[as_int(i, 0) for i in _items(_get(data, "played_scenario_ids"))],
        completed_exits=[e for e in (_validate_or_none(CompletedExit, x) for x in _items(_get(data, "completed_exits"))) if e],
        active_skills=[s for s in (_validate_or_none(ActiveSkill, x) for x in _items(_get(data, "active_skills"))) if s],
        completed_skills=[str(s) for s in _items(_get(data, "completed_skills"))],
        npc_standing=standing,
        deals_closed=max(0, as_int(_get(data, "deals_closed"), 0)),
        day_type=_enum(DayType, _get(data, "day_type"), DayType.weekday),
        time_slot=_enum(TimeSlot, _get(data, "time_slot"), TimeSlot.morning),
        time_cursor=cursor,
    )


def _parse_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(tz=UTC)


def _parse_uuid(value: object) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return uuid4()


def hydrate_snapshot(raw: str | bytes | Mapping[str, Any]) -> GameSnapshot:
    """Forgiving loader for a whole persisted game document."""

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raw = {}
    data = _mapping(raw)

    difficulty = _enum(Difficulty, _get(data, "difficulty"), Difficulty.normal)
    ai_state = _validate_or_none(AIState, _get(data, "ai_state")) or AIState()
    active_event = _validate_or_none(CompanyEvent, _get(data, "active_event"))
    active_drama = _validate_or_none(NpcDrama, _get(data, "active_drama"))
    last_week_tick = _get(data, "last_processed_week_tick")
    scenario_id = _get(data, "active_scenario_id")

    return GameSnapshot(
        game_id=_parse_uuid(_get(data, "game_id")),
        created_at=_parse_datetime(_get(data, "created_at")),
        last_updated_at=_parse_datetime(_get(data, "last_updated_at")),
        seed=as_int(_get(data, "seed"), 0),
        rng_counter=max(0, as_int(_get(data, "rng_counter"), 0)),
        difficulty=difficulty,
        phase=_enum(GamePhase, _get(data, "phase"), GamePhase.intro),
        game_over_reason=_str(_get(data, "game_over_reason")) or None,
        player=hydrate_player(_get(data, "player"), difficulty=difficulty),
        npcs=[n for n in (hydrate_npc(x) for x in _items(_get(data, "npcs"))) if n],
        rival_funds=[f for f in (hydrate_rival_fund(x) for x in _items(_get(data, "rival_funds"))) if f],
        active_deals=[d for d in (hydrate_competitive_deal(x) for x in _items(_get(data, "active_deals"))) if d],
        action_log=clamp_action_log([str(x) for x in _items(_get(data, "action_log"))]),
        ai_state=ai_state,
        market_volatility=_enum(MarketVolatility, _get(data, "market_volatility"), MarketVolatility.normal),
        active_scenario_id=as_int(scenario_id, 0) if scenario_id is not None else None,
        active_event=active_event,
        event_queue=[e for e in (_validate_or_none(CompanyEvent, x) for x in _items(_get(data, "event_queue"))) if e],
        active_drama=active_drama,
        drama_queue=[d for d in (_validate_or_none(NpcDrama, x) for x in _items(_get(data, "drama_queue"))) if d],
        warnings=[w for w in (_validate_or_none(PlayerWarning, x) for x in _items(_get(data, "warnings"))) if w],
        last_processed_week_tick=as_int(last_week_tick, 0) if last_week_tick is not None else None,
    )
