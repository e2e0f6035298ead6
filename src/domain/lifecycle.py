"""
Deal lifecycle state machine.

The adjacency table below is the only source of truth for which status
changes are legal. Every write of ``Deal.status`` goes through
``DealLifecycle``, which:

1. loads the deal for the acting user (absent and foreign deals both raise
   DealNotFoundError),
2. checks the edge and any payload the target state requires,
3. writes the new status with a compare-and-swap on (status, version) and
   appends exactly one DealHistory row in the same flush.

If the compare-and-swap misses, another request changed the deal first; the
request is re-evaluated against the new state instead of overwriting it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.config import get_settings
from core.exceptions import (
    ConcurrencyConflictError,
    DealNotFoundError,
    InvalidTransitionError,
    MissingTransitionDataError,
    ValidationError,
)
from core.logging_config import get_context_logger, get_logger
from core.models import Deal, DealHistory, DealStatus

LOGGER = get_logger(__name__)

S = DealStatus

DEFAULT_TRANSITIONS: Dict[DealStatus, FrozenSet[DealStatus]] = {
    S.NEW: frozenset({S.ANALYZING, S.QUALIFIED, S.REJECTED}),
    S.ANALYZING: frozenset({S.QUALIFIED, S.REJECTED}),
    S.QUALIFIED: frozenset({S.ANALYZING, S.OFFERED, S.REJECTED}),
    S.OFFERED: frozenset({S.NEGOTIATING, S.UNDER_CONTRACT, S.REJECTED}),
    S.NEGOTIATING: frozenset({S.UNDER_CONTRACT, S.REJECTED}),
    S.UNDER_CONTRACT: frozenset({S.CLOSED, S.REJECTED}),
    S.REJECTED: frozenset(),
    S.CLOSED: frozenset(),
}

TERMINAL_STATES = frozenset(state for state, nxt in DEFAULT_TRANSITIONS.items() if not nxt)

# A change plan maps the freshly loaded deal to (target status, column updates)
ChangePlan = Callable[[Deal], Tuple[DealStatus, Dict[str, Any]]]


def parse_status(value: Any) -> DealStatus:
    if isinstance(value, DealStatus):
        return value
    try:
        return DealStatus(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown deal status: {value!r}") from None


def _parse_datetime(value: Any, label: str) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{label} is not an ISO date: {value!r}") from None
    raise ValidationError(f"{label} must be a date")


@dataclass
class TransitionData:
    """Target-state payload carried by a transition request."""
    closed_date: Optional[datetime] = None
    estimated_profit: Optional[float] = None
    rejection_reason: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "TransitionData":
        if data is None:
            return cls()
        if isinstance(data, TransitionData):
            return data
        profit = data.get("estimated_profit")
        if profit is not None and (isinstance(profit, bool) or not isinstance(profit, (int, float))):
            raise ValidationError("estimated_profit must be a number")
        return cls(
            closed_date=_parse_datetime(data.get("closed_date"), "closed_date"),
            estimated_profit=float(profit) if profit is not None else None,
            rejection_reason=data.get("rejection_reason"),
        )


@dataclass
class TransitionResult:
    """Outcome of an accepted status change."""
    success: bool
    deal_id: int
    previous_status: str
    new_status: str
    history_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "deal_id": self.deal_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "history_id": self.history_id,
        }


class DealLifecycle:
    """Validates and persists deal status changes."""

    def __init__(
        self,
        session: Session,
        transitions: Optional[Mapping[DealStatus, FrozenSet[DealStatus]]] = None,
        max_attempts: Optional[int] = None,
    ):
        self.session = session
        self.transitions = dict(transitions or DEFAULT_TRANSITIONS)
        self.max_attempts = max_attempts or get_settings().transition_max_attempts

    # -------------------------------------------------------------------------
    # Graph queries
    # -------------------------------------------------------------------------

    def valid_next_states(self, status: DealStatus) -> List[str]:
        return sorted(state.value for state in self.transitions.get(status, frozenset()))

    def can_transition(self, current: DealStatus, target: DealStatus) -> bool:
        return target in self.transitions.get(current, frozenset())

    def check_edge(self, current: DealStatus, target: DealStatus) -> None:
        """Raise InvalidTransitionError unless current -> target is an edge."""
        if self.can_transition(current, target):
            return
        valid = self.valid_next_states(current)
        listed = ", ".join(valid) if valid else "none (terminal state)"
        raise InvalidTransitionError(
            f"Cannot transition from {current.value} to {target.value}. Valid transitions: {listed}",
            current_status=current.value,
            target_status=target.value,
            valid_next=valid,
        )

    # -------------------------------------------------------------------------
    # Transition
    # -------------------------------------------------------------------------

    def transition(
        self,
        deal_id: int,
        target_state: Any,
        acting_user_id: int,
        notes: Optional[str] = None,
        transition_data: Optional[Mapping[str, Any]] = None,
    ) -> TransitionResult:
        """
        Move a deal to ``target_state``.

        Raises:
            ValidationError: unknown target state or malformed payload.
            DealNotFoundError: deal absent or owned by someone else.
            InvalidTransitionError: not an edge from the current state.
            MissingTransitionDataError: target requires payload that is missing.
            ConcurrencyConflictError: the deal kept changing past the retry bound.
        """
        target = parse_status(target_state)
        data = TransitionData.from_mapping(transition_data)
        log = get_context_logger(__name__, deal_id=deal_id, user_id=acting_user_id)

        def plan(deal: Deal) -> Tuple[DealStatus, Dict[str, Any]]:
            current = DealStatus(deal.status)
            self.check_edge(current, target)
            updates = self._payload_updates(target, data, log)
            if notes:
                updates["notes"] = notes
            return target, updates

        return self.apply_change(deal_id, acting_user_id, plan)

    def _payload_updates(self, target: DealStatus, data: TransitionData, log: Any) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if target == DealStatus.CLOSED:
            if data.closed_date is None:
                raise MissingTransitionDataError(
                    "closed_date is required to close a deal",
                    target_status=target.value,
                )
            updates["closed_date"] = data.closed_date
            if data.estimated_profit is None:
                log.warning("Deal closed without estimated_profit")
            else:
                updates["estimated_profit"] = data.estimated_profit
        elif target == DealStatus.REJECTED and data.rejection_reason:
            updates["rejection_reason"] = data.rejection_reason
        return updates

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load_for_update(self, deal_id: int, user_id: int) -> Deal:
        stmt = (
            select(Deal)
            .where(Deal.id == deal_id, Deal.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        deal = self.session.execute(stmt).scalar_one_or_none()
        if deal is None:
            raise DealNotFoundError(deal_id)
        return deal

    def _compare_and_swap(
        self,
        deal: Deal,
        expected: DealStatus,
        target: DealStatus,
        updates: Dict[str, Any],
    ) -> bool:
        stmt = (
            update(Deal)
            .where(
                Deal.id == deal.id,
                Deal.status == expected.value,
                Deal.version == deal.version,
            )
            .values(status=target.value, version=deal.version + 1, **updates)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def apply_change(self, deal_id: int, acting_user_id: int, plan: ChangePlan) -> TransitionResult:
        """
        Run a change plan against the current deal state under the concurrency guard.

        ``plan`` is re-run on every attempt so it always sees the latest state.
        A plan whose target equals the current status updates columns only
        and appends no history row.
        """
        for attempt in range(1, self.max_attempts + 1):
            deal = self._load_for_update(deal_id, acting_user_id)
            current = DealStatus(deal.status)
            target, updates = plan(deal)

            if not self._compare_and_swap(deal, current, target, updates):
                LOGGER.info(
                    "Deal %s changed concurrently (attempt %d/%d), re-evaluating",
                    deal_id, attempt, self.max_attempts,
                )
                continue

            history_id = None
            if target != current:
                history = DealHistory(
                    deal_id=deal_id,
                    user_id=acting_user_id,
                    field_changed="status",
                    old_value=current.value,
                    new_value=target.value,
                )
                self.session.add(history)
                self.session.flush()
                history_id = history.id
                LOGGER.info("Deal %s: %s -> %s", deal_id, current.value, target.value)

            self.session.expire(deal)
            return TransitionResult(
                success=True,
                deal_id=deal_id,
                previous_status=current.value,
                new_status=target.value,
                history_id=history_id,
            )

        raise ConcurrencyConflictError(
            f"Deal {deal_id} was modified concurrently {self.max_attempts} times; retry the request"
        )


def get_deal_lifecycle(session: Session) -> DealLifecycle:
    """Factory function for DealLifecycle."""
    return DealLifecycle(session)


__all__ = [
    "DEFAULT_TRANSITIONS",
    "TERMINAL_STATES",
    "DealLifecycle",
    "TransitionData",
    "TransitionResult",
    "get_deal_lifecycle",
    "parse_status",
]
