"""Turn engine — pending queues and turn finalization for one session.

One TurnEngine per active session. It owns the transient state of the turn
in progress and is the only place a Turn gets created:

    IDLE              no pending actions
    ACTIONS_PROPOSED  actions pending, no checks yet
    PARTIALLY_CHECKED some actions have their check
    READY_TO_ADVANCE  every pending action has exactly one check

complete_turn() is legal in IDLE (a pure narration beat) or READY_TO_ADVANCE.
It writes the new session record through the store first and only then
swaps the in-memory session and clears the queues, so a failed write leaves
everything as it was and the caller can retry.

Proposal rounds carry a generation token. clear_pending_actions() and
start_round() bump it; add_pending_action() with an older token is a no-op,
which drops results of language-model calls that finish after the GM moved
on.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Protocol

from story_forge.checks import evaluate_check, resolve_result
from story_forge.models import (
    AdventureLog,
    Session,
    Significance,
    TimelineEvent,
    Turn,
    TurnAction,
    TurnCheck,
    TurnResult,
    utcnow,
)

logger = logging.getLogger(__name__)


class TurnError(Exception):
    """Raised when a call would break the pending-queue invariants."""


class UnknownActionError(TurnError):
    """A check references an action that is not pending."""


class DuplicateCheckError(TurnError):
    """A check was recorded for an action that already has one."""


class TurnStateError(TurnError):
    """The turn cannot be completed in the current phase."""


class TurnPhase(str, Enum):
    IDLE = "idle"
    ACTIONS_PROPOSED = "actions_proposed"
    PARTIALLY_CHECKED = "partially_checked"
    READY_TO_ADVANCE = "ready_to_advance"


class SessionStore(Protocol):
    def save_session(self, session: Session) -> None: ...


class TurnEngine:
    def __init__(self, session: Session, store: SessionStore | None = None) -> None:
        self._session = session
        self._store = store
        self._actions: list[TurnAction] = []
        self._checks: dict[str, TurnCheck] = {}  # action_id -> check, insertion ordered
        self._generation = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def pending_actions(self) -> tuple[TurnAction, ...]:
        return tuple(self._actions)

    @property
    def pending_checks(self) -> tuple[TurnCheck, ...]:
        return tuple(self._checks.values())

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def phase(self) -> TurnPhase:
        if not self._actions:
            return TurnPhase.IDLE
        if not self._checks:
            return TurnPhase.ACTIONS_PROPOSED
        if len(self._checks) < len(self._actions):
            return TurnPhase.PARTIALLY_CHECKED
        return TurnPhase.READY_TO_ADVANCE

    def check_for(self, action_id: str) -> TurnCheck | None:
        return self._checks.get(action_id)

    def unchecked_actions(self) -> list[TurnAction]:
        return [a for a in self._actions if a.id not in self._checks]

    # ------------------------------------------------------------------
    # Pending queues
    # ------------------------------------------------------------------

    def start_round(self) -> int:
        """Drop the pending queues and return the token for a new proposal round."""
        self.clear_pending_actions()
        return self._generation

    def add_pending_action(self, action: TurnAction, generation: int | None = None) -> bool:
        """Append an action. Returns False if `generation` belongs to a superseded round."""
        if generation is not None and generation != self._generation:
            logger.warning(
                "discarding stale action %s for %s (round %d, current %d)",
                action.id, action.character_name, generation, self._generation,
            )
            return False
        if any(a.id == action.id for a in self._actions):
            raise TurnError(f"Action {action.id} is already pending")
        self._actions.append(action)
        return True

    def clear_pending_actions(self) -> None:
        """Drop pending actions and their checks; in-flight proposals become stale."""
        self._actions.clear()
        self._checks.clear()
        self._generation += 1

    def clear_pending_checks(self) -> None:
        self._checks.clear()

    def add_pending_check(self, check: TurnCheck) -> None:
        if not any(a.id == check.action_id for a in self._actions):
            raise UnknownActionError(f"No pending action {check.action_id} for check {check.id}")
        if check.action_id in self._checks:
            raise DuplicateCheckError(
                f"Action {check.action_id} already has check {self._checks[check.action_id].id}"
            )
        self._checks[check.action_id] = check

    def results_from_checks(
        self,
        narrations: Mapping[str, str] | None = None,
        world_changes: Mapping[str, Sequence[str]] | None = None,
    ) -> list[TurnResult]:
        """One result per pending check, in check order; keyed extras by check id."""
        narrations = narrations or {}
        world_changes = world_changes or {}
        return [
            resolve_result(check, narrations.get(check.id, ""), world_changes.get(check.id, ()))
            for check in self._checks.values()
        ]

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def complete_turn(self, results: Sequence[TurnResult], world_state: str) -> Turn:
        phase = self.phase
        if phase not in (TurnPhase.IDLE, TurnPhase.READY_TO_ADVANCE):
            raise TurnStateError(
                f"Cannot complete turn in phase {phase.value}: "
                f"{len(self._checks)} of {len(self._actions)} actions checked"
            )
        self._validate_results(results)

        checks = self.pending_checks
        turn = Turn(
            session_id=self._session.id,
            turn_number=self._session.current_turn + 1,
            actions=self.pending_actions,
            checks=checks,
            results=tuple(results),
            world_state=world_state,
        )
        updated = self._session.model_copy(update={
            "turns": [*self._session.turns, turn],
            "current_turn": turn.turn_number,
            "updated_at": utcnow(),
        })
        self._persist(updated)

        self._actions.clear()
        self._checks.clear()
        logger.info(
            "session %s completed turn %d (%d actions, %d results)",
            updated.id, turn.turn_number, len(turn.actions), len(turn.results),
        )
        return turn

    def _validate_results(self, results: Sequence[TurnResult]) -> None:
        by_id = {c.id: c for c in self._checks.values()}
        seen: set[str] = set()
        for result in results:
            check = by_id.get(result.check_id)
            if check is None:
                raise TurnError(f"Result {result.id} references unknown check {result.check_id}")
            if result.check_id in seen:
                raise TurnError(f"Check {result.check_id} has more than one result")
            seen.add(result.check_id)
            expected = evaluate_check(check).success
            if result.success != expected:
                raise TurnError(
                    f"Result {result.id} says success={result.success} "
                    f"but check {check.id} rolled {check.dice_roll.total} vs DC {check.difficulty}"
                )

    # ------------------------------------------------------------------
    # Append-only session logs
    # ------------------------------------------------------------------

    def add_timeline_event(
        self,
        event: str,
        significance: Significance = "minor",
        turn_number: int | None = None,
    ) -> TimelineEvent:
        entry = TimelineEvent(
            turn_number=self._turn_in_progress() if turn_number is None else turn_number,
            event=event,
            significance=significance,
        )
        self._persist(self._session.model_copy(update={
            "timeline": [*self._session.timeline, entry],
            "updated_at": utcnow(),
        }))
        return entry

    def add_adventure_log(
        self,
        character_id: str,
        character_name: str,
        content: str,
        emotion: str = "",
        turn_number: int | None = None,
    ) -> AdventureLog:
        entry = AdventureLog(
            character_id=character_id,
            character_name=character_name,
            turn_number=self._turn_in_progress() if turn_number is None else turn_number,
            content=content,
            emotion=emotion,
        )
        self._persist(self._session.model_copy(update={
            "adventure_logs": [*self._session.adventure_logs, entry],
            "updated_at": utcnow(),
        }))
        return entry

    def _turn_in_progress(self) -> int:
        return self._session.current_turn + 1

    def _persist(self, updated: Session) -> None:
        if self._store is not None:
            self._store.save_session(updated)
        self._session = updated
