"""Approval state machine implementation.

Evaluates decisions and cancellations against a snapshot of one request:
sequential level gating, eligibility, duplicate detection and terminal
immutability. Persistence is the caller's job (see ``ApprovalService``).
"""

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from uuid import UUID

from governance.core.errors import (
    DuplicateDecisionError,
    InvalidStateError,
    NotEligibleError,
    UnauthorizedError,
)
from governance.core.rbac.roles import RoleComparator, RoleLike, exact_role_match
from .eligibility import LEVEL_OUT_OF_RANGE, can_approve, ineligibility_reason
from .policy import ApprovalLevel, LevelLike, validate_chain
from .states import (
    ApprovalState,
    ApprovalTransition,
    DecisionOutcome,
    TERMINAL_STATES,
    get_transition_rule,
)

logger = logging.getLogger(__name__)


class ApprovalStateMachine:
    """
    State machine for one sequential approval request.

    Manages:
    - Strictly ordered level-by-level decisions
    - Eligibility gating (role and self-approval)
    - Terminal immutability
    - Callback hooks for side effects
    """

    def __init__(
        self,
        request_id: UUID,
        *,
        status: ApprovalState,
        current_level: int,
        chain: Iterable[LevelLike],
        requester_id: UUID,
        allow_self_approval: bool = False,
        require_all_levels: bool = True,
        decided_levels: Optional[Iterable[int]] = None,
        workspace_id: Optional[UUID] = None,
        role_satisfies: RoleComparator = exact_role_match,
    ):
        """
        Initialize the state machine.

        Args:
            request_id: ID of the approval request
            status: Current status
            current_level: Level awaiting a decision
            chain: Approval chain snapshot taken at request creation
            requester_id: User who raised the request
            allow_self_approval: Whether the requester may approve their own request
            require_all_levels: When False, an approval at any level resolves the request
            decided_levels: Levels that already hold a decision
            workspace_id: Workspace the request belongs to
            role_satisfies: Comparator deciding whether a role meets a level's requirement
        """
        self.request_id = request_id
        self._state = ApprovalState(status)
        self._chain: List[ApprovalLevel] = validate_chain(chain)
        # Clamp so a corrupted level never points past the chain
        self._current_level = max(1, min(current_level, len(self._chain)))
        self.requester_id = requester_id
        self.allow_self_approval = allow_self_approval
        self.require_all_levels = require_all_levels
        self.workspace_id = workspace_id
        self.role_satisfies = role_satisfies
        self._decided_levels: Set[int] = set(decided_levels or [])
        self._transition_history: list[Dict[str, Any]] = []
        self._callbacks: Dict[ApprovalTransition, list[Callable]] = {}

    @classmethod
    def from_request(cls, request, *, role_satisfies: RoleComparator = exact_role_match) -> "ApprovalStateMachine":
        """Build a machine from an ``ApprovalRequest`` model."""
        return cls(
            request.id,
            status=ApprovalState(request.status),
            current_level=request.current_level,
            chain=request.approval_chain or [],
            requester_id=request.requester_id,
            allow_self_approval=bool(request.allow_self_approval),
            require_all_levels=request.require_all_levels is not False,
            decided_levels=[d.level for d in request.decisions],
            workspace_id=request.workspace_id,
            role_satisfies=role_satisfies,
        )

    @property
    def state(self) -> ApprovalState:
        """Current state of the request."""
        return self._state

    # Eligibility helpers read ``status``
    status = state

    @property
    def current_level(self) -> int:
        return self._current_level

    @property
    def chain(self) -> List[ApprovalLevel]:
        return list(self._chain)

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal (no further decisions)."""
        return self._state in TERMINAL_STATES

    def can_decide(self, user_id: UUID, user_role: RoleLike) -> bool:
        """Whether the user may decide the current level right now."""
        return can_approve(self, user_id, user_role, role_satisfies=self.role_satisfies)

    def submit(
        self,
        approver_id: UUID,
        approver_role: RoleLike,
        decision,
        *,
        level: int,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record a decision on the current level.

        Args:
            approver_id: User deciding
            approver_role: Role the user acts in
            decision: ``DecisionOutcome`` or its string value
            level: Level the approver believes they are deciding. A resubmission
                for a level already decided is reported as a duplicate.
            notes: Optional comment

        Returns:
            The decision record

        Raises:
            InvalidStateError: Request not pending, or ``level`` is out of order
            NotEligibleError: Role does not satisfy the level, or self-approval
            DuplicateDecisionError: The level already holds a decision
        """
        if self._state != ApprovalState.PENDING:
            raise InvalidStateError(
                f"Request {self.request_id} is {self._state.value}; no further decisions accepted",
                self._state.value,
                self._current_level,
            )

        if level != self._current_level:
            if level in self._decided_levels:
                raise DuplicateDecisionError(self.request_id, level)
            raise InvalidStateError(
                f"Level {level} cannot be decided while request {self.request_id} "
                f"awaits level {self._current_level}",
                self._state.value,
                self._current_level,
            )

        reason = ineligibility_reason(self, approver_id, approver_role, role_satisfies=self.role_satisfies)
        if reason == LEVEL_OUT_OF_RANGE:
            raise InvalidStateError(
                f"Level {self._current_level} is not part of the approval chain",
                self._state.value,
                self._current_level,
            )
        if reason is not None:
            raise NotEligibleError(reason, approver_id)

        if self._current_level in self._decided_levels:
            raise DuplicateDecisionError(self.request_id, self._current_level)

        outcome = DecisionOutcome(decision.value if isinstance(decision, Enum) else str(decision).lower())
        if outcome == DecisionOutcome.REJECTED:
            transition = ApprovalTransition.REJECT
        elif self._current_level >= len(self._chain) or not self.require_all_levels:
            transition = ApprovalTransition.APPROVE
        else:
            transition = ApprovalTransition.ESCALATE

        rule = get_transition_rule(self._state, transition)
        from_state = self._state
        from_level = self._current_level

        record = {
            "id": uuid.uuid4(),
            "request_id": self.request_id,
            "level": from_level,
            "approver_id": approver_id,
            "approver_role": approver_role.value if isinstance(approver_role, Enum) else str(approver_role),
            "decision": outcome.value,
            "notes": notes,
            "decided_at": datetime.utcnow(),
            "transition": transition.value,
            "from_state": from_state.value,
            "to_state": rule.to_state.value,
            "from_level": from_level,
        }

        self._decided_levels.add(from_level)
        self._state = rule.to_state
        if transition == ApprovalTransition.ESCALATE:
            self._current_level += 1
        record["to_level"] = self._current_level

        self._transition_history.append(record)
        self._execute_callbacks(transition, record)
        return record

    def cancel(
        self,
        by_user_id: UUID,
        *,
        is_admin: bool = False,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Withdraw a pending request.

        Allowed from any pending level, for the requester or a workspace admin.

        Raises:
            InvalidStateError: If the request is not pending
            UnauthorizedError: If the user is neither requester nor admin
        """
        if self._state != ApprovalState.PENDING:
            raise InvalidStateError(
                f"Request {self.request_id} is {self._state.value} and cannot be cancelled",
                self._state.value,
                self._current_level,
            )
        if str(by_user_id) != str(self.requester_id) and not is_admin:
            raise UnauthorizedError(by_user_id, self.workspace_id, "cancel this request")

        rule = get_transition_rule(self._state, ApprovalTransition.CANCEL)
        record = {
            "id": uuid.uuid4(),
            "request_id": self.request_id,
            "user_id": by_user_id,
            "reason": reason,
            "transition": ApprovalTransition.CANCEL.value,
            "from_state": self._state.value,
            "to_state": rule.to_state.value,
            "level": self._current_level,
            "timestamp": datetime.utcnow(),
        }
        self._state = rule.to_state
        self._transition_history.append(record)
        self._execute_callbacks(ApprovalTransition.CANCEL, record)
        return record

    def auto_approve(self, *, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Approve a pending request whose policy deadline has passed.

        No decision row is produced; the remaining levels are simply skipped.

        Raises:
            InvalidStateError: If the request is not pending
        """
        if self._state != ApprovalState.PENDING:
            raise InvalidStateError(
                f"Request {self.request_id} is {self._state.value} and cannot be auto-approved",
                self._state.value,
                self._current_level,
            )

        rule = get_transition_rule(self._state, ApprovalTransition.AUTO_APPROVE)
        record = {
            "id": uuid.uuid4(),
            "request_id": self.request_id,
            "reason": reason,
            "transition": ApprovalTransition.AUTO_APPROVE.value,
            "from_state": self._state.value,
            "to_state": rule.to_state.value,
            "level": self._current_level,
            "timestamp": datetime.utcnow(),
        }
        self._state = rule.to_state
        self._transition_history.append(record)
        self._execute_callbacks(ApprovalTransition.AUTO_APPROVE, record)
        return record

    def register_callback(
        self,
        transition: ApprovalTransition,
        callback: Callable[[Dict[str, Any]], None],
    ) -> None:
        """
        Register a callback to be executed after a transition.

        Args:
            transition: The transition to hook
            callback: Function to call with transition record
        """
        if transition not in self._callbacks:
            self._callbacks[transition] = []
        self._callbacks[transition].append(callback)

    def get_history(self) -> list[Dict[str, Any]]:
        """Get the transitions performed by this machine."""
        return self._transition_history.copy()

    def _execute_callbacks(self, transition: ApprovalTransition, record: Dict[str, Any]) -> None:
        """Execute registered callbacks for a transition."""
        callbacks = self._callbacks.get(transition, [])
        for callback in callbacks:
            try:
                callback(record)
            except Exception:
                # Log but dont fail the transition
                logger.warning("Callback error for %s", transition.value, exc_info=True)
