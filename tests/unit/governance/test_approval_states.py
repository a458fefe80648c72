"""Tests for approval request states and transitions."""

from governance.core.approval.states import (
    ApprovalState,
    ApprovalTransition,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    can_transition,
    get_target_state,
    get_transition_rule,
)


class TestApprovalStates:
    """Test approval state definitions."""

    def test_all_states_defined(self):
        for state_name in ["pending", "approved", "rejected", "cancelled"]:
            assert hasattr(ApprovalState, state_name.upper())

    def test_escalated_is_not_a_state(self):
        assert not hasattr(ApprovalState, "ESCALATED")

    def test_terminal_states(self):
        assert TERMINAL_STATES == {
            ApprovalState.APPROVED, ApprovalState.REJECTED, ApprovalState.CANCELLED,
        }
        assert ApprovalState.PENDING not in TERMINAL_STATES


class TestApprovalTransitions:
    """Test valid state transitions."""

    def test_pending_transitions(self):
        assert VALID_TRANSITIONS[ApprovalState.PENDING] == set(ApprovalTransition)

    def test_terminal_states_no_outgoing(self):
        for state in TERMINAL_STATES:
            for transition in ApprovalTransition:
                assert not can_transition(state, transition)

    def test_targets(self):
        assert get_target_state(ApprovalState.PENDING, ApprovalTransition.ESCALATE) == ApprovalState.PENDING
        assert get_target_state(ApprovalState.PENDING, ApprovalTransition.APPROVE) == ApprovalState.APPROVED
        assert get_target_state(ApprovalState.PENDING, ApprovalTransition.REJECT) == ApprovalState.REJECTED
        assert get_target_state(ApprovalState.PENDING, ApprovalTransition.CANCEL) == ApprovalState.CANCELLED
        assert get_target_state(ApprovalState.PENDING, ApprovalTransition.AUTO_APPROVE) == ApprovalState.APPROVED

    def test_missing_rule(self):
        assert get_transition_rule(ApprovalState.APPROVED, ApprovalTransition.CANCEL) is None
        assert get_target_state(ApprovalState.REJECTED, ApprovalTransition.APPROVE) is None
