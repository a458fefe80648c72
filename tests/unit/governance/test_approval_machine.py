"""Tests for the approval state machine."""

import pytest
from uuid import uuid4

from governance.core.approval import ApprovalState, ApprovalStateMachine, ApprovalTransition
from governance.core.errors import (
    DuplicateDecisionError,
    InvalidPolicyError,
    InvalidStateError,
    NotEligibleError,
    UnauthorizedError,
)

CHAIN = [
    {"level": 1, "required_role": "team_lead"},
    {"level": 2, "required_role": "department_head"},
    {"level": 3, "required_role": "owner"},
]


def make_machine(**overrides):
    params = dict(
        status=ApprovalState.PENDING,
        current_level=1,
        chain=CHAIN,
        requester_id=uuid4(),
    )
    params.update(overrides)
    return ApprovalStateMachine(uuid4(), **params)


class TestSequentialDecisions:
    """Test level-by-level progression."""

    def test_approve_escalates(self):
        machine = make_machine()
        record = machine.submit(uuid4(), "team_lead", "approved", level=1)

        assert record["transition"] == ApprovalTransition.ESCALATE.value
        assert record["level"] == 1
        assert record["to_level"] == 2
        assert machine.state == ApprovalState.PENDING
        assert machine.current_level == 2

    def test_full_chain_approves(self):
        machine = make_machine()
        machine.submit(uuid4(), "team_lead", "approved", level=1)
        machine.submit(uuid4(), "department_head", "approved", level=2)
        record = machine.submit(uuid4(), "owner", "approved", level=3)

        assert record["transition"] == ApprovalTransition.APPROVE.value
        assert machine.state == ApprovalState.APPROVED
        assert machine.current_level == 3
        assert machine.is_terminal
        assert len(machine.get_history()) == 3

    def test_reject_freezes_level(self):
        machine = make_machine()
        machine.submit(uuid4(), "team_lead", "approved", level=1)
        record = machine.submit(uuid4(), "department_head", "rejected", level=2, notes="Over budget")

        assert record["transition"] == ApprovalTransition.REJECT.value
        assert record["notes"] == "Over budget"
        assert machine.state == ApprovalState.REJECTED
        assert machine.current_level == 2

    def test_higher_role_cannot_skip_level(self):
        machine = make_machine()
        with pytest.raises(NotEligibleError) as exc:
            machine.submit(uuid4(), "owner", "approved", level=1)
        assert exc.value.reason == "role"
        assert machine.current_level == 1

    def test_future_level_is_out_of_order(self):
        machine = make_machine()
        with pytest.raises(InvalidStateError):
            machine.submit(uuid4(), "department_head", "approved", level=2)

    def test_level_is_required(self):
        machine = make_machine()
        with pytest.raises(TypeError):
            machine.submit(uuid4(), "team_lead", "approved")

    def test_single_level_chain(self):
        machine = make_machine(chain=[{"level": 1, "required_role": "admin"}])
        machine.submit(uuid4(), "admin", "approved", level=1)
        assert machine.state == ApprovalState.APPROVED


class TestAnyLevelApproval:
    """Chains that do not require every level."""

    def test_first_approval_resolves(self):
        machine = make_machine(require_all_levels=False)
        record = machine.submit(uuid4(), "team_lead", "approved", level=1)

        assert record["transition"] == ApprovalTransition.APPROVE.value
        assert machine.state == ApprovalState.APPROVED
        assert machine.current_level == 1

    def test_rejection_still_rejects(self):
        machine = make_machine(require_all_levels=False)
        machine.submit(uuid4(), "team_lead", "rejected", level=1)
        assert machine.state == ApprovalState.REJECTED


class TestGuards:
    """Test eligibility, terminal and duplicate guards."""

    def test_self_approval_blocked(self):
        requester = uuid4()
        machine = make_machine(requester_id=requester)
        with pytest.raises(NotEligibleError) as exc:
            machine.submit(requester, "team_lead", "approved", level=1)
        assert exc.value.reason == "self_approval"

    def test_self_approval_allowed(self):
        requester = uuid4()
        machine = make_machine(requester_id=requester, allow_self_approval=True)
        machine.submit(requester, "team_lead", "approved", level=1)
        assert machine.current_level == 2

    @pytest.mark.parametrize("status", [ApprovalState.APPROVED, ApprovalState.REJECTED, ApprovalState.CANCELLED])
    def test_terminal_accepts_nothing(self, status):
        machine = make_machine(status=status)
        with pytest.raises(InvalidStateError):
            machine.submit(uuid4(), "team_lead", "approved", level=1)
        with pytest.raises(InvalidStateError):
            machine.cancel(machine.requester_id)
        with pytest.raises(InvalidStateError):
            machine.auto_approve()

    def test_stale_level_is_duplicate(self):
        machine = make_machine()
        machine.submit(uuid4(), "team_lead", "approved", level=1)
        with pytest.raises(DuplicateDecisionError) as exc:
            machine.submit(uuid4(), "team_lead", "approved", level=1)
        assert exc.value.level == 1
        assert machine.current_level == 2

    def test_double_submit_on_repeated_role_is_duplicate(self):
        # Both levels want the same role: a repeated click must not count twice
        chain = [
            {"level": 1, "required_role": "team_lead"},
            {"level": 2, "required_role": "team_lead"},
        ]
        machine = make_machine(chain=chain)
        approver = uuid4()

        machine.submit(approver, "team_lead", "approved", level=1)
        with pytest.raises(DuplicateDecisionError):
            machine.submit(approver, "team_lead", "approved", level=1)

        assert machine.state == ApprovalState.PENDING
        assert machine.current_level == 2
        assert len(machine.get_history()) == 1

    def test_current_level_already_decided(self):
        machine = make_machine(decided_levels=[1])
        with pytest.raises(DuplicateDecisionError):
            machine.submit(uuid4(), "team_lead", "approved", level=1)

    def test_invalid_chain(self):
        with pytest.raises(InvalidPolicyError):
            make_machine(chain=[])


class TestCancel:

    def test_requester_cancels(self):
        machine = make_machine(current_level=2)
        record = machine.cancel(machine.requester_id, reason="No longer needed")
        assert machine.state == ApprovalState.CANCELLED
        assert record["reason"] == "No longer needed"
        assert record["level"] == 2

    def test_admin_cancels(self):
        machine = make_machine()
        machine.cancel(uuid4(), is_admin=True)
        assert machine.state == ApprovalState.CANCELLED

    def test_stranger_cannot_cancel(self):
        machine = make_machine()
        with pytest.raises(UnauthorizedError):
            machine.cancel(uuid4())
        assert machine.state == ApprovalState.PENDING


class TestAutoApprove:

    def test_pending_request_approved(self):
        machine = make_machine(current_level=2)
        record = machine.auto_approve(reason="deadline")

        assert record["transition"] == ApprovalTransition.AUTO_APPROVE.value
        assert record["level"] == 2
        assert machine.state == ApprovalState.APPROVED

    def test_callback_runs(self):
        machine = make_machine()
        seen = []
        machine.register_callback(ApprovalTransition.AUTO_APPROVE, seen.append)
        machine.auto_approve()
        assert [r["to_state"] for r in seen] == ["approved"]


class TestCallbacks:

    def test_callback_runs(self):
        machine = make_machine()
        seen = []
        machine.register_callback(ApprovalTransition.ESCALATE, seen.append)
        machine.submit(uuid4(), "team_lead", "approved", level=1)
        assert len(seen) == 1
        assert seen[0]["to_level"] == 2

    def test_failing_callback_does_not_undo_transition(self):
        machine = make_machine()

        def boom(record):
            raise RuntimeError("observer down")

        machine.register_callback(ApprovalTransition.ESCALATE, boom)
        machine.submit(uuid4(), "team_lead", "approved", level=1)
        assert machine.current_level == 2
