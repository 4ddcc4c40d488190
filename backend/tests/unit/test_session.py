# backend/tests/unit/test_session.py

import pytest
from pydantic import ValidationError

from copay_ussd.models.directory import PaymentTypeOption
from copay_ussd.models.session import (
    CooperativeSnapshot,
    PaymentSelection,
    PaymentTypeSnapshot,
    UssdSession,
    UssdStep,
)

PHONE = "+250788123456"


def test_start_begins_at_welcome_with_no_scratch():
    session = UssdSession.start("sess-1", PHONE)
    assert session.current_step == UssdStep.WELCOME
    assert session.scratch is None
    assert session.input_history == []
    assert session.start_time == session.last_activity


def test_phone_number_cannot_be_changed():
    session = UssdSession.start("sess-1", PHONE)
    with pytest.raises(ValidationError):
        session.phone_number = "+250788000000"


def test_scratch_round_trips_through_json_by_kind():
    option = PaymentTypeOption(id="pt-1", name="Membership", amount=5000)
    session = UssdSession(
        session_id="sess-1",
        phone_number=PHONE,
        current_step=UssdStep.SELECT_PAYMENT_TYPE,
        user_id="user-1",
        cooperative_id="coop-1",
        scratch=PaymentTypeSnapshot(options=(option,)),
    )
    restored = UssdSession.model_validate_json(session.model_dump_json())
    assert isinstance(restored.scratch, PaymentTypeSnapshot)
    assert restored.scratch.options == (option,)


def test_scratch_must_fit_the_step():
    with pytest.raises(ValidationError, match="not allowed"):
        UssdSession(
            session_id="sess-1",
            phone_number=PHONE,
            current_step=UssdStep.SELECT_COOPERATIVE,
            user_id="user-1",
            scratch=PaymentSelection(payment_type=PaymentTypeOption(id="pt-1", name="X", amount=1)),
        )


def test_payment_steps_require_a_cooperative():
    with pytest.raises(ValidationError, match="requires a cooperative"):
        UssdSession(
            session_id="sess-1",
            phone_number=PHONE,
            current_step=UssdStep.SELECT_PAYMENT_TYPE,
            user_id="user-1",
        )


def test_consistency_problem_reports_without_raising():
    session = UssdSession.start("sess-1", PHONE)
    moved = session.model_copy(update={
        "current_step": UssdStep.SELECT_COOPERATIVE,
        "scratch": CooperativeSnapshot(cooperative_ids=("coop-1",)),
    })
    assert moved.consistency_problem() == "step 'select_cooperative' requires a user"
    assert moved.model_copy(update={"user_id": "user-1"}).consistency_problem() is None


def test_unknown_step_is_rejected():
    with pytest.raises(ValidationError):
        UssdSession.model_validate({"session_id": "sess-1", "phone_number": PHONE, "current_step": "checkout"})
