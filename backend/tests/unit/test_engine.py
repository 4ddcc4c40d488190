# backend/tests/unit/test_engine.py

import pytest

from copay_ussd.models.session import CooperativeSnapshot, PaymentTypeSnapshot, UssdSession, UssdStep
from copay_ussd.models.ussd import SessionState
from copay_ussd.utils.exceptions import IllegalTransitionError, UssdError
from copay_ussd.workflows.engine import STEP_HANDLERS, ConversationEngine
from copay_ussd.workflows.handlers import StepResult
from conftest import BOUND_PHONE, UNBOUND_PHONE, VALID_PIN


async def run(engine, session, *inputs):
    """Feeds inputs one by one, threading the session through like the gateway does."""
    result = None
    for text in inputs:
        result = await engine.handle(session, text)
        session = result.session
    return result


def test_every_step_has_a_handler():
    assert set(STEP_HANDLERS) == set(UssdStep)


@pytest.mark.asyncio
async def test_correct_pin_chains_into_cooperative_listing(engine):
    result = await run(engine, UssdSession.start("sess-1", UNBOUND_PHONE), "", "1", VALID_PIN)

    assert result.session_state == SessionState.CON
    assert result.message.startswith("Select your cooperative:")
    assert result.session.current_step == UssdStep.SELECT_COOPERATIVE
    assert isinstance(result.session.scratch, CooperativeSnapshot)


@pytest.mark.asyncio
async def test_bound_user_never_sees_cooperative_menu(engine, collaborators):
    result = await run(engine, UssdSession.start("sess-1", BOUND_PHONE), "", "1", VALID_PIN)

    assert result.message.startswith("Select payment type:")
    assert result.session.current_step == UssdStep.SELECT_PAYMENT_TYPE
    assert collaborators.cooperatives.list_calls == 0


@pytest.mark.asyncio
async def test_cooperative_choice_chains_into_payment_type_listing(engine):
    result = await run(engine, UssdSession.start("sess-1", UNBOUND_PHONE), "", "1", VALID_PIN, "1")

    assert result.message.startswith("Select payment type:")
    assert result.session.cooperative_id == "coop-1"
    assert isinstance(result.session.scratch, PaymentTypeSnapshot)


@pytest.mark.asyncio
async def test_directory_changes_after_listing_do_not_change_the_choice(engine, collaborators):
    listed = await run(engine, UssdSession.start("sess-1", UNBOUND_PHONE), "", "1", VALID_PIN)
    # The directory reorders between the listing and the choice.
    collaborators.cooperatives.cooperatives.reverse()
    calls_before = collaborators.cooperatives.list_calls

    result = await engine.handle(listed.session, "1")

    assert result.session.cooperative_id == "coop-1"
    assert collaborators.cooperatives.list_calls == calls_before


@pytest.mark.asyncio
async def test_confirm_chains_into_processing_and_ends(engine, collaborators):
    result = await run(
        engine, UssdSession.start("sess-1", BOUND_PHONE), "", "1", VALID_PIN, "1", "Y"
    )
    assert result.session_state == SessionState.END
    assert result.message.startswith("Payment initiated successfully!")
    assert len(collaborators.payments.calls) == 1


@pytest.mark.asyncio
async def test_main_menu_help_chains_to_end(engine):
    result = await run(engine, UssdSession.start("sess-1", BOUND_PHONE), "", "3")
    assert result.session_state == SessionState.END
    assert "Your Cooperative: Kigali Farmers" in result.message


@pytest.mark.asyncio
async def test_illegal_transition_is_rejected(handler_context):
    async def skip_to_payment(session, text, ctx):
        return StepResult.then(session.model_copy(update={"current_step": UssdStep.PROCESS_PAYMENT}))

    engine = ConversationEngine(handler_context, handlers={**STEP_HANDLERS, UssdStep.MAIN_MENU: skip_to_payment})
    session = UssdSession.start("sess-1", UNBOUND_PHONE).model_copy(
        update={"current_step": UssdStep.MAIN_MENU, "user_id": "user-1"}
    )
    with pytest.raises(IllegalTransitionError):
        await engine.handle(session, "1")


@pytest.mark.asyncio
async def test_inconsistent_session_is_rejected(handler_context):
    async def forget_user(session, text, ctx):
        return StepResult.prompt(session.model_copy(update={"user_id": None}), "hi")

    engine = ConversationEngine(handler_context, handlers={**STEP_HANDLERS, UssdStep.MAIN_MENU: forget_user})
    session = UssdSession.start("sess-1", UNBOUND_PHONE).model_copy(
        update={"current_step": UssdStep.MAIN_MENU, "user_id": "user-1"}
    )
    with pytest.raises(UssdError, match="requires a user"):
        await engine.handle(session, "1")


@pytest.mark.asyncio
async def test_terminal_step_must_end(handler_context):
    async def keeps_open(session, text, ctx):
        return StepResult.prompt(session, "still here")

    engine = ConversationEngine(handler_context, handlers={**STEP_HANDLERS, UssdStep.HELP_MENU: keeps_open})
    session = UssdSession.start("sess-1", UNBOUND_PHONE).model_copy(
        update={"current_step": UssdStep.MAIN_MENU, "user_id": "user-1"}
    )
    with pytest.raises(UssdError, match="must end"):
        await engine.handle(session, "3")


@pytest.mark.asyncio
async def test_endless_follow_up_chain_is_cut(handler_context):
    async def loop(session, text, ctx):
        return StepResult.then(session)

    engine = ConversationEngine(handler_context, handlers={**STEP_HANDLERS, UssdStep.MAIN_MENU: loop})
    session = UssdSession.start("sess-1", UNBOUND_PHONE).model_copy(
        update={"current_step": UssdStep.MAIN_MENU, "user_id": "user-1"}
    )
    with pytest.raises(UssdError, match="Follow-up chain"):
        await engine.handle(session, "1")


@pytest.mark.asyncio
async def test_step_without_handler_restarts_at_welcome(handler_context):
    handlers = {step: h for step, h in STEP_HANDLERS.items() if step != UssdStep.HELP_MENU}
    engine = ConversationEngine(handler_context, handlers=handlers)
    session = UssdSession.start("sess-1", UNBOUND_PHONE).model_copy(
        update={"current_step": UssdStep.HELP_MENU, "user_id": "user-1", "input_history": ["", "3"]}
    )

    result = await engine.handle(session, "")

    assert result.message.startswith("Welcome to Co-Pay, Alice!")
    assert result.session.current_step == UssdStep.MAIN_MENU
    assert result.session.input_history == ["", "3"]


@pytest.mark.asyncio
async def test_welcome_screen_never_receives_the_dial_string(handler_context):
    seen = []

    async def capture(session, text, ctx):
        seen.append(text)
        return await STEP_HANDLERS[UssdStep.WELCOME](session, text, ctx)

    engine = ConversationEngine(handler_context, handlers={**STEP_HANDLERS, UssdStep.WELCOME: capture})

    result = await engine.handle(UssdSession.start("sess-1", UNBOUND_PHONE), "*123#")

    assert seen == [None]
    assert result.session.current_step == UssdStep.MAIN_MENU


@pytest.mark.asyncio
async def test_menu_step_receives_the_subscriber_text(handler_context):
    seen = []

    async def capture(session, text, ctx):
        seen.append(text)
        return StepResult.prompt(session, "again")

    engine = ConversationEngine(handler_context, handlers={**STEP_HANDLERS, UssdStep.MAIN_MENU: capture})
    session = UssdSession.start("sess-1", UNBOUND_PHONE).model_copy(
        update={"current_step": UssdStep.MAIN_MENU, "user_id": "user-1"}
    )

    await engine.handle(session, "7")

    assert seen == ["7"]
