# /copay_ussd/workflows/engine.py

"""
Conversation engine.

Looks up the handler for the session's current step, runs it (with the
subscriber's text only when the step expects input), follows any chain of
follow-up steps, and checks every move against the transition table
before the result is allowed to leave:
- a transition outside the table raises IllegalTransitionError
- a session whose scratch or bindings do not fit its step raises UssdError
- a terminal step must answer with END

The engine does not touch the session store; persisting the result is the
gateway's job.
"""

import logging
from typing import Dict, Mapping, Optional

from copay_ussd.models.session import UssdSession, UssdStep
from copay_ussd.models.ussd import SessionState
from copay_ussd.utils.exceptions import IllegalTransitionError, UssdError
from copay_ussd.workflows.definitions import INITIAL_STEP, MAX_FOLLOW_UPS, STEPS
from copay_ussd.workflows.handlers import (
    HandlerContext,
    StepHandler,
    StepResult,
    handle_auth_pin,
    handle_confirm_payment,
    handle_help_menu,
    handle_main_menu,
    handle_process_payment,
    handle_select_cooperative,
    handle_select_payment_type,
    handle_view_payments,
    handle_welcome,
)
from copay_ussd.workflows.validator import is_terminal_step, validate_transition

logger = logging.getLogger(__name__)

STEP_HANDLERS: Dict[UssdStep, StepHandler] = {
    UssdStep.WELCOME: handle_welcome,
    UssdStep.MAIN_MENU: handle_main_menu,
    UssdStep.AUTH_PIN: handle_auth_pin,
    UssdStep.SELECT_COOPERATIVE: handle_select_cooperative,
    UssdStep.SELECT_PAYMENT_TYPE: handle_select_payment_type,
    UssdStep.CONFIRM_PAYMENT: handle_confirm_payment,
    UssdStep.PROCESS_PAYMENT: handle_process_payment,
    UssdStep.VIEW_PAYMENTS: handle_view_payments,
    UssdStep.HELP_MENU: handle_help_menu,
}


def restart(session: UssdSession) -> UssdSession:
    """A fresh conversation for the same USSD session, keeping its input history."""
    fresh = UssdSession.start(session.session_id, session.phone_number)
    return fresh.model_copy(update={"input_history": list(session.input_history)})


class ConversationEngine:
    def __init__(
        self,
        context: HandlerContext,
        handlers: Optional[Mapping[UssdStep, StepHandler]] = None,
        max_follow_ups: int = MAX_FOLLOW_UPS,
    ):
        self.context = context
        self.handlers = dict(STEP_HANDLERS if handlers is None else handlers)
        self.max_follow_ups = max_follow_ups

    def _handler_for(self, session: UssdSession):
        handler = self.handlers.get(session.current_step)
        if handler is None:
            logger.warning(
                f"Session {session.session_id}: no handler for step {session.current_step}, restarting"
            )
            session = restart(session)
            handler = self.handlers[INITIAL_STEP]
        return session, handler

    @staticmethod
    def _input_for(step: UssdStep, text: Optional[str]) -> Optional[str]:
        # Steps that only render a screen never see the subscriber's text.
        return text if STEPS.get(step, {}).get("expects_input") else None

    @staticmethod
    def _check(from_step: UssdStep, result: StepResult) -> None:
        to_step = result.session.current_step
        verdict = validate_transition(from_step, to_step)
        if not verdict["is_valid"]:
            logger.error(f"{verdict['error_code']}: {verdict['message']}")
            raise IllegalTransitionError(from_step.value, str(getattr(to_step, "value", to_step)))

        problem = result.session.consistency_problem()
        if problem:
            raise UssdError(f"Inconsistent session after {from_step.value}: {problem}")

        if not result.follow_up and is_terminal_step(to_step) and result.session_state != SessionState.END:
            raise UssdError(f"Terminal step {to_step.value} must end the session")

    async def handle(self, session: UssdSession, text: Optional[str]) -> StepResult:
        """Runs one subscriber input through the conversation and returns the screen to show."""
        session, handler = self._handler_for(session)
        from_step = session.current_step
        result = await handler(session, self._input_for(from_step, text), self.context)
        self._check(from_step, result)

        follow_ups = 0
        while result.follow_up:
            follow_ups += 1
            if follow_ups > self.max_follow_ups:
                raise UssdError(f"Follow-up chain longer than {self.max_follow_ups} steps")
            session, handler = self._handler_for(result.session)
            from_step = session.current_step
            result = await handler(session, None, self.context)
            self._check(from_step, result)

        return result
