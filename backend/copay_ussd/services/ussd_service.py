# /copay_ussd/services/ussd_service.py

import asyncio
import logging
from typing import Optional

from copay_ussd.config import strings
from copay_ussd.config.settings import settings
from copay_ussd.models.session import UssdSession, UssdStep
from copay_ussd.models.ussd import SessionState, UssdRequest, UssdResponse
from copay_ussd.services.collaborators import Collaborators
from copay_ussd.services.directory_service import (
    cooperative_directory,
    payment_history,
    payment_type_directory,
    user_directory,
)
from copay_ussd.services.payment_service import payment_service
from copay_ussd.services.security_service import pin_verifier
from copay_ussd.services.session_store import SessionStore, session_store
from copay_ussd.utils.alerting import AlertingService, alerting_service
from copay_ussd.utils.exceptions import CorruptSessionError
from copay_ussd.utils.metrics import corrupt_sessions_counter, ussd_failures_counter, ussd_requests_counter
from copay_ussd.workflows.engine import ConversationEngine
from copay_ussd.workflows.handlers import HandlerContext

# The gateway between the aggregator endpoint and the conversation: loads or
# starts the session, runs the input through the engine, then persists the
# session (CON) or deletes it (END). Any failure past request validation ends
# the USSD session with the generic message; the aggregator never sees an
# HTTP error for a well-formed request.

logger = logging.getLogger(__name__)

MASKED_PIN = "****"


class UssdService:
    def __init__(
        self,
        store: SessionStore,
        engine: ConversationEngine,
        session_ttl: int = 300,
        alerting: Optional[AlertingService] = None,
        request_timeout: float = 22.0,
    ):
        self.store = store
        self.engine = engine
        self.session_ttl = session_ttl
        self.alerting = alerting
        self.request_timeout = request_timeout

    async def _load_or_start(self, request: UssdRequest) -> UssdSession:
        try:
            session = await self.store.load(request.session_id)
        except CorruptSessionError as e:
            logger.warning(f"Discarding corrupt session {e.session_id}: {e.reason}")
            corrupt_sessions_counter.labels(reason="undecodable").inc()
            session = None

        if session is None:
            logger.info(f"Starting session {request.session_id}")
            return UssdSession.start(request.session_id, request.phone_number)

        if session.phone_number != request.phone_number:
            # The stored phone number is authoritative for the whole session.
            logger.warning(
                f"Session {request.session_id}: request phone differs from the stored one; keeping stored"
            )
        return session

    @staticmethod
    def _record_input(session: UssdSession, text: str) -> UssdSession:
        entry = MASKED_PIN if session.current_step == UssdStep.AUTH_PIN and text else text
        return session.model_copy(update={"input_history": [*session.input_history, entry]})

    async def _discard(self, session_id: str) -> None:
        try:
            await self.store.delete(session_id)
        except Exception as e:
            logger.error(f"Could not delete session {session_id} after a failure: {type(e).__name__}: {e}")

    async def _run_cycle(self, request: UssdRequest) -> UssdResponse:
        session = await self._load_or_start(request)
        step_before = session.current_step
        session = self._record_input(session, request.text)

        result = await self.engine.handle(session, request.text)
        response = UssdResponse(message=result.message, session_state=result.session_state)

        if response.is_terminal:
            await self.store.delete(request.session_id)
        else:
            await self.store.save(result.session, self.session_ttl)

        ussd_requests_counter.labels(
            step=result.session.current_step.value, session_state=response.session_state.value
        ).inc()
        logger.info(
            f"Session {request.session_id}: {step_before.value} -> "
            f"{result.session.current_step.value} ({response.session_state.value})"
        )
        return response

    async def handle_request(self, request: UssdRequest) -> UssdResponse:
        """
        Answers one aggregator callback. Never raises for a validated request.

        The cycle is bounded here, below the HTTP timeout middleware, so a hung
        store or directory still ends in the generic message and a deleted session.
        """
        try:
            return await asyncio.wait_for(self._run_cycle(request), timeout=self.request_timeout)
        except Exception as e:
            logger.error(
                f"USSD request failed for session {request.session_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            ussd_failures_counter.labels(error_type=type(e).__name__).inc()
            await self._discard(request.session_id)
            if self.alerting:
                await self.alerting.send_critical_alert(
                    f"USSD request failed: {type(e).__name__}",
                    {"session_id": request.session_id, "network_code": request.network_code},
                )
            return UssdResponse(message=strings.SERVICE_UNAVAILABLE, session_state=SessionState.END)


def build_collaborators() -> Collaborators:
    return Collaborators(
        users=user_directory,
        cooperatives=cooperative_directory,
        payment_types=payment_type_directory,
        payments=payment_service,
        history=payment_history,
        pins=pin_verifier,
    )


# Globally accessible instance
ussd_service = UssdService(
    session_store,
    ConversationEngine(HandlerContext.from_settings(build_collaborators(), settings)),
    session_ttl=settings.session_ttl_seconds,
    alerting=alerting_service,
    request_timeout=settings.request_timeout_seconds,
)
