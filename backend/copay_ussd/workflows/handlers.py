# /copay_ussd/workflows/handlers.py

"""
One async handler per conversation step.

A handler receives the current session, the subscriber's text (None when the
step is entered through a follow-up within the same request) and the handler
context. It never mutates the session it was given; it returns a StepResult
carrying the screen to show and the session to persist.

Expected subscriber mistakes become reprompts at the same step. Collaborator
failures are not caught here: they propagate to the gateway, which ends the
session with the generic error.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from copay_ussd.config import strings
from copay_ussd.models.directory import PaymentStatus
from copay_ussd.models.session import (
    CooperativeSnapshot,
    PaymentSelection,
    PaymentTypeSnapshot,
    UssdSession,
    UssdStep,
)
from copay_ussd.models.ussd import SessionState
from copay_ussd.services.collaborators import Collaborators
from copay_ussd.utils.metrics import payment_initiations_counter, pin_verifications_counter
from copay_ussd.workflows.definitions import MAIN_MENU_ROUTES
from copay_ussd.workflows.validator import (
    build_menu,
    format_amount,
    format_date,
    is_valid_pin_format,
    normalize_input,
    parse_confirmation,
    parse_menu_choice,
    parse_ordinal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerContext:
    """Collaborators plus the presentation and payment settings handlers need."""
    collaborators: Collaborators
    currency: str = "RWF"
    max_menu_items: int = 9
    recent_payments_limit: int = 3
    payment_channel: str = "MOBILE_MONEY_MTN"
    payment_timeout_seconds: float = 20.0
    support_email: str = "support@copay.rw"
    support_phone: str = "+250788000000"

    @classmethod
    def from_settings(cls, collaborators: Collaborators, config) -> "HandlerContext":
        return cls(
            collaborators=collaborators,
            currency=config.currency,
            max_menu_items=config.max_menu_items,
            recent_payments_limit=config.recent_payments_limit,
            payment_channel=config.default_payment_channel,
            payment_timeout_seconds=config.payment_timeout_seconds,
            support_email=config.support_email,
            support_phone=config.support_phone,
        )


@dataclass(frozen=True)
class StepResult:
    message: str
    session_state: SessionState
    session: UssdSession
    # When set, the engine runs the handler of session.current_step next,
    # without input, and its screen replaces this (empty) one.
    follow_up: bool = False

    @classmethod
    def prompt(cls, session: UssdSession, message: str) -> "StepResult":
        return cls(message, SessionState.CON, session)

    @classmethod
    def end(cls, session: UssdSession, message: str) -> "StepResult":
        return cls(message, SessionState.END, session)

    @classmethod
    def then(cls, session: UssdSession) -> "StepResult":
        return cls("", SessionState.CON, session, follow_up=True)


StepHandler = Callable[[UssdSession, Optional[str], HandlerContext], Awaitable[StepResult]]


def build_idempotency_key(session: UssdSession) -> str:
    """
    Derived from the session alone, so every initiation attempt within one
    USSD session carries the same key.
    """
    start_ms = int(session.start_time.timestamp() * 1000)
    return f"ussd_{session.session_id}_{start_ms}"


async def handle_welcome(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    user = await ctx.collaborators.users.find_by_phone(session.phone_number)
    if user is None or not user.is_active:
        # Same answer for unknown and inactive numbers.
        logger.info(f"Session {session.session_id}: rejected phone (known={user is not None})")
        return StepResult.end(session, strings.ACCOUNT_UNAVAILABLE)

    updated = session.model_copy(update={
        "user_id": user.id,
        "cooperative_id": user.cooperative_id,
        "current_step": UssdStep.MAIN_MENU,
    })
    first_name = user.first_name or strings.DEFAULT_FIRST_NAME
    return StepResult.prompt(updated, strings.WELCOME.format(first_name=first_name))


async def handle_main_menu(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    next_step = parse_menu_choice(text, MAIN_MENU_ROUTES)
    if next_step is None:
        return StepResult.prompt(session, strings.INVALID_MAIN_MENU_CHOICE)

    updated = session.model_copy(update={"current_step": next_step})
    if next_step == UssdStep.AUTH_PIN:
        return StepResult.prompt(updated, strings.ENTER_PIN)
    return StepResult.then(updated)


async def handle_auth_pin(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    if not is_valid_pin_format(text):
        return StepResult.prompt(session, strings.INVALID_PIN_FORMAT)

    user = await ctx.collaborators.users.find_by_phone(session.phone_number)
    if user is None or not user.is_active:
        logger.warning(f"Session {session.session_id}: user disappeared before PIN check")
        return StepResult.end(session, strings.USER_NOT_FOUND)

    verified = await ctx.collaborators.pins.verify(normalize_input(text), user.hashed_pin)
    pin_verifications_counter.labels(status="success" if verified else "failed").inc()
    if not verified:
        logger.info(f"Session {session.session_id}: incorrect PIN")
        return StepResult.prompt(session, strings.INCORRECT_PIN)

    next_step = UssdStep.SELECT_PAYMENT_TYPE if session.cooperative_id else UssdStep.SELECT_COOPERATIVE
    return StepResult.then(session.model_copy(update={"current_step": next_step, "scratch": None}))


async def handle_select_cooperative(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    snapshot = session.scratch if isinstance(session.scratch, CooperativeSnapshot) else None

    if snapshot is None:
        # Listing phase: query once and remember exactly what was shown.
        cooperatives = await ctx.collaborators.cooperatives.list_active(ctx.max_menu_items)
        cooperatives = cooperatives[:ctx.max_menu_items]
        if not cooperatives:
            return StepResult.end(session, strings.NO_ACTIVE_COOPERATIVES)

        lines = [
            strings.COOPERATIVE_LINE.format(index=i, name=c.name, code=c.code)
            for i, c in enumerate(cooperatives, start=1)
        ]
        updated = session.model_copy(update={
            "scratch": CooperativeSnapshot(cooperative_ids=tuple(c.id for c in cooperatives)),
        })
        return StepResult.prompt(
            updated, build_menu(strings.SELECT_COOPERATIVE_HEADER, lines, strings.ENTER_CHOICE)
        )

    # Resolution phase: the choice indexes the snapshot, never a fresh query.
    index = parse_ordinal(text, len(snapshot.cooperative_ids))
    if index is None:
        return StepResult.prompt(
            session, strings.INVALID_LIST_CHOICE.format(count=len(snapshot.cooperative_ids))
        )

    return StepResult.then(session.model_copy(update={
        "cooperative_id": snapshot.cooperative_ids[index],
        "current_step": UssdStep.SELECT_PAYMENT_TYPE,
        "scratch": None,
    }))


async def handle_select_payment_type(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    snapshot = session.scratch if isinstance(session.scratch, PaymentTypeSnapshot) else None

    if snapshot is None:
        options = await ctx.collaborators.payment_types.list_active(session.cooperative_id, ctx.max_menu_items)
        options = options[:ctx.max_menu_items]
        if not options:
            return StepResult.end(session, strings.NO_PAYMENT_TYPES)

        lines = [
            strings.PAYMENT_TYPE_LINE.format(
                index=i, name=o.name, amount=format_amount(o.amount), currency=ctx.currency
            )
            for i, o in enumerate(options, start=1)
        ]
        updated = session.model_copy(update={"scratch": PaymentTypeSnapshot(options=tuple(options))})
        return StepResult.prompt(
            updated, build_menu(strings.SELECT_PAYMENT_TYPE_HEADER, lines, strings.ENTER_CHOICE)
        )

    index = parse_ordinal(text, len(snapshot.options))
    if index is None:
        return StepResult.prompt(session, strings.INVALID_LIST_CHOICE.format(count=len(snapshot.options)))

    selected = snapshot.options[index]
    updated = session.model_copy(update={
        "current_step": UssdStep.CONFIRM_PAYMENT,
        "scratch": PaymentSelection(payment_type=selected),
    })
    return StepResult.prompt(updated, strings.PAYMENT_DETAILS.format(
        name=selected.name,
        amount=format_amount(selected.amount),
        currency=ctx.currency,
        description=selected.description or strings.NO_DESCRIPTION,
    ))


async def handle_confirm_payment(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    confirmed = parse_confirmation(text)
    if confirmed is None:
        return StepResult.prompt(session, strings.INVALID_CONFIRMATION)
    if not confirmed:
        return StepResult.end(session, strings.PAYMENT_CANCELLED)
    return StepResult.then(session.model_copy(update={"current_step": UssdStep.PROCESS_PAYMENT}))


async def handle_process_payment(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    selection: PaymentSelection = session.scratch
    payment_type = selection.payment_type
    idempotency_key = build_idempotency_key(session)

    try:
        result = await asyncio.wait_for(
            ctx.collaborators.payments.initiate(
                idempotency_key=idempotency_key,
                user_id=session.user_id,
                cooperative_id=session.cooperative_id,
                payment_type=payment_type,
                channel=ctx.payment_channel,
                payment_account=session.phone_number,
            ),
            timeout=ctx.payment_timeout_seconds,
        )
    except asyncio.TimeoutError:
        # The payment may still go through; the subscriber is told to check.
        payment_initiations_counter.labels(status="timeout").inc()
        logger.error(f"Payment initiation timed out for key {idempotency_key}")
        return StepResult.end(session, strings.PAYMENT_STATUS_UNKNOWN)

    status = result.status.upper()
    amount = format_amount(result.amount)
    if status == PaymentStatus.COMPLETED.value:
        message = strings.PAYMENT_COMPLETED.format(amount=amount, currency=ctx.currency, reference=result.id)
    elif status == PaymentStatus.PENDING.value:
        message = strings.PAYMENT_PENDING.format(amount=amount, currency=ctx.currency, reference=result.id)
    else:
        message = strings.PAYMENT_FAILED.format(reference=result.id)

    payment_initiations_counter.labels(status=status.lower() or "unknown").inc()
    logger.info(f"Session {session.session_id}: payment {result.id} ended with status {status}")
    return StepResult.end(session, message)


async def handle_view_payments(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    entries = await ctx.collaborators.history.recent(
        session.user_id, session.cooperative_id, ctx.recent_payments_limit
    )
    entries = entries[:ctx.recent_payments_limit]
    if not entries:
        return StepResult.end(session, strings.NO_PAYMENT_HISTORY)

    rendered = [
        strings.PAYMENT_HISTORY_ENTRY.format(
            index=i,
            type_name=entry.type_name,
            amount=format_amount(entry.amount),
            currency=ctx.currency,
            status=entry.status,
            date=format_date(entry.date),
        )
        for i, entry in enumerate(entries, start=1)
    ]
    return StepResult.end(session, strings.RECENT_PAYMENTS_HEADER + "\n\n" + "\n\n".join(rendered))


async def handle_help_menu(session: UssdSession, text: Optional[str], ctx: HandlerContext) -> StepResult:
    contact = None
    if session.cooperative_id:
        contact = await ctx.collaborators.cooperatives.get_contact(session.cooperative_id)

    if contact is None:
        return StepResult.end(session, strings.HELP_GENERIC.format(
            support_email=ctx.support_email, support_phone=ctx.support_phone
        ))

    return StepResult.end(session, strings.HELP_COOPERATIVE.format(
        name=contact.name,
        phone=contact.phone or strings.NOT_AVAILABLE,
        email=contact.email or strings.NOT_AVAILABLE,
        support_email=ctx.support_email,
        support_phone=ctx.support_phone,
    ))
