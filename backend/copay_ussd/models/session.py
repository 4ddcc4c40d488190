# /copay_ussd/models/session.py

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, FrozenSet, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator

from copay_ussd.models.directory import PaymentTypeOption


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UssdStep(str, Enum):
    """Conversation states. The value is what gets persisted in the session store."""
    WELCOME = "welcome"
    MAIN_MENU = "main_menu"
    AUTH_PIN = "auth_pin"
    SELECT_COOPERATIVE = "select_cooperative"
    SELECT_PAYMENT_TYPE = "select_payment_type"
    CONFIRM_PAYMENT = "confirm_payment"
    PROCESS_PAYMENT = "process_payment"
    VIEW_PAYMENTS = "view_payments"
    HELP_MENU = "help_menu"


# --- Scratch: per-step working data, one variant per step that carries data ---

class CooperativeSnapshot(BaseModel):
    """Cooperative ids in the exact order they were listed on the menu."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["cooperative_snapshot"] = "cooperative_snapshot"
    cooperative_ids: Tuple[str, ...]


class PaymentTypeSnapshot(BaseModel):
    """Payment types in the exact order they were listed on the menu."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["payment_type_snapshot"] = "payment_type_snapshot"
    options: Tuple[PaymentTypeOption, ...]


class PaymentSelection(BaseModel):
    """The payment type the user picked, carried into confirmation and processing."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["payment_selection"] = "payment_selection"
    payment_type: PaymentTypeOption


Scratch = Annotated[
    Union[CooperativeSnapshot, PaymentTypeSnapshot, PaymentSelection],
    Field(discriminator="kind"),
]

# Which scratch variants may accompany each step. None means "no scratch".
SCRATCH_KINDS_BY_STEP: Dict[UssdStep, FrozenSet[Optional[str]]] = {
    UssdStep.WELCOME: frozenset({None}),
    UssdStep.MAIN_MENU: frozenset({None}),
    UssdStep.AUTH_PIN: frozenset({None}),
    UssdStep.SELECT_COOPERATIVE: frozenset({None, "cooperative_snapshot"}),
    UssdStep.SELECT_PAYMENT_TYPE: frozenset({None, "payment_type_snapshot"}),
    UssdStep.CONFIRM_PAYMENT: frozenset({"payment_selection"}),
    UssdStep.PROCESS_PAYMENT: frozenset({"payment_selection"}),
    UssdStep.VIEW_PAYMENTS: frozenset({None}),
    UssdStep.HELP_MENU: frozenset({None}),
}

# Steps that only make sense once the user (and a cooperative) are bound.
REQUIRES_USER: FrozenSet[UssdStep] = frozenset(set(UssdStep) - {UssdStep.WELCOME})
REQUIRES_COOPERATIVE: FrozenSet[UssdStep] = frozenset({
    UssdStep.SELECT_PAYMENT_TYPE,
    UssdStep.CONFIRM_PAYMENT,
    UssdStep.PROCESS_PAYMENT,
})


class UssdSession(BaseModel):
    """
    The only stateful entity of the gateway. Stored whole under its session id
    and replaced whole on every save.
    """
    session_id: str = Field(..., min_length=1)
    phone_number: str = Field(..., frozen=True, description="E.164, fixed for the life of the session")
    current_step: UssdStep = UssdStep.WELCOME
    input_history: List[str] = Field(default_factory=list)
    scratch: Optional[Scratch] = None
    user_id: Optional[str] = None
    cooperative_id: Optional[str] = None
    start_time: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)

    @property
    def scratch_kind(self) -> Optional[str]:
        return self.scratch.kind if self.scratch is not None else None

    def consistency_problem(self) -> Optional[str]:
        """Describes why this session cannot be at its current step, or None when it can."""
        step = self.current_step
        if self.scratch_kind not in SCRATCH_KINDS_BY_STEP.get(step, frozenset()):
            return f"scratch '{self.scratch_kind}' is not allowed at step '{step.value}'"
        if step in REQUIRES_USER and not self.user_id:
            return f"step '{step.value}' requires a user"
        if step in REQUIRES_COOPERATIVE and not self.cooperative_id:
            return f"step '{step.value}' requires a cooperative"
        return None

    @model_validator(mode="after")
    def check_consistency(self):
        problem = self.consistency_problem()
        if problem:
            raise ValueError(problem)
        return self

    @classmethod
    def start(cls, session_id: str, phone_number: str) -> "UssdSession":
        now = utc_now()
        return cls(session_id=session_id, phone_number=phone_number, start_time=now, last_activity=now)
