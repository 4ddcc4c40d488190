# /copay_ussd/workflows/validator.py

"""
Pure validation and formatting functions for the USSD conversation.

Everything here is deterministic and side-effect free: no store, no
directories, no logging. Step handlers use these to interpret the
subscriber's text and to render amounts and dates on USSD screens.
"""

import re
from datetime import datetime
from typing import Iterable, Mapping, Optional, TypedDict

from copay_ussd.models.session import UssdStep
from copay_ussd.workflows.definitions import STEPS

PIN_PATTERN = re.compile(r"^\d{4}$")
ORDINAL_PATTERN = re.compile(r"^\d{1,3}$")


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


def validate_transition(from_step: UssdStep, to_step: UssdStep) -> ValidationResult:
    """
    Validate that the conversation may move from one step to another.

    Staying at the same step is always valid.
    """
    if from_step not in STEPS:
        return {
            "is_valid": False,
            "error_code": "UNKNOWN_STEP",
            "message": f"Step '{from_step}' is not defined"
        }

    if to_step == from_step:
        return {"is_valid": True, "error_code": None, "message": None}

    allowed = STEPS[from_step]["next_steps"]
    if to_step not in allowed:
        return {
            "is_valid": False,
            "error_code": "TRANSITION_NOT_ALLOWED",
            "message": f"Step '{from_step.value}' cannot move to '{to_step}'. Allowed: {[s.value for s in allowed]}"
        }

    return {"is_valid": True, "error_code": None, "message": None}


def is_terminal_step(step: UssdStep) -> bool:
    return bool(STEPS.get(step, {}).get("terminal"))


def normalize_input(text: Optional[str]) -> str:
    return (text or "").strip()


def parse_menu_choice(text: Optional[str], routes: Mapping[str, UssdStep]) -> Optional[UssdStep]:
    """Returns the step a main menu choice leads to, or None for anything else."""
    return routes.get(normalize_input(text))


def is_valid_pin_format(text: Optional[str]) -> bool:
    return bool(PIN_PATTERN.match(normalize_input(text)))


def parse_ordinal(text: Optional[str], count: int) -> Optional[int]:
    """
    Parses a 1-based menu choice.

    Returns the 0-based index into a list of `count` items, or None when the
    text is not a plain number in 1..count.
    """
    value = normalize_input(text)
    if not ORDINAL_PATTERN.match(value):
        return None
    choice = int(value)
    if choice < 1 or choice > count:
        return None
    return choice - 1


def parse_confirmation(text: Optional[str]) -> Optional[bool]:
    """Y/y confirms, N/n declines, anything else is None."""
    value = normalize_input(text).upper()
    if value == "Y":
        return True
    if value == "N":
        return False
    return None


def format_amount(amount: float) -> str:
    """Whole amounts without decimals (5000), others with two (2500.50)."""
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def format_date(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


def build_menu(header: str, lines: Iterable[str], footer: Optional[str] = None) -> str:
    screen = header + "\n" + "\n".join(lines)
    if footer:
        screen += f"\n\n{footer}"
    return screen
