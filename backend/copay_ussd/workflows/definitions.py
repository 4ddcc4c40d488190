# /copay_ussd/workflows/definitions.py

"""
The USSD conversation as pure data (no logic).

Each step defines:
- expects_input: whether the step consumes the subscriber's text
- next_steps: steps a handler at this step may move the session to
- terminal: whether reaching the step always ends the USSD session

Staying at the same step (a reprompt, or a menu being listed) is always
allowed and is not repeated in next_steps.
"""

from typing import Any, Dict

from copay_ussd.models.session import UssdStep

# Type definition for a step
StepDefinition = Dict[str, Any]

INITIAL_STEP = UssdStep.WELCOME

STEPS: Dict[UssdStep, StepDefinition] = {
    UssdStep.WELCOME: {
        "expects_input": False,
        "next_steps": [UssdStep.MAIN_MENU],
        "terminal": False,
    },
    UssdStep.MAIN_MENU: {
        "expects_input": True,
        "next_steps": [UssdStep.AUTH_PIN, UssdStep.VIEW_PAYMENTS, UssdStep.HELP_MENU],
        "terminal": False,
    },
    UssdStep.AUTH_PIN: {
        "expects_input": True,
        # A user already bound to a cooperative skips the cooperative menu.
        "next_steps": [UssdStep.SELECT_COOPERATIVE, UssdStep.SELECT_PAYMENT_TYPE],
        "terminal": False,
    },
    UssdStep.SELECT_COOPERATIVE: {
        "expects_input": True,
        "next_steps": [UssdStep.SELECT_PAYMENT_TYPE],
        "terminal": False,
    },
    UssdStep.SELECT_PAYMENT_TYPE: {
        "expects_input": True,
        "next_steps": [UssdStep.CONFIRM_PAYMENT],
        "terminal": False,
    },
    UssdStep.CONFIRM_PAYMENT: {
        "expects_input": True,
        "next_steps": [UssdStep.PROCESS_PAYMENT],
        "terminal": False,
    },
    UssdStep.PROCESS_PAYMENT: {
        "expects_input": False,
        "next_steps": [],
        "terminal": True,
    },
    UssdStep.VIEW_PAYMENTS: {
        "expects_input": False,
        "next_steps": [],
        "terminal": True,
    },
    UssdStep.HELP_MENU: {
        "expects_input": False,
        "next_steps": [],
        "terminal": True,
    },
}

# Main menu choices and the step each one leads to.
MAIN_MENU_ROUTES: Dict[str, UssdStep] = {
    "1": UssdStep.AUTH_PIN,
    "2": UssdStep.VIEW_PAYMENTS,
    "3": UssdStep.HELP_MENU,
}

# Longest chain of follow-up steps one request may run. The longest legitimate
# chain is AUTH_PIN -> SELECT_COOPERATIVE (listing), or CONFIRM_PAYMENT ->
# PROCESS_PAYMENT; anything longer is a handler bug.
MAX_FOLLOW_UPS = 3
