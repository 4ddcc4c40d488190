# /copay_ussd/utils/exceptions.py

"""
Exception hierarchy for the USSD gateway.

Expected user mistakes (bad menu choice, wrong PIN) are never raised; the
step handlers turn them into reprompts. These exceptions cover the cases the
gateway cannot recover from inside a conversation step and that end at the
gateway boundary with the generic terminal response.
"""


class UssdError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CorruptSessionError(UssdError):
    """Raised when a stored session record cannot be decoded."""

    def __init__(self, session_id: str, reason: str) -> None:
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Session {session_id} is corrupt: {reason}")


class IllegalTransitionError(UssdError):
    """Raised when a step handler proposes a transition outside the transition table."""

    def __init__(self, from_step: str, to_step: str) -> None:
        self.from_step = from_step
        self.to_step = to_step
        super().__init__(f"Illegal transition {from_step} -> {to_step}")


class DownstreamError(UssdError):
    """Raised when a collaborator (directory, payments API) returns an unusable response."""

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")

