# /copay_ussd/services/collaborators.py

"""
Contracts for the services the conversation consumes but does not own.

Users, cooperatives, payment types and payments belong to the Co-Pay backend;
the gateway only reads them (and asks the payments API to start a payment).
Shipped implementations live in directory_service.py and payment_service.py;
tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from copay_ussd.models.directory import (
    CooperativeContact,
    CooperativeSummary,
    PaymentHistoryEntry,
    PaymentResult,
    PaymentTypeOption,
    UserRecord,
)


class UserDirectory(ABC):
    @abstractmethod
    async def find_by_phone(self, phone: str) -> Optional[UserRecord]:
        """Look up a user by E.164 phone number."""
        pass


class CooperativeDirectory(ABC):
    @abstractmethod
    async def list_active(self, limit: int) -> List[CooperativeSummary]:
        """Active cooperatives in a stable order, at most `limit` of them."""
        pass

    @abstractmethod
    async def get_contact(self, cooperative_id: str) -> Optional[CooperativeContact]:
        """Contact details shown on the help screen."""
        pass


class PaymentTypeDirectory(ABC):
    @abstractmethod
    async def list_active(self, cooperative_id: str, limit: int) -> List[PaymentTypeOption]:
        """Active payment types of one cooperative, at most `limit` of them."""
        pass


class PaymentInitiator(ABC):
    @abstractmethod
    async def initiate(
        self,
        idempotency_key: str,
        user_id: str,
        cooperative_id: str,
        payment_type: PaymentTypeOption,
        channel: str,
        payment_account: str,
    ) -> PaymentResult:
        """
        Start a payment. Calls repeated with the same idempotency key must
        return the original payment instead of creating another one.
        """
        pass


class PaymentHistoryReader(ABC):
    @abstractmethod
    async def recent(self, user_id: str, cooperative_id: Optional[str], limit: int) -> List[PaymentHistoryEntry]:
        """Most recent payments first."""
        pass


class PinVerifier(ABC):
    @abstractmethod
    async def verify(self, pin: str, hashed: Optional[str]) -> bool:
        pass


@dataclass
class Collaborators:
    """Everything a step handler may call, bundled so handlers share one signature."""
    users: UserDirectory
    cooperatives: CooperativeDirectory
    payment_types: PaymentTypeDirectory
    payments: PaymentInitiator
    history: PaymentHistoryReader
    pins: PinVerifier
