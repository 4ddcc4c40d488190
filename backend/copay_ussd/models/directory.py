# /copay_ussd/models/directory.py

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

# Records returned by the collaborators the USSD flow reads from and writes to.
# They are the gateway's view of data owned by the Co-Pay backend, reduced to
# what a USSD screen needs.


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING = "PENDING"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class UserRecord(BaseModel):
    id: str
    hashed_pin: Optional[str] = None
    status: str
    cooperative_id: Optional[str] = None
    first_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value


class CooperativeSummary(BaseModel):
    id: str
    name: str
    code: str


class CooperativeContact(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


class PaymentTypeOption(BaseModel):
    """A payment type as shown on a menu. Frozen: menus are snapshots."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    amount: float
    description: Optional[str] = None


class PaymentResult(BaseModel):
    id: str
    amount: float
    status: str


class PaymentHistoryEntry(BaseModel):
    type_name: str
    amount: float
    status: str
    date: datetime = Field(description="When the payment was created")
