# /copay_ussd/models/ussd.py

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from copay_ussd.services.security_service import EnhancedSecurityService

# Wire models for the aggregator-facing endpoint. Field names on the wire are
# camelCase, as sent by the telecom aggregators.


class SessionState(str, Enum):
    CON = "CON"  # keep the session open and prompt for input
    END = "END"  # final message, close the session


class UssdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", min_length=1, max_length=128)
    phone_number: str = Field(..., alias="phoneNumber")
    text: str = Field(default="", description="Raw subscriber input for this step")
    service_code: Optional[str] = Field(default=None, alias="serviceCode", examples=["*134#"])
    network_code: Optional[str] = Field(default=None, alias="networkCode", examples=["MTN"])

    @field_validator("session_id")
    @classmethod
    def strip_session_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("sessionId must not be blank")
        return v

    @field_validator("phone_number")
    @classmethod
    def normalize_phone_number(cls, v: str) -> str:
        clean = EnhancedSecurityService.sanitize_phone_number(v)
        if not clean:
            raise ValueError("phoneNumber must be an E.164 number")
        return clean

    @field_validator("text", mode="before")
    @classmethod
    def none_text_is_empty(cls, v):
        return "" if v is None else v


class UssdResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_state: SessionState = Field(..., alias="sessionState")

    @property
    def is_terminal(self) -> bool:
        return self.session_state == SessionState.END


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    service: str
