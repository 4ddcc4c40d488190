# /copay_ussd/utils/dependencies.py

import secrets
from fastapi import Request, HTTPException

from copay_ussd.config.settings import settings
from copay_ussd.services.ussd_service import UssdService, ussd_service


def get_ussd_service() -> UssdService:
    """The gateway instance; overridden in tests."""
    return ussd_service

async def verify_metrics_access(request: Request):
    if settings.api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not (provided_key and secrets.compare_digest(provided_key, settings.api_key)):
            raise HTTPException(status_code=403, detail="Invalid or missing API key")
