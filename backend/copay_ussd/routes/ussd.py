# /copay_ussd/routes/ussd.py

import structlog
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request

from copay_ussd.config.settings import settings
from copay_ussd.models.ussd import HealthResponse, UssdRequest, UssdResponse
from copay_ussd.services.ussd_service import UssdService
from copay_ussd.utils.dependencies import get_ussd_service
from copay_ussd.utils.metrics import response_time_histogram
from copay_ussd.utils.rate_limiter import limiter

# The aggregator-facing endpoint. Telecom aggregators POST one callback per
# subscriber input and render the returned message; "CON" keeps the USSD
# session open, "END" closes it.

router = APIRouter(
    prefix="/ussd",
    tags=["USSD"]
)

log = structlog.get_logger(__name__)


@router.post("", response_model=UssdResponse, summary="Handle a USSD callback")
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def handle_ussd_request(
    request: Request,
    ussd_request: UssdRequest,
    ussd_service: UssdService = Depends(get_ussd_service)
):
    """Runs one subscriber input through the conversation and returns the next screen."""
    with response_time_histogram.labels(endpoint="ussd").time():
        with structlog.contextvars.bound_contextvars(session_id=ussd_request.session_id):
            log.info(
                "USSD request received.",
                service_code=ussd_request.service_code,
                network_code=ussd_request.network_code,
            )
            response = await ussd_service.handle_request(ussd_request)
            log.info("USSD response sent.", session_state=response.session_state.value)
            return response


@router.post("/health", response_model=HealthResponse, summary="USSD service health")
async def ussd_health():
    """Lets aggregators check the USSD endpoint is reachable."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        service=settings.service_name,
    )
