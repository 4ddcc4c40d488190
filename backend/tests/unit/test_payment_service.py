# backend/tests/unit/test_payment_service.py

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from copay_ussd.models.directory import PaymentTypeOption
from copay_ussd.services.payment_service import PaymentService
from copay_ussd.utils.exceptions import DownstreamError

MEMBERSHIP = PaymentTypeOption(id="pt-1", name="Membership", amount=5000)


def initiate(service, key="ussd_sess-1_1700000000000"):
    return service.initiate(
        idempotency_key=key,
        user_id="user-1",
        cooperative_id="coop-1",
        payment_type=MEMBERSHIP,
        channel="MOBILE_MONEY_MTN",
        payment_account="+250788123456",
    )


def response(status_code=201, body=None):
    return MagicMock(status_code=status_code, json=lambda: body, text=str(body))


@pytest.mark.asyncio
async def test_initiate_posts_payment_with_idempotency_key(mocker):
    service = PaymentService("http://payments.test/api/v1", "secret")
    post = mocker.patch.object(
        service.http_client, "post",
        new=AsyncMock(return_value=response(body={"id": "pay-9", "amount": 5000, "status": "pending"})),
    )

    result = await initiate(service)

    assert result.id == "pay-9"
    assert result.status == "PENDING"
    path = post.await_args.args[0]
    kwargs = post.await_args.kwargs
    assert path == "/payments/initiate"
    assert kwargs["headers"]["Idempotency-Key"] == "ussd_sess-1_1700000000000"
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["json"]["idempotencyKey"] == "ussd_sess-1_1700000000000"
    assert kwargs["json"]["senderId"] == "user-1"
    assert kwargs["json"]["targetCooperativeId"] == "coop-1"
    assert kwargs["json"]["paymentMethod"] == "MOBILE_MONEY_MTN"
    assert kwargs["json"]["paymentAccount"] == "+250788123456"
    assert kwargs["json"]["description"] == "USSD Payment - Membership"


@pytest.mark.asyncio
async def test_initiate_unwraps_data_envelope(mocker):
    service = PaymentService("http://payments.test/api/v1", None)
    mocker.patch.object(
        service.http_client, "post",
        new=AsyncMock(return_value=response(body={"data": {"id": "pay-3", "amount": 5000, "status": "COMPLETED"}})),
    )
    result = await initiate(service)
    assert result.id == "pay-3"
    assert result.status == "COMPLETED"


@pytest.mark.asyncio
async def test_transport_retry_reuses_the_same_key(mocker):
    service = PaymentService("http://payments.test/api/v1", "secret")
    post = mocker.patch.object(
        service.http_client, "post",
        new=AsyncMock(side_effect=[
            httpx.ConnectError("connection reset"),
            response(body={"id": "pay-1", "amount": 5000, "status": "PENDING"}),
        ]),
    )

    result = await initiate(service)

    assert result.id == "pay-1"
    assert post.await_count == 2
    keys = {call.kwargs["headers"]["Idempotency-Key"] for call in post.await_args_list}
    assert keys == {"ussd_sess-1_1700000000000"}


@pytest.mark.asyncio
async def test_rejected_initiation_raises_downstream_error(mocker):
    service = PaymentService("http://payments.test/api/v1", "secret")
    mocker.patch.object(
        service.http_client, "post",
        new=AsyncMock(return_value=response(status_code=422, body={"message": "invalid amount"})),
    )
    with pytest.raises(DownstreamError) as exc_info:
        await initiate(service)
    assert exc_info.value.status_code == 422


@pytest.mark.asyncio
async def test_response_without_id_raises_downstream_error(mocker):
    service = PaymentService("http://payments.test/api/v1", "secret")
    mocker.patch.object(service.http_client, "post", new=AsyncMock(return_value=response(body={"status": "PENDING"})))
    with pytest.raises(DownstreamError, match="no payment id"):
        await initiate(service)
