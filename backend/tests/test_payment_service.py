"""
Tests for payment request creation.

Tests: request_payment (success, repeat requests, gateway errors, token extraction),
get_payment_request
"""
import pytest

from db_models import PaymentRequest
from domain.enums import RiskSpeed
from domain.errors import GatewayRequestError, PaymentRequestConflictError
from services import payment_service


class TestRequestPayment:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_persists_request(self, gateway_client, gateway_stub, db_session):
        result = await payment_service.request_payment(
            gateway=gateway_client,
            db=db_session,
            order_id="ORDER-1",
            fiat_amount=12.5,
            fiat_currency="USD",
            return_url="https://shop.example/thanks",
            risk_speed=RiskSpeed.FAST,
        )
        await db_session.commit()

        assert result["token"] == "tok-ORDER-1"
        assert result["paymentUrl"].endswith("/tok-ORDER-1")
        assert gateway_stub.request_calls[0]["riskSpeed"] == 0

        stored = await payment_service.get_payment_request("ORDER-1", db_session)
        assert stored.token == "tok-ORDER-1"
        assert stored.fiat_amount == 12.5
        assert stored.risk_speed == int(RiskSpeed.FAST)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_gateway_5xx_not_retried(self, gateway_client, gateway_stub, db_session):
        gateway_stub.request_status = 503

        with pytest.raises(GatewayRequestError) as exc_info:
            await payment_service.request_payment(
                gateway=gateway_client,
                db=db_session,
                order_id="ORDER-1",
                fiat_amount=10,
                fiat_currency="USD",
                return_url="https://shop.example/thanks",
            )

        assert exc_info.value.status_code == 502
        assert len(gateway_stub.request_calls) == 1
        assert await payment_service.get_payment_request("ORDER-1", db_session) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_gateway_4xx(self, gateway_client, gateway_stub, db_session):
        gateway_stub.request_status = 400

        with pytest.raises(GatewayRequestError) as exc_info:
            await payment_service.request_payment(
                gateway=gateway_client,
                db=db_session,
                order_id="ORDER-1",
                fiat_amount=10,
                fiat_currency="USD",
                return_url="https://shop.example/thanks",
            )
        assert exc_info.value.details == {"status_code": 400}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repeat_request_reuses_token(self, gateway_client, gateway_stub, db_session):
        kwargs = dict(
            gateway=gateway_client,
            db=db_session,
            order_id="ORDER-1",
            fiat_amount=10,
            fiat_currency="USD",
            return_url="https://shop.example/thanks",
        )
        first = await payment_service.request_payment(**kwargs)
        await db_session.commit()
        second = await payment_service.request_payment(**kwargs)

        assert second == first
        assert len(gateway_stub.request_calls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repeat_request_with_new_terms_conflicts(self, gateway_client, gateway_stub, db_session):
        await payment_service.request_payment(
            gateway=gateway_client, db=db_session, order_id="ORDER-1",
            fiat_amount=10, fiat_currency="USD", return_url="https://shop.example/thanks",
        )
        await db_session.commit()

        with pytest.raises(PaymentRequestConflictError) as exc_info:
            await payment_service.request_payment(
                gateway=gateway_client, db=db_session, order_id="ORDER-1",
                fiat_amount=99, fiat_currency="USD", return_url="https://shop.example/thanks",
            )

        assert exc_info.value.status_code == 409
        assert exc_info.value.details == {"token": "tok-ORDER-1"}
        assert len(gateway_stub.request_calls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_token_collision_is_conflict(self, gateway_client, gateway_stub, db_session):
        db_session.add(PaymentRequest(
            order_id="ORDER-OTHER", token="tok-ORDER-1", fiat_amount=1,
            fiat_currency="USD", return_url="https://shop.example", risk_speed=1,
        ))
        await db_session.commit()

        with pytest.raises(PaymentRequestConflictError):
            await payment_service.request_payment(
                gateway=gateway_client, db=db_session, order_id="ORDER-1",
                fiat_amount=10, fiat_currency="USD", return_url="https://shop.example/thanks",
            )
        assert await payment_service.get_payment_request("ORDER-1", db_session) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_order_request_is_none(self, db_session):
        assert await payment_service.get_payment_request("NOPE", db_session) is None


class TestExtractToken:

    @pytest.mark.unit
    @pytest.mark.parametrize("data,expected", [
        ({"body": "tok-plain"}, "tok-plain"),
        ({"body": {"token": "tok-nested"}}, "tok-nested"),
        ({"body": {}}, None),
        ({"body": None}, None),
        ({}, None),
    ])
    def test_shapes(self, data, expected):
        assert payment_service._extract_token(data) == expected
