import json
import random
from decimal import Decimal
from urllib.parse import urlparse, parse_qs

import httpx
import pytest
from pydantic import ValidationError as PydanticValidationError

from app.gateways.base import GatewayConfig, GatewayResponse, compute_signature, verify_signature
from app.gateways.mock import MockGateway, MOCK_STATUSES
from app.gateways.razorpay import RazorpayGateway
from app.utils.date_utils import utcnow

pytestmark = pytest.mark.anyio

CONFIG = GatewayConfig(
    merchant_id="merchant_1",
    api_key="rzp_test_key",
    api_secret="rzp_test_secret",
    webhook_secret="whsec",
    base_url="https://razorpay.test/v1",
    timeout_minutes=10,
)


class TestSignatures:
    def test_matching_signature(self):
        payload = b'{"paymentId": "p1"}'
        assert verify_signature("whsec", payload, compute_signature("whsec", payload))

    def test_wrong_secret(self):
        payload = b'{"paymentId": "p1"}'
        assert not verify_signature("whsec", payload, compute_signature("other", payload))

    def test_missing_secret_or_signature(self):
        assert not verify_signature("", b"{}", compute_signature("", b"{}"))
        assert not verify_signature("whsec", b"{}", None)

    def test_gateway_response_helpers(self):
        assert GatewayResponse.ok({"a": 1}, status="pending").status == "pending"
        failed = GatewayResponse.fail("boom")
        assert not failed.success and failed.error == "boom" and failed.data == {}


class TestMockGateway:
    def gateway(self, seed=7):
        return MockGateway(CONFIG, latency=0, rng=random.Random(seed))

    async def test_initiate_returns_upi_link(self):
        response = await self.gateway().initiate_payment(Decimal("499.5"), "INR", "user@okbank", "order-1")

        assert response.success
        assert response.data["payment_id"].startswith("mock_")
        uri = urlparse(response.data["qr_code"])
        params = parse_qs(uri.query)
        assert uri.scheme == "upi"
        assert params["am"] == ["499.50"]
        assert params["tr"] == ["order-1"]
        assert params["cu"] == ["INR"]
        remaining = response.data["expires_at"] - utcnow()
        assert 9 * 60 < remaining.total_seconds() <= 10 * 60

    async def test_payment_ids_are_unique(self):
        gateway = self.gateway()
        first = await gateway.initiate_payment(Decimal("1"), "INR", "a@b", "o1")
        second = await gateway.initiate_payment(Decimal("1"), "INR", "a@b", "o1")

        assert first.data["payment_id"] != second.data["payment_id"]

    async def test_status_is_one_of_the_simulated_states(self):
        gateway = self.gateway()
        seen = set()
        for _ in range(30):
            response = await gateway.check_payment_status("mock_1")
            assert response.success
            seen.add(response.status)
        assert seen <= set(MOCK_STATUSES)
        assert len(seen) > 1

    async def test_webhook_signature(self):
        payload = b'{"paymentId": "mock_1", "status": "success"}'
        gateway = self.gateway()

        assert await gateway.validate_webhook(payload, compute_signature("whsec", payload))
        assert not await gateway.validate_webhook(payload, "deadbeef")

    async def test_refund(self):
        response = await self.gateway().initiate_refund("mock_1", Decimal("100"), "Damaged")

        assert response.success
        assert response.data["refund_id"].startswith("refund_")
        assert response.data["amount"] == "100.00"
        assert response.data["status"] == "pending"


def razorpay(handler):
    return RazorpayGateway(CONFIG, transport=httpx.MockTransport(handler))


class TestRazorpayGateway:
    async def test_initiate_creates_order_in_paise(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"id": "order_RZP1", "status": "created"})

        gateway = razorpay(handler)
        response = await gateway.initiate_payment(Decimal("500.25"), "INR", "user@okbank", "order-1")
        await gateway.aclose()

        assert response.success
        assert response.data["payment_id"] == "order_RZP1"
        assert "tr=order_RZP1" in response.data["qr_code"]
        assert seen["path"] == "/v1/orders"
        assert seen["body"]["amount"] == 50025
        assert seen["body"]["receipt"] == "order-1"
        assert seen["body"]["notes"] == {"vpa": "user@okbank"}
        assert seen["auth"].startswith("Basic ")

    async def test_initiate_reports_provider_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"description": "Amount exceeds maximum"}})

        response = await razorpay(handler).initiate_payment(Decimal("1"), "INR", "a@b", "o1")

        assert not response.success
        assert "Amount exceeds maximum" in response.error

    async def test_initiate_network_error_does_not_raise(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        response = await razorpay(handler).initiate_payment(Decimal("1"), "INR", "a@b", "o1")

        assert not response.success
        assert "connection refused" in response.error

    @pytest.mark.parametrize(
        "states, expected",
        [
            ([], "pending"),
            (["created"], "pending"),
            (["failed", "captured"], "success"),
            (["failed", "failed"], "failed"),
            (["authorized"], "pending"),
        ],
    )
    async def test_status_from_order_payments(self, states, expected):
        def handler(request):
            assert request.url.path == "/v1/orders/order_RZP1/payments"
            items = [
                {"id": f"pay_{i}", "status": s, "method": "upi", "amount": 50000}
                for i, s in enumerate(states)
            ]
            return httpx.Response(200, json={"items": items})

        response = await razorpay(handler).check_payment_status("order_RZP1")

        assert response.success
        assert response.status == expected

    async def test_refund_targets_captured_payment(self):
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == "GET":
                return httpx.Response(200, json={"items": [
                    {"id": "pay_failed", "status": "failed"},
                    {"id": "pay_ok", "status": "captured"},
                ]})
            return httpx.Response(200, json={"id": "rfnd_1", "amount": 10000, "status": "processed"})

        response = await razorpay(handler).initiate_refund("order_RZP1", Decimal("100"), "Damaged")

        assert response.success
        assert response.data["refund_id"] == "rfnd_1"
        assert response.data["amount"] == "100.00"
        assert requests[-1].url.path == "/v1/payments/pay_ok/refund"
        assert json.loads(requests[-1].content)["amount"] == 10000

    async def test_refund_without_captured_payment(self):
        def handler(request):
            return httpx.Response(200, json={"items": [{"id": "pay_1", "status": "failed"}]})

        response = await razorpay(handler).initiate_refund("order_RZP1", Decimal("100"), "Damaged")

        assert not response.success
        assert "no captured payment" in response.error


class TestGatewayConfig:
    @pytest.mark.parametrize("retries", [0, 6])
    def test_retry_bounds(self, retries):
        with pytest.raises(PydanticValidationError):
            GatewayConfig(max_retries=retries)

    def test_retry_default(self):
        assert GatewayConfig().max_retries == 3
