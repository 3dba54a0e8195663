import pytest

from app.gateways.base import GatewayProvider
from app.gateways.mock import MockGateway
from app.gateways.razorpay import RazorpayGateway
from app.gateways.registry import resolve_gateway
from app.schemas.gateway_setting import GatewaySettingCreate
from app.services.credentials import AesGcmCredentialStore
from app.services.errors import ConflictError, NotFoundError
from app.services.gateway_settings import GatewaySettingService

pytestmark = pytest.mark.anyio


@pytest.fixture
def credentials():
    return AesGcmCredentialStore("registry-test-key")


@pytest.fixture
def settings_service(db, credentials):
    return GatewaySettingService(db, credentials)


def setting(name="Razorpay live", provider=GatewayProvider.RAZORPAY, **overrides):
    fields = dict(
        name=name,
        provider=provider,
        api_key="rzp_key",
        api_secret="rzp_secret",
        merchant_id="merchant_1",
        webhook_secret="rzp_whsec",
        timeout_minutes=20,
    )
    fields.update(overrides)
    return GatewaySettingCreate(**fields)


class TestResolveGateway:
    async def test_no_active_setting_uses_mock(self, db, credentials):
        gateway = await resolve_gateway(db, credentials)

        assert isinstance(gateway, MockGateway)
        assert gateway.provider is GatewayProvider.MOCK

    async def test_active_razorpay_setting(self, db, credentials, settings_service):
        await settings_service.create_setting(setting())

        gateway = await resolve_gateway(db, credentials)
        try:
            assert isinstance(gateway, RazorpayGateway)
            assert gateway.config.api_key == "rzp_key"
            assert gateway.config.webhook_secret == "rzp_whsec"
            assert gateway.config.timeout_minutes == 20
        finally:
            await gateway.aclose()

    async def test_undecryptable_credentials_fall_back_to_mock(self, db, settings_service):
        await settings_service.create_setting(setting())

        gateway = await resolve_gateway(db, AesGcmCredentialStore("rotated-key"))

        assert isinstance(gateway, MockGateway)

    async def test_unsupported_provider_falls_back_to_mock(self, db, credentials, settings_service):
        await settings_service.create_setting(setting(name="PayU", provider=GatewayProvider.PAYU))

        gateway = await resolve_gateway(db, credentials)

        assert isinstance(gateway, MockGateway)

    async def test_mock_setting_keeps_its_payment_window(self, db, credentials, settings_service):
        await settings_service.create_setting(setting(name="Sandbox", provider=GatewayProvider.MOCK, timeout_minutes=5))

        gateway = await resolve_gateway(db, credentials)

        assert isinstance(gateway, MockGateway)
        assert gateway.config.timeout_minutes == 5


class TestGatewaySettingService:
    async def test_credentials_encrypted_at_rest(self, settings_service, credentials):
        created = await settings_service.create_setting(setting())

        assert created.api_secret != "rzp_secret"
        assert credentials.decrypt(created.api_secret) == "rzp_secret"

    async def test_single_active_setting(self, settings_service):
        first = await settings_service.create_setting(setting(name="First"))
        second = await settings_service.create_setting(setting(name="Second"))

        active = [s.id for s in await settings_service.list_settings() if s.is_active]

        assert active == [second.id]

        await settings_service.activate_setting(first.id)
        active = [s.id for s in await settings_service.list_settings() if s.is_active]
        assert active == [first.id]

    async def test_inactive_setting_leaves_current_one(self, settings_service):
        current = await settings_service.create_setting(setting(name="Current"))
        await settings_service.create_setting(setting(name="Standby", is_active=False))

        active = [s.id for s in await settings_service.list_settings() if s.is_active]

        assert active == [current.id]

    async def test_duplicate_name(self, settings_service):
        await settings_service.create_setting(setting())

        with pytest.raises(ConflictError):
            await settings_service.create_setting(setting())

    async def test_unknown_setting(self, settings_service):
        with pytest.raises(NotFoundError):
            await settings_service.activate_setting("missing")
