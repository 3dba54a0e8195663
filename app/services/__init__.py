from app.services.payments import PaymentService
from app.services.gateway_settings import GatewaySettingService
from app.services.analytics import PaymentAnalyticsService
from app.services.saved_vpas import SavedVpaService

__all__ = ["PaymentService", "GatewaySettingService", "PaymentAnalyticsService", "SavedVpaService"]
