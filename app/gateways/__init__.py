from app.gateways.base import GatewayAdapter, GatewayConfig, GatewayProvider, GatewayResponse
from app.gateways.mock import MockGateway, build_mock_gateway
from app.gateways.razorpay import RazorpayGateway

__all__ = [
    "GatewayAdapter", "GatewayConfig", "GatewayProvider", "GatewayResponse",
    "MockGateway", "RazorpayGateway", "build_mock_gateway",
]
