"""Lookup of payment adapters by gateway name"""

from typing import Dict, Iterable, List

from homestay_registry.domain.exceptions import ValidationError
from homestay_registry.infrastructure.clients.base import PaymentGateway
from homestay_registry.infrastructure.clients.himkosh import HimKoshGateway
from homestay_registry.infrastructure.clients.manual_upi import ManualUpiGateway
from homestay_registry.infrastructure.clients.payu import PayUGateway
from homestay_registry.infrastructure.clients.razorpay import RazorpayGateway


class GatewayRegistry:
    def __init__(self, gateways: Iterable[PaymentGateway]):
        self._gateways: Dict[str, PaymentGateway] = {g.name: g for g in gateways}

    def get(self, name: str) -> PaymentGateway:
        try:
            return self._gateways[name]
        except KeyError:
            raise ValidationError(
                f"Unknown payment gateway '{name}'. Must be one of: {', '.join(self.names())}",
                field="gateway",
            )

    def names(self) -> List[str]:
        return sorted(self._gateways)


def build_default_registry() -> GatewayRegistry:
    return GatewayRegistry([HimKoshGateway(), RazorpayGateway(), PayUGateway(), ManualUpiGateway()])
