from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from app.core.errors import ProviderError


@dataclass(frozen=True)
class CheckoutRequest:
    order_id: str
    amount: float
    email: str
    description: str = ""


@dataclass(frozen=True)
class CheckoutSession:
    checkout_url: str
    token: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class ProviderClient(ABC):
    """Hosted-checkout gateway: create a checkout, authenticate callbacks, query status."""

    name: str = ""
    order_prefix: str = ""
    error_kind: str = "provider_error"

    @abstractmethod
    def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        ...

    @abstractmethod
    def verify_webhook(self, headers: Mapping[str, str], body: Dict[str, Any]) -> bool:
        ...

    def fetch_status(self, order_id: str) -> Dict[str, Any]:
        raise ProviderError(f"{self.name}_status_unsupported")
