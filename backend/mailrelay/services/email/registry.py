"""Provider adapter registry"""
import logging
from typing import Dict, List, Optional

from mailrelay.core.errors import ADAPTER_NOT_FOUND, ConfigurationError
from mailrelay.services.email.adapters import (
    BaseEmailAdapter,
    BrevoEmailAdapter,
    ResendEmailAdapter,
    SendGridEmailAdapter,
    StubEmailAdapter,
)

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Maps provider name -> adapter instance, resolved at call time"""

    def __init__(self, adapters: Optional[List[BaseEmailAdapter]] = None):
        self._adapters: Dict[str, BaseEmailAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: BaseEmailAdapter) -> None:
        if not adapter.name:
            raise ValueError(f"Adapter {adapter!r} has no provider name")
        self._adapters[adapter.name.lower()] = adapter

    def get(self, name: Optional[str]) -> Optional[BaseEmailAdapter]:
        if not name:
            return None
        return self._adapters.get(name.lower())

    def names(self) -> List[str]:
        return sorted(self._adapters)

    def resolve(self, name: Optional[str], default: Optional[str]) -> BaseEmailAdapter:
        """Explicit provider if registered, else the default provider"""
        adapter = self.get(name)
        if adapter is not None:
            return adapter

        if name:
            logger.warning(f"Email provider '{name}' is not registered, falling back to '{default}'")

        adapter = self.get(default)
        if adapter is None:
            raise ConfigurationError(
                f"Email adapter not found for provider: {name or default}",
                code=ADAPTER_NOT_FOUND
            )
        return adapter

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._adapters)


def build_adapter_registry(settings) -> AdapterRegistry:
    """Register every provider whose credentials are configured"""
    registry = AdapterRegistry()

    for name in settings.EMAIL_STUB_PROVIDERS:
        registry.register(StubEmailAdapter(name.strip().lower()))

    if settings.RESEND_API_KEY:
        registry.register(ResendEmailAdapter(settings.RESEND_API_KEY))
    if settings.SENDGRID_API_KEY:
        registry.register(SendGridEmailAdapter(
            settings.SENDGRID_API_KEY,
            base_url=settings.SENDGRID_API_URL,
            timeout=settings.EMAIL_HTTP_TIMEOUT
        ))
    if settings.BREVO_API_KEY:
        registry.register(BrevoEmailAdapter(
            settings.BREVO_API_KEY,
            base_url=settings.BREVO_API_URL,
            timeout=settings.EMAIL_HTTP_TIMEOUT
        ))

    if not len(registry):
        logger.warning("No email providers configured; sends will fail with ADAPTER_NOT_FOUND")
    else:
        logger.info(f"Email providers registered: {registry.names()}")

    return registry
