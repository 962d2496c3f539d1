"""Placeholder adapter for providers whose transport is not wired up yet"""
from mailrelay.services.email.adapters.base import BaseEmailAdapter, EmailMessage, SendResult


class StubEmailAdapter(BaseEmailAdapter):
    """Registers a provider name but fails every send deterministically"""

    def __init__(self, name: str):
        super().__init__(name)

    async def send_email(self, message: EmailMessage) -> SendResult:
        raise NotImplementedError(f"{self.name} adapter not yet implemented")
