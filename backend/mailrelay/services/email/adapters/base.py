"""Abstract base class for email provider adapters"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# Requests dispatched concurrently per batch in send_bulk_emails
BULK_BATCH_SIZE = 10


@dataclass
class EmailAttachment:
    filename: str
    content: str  # Base64-encoded
    content_type: Optional[str] = None


@dataclass
class EmailMessage:
    """A fully-resolved outbound email.

    Addresses are already validated and ``from_address`` is always set by the
    time an adapter sees one of these.
    """
    from_address: str
    to: List[str]
    subject: str
    html: Optional[str] = None
    text: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: Optional[str] = None
    tags: List[Dict[str, str]] = field(default_factory=list)
    attachments: List[EmailAttachment] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class SendResult:
    success: bool
    provider_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, provider_id: Optional[str]) -> "SendResult":
        return cls(success=True, provider_id=provider_id)

    @classmethod
    def failure(cls, error: str) -> "SendResult":
        return cls(success=False, error=error or "Unknown error")

    def to_dict(self) -> dict:
        data = {"success": self.success}
        if self.provider_id:
            data["providerId"] = self.provider_id
        if self.error:
            data["error"] = self.error
        return data


class BaseEmailAdapter(ABC):
    """Interface contract for provider adapters.

    Adapters return a failed SendResult for ordinary provider-side
    rejections. They may raise for misconfiguration or transport errors;
    callers convert those into failed results.
    """

    name: str = ""

    def __init__(self, name: Optional[str] = None):
        if name:
            self.name = name

    @abstractmethod
    async def send_email(self, message: EmailMessage) -> SendResult:
        """Send one email.

        Args:
            message: Resolved message to send

        Returns:
            SendResult with the vendor message id on success
        """
        pass

    async def send_bulk_emails(self, messages: Sequence[EmailMessage]) -> List[SendResult]:
        """Send many emails in batches of BULK_BATCH_SIZE.

        Requests within a batch run concurrently; the next batch starts only
        once every request in the current one has settled. An exception from
        one request becomes a failed result at that index only.
        """
        results: List[SendResult] = []

        for start in range(0, len(messages), BULK_BATCH_SIZE):
            batch = messages[start:start + BULK_BATCH_SIZE]
            settled = await asyncio.gather(
                *(self._send_guarded(message) for message in batch),
                return_exceptions=True
            )

            for offset, outcome in enumerate(settled):
                if isinstance(outcome, BaseException):
                    logger.warning(f"{self.name}: bulk item {start + offset} failed: {outcome}")
                    results.append(SendResult.failure(str(outcome) or type(outcome).__name__))
                else:
                    results.append(outcome)

        return results

    async def _send_guarded(self, message: EmailMessage) -> SendResult:
        # A synchronous raise inside send_email must surface as this
        # coroutine's exception, not escape gather() while building the batch
        return await self.send_email(message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name}>"
