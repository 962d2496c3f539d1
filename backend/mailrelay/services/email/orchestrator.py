"""Send orchestration: validate, dispatch to a provider, persist the outcome

Every attempt that passes validation produces exactly one log entry. The
entry is created as pending before the provider call and finalized to
sent/failed before the operation returns or raises, so provider failures are
always visible in the log.
"""
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from mailrelay.core.errors import INVALID_ADDRESS, MISSING_FROM, SendError, ValidationError
from mailrelay.core.logging import email_logger
from mailrelay.core.metrics import emails_sent_counter
from mailrelay.core.otel import tracer
from mailrelay.db.email_log_store import EmailLogStore
from mailrelay.models.email_log import EmailLog
from mailrelay.schemas.email import SendEmailRequest
from mailrelay.services.email.adapters import (
    BaseEmailAdapter,
    EmailAttachment,
    EmailMessage,
    SendResult,
)
from mailrelay.services.email.content import (
    determine_content_type,
    generate_email_id,
    join_addresses,
    sanitize_content,
    select_stored_content,
    serialize_tags,
    validate_addresses,
)
from mailrelay.services.email.registry import AdapterRegistry
from mailrelay.services.email.stats import EmailStats, compute_stats
from mailrelay.utils import email_templates

DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass
class SendOutcome:
    success: bool
    email_id: str
    provider_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "emailId": self.email_id,
            "providerId": self.provider_id,
            "message": "Email sent successfully",
        }


@dataclass
class BulkOutcome:
    total: int
    successful: int
    failed: int
    results: List[SendResult] = field(default_factory=list)
    email_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "results": [
                {**result.to_dict(), "emailId": email_id}
                for result, email_id in zip(self.results, self.email_ids)
            ],
            "emailLogs": list(self.email_ids),
        }


def _optional_addresses(value) -> List[str]:
    return validate_addresses(value) if value else []


class EmailService:
    """Send pipeline bound to one store and one adapter registry.

    Constructed per request by the API layer; holds no process-wide state.
    """

    def __init__(
        self,
        store: EmailLogStore,
        registry: AdapterRegistry,
        default_provider: str,
        from_address: Optional[str] = None,
        reply_to_address: Optional[str] = None,
        base_url: Optional[str] = None
    ):
        self.store = store
        self.registry = registry
        self.default_provider = default_provider
        self.from_address = from_address or None
        self.reply_to_address = reply_to_address or None
        self.base_url = base_url or os.environ.get("APP_BASE_URL") or DEFAULT_BASE_URL

    # ------------------------------------------------------------------
    # Request preparation
    # ------------------------------------------------------------------

    def prepare(self, request: SendEmailRequest, user_id: Optional[str]) -> Tuple[EmailMessage, Dict[str, Any]]:
        """Validate a request and build the provider message plus log columns.

        Raises ValidationError before anything is persisted or sent.
        """
        to = validate_addresses(request.recipients())
        if not to:
            raise ValidationError("At least one recipient is required", code=INVALID_ADDRESS)
        cc = _optional_addresses(request.cc)
        bcc = _optional_addresses(request.bcc)
        reply_to = request.reply_to or self.reply_to_address
        if reply_to:
            validate_addresses(reply_to)
        if request.from_address:
            validate_addresses(request.from_address)

        from_address = request.from_address or self.from_address
        if not from_address:
            raise ValidationError(
                "From address is required (no default from address configured)",
                code=MISSING_FROM
            )

        # Blank parts are dropped so the provider, the log and content_type agree
        html = sanitize_content(request.html) or None
        text = sanitize_content(request.text) or None
        content_type = determine_content_type(html, text)
        tags = [tag.model_dump() for tag in request.tags or []]

        message = EmailMessage(
            from_address=from_address,
            to=to,
            subject=request.subject,
            html=html,
            text=text,
            cc=cc,
            bcc=bcc,
            reply_to=reply_to,
            tags=tags,
            attachments=[
                EmailAttachment(
                    filename=attachment.filename,
                    content=attachment.content,
                    content_type=attachment.content_type
                )
                for attachment in request.attachments or []
            ],
        )

        log_values = {
            "id": generate_email_id(),
            "from_address": from_address,
            "to_address": join_addresses(to),
            "cc_address": join_addresses(cc),
            "bcc_address": join_addresses(bcc),
            "reply_to_address": reply_to,
            "subject": request.subject,
            "content": select_stored_content(html, text),
            "content_type": content_type,
            "status": "pending",
            "tags": serialize_tags(tags),
            "metadata_json": json.dumps(request.metadata) if request.metadata else None,
            "user_id": user_id,
        }
        return message, log_values

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, request: SendEmailRequest, user_id: Optional[str] = None) -> SendOutcome:
        """Send one email on behalf of a user and log the attempt.

        Raises:
            ValidationError: bad addresses, missing content or from address
            ConfigurationError: no adapter for the requested/default provider
            SendError: the provider failed; the failed entry is already persisted
        """
        message, log_values = self.prepare(request, user_id)
        adapter = self.registry.resolve(request.provider, self.default_provider)

        entry = self.store.create({**log_values, "provider": adapter.name})
        result = await self._dispatch(adapter, message)
        entry, result = self._finalize(entry, result)

        if not result.success:
            raise SendError(result.error, email_id=entry.id)

        return SendOutcome(success=True, email_id=entry.id, provider_id=result.provider_id)

    async def send_system(self, request: SendEmailRequest) -> SendOutcome:
        """Send without an authenticated user (account lifecycle notifications)"""
        return await self.send(request, user_id=None)

    async def send_bulk(
        self,
        requests: Sequence[SendEmailRequest],
        provider: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> BulkOutcome:
        """Send many emails through one adapter; partial failure is not an error.

        All elements are validated up front, so a bad element aborts the call
        before anything is persisted or sent.
        """
        prepared = [self.prepare(request, user_id) for request in requests]
        adapter = self.registry.resolve(provider, self.default_provider)

        entries = [self.store.create({**log_values, "provider": adapter.name}) for _, log_values in prepared]
        messages = [message for message, _ in prepared]

        try:
            results = await adapter.send_bulk_emails(messages)
        except Exception as e:
            email_logger.error(f"{adapter.name} bulk send failed: {e}", exc_info=True)
            results = [SendResult.failure(str(e) or type(e).__name__) for _ in messages]

        # Every entry gets a terminal status, even if the adapter returned too few results
        missing = len(messages) - len(results)
        if missing > 0:
            email_logger.error(f"{adapter.name} returned {len(results)} results for {len(messages)} emails")
            results = list(results) + [SendResult.failure("No result returned by provider adapter")] * missing

        finalized = [self._finalize(entry, result) for entry, result in zip(entries, results)]
        results = [result for _, result in finalized]
        successful = sum(1 for result in results if result.success)

        email_logger.info(
            f"Bulk send via {adapter.name}: {successful}/{len(results)} succeeded"
        )
        return BulkOutcome(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=list(results),
            email_ids=[entry.id for entry, _ in finalized],
        )

    async def _dispatch(self, adapter: BaseEmailAdapter, message: EmailMessage) -> SendResult:
        with tracer.start_as_current_span("email.send", attributes={"email.provider": adapter.name}) as span:
            try:
                result = await adapter.send_email(message)
            except Exception as e:
                # Transport errors and misconfigured adapters become failed outcomes
                email_logger.error(f"{adapter.name} send raised for {message.to}: {e}", exc_info=True)
                span.record_exception(e)
                result = SendResult.failure(str(e) or type(e).__name__)
            span.set_attribute("email.success", result.success)
            return result

    def _finalize(self, entry: EmailLog, result: SendResult) -> Tuple[EmailLog, SendResult]:
        """Move a pending entry to sent/failed; returns the entry and the recorded outcome.

        If the sent write itself fails (e.g. a duplicate provider id), the
        entry is recorded as failed instead so that it never stays pending.
        """
        email_id, provider = entry.id, entry.provider
        now = datetime.now(timezone.utc)

        if result.success:
            try:
                finalized = self.store.update(
                    email_id,
                    {"status": "sent", "provider_id": result.provider_id, "sent_at": now}
                )
            except SQLAlchemyError as e:
                email_logger.error(f"Could not record sent status for email {email_id}: {e}")
                result = SendResult.failure(f"Send result could not be recorded ({type(e).__name__})")
            else:
                email_logger.info(f"Email {email_id} sent via {provider} (provider id: {result.provider_id})")
                emails_sent_counter.labels(provider=provider, outcome="sent").inc()
                return finalized, result

        email_logger.warning(f"Email {email_id} failed via {provider}: {result.error}")
        emails_sent_counter.labels(provider=provider, outcome="failed").inc()
        finalized = self.store.update(
            email_id,
            {"status": "failed", "failed_at": now, "error_message": result.error}
        )
        return finalized, result

    # ------------------------------------------------------------------
    # Account lifecycle notifications
    # ------------------------------------------------------------------

    async def _send_template(self, to: str, subject: str, html: str) -> SendOutcome:
        return await self.send_system(SendEmailRequest(to=to, subject=subject, html=html))

    async def send_verification_email(self, to: str, token: str) -> SendOutcome:
        subject, html = email_templates.verification_email(self.base_url, token)
        return await self._send_template(to, subject, html)

    async def send_welcome_email(self, to: str, name: Optional[str] = None) -> SendOutcome:
        subject, html = email_templates.welcome_email(self.base_url, name)
        return await self._send_template(to, subject, html)

    async def send_password_reset_email(self, to: str, token: str) -> SendOutcome:
        subject, html = email_templates.password_reset_email(self.base_url, token)
        return await self._send_template(to, subject, html)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_logs(self, **filters) -> List[EmailLog]:
        return self.store.find_many(**filters)

    def get_stats(self, user_id: Optional[str] = None, provider: Optional[str] = None) -> EmailStats:
        return compute_stats(self.store.all_for_scope(user_id=user_id, provider=provider))
