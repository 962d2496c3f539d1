"""Provider adapter tests"""
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from mailrelay.core.config import Settings
from mailrelay.core.errors import (
    ADAPTER_NOT_FOUND,
    INVALID_SCHEDULE,
    ConfigurationError,
    ProviderRequestError,
    ValidationError,
)
from mailrelay.services.email import (
    AdapterRegistry,
    BrevoEmailAdapter,
    EmailAttachment,
    EmailMessage,
    ResendEmailAdapter,
    SendGridEmailAdapter,
    StubEmailAdapter,
    build_adapter_registry,
)
from mailrelay.services.email.adapters.base import BULK_BATCH_SIZE
from mailrelay.services.email.adapters.brevo import validate_scheduled_at
from mailrelay.services.email.adapters.resend import build_resend_params
from mailrelay.services.email.adapters.sendgrid import validate_send_at

from conftest import RESEND_TEST_DELIVERED, FakeEmailAdapter


def make_message(**overrides) -> EmailMessage:
    values = {
        "from_address": "noreply@example.com",
        "to": [RESEND_TEST_DELIVERED],
        "subject": "Hello",
        "html": "<p>Hello</p>",
    }
    values.update(overrides)
    return EmailMessage(**values)


@pytest.mark.critical
class TestBulkSend:
    """Test batched bulk sending on the base adapter"""

    @pytest.mark.asyncio
    async def test_results_align_with_requests(self):
        """Test 23 requests with two raising produce 23 ordered results"""
        adapter = FakeEmailAdapter("resend", raise_for={"Email 5", "Email 17"})
        messages = [make_message(subject=f"Email {i}") for i in range(23)]

        results = await adapter.send_bulk_emails(messages)

        assert len(results) == 23
        failed = [i for i, result in enumerate(results) if not result.success]
        assert failed == [5, 17]
        assert "Email 5" in results[5].error
        assert "Email 17" in results[17].error
        assert all(results[i].provider_id for i in range(23) if i not in (5, 17))

    @pytest.mark.asyncio
    async def test_batches_are_bounded(self):
        """Test no more than one batch of requests is in flight at a time"""
        adapter = FakeEmailAdapter("resend")
        messages = [make_message(subject=f"Email {i}") for i in range(23)]

        await adapter.send_bulk_emails(messages)

        assert adapter.max_in_flight == BULK_BATCH_SIZE
        assert [m.subject for m in adapter.sent] == [f"Email {i}" for i in range(23)]

    @pytest.mark.asyncio
    async def test_empty_bulk(self):
        adapter = FakeEmailAdapter("resend")
        assert await adapter.send_bulk_emails([]) == []


@pytest.mark.high
class TestStubAdapter:
    """Test placeholder adapters"""

    @pytest.mark.asyncio
    async def test_send_raises_not_implemented(self):
        adapter = StubEmailAdapter("mailgun")
        with pytest.raises(NotImplementedError, match="mailgun adapter not yet implemented"):
            await adapter.send_email(make_message())

    @pytest.mark.asyncio
    async def test_bulk_reports_every_item_failed(self):
        """Test a stub adapter in bulk mode yields failed results, not an exception"""
        adapter = StubEmailAdapter("mailgun")
        results = await adapter.send_bulk_emails([make_message(), make_message()])
        assert [r.success for r in results] == [False, False]
        assert "not yet implemented" in results[0].error


@pytest.mark.high
class TestResendAdapter:
    """Test the Resend SDK adapter"""

    def test_params_include_optional_fields(self):
        message = make_message(
            text="Hello",
            cc=["cc@example.com"],
            reply_to="support@example.com",
            tags=[{"name": "kind", "value": "welcome"}],
            attachments=[EmailAttachment(filename="a.txt", content="aGk=", content_type="text/plain")],
        )
        params = build_resend_params(message)

        assert params["from"] == "noreply@example.com"
        assert params["to"] == [RESEND_TEST_DELIVERED]
        assert params["text"] == "Hello"
        assert params["cc"] == ["cc@example.com"]
        assert params["reply_to"] == "support@example.com"
        assert params["tags"] == [{"name": "kind", "value": "welcome"}]
        assert params["attachments"][0]["filename"] == "a.txt"
        assert "bcc" not in params

    @pytest.mark.asyncio
    async def test_send_returns_provider_id(self):
        adapter = ResendEmailAdapter("re_test_key")
        with patch("mailrelay.services.email.adapters.resend.resend") as mock_resend:
            mock_resend.Emails.send.return_value = {"id": "re_msg_123"}
            result = await adapter.send_email(make_message())

        assert result.success is True
        assert result.provider_id == "re_msg_123"
        sent_params = mock_resend.Emails.send.call_args[0][0]
        assert sent_params["subject"] == "Hello"

    @pytest.mark.asyncio
    async def test_missing_id_is_failure(self):
        """Test a response without an id is reported as a failed send"""
        adapter = ResendEmailAdapter("re_test_key")
        with patch("mailrelay.services.email.adapters.resend.resend") as mock_resend:
            mock_resend.Emails.send.return_value = SimpleNamespace(id=None)
            result = await adapter.send_email(make_message())

        assert result.success is False
        assert "email id" in result.error

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            ResendEmailAdapter("")


@pytest.mark.high
class TestSendGridAdapter:
    """Test the SendGrid REST adapter"""

    @pytest.mark.asyncio
    async def test_send_success(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(202, headers={"x-message-id": "sg_msg_1"})

        adapter = SendGridEmailAdapter("SG.key", transport=httpx.MockTransport(handler))
        result = await adapter.send_email(make_message(text="Hello", bcc=["hidden@example.com"]))

        assert result.success is True
        assert result.provider_id == "sg_msg_1"
        assert captured["url"] == "https://api.sendgrid.com/v3/mail/send"
        assert captured["auth"] == "Bearer SG.key"
        body = captured["body"]
        assert body["personalizations"][0]["to"] == [{"email": RESEND_TEST_DELIVERED}]
        assert body["personalizations"][0]["bcc"] == [{"email": "hidden@example.com"}]
        assert [part["type"] for part in body["content"]] == ["text/plain", "text/html"]

    @pytest.mark.asyncio
    async def test_send_rejected(self):
        """Test provider error messages are surfaced on failure"""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"errors": [{"message": "The from address does not match a verified Sender Identity."}]})

        adapter = SendGridEmailAdapter("SG.key", transport=httpx.MockTransport(handler))
        result = await adapter.send_email(make_message())

        assert result.success is False
        assert "verified Sender Identity" in result.error

    @pytest.mark.asyncio
    async def test_accepted_without_message_id(self, caplog):
        """Test a 2xx without x-message-id is accepted and logged"""
        adapter = SendGridEmailAdapter("SG.key", transport=httpx.MockTransport(lambda request: httpx.Response(202)))

        with caplog.at_level("WARNING"):
            result = await adapter.send_email(make_message())

        assert result.success is True
        assert result.provider_id is None
        assert "no message id" in caplog.text


@pytest.mark.high
class TestBrevoAdapter:
    """Test the Brevo REST adapter (registered as "bravo")"""

    @pytest.mark.asyncio
    async def test_send_success(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["api_key"] = request.headers["api-key"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json={"messageId": "<brevo-1@smtp-relay>"})

        adapter = BrevoEmailAdapter("xkeysib-key", transport=httpx.MockTransport(handler))
        result = await adapter.send_email(make_message(reply_to="support@example.com"))

        assert adapter.name == "bravo"
        assert result.success is True
        assert result.provider_id == "<brevo-1@smtp-relay>"
        assert captured["url"] == "https://api.brevo.com/v3/smtp/email"
        assert captured["api_key"] == "xkeysib-key"
        assert captured["body"]["sender"] == {"email": "noreply@example.com"}
        assert captured["body"]["htmlContent"] == "<p>Hello</p>"
        assert captured["body"]["replyTo"] == {"email": "support@example.com"}

    @pytest.mark.asyncio
    async def test_send_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"code": "unauthorized", "message": "Key not found"})

        adapter = BrevoEmailAdapter("bad", transport=httpx.MockTransport(handler))
        result = await adapter.send_email(make_message())

        assert result.success is False
        assert result.error == "Key not found"

    @pytest.mark.asyncio
    async def test_accepted_without_message_id(self, caplog):
        """Test Brevo treats a 2xx without messageId the same way as SendGrid"""
        adapter = BrevoEmailAdapter("xkeysib-key", transport=httpx.MockTransport(lambda request: httpx.Response(201, json={})))

        with caplog.at_level("WARNING"):
            result = await adapter.send_email(make_message())

        assert result.success is True
        assert result.provider_id is None
        assert "no message id" in caplog.text


def recording_transport(calls: list, response: httpx.Response) -> httpx.MockTransport:
    """MockTransport that records (method, path, query, body) and answers with a copy of response"""
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        calls.append((request.method, request.url.path, dict(request.url.params), body))
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    return httpx.MockTransport(handler)


@pytest.mark.high
class TestSendGridScheduling:
    """Test SendGrid scheduled sends"""

    def test_send_at_window(self):
        now = 1_700_000_000
        assert validate_send_at(now + 3600, now=now) == now + 3600

        for send_at, reason in [
            (now - 1, "in the future"),
            (now + 5 * 60, "at least 10 minutes"),
            (now + 73 * 3600, "72 hours"),
        ]:
            with pytest.raises(ValidationError) as exc_info:
                validate_send_at(send_at, now=now)
            assert exc_info.value.code == INVALID_SCHEDULE
            assert reason in exc_info.value.message

    def test_send_at_accepts_datetime(self):
        now = 1_700_000_000
        send_at = datetime.fromtimestamp(now + 3600, tz=timezone.utc)
        assert validate_send_at(send_at, now=now) == now + 3600

    @pytest.mark.asyncio
    async def test_schedule_email(self):
        calls = []
        transport = recording_transport(calls, httpx.Response(202, headers={"x-message-id": "sg_sched_1"}))
        adapter = SendGridEmailAdapter("SG.key", transport=transport)
        send_at = datetime.now(timezone.utc) + timedelta(hours=1)

        result = await adapter.schedule_email(make_message(), send_at, batch_id="batch_abc")

        assert result.provider_id == "sg_sched_1"
        method, path, _, body = calls[0]
        assert (method, path) == ("POST", "/v3/mail/send")
        assert body["send_at"] == int(send_at.timestamp())
        assert body["batch_id"] == "batch_abc"

    @pytest.mark.asyncio
    async def test_schedule_too_soon_sends_nothing(self):
        calls = []
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport(calls, httpx.Response(202)))

        with pytest.raises(ValidationError):
            await adapter.schedule_email(make_message(), datetime.now(timezone.utc) + timedelta(minutes=2))

        assert calls == []

    @pytest.mark.asyncio
    async def test_schedule_batch_personalizations(self):
        calls = []
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport(calls, httpx.Response(202)))
        send_at = datetime.now(timezone.utc) + timedelta(hours=2)

        await adapter.schedule_batch_emails(make_message(), [["a@example.com"], ["b@example.com", "c@example.com"]], send_at)

        personalizations = calls[0][3]["personalizations"]
        assert personalizations == [
            {"to": [{"email": "a@example.com"}]},
            {"to": [{"email": "b@example.com"}, {"email": "c@example.com"}]},
        ]

    @pytest.mark.asyncio
    async def test_schedule_batch_limit(self):
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport([], httpx.Response(202)))
        recipients = [[f"user{i}@example.com"] for i in range(1001)]

        with pytest.raises(ValidationError) as exc_info:
            await adapter.schedule_batch_emails(make_message(), recipients, datetime.now(timezone.utc) + timedelta(hours=1))
        assert "1000" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_batch_id_and_cancel(self):
        calls = []
        transport = recording_transport(calls, httpx.Response(201, json={"batch_id": "batch_xyz"}))
        adapter = SendGridEmailAdapter("SG.key", transport=transport)

        batch_id = await adapter.create_batch_id()
        await adapter.cancel_scheduled_send(batch_id)

        assert batch_id == "batch_xyz"
        assert calls[0][:2] == ("POST", "/v3/mail/batch")
        assert calls[1][:2] == ("POST", "/v3/user/scheduled_sends")
        assert calls[1][3] == {"batch_id": "batch_xyz", "status": "cancel"}

    @pytest.mark.asyncio
    async def test_pause_and_list_scheduled_sends(self):
        calls = []
        transport = recording_transport(calls, httpx.Response(200, json=[{"batch_id": "batch_xyz", "status": "pause"}]))
        adapter = SendGridEmailAdapter("SG.key", transport=transport)

        await adapter.pause_scheduled_send("batch_xyz")
        scheduled = await adapter.get_scheduled_sends()

        assert calls[0][:2] == ("PATCH", "/v3/user/scheduled_sends/batch_xyz")
        assert calls[0][3] == {"status": "pause"}
        assert scheduled == [{"batch_id": "batch_xyz", "status": "pause"}]


@pytest.mark.high
class TestSendGridReporting:
    """Test SendGrid statistics and suppression queries"""

    @pytest.mark.asyncio
    async def test_bounces_with_time_window(self):
        calls = []
        bounces = [{"email": "gone@example.com", "reason": "550 5.1.1 user unknown", "created": 1700000000}]
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport(calls, httpx.Response(200, json=bounces)))

        result = await adapter.get_bounced_emails(
            start_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end_time=1706745600
        )

        assert result == bounces
        method, path, params, _ = calls[0]
        assert (method, path) == ("GET", "/v3/suppression/bounces")
        assert params == {"start_time": "1704067200", "end_time": "1706745600"}

    @pytest.mark.asyncio
    async def test_spam_reports_without_filters(self):
        calls = []
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport(calls, httpx.Response(200, json=[])))

        assert await adapter.get_spam_reports() == []
        assert calls[0][1:3] == ("/v3/suppression/spam_reports", {})

    @pytest.mark.asyncio
    async def test_blocks_invalid_and_groups(self):
        calls = []
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport(calls, httpx.Response(200, json=[])))

        await adapter.get_blocked_emails(limit=10, offset=20)
        await adapter.get_invalid_emails()
        await adapter.get_suppression_groups()

        assert calls[0][1:3] == ("/v3/suppression/blocks", {"limit": "10", "offset": "20"})
        assert calls[1][1] == "/v3/suppression/invalid_emails"
        assert calls[2][1] == "/v3/asm/groups"

    @pytest.mark.asyncio
    async def test_delete_blocked_email(self):
        calls = []
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport(calls, httpx.Response(204)))

        assert await adapter.delete_blocked_email("blocked@example.com") is None
        assert calls[0][:2] == ("DELETE", "/v3/suppression/blocks/blocked@example.com")

    @pytest.mark.asyncio
    async def test_statistics_params(self):
        calls = []
        stats = [{"date": "2024-01-01", "stats": [{"metrics": {"delivered": 5}}]}]
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport(calls, httpx.Response(200, json=stats)))

        result = await adapter.get_email_statistics(datetime(2024, 1, 1).date(), aggregated_by="day")
        await adapter.get_category_statistics(["welcome", "digest"], "2024-01-01")

        assert result == stats
        assert calls[0][1:3] == ("/v3/stats", {"start_date": "2024-01-01", "aggregated_by": "day"})
        assert calls[1][2] == {"categories": "welcome,digest", "start_date": "2024-01-01"}

    @pytest.mark.asyncio
    async def test_failed_query_raises(self):
        """Test management calls raise instead of returning a failed SendResult"""
        response = httpx.Response(403, json={"errors": [{"message": "access forbidden"}]})
        adapter = SendGridEmailAdapter("SG.key", transport=recording_transport([], response))

        with pytest.raises(ProviderRequestError) as exc_info:
            await adapter.get_bounced_emails()

        assert exc_info.value.message == "access forbidden"
        assert exc_info.value.provider_status == 403
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        adapter = SendGridEmailAdapter("SG.key", transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderRequestError):
            await adapter.get_scheduled_sends()


@pytest.mark.high
class TestBrevoScheduling:
    """Test Brevo scheduled sends, reports and sender domains"""

    def test_scheduled_at_validation(self):
        now = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

        assert validate_scheduled_at("2024-01-15T12:00:00Z", now=now) == "2024-01-15T12:00:00+00:00"
        with pytest.raises(ValidationError) as exc_info:
            validate_scheduled_at("2024-01-15T09:00:00Z", now=now)
        assert exc_info.value.code == INVALID_SCHEDULE
        with pytest.raises(ValidationError) as exc_info:
            validate_scheduled_at("next tuesday", now=now)
        assert "ISO 8601" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_schedule_email(self):
        calls = []
        transport = recording_transport(calls, httpx.Response(201, json={"messageId": "<sched-1@smtp-relay>"}))
        adapter = BrevoEmailAdapter("xkeysib-key", transport=transport)
        scheduled_at = datetime.now(timezone.utc) + timedelta(days=2)

        result = await adapter.schedule_email(make_message(), scheduled_at, batch_id="5c6cfa04-eed9-42c2-8b5c-6d470d978e9d")

        assert result.provider_id == "<sched-1@smtp-relay>"
        body = calls[0][3]
        assert body["scheduledAt"] == scheduled_at.isoformat()
        assert body["batchId"] == "5c6cfa04-eed9-42c2-8b5c-6d470d978e9d"

    @pytest.mark.asyncio
    async def test_schedule_batch_uses_message_versions(self):
        calls = []
        transport = recording_transport(calls, httpx.Response(201, json={"messageIds": ["<v1@smtp-relay>", "<v2@smtp-relay>"]}))
        adapter = BrevoEmailAdapter("xkeysib-key", transport=transport)

        result = await adapter.schedule_batch_emails(
            make_message(), [["a@example.com"], ["b@example.com"]], datetime.now(timezone.utc) + timedelta(hours=1)
        )

        body = calls[0][3]
        assert "to" not in body
        assert body["messageVersions"] == [{"to": [{"email": "a@example.com"}]}, {"to": [{"email": "b@example.com"}]}]
        assert result.provider_id == "<v1@smtp-relay>"

    @pytest.mark.asyncio
    async def test_delete_scheduled_email(self):
        calls = []
        adapter = BrevoEmailAdapter("xkeysib-key", transport=recording_transport(calls, httpx.Response(204)))

        await adapter.delete_scheduled_email("5c6cfa04-eed9-42c2-8b5c-6d470d978e9d")

        assert calls[0][:2] == ("DELETE", "/v3/smtp/email/5c6cfa04-eed9-42c2-8b5c-6d470d978e9d")

    @pytest.mark.asyncio
    async def test_email_events_and_statistics(self):
        calls = []
        events = {"events": [{"email": "gone@example.com", "event": "hardBounces"}]}
        adapter = BrevoEmailAdapter("xkeysib-key", transport=recording_transport(calls, httpx.Response(200, json=events)))

        result = await adapter.get_email_events(event="hardBounces", days=7, limit=50)
        await adapter.get_email_statistics(message_id="<brevo-1@smtp-relay>")

        assert result == events
        assert calls[0][1:3] == ("/v3/smtp/statistics/events", {"limit": "50", "days": "7", "event": "hardBounces"})
        assert calls[1][1:3] == ("/v3/smtp/emails", {"messageId": "<brevo-1@smtp-relay>"})

    @pytest.mark.asyncio
    async def test_sender_domains(self):
        calls = []
        adapter = BrevoEmailAdapter("xkeysib-key", transport=recording_transport(calls, httpx.Response(200, json={"domains": []})))

        await adapter.add_domain("mail.example.com")
        await adapter.get_domains()
        await adapter.delete_domain("mail.example.com")
        await adapter.get_blocked_domains()

        assert [call[:2] for call in calls] == [
            ("POST", "/v3/senders/domains"),
            ("GET", "/v3/senders/domains"),
            ("DELETE", "/v3/senders/domains/mail.example.com"),
            ("GET", "/v3/smtp/blockedDomains"),
        ]
        assert calls[0][3] == {"name": "mail.example.com"}

    @pytest.mark.asyncio
    async def test_failed_request_raises(self):
        response = httpx.Response(404, json={"code": "document_not_found", "message": "Domain does not exist"})
        adapter = BrevoEmailAdapter("xkeysib-key", transport=recording_transport([], response))

        with pytest.raises(ProviderRequestError) as exc_info:
            await adapter.delete_domain("missing.example.com")

        assert exc_info.value.message == "Domain does not exist"
        assert exc_info.value.provider_status == 404


@pytest.mark.critical
class TestAdapterRegistry:
    """Test provider resolution"""

    def test_explicit_provider(self):
        resend = FakeEmailAdapter("resend")
        sendgrid = FakeEmailAdapter("sendgrid")
        registry = AdapterRegistry([resend, sendgrid])

        assert registry.resolve("sendgrid", "resend") is sendgrid
        assert registry.resolve("SendGrid", "resend") is sendgrid

    def test_registered_name_is_case_insensitive(self):
        """Test an adapter named with capitals resolves by its lowercase id"""
        adapter = FakeEmailAdapter("Resend")
        registry = AdapterRegistry([adapter])

        assert registry.resolve("resend", "resend") is adapter
        assert registry.resolve(None, "RESEND") is adapter
        assert registry.names() == ["resend"]

    def test_unknown_provider_falls_back_to_default(self):
        resend = FakeEmailAdapter("resend")
        registry = AdapterRegistry([resend])

        assert registry.resolve("postmark", "resend") is resend
        assert registry.resolve(None, "resend") is resend

    def test_missing_default_raises(self):
        """Test ADAPTER_NOT_FOUND when neither provider is registered"""
        registry = AdapterRegistry([FakeEmailAdapter("sendgrid")])

        with pytest.raises(ConfigurationError) as exc_info:
            registry.resolve(None, "resend")

        assert exc_info.value.code == ADAPTER_NOT_FOUND
        assert exc_info.value.status_code == 500
        assert "resend" in exc_info.value.message

    def test_build_from_settings(self):
        """Test only configured providers and stubs are registered"""
        settings = Settings(
            RESEND_API_KEY="re_key",
            SENDGRID_API_KEY="",
            BREVO_API_KEY="xkeysib",
            EMAIL_STUB_PROVIDERS=["Mailgun"],
        )
        registry = build_adapter_registry(settings)

        assert registry.names() == ["bravo", "mailgun", "resend"]
        assert isinstance(registry.get("mailgun"), StubEmailAdapter)
        assert "sendgrid" not in registry

    def test_build_with_nothing_configured(self):
        settings = Settings(RESEND_API_KEY="", SENDGRID_API_KEY="", BREVO_API_KEY="", EMAIL_STUB_PROVIDERS=[])
        assert len(build_adapter_registry(settings)) == 0
