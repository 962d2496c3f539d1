"""FastAPI dependency providers for the email services"""
from functools import partial

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from mailrelay.core.config import settings
from mailrelay.core.security import verify_svix_signature
from mailrelay.db.email_log_store import EmailLogStore
from mailrelay.db.session import get_db
from mailrelay.services.email import AdapterRegistry, EmailService, WebhookReconciler


def get_adapter_registry(request: Request) -> AdapterRegistry:
    """Registry built once at startup and kept on app.state"""
    return request.app.state.adapter_registry


def get_email_log_store(db: Session = Depends(get_db)) -> EmailLogStore:
    return EmailLogStore(db)


def get_email_service(
    store: EmailLogStore = Depends(get_email_log_store),
    registry: AdapterRegistry = Depends(get_adapter_registry)
) -> EmailService:
    return EmailService(
        store=store,
        registry=registry,
        default_provider=settings.EMAIL_DEFAULT_PROVIDER,
        from_address=settings.EMAIL_FROM_ADDRESS,
        reply_to_address=settings.EMAIL_REPLY_TO_ADDRESS,
        base_url=settings.APP_BASE_URL
    )


def get_webhook_reconciler(store: EmailLogStore = Depends(get_email_log_store)) -> WebhookReconciler:
    return WebhookReconciler(
        store=store,
        secret=settings.RESEND_WEBHOOK_SECRET,
        require_signature=settings.is_production,
        verifier=partial(verify_svix_signature, tolerance_seconds=settings.WEBHOOK_TOLERANCE_SECONDS)
    )
