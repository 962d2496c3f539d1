"""Email API routes"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from mailrelay.api.deps import get_email_service, get_webhook_reconciler
from mailrelay.core.security import require_auth
from mailrelay.schemas.email import BulkSendEmailRequest, SendEmailRequest
from mailrelay.services.email import EmailService, WebhookReconciler, build_email_log_response

router = APIRouter(prefix="/email", tags=["email"])

MAX_PAGE_SIZE = 100


@router.post("/send")
async def send_email(
    body: SendEmailRequest,
    user_id: str = Depends(require_auth),
    service: EmailService = Depends(get_email_service)
):
    """Send an email as the authenticated user"""
    outcome = await service.send(body, user_id=user_id)
    return outcome.to_dict()


@router.post("/send-bulk")
async def send_bulk_emails(
    body: BulkSendEmailRequest,
    user_id: str = Depends(require_auth),
    service: EmailService = Depends(get_email_service)
):
    """Send many emails; per-email failures are reported, not raised"""
    outcome = await service.send_bulk(body.emails, provider=body.provider, user_id=user_id)
    return outcome.to_dict()


@router.get("/logs")
def get_email_logs(
    userId: Optional[str] = None,
    status: Optional[str] = None,
    provider: Optional[str] = None,
    fromDate: Optional[datetime] = None,
    toDate: Optional[datetime] = None,
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(require_auth),
    service: EmailService = Depends(get_email_service)
):
    """List email log entries, newest first (defaults to the caller's own)"""
    query = {
        "userId": userId or user_id,
        "status": status,
        "provider": provider,
        "fromDate": fromDate.isoformat() if fromDate else None,
        "toDate": toDate.isoformat() if toDate else None,
        "limit": limit,
        "offset": offset,
    }
    entries = service.list_logs(
        user_id=query["userId"],
        status=status,
        provider=provider,
        from_date=fromDate,
        to_date=toDate,
        limit=limit,
        offset=offset
    )
    return {
        "success": True,
        "emailLogs": [build_email_log_response(entry) for entry in entries],
        "count": len(entries),
        "query": query,
    }


@router.get("/stats")
def get_email_stats(
    userId: Optional[str] = None,
    provider: Optional[str] = None,
    user_id: str = Depends(require_auth),
    service: EmailService = Depends(get_email_service)
):
    """Delivery and engagement statistics for a user/provider scope"""
    scope_user_id = userId or user_id
    stats = service.get_stats(user_id=scope_user_id, provider=provider)
    return {"success": True, "stats": stats.to_dict(), "userId": scope_user_id}


@router.post("/send-system")
async def send_system_email(
    body: SendEmailRequest,
    service: EmailService = Depends(get_email_service)
):
    """Send an email without a session (verification, welcome, password reset)"""
    outcome = await service.send_system(body)
    return outcome.to_dict()


@router.post("/webhook")
async def email_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler)
):
    """Handle Resend delivery webhooks

    Note: the body is read as raw bytes; the signature covers the exact bytes sent.
    """
    payload = await request.body()
    return reconciler.handle(payload, request.headers)
