"""Logging configuration for the application"""
import logging

from mailrelay.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
REDACTED = "[REDACTED]"


class SecretRedactionFilter(logging.Filter):
    """Masks provider API keys and the webhook secret in rendered log messages"""

    def __init__(self, secrets):
        super().__init__()
        self.secrets = [secret for secret in secrets if secret]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging():
    """Configure root logging once at import of the app"""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S', force=True)

    redaction = SecretRedactionFilter([
        settings.RESEND_API_KEY,
        settings.SENDGRID_API_KEY,
        settings.BREVO_API_KEY,
        settings.RESEND_WEBHOOK_SECRET,
    ])
    for handler in logging.getLogger().handlers:
        handler.addFilter(redaction)

    # HTTP client chatter from the provider adapters
    for noisy in ("urllib3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# Named loggers for the send path, webhook path and signature checks
email_logger = logging.getLogger("email")
webhook_logger = logging.getLogger("webhook")
security_logger = logging.getLogger("security")
