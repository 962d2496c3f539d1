"""Engagement statistics derived from email log entries"""
from dataclasses import dataclass
from typing import Any, Iterable

# "sent" means the entry left the pending state successfully
SENT_STATUSES = ("sent", "delivered")


@dataclass
class EmailStats:
    total: int = 0
    sent: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0
    bounced: int = 0
    complained: int = 0
    failed: int = 0
    open_rate: float = 0
    click_rate: float = 0
    bounce_rate: float = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "sent": self.sent,
            "delivered": self.delivered,
            "opened": self.opened,
            "clicked": self.clicked,
            "bounced": self.bounced,
            "complained": self.complained,
            "failed": self.failed,
            "openRate": self.open_rate,
            "clickRate": self.click_rate,
            "bounceRate": self.bounce_rate,
        }


def _status_of(entry: Any) -> str:
    if isinstance(entry, dict):
        return entry.get("status")
    return getattr(entry, "status", None)


def _rate(part: int, whole: int) -> float:
    return part / whole * 100 if whole > 0 else 0


def compute_stats(entries: Iterable[Any]) -> EmailStats:
    """Count entries by current status and derive rates.

    Counts use the current status only: an entry that was delivered and then
    opened counts as opened, not delivered. Rates with a zero denominator are 0.
    """
    statuses = [_status_of(entry) for entry in entries]

    def count(status: str) -> int:
        return sum(1 for s in statuses if s == status)

    stats = EmailStats(
        total=len(statuses),
        sent=sum(1 for s in statuses if s in SENT_STATUSES),
        delivered=count("delivered"),
        opened=count("opened"),
        clicked=count("clicked"),
        bounced=count("bounced"),
        complained=count("complained"),
        failed=count("failed"),
    )
    stats.open_rate = _rate(stats.opened, stats.delivered)
    stats.click_rate = _rate(stats.clicked, stats.delivered)
    stats.bounce_rate = _rate(stats.bounced, stats.sent)
    return stats
