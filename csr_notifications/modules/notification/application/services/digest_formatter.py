"""Digest content formatting.

Deterministic title and plain-text body for a digest payload; HTML is
delegated to an ``IDigestRenderer``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from csr_notifications.modules.notification.domain.interfaces.services import (
    IDigestRenderer,
)


@dataclass(frozen=True)
class DigestContent:
    title: str
    message: str
    html: str


def pluralize(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def period_phrase(start: datetime, end: datetime, now: datetime) -> str:
    """
    Human phrase for a digest window, relative to ``now``.

    ``today`` or ``yesterday`` when the window starts on that calendar day,
    otherwise derived from the whole days the window spans.
    """
    if start.date() == now.date():
        return "today"

    if start.date() == (now - timedelta(days=1)).date():
        return "yesterday"

    days = (end - start).days
    if days <= 1:
        return "in the last 24 hours"
    if days <= 7:
        return f"in the last {days} days"

    return f"from {start:%b} {start.day} to {end:%b} {end.day}"


class DigestFormatter:
    """Formats digest payloads into notification content."""

    def __init__(self, renderer: IDigestRenderer, sample_size: int = 3):
        self.renderer = renderer
        self.sample_size = sample_size

    def format(self, digest: dict[str, Any], now: datetime) -> DigestContent:
        count = digest["total_notifications"]
        phrase = self._phrase(digest, now)

        title = f"Your Notification Digest - {pluralize(count, 'new notification')} {phrase}"

        return DigestContent(
            title=title,
            message=self.build_message(digest, phrase),
            html=self.renderer.render_html(digest, self.sample_size),
        )

    def build_message(self, digest: dict[str, Any], phrase: str) -> str:
        count = digest["total_notifications"]
        lines = [f"You have {pluralize(count, 'new notification')} {phrase}.", ""]

        for group in digest.get("notifications_by_type", []):
            lines.append(f"• {pluralize(group['count'], group['type'] + ' notification')}")
            if group["notifications"]:
                lines.append(f"  Latest: {group['notifications'][0]['title']}")

        lines.append("")
        lines.append("Log in to view all your notifications.")
        return "\n".join(lines)

    @staticmethod
    def _phrase(digest: dict[str, Any], now: datetime) -> str:
        start = datetime.fromisoformat(digest["period"]["start"])
        end = datetime.fromisoformat(digest["period"]["end"])
        return period_phrase(start, end, now)


__all__ = ["DigestContent", "DigestFormatter", "period_phrase", "pluralize"]
