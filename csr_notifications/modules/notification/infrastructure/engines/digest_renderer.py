"""Jinja2-based renderer for digest HTML."""

from datetime import datetime
from typing import Any

from jinja2 import BaseLoader, Template
from jinja2.sandbox import SandboxedEnvironment

from csr_notifications.modules.notification.domain.interfaces.services import (
    IDigestRenderer,
)

DIGEST_HTML_TEMPLATE = """\
<h2>Your Notification Digest</h2>
<p>You have {{ digest.total_notifications }} new notification{{ "" if digest.total_notifications == 1 else "s" }}.</p>
{% if digest.notifications_by_type %}
<div class="digest-groups">
{% for group in digest.notifications_by_type %}
<div class="notification-group">
<h3>{{ group.type | humanize }} ({{ group.count }})</h3>
{% for item in group.notifications[:sample_size] %}
<div class="notification-item">
<strong>{{ item.title }}</strong><br>
<span class="message">{{ item.message }}</span><br>
<small class="created-at">{{ item.created_at | datetime }}</small>
</div>
{% endfor %}
{% if group.count > sample_size %}
<p><small>... and {{ group.count - sample_size }} more</small></p>
{% endif %}
</div>
{% endfor %}
</div>
{% endif %}
"""


class JinjaDigestRenderer(IDigestRenderer):
    """Renders digest payloads with a sandboxed, autoescaping Jinja2 environment."""

    def __init__(self, template_source: str = DIGEST_HTML_TEMPLATE, enable_autoescape: bool = True):
        """Initialize renderer.

        Args:
            template_source: Jinja2 template for the digest body
            enable_autoescape: Whether to enable HTML autoescape
        """
        self.env = SandboxedEnvironment(
            autoescape=enable_autoescape,
            loader=BaseLoader(),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._register_filters()
        self.template: Template = self.env.from_string(template_source)

    def _register_filters(self) -> None:
        """Register custom Jinja filters."""
        self.env.filters["datetime"] = self._filter_datetime
        self.env.filters["humanize"] = self._filter_humanize

    @staticmethod
    def _filter_datetime(value: Any, format: str = "%Y-%m-%d %H:%M UTC") -> str:
        """Format an ISO timestamp or datetime."""
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except (ValueError, TypeError):
                return value

        if isinstance(value, datetime):
            return value.strftime(format)
        return str(value)

    @staticmethod
    def _filter_humanize(value: str) -> str:
        """``donation_received`` -> ``Donation received``."""
        return value.replace("_", " ").replace(".", " ").capitalize()

    def render_html(self, digest: dict[str, Any], sample_size: int = 3) -> str:
        return self.template.render(digest=digest, sample_size=sample_size)


__all__ = ["DIGEST_HTML_TEMPLATE", "JinjaDigestRenderer"]
