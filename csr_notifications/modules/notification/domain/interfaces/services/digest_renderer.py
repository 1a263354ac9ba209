"""
Digest Renderer Interface

Port for turning a digest payload into rich (HTML) content.
"""

from abc import ABC, abstractmethod
from typing import Any


class IDigestRenderer(ABC):
    """Port for digest HTML rendering."""

    @abstractmethod
    def render_html(self, digest: dict[str, Any], sample_size: int = 3) -> str:
        """
        Render a digest payload as HTML.

        Args:
            digest: Payload produced by the digest aggregator
            sample_size: Notifications shown per type group

        Returns:
            HTML document fragment
        """
        ...
