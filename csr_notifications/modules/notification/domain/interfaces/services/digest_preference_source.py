"""
Digest Preference Source Interface

Port onto user notification preferences used to select digest recipients.
"""

from abc import ABC, abstractmethod


class IDigestPreferenceSource(ABC):
    """Port for looking up users by their preferred digest frequency."""

    @abstractmethod
    def find_users_by_digest_frequency(self, frequency: int) -> list[str]:
        """
        Find users whose digest frequency preference equals ``frequency``.

        Args:
            frequency: Days between digests (1 daily, 7 weekly, 30 monthly)

        Returns:
            Recipient IDs
        """
        ...

    @abstractmethod
    def get_digest_frequency(self, user_id: str) -> int | None:
        """
        Look up one user's digest frequency preference.

        Returns:
            Days between digests (0 disables digests), or None if the user
            has no stored preference
        """
        ...
