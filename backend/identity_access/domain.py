"""
Identity and learning domain constants.

Why:
- Centralize the status vocabularies the backend uses so the CLI, page
  loaders and tests agree on the same terms.
- The backend owns every state transition; the client only reads these values.
"""

from __future__ import annotations

# Immutable to prevent accidental mutation.
SUBSCRIPTION_STATUSES = frozenset({"free", "active", "cancelled", "past_due"})
SUBMISSION_STATUSES = frozenset({"pending", "reviewed", "approved", "needs_revision"})

# Local storage keys for the credential pair.
ACCESS_KEY = "lub_access"
REFRESH_KEY = "lub_refresh"

__all__ = ["SUBSCRIPTION_STATUSES", "SUBMISSION_STATUSES", "ACCESS_KEY", "REFRESH_KEY"]
