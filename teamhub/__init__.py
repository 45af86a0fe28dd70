"""Teamhub - team membership and authorization backend.

Core concepts:
- Users carry a free-text global role; "admin" (any case) is a global admin.
- Teams are managed by global admins or by their own managers.
- Membership is one row per (team, user), soft-deleted on removal and
  reactivated in place when the user is added back.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
