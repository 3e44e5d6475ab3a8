"""Gamification error taxonomy.

Every error carries ``detail`` and ``status_code`` so an HTTP layer can
translate it directly (4xx for validation and balance, 5xx for storage).
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for ledger and achievement errors."""

    status_code: int = 400

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class InvalidAmount(GamificationError, ValueError):
    """Raised when a coin amount is not a positive integer."""


class InsufficientBalance(GamificationError):
    """Raised when a spend would drive the balance negative."""

    def __init__(self, user_id: int, balance: int, requested: int) -> None:
        super().__init__(
            f"Insufficient coin balance for user {user_id}: {balance} available, {requested} requested"
        )
        self.user_id = user_id
        self.balance = balance
        self.requested = requested


class DuplicateSource(GamificationError):
    """Raised when a transaction with the same idempotency key already exists."""

    status_code = 409

    def __init__(self, user_id: int, source_kind: str, source_ref: str) -> None:
        super().__init__(f"Transaction already recorded for {source_kind}:{source_ref} (user {user_id})")
        self.user_id = user_id
        self.source_kind = source_kind
        self.source_ref = source_ref


class UnknownActivity(GamificationError, ValueError):
    """Raised for activity kinds missing from the reward table."""

    def __init__(self, activity_kind: str) -> None:
        super().__init__(f"Unknown activity type: {activity_kind}")
        self.activity_kind = activity_kind


class BadgeNotFound(GamificationError):
    status_code = 404

    def __init__(self, badge_id: int) -> None:
        super().__init__(f"Badge {badge_id} not found")
        self.badge_id = badge_id


class StorageConflict(GamificationError):
    """Transient write conflict (unique violation, lock or serialization failure). Retryable."""

    status_code = 503


class StorageUnavailable(GamificationError):
    """Storage failure that is fatal for the current call."""

    status_code = 503
