"""Pydantic models returned by the gamification services."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


# --- Coins ---


class BalanceSnapshot(BaseModel):
    total_earned: int = 0
    total_spent: int = 0
    current_balance: int = 0


class CoinTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    direction: str
    amount: int
    reason: str
    source_kind: str
    source_ref: str | None = None
    created_at: datetime


class UserCoinsResponse(BaseModel):
    user_id: int
    balance: BalanceSnapshot
    recent_transactions: list[CoinTransactionResponse]


class ReconciliationReport(BaseModel):
    user_id: int
    stored: BalanceSnapshot
    computed: BalanceSnapshot
    consistent: bool
    issues: list[str] = []


# --- Activities ---


class ActivityResult(BaseModel):
    coins_awarded: int = 0
    new_badges: list[int] = []


# --- Badges ---


class UserBadgeStatus(BaseModel):
    badge_id: int
    slug: str
    name: str
    description: str | None = None
    badge_type: str
    criteria_kind: str
    criteria_threshold: float
    coin_reward: int
    icon_url: str | None = None
    progress_value: float = 0.0
    completed: bool = False
    earned_at: datetime | None = None


class UserBadgesResponse(BaseModel):
    badges: list[UserBadgeStatus]
    total_available: int
    total_earned: int


# --- Leaderboard ---


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    first_name: str
    last_name: str
    metric: float
    attempts: int | None = None


# --- Statistics ---


class GamificationStats(BaseModel):
    active_users: int
    coins_in_circulation: int
    badges_earned: int
    weekly_active_users: int
