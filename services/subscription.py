"""Subscription status derived from a company's stored dates."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from models.company import Company
from utils.dates import parse_iso, to_iso, utcnow

DEFAULT_PERIOD_DAYS = 30
DEFAULT_WARNING_DAYS = 5

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class SubscriptionStatus:
    is_expired: bool = False
    is_expiring_soon: bool = False
    days_remaining: int = 0

    @property
    def should_block_users(self) -> bool:
        return self.is_expired

    @property
    def should_show_notification(self) -> bool:
        return self.is_expiring_soon and not self.is_expired

    def to_dict(self) -> dict:
        return {
            "is_expired": self.is_expired,
            "is_expiring_soon": self.is_expiring_soon,
            "days_remaining": self.days_remaining,
            "should_block_users": self.should_block_users,
            "should_show_notification": self.should_show_notification,
        }


INACTIVE_STATUS = SubscriptionStatus()


def compute_subscription_status(
    company: Company,
    now: Optional[datetime] = None,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> SubscriptionStatus:
    """Return the status of a company's paid tier at ``now``.

    Anything other than a ``pro`` company with a parseable expiry date is
    reported as inactive.
    """

    if company.subscription != "pro":
        return INACTIVE_STATUS
    expiry = parse_iso(company.expiry_date)
    if expiry is None:
        return INACTIVE_STATUS

    now = now or utcnow()
    days_remaining = math.ceil((expiry - now).total_seconds() / SECONDS_PER_DAY)
    is_expired = days_remaining <= 0
    return SubscriptionStatus(
        is_expired=is_expired,
        is_expiring_soon=not is_expired and days_remaining <= warning_days,
        days_remaining=max(0, days_remaining),
    )


def downgrade_fields(now: datetime) -> dict:
    stamp = to_iso(now)
    return {
        "subscription": "free",
        "subscriptionDate": stamp,
        "expiryDate": stamp,
        "updatedAt": stamp,
    }


def upgrade_fields(now: datetime, period_days: int = DEFAULT_PERIOD_DAYS) -> dict:
    stamp = to_iso(now)
    return {
        "subscription": "pro",
        "subscriptionDate": stamp,
        "expiryDate": to_iso(now + timedelta(days=period_days)),
        "updatedAt": stamp,
    }


def new_company_fields(now: datetime) -> dict:
    """Free-tier defaults for a newly provisioned company."""

    stamp = to_iso(now)
    return {
        "subscription": "free",
        "subscriptionDate": stamp,
        "expiryDate": stamp,
        "createdAt": stamp,
        "updatedAt": stamp,
    }
