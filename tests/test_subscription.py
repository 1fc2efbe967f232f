"""Tests for subscription status derivation."""

from __future__ import annotations

from datetime import timedelta

import pytest

from models.company import Company
from services.subscription import (
    compute_subscription_status,
    downgrade_fields,
    upgrade_fields,
)
from utils.dates import parse_iso, to_iso


def _pro(expiry) -> Company:
    return Company(subscription="pro", expiry_date=expiry)


@pytest.mark.parametrize("expiry", ["1999-01-01T00:00:00.000Z", None, "garbage"])
def test_free_company_is_never_blocked(now, expiry):
    status = compute_subscription_status(Company(subscription="free", expiry_date=expiry), now)

    assert status.should_block_users is False
    assert status.should_show_notification is False
    assert status.days_remaining == 0


def test_pro_expiring_exactly_now_blocks(now):
    status = compute_subscription_status(_pro(to_iso(now)), now)

    assert status.days_remaining == 0
    assert status.is_expired is True
    assert status.should_block_users is True
    assert status.should_show_notification is False


def test_pro_expiring_in_three_days_warns(now):
    status = compute_subscription_status(_pro(to_iso(now + timedelta(days=3))), now)

    assert status.is_expiring_soon is True
    assert status.should_show_notification is True
    assert status.should_block_users is False
    assert status.days_remaining == 3


def test_days_remaining_rounds_partial_days_up(now):
    status = compute_subscription_status(_pro(to_iso(now + timedelta(days=5, hours=1))), now)

    assert status.days_remaining == 6
    assert status.is_expiring_soon is False


def test_past_expiry_is_clamped_to_zero(now):
    status = compute_subscription_status(_pro(to_iso(now - timedelta(days=40))), now)

    assert status.days_remaining == 0
    assert status.should_block_users is True


def test_pro_without_expiry_is_inactive(now):
    status = compute_subscription_status(_pro(None), now)

    assert status.is_expired is False
    assert status.should_block_users is False


@pytest.mark.parametrize("offset_days", [-3, 0, 1, 5, 6, 30])
def test_block_and_notification_are_exclusive(now, offset_days):
    status = compute_subscription_status(_pro(to_iso(now + timedelta(days=offset_days))), now)

    assert not (status.should_block_users and status.should_show_notification)


def test_upgrade_sets_thirty_day_period(now):
    fields = upgrade_fields(now)

    assert fields["subscription"] == "pro"
    assert parse_iso(fields["subscriptionDate"]) == now
    assert parse_iso(fields["expiryDate"]) == now + timedelta(days=30)


def test_downgrade_resets_dates_to_now(now):
    fields = downgrade_fields(now)

    assert fields["subscription"] == "free"
    assert fields["subscriptionDate"] == fields["expiryDate"] == to_iso(now)
    assert fields["expiryDate"].endswith("Z")
