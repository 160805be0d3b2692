"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("SUPER_LIKE_DAILY_LIMIT", "3")
os.environ.setdefault("DEFAULT_CANCELLATION_HOURS", "24")
os.environ.setdefault("THREAD_REFRESH_WINDOW_SECONDS", "0.5")

from tests.utils.fake_supabase import FakeSupabase
from tests.utils.factories import create_listing_data, create_user_data


@pytest.fixture
def fake_db(monkeypatch):
    """In-memory Supabase installed as the client singleton."""
    db = FakeSupabase()
    monkeypatch.setattr("src.services.supabase_client._client", db)
    return db


@pytest.fixture
def customer(fake_db):
    """A customer profile stored in the fake users table."""
    user = create_user_data()
    fake_db.seed("users", user)
    return user


@pytest.fixture
def provider(fake_db):
    """A provider profile stored in the fake users table."""
    user = create_user_data()
    fake_db.seed("users", user)
    return user


@pytest.fixture
def listing(fake_db, provider):
    """An active listing owned by the provider."""
    row = create_listing_data(provider["id"])
    fake_db.seed("listings", row)
    return row


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
