"""Tests for the swipe endpoint."""

import pytest
from api.swipes.record import handler
from tests.utils.factories import create_listing_data
from tests.utils.helpers import call_handler

PATH = "/api/swipes/record"


@pytest.fixture
def tokens(fake_db, customer, provider):
    fake_db.auth.tokens.update({"customer-token": customer["id"], "provider-token": provider["id"]})
    return {"customer": "customer-token", "provider": "provider-token"}


@pytest.mark.unit
def test_record_swipe_and_match(fake_db, tokens, customer, listing):
    """Test swipes are recorded and the second like returns the match."""
    status, body = call_handler(handler, PATH, {
        "target_id": listing["id"],
        "swipe_type": "customer_on_listing",
        "direction": "right",
    }, token=tokens["customer"])

    assert status == 200
    assert body["ok"] is True
    assert body["created"] is True
    assert body["match"] is None
    assert body["super_like_quota"]["remaining"] == 3

    status, body = call_handler(handler, PATH, {
        "target_id": customer["id"],
        "swipe_type": "user_on_user",
        "direction": "right",
    }, token=tokens["provider"])

    assert status == 200
    assert body["match"]["listing_id"] == listing["id"]
    assert body["match"]["status"] == "pending"


@pytest.mark.unit
def test_record_swipe_requires_token(fake_db, listing):
    """Test missing or unknown tokens get 401."""
    payload = {"target_id": listing["id"], "swipe_type": "customer_on_listing", "direction": "right"}

    status, body = call_handler(handler, PATH, payload)
    assert status == 401
    assert body["code"] == "NotAuthenticated"

    status, _ = call_handler(handler, PATH, payload, token="forged")
    assert status == 401
    assert fake_db.rows("swipes") == []


@pytest.mark.unit
def test_record_swipe_bad_requests(fake_db, tokens, listing):
    """Test malformed bodies get 400."""
    status, body = call_handler(handler, PATH, {"swipe_type": "customer_on_listing"}, token=tokens["customer"])
    assert status == 400
    assert "target_id" in body["error"]

    status, _ = call_handler(handler, PATH, raw=b"{not json", token=tokens["customer"])
    assert status == 400

    status, _ = call_handler(handler, PATH, {
        "target_id": listing["id"], "swipe_type": "customer_on_listing", "direction": "up",
    }, token=tokens["customer"])
    assert status == 400


@pytest.mark.unit
def test_record_swipe_unknown_target(fake_db, tokens):
    """Test unknown targets get 404."""
    status, body = call_handler(handler, PATH, {
        "target_id": "01NOPE", "swipe_type": "customer_on_listing", "direction": "right",
    }, token=tokens["customer"])

    assert status == 404
    assert body["code"] == "InvalidTarget"


@pytest.mark.unit
def test_super_like_quota_exceeded(fake_db, tokens, provider):
    """Test the fourth super like of the day gets 429."""
    listings = [create_listing_data(provider["id"]) for _ in range(4)]
    fake_db.seed("listings", *listings)

    statuses = []
    for row in listings:
        status, body = call_handler(handler, PATH, {
            "target_id": row["id"], "swipe_type": "customer_on_listing", "direction": "super",
        }, token=tokens["customer"])
        statuses.append(status)

    assert statuses == [200, 200, 200, 429]
    assert body["details"]["limit"] == 3


@pytest.mark.unit
def test_store_outage(fake_db, tokens, listing):
    """Test store failures get 503."""
    fake_db.fail("listings", "select")

    status, body = call_handler(handler, PATH, {
        "target_id": listing["id"], "swipe_type": "customer_on_listing", "direction": "right",
    }, token=tokens["customer"])

    assert status == 503
    assert body["code"] == "StoreUnavailable"
