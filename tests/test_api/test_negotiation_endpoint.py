"""Tests for the negotiation endpoint."""

import pytest
from api.negotiation.respond import handler
from tests.utils.factories import create_match_data
from tests.utils.helpers import call_handler

PATH = "/api/negotiation/respond"


@pytest.fixture
def tokens(fake_db, customer, provider):
    fake_db.auth.tokens.update({"customer-token": customer["id"], "provider-token": provider["id"]})
    return {"customer": "customer-token", "provider": "provider-token"}


@pytest.fixture
def match(fake_db, customer, provider, listing):
    row = create_match_data(customer["id"], provider["id"], listing["id"])
    fake_db.seed("matches", row)
    return row


@pytest.mark.unit
def test_propose_and_accept_price(fake_db, tokens, match):
    """Test a proposal round trip over HTTP."""
    status, proposed = call_handler(handler, PATH, {
        "action": "propose_price", "match_id": match["id"], "price": 120, "currency": "USD",
    }, token=tokens["provider"])
    assert status == 200
    assert proposed["message"]["message_type"] == "price_proposal"

    status, accepted = call_handler(handler, PATH, {
        "action": "accept",
        "match_id": match["id"],
        "message_id": proposed["message"]["id"],
        "proposal_type": "price",
    }, token=tokens["customer"])
    assert status == 200
    assert accepted["match"]["final_price"] == 120.0
    assert accepted["match"]["status"] == "negotiating"


@pytest.mark.unit
def test_propose_date_and_decline(fake_db, tokens, match):
    """Test declining a date proposal returns the decline message."""
    _, proposed = call_handler(handler, PATH, {
        "action": "propose_date", "match_id": match["id"], "datetime": "2024-12-20T15:00:00+00:00",
    }, token=tokens["customer"])

    status, declined = call_handler(handler, PATH, {
        "action": "decline",
        "match_id": match["id"],
        "message_id": proposed["message"]["id"],
        "proposal_type": "date",
    }, token=tokens["provider"])

    assert status == 200
    assert declined["message"]["metadata"] == {"in_reply_to": proposed["message"]["id"], "action": "declined"}


@pytest.mark.unit
def test_negotiation_error_mapping(fake_db, tokens, match):
    """Test unknown proposals, own proposals and bad actions."""
    status, body = call_handler(handler, PATH, {
        "action": "accept", "match_id": match["id"], "message_id": "01NOPE", "proposal_type": "price",
    }, token=tokens["customer"])
    assert status == 404
    assert body["code"] == "ProposalNotFound"

    _, proposed = call_handler(handler, PATH, {
        "action": "propose_price", "match_id": match["id"], "price": 90,
    }, token=tokens["customer"])
    status, body = call_handler(handler, PATH, {
        "action": "accept", "match_id": match["id"], "message_id": proposed["message"]["id"], "proposal_type": "price",
    }, token=tokens["customer"])
    assert status == 409
    assert body["code"] == "InvalidTransition"

    status, _ = call_handler(handler, PATH, {"action": "haggle", "match_id": match["id"]}, token=tokens["customer"])
    assert status == 400

    status, _ = call_handler(handler, PATH, {
        "action": "propose_price", "match_id": match["id"], "price": -5,
    }, token=tokens["customer"])
    assert status == 400


@pytest.mark.unit
def test_cancel_and_outsider(fake_db, tokens, match):
    """Test cancelling, then acting on a cancelled match, and outsider access."""
    status, body = call_handler(handler, PATH, {"action": "cancel", "match_id": match["id"]}, token=tokens["customer"])
    assert status == 200
    assert body["match"]["status"] == "cancelled"

    status, _ = call_handler(handler, PATH, {
        "action": "propose_price", "match_id": match["id"], "price": 100,
    }, token=tokens["provider"])
    assert status == 409

    fake_db.auth.tokens["outsider-token"] = "outsider"
    status, body = call_handler(handler, PATH, {"action": "cancel", "match_id": match["id"]}, token="outsider-token")
    assert status == 403
    assert body["code"] == "NotParticipant"
