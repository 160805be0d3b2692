"""Tests for the booking lifecycle."""

import pytest
from datetime import datetime, timedelta, timezone
from src.models.booking import Booking, BookingStatus
from src.services.booking_lifecycle import (
    cancel_booking,
    complete_booking,
    compute_cancellation_fee,
    confirm_booking,
    create_booking,
    start_booking,
)
from src.utils.errors import IncompleteNegotiation, InvalidTransition, NotParticipant
from tests.utils.factories import create_listing_data, create_match_data, create_user_data

NOW = datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)


def _seed_agreed_match(db, customer, provider, listing, hours_ahead: float = 72, price: float = 200.0) -> dict:
    row = create_match_data(
        customer["id"],
        provider["id"],
        listing["id"] if listing else None,
        status="negotiating",
        final_price=price,
        final_date=(NOW + timedelta(hours=hours_ahead)).isoformat(),
    )
    db.seed("matches", row)
    return row


def _fee_listing(db, provider, **policy) -> dict:
    row = create_listing_data(
        provider["id"],
        cancellation_hours=24,
        cancellation_fee_enabled=True,
        **policy
    )
    db.seed("listings", row)
    return row


def _booking(**overrides) -> Booking:
    data = {
        "id": "01BOOKING",
        "match_id": "01MATCH",
        "customer_id": "customer-1",
        "provider_id": "provider-1",
        "final_price": 199.99,
        "final_date": (NOW + timedelta(hours=2)).isoformat(),
        "cancellation_policy": {"cutoff_hours": 24, "fee_enabled": True, "fee_percentage": 15},
    }
    data.update(overrides)
    return Booking.model_validate(data)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_booking_snapshots_terms_and_policy(fake_db, customer, provider):
    """Test creation freezes the agreed terms and the listing policy."""
    listing = _fee_listing(fake_db, provider, cancellation_fee_percentage=20, refund_policy="partial")
    match = _seed_agreed_match(fake_db, customer, provider, listing)

    booking = await create_booking(customer["id"], match["id"])

    assert booking.status == BookingStatus.PENDING
    assert booking.final_price == 200.0
    assert booking.currency == "USD"
    assert booking.cancellation_policy.fee_enabled is True
    assert booking.cancellation_policy.fee_percentage == 20
    assert booking.cancellation_policy.refund_policy == "partial"
    assert fake_db.rows("matches", id=match["id"])[0]["booking_id"] == booking.id
    assert fake_db.rows("notifications", type="booking_request")[0]["user_id"] == provider["id"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_booking_is_idempotent(fake_db, customer, provider, listing):
    """Test one booking per match."""
    match = _seed_agreed_match(fake_db, customer, provider, listing)

    first = await create_booking(customer["id"], match["id"])
    second = await create_booking(provider["id"], match["id"])

    assert first.id == second.id
    assert len(fake_db.rows("bookings")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_booking_defaults_for_direct_match(fake_db, customer, provider):
    """Test direct matches book with the default policy."""
    match = _seed_agreed_match(fake_db, customer, provider, None)

    booking = await create_booking(customer["id"], match["id"])

    assert booking.listing_id is None
    assert booking.required_terms == "both"
    assert booking.cancellation_policy.cutoff_hours == 24
    assert booking.cancellation_policy.fee_enabled is False
    assert booking.cancellation_policy.refund_policy == "full"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_booking_on_cancelled_match(fake_db, customer, provider, listing):
    """Test a cancelled match cannot be booked."""
    row = create_match_data(customer["id"], provider["id"], listing["id"], status="cancelled")
    fake_db.seed("matches", row)

    with pytest.raises(InvalidTransition):
        await create_booking(customer["id"], row["id"])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_policy_snapshot_survives_listing_edits(fake_db, customer, provider):
    """Test later listing policy changes do not reach an existing booking."""
    listing = _fee_listing(fake_db, provider, cancellation_fee_percentage=10)
    match = _seed_agreed_match(fake_db, customer, provider, listing, hours_ahead=2, price=100.0)
    booking = await create_booking(customer["id"], match["id"])

    fake_db.tables["listings"][-1].update({"cancellation_fee_percentage": 90, "cancellation_hours": 1})

    cancelled = await cancel_booking(customer["id"], booking.id, now=NOW)

    assert cancelled.cancellation_policy.fee_percentage == 10
    assert cancelled.cancellation_fee == 10.0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_requires_agreed_terms(fake_db, customer, provider, listing):
    """Test confirming with missing terms raises and changes nothing."""
    match = create_match_data(customer["id"], provider["id"], listing["id"], final_price=150.0)
    fake_db.seed("matches", match)
    booking = await create_booking(customer["id"], match["id"])

    with pytest.raises(IncompleteNegotiation) as exc:
        await confirm_booking(provider["id"], booking.id)

    assert exc.value.details["missing"] == ["final_date"]
    assert fake_db.rows("bookings", id=booking.id)[0]["status"] == "pending"
    assert fake_db.rows("matches", id=match["id"])[0]["status"] == "pending"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_full_lifecycle(fake_db, customer, provider, listing):
    """Test pending -> confirmed -> in_progress -> completed."""
    match = _seed_agreed_match(fake_db, customer, provider, listing)
    booking = await create_booking(customer["id"], match["id"])

    confirmed = await confirm_booking(provider["id"], booking.id)
    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.confirmed_at is not None
    assert fake_db.rows("matches", id=match["id"])[0]["status"] == "confirmed"

    started = await start_booking(provider["id"], booking.id)
    assert started.status == BookingStatus.IN_PROGRESS

    completed = await complete_booking(customer["id"], booking.id)
    assert completed.status == BookingStatus.COMPLETED
    assert fake_db.rows("matches", id=match["id"])[0]["status"] == "completed"

    rated = {row["user_id"] for row in fake_db.rows("notifications", type="booking_completed")}
    assert rated == {customer["id"], provider["id"]}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_complete_straight_from_confirmed(fake_db, customer, provider, listing):
    """Test a confirmed booking can complete without being started."""
    match = _seed_agreed_match(fake_db, customer, provider, listing)
    booking = await create_booking(customer["id"], match["id"])
    await confirm_booking(customer["id"], booking.id)

    completed = await complete_booking(provider["id"], booking.id)

    assert completed.status == BookingStatus.COMPLETED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transitions_only_move_forward(fake_db, customer, provider, listing):
    """Test out-of-order transitions are refused."""
    match = _seed_agreed_match(fake_db, customer, provider, listing)
    booking = await create_booking(customer["id"], match["id"])

    with pytest.raises(InvalidTransition):
        await start_booking(customer["id"], booking.id)
    with pytest.raises(InvalidTransition):
        await complete_booking(customer["id"], booking.id)

    await confirm_booking(customer["id"], booking.id)
    with pytest.raises(InvalidTransition):
        await confirm_booking(customer["id"], booking.id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_terminal_bookings_cannot_be_cancelled(fake_db, customer, provider, listing):
    """Test completed and cancelled bookings stay put."""
    match = _seed_agreed_match(fake_db, customer, provider, listing)
    booking = await create_booking(customer["id"], match["id"])
    await cancel_booking(customer["id"], booking.id, now=NOW)

    with pytest.raises(InvalidTransition):
        await cancel_booking(customer["id"], booking.id, now=NOW)
    with pytest.raises(InvalidTransition):
        await confirm_booking(customer["id"], booking.id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_outside_window_is_free(fake_db, customer, provider):
    """Test cancelling before the cutoff charges nothing."""
    listing = _fee_listing(fake_db, provider, cancellation_fee_percentage=20)
    match = _seed_agreed_match(fake_db, customer, provider, listing, hours_ahead=72)
    booking = await create_booking(customer["id"], match["id"])

    cancelled = await cancel_booking(customer["id"], booking.id, reason="sick", now=NOW)

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation_fee == 0.0
    assert cancelled.cancellation_fee_applied is False
    assert cancelled.cancelled_by == customer["id"]
    assert cancelled.cancellation_reason == "sick"
    assert fake_db.rows("matches", id=match["id"])[0]["status"] == "cancelled"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancel_inside_window_charges_fee(fake_db, customer, provider):
    """Test cancelling a confirmed booking inside the cutoff records the fee."""
    listing = _fee_listing(fake_db, provider, cancellation_fee_percentage=20)
    match = _seed_agreed_match(fake_db, customer, provider, listing, hours_ahead=2, price=200.0)
    booking = await create_booking(customer["id"], match["id"])
    await confirm_booking(provider["id"], booking.id)

    cancelled = await cancel_booking(customer["id"], booking.id, now=NOW)

    assert cancelled.cancellation_fee == 40.0
    assert cancelled.cancellation_fee_applied is True
    assert fake_db.rows("notifications", type="booking_cancelled")[0]["user_id"] == provider["id"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_outsider_cannot_transition(fake_db, customer, provider, listing):
    """Test only booking parties can move it."""
    match = _seed_agreed_match(fake_db, customer, provider, listing)
    booking = await create_booking(customer["id"], match["id"])
    outsider = create_user_data()

    with pytest.raises(NotParticipant):
        await confirm_booking(outsider["id"], booking.id)
    with pytest.raises(NotParticipant):
        await cancel_booking(outsider["id"], booking.id)


@pytest.mark.unit
def test_fee_percentage_rounds_to_cents():
    """Test percentage fees are rounded half up to cents."""
    assert compute_cancellation_fee(_booking(), NOW) == 30.0
    assert compute_cancellation_fee(_booking(final_price=33.33), NOW) == 5.0


@pytest.mark.unit
def test_fee_percentage_beats_fixed_amount():
    """Test a percentage takes precedence over a fixed amount."""
    booking = _booking(
        final_price=100.0,
        cancellation_policy={"cutoff_hours": 24, "fee_enabled": True, "fee_percentage": 10, "fee_amount": 35},
    )
    assert compute_cancellation_fee(booking, NOW) == 10.0


@pytest.mark.unit
def test_fee_fixed_amount():
    """Test a fixed amount applies when no percentage is set."""
    booking = _booking(cancellation_policy={"cutoff_hours": 24, "fee_enabled": True, "fee_amount": 25})
    assert compute_cancellation_fee(booking, NOW) == 25.0


@pytest.mark.unit
@pytest.mark.parametrize("policy,hours_ahead", [
    ({"cutoff_hours": 24, "fee_enabled": False, "fee_percentage": 50}, 2),
    ({"cutoff_hours": 24, "fee_enabled": True, "fee_percentage": 50}, 24),
    ({"cutoff_hours": 24, "fee_enabled": True, "fee_percentage": 50}, 48),
    ({"cutoff_hours": 24, "fee_enabled": True}, 2),
])
def test_no_fee_cases(policy, hours_ahead):
    """Test no fee when disabled, outside the window or without an amount."""
    booking = _booking(
        cancellation_policy=policy,
        final_date=(NOW + timedelta(hours=hours_ahead)).isoformat(),
    )
    assert compute_cancellation_fee(booking, NOW) == 0.0


@pytest.mark.unit
def test_fee_without_date_or_with_naive_times():
    """Test bookings without a date are free and naive times are read as UTC."""
    assert compute_cancellation_fee(_booking(final_date=None), NOW) == 0.0

    naive_now = datetime(2024, 12, 9, 12, 0)
    booking = _booking(final_date="2024-12-09T14:00:00")
    assert compute_cancellation_fee(booking, naive_now) == 30.0
