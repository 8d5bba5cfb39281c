"""
Pytest fixtures for ledger tests.

Usage:
    def test_allocate(payment, travel_record, accounts_user):
        allocation_service.allocate(payment.pk, [{"travel_record_id": travel_record.pk, "amount": "400"}], accounts_user)
"""

import datetime
from decimal import Decimal

import pytest

from tvl_core.enums import Department, PaymentMode
from tvl_payments.services import payment_service
from tvl_payments.tests.factories import BookingFactory, CustomerFactory, TravelRecordFactory, UserFactory

PAYMENT_DATE = datetime.date(2024, 6, 15)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def accounts_user(db):
    """Member of the accounts team (may move money)."""
    return UserFactory(department=Department.ACCOUNTS)


@pytest.fixture
def sales_user(db):
    """Sales staff: read-only on the ledger API."""
    return UserFactory(department=Department.SALES)


# =============================================================================
# Reference Entity Fixtures
# =============================================================================


@pytest.fixture
def customer(db):
    return CustomerFactory()


@pytest.fixture
def booking(db, customer):
    """Booking worth 5000 with no funding account yet."""
    return BookingFactory(customer=customer, total_amount=Decimal("5000.00"))


@pytest.fixture
def travel_record(db, booking):
    """PNR of 1000, created first (oldest in FIFO order)."""
    return TravelRecordFactory(booking=booking, total_amount=Decimal("1000.00"), travel_date=datetime.date(2024, 7, 1))


@pytest.fixture
def second_travel_record(db, booking, travel_record):
    """PNR of 1500 on the same booking, created after `travel_record`."""
    return TravelRecordFactory(booking=booking, total_amount=Decimal("1500.00"), travel_date=datetime.date(2024, 8, 1))


# =============================================================================
# Payment Fixtures (always through the service)
# =============================================================================


@pytest.fixture
def receive(db, booking, accounts_user):
    """Factory fixture: records a payment against `booking` with sensible defaults."""

    def _receive(amount="1000.00", **overrides):
        params = {
            "amount": amount,
            "mode": PaymentMode.BANK_TRANSFER,
            "actor": accounts_user,
            "booking_id": booking.pk,
            "payment_date": PAYMENT_DATE,
            "reference_number": "UTR123456",
        }
        params.update(overrides)
        return payment_service.create_payment(**params)

    return _receive


@pytest.fixture
def payment(receive):
    """A RECEIVED payment of 1000 dated 2024-06-15 (FY 2024-25)."""
    return receive("1000.00")
