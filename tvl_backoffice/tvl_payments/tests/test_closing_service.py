"""
Tests for year-end closing.
"""

import datetime
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError

from tvl_core.enums import TravelPaymentStatus, YearEndClosingStatus
from tvl_payments.exceptions import RecordClosedError
from tvl_payments.models import TravelRecord, YearEndClosing
from tvl_payments.services import allocation_service, closing_service
from tvl_payments.tests.factories import TravelRecordFactory


class TestPerformYearEndClosing:
    """Tests for perform_year_end_closing()."""

    def test_closes_pending_pnrs_and_snapshots_totals(
            self, payment, accounts_user, travel_record, second_travel_record
    ):
        allocation_service.allocate(
            payment.pk, [{"travel_record_id": second_travel_record.pk, "amount": "600"}], accounts_user
        )

        closing = closing_service.perform_year_end_closing(
            "2024-25", accounts_user, closing_date=datetime.date(2025, 3, 31), remarks="FY close"
        )

        travel_record.refresh_from_db()
        second_travel_record.refresh_from_db()
        assert travel_record.is_closed and second_travel_record.is_closed
        assert second_travel_record.pending_amount == Decimal("900.00")
        assert closing.status == YearEndClosingStatus.FINALIZED
        assert closing.total_pending_pnrs == 2
        assert closing.total_pending_receivables == Decimal("1900.00")
        assert closing.total_advance_balance == Decimal("400.00")
        assert closing.total_customers == 1
        assert closing.closing_date == datetime.date(2025, 3, 31)
        assert closing.closed_by == accounts_user

    def test_paid_and_later_pnrs_stay_open(self, payment, accounts_user, travel_record, booking):
        allocation_service.allocate(
            payment.pk, [{"travel_record_id": travel_record.pk, "amount": "1000"}], accounts_user
        )
        next_year = TravelRecordFactory(booking=booking, travel_date=datetime.date(2025, 5, 1))

        closing = closing_service.perform_year_end_closing("2024-25", accounts_user)

        travel_record.refresh_from_db()
        next_year.refresh_from_db()
        assert travel_record.payment_status == TravelPaymentStatus.PAID
        assert not travel_record.is_closed
        assert not next_year.is_closed
        assert closing.total_pending_pnrs == 0

    def test_closed_pnr_rejects_allocation(self, payment, accounts_user, travel_record):
        closing_service.perform_year_end_closing("2024-25", accounts_user)

        with pytest.raises(RecordClosedError):
            allocation_service.allocate(
                payment.pk, [{"travel_record_id": travel_record.pk, "amount": "100"}], accounts_user
            )

    def test_year_can_only_be_closed_once(self, accounts_user):
        closing_service.perform_year_end_closing("2024-25", accounts_user)

        with pytest.raises(RecordClosedError):
            closing_service.perform_year_end_closing("2024-25", accounts_user)
        assert YearEndClosing.objects.count() == 1

    @pytest.mark.parametrize("label", ["2024", "2024-26", "FY24"])
    def test_rejects_malformed_label(self, accounts_user, label):
        with pytest.raises(DjangoValidationError):
            closing_service.perform_year_end_closing(label, accounts_user)
        assert not YearEndClosing.objects.exists()

    def test_failure_leaves_pnrs_open(self, accounts_user, travel_record, monkeypatch):
        """Should roll back the PNR flags when the snapshot cannot be written."""
        def explode(*args, **kwargs):
            raise RuntimeError("snapshot failed")

        monkeypatch.setattr(YearEndClosing, "save", explode)

        with pytest.raises(RuntimeError):
            closing_service.perform_year_end_closing("2024-25", accounts_user)
        assert not TravelRecord.objects.filter(is_closed=True).exists()
