"""
Tests for allocating payments to PNRs: manual batches, FIFO auto-allocation
and the proportional reversal applied on refund.
"""

from decimal import Decimal

import pytest

from tvl_core.enums import AllocationType, LedgerEntryType, PaymentStatus, TravelPaymentStatus
from tvl_payments.exceptions import (
    AlreadyDeletedError, AlreadyRefundedError, InvalidAmountError, InvalidPaymentStatusError,
    OverAllocationError, RecordClosedError, RecordNotFoundError
)
from tvl_payments.models import CustomerAdvance, LedgerEntry, PaymentAllocation, TravelRecord
from tvl_payments.services import allocation_service, payment_service
from tvl_payments.services.allocation_service import AllocationLine, parse_allocation_lines
from tvl_payments.tests.factories import BookingFactory, TravelRecordFactory


def line(travel_record, amount, **extra):
    return {"travel_record_id": travel_record.pk, "amount": amount, **extra}


class TestAllocate:
    """Tests for allocate()."""

    def test_partial_then_full_then_over_allocation(self, receive, accounts_user, travel_record):
        """Should move the PNR UNPAID -> PARTIAL -> PAID and refuse a further rupee."""
        payment = receive("1500.00")

        allocation_service.allocate(payment.pk, [line(travel_record, "400")], accounts_user)
        travel_record.refresh_from_db()
        assert travel_record.paid_amount == Decimal("400.00")
        assert travel_record.pending_amount == Decimal("600.00")
        assert travel_record.payment_status == TravelPaymentStatus.PARTIAL

        allocation_service.allocate(payment.pk, [line(travel_record, "600")], accounts_user)
        travel_record.refresh_from_db()
        assert travel_record.paid_amount == Decimal("1000.00")
        assert travel_record.pending_amount == Decimal("0.00")
        assert travel_record.payment_status == TravelPaymentStatus.PAID

        with pytest.raises(OverAllocationError):
            allocation_service.allocate(payment.pk, [line(travel_record, "1")], accounts_user)
        assert PaymentAllocation.objects.filter(payment=payment).count() == 2

    def test_batch_is_all_or_nothing(self, receive, accounts_user, travel_record, second_travel_record):
        """Should roll back the earlier lines when a later line over-allocates."""
        payment = receive("3000.00")

        with pytest.raises(OverAllocationError):
            allocation_service.allocate(
                payment.pk,
                [line(travel_record, "400"), line(second_travel_record, "2000")],
                accounts_user,
            )

        travel_record.refresh_from_db()
        assert travel_record.paid_amount == Decimal("0.00")
        assert travel_record.payment_status == TravelPaymentStatus.UNPAID
        assert not PaymentAllocation.objects.exists()
        assert not LedgerEntry.objects.filter(travel_record__isnull=False).exists()

    def test_cannot_exceed_payment_amount(self, payment, accounts_user, travel_record, second_travel_record):
        """Should bound the allocations of a payment by its amount."""
        with pytest.raises(OverAllocationError):
            allocation_service.allocate(
                payment.pk,
                [line(travel_record, "600"), line(second_travel_record, "500")],
                accounts_user,
            )
        assert not PaymentAllocation.objects.exists()

    def test_marks_payment_adjusted_when_fully_used(self, payment, accounts_user, travel_record):
        allocation_service.allocate(payment.pk, [line(travel_record, "1000.00")], accounts_user)
        payment.refresh_from_db()

        assert payment.status == PaymentStatus.ADJUSTED
        assert allocation_service.allocation_summary(payment)["unallocated_amount"] == Decimal("0.00")

    def test_partial_allocation_keeps_payment_received(self, payment, accounts_user, travel_record):
        allocation_service.allocate(payment.pk, [line(travel_record, "250.00")], accounts_user)
        payment.refresh_from_db()

        assert payment.status == PaymentStatus.RECEIVED
        summary = allocation_service.allocation_summary(payment)
        assert summary["allocated_amount"] == Decimal("250.00")
        assert summary["unallocated_amount"] == Decimal("750.00")

    def test_resolves_pnr_by_number(self, payment, accounts_user, travel_record):
        created = allocation_service.allocate(
            payment.pk, [{"pnr_number": travel_record.pnr_number, "amount": "250"}], accounts_user
        )

        assert created[0].travel_record_id == travel_record.pk
        assert created[0].allocation_type == AllocationType.MANUAL
        assert created[0].allocated_by == accounts_user

    def test_writes_pnr_scope_credit_entry(self, payment, accounts_user, travel_record):
        """Should append one CREDIT per line carrying the PNR and a journal voucher."""
        allocation = allocation_service.allocate(payment.pk, [line(travel_record, "300")], accounts_user)[0]

        entry = LedgerEntry.objects.get(allocation=allocation)
        assert entry.entry_type == LedgerEntryType.CREDIT
        assert entry.amount == Decimal("300.00")
        assert entry.travel_record_id == travel_record.pk
        assert entry.entry_reference.startswith("JOU/")

    def test_closed_pnr_is_rejected(self, payment, accounts_user, travel_record):
        TravelRecord.objects.filter(pk=travel_record.pk).update(is_closed=True)

        with pytest.raises(RecordClosedError):
            allocation_service.allocate(payment.pk, [line(travel_record, "100")], accounts_user)
        assert not PaymentAllocation.objects.exists()

    def test_unknown_payment_or_pnr(self, payment, accounts_user, travel_record):
        with pytest.raises(RecordNotFoundError):
            allocation_service.allocate(
                "00000000-0000-0000-0000-000000000000", [line(travel_record, "100")], accounts_user
            )
        with pytest.raises(RecordNotFoundError):
            allocation_service.allocate(payment.pk, [{"pnr_number": "NOPE", "amount": "100"}], accounts_user)

    def test_refund_type_is_not_accepted(self, payment, accounts_user, travel_record):
        with pytest.raises(ValueError):
            allocation_service.allocate(
                payment.pk, [line(travel_record, "100")], accounts_user, allocation_type=AllocationType.REFUND
            )

    def test_refunded_payment_is_not_allocatable(self, payment, accounts_user, travel_record):
        payment_service.refund_payment(payment.pk, Decimal("1000.00"), "Cancelled", accounts_user)

        with pytest.raises(AlreadyRefundedError):
            allocation_service.allocate(payment.pk, [line(travel_record, "100")], accounts_user)

    def test_refund_record_is_not_allocatable(self, payment, accounts_user, travel_record):
        refund = payment_service.refund_payment(payment.pk, Decimal("200.00"), "Partial", accounts_user)

        with pytest.raises(InvalidPaymentStatusError):
            allocation_service.allocate(refund.pk, [line(travel_record, "100")], accounts_user)

    def test_deleted_payment_is_not_allocatable(self, payment, accounts_user, travel_record):
        payment_service.delete_payment(payment.pk, accounts_user, reason="Duplicate entry")

        with pytest.raises(AlreadyDeletedError):
            allocation_service.allocate(payment.pk, [line(travel_record, "100")], accounts_user)

    def test_refreshes_customer_advance(self, payment, accounts_user, travel_record, customer):
        """Should leave the cached advance equal to the unapplied part of the receipt."""
        allocation_service.allocate(payment.pk, [line(travel_record, "400")], accounts_user)

        advance = CustomerAdvance.objects.get(customer=customer, financial_year="2024-25")
        assert advance.advance_amount == Decimal("600.00")

    @pytest.mark.parametrize("amount", ["1e30", "1000000000000000000"])
    def test_rejects_amounts_too_large_to_store(self, payment, accounts_user, travel_record, amount):
        with pytest.raises(InvalidAmountError):
            allocation_service.allocate(payment.pk, [line(travel_record, amount)], accounts_user)
        assert not PaymentAllocation.objects.exists()


class TestParseAllocationLines:
    """Tests for parse_allocation_lines()."""

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "NaN", None, "1e30", "1000000000000000000"])
    def test_rejects_bad_amounts(self, amount):
        with pytest.raises(InvalidAmountError):
            parse_allocation_lines([{"travel_record_id": 1, "amount": amount}])

    def test_requires_a_pnr_reference(self):
        with pytest.raises(InvalidAmountError):
            parse_allocation_lines([{"amount": "10"}])

    def test_requires_at_least_one_line(self):
        with pytest.raises(InvalidAmountError):
            parse_allocation_lines([])

    def test_accepts_dataclass_lines(self):
        parsed = parse_allocation_lines([AllocationLine(amount=Decimal("5.00"), pnr_number="ABC123")])

        assert parsed[0].pnr_number == "ABC123"

    def test_strips_remarks(self):
        parsed = parse_allocation_lines([{"travel_record_id": 7, "amount": "5", "remarks": "  note  "}])

        assert parsed[0].remarks == "note"
        assert parsed[0].amount == Decimal("5")


class TestAutoAllocateFifo:
    """Tests for auto_allocate_fifo()."""

    def test_fills_oldest_pnr_first(self, receive, accounts_user, travel_record, second_travel_record):
        payment = receive("1200.00")

        created = allocation_service.auto_allocate_fifo(payment.pk, accounts_user)

        travel_record.refresh_from_db()
        second_travel_record.refresh_from_db()
        assert [a.travel_record_id for a in created] == [travel_record.pk, second_travel_record.pk]
        assert all(a.allocation_type == AllocationType.AUTO for a in created)
        assert travel_record.payment_status == TravelPaymentStatus.PAID
        assert second_travel_record.paid_amount == Decimal("200.00")
        assert second_travel_record.payment_status == TravelPaymentStatus.PARTIAL

    def test_only_uses_unallocated_remainder(self, payment, accounts_user, travel_record, second_travel_record):
        allocation_service.allocate(payment.pk, [line(second_travel_record, "700")], accounts_user)

        created = allocation_service.auto_allocate_fifo(payment.pk, accounts_user)

        assert len(created) == 1
        assert created[0].travel_record_id == travel_record.pk
        assert created[0].amount == Decimal("300.00")

    def test_skips_closed_and_other_customers_pnrs(self, payment, accounts_user, travel_record):
        TravelRecord.objects.filter(pk=travel_record.pk).update(is_closed=True)
        TravelRecordFactory(booking=BookingFactory())

        assert allocation_service.auto_allocate_fifo(payment.pk, accounts_user) == []
        assert not PaymentAllocation.objects.exists()

    def test_nothing_left_to_allocate(self, payment, accounts_user, travel_record, second_travel_record):
        allocation_service.allocate(payment.pk, [line(second_travel_record, "1000")], accounts_user)

        assert allocation_service.auto_allocate_fifo(payment.pk, accounts_user) == []

    def test_candidate_query_locks_only_pnr_rows(self, payment, accounts_user, travel_record, monkeypatch):
        """Should lock the candidate PNRs without also locking the joined booking rows."""
        lock_calls = []
        manager = TravelRecord.objects
        original = manager.select_for_update

        def recording_select_for_update(*args, **kwargs):
            lock_calls.append(kwargs)
            return original(*args, **kwargs)

        monkeypatch.setattr(manager, "select_for_update", recording_select_for_update)

        created = allocation_service.auto_allocate_fifo(payment.pk, accounts_user)

        assert len(created) == 1
        assert {"of": ("self",)} in lock_calls


class TestReverseAllocations:
    """Refund reversals, exercised through refund_payment()."""

    def test_partial_refund_is_proportional(self, payment, accounts_user, travel_record, second_travel_record):
        """Should give back half of each allocation when half the payment is refunded."""
        allocation_service.allocate(
            payment.pk, [line(travel_record, "400"), line(second_travel_record, "600")], accounts_user
        )

        payment_service.refund_payment(payment.pk, Decimal("500.00"), "Half refund", accounts_user)

        travel_record.refresh_from_db()
        second_travel_record.refresh_from_db()
        assert travel_record.paid_amount == Decimal("200.00")
        assert second_travel_record.paid_amount == Decimal("300.00")
        assert travel_record.payment_status == TravelPaymentStatus.PARTIAL
        debits = LedgerEntry.objects.filter(
            payment=payment, travel_record__isnull=False, entry_type=LedgerEntryType.DEBIT
        )
        assert sorted(e.amount for e in debits) == [Decimal("200.00"), Decimal("300.00")]

    def test_last_line_absorbs_rounding(self, receive, accounts_user, booking, travel_record, second_travel_record):
        """Should reverse exactly the refunded share in total even when thirds do not divide evenly."""
        third = TravelRecordFactory(booking=booking, total_amount=Decimal("500.00"))
        payment = receive("300.00")
        allocation_service.allocate(
            payment.pk,
            [line(travel_record, "100"), line(second_travel_record, "100"), line(third, "100")],
            accounts_user,
        )

        payment_service.refund_payment(payment.pk, Decimal("100.00"), "Partial", accounts_user)

        reversals = list(
            PaymentAllocation.objects.filter(payment=payment, allocation_type=AllocationType.REFUND)
            .order_by("created_at")
        )
        assert [r.amount for r in reversals] == [Decimal("-33.33"), Decimal("-33.33"), Decimal("-33.34")]
        assert payment.net_allocated_amount() == Decimal("200.00")

    def test_closed_pnr_is_still_reversed(self, payment, accounts_user, travel_record):
        allocation_service.allocate(payment.pk, [line(travel_record, "600")], accounts_user)
        TravelRecord.objects.filter(pk=travel_record.pk).update(is_closed=True)

        payment_service.refund_payment(payment.pk, Decimal("1000.00"), "Cancelled", accounts_user)

        travel_record.refresh_from_db()
        assert travel_record.paid_amount == Decimal("0.00")
        assert travel_record.is_closed

    def test_unallocated_payment_has_nothing_to_reverse(self, payment, accounts_user):
        payment_service.refund_payment(payment.pk, Decimal("1000.00"), "Cancelled", accounts_user)

        assert not PaymentAllocation.objects.exists()
