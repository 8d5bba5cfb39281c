"""
Tests for the payment record manager: receipt, refund, update, delete and
verification of payments, and their effect on the booking account.
"""

import datetime
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError
from freezegun import freeze_time

from tvl_core.enums import (
    AccountStatus, AllocationType, BookingStatus, LedgerEntryType, PaymentStatus,
    TravelPaymentStatus, VerificationStatus
)
from tvl_payments.exceptions import (
    AlreadyDeletedError, AlreadyRefundedError, InvalidAmountError, InvalidPaymentStatusError, RecordNotFoundError
)
from tvl_payments.models import BookingAccount, LedgerEntry, Payment, PaymentAllocation
from tvl_payments.services import allocation_service, payment_service
from tvl_payments.tests.factories import TravelRecordFactory


class TestCreatePayment:
    """Tests for create_payment()."""

    def test_records_received_payment(self, payment, booking):
        """Should persist a RECEIVED payment stamped with year, period and receipt voucher."""
        assert payment.status == PaymentStatus.RECEIVED
        assert payment.amount == Decimal("1000.00")
        assert payment.financial_year == "2024-25"
        assert payment.accounting_period == "2024-06"
        assert payment.voucher_number == "REC/2024-25/0001"
        assert payment.customer_id == booking.customer_id

    def test_creates_funding_account_and_updates_booking(self, payment, booking):
        """Should open a zero-balance account for the booking and add the receipt to it."""
        account = BookingAccount.objects.get(booking=booking)
        booking.refresh_from_db()

        assert account.received_amount == Decimal("1000.00")
        assert account.pending_amount == Decimal("4000.00")
        assert account.status == AccountStatus.OPEN
        assert booking.paid_amount == Decimal("1000.00")
        assert booking.pending_amount == Decimal("4000.00")

    def test_appends_account_credit_entry(self, payment):
        """Should write one account-scope CREDIT carrying the receipt voucher."""
        entry = LedgerEntry.objects.get(payment=payment)

        assert entry.entry_type == LedgerEntryType.CREDIT
        assert entry.amount == Decimal("1000.00")
        assert entry.entry_reference == payment.voucher_number
        assert entry.travel_record_id is None
        assert entry.account_id == payment.account_id

    def test_flips_booking_to_funds_settled(self, receive, booking):
        """Should mark the booking FUNDS_SETTLED once nothing is pending."""
        receive("3000.00")
        receive("2000.00")
        booking.refresh_from_db()

        assert booking.status == BookingStatus.FUNDS_SETTLED
        assert booking.pending_amount == Decimal("0.00")
        assert booking.account.status == AccountStatus.SETTLED

    def test_overpayment_is_kept_on_account(self, receive, booking):
        """Should accept more than the booking total and keep pending at zero."""
        receive("6000.00")
        booking.refresh_from_db()

        assert booking.paid_amount == Decimal("6000.00")
        assert booking.pending_amount == Decimal("0.00")

    def test_accepts_account_id(self, payment, receive):
        """Should resolve the booking through an existing account id."""
        second = receive("500.00", booking_id=None, account_id=payment.account_id)

        assert second.account_id == payment.account_id
        assert second.account.received_amount == Decimal("1500.00")

    @pytest.mark.parametrize("amount", ["0", "-10", "NaN", "Infinity", "abc", "1e30", "1000000000000000000"])
    def test_rejects_invalid_amounts(self, receive, amount):
        """Should raise InvalidAmountError and persist nothing."""
        with pytest.raises(InvalidAmountError):
            receive(amount)
        assert Payment.all_objects.count() == 0

    def test_breakdown_must_sum_to_amount(self, receive):
        """Should reject a breakdown whose parts do not add up."""
        with pytest.raises(InvalidAmountError):
            receive("1000.00", breakdown={"fare_amount": "900.00", "platform_fee": "50.00"})
        assert Payment.all_objects.count() == 0

    def test_stores_valid_breakdown(self, receive):
        payment = receive("1000.00", breakdown={"fare_amount": "900.00", "agent_fee": "100.00"})

        assert payment.fare_amount == Decimal("900.00")
        assert payment.agent_fee == Decimal("100.00")
        assert payment.tax_amount is None

    def test_unknown_booking_raises_not_found(self, receive):
        with pytest.raises(RecordNotFoundError):
            receive(booking_id="00000000-0000-0000-0000-000000000000")

    def test_allocates_to_given_pnr(self, receive, travel_record):
        """Should apply min(amount, pending) of the receipt to the named PNR."""
        payment = receive("1200.00", travel_record_id=travel_record.pk)
        travel_record.refresh_from_db()

        assert travel_record.paid_amount == Decimal("1000.00")
        assert travel_record.payment_status == TravelPaymentStatus.PAID
        allocation = PaymentAllocation.objects.get(payment=payment)
        assert allocation.allocation_type == AllocationType.AUTO
        assert payment.status == PaymentStatus.RECEIVED

    def test_rejects_pnr_of_another_customer(self, receive):
        other_pnr = TravelRecordFactory()
        with pytest.raises(DjangoValidationError):
            receive("100.00", travel_record_id=other_pnr.pk)
        assert Payment.all_objects.count() == 0

    def test_auto_allocate_spreads_over_pending_pnrs(self, receive, travel_record, second_travel_record):
        """Should fill the oldest PNR first and mark the payment ADJUSTED when used up."""
        payment = receive("1800.00", auto_allocate=True)
        travel_record.refresh_from_db()
        second_travel_record.refresh_from_db()

        assert travel_record.payment_status == TravelPaymentStatus.PAID
        assert second_travel_record.paid_amount == Decimal("800.00")
        assert payment.status == PaymentStatus.ADJUSTED

    @freeze_time("2025-03-15")
    def test_defaults_payment_date_to_today(self, receive):
        payment = receive("100.00", payment_date=None)

        assert payment.payment_date == datetime.date(2025, 3, 15)
        assert payment.financial_year == "2024-25"
        assert payment.voucher_number == "REC/2024-25/0001"


class TestRefundPayment:
    """Tests for refund_payment()."""

    def test_full_refund_of_fully_allocated_payment(self, accounts_user, payment, travel_record):
        """Should revert the PNR to UNPAID through a negative REFUND allocation and a negative payment row."""
        allocation_service.allocate(payment.pk, [{"travel_record_id": travel_record.pk, "amount": "1000"}], accounts_user)

        refund = payment_service.refund_payment(payment.pk, Decimal("1000.00"), "Trip cancelled", accounts_user)

        payment.refresh_from_db()
        travel_record.refresh_from_db()
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.amount == Decimal("1000.00")
        assert refund.amount == Decimal("-1000.00")
        assert refund.refund_of_id == payment.pk
        assert refund.voucher_number.startswith("REF/")
        assert travel_record.paid_amount == Decimal("0.00")
        assert travel_record.pending_amount == Decimal("1000.00")
        assert travel_record.payment_status == TravelPaymentStatus.UNPAID

        reversal = PaymentAllocation.objects.get(payment=payment, allocation_type=AllocationType.REFUND)
        assert reversal.amount == Decimal("-1000.00")

    def test_refund_reduces_account_and_booking(self, accounts_user, payment, booking):
        payment_service.refund_payment(payment.pk, Decimal("300.00"), "", accounts_user)
        account = BookingAccount.objects.get(booking=booking)
        booking.refresh_from_db()

        assert account.received_amount == Decimal("700.00")
        assert booking.paid_amount == Decimal("700.00")
        debit = LedgerEntry.objects.get(payment=payment, entry_type=LedgerEntryType.DEBIT, travel_record__isnull=True)
        assert debit.amount == Decimal("300.00")

    def test_partial_refund_reverses_proportionally(self, accounts_user, receive, travel_record, second_travel_record):
        """Should split the reversal across allocations in proportion to their size."""
        payment = receive("2000.00")
        allocation_service.allocate(
            payment.pk,
            [
                {"travel_record_id": travel_record.pk, "amount": "500"},
                {"travel_record_id": second_travel_record.pk, "amount": "1500"},
            ],
            accounts_user,
        )

        payment_service.refund_payment(payment.pk, Decimal("1000.00"), "", accounts_user)

        travel_record.refresh_from_db()
        second_travel_record.refresh_from_db()
        assert travel_record.paid_amount == Decimal("250.00")
        assert second_travel_record.paid_amount == Decimal("750.00")
        assert travel_record.payment_status == TravelPaymentStatus.PARTIAL

    def test_refund_twice_raises_already_refunded(self, accounts_user, payment):
        payment_service.refund_payment(payment.pk, Decimal("100.00"), "", accounts_user)

        with pytest.raises(AlreadyRefundedError):
            payment_service.refund_payment(payment.pk, Decimal("100.00"), "", accounts_user)

    def test_refund_more_than_amount_raises(self, accounts_user, payment):
        with pytest.raises(InvalidAmountError):
            payment_service.refund_payment(payment.pk, Decimal("1000.01"), "", accounts_user)
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.RECEIVED

    @pytest.mark.parametrize("amount", ["0", "-1", "NaN", "1e30", "1000000000000000000"])
    def test_refund_rejects_invalid_amounts(self, accounts_user, payment, amount):
        with pytest.raises(InvalidAmountError):
            payment_service.refund_payment(payment.pk, amount, "", accounts_user)

    def test_refund_of_deleted_payment_raises(self, accounts_user, payment):
        payment_service.delete_payment(payment.pk, accounts_user)

        with pytest.raises(AlreadyDeletedError):
            payment_service.refund_payment(payment.pk, Decimal("10.00"), "", accounts_user)

    def test_refund_record_cannot_be_refunded(self, accounts_user, payment):
        refund = payment_service.refund_payment(payment.pk, Decimal("10.00"), "", accounts_user)

        with pytest.raises(InvalidPaymentStatusError):
            payment_service.refund_payment(refund.pk, Decimal("10.00"), "", accounts_user)

    def test_refund_against_single_pnr(self, accounts_user, receive, travel_record, second_travel_record):
        """Should reverse the full refund from the named PNR and leave the payment's other PNRs alone."""
        payment = receive("2000.00")
        allocation_service.allocate(
            payment.pk,
            [
                {"travel_record_id": travel_record.pk, "amount": "500"},
                {"travel_record_id": second_travel_record.pk, "amount": "1500"},
            ],
            accounts_user,
        )

        payment_service.refund_payment(
            payment.pk, Decimal("400.00"), "", accounts_user, pnr_number=second_travel_record.pnr_number
        )

        travel_record.refresh_from_db()
        second_travel_record.refresh_from_db()
        assert travel_record.paid_amount == Decimal("500.00")
        assert second_travel_record.paid_amount == Decimal("1100.00")
        reversal = PaymentAllocation.objects.get(payment=payment, allocation_type=AllocationType.REFUND)
        assert reversal.travel_record_id == second_travel_record.pk
        assert reversal.amount == Decimal("-400.00")
        pnr_debit = LedgerEntry.objects.get(
            payment=payment, entry_type=LedgerEntryType.DEBIT, travel_record=second_travel_record
        )
        assert pnr_debit.amount == Decimal("400.00")

    def test_single_pnr_refund_cannot_exceed_its_allocation(self, accounts_user, receive, travel_record, second_travel_record):
        """Should reject a refund larger than what the payment put on the PNR and leave the payment untouched."""
        payment = receive("2000.00")
        allocation_service.allocate(
            payment.pk,
            [
                {"travel_record_id": travel_record.pk, "amount": "500"},
                {"travel_record_id": second_travel_record.pk, "amount": "1500"},
            ],
            accounts_user,
        )

        with pytest.raises(InvalidAmountError):
            payment_service.refund_payment(
                payment.pk, Decimal("600.00"), "", accounts_user, travel_record_id=travel_record.pk
            )

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.ADJUSTED
        assert not Payment.all_objects.filter(refund_of=payment).exists()
        assert not PaymentAllocation.objects.filter(allocation_type=AllocationType.REFUND).exists()

    def test_single_pnr_refund_requires_an_allocation(self, accounts_user, payment, travel_record):
        """Should raise not-found when the payment was never allocated to the PNR."""
        with pytest.raises(RecordNotFoundError):
            payment_service.refund_payment(
                payment.pk, Decimal("100.00"), "", accounts_user, travel_record_id=travel_record.pk
            )

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.RECEIVED
        assert not Payment.all_objects.filter(refund_of=payment).exists()

    def test_single_pnr_refund_unknown_pnr_raises_not_found(self, accounts_user, payment):
        with pytest.raises(RecordNotFoundError):
            payment_service.refund_payment(payment.pk, Decimal("100.00"), "", accounts_user, pnr_number="NOPE42")


class TestDeletePayment:
    """Tests for delete_payment()."""

    def test_soft_deletes_and_offsets_account(self, accounts_user, payment, booking):
        """Should hide the payment, keep the row and take its amount off the account."""
        payment_service.delete_payment(payment.pk, accounts_user, reason="Duplicate entry")

        assert not Payment.objects.filter(pk=payment.pk).exists()
        deleted = Payment.all_objects.get(pk=payment.pk)
        assert deleted.status == PaymentStatus.DELETED
        assert BookingAccount.objects.get(booking=booking).received_amount == Decimal("0.00")
        assert LedgerEntry.objects.filter(payment=payment, entry_type=LedgerEntryType.DEBIT).count() == 1

    def test_delete_twice_raises_already_deleted(self, accounts_user, payment):
        payment_service.delete_payment(payment.pk, accounts_user)

        with pytest.raises(AlreadyDeletedError):
            payment_service.delete_payment(payment.pk, accounts_user)

    def test_refuses_payment_with_live_allocations(self, accounts_user, payment, travel_record):
        allocation_service.allocate(payment.pk, [{"travel_record_id": travel_record.pk, "amount": "100"}], accounts_user)

        with pytest.raises(InvalidPaymentStatusError):
            payment_service.delete_payment(payment.pk, accounts_user)
        assert Payment.objects.filter(pk=payment.pk).exists()

    def test_deletes_fully_refunded_payment_without_double_offset(self, accounts_user, payment, booking):
        """Should only take off what the refund left on the account."""
        payment_service.refund_payment(payment.pk, Decimal("1000.00"), "", accounts_user)
        payment_service.delete_payment(payment.pk, accounts_user)

        assert BookingAccount.objects.get(booking=booking).received_amount == Decimal("0.00")

    def test_missing_payment_raises_not_found(self, accounts_user, db):
        with pytest.raises(RecordNotFoundError):
            payment_service.delete_payment("00000000-0000-0000-0000-000000000000", accounts_user)


class TestUpdatePayment:
    """Tests for update_payment()."""

    def test_updates_remarks_and_received_date(self, accounts_user, payment):
        updated = payment_service.update_payment(
            payment.pk, accounts_user, remarks="Cleared", received_date=datetime.date(2024, 6, 18)
        )

        assert updated.remarks == "Cleared"
        assert updated.received_date == datetime.date(2024, 6, 18)
        assert updated.financial_year == "2024-25"

    def test_rejects_adjusted_without_full_allocation(self, accounts_user, payment):
        with pytest.raises(InvalidPaymentStatusError):
            payment_service.update_payment(payment.pk, accounts_user, status=PaymentStatus.ADJUSTED)

    def test_rejects_refunded_status(self, accounts_user, payment):
        """Should insist on the refund operation for REFUNDED."""
        with pytest.raises(InvalidPaymentStatusError):
            payment_service.update_payment(payment.pk, accounts_user, status=PaymentStatus.REFUNDED)

    def test_deleted_status_performs_soft_delete(self, accounts_user, payment):
        payment_service.update_payment(payment.pk, accounts_user, status=PaymentStatus.DELETED)

        assert Payment.all_objects.get(pk=payment.pk).status == PaymentStatus.DELETED
        assert not Payment.objects.filter(pk=payment.pk).exists()


class TestVerifyPayment:
    """Tests for verify_payment()."""

    def test_verify_sets_verifier(self, accounts_user, payment):
        verified = payment_service.verify_payment(payment.pk, accounts_user, "VERIFY", "Matched bank statement")

        assert verified.verification_status == VerificationStatus.VERIFIED
        assert verified.verified_by == accounts_user
        assert verified.verified_at is not None

    def test_reject(self, accounts_user, payment):
        rejected = payment_service.verify_payment(payment.pk, accounts_user, "reject")

        assert rejected.verification_status == VerificationStatus.REJECTED

    def test_unknown_action_raises(self, accounts_user, payment):
        with pytest.raises(DjangoValidationError):
            payment_service.verify_payment(payment.pk, accounts_user, "APPROVE")


class TestGetPayment:
    def test_includes_soft_deleted(self, accounts_user, payment):
        payment_service.delete_payment(payment.pk, accounts_user)

        assert payment_service.get_payment(payment.pk).status == PaymentStatus.DELETED

    def test_missing_raises_not_found(self, db):
        with pytest.raises(RecordNotFoundError):
            payment_service.get_payment("not-a-uuid")
