"""
Tests for the append-only ledger store.
"""

from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from tvl_core.enums import LedgerEntryType
from tvl_payments.exceptions import InvalidAmountError
from tvl_payments.models import LedgerEntry
from tvl_payments.services import ledger_service


class TestAppendEntry:
    """Tests for append_entry()."""

    def test_credit_closing_balance(self, accounts_user, payment):
        """Should set closing = opening + amount for a CREDIT."""
        entry = ledger_service.append_entry(
            LedgerEntryType.CREDIT, Decimal("250.00"), user=accounts_user, financial_year="2024-25",
            payment=payment, opening_balance=Decimal("100.00"), entry_reference="MANUAL-1",
        )

        assert entry.closing_balance == Decimal("350.00")
        assert entry.entry_reference == "MANUAL-1"

    def test_debit_closing_balance(self, accounts_user, payment):
        """Should set closing = opening - amount for a DEBIT."""
        entry = ledger_service.append_entry(
            LedgerEntryType.DEBIT, Decimal("40.00"), user=accounts_user, financial_year="2024-25",
            payment=payment, opening_balance=Decimal("100.00"), entry_reference="MANUAL-2",
        )

        assert entry.closing_balance == Decimal("60.00")

    def test_issues_journal_voucher_without_reference(self, accounts_user, payment):
        """Should stamp a journal voucher number when no reference is supplied."""
        entry = ledger_service.append_entry(
            LedgerEntryType.CREDIT, Decimal("10.00"), user=accounts_user, financial_year="2024-25", payment=payment,
        )

        assert entry.entry_reference.startswith("JOU/2024-25/")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00"), Decimal("NaN"), Decimal("Infinity")])
    def test_rejects_non_positive_or_non_finite_amounts(self, accounts_user, payment, amount):
        """Should refuse zero, negative and non-finite amounts."""
        with pytest.raises(InvalidAmountError):
            ledger_service.append_entry(
                LedgerEntryType.CREDIT, amount, user=accounts_user, financial_year="2024-25", payment=payment,
            )

    def test_rejects_unknown_entry_type(self, accounts_user, payment):
        with pytest.raises(ValueError):
            ledger_service.append_entry(
                "TRANSFER", Decimal("10.00"), user=accounts_user, financial_year="2024-25", payment=payment,
            )

    def test_entries_are_write_once(self, accounts_user, payment):
        """Should reject saving an existing entry and ignore deletes."""
        entry = LedgerEntry.objects.filter(payment=payment).first()
        entry.remarks = "edited"

        with pytest.raises(ValidationError):
            entry.save()

        entry.delete()
        assert LedgerEntry.objects.filter(pk=entry.pk).exists()


class TestRunningBalance:
    """Tests for running_balance() and entries_for()."""

    def test_receipt_credits_the_account(self, payment):
        """Should show the received amount as the account balance."""
        assert ledger_service.running_balance(account=payment.account) == Decimal("1000.00")
        assert ledger_service.running_balance(payment=payment) == Decimal("1000.00")

    def test_allocations_do_not_double_count_account_balance(self, accounts_user, payment, travel_record):
        """Should keep PNR-scope allocation entries out of the account-scope balance."""
        from tvl_payments.services import allocation_service

        allocation_service.allocate(payment.pk, [{"travel_record_id": travel_record.pk, "amount": "400"}], accounts_user)

        assert ledger_service.running_balance(account=payment.account) == Decimal("1000.00")
        assert ledger_service.running_balance(travel_record=travel_record) == Decimal("400.00")

    def test_requires_a_reference(self, db):
        with pytest.raises(ValueError):
            ledger_service.entries_for()
