# tvl_payments/services/ledger_service.py

import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q, QuerySet, Sum

from tvl_core.enums import LedgerEntryType
from tvl_core.utils import round_decimal

from ..conf import get_setting
from ..exceptions import InvalidAmountError
from ..models import ZERO, BookingAccount, LedgerEntry, Payment, PaymentAllocation, TravelRecord
from .sequence_service import next_voucher

logger = logging.getLogger("tvl_payments.services.ledger")


@transaction.atomic
def append_entry(
        entry_type: str,
        amount: Decimal,
        *,
        user: settings.AUTH_USER_MODEL,
        financial_year: str,
        payment: Optional[Payment] = None,
        travel_record: Optional[TravelRecord] = None,
        account: Optional[BookingAccount] = None,
        allocation: Optional[PaymentAllocation] = None,
        opening_balance: Decimal = ZERO,
        entry_reference: Optional[str] = None,
        voucher_type: Optional[str] = None,
        remarks: str = '',
) -> LedgerEntry:
    """
    Appends one write-once ledger row.

    closing_balance = opening_balance + amount for CREDIT, opening_balance - amount
    for DEBIT. Callers in this engine pass the conventional zero opening
    balance; running totals come from running_balance().

    When no entry_reference is given a voucher number of `voucher_type`
    (default: the allocation voucher type) is issued for the entry.
    """
    if entry_type not in LedgerEntryType.values:
        raise ValueError(f"Unknown ledger entry type {entry_type!r}.")
    if amount is None or not amount.is_finite() or amount <= ZERO:
        raise InvalidAmountError(f"Ledger entry amount must be a positive finite number, got {amount}.")

    amount = round_decimal(amount)
    opening_balance = round_decimal(opening_balance)
    if entry_type == LedgerEntryType.CREDIT:
        closing_balance = opening_balance + amount
    else:
        closing_balance = opening_balance - amount

    if not entry_reference:
        entry_reference = next_voucher(voucher_type or get_setting('ALLOCATION_VOUCHER_TYPE'), financial_year)

    entry = LedgerEntry(
        entry_type=entry_type,
        entry_reference=entry_reference,
        amount=amount,
        opening_balance=opening_balance,
        closing_balance=closing_balance,
        remarks=(remarks or '')[:255],
        financial_year=financial_year,
        user=user,
        payment=payment,
        travel_record=travel_record,
        account=account,
        allocation=allocation,
        created_by=user,
        updated_by=user,
    )
    entry.save()
    logger.info(
        f"[Ledger][{entry_reference}] {entry_type} {amount} "
        f"(Pmt: {payment.pk if payment else '-'}, PNR: {travel_record.pk if travel_record else '-'}, "
        f"Acc: {account.pk if account else '-'})."
    )
    return entry


def entries_for(
        *,
        payment: Optional[Payment] = None,
        travel_record: Optional[TravelRecord] = None,
        account: Optional[BookingAccount] = None,
) -> QuerySet:
    """
    Ledger rows for a reference. Without a travel record only account-scope
    rows (receipts, refunds, deletions) are returned, so a payment's balance is
    money in minus money out and not double-counted by its allocations.
    """
    if not any([payment, travel_record, account]):
        raise ValueError("entries_for() needs a payment, a travel record or an account.")
    qs = LedgerEntry.objects.all()
    if payment is not None:
        qs = qs.filter(payment=payment)
    if account is not None:
        qs = qs.filter(account=account)
    if travel_record is not None:
        qs = qs.filter(travel_record=travel_record)
    else:
        qs = qs.filter(travel_record__isnull=True)
    return qs.order_by('created_at', 'id')


def running_balance(
        *,
        payment: Optional[Payment] = None,
        travel_record: Optional[TravelRecord] = None,
        account: Optional[BookingAccount] = None,
) -> Decimal:
    """Credits minus debits over every prior entry for the reference."""
    totals = entries_for(payment=payment, travel_record=travel_record, account=account).aggregate(
        credits=Sum('amount', filter=Q(entry_type=LedgerEntryType.CREDIT)),
        debits=Sum('amount', filter=Q(entry_type=LedgerEntryType.DEBIT)),
    )
    return (totals['credits'] or ZERO) - (totals['debits'] or ZERO)
