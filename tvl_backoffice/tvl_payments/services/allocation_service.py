# tvl_payments/services/allocation_service.py

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.db.models import Sum

from tvl_core.enums import AllocationType, LedgerEntryType, PaymentStatus, TravelPaymentStatus
from tvl_core.utils import exceeds_money_digits, round_decimal, to_decimal

from ..conf import get_setting
from ..exceptions import (
    AlreadyDeletedError, AlreadyRefundedError, InvalidAmountError, InvalidPaymentStatusError,
    OverAllocationError, RecordClosedError, RecordNotFoundError
)
from ..models import ZERO, Payment, PaymentAllocation, TravelRecord
from . import advance_service, ledger_service
from .lookups import get_record
from .uow import UnitOfWork, unit_of_work

logger = logging.getLogger("tvl_payments.services.allocation")


@dataclass(frozen=True)
class AllocationLine:
    """One requested allocation. The PNR is identified by primary key or by PNR number."""
    amount: Decimal
    travel_record_id: Any = None
    pnr_number: Optional[str] = None
    remarks: str = ''


def parse_allocation_lines(lines: Iterable[Any]) -> List[AllocationLine]:
    """
    Normalises caller input (AllocationLine objects or dicts with
    travel_record_id / pnr_number, amount, remarks) and rejects bad amounts
    before any row is touched.
    """
    parsed: List[AllocationLine] = []
    for index, raw in enumerate(lines or [], start=1):
        if isinstance(raw, AllocationLine):
            line = raw
        else:
            amount = to_decimal(raw.get('amount'))
            if amount is None:
                raise InvalidAmountError(f"Line {index}: amount {raw.get('amount')!r} is not a finite number.")
            line = AllocationLine(
                amount=amount,
                travel_record_id=raw.get('travel_record_id') or raw.get('travel_record'),
                pnr_number=raw.get('pnr_number'),
                remarks=(raw.get('remarks') or '').strip(),
            )
        if line.amount is None or not line.amount.is_finite() or line.amount <= ZERO:
            raise InvalidAmountError(f"Line {index}: allocation amount must be greater than zero.")
        if exceeds_money_digits(line.amount):
            raise InvalidAmountError(f"Line {index}: allocation amount {line.amount} is too large to record.")
        if line.travel_record_id is None and not line.pnr_number:
            raise InvalidAmountError(f"Line {index}: a PNR reference is required.")
        parsed.append(line)
    if not parsed:
        raise InvalidAmountError("At least one allocation line is required.")
    return parsed


# =============================================================================
# Row access (always under a row lock, always inside a unit of work)
# =============================================================================

def lock_payment(payment_id: Any) -> Payment:
    """Locks a payment row, including soft-deleted ones so their status can be reported."""
    return get_record(
        Payment.all_objects.select_for_update(), 'Payment', pk=payment_id
    )


def _lock_travel_record(line: AllocationLine) -> TravelRecord:
    qs = TravelRecord.objects.select_for_update()
    if line.travel_record_id is not None:
        return get_record(qs, 'PNR', pk=line.travel_record_id)
    return get_record(qs, 'PNR', pnr_number=line.pnr_number)


def ensure_allocatable(payment: Payment) -> None:
    if payment.is_refund:
        raise InvalidPaymentStatusError(
            payment.status, message=f"{payment.voucher_number} is a refund record and cannot be allocated."
        )
    if payment.status == PaymentStatus.DELETED:
        raise AlreadyDeletedError(payment.voucher_number)
    if payment.status == PaymentStatus.REFUNDED:
        raise AlreadyRefundedError(payment.voucher_number)


# =============================================================================
# Derived PNR state: the only writer of paid / pending / payment_status
# =============================================================================

def refresh_travel_record(travel_record: TravelRecord, uow: UnitOfWork) -> TravelRecord:
    """
    Recomputes a PNR's paid amount from its allocation rows and derives
    pending and status from it. MUST be called on a row locked within the
    caller's unit of work.
    """
    uow.assert_active()
    paid = travel_record.allocations.aggregate(s=Sum('amount'))['s'] or ZERO
    travel_record.apply_paid_amount(paid)
    travel_record.updated_by = uow.actor
    travel_record.save(update_fields=['paid_amount', 'pending_amount', 'payment_status', 'updated_by', 'updated_at'])
    return travel_record


def _sync_payment_status(payment: Payment, allocated: Decimal, uow: UnitOfWork) -> None:
    """RECEIVED -> ADJUSTED once the non-refund allocations reach the payment amount."""
    if payment.status == PaymentStatus.RECEIVED and allocated == payment.amount:
        payment.status = PaymentStatus.ADJUSTED
        payment.updated_by = uow.actor
        payment.save(update_fields=['status', 'updated_by', 'updated_at'])
        logger.info(f"[Allocate][Pmt:{payment.voucher_number}] Fully allocated, status -> ADJUSTED.")


# =============================================================================
# Internal operations (caller owns the unit of work)
# =============================================================================

def _allocate_lines(
        uow: UnitOfWork, payment: Payment, lines: List[AllocationLine], allocation_type: str
) -> List[PaymentAllocation]:
    """
    Applies lines to a locked payment in the order given. Any failing line
    raises and the caller's unit of work rolls back every earlier line.
    """
    uow.assert_active()
    ensure_allocatable(payment)
    log_prefix = f"[Allocate][Pmt:{payment.voucher_number}]"

    allocated = payment.allocated_amount()
    created: List[PaymentAllocation] = []

    for index, line in enumerate(lines, start=1):
        travel_record = _lock_travel_record(line)
        if travel_record.is_closed:
            raise RecordClosedError(
                f"PNR {travel_record.pnr_number} is closed for financial year "
                f"{travel_record.financial_year} and cannot be allocated."
            )

        pending = travel_record.total_amount - travel_record.paid_amount
        if line.amount > pending:
            raise OverAllocationError(
                f"Line {index}: {line.amount} exceeds the pending amount {max(pending, ZERO)} "
                f"of PNR {travel_record.pnr_number}."
            )
        if allocated + line.amount > payment.amount:
            raise OverAllocationError(
                f"Line {index}: allocating {line.amount} would exceed payment {payment.voucher_number} "
                f"({allocated} of {payment.amount} already allocated)."
            )

        allocation = PaymentAllocation(
            payment=payment,
            travel_record=travel_record,
            amount=line.amount,
            allocation_type=allocation_type,
            remarks=line.remarks[:255],
            allocated_by=uow.actor,
            created_by=uow.actor,
            updated_by=uow.actor,
        )
        allocation.save()
        allocated += line.amount

        refresh_travel_record(travel_record, uow)
        ledger_service.append_entry(
            LedgerEntryType.CREDIT,
            line.amount,
            user=uow.actor,
            financial_year=uow.financial_year,
            payment=payment,
            travel_record=travel_record,
            account=payment.account,
            allocation=allocation,
            remarks=line.remarks or f"Allocation of {payment.voucher_number} to PNR {travel_record.pnr_number}",
        )
        created.append(allocation)
        logger.info(
            f"{log_prefix} {allocation_type} {line.amount} -> PNR {travel_record.pnr_number} "
            f"(paid {travel_record.paid_amount}, pending {travel_record.pending_amount}, "
            f"{travel_record.payment_status})."
        )

    uow.touch_advance(payment.customer_id, payment.financial_year)
    _sync_payment_status(payment, allocated, uow)
    return created


def _allocate_fifo(uow: UnitOfWork, payment: Payment) -> List[PaymentAllocation]:
    """Spreads the payment's unallocated remainder over the customer's open PNRs, oldest first."""
    ensure_allocatable(payment)
    remaining = payment.amount - payment.allocated_amount()
    if remaining <= ZERO:
        return []

    candidates = (
        TravelRecord.objects.select_for_update(of=('self',))
        .filter(
            booking__customer_id=payment.customer_id,
            is_closed=False,
            payment_status__in=[TravelPaymentStatus.UNPAID, TravelPaymentStatus.PARTIAL],
        )
        .order_by('created_at', 'travel_date', 'pnr_number')
    )
    remark = get_setting('FIFO_ALLOCATION_REMARK')
    lines: List[AllocationLine] = []
    for travel_record in candidates:
        if remaining <= ZERO:
            break
        if travel_record.pending_amount <= ZERO:
            continue
        portion = min(travel_record.pending_amount, remaining)
        lines.append(AllocationLine(amount=portion, travel_record_id=travel_record.pk, remarks=remark))
        remaining -= portion

    if not lines:
        logger.info(f"[AutoAllocate][Pmt:{payment.voucher_number}] No pending PNRs for customer.")
        return []
    return _allocate_lines(uow, payment, lines, AllocationType.AUTO)


def _append_reversal(uow: UnitOfWork, payment: Payment, travel_record: TravelRecord, share: Decimal) -> PaymentAllocation:
    """Negative REFUND allocation of `share` against a locked PNR, with its DEBIT entry."""
    reversal = PaymentAllocation(
        payment=payment,
        travel_record=travel_record,
        amount=-share,
        allocation_type=AllocationType.REFUND,
        remarks=f"Refund reversal of {payment.voucher_number}",
        allocated_by=uow.actor,
        created_by=uow.actor,
        updated_by=uow.actor,
    )
    reversal.save()

    refresh_travel_record(travel_record, uow)
    ledger_service.append_entry(
        LedgerEntryType.DEBIT,
        share,
        user=uow.actor,
        financial_year=uow.financial_year,
        payment=payment,
        travel_record=travel_record,
        account=payment.account,
        allocation=reversal,
        remarks=f"Refund reversal of {payment.voucher_number} from PNR {travel_record.pnr_number}",
    )
    return reversal


def reverse_allocations(uow: UnitOfWork, payment: Payment, refund_amount: Decimal) -> List[PaymentAllocation]:
    """
    Reverses a refunded share of every allocation made from `payment` by
    appending negative REFUND allocations. Each allocation gives back
    amount * refund / payment.amount, rounded to 2dp, with the running total
    capped so the reversal never exceeds the refunded share overall.
    Closed PNRs are reversed as well; closing only blocks new allocations.
    """
    uow.assert_active()
    originals = list(
        payment.allocations.exclude(allocation_type=AllocationType.REFUND).order_by('allocated_at', 'created_at')
    )
    if not originals:
        return []

    ratio = refund_amount / payment.amount
    target_total = round_decimal(sum((a.amount for a in originals), ZERO) * ratio)
    reversed_so_far = ZERO
    reversals: List[PaymentAllocation] = []

    for position, original in enumerate(originals):
        is_last = position == len(originals) - 1
        share = target_total - reversed_so_far if is_last else round_decimal(original.amount * ratio)
        share = min(share, original.amount, target_total - reversed_so_far)
        if share <= ZERO:
            continue

        travel_record = get_record(TravelRecord.objects.select_for_update(), 'PNR', pk=original.travel_record_id)
        reversals.append(_append_reversal(uow, payment, travel_record, share))
        reversed_so_far += share

    uow.touch_advance(payment.customer_id, payment.financial_year)
    logger.info(f"[Refund][Pmt:{payment.voucher_number}] Reversed {reversed_so_far} across {len(reversals)} PNR(s).")
    return reversals


def reverse_travel_record_allocation(
        uow: UnitOfWork,
        payment: Payment,
        refund_amount: Decimal,
        travel_record_id: Any = None,
        pnr_number: Optional[str] = None,
) -> PaymentAllocation:
    """
    Reverses `refund_amount` of what `payment` put on a single PNR. The
    refund is capped by the payment's net allocation to that PNR; other
    PNRs funded by the same payment are left untouched.

    Raises:
        RecordNotFoundError: The PNR is missing or the payment was never allocated to it.
        InvalidAmountError: The refund exceeds the net allocation to the PNR.
    """
    uow.assert_active()
    line = AllocationLine(amount=refund_amount, travel_record_id=travel_record_id, pnr_number=pnr_number)
    travel_record = _lock_travel_record(line)
    net = payment.allocations.filter(travel_record=travel_record).aggregate(s=Sum('amount'))['s'] or ZERO
    if net <= ZERO:
        raise RecordNotFoundError(
            'Allocation', travel_record.pnr_number,
            message=f"Payment {payment.voucher_number} has no allocation to PNR {travel_record.pnr_number}.",
        )
    if refund_amount > net:
        raise InvalidAmountError(
            f"Refund amount {refund_amount} exceeds the {net} allocated from {payment.voucher_number} "
            f"to PNR {travel_record.pnr_number}."
        )

    reversal = _append_reversal(uow, payment, travel_record, refund_amount)
    uow.touch_advance(payment.customer_id, payment.financial_year)
    logger.info(f"[Refund][Pmt:{payment.voucher_number}] Reversed {refund_amount} from PNR {travel_record.pnr_number}.")
    return reversal


# =============================================================================
# Public entry points
# =============================================================================

def allocate(
        payment_id: Any,
        lines: Iterable[Any],
        actor: settings.AUTH_USER_MODEL,
        allocation_type: str = AllocationType.MANUAL,
) -> List[PaymentAllocation]:
    """
    Allocates a payment across one or more PNRs as a single all-or-nothing batch.

    Raises:
        RecordNotFoundError: Payment or PNR missing.
        InvalidAmountError: A line amount is not a positive finite number.
        RecordClosedError: A PNR is year-end closed.
        OverAllocationError: A line exceeds the PNR's pending amount or the payment's remainder.
        AlreadyRefundedError / AlreadyDeletedError: Payment is no longer allocatable.
    """
    if allocation_type not in (AllocationType.MANUAL, AllocationType.AUTO):
        raise ValueError("Refund reversals are created by payment_service.refund_payment().")
    parsed = parse_allocation_lines(lines)
    log_prefix = f"[Allocate][Pmt:{payment_id}][User:{getattr(actor, 'pk', None)}]"
    logger.info(f"{log_prefix} {len(parsed)} line(s), type {allocation_type}.")

    with unit_of_work(actor, log_prefix) as uow:
        payment = lock_payment(payment_id)
        created = _allocate_lines(uow, payment, parsed, allocation_type)
        advance_service.refresh_touched_advances(uow)
    return created


def auto_allocate_fifo(payment_id: Any, actor: settings.AUTH_USER_MODEL) -> List[PaymentAllocation]:
    """Allocates whatever is left of a payment to the customer's pending PNRs, oldest first."""
    log_prefix = f"[AutoAllocate][Pmt:{payment_id}][User:{getattr(actor, 'pk', None)}]"
    with unit_of_work(actor, log_prefix) as uow:
        payment = lock_payment(payment_id)
        created = _allocate_fifo(uow, payment)
        advance_service.refresh_touched_advances(uow)
    logger.info(f"{log_prefix} Created {len(created)} allocation(s).")
    return created


def allocation_summary(payment: Payment) -> Dict[str, Decimal]:
    allocated = payment.allocated_amount()
    return {
        'amount': payment.amount,
        'allocated_amount': allocated,
        'refunded_allocations': allocated - payment.net_allocated_amount(),
        'unallocated_amount': max(ZERO, payment.amount - allocated),
    }
