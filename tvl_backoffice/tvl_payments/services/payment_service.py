# tvl_payments/services/payment_service.py

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from tvl_core.enums import (
    AccountStatus, AllocationType, BookingStatus, LedgerEntryType, PaymentStatus, VerificationAction,
    VerificationStatus
)
from tvl_core.utils import accounting_period, exceeds_money_digits, financial_year, to_decimal, today
from tvl_core.validators import validate_breakdown_total

from ..conf import get_setting
from ..exceptions import AlreadyDeletedError, AlreadyRefundedError, InvalidAmountError, InvalidPaymentStatusError
from ..models import BREAKDOWN_FIELDS, ZERO, Booking, BookingAccount, Payment, TravelRecord
from . import advance_service, allocation_service, ledger_service
from .allocation_service import AllocationLine
from .lookups import get_record
from .sequence_service import next_voucher
from .uow import UnitOfWork, unit_of_work

logger = logging.getLogger("tvl_payments.services.payments")


# =============================================================================
# Input checks (run before the unit of work opens)
# =============================================================================

def _parse_amount(value, label: str = "Amount") -> Decimal:
    amount = to_decimal(value)
    if amount is None:
        raise InvalidAmountError(f"{label} {value!r} is not a finite number.")
    if amount <= ZERO:
        raise InvalidAmountError(f"{label} must be greater than zero.")
    if exceeds_money_digits(amount):
        raise InvalidAmountError(f"{label} {amount} is too large to record.")
    return amount


def _parse_breakdown(amount: Decimal, breakdown: Optional[Dict[str, Any]]) -> Dict[str, Optional[Decimal]]:
    if not breakdown:
        return {}
    unknown = set(breakdown) - set(BREAKDOWN_FIELDS)
    if unknown:
        raise InvalidAmountError(f"Unknown breakdown component(s): {', '.join(sorted(unknown))}.")

    parsed: Dict[str, Optional[Decimal]] = {}
    for name, raw in breakdown.items():
        if raw is None or raw == '':
            continue
        value = to_decimal(raw)
        if value is None or value < ZERO or exceeds_money_digits(value):
            raise InvalidAmountError(f"Breakdown component '{name}' must be a non-negative number.")
        parsed[name] = value
    try:
        validate_breakdown_total(amount, parsed.values())
    except DjangoValidationError as exc:
        raise InvalidAmountError(' '.join(exc.messages))
    return parsed


# =============================================================================
# Account / booking bookkeeping (caller owns the unit of work)
# =============================================================================

def _lock_booking_and_account(uow: UnitOfWork, booking_id=None, account_id=None) -> Tuple[Booking, BookingAccount]:
    """
    Locks booking then account, in that order everywhere, creating a
    zero-balance account for a booking that does not have one yet.
    """
    uow.assert_active()
    if booking_id is None and account_id is None:
        raise ValueError("Either booking_id or account_id is required.")
    if booking_id is None:
        booking_id = get_record(BookingAccount, 'Account', pk=account_id).booking_id

    booking = get_record(Booking.objects.select_for_update(), 'Booking', pk=booking_id)
    account = BookingAccount.objects.select_for_update().filter(booking=booking).first()
    if account is None:
        total = booking.total_amount or ZERO
        account = BookingAccount(
            booking=booking, total_amount=total, received_amount=ZERO, pending_amount=total,
            created_by=uow.actor, updated_by=uow.actor,
        )
        account.save()
        logger.info(f"[Account][Booking:{booking.booking_number}] Created zero-balance funding account.")
    return booking, account


def _apply_to_account(uow: UnitOfWork, booking: Booking, account: BookingAccount, delta: Decimal) -> None:
    """
    Moves the account's received amount by `delta` and re-derives account and
    booking pending/status. The booking's own figures only change when its
    total is known.
    """
    if booking.total_amount is not None:
        account.total_amount = booking.total_amount
    account.received_amount = account.received_amount + delta
    account.pending_amount = max(ZERO, account.total_amount - account.received_amount)
    settled = account.total_amount > ZERO and account.pending_amount <= ZERO
    account.status = AccountStatus.SETTLED if settled else AccountStatus.OPEN
    account.updated_by = uow.actor
    account.save(update_fields=[
        'total_amount', 'received_amount', 'pending_amount', 'status', 'updated_by', 'updated_at'
    ])

    booking.paid_amount = account.received_amount
    update_fields = ['paid_amount', 'updated_by', 'updated_at']
    if booking.total_amount is not None:
        booking.pending_amount = max(ZERO, booking.total_amount - booking.paid_amount)
        update_fields.append('pending_amount')
        if booking.status != BookingStatus.CANCELLED:
            if booking.pending_amount <= ZERO:
                booking.status = BookingStatus.FUNDS_SETTLED
            elif booking.status == BookingStatus.FUNDS_SETTLED:
                booking.status = BookingStatus.CONFIRMED
            update_fields.append('status')
    booking.updated_by = uow.actor
    booking.save(update_fields=update_fields)


def _lock_live_payment(payment_id) -> Payment:
    payment = allocation_service.lock_payment(payment_id)
    if payment.status == PaymentStatus.DELETED:
        raise AlreadyDeletedError(payment.voucher_number)
    return payment


# =============================================================================
# Public entry points
# =============================================================================

def create_payment(
        *,
        amount,
        mode: str,
        actor: settings.AUTH_USER_MODEL,
        booking_id: Any = None,
        account_id: Any = None,
        payment_date: Optional[date] = None,
        reference_number: str = '',
        breakdown: Optional[Dict[str, Any]] = None,
        remarks: str = '',
        travel_record_id: Any = None,
        auto_allocate: bool = False,
) -> Payment:
    """
    Records money received for a booking.

    The payment is stamped with the financial year and accounting period of
    its payment date and a receipt voucher number, the funding account's
    received amount grows by the amount, and the booking is marked
    FUNDS_SETTLED once nothing is pending. With `travel_record_id` the payment
    is immediately allocated to that PNR (up to its pending amount); with
    `auto_allocate` any remainder is spread over the customer's oldest pending
    PNRs. All of it commits together or not at all.
    """
    amount = _parse_amount(amount)
    parsed_breakdown = _parse_breakdown(amount, breakdown)
    payment_date = payment_date or today()
    fy = financial_year(payment_date)
    log_prefix = f"[CreatePayment][Booking:{booking_id or '-'}][Acc:{account_id or '-'}][User:{getattr(actor, 'pk', None)}]"
    logger.info(f"{log_prefix} Amount {amount} via {mode}, dated {payment_date}.")

    with unit_of_work(actor, log_prefix) as uow:
        booking, account = _lock_booking_and_account(uow, booking_id=booking_id, account_id=account_id)

        travel_record = None
        if travel_record_id is not None:
            travel_record = get_record(TravelRecord, 'PNR', pk=travel_record_id)
            if travel_record.booking.customer_id != booking.customer_id:
                raise DjangoValidationError({
                    'travel_record_id': _("PNR %(pnr)s belongs to a different customer.")
                                        % {'pnr': travel_record.pnr_number}
                })

        voucher_number = next_voucher(get_setting('RECEIPT_VOUCHER_TYPE'), fy)
        payment = Payment(
            account=account,
            customer_id=booking.customer_id,
            travel_record=travel_record,
            amount=amount,
            mode=mode,
            reference_number=reference_number or '',
            payment_date=payment_date,
            received_date=payment_date,
            received_by=actor,
            status=PaymentStatus.RECEIVED,
            financial_year=fy,
            accounting_period=accounting_period(payment_date),
            voucher_number=voucher_number,
            remarks=remarks or '',
            created_by=actor,
            updated_by=actor,
            **parsed_breakdown,
        )
        payment.save()

        _apply_to_account(uow, booking, account, amount)
        ledger_service.append_entry(
            LedgerEntryType.CREDIT,
            amount,
            user=actor,
            financial_year=fy,
            payment=payment,
            account=account,
            entry_reference=voucher_number,
            remarks=f"Payment received ({payment.get_mode_display()})",
        )
        uow.touch_advance(payment.customer_id, fy)

        if travel_record is not None:
            locked_pnr = get_record(TravelRecord.objects.select_for_update(), 'PNR', pk=travel_record.pk)
            portion = min(amount, max(ZERO, locked_pnr.total_amount - locked_pnr.paid_amount))
            if portion > ZERO:
                allocation_service._allocate_lines(
                    uow, payment,
                    [AllocationLine(amount=portion, travel_record_id=locked_pnr.pk, remarks="Allocated on receipt")],
                    AllocationType.AUTO,
                )
        if auto_allocate:
            allocation_service._allocate_fifo(uow, payment)

        advance_service.refresh_touched_advances(uow)

    logger.info(f"{log_prefix} Recorded payment {payment.voucher_number} ({payment.get_status_display()}).")
    return payment


def refund_payment(
        payment_id: Any,
        refund_amount,
        remarks: str,
        actor: settings.AUTH_USER_MODEL,
        travel_record_id: Any = None,
        pnr_number: Optional[str] = None,
) -> Payment:
    """
    Refunds part or all of a payment.

    A new negative Payment row (refund voucher) records the money going back,
    the original is marked REFUNDED, the account and booking are reduced, and
    each allocation made from the original is reversed proportionally through
    negative REFUND allocations, which re-derives the affected PNRs.

    When a PNR is given (by id or PNR number) only that PNR's allocation is
    reversed, by the full refund amount, and the refund may not exceed what
    the payment put on it.

    Returns the refund record.
    """
    refund = _parse_amount(refund_amount, "Refund amount")
    log_prefix = f"[RefundPayment][Pmt:{payment_id}][User:{getattr(actor, 'pk', None)}]"
    logger.info(f"{log_prefix} Refund {refund} requested.")

    with unit_of_work(actor, log_prefix) as uow:
        payment = _lock_live_payment(payment_id)
        if payment.is_refund:
            raise InvalidPaymentStatusError(payment.status, message=_("A refund record cannot itself be refunded."))
        if payment.status == PaymentStatus.REFUNDED:
            raise AlreadyRefundedError(payment.voucher_number)
        if refund > payment.amount:
            raise InvalidAmountError(
                f"Refund amount {refund} exceeds payment {payment.voucher_number} amount {payment.amount}."
            )

        booking, account = _lock_booking_and_account(uow, account_id=payment.account_id)
        fy = uow.financial_year
        voucher_number = next_voucher(get_setting('REFUND_VOUCHER_TYPE'), fy)
        refund_record = Payment(
            account=account,
            customer_id=payment.customer_id,
            travel_record=payment.travel_record,
            refund_of=payment,
            amount=-refund,
            mode=payment.mode,
            reference_number=payment.reference_number,
            payment_date=uow.business_date,
            received_date=uow.business_date,
            received_by=actor,
            status=PaymentStatus.REFUNDED,
            financial_year=fy,
            accounting_period=accounting_period(uow.business_date),
            voucher_number=voucher_number,
            remarks=remarks or f"Refund against {payment.voucher_number}",
            created_by=actor,
            updated_by=actor,
        )
        refund_record.save()

        payment.status = PaymentStatus.REFUNDED
        payment.updated_by = actor
        payment.save(update_fields=['status', 'updated_by', 'updated_at'])

        _apply_to_account(uow, booking, account, -refund)
        ledger_service.append_entry(
            LedgerEntryType.DEBIT,
            refund,
            user=actor,
            financial_year=fy,
            payment=payment,
            account=account,
            entry_reference=voucher_number,
            remarks=remarks or f"Refund against {payment.voucher_number}",
        )
        if travel_record_id is not None or pnr_number:
            allocation_service.reverse_travel_record_allocation(
                uow, payment, refund, travel_record_id=travel_record_id, pnr_number=pnr_number
            )
        else:
            allocation_service.reverse_allocations(uow, payment, refund)
        uow.touch_advance(payment.customer_id, payment.financial_year)
        advance_service.refresh_touched_advances(uow)

    logger.info(f"{log_prefix} Refund {refund_record.voucher_number} recorded against {payment.voucher_number}.")
    return refund_record


def _soft_delete(uow: UnitOfWork, payment: Payment, reason: str) -> Payment:
    log_prefix = f"[DeletePayment][Pmt:{payment.voucher_number}]"
    if payment.status == PaymentStatus.DELETED:
        raise AlreadyDeletedError(payment.voucher_number)
    if payment.is_refund:
        raise InvalidPaymentStatusError(payment.status, message=_("Refund records cannot be deleted."))
    net_allocated = payment.net_allocated_amount()
    if net_allocated != ZERO:
        raise InvalidPaymentStatusError(
            payment.status,
            message=_("Payment %(voucher)s still has %(amount)s allocated to PNRs; refund it before deleting.")
                    % {'voucher': payment.voucher_number, 'amount': net_allocated},
        )

    refunded = -(payment.refunds.aggregate(s=Sum('amount'))['s'] or ZERO)
    still_counted = payment.amount - refunded
    booking, account = _lock_booking_and_account(uow, account_id=payment.account_id)
    if still_counted > ZERO:
        _apply_to_account(uow, booking, account, -still_counted)
        ledger_service.append_entry(
            LedgerEntryType.DEBIT,
            still_counted,
            user=uow.actor,
            financial_year=uow.financial_year,
            payment=payment,
            account=account,
            remarks=f"Payment {payment.voucher_number} deleted. {reason}".strip(),
        )

    payment.status = PaymentStatus.DELETED
    if reason:
        payment.remarks = f"{payment.remarks}\nDeleted: {reason}".strip()
    payment.updated_by = uow.actor
    payment.save(update_fields=['status', 'remarks', 'updated_by', 'updated_at'])
    payment.delete()  # soft delete, the row stays for the ledger entries that reference it
    uow.touch_advance(payment.customer_id, payment.financial_year)
    logger.info(f"{log_prefix} Soft-deleted; {still_counted} taken off account received.")
    return payment


def delete_payment(payment_id: Any, actor: settings.AUTH_USER_MODEL, reason: str = '') -> Payment:
    """
    Soft-deletes a payment: status DELETED and hidden from default querysets.
    Nothing is physically removed. Payments with live allocations must be
    refunded first.
    """
    log_prefix = f"[DeletePayment][Pmt:{payment_id}][User:{getattr(actor, 'pk', None)}]"
    with unit_of_work(actor, log_prefix) as uow:
        payment = allocation_service.lock_payment(payment_id)
        _soft_delete(uow, payment, reason)
        advance_service.refresh_touched_advances(uow)
    return payment


def update_payment(
        payment_id: Any,
        actor: settings.AUTH_USER_MODEL,
        *,
        status: Optional[str] = None,
        received_date: Optional[date] = None,
        remarks: Optional[str] = None,
) -> Payment:
    """
    Restricted update of status, received date and remarks.

    RECEIVED and ADJUSTED follow the allocation totals, so a manual flip
    between them is only accepted when it agrees with them; REFUNDED is only
    reachable through refund_payment(); DELETED performs a soft delete.
    The financial year and period stay those of the payment date.
    """
    log_prefix = f"[UpdatePayment][Pmt:{payment_id}][User:{getattr(actor, 'pk', None)}]"
    with unit_of_work(actor, log_prefix) as uow:
        payment = _lock_live_payment(payment_id)

        if status is not None and status != payment.status:
            if status == PaymentStatus.DELETED:
                _soft_delete(uow, payment, remarks or '')
                advance_service.refresh_touched_advances(uow)
                return payment
            if status not in (PaymentStatus.RECEIVED, PaymentStatus.ADJUSTED):
                raise InvalidPaymentStatusError(
                    payment.status, [PaymentStatus.RECEIVED, PaymentStatus.ADJUSTED],
                    message=_("Status '%(status)s' cannot be set directly; use the refund operation.")
                            % {'status': status},
                )
            if payment.status == PaymentStatus.REFUNDED or payment.is_refund:
                raise AlreadyRefundedError(payment.voucher_number)
            fully_allocated = payment.allocated_amount() == payment.amount
            if (status == PaymentStatus.ADJUSTED) != fully_allocated:
                raise InvalidPaymentStatusError(
                    payment.status,
                    message=_("Status %(status)s does not match the allocations of %(voucher)s.")
                            % {'status': status, 'voucher': payment.voucher_number},
                )
            payment.status = status

        if received_date is not None:
            payment.received_date = received_date
        if remarks is not None:
            payment.remarks = remarks
        payment.updated_by = actor
        payment.save(update_fields=['status', 'received_date', 'remarks', 'updated_by', 'updated_at'])

    logger.info(f"{log_prefix} Updated ({payment.get_status_display()}).")
    return payment


def verify_payment(payment_id: Any, actor: settings.AUTH_USER_MODEL, action: str, remarks: str = '') -> Payment:
    """Marks a payment VERIFIED or REJECTED by the accounts team."""
    action_value = str(action or '').upper()
    if action_value not in VerificationAction.values:
        raise DjangoValidationError({'action': _("Action must be VERIFY or REJECT.")})

    log_prefix = f"[VerifyPayment][Pmt:{payment_id}][User:{getattr(actor, 'pk', None)}]"
    with unit_of_work(actor, log_prefix):
        payment = _lock_live_payment(payment_id)
        payment.verification_status = (
            VerificationStatus.VERIFIED if action_value == VerificationAction.VERIFY else VerificationStatus.REJECTED
        )
        payment.verified_by = actor
        payment.verified_at = timezone.now()
        if remarks:
            payment.remarks = f"{payment.remarks}\n{action_value.title()}: {remarks}".strip()
        payment.updated_by = actor
        payment.save(update_fields=[
            'verification_status', 'verified_by', 'verified_at', 'remarks', 'updated_by', 'updated_at'
        ])
    logger.info(f"{log_prefix} {payment.get_verification_status_display()}.")
    return payment


def get_payment(payment_id: Any) -> Payment:
    """Fetches a payment, soft-deleted ones included."""
    return get_record(
        Payment.all_objects.select_related('account__booking', 'customer', 'travel_record', 'received_by'),
        'Payment', pk=payment_id
    )
