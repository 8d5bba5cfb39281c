# tvl_payments/services/sequence_service.py

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction, IntegrityError

from tvl_core.enums import VoucherType
from tvl_core.utils import financial_year_bounds

from ..conf import get_setting
from ..models.sequence import VoucherSequence

logger = logging.getLogger(__name__)


def _normalise_voucher_type(voucher_type) -> str:
    value = str(voucher_type or '').strip().lower()
    if value not in VoucherType.values:
        raise ValueError(f"Unknown voucher type {voucher_type!r}. Expected one of: {', '.join(VoucherType.values)}.")
    return value


def _get_default_prefix(voucher_type_value: str) -> str:
    """First three letters of the voucher type, e.g. 'payment' -> 'PAY'."""
    return voucher_type_value[:3].upper()


def get_or_create_sequence_config(voucher_type, financial_year: str) -> VoucherSequence:
    """
    Retrieves the VoucherSequence for (voucher type, financial year), creating
    it at zero if it does not exist yet.

    Raises:
        ValueError: Unknown voucher type or malformed financial year label.
    """
    voucher_type_value = _normalise_voucher_type(voucher_type)
    financial_year_bounds(financial_year)

    lookup = {'voucher_type': voucher_type_value, 'financial_year': financial_year}
    try:
        sequence_config, created = VoucherSequence.objects.get_or_create(
            **lookup,
            defaults={
                'prefix': _get_default_prefix(voucher_type_value),
                'padding_digits': get_setting('VOUCHER_PADDING_DIGITS'),
                'last_number': 0,
            }
        )
    except (IntegrityError, DjangoValidationError):
        # A concurrent request created the row between our read and insert.
        sequence_config, created = VoucherSequence.objects.get(**lookup), False

    if created:
        logger.info(
            f"Created VoucherSequence for Type '{voucher_type_value}', FY {financial_year} "
            f"with prefix '{sequence_config.prefix}'."
        )
    return sequence_config


@transaction.atomic
def next_voucher(voucher_type, financial_year: str) -> str:
    """
    Atomically issues the next voucher number for (voucher type, financial year),
    formatted as PREFIX/FY/0001.

    The counter row is locked with select_for_update for the rest of the
    caller's transaction, so concurrent issuers of the same key queue behind
    each other while other keys are unaffected. When called inside a larger
    atomic block this nests as a savepoint and is rolled back with it.
    """
    sequence_config_initial = get_or_create_sequence_config(voucher_type, financial_year)

    sequence_locked = VoucherSequence.objects.select_for_update().get(pk=sequence_config_initial.pk)
    next_number_val = sequence_locked.last_number + 1
    sequence_locked.last_number = next_number_val
    sequence_locked.save(update_fields=['last_number', 'updated_at'])

    formatted_number = sequence_locked.format_number(next_number_val)
    logger.debug(
        f"Issued voucher '{formatted_number}' for Type '{sequence_locked.voucher_type}', "
        f"FY {financial_year} (Sequence No: {next_number_val})."
    )
    return formatted_number
