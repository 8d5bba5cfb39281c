# tvl_payments/conf.py

"""
Engine settings with defaults. Override any key in Django settings as
TVL_<NAME>, e.g. TVL_VOUCHER_PADDING_DIGITS = 5.
"""

from django.conf import settings

from tvl_core.enums import VoucherType

DEFAULTS = {
    'VOUCHER_PADDING_DIGITS': 4,
    'RECEIPT_VOUCHER_TYPE': VoucherType.RECEIPT,
    'REFUND_VOUCHER_TYPE': VoucherType.REFUND,
    'ALLOCATION_VOUCHER_TYPE': VoucherType.JOURNAL,
    'FIFO_ALLOCATION_REMARK': "FIFO automatic allocation",
}


def get_setting(name: str):
    if name not in DEFAULTS:
        raise KeyError(f"Unknown ledger setting: {name}")
    return getattr(settings, f"TVL_{name}", DEFAULTS[name])
