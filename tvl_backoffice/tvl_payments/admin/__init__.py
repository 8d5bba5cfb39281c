from . import ledger  # noqa: F401  registers the ModelAdmins
