# tvl_payments/services/uow.py

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional, Set, Tuple

from django.db import DEFAULT_DB_ALIAS, DatabaseError, OperationalError, transaction

from tvl_core.utils import financial_year, today

from ..exceptions import ConcurrencyConflictError, PersistenceError

logger = logging.getLogger("tvl_payments.services.uow")


@dataclass
class UnitOfWork:
    """
    Handle for one logical ledger operation. Opened once by the public service
    entry point and passed to every internal helper, which rely on it instead
    of opening transactions of their own.
    """
    actor: Any
    using: str = DEFAULT_DB_ALIAS
    business_date: date = field(default_factory=today)
    touched_advances: Set[Tuple[Any, str]] = field(default_factory=set)

    @property
    def financial_year(self) -> str:
        return financial_year(self.business_date)

    def touch_advance(self, customer_id, fy: str) -> None:
        """Marks a (customer, financial year) advance cache for refresh before commit."""
        self.touched_advances.add((customer_id, fy))

    def assert_active(self) -> None:
        if not transaction.get_connection(self.using).in_atomic_block:
            raise RuntimeError("Ledger helpers must run inside the unit of work's transaction.")


@contextmanager
def unit_of_work(actor, log_prefix: str = "[UoW]", using: Optional[str] = None):
    """
    Opens the single atomic block for a ledger operation.

    Lock timeouts, deadlocks and serialization failures surface as
    ConcurrencyConflictError; any other database failure as PersistenceError.
    Either way the whole operation has been rolled back.
    """
    alias = using or DEFAULT_DB_ALIAS
    try:
        with transaction.atomic(using=alias):
            yield UnitOfWork(actor=actor, using=alias)
    except OperationalError as exc:
        logger.warning(f"{log_prefix} Transaction could not be serialized, rolled back: {exc}")
        raise ConcurrencyConflictError() from exc
    except DatabaseError as exc:
        logger.exception(f"{log_prefix} Database failure, rolled back.")
        raise PersistenceError() from exc
