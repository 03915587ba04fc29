"""Loan store: the authoritative list of loans plus UI state, with undo.

The store owns a single :class:`~debt_calc.data_models.StoreState` value.
Every mutation replaces it and writes the replacement to a key-value
backend. Structural mutations (add, remove, update, reset) first push a deep
copy of the previous state onto an in-memory history so that :meth:`undo`
can restore it. Selection and UI changes are not recorded in the history.

Reads and mutations hold one re-entrant lock, so a store shared by a
threaded web server applies mutations one at a time.

Persistence is best effort: a backend that is unavailable or full degrades
the store to in-memory operation. Failures are logged and reported through
:meth:`LoanStore.persist`'s return value, never raised to the caller.
"""

from __future__ import annotations

import copy
import dataclasses
import json
import logging
import random
import string
import threading
from collections import deque
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from .data_models import Loan, StoreState, UIState, sanitize_sort_key
from .storage import STATE_KEY, KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def sample_loans() -> List[Loan]:
    """Return the built-in sample loans used when no saved state exists."""
    return [
        Loan(
            id="L1",
            description="Home Loan",
            principal=Decimal("2500000"),
            start_date=date(2023, 4, 1),
            annual_rate=Decimal("8.2"),
            tenure_months=240,
            extra_monthly=Decimal("2000"),
        ),
        Loan(
            id="L2",
            description="Car Loan",
            principal=Decimal("600000"),
            start_date=date(2024, 6, 15),
            annual_rate=Decimal("10"),
            tenure_months=60,
            extra_monthly=Decimal("1000"),
        ),
    ]


def default_state() -> StoreState:
    return StoreState(loans=sample_loans(), ui=UIState())


def random_loan_id() -> str:
    return "L" + "".join(random.choices(_ID_ALPHABET, k=5))


class LoanStore:
    """Holds loans and UI state, applies edits and supports undo.

    Parameters
    ----------
    storage: KeyValueStorage
        Backend the state blob is loaded from and persisted to.
    max_history: int, optional
        Maximum number of undo snapshots kept; the oldest are dropped first.
        ``None`` keeps every snapshot for the lifetime of the store.
    id_factory: callable, optional
        Generates candidate ids for new loans. Candidates that collide with an
        existing id are discarded.
    today: callable, optional
        Returns the date used as the start date of new loans.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        max_history: Optional[int] = None,
        id_factory: Callable[[], str] = random_loan_id,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._storage = storage
        self._id_factory = id_factory
        self._today = today
        self._history: Deque[StoreState] = deque(maxlen=max_history)
        self._lock = threading.RLock()
        self.last_persist_ok: Optional[bool] = None

        saved = self.load()
        if saved is None:
            logger.info("No usable saved state under %s, starting from sample loans", STATE_KEY)
            saved = default_state()
        self._state = saved

    # -- read access -----------------------------------------------------

    @property
    def state(self) -> StoreState:
        """A deep copy of the current state."""
        with self._lock:
            return copy.deepcopy(self._state)

    @property
    def loans(self) -> List[Loan]:
        with self._lock:
            return copy.deepcopy(self._state.loans)

    @property
    def ui(self) -> UIState:
        with self._lock:
            return copy.deepcopy(self._state.ui)

    @property
    def history_depth(self) -> int:
        return len(self._history)

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        with self._lock:
            for loan in self._state.loans:
                if loan.id == loan_id:
                    return copy.deepcopy(loan)
        return None

    # -- persistence -----------------------------------------------------

    def load(self) -> Optional[StoreState]:
        """Read the saved state, or return None if it is missing or unusable."""
        try:
            raw = self._storage.get_item(STATE_KEY)
            if not raw:
                return None
            return StoreState.from_dict(json.loads(raw))
        except StorageError as exc:
            logger.warning("Could not read saved state: %s", exc)
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            logger.info("Discarding malformed saved state: %s", exc)
        return None

    def persist(self) -> bool:
        """Write the current state to storage.

        Returns True on success. Failures are logged and swallowed; the
        in-memory state stays authoritative.
        """
        with self._lock:
            try:
                payload = json.dumps(self._state.to_dict())
                self._storage.set_item(STATE_KEY, payload)
                self.last_persist_ok = True
            except (StorageError, TypeError, ValueError) as exc:
                logger.warning("Failed to persist state, continuing in memory: %s", exc)
                self.last_persist_ok = False
            return self.last_persist_ok

    def _push_history(self) -> None:
        self._history.append(copy.deepcopy(self._state))

    def _commit(self, state: StoreState) -> None:
        self._state = state
        self.persist()

    # -- mutations -------------------------------------------------------

    def _new_id(self) -> str:
        existing = {loan.id for loan in self._state.loans}
        candidate = self._id_factory()
        while candidate in existing:
            candidate = self._id_factory()
        return candidate

    def add_loan(self) -> Loan:
        """Prepend a new loan with default terms and return it."""
        with self._lock:
            loan = Loan(
                id=self._new_id(),
                description="New Loan",
                principal=Decimal("100000"),
                start_date=self._today(),
                annual_rate=Decimal("10"),
                tenure_months=12,
                extra_monthly=Decimal("0"),
            )
            self._push_history()
            self._commit(StoreState(loans=[loan] + self._state.loans, ui=self._state.ui))
            return copy.deepcopy(loan)

    def remove_loan(self, loan_id: str) -> None:
        with self._lock:
            ui = self._state.ui
            selected_id = None if ui.selected_id == loan_id else ui.selected_id
            self._push_history()
            self._commit(
                StoreState(
                    loans=[loan for loan in self._state.loans if loan.id != loan_id],
                    ui=UIState(show_closed=ui.show_closed, sort_by=ui.sort_by, selected_id=selected_id),
                )
            )

    def update_loan(self, loan_id: str, patch: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        """Replace only the supplied fields on the loan with id ``loan_id``.

        Values are expected to be valid already (see
        :func:`debt_calc.editing.sanitize_patch`). An unknown id leaves the
        loans unchanged but is still recorded in the history. Unknown field
        names raise ``TypeError`` and an id change raises ``ValueError``;
        either way nothing is recorded.
        """
        changes: Dict[str, Any] = dict(patch or {})
        changes.update(fields)
        unknown = set(changes) - {f.name for f in dataclasses.fields(Loan)}
        if unknown:
            raise TypeError(f"Unknown loan fields: {', '.join(sorted(unknown))}")
        if changes.get("id", loan_id) != loan_id:
            raise ValueError("Loan id is immutable")
        with self._lock:
            loans = [loan.replace(**changes) if loan.id == loan_id else loan for loan in self._state.loans]
            self._push_history()
            self._commit(StoreState(loans=loans, ui=self._state.ui))

    def select(self, loan_id: Optional[str]) -> None:
        with self._lock:
            ui = self._state.ui
            self._commit(
                StoreState(
                    loans=self._state.loans,
                    ui=UIState(show_closed=ui.show_closed, sort_by=ui.sort_by, selected_id=loan_id),
                )
            )

    def set_ui(self, patch: Optional[Mapping[str, Any]] = None, **fields: Any) -> None:
        """Merge UI fields (``show_closed``, ``sort_by``, ``selected_id``)."""
        changes: Dict[str, Any] = dict(patch or {})
        changes.update(fields)
        unknown = set(changes) - {"show_closed", "sort_by", "selected_id"}
        if unknown:
            raise ValueError(f"Unknown UI fields: {', '.join(sorted(unknown))}")
        with self._lock:
            ui = self._state.ui
            next_ui = UIState(
                show_closed=bool(changes["show_closed"]) if "show_closed" in changes else ui.show_closed,
                sort_by=sanitize_sort_key(changes["sort_by"]) if changes.get("sort_by") else ui.sort_by,
                selected_id=changes.get("selected_id", ui.selected_id),
            )
            self._commit(StoreState(loans=self._state.loans, ui=next_ui))

    def reset(self) -> None:
        """Replace everything with the sample loans and default UI."""
        with self._lock:
            self._push_history()
            self._commit(default_state())

    def undo(self) -> bool:
        """Restore the most recent snapshot.

        Returns False, without touching the state or storage, when there is
        nothing to undo. Undo is not itself recorded, so there is no redo.
        """
        with self._lock:
            if not self._history:
                return False
            self._commit(self._history.pop())
            return True
