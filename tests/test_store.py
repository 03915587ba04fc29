import json
import threading
from datetime import date
from decimal import Decimal

import pytest

from debt_calc.data_models import StoreState, UIState
from debt_calc.storage import STATE_KEY, MemoryStorage, StorageError
from debt_calc.store import LoanStore, default_state, sample_loans

from .conftest import TODAY


class BrokenStorage(MemoryStorage):
    """Storage whose reads and writes always fail."""

    def get_item(self, key):
        raise StorageError("backend unavailable")

    def set_item(self, key, value):
        raise StorageError("backend unavailable")


def saved_blob(storage):
    return json.loads(storage.get_item(STATE_KEY))


class TestInitialState:
    def test_empty_storage_uses_samples(self, store):
        assert [loan.id for loan in store.loans] == ["L1", "L2"]
        assert store.ui == UIState(show_closed=True, sort_by="payoff", selected_id=None)
        assert store.history_depth == 0

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[]",
            "null",
            '"text"',
            '{"loans": {}, "ui": {}}',
            '{"loans": []}',
            '{"ui": {}}',
            '{"loans": [], "ui": []}',
            '{"loans": [{"id": "x"}], "ui": {}}',
            '{"loans": [{"id": "x", "principal": "abc", "startDate": "2024-01-01", "annualRate": 1, "tenureMonths": 1}], "ui": {}}',
            '{"loans": [{"id": "x", "principal": 1, "startDate": "yesterday", "annualRate": 1, "tenureMonths": 1}], "ui": {}}',
            '{"loans": [{"id": "x", "principal": 1, "startDate": "2024-01-01", "annualRate": 1, "tenureMonths": 1e999}], "ui": {}}',
            '{"loans": [{"id": "x", "principal": 1, "startDate": "2024-01-01", "annualRate": 1, "tenureMonths": Infinity}], "ui": {}}',
            '{"loans": [{"id": "x", "principal": 1, "startDate": "2024-01-01", "annualRate": 1, "tenureMonths": 12.5}], "ui": {}}',
        ],
    )
    def test_malformed_state_falls_back_to_samples(self, raw):
        store = LoanStore(MemoryStorage({STATE_KEY: raw}))
        assert store.state == default_state()

    def test_unreadable_storage_falls_back_to_samples(self):
        store = LoanStore(BrokenStorage())
        assert store.state == default_state()

    def test_loaded_ui_is_sanitized(self):
        blob = {"loans": [], "ui": {"showClosed": 0, "sortBy": "bogus", "selectedId": "L9"}}
        store = LoanStore(MemoryStorage({STATE_KEY: json.dumps(blob)}))
        assert store.ui == UIState(show_closed=False, sort_by="payoff", selected_id="L9")

    def test_loaded_outstanding_sort_is_kept(self):
        blob = {"loans": [], "ui": {"showClosed": True, "sortBy": "outstanding"}}
        store = LoanStore(MemoryStorage({STATE_KEY: json.dumps(blob)}))
        assert store.ui.sort_by == "outstanding"
        assert store.ui.selected_id is None

    def test_saved_state_is_loaded(self, store, memory_storage):
        store.update_loan("L1", description="Mortgage", annual_rate=Decimal("7.45"))
        reloaded = LoanStore(memory_storage)
        assert reloaded.state == store.state
        assert reloaded.get_loan("L1").annual_rate == Decimal("7.45")


class TestPersistence:
    def test_round_trip(self, store, memory_storage):
        store.set_ui(show_closed=False, sort_by="outstanding", selected_id="L2")
        assert store.persist() is True
        assert LoanStore(memory_storage).load() == store.state

    def test_high_precision_values_survive_reload(self, store, memory_storage):
        store.update_loan(
            "L1",
            principal=Decimal("1234567.123456789012345"),
            annual_rate=Decimal("8.123456789012345678"),
        )
        reloaded = LoanStore(memory_storage)
        assert reloaded.state == store.state
        assert reloaded.get_loan("L1").principal == Decimal("1234567.123456789012345")

    def test_blob_shape(self, store, memory_storage):
        store.persist()
        blob = saved_blob(memory_storage)
        assert set(blob) == {"loans", "ui"}
        assert blob["ui"] == {"showClosed": True, "sortBy": "payoff", "selectedId": None}
        assert blob["loans"][0] == {
            "id": "L1",
            "description": "Home Loan",
            "principal": 2500000,
            "startDate": "2023-04-01",
            "annualRate": 8.2,
            "tenureMonths": 240,
            "extraMonthly": 2000,
        }

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda s: s.add_loan(),
            lambda s: s.remove_loan("L2"),
            lambda s: s.update_loan("L1", description="Edited"),
            lambda s: s.select("L1"),
            lambda s: s.set_ui(sort_by="outstanding"),
            lambda s: s.reset(),
        ],
    )
    def test_every_mutation_persists(self, store, memory_storage, mutate):
        mutate(store)
        assert saved_blob(memory_storage) == store.state.to_dict()
        assert store.last_persist_ok is True

    def test_write_failure_keeps_state_in_memory(self, id_factory):
        storage = MemoryStorage(max_bytes=10)
        store = LoanStore(storage, id_factory=id_factory, today=lambda: TODAY)
        loan = store.add_loan()
        assert store.last_persist_ok is False
        assert store.persist() is False
        assert store.loans[0] == loan
        assert storage.get_item(STATE_KEY) is None

    def test_unavailable_backend_never_raises(self):
        store = LoanStore(BrokenStorage())
        store.add_loan()
        store.select(None)
        assert store.undo() is True
        assert store.state == default_state()
        assert store.last_persist_ok is False


class TestAddLoan:
    def test_add_to_empty_store(self, empty_store):
        loan = empty_store.add_loan()
        loans = empty_store.loans
        assert len(loans) == 1
        assert loans[0] == loan
        assert loan.tenure_months == 12
        assert loan.extra_monthly == 0
        assert loan.id == "N1"

    def test_defaults(self, store):
        loan = store.add_loan()
        assert loan.description == "New Loan"
        assert loan.principal == Decimal("100000")
        assert loan.annual_rate == Decimal("10")
        assert loan.start_date == TODAY

    def test_prepends(self, store):
        loan = store.add_loan()
        assert [l.id for l in store.loans] == [loan.id, "L1", "L2"]

    def test_ids_are_unique(self, store):
        ids = {store.add_loan().id for _ in range(5)}
        assert len(ids) == 5
        assert not ids & {"L1", "L2"}

    def test_colliding_id_is_regenerated(self, memory_storage):
        candidates = iter(["L1", "L2", "Lfresh"])
        store = LoanStore(memory_storage, id_factory=lambda: next(candidates))
        assert store.add_loan().id == "Lfresh"

    def test_default_ids_look_like_samples(self, memory_storage):
        loan = LoanStore(memory_storage).add_loan()
        assert loan.id.startswith("L")
        assert len(loan.id) == 6


class TestRemoveLoan:
    def test_removes(self, store):
        store.remove_loan("L1")
        assert [l.id for l in store.loans] == ["L2"]
        assert store.history_depth == 1

    def test_clears_selection_of_removed_loan(self, store):
        store.select("L1")
        store.remove_loan("L1")
        assert store.ui.selected_id is None

    def test_keeps_other_selection(self, store):
        store.select("L2")
        store.remove_loan("L1")
        assert store.ui.selected_id == "L2"

    def test_unknown_id_only_records_history(self, store):
        before = store.state
        store.remove_loan("nope")
        assert store.state == before
        assert store.history_depth == 1


class TestUpdateLoan:
    def test_updates_only_supplied_fields(self, store):
        original = store.get_loan("L2")
        store.update_loan("L2", {"extra_monthly": Decimal("5000")})
        updated = store.get_loan("L2")
        assert updated.extra_monthly == Decimal("5000")
        assert updated.replace(extra_monthly=original.extra_monthly) == original
        assert store.get_loan("L1") == sample_loans()[0]

    def test_keyword_fields(self, store):
        store.update_loan("L1", tenure_months=120, start_date=date(2022, 1, 1))
        loan = store.get_loan("L1")
        assert loan.tenure_months == 120
        assert loan.start_date == date(2022, 1, 1)

    def test_unknown_id_leaves_loans_unchanged(self, store):
        before = store.loans
        store.update_loan("nope", description="x")
        assert store.loans == before
        assert store.history_depth == 1

    def test_id_cannot_change(self, store):
        with pytest.raises(ValueError):
            store.update_loan("L1", id="L9")
        assert store.history_depth == 0
        assert store.undo() is False

    def test_unknown_field_records_nothing(self, store):
        before = store.state
        with pytest.raises(TypeError):
            store.update_loan("L1", bogus=1)
        assert store.state == before
        assert store.history_depth == 0


class TestSelectAndUI:
    def test_select_does_not_record_history(self, store):
        store.select("L2")
        assert store.ui.selected_id == "L2"
        store.select(None)
        assert store.ui.selected_id is None
        assert store.history_depth == 0

    def test_set_ui_merges(self, store):
        store.set_ui(show_closed=False)
        store.set_ui({"sort_by": "outstanding"})
        assert store.ui == UIState(show_closed=False, sort_by="outstanding", selected_id=None)
        assert store.history_depth == 0

    def test_set_ui_sanitizes_sort_key(self, store):
        store.set_ui(sort_by="outstanding")
        store.set_ui(sort_by="alphabetical")
        assert store.ui.sort_by == "payoff"

    def test_set_ui_rejects_unknown_fields(self, store):
        with pytest.raises(ValueError):
            store.set_ui(theme="dark")


class TestReset:
    def test_restores_samples_and_defaults(self, store):
        store.add_loan()
        store.remove_loan("L1")
        store.set_ui(show_closed=False, selected_id="L2")
        store.reset()
        assert store.state == default_state()
        assert store.history_depth == 3


class TestUndo:
    def test_undo_restores_each_step(self, store):
        s0 = store.state
        store.add_loan()
        s1 = store.state
        store.update_loan("L1", description="Changed")
        s2 = store.state
        store.remove_loan("L2")
        store.reset()

        assert store.undo()
        store.undo()
        assert store.state == s2
        store.undo()
        assert store.state == s1
        store.undo()
        assert store.state == s0

    def test_extra_undo_is_noop(self, store, memory_storage):
        store.add_loan()
        store.undo()
        s0 = store.state
        blob = memory_storage.get_item(STATE_KEY)
        assert store.undo() is False
        assert store.state == s0
        assert memory_storage.get_item(STATE_KEY) == blob

    def test_undo_on_fresh_store(self, store):
        assert store.undo() is False
        assert store.state == default_state()

    def test_undo_restores_ui_captured_in_snapshot(self, store):
        store.select("L1")
        store.remove_loan("L1")
        store.undo()
        assert store.ui.selected_id == "L1"
        assert store.get_loan("L1") is not None

    def test_undo_is_persisted(self, store, memory_storage):
        store.remove_loan("L1")
        store.undo()
        assert LoanStore(memory_storage).state == store.state

    def test_snapshots_are_isolated(self, store):
        store.add_loan()
        state = store.state
        state.loans.clear()
        state.ui.sort_by = "outstanding"
        assert len(store.loans) == 3
        store.undo()
        assert store.state == default_state()

    def test_bounded_history_drops_oldest(self, memory_storage, id_factory):
        store = LoanStore(memory_storage, max_history=2, id_factory=id_factory)
        store.add_loan()
        store.add_loan()
        after_second = store.state
        store.add_loan()
        assert store.history_depth == 2
        assert store.undo()
        assert store.undo()
        assert store.state != default_state()
        assert len(store.loans) == len(after_second.loans) - 1
        assert store.undo() is False


class TestConcurrentAccess:
    def test_parallel_mutations_are_not_lost(self, store):
        def worker():
            for _ in range(25):
                store.add_loan()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.loans) == 2 + 8 * 25
        assert len({loan.id for loan in store.loans}) == len(store.loans)
        assert store.history_depth == 8 * 25
        while store.undo():
            pass
        assert store.state == default_state()


class TestStateModel:
    def test_state_to_dict_and_back(self):
        state = StoreState(loans=sample_loans(), ui=UIState(show_closed=False, sort_by="outstanding", selected_id="L1"))
        assert StoreState.from_dict(json.loads(json.dumps(state.to_dict()))) == state
