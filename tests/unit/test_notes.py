"""Test the note store"""

import pytest

from moonify.errors import (
    DoubleSpendLocal,
    DuplicateSalt,
    InsufficientFunds,
    NoteNotFound,
)
from moonify.notes import FirstFitSelector, NoteSelector, NoteStore
from moonify.types import Note

SECRET = 777


def make_store(*amounts):
    return NoteStore(Note.create(a, SECRET, i + 1) for i, a in enumerate(amounts))


class TestNoteStore:
    """Test note bookkeeping"""

    def test_add_and_get(self):
        store = make_store(100)
        assert store.get(1).amount == 100
        assert 1 in store
        assert len(store) == 1

    def test_duplicate_salt_rejected(self):
        """Adding a note with an existing salt fails and leaves the store unchanged"""
        store = make_store(100)
        with pytest.raises(DuplicateSalt):
            store.add_note(Note.create(50, SECRET, 1))
        assert store.get(1).amount == 100
        assert len(store) == 1

    def test_mark_spent(self):
        store = make_store(100, 50)
        spent = store.mark_spent(store.get(1))
        assert spent.spent
        assert store.get(1).spent
        assert store.available_balance() == 50

    def test_double_spend_rejected(self):
        """Marking the same note spent twice fails"""
        store = make_store(100)
        note = store.get(1)
        store.mark_spent(note)
        with pytest.raises(DoubleSpendLocal):
            store.mark_spent(note)

    def test_mark_spent_unknown_note(self):
        store = make_store(100)
        with pytest.raises(NoteNotFound):
            store.mark_spent(Note.create(100, SECRET, 9))

    def test_mark_spent_commitment_mismatch(self):
        """A note with a known salt but another commitment is not ours"""
        store = make_store(100)
        with pytest.raises(NoteNotFound):
            store.mark_spent(Note.create(100, SECRET + 1, 1))

    def test_get_unknown(self):
        with pytest.raises(NoteNotFound):
            make_store().get(3)

    def test_creation_order(self):
        store = NoteStore()
        for salt in (5, 2, 9):
            store.add_note(Note.create(10, SECRET, salt))
        assert [n.salt for n in store] == [5, 2, 9]

    def test_find_by_commitment(self):
        store = make_store(100, 50)
        note = store.get(2)
        assert store.find_by_commitment(note.commitment) == note
        assert store.find_by_commitment(bytes(32)) is None

    def test_snapshot_is_independent(self):
        """Mutating the original does not affect a snapshot"""
        store = make_store(100)
        copy = store.snapshot()
        store.mark_spent(store.get(1))
        store.add_note(Note.create(5, SECRET, 2))
        assert not copy.get(1).spent
        assert len(copy) == 1

    def test_summary_has_no_secret(self):
        store = make_store(100)
        (summary,) = store.summary()
        assert summary.amount == 100
        assert summary.commitment == store.get(1).commitment.hex()
        assert not hasattr(summary, "secret")


class TestSelection:
    """Test note selection"""

    def test_first_fit(self):
        """First note in creation order that covers the target wins"""
        store = make_store(10, 60, 80)
        assert store.select_spendable(50).salt == 2

    def test_exact_amount(self):
        store = make_store(50)
        assert store.select_spendable(50).salt == 1

    def test_skips_spent_notes(self):
        store = make_store(100, 100)
        store.mark_spent(store.get(1))
        assert store.select_spendable(100).salt == 2

    def test_insufficient_funds(self):
        store = make_store(10, 20)
        with pytest.raises(InsufficientFunds) as exc_info:
            store.select_spendable(50)
        assert exc_info.value.available == 30

    def test_fragmented_balance_message(self):
        """Total balance suffices but no single note does"""
        store = make_store(30, 30)
        with pytest.raises(InsufficientFunds, match="split"):
            store.select_spendable(50)

    def test_custom_selector(self):
        """Selection policy is pluggable"""

        class LargestFirst(NoteSelector):
            def select(self, notes, target):
                best = max(notes, key=lambda n: n.amount, default=None)
                return [best] if best and best.amount >= target else []

        store = NoteStore(make_store(60, 90, 70), selector=LargestFirst())
        assert store.select_spendable(50).salt == 2

    def test_first_fit_selector_empty(self):
        assert FirstFitSelector().select([], 1) == []
