"""
Note store

Notes are kept in a mapping keyed by salt, the note's stable identifier in a
wallet. Dict insertion order doubles as creation order, which the selection
policy relies on. Notes are immutable values; marking one spent replaces the
stored value, so snapshots handed to the builder never change underneath it.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional

from .errors import DoubleSpendLocal, DuplicateSalt, InsufficientFunds, NoteNotFound
from .types import Note, NoteSummary


class NoteSelector(ABC):
    """Strategy choosing which unspent notes fund a target amount"""

    @abstractmethod
    def select(self, notes: Iterable[Note], target: int) -> list[Note]:
        """
        Pick notes covering ``target``

        Args:
            notes: Unspent notes in creation order
            target: Amount to cover

        Returns:
            Selected notes, or an empty list if the target cannot be covered
        """


class FirstFitSelector(NoteSelector):
    """First unspent note, in creation order, whose amount covers the target"""

    def select(self, notes: Iterable[Note], target: int) -> list[Note]:
        for note in notes:
            if note.amount >= target:
                return [note]
        return []


class NoteStore:
    """Ordered set of a wallet's notes with spent/unspent status"""

    def __init__(
        self,
        notes: Iterable[Note] = (),
        selector: Optional[NoteSelector] = None,
    ):
        self._notes: dict[int, Note] = {}
        self.selector = selector or FirstFitSelector()
        for note in notes:
            self.add_note(note)

    def __len__(self) -> int:
        return len(self._notes)

    def __iter__(self) -> Iterator[Note]:
        return iter(list(self._notes.values()))

    def __contains__(self, salt: int) -> bool:
        return salt in self._notes

    def add_note(self, note: Note) -> None:
        """
        Append a note

        Raises:
            DuplicateSalt: If a note with the same salt already exists
        """
        if note.salt in self._notes:
            raise DuplicateSalt(note.salt)
        self._notes[note.salt] = note

    def get(self, salt: int) -> Note:
        try:
            return self._notes[salt]
        except KeyError:
            raise NoteNotFound(salt) from None

    def find_by_commitment(self, commitment: bytes) -> Optional[Note]:
        for note in self._notes.values():
            if note.commitment == commitment:
                return note
        return None

    def mark_spent(self, note: Note) -> Note:
        """
        Flag a note as spent

        Raises:
            NoteNotFound: If the note is not in this store
            DoubleSpendLocal: If the note is already spent
        """
        current = self.get(note.salt)
        if current.commitment != note.commitment:
            raise NoteNotFound(note.salt)
        if current.spent:
            raise DoubleSpendLocal(note.salt)

        spent = Note(
            amount=current.amount,
            salt=current.salt,
            commitment=current.commitment,
            spent=True,
        )
        self._notes[note.salt] = spent
        return spent

    def unspent(self) -> list[Note]:
        return [note for note in self._notes.values() if not note.spent]

    def available_balance(self) -> int:
        return sum(note.amount for note in self._notes.values() if not note.spent)

    def select_notes(self, target: int) -> list[Note]:
        """
        Select notes covering ``target`` with the configured selector

        Raises:
            InsufficientFunds: If the selector finds no covering set
        """
        selected = self.selector.select(self.unspent(), target)
        if not selected:
            raise InsufficientFunds(target, self.available_balance())
        return selected

    def select_spendable(self, target: int) -> Note:
        """
        Select a single note covering ``target``

        Raises:
            InsufficientFunds: If no single unspent note covers the target
        """
        selected = self.select_notes(target)
        if len(selected) != 1:
            raise InsufficientFunds(target, self.available_balance())
        return selected[0]

    def snapshot(self) -> "NoteStore":
        """Independent copy; later mutations of either store are not shared"""
        copy = NoteStore(selector=self.selector)
        copy._notes = dict(self._notes)
        return copy

    def summary(self) -> list[NoteSummary]:
        return [NoteSummary.from_note(note) for note in self._notes.values()]
