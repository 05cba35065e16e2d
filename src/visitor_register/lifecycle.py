"""
Entry lifecycle: the entered -> exited rule and scan-for-exit.

An entry starts as `entered` and may move to `exited` exactly once. There is
no re-entry; a new visit is a new entry.
"""

import datetime
import logging
from enum import Enum
from typing import Optional

from .errors import AlreadyExited, InvalidTransition, NotFound
from .models import Entry, EntryStatus
from .storage import EntryStore

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class EntryLifecycle:
    """
    Enforces the one-way status transition on top of EntryStore.
    """

    def __init__(self, store: EntryStore):
        self.store = store

    # PUBLIC_INTERFACE
    def mark_exited(self, entry_id: str, exit_time: Optional[datetime.datetime] = None) -> Entry:
        """
        Transition an entry to `exited`.

        Args:
            entry_id (str): Entry id.
            exit_time (datetime): Explicit exit time; defaults to now.

        Returns:
            Entry: The updated entry.

        Raises:
            NotFound: Unknown id.
            AlreadyExited: Entry is already exited; its exit_time is left as is.
        """
        entry = self.store.get_by_id(entry_id)
        if entry.is_exited:
            logger.warning(f"Exit refused, entry {entry.number} already exited")
            raise AlreadyExited(entry)
        return self.store.update_status(entry.id, EntryStatus.EXITED, exit_time)

    # PUBLIC_INTERFACE
    def change_status(
        self,
        entry_id: str,
        status: EntryStatus,
        exit_time: Optional[datetime.datetime] = None,
    ) -> Entry:
        """
        Generic status request. Only `exited` is accepted; an unknown id is
        reported before the transition is checked.
        """
        self.store.get_by_id(entry_id)
        if EntryStatus(status) is not EntryStatus.EXITED:
            raise InvalidTransition()
        return self.mark_exited(entry_id, exit_time)

    # PUBLIC_INTERFACE
    def resolve(self, code: str) -> Entry:
        """
        Find the entry a scanned code refers to: entry id first, then badge tag.
        """
        try:
            return self.store.get_by_id(code)
        except NotFound:
            return self.store.get_by_badge_tag(code)

    # PUBLIC_INTERFACE
    def scan_for_exit(self, code: str) -> Entry:
        """
        Mark the entry identified by a scanned QR payload or badge tag as exited.

        Raises:
            NotFound: Code matches no entry.
            AlreadyExited: The code was already used to exit.
        """
        code = (code or "").strip()
        if not code:
            raise NotFound()
        entry = self.resolve(code)
        return self.mark_exited(entry.id)


class ScanOutcome(str, Enum):
    EXITED = "exited"
    ALREADY_EXITED = "already_exited"
    NOT_FOUND = "not_found"


class ScanResult:
    """
    Result of handling one decoded scan.
    """

    def __init__(self, outcome: ScanOutcome, message: str, entry: Optional[Entry] = None):
        self.outcome = outcome
        self.message = message
        self.entry = entry

    @property
    def success(self) -> bool:
        return self.outcome is ScanOutcome.EXITED

    def __repr__(self):
        return f"<ScanResult(outcome={self.outcome.value}, entry={self.entry.id if self.entry else None})>"


# PUBLIC_INTERFACE
class ScanHandler:
    """
    Scan capability: whatever reads QR codes or badges hands the decoded text
    to on_decoded and shows the returned ScanResult.

    Usage:
        handler = ScanHandler(EntryLifecycle(EntryStore(db)))
        result = handler.on_decoded(decoded_text)
    """

    def __init__(self, lifecycle: EntryLifecycle):
        self.lifecycle = lifecycle

    def on_decoded(self, text: str) -> ScanResult:
        try:
            entry = self.lifecycle.scan_for_exit(text)
        except NotFound:
            return ScanResult(ScanOutcome.NOT_FOUND, "QR code is invalid or was not found")
        except AlreadyExited as e:
            return ScanResult(ScanOutcome.ALREADY_EXITED, "QR code was already used to exit", e.entry)
        return ScanResult(ScanOutcome.EXITED, "Visitor has exited", entry)
