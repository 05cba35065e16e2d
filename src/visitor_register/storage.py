"""
Entry record store and list queries.

All writes go through EntryStore; each call is committed on its own, except
create_many which commits the whole batch at once. SQLAlchemy failures are
translated into domain errors here and never retried.
"""

import datetime
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from .errors import NotFound, StorageUnavailable, ValidationError
from .identifiers import generate_distinct_numbers, generate_id
from .models import Entry, EntryStatus, utcnow

logger = logging.getLogger(__name__)

MANDATORY_FIELDS = ("name", "address")
OPTIONAL_FIELDS = ("phone_number", "whom_to_meet", "purpose", "badge_tag")
# caller-supplied columns with a unique constraint
UNIQUE_FIELDS = ("badge_tag",)


class EntryFilter(str, Enum):
    """List filter accepted by the entries query."""
    ALL = "all"
    ENTERED = "entered"
    EXITED = "exited"


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()


def clean_entry_data(data: Any) -> Dict[str, Optional[str]]:
    """
    Validate and normalize one creation payload.

    Args:
        data: Mapping or pydantic model with the entry's free-text fields.
              Server-assigned fields (id, number, status, times) are ignored.

    Returns:
        dict: Cleaned column values.

    Raises:
        ValidationError: If a mandatory field is missing or blank.
    """
    if hasattr(data, "model_dump"):
        data = data.model_dump()
    if not isinstance(data, Mapping):
        raise ValidationError(MANDATORY_FIELDS, "Entry data must be an object")

    cleaned = {}
    missing = []
    for field in MANDATORY_FIELDS:
        value = _as_text(data.get(field))
        if not value:
            missing.append(field)
        cleaned[field] = value
    if missing:
        raise ValidationError(missing)

    for field in OPTIONAL_FIELDS:
        cleaned[field] = _as_text(data.get(field))
    # blank badge tags must not collide on the unique index
    cleaned["badge_tag"] = cleaned["badge_tag"] or None
    return cleaned


# PUBLIC_INTERFACE
class EntryStore:
    """
    Persistence operations for visitor entries.

    Usage:
        store = EntryStore(db)
        entry = store.create({"name": "Alice", "address": "123 Rd"})
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self):
        try:
            yield
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity violation: {e.orig}")
            detail = str(e.orig).lower()
            fields = [f for f in UNIQUE_FIELDS if f in detail]
            raise ValidationError(fields, "Entry conflicts with an existing entry")
        except DBAPIError as e:
            self.db.rollback()
            logger.error(f"Database unavailable: {e}")
            raise StorageUnavailable() from e

    def _new_entry(self, cleaned: Dict[str, Optional[str]], number: str) -> Entry:
        now = utcnow()
        return Entry(
            id=generate_id(),
            number=number,
            status=EntryStatus.ENTERED.value,
            entry_time=now,
            exit_time=None,
            created_at=now,
            **cleaned,
        )

    # PUBLIC_INTERFACE
    def create(self, data: Any) -> Entry:
        """
        Insert one entry. Status is always `entered`, whatever the caller sent.

        Raises:
            ValidationError: Mandatory fields missing.
            StorageUnavailable: Database unreachable.
        """
        cleaned = clean_entry_data(data)
        entry = self._new_entry(cleaned, generate_distinct_numbers(1)[0])
        with self._guard():
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        logger.info(f"Entry created: {entry.number} ({entry.id})")
        return entry

    # PUBLIC_INTERFACE
    def create_many(self, items: Iterable[Any]) -> List[Entry]:
        """
        Insert a batch of entries in a single transaction.

        Every item is validated before anything is written; one invalid item
        fails the whole batch. Numbers are distinct within the batch.
        """
        cleaned_items = []
        for index, item in enumerate(items):
            try:
                cleaned_items.append(clean_entry_data(item))
            except ValidationError as e:
                raise ValidationError([f"{index}.{f}" for f in e.fields])
        if not cleaned_items:
            return []

        numbers = generate_distinct_numbers(len(cleaned_items))
        entries = [self._new_entry(c, n) for c, n in zip(cleaned_items, numbers)]
        with self._guard():
            self.db.add_all(entries)
            self.db.commit()
            for entry in entries:
                self.db.refresh(entry)
        logger.info(f"Bulk created {len(entries)} entries")
        return entries

    # PUBLIC_INTERFACE
    def get_by_id(self, entry_id: str) -> Entry:
        with self._guard():
            entry = self.db.get(Entry, entry_id)
        if entry is None:
            raise NotFound()
        return entry

    # PUBLIC_INTERFACE
    def get_by_badge_tag(self, tag: str) -> Entry:
        with self._guard():
            entry = self.db.query(Entry).filter(Entry.badge_tag == tag).first()
        if entry is None:
            raise NotFound()
        return entry

    # PUBLIC_INTERFACE
    def list(self, entry_filter: EntryFilter = EntryFilter.ALL) -> List[Entry]:
        """
        List entries newest-created first.

        Args:
            entry_filter (EntryFilter): `all` applies no status predicate.
        """
        entry_filter = EntryFilter(entry_filter)
        query = self.db.query(Entry)
        if entry_filter is not EntryFilter.ALL:
            query = query.filter(Entry.status == entry_filter.value)
        with self._guard():
            return query.order_by(Entry.created_at.desc()).all()

    # PUBLIC_INTERFACE
    def update_status(
        self,
        entry_id: str,
        status: EntryStatus,
        exit_time: Optional[datetime.datetime] = None,
    ) -> Entry:
        """
        Set an entry's status without any lifecycle policy.

        Moving to `exited` stamps `exit_time` (now, unless given); moving to
        `entered` clears it.
        """
        status = EntryStatus(status)
        entry = self.get_by_id(entry_id)
        entry.status = status.value
        if status is EntryStatus.EXITED:
            entry.exit_time = exit_time or utcnow()
        else:
            entry.exit_time = None
        with self._guard():
            self.db.commit()
            self.db.refresh(entry)
        logger.info(f"Entry {entry.number} status set to {entry.status}")
        return entry

    # PUBLIC_INTERFACE
    def delete(self, entry_id: str) -> bool:
        """
        Remove an entry.

        Returns:
            bool: True if a row was removed.
        """
        with self._guard():
            removed = self.db.query(Entry).filter(Entry.id == entry_id).delete()
            self.db.commit()
        if removed:
            logger.info(f"Entry deleted: {entry_id}")
        return removed > 0


# PUBLIC_INTERFACE
def list_entries(db: Session, entry_filter: EntryFilter = EntryFilter.ALL) -> List[Entry]:
    """
    Read-side query used by list and export endpoints.
    """
    return EntryStore(db).list(entry_filter)
