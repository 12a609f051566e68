"""Shared fixtures: an in-memory contact store with the gateway's contract."""
import os
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import pytest

from db.models import Contact, LinkPrecedence
from identity.errors import InvalidRequest, StoreError

EPOCH = datetime(2023, 4, 1, tzinfo=timezone.utc)


class InMemoryContactStore:
    """Dict-backed ContactGateway. Ids and created_at both increase per insert.

    calls records every gateway operation as (name, args) for ordering checks;
    fail_on names an operation that raises StoreError instead of running.
    """

    def __init__(self):
        self.rows: dict[int, Contact] = {}
        self.calls: list[tuple] = []
        self.locks: list[str] = []
        self.fail_on: Optional[str] = None
        self._next_id = 1
        self._clock = EPOCH

    # -- seeding helpers -------------------------------------------------

    def add(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        linked_id: Optional[int] = None,
        precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
        contact_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
        deleted: bool = False,
    ) -> Contact:
        if contact_id is None:
            contact_id = self._next_id
        self._next_id = max(self._next_id, contact_id + 1)
        self._clock += timedelta(minutes=1)
        stamp = created_at or self._clock
        contact = Contact(
            id=contact_id,
            email=email,
            phone_number=phone,
            linked_id=linked_id,
            link_precedence=LinkPrecedence(precedence).value,
            created_at=stamp,
            updated_at=stamp,
            deleted_at=self._clock if deleted else None,
        )
        self.rows[contact_id] = contact
        return contact

    def live(self) -> List[Contact]:
        return [c for c in sorted(self.rows.values(), key=lambda c: c.id) if c.deleted_at is None]

    def mutations(self) -> List[str]:
        return [name for name, _ in self.calls if name in ("insert", "demote_to_secondary", "relink_secondaries")]

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if self.fail_on == name:
            raise StoreError(name, "connection reset by peer")

    # -- gateway contract ------------------------------------------------

    async def find_by_email_or_phone(self, email, phone) -> List[Contact]:
        if email is None and phone is None:
            raise InvalidRequest()
        self._record("find_by_email_or_phone", email, phone)
        return [
            c for c in self.live()
            if (email is not None and c.email == email)
            or (phone is not None and c.phone_number == phone)
        ]

    async def find_by_id(self, contact_id: int) -> Optional[Contact]:
        self._record("find_by_id", contact_id)
        contact = self.rows.get(contact_id)
        if contact is None or contact.deleted_at is not None:
            return None
        return contact

    async def find_secondaries_of(self, primary_id: int) -> List[Contact]:
        self._record("find_secondaries_of", primary_id)
        return [c for c in self.live() if c.linked_id == primary_id]

    async def insert(self, email, phone, linked_id, link_precedence) -> Contact:
        self._record("insert", email, phone, linked_id, LinkPrecedence(link_precedence).value)
        return self.add(email, phone, linked_id, link_precedence)

    async def demote_to_secondary(self, contact_id: int, new_primary_id: int) -> None:
        self._record("demote_to_secondary", contact_id, new_primary_id)
        contact = self.rows[contact_id]
        contact.link_precedence = LinkPrecedence.SECONDARY.value
        contact.linked_id = new_primary_id
        contact.updated_at = self._clock

    async def relink_secondaries(self, old_primary_id: int, new_primary_id: int) -> int:
        self._record("relink_secondaries", old_primary_id, new_primary_id)
        moved = [c for c in self.rows.values() if c.linked_id == old_primary_id]
        for contact in moved:
            contact.linked_id = new_primary_id
            contact.updated_at = self._clock
        return len(moved)

    async def lock_keys(self, keys: Iterable[str]) -> None:
        keys = sorted(set(keys))
        self._record("lock_keys", tuple(keys))
        self.locks.extend(keys)


@pytest.fixture
def store():
    return InMemoryContactStore()


def pytest_configure(config):
    config.addinivalue_line("markers", "requires_db: needs a PostgreSQL DATABASE_URL")


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DATABASE_URL"):
        return
    skip_db = pytest.mark.skip(reason="DATABASE_URL not set")
    for item in items:
        if "requires_db" in item.keywords:
            item.add_marker(skip_db)
