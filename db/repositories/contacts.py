"""Contact repository: identity-group reads, inserts, merges and locking."""
import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import func, insert, or_, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Contact, LinkPrecedence
from identity.errors import InvalidRequest, StoreError

logger = logging.getLogger(__name__)

_ADVISORY_LOCK_SQL = text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))")


@contextmanager
def _store_call(operation: str) -> Iterator[None]:
    """Translate driver/ORM failures into StoreError for the given operation."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Contact store operation %s failed: %s", operation, exc)
        raise StoreError(operation, str(exc)) from exc


def _live():
    return Contact.deleted_at.is_(None)


async def find_by_email_or_phone(
    session: AsyncSession, email: Optional[str], phone: Optional[str]
) -> List[Contact]:
    """Return every live contact matching the email OR the phone, ordered by id.

    A None argument drops its clause. Both None is a caller bug.
    """
    clauses = []
    if email is not None:
        clauses.append(Contact.email == email)
    if phone is not None:
        clauses.append(Contact.phone_number == phone)
    if not clauses:
        raise InvalidRequest()

    with _store_call("find_by_email_or_phone"):
        result = await session.execute(
            select(Contact)
            .where(_live())
            .where(or_(*clauses))
            .order_by(Contact.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


async def find_by_id(session: AsyncSession, contact_id: int) -> Optional[Contact]:
    """Return the live Contact with this id, or None."""
    with _store_call("find_by_id"):
        result = await session.execute(
            select(Contact)
            .where(Contact.id == contact_id)
            .where(_live())
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


async def find_secondaries_of(session: AsyncSession, primary_id: int) -> List[Contact]:
    """Return all live contacts linked to primary_id, ordered by id."""
    with _store_call("find_secondaries_of"):
        result = await session.execute(
            select(Contact)
            .where(Contact.linked_id == primary_id)
            .where(_live())
            .order_by(Contact.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


async def insert_contact(
    session: AsyncSession,
    email: Optional[str],
    phone: Optional[str],
    linked_id: Optional[int],
    link_precedence: LinkPrecedence,
) -> Contact:
    """Insert a contact row and return it with store-assigned id and timestamps."""
    stmt = (
        insert(Contact)
        .values(
            email=email,
            phone_number=phone,
            linked_id=linked_id,
            link_precedence=LinkPrecedence(link_precedence).value,
        )
        .returning(Contact)
    )
    with _store_call("insert"):
        result = await session.execute(stmt, execution_options={"populate_existing": True})
        await session.flush()
        return result.scalar_one()


async def demote_to_secondary(
    session: AsyncSession, contact_id: int, new_primary_id: int
) -> None:
    """Turn a primary into a secondary of new_primary_id."""
    with _store_call("demote_to_secondary"):
        await session.execute(
            update(Contact)
            .where(Contact.id == contact_id)
            .values(
                link_precedence=LinkPrecedence.SECONDARY.value,
                linked_id=new_primary_id,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session="fetch")
        )
        await session.flush()


async def relink_secondaries(
    session: AsyncSession, old_primary_id: int, new_primary_id: int
) -> int:
    """Point every contact linked to old_primary_id at new_primary_id.

    Soft-deleted rows are relinked too so no row is left under a demoted contact.
    Returns the number of rows updated.
    """
    with _store_call("relink_secondaries"):
        result = await session.execute(
            update(Contact)
            .where(Contact.linked_id == old_primary_id)
            .values(linked_id=new_primary_id, updated_at=func.now())
            .execution_options(synchronize_session="fetch")
        )
        await session.flush()
        return result.rowcount


async def lock_keys(session: AsyncSession, keys: Iterable[str]) -> None:
    """Take a transaction-scoped advisory lock per distinct key, in sorted order.

    Locks are held until the surrounding transaction commits or rolls back.
    """
    with _store_call("lock_keys"):
        for key in sorted(set(keys)):
            await session.execute(_ADVISORY_LOCK_SQL, {"key": key})


class ContactStore:
    """Contact store gateway bound to one session (and so one transaction)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_email_or_phone(
        self, email: Optional[str], phone: Optional[str]
    ) -> List[Contact]:
        return await find_by_email_or_phone(self.session, email, phone)

    async def find_by_id(self, contact_id: int) -> Optional[Contact]:
        return await find_by_id(self.session, contact_id)

    async def find_secondaries_of(self, primary_id: int) -> List[Contact]:
        return await find_secondaries_of(self.session, primary_id)

    async def insert(
        self,
        email: Optional[str],
        phone: Optional[str],
        linked_id: Optional[int],
        link_precedence: LinkPrecedence,
    ) -> Contact:
        return await insert_contact(self.session, email, phone, linked_id, link_precedence)

    async def demote_to_secondary(self, contact_id: int, new_primary_id: int) -> None:
        await demote_to_secondary(self.session, contact_id, new_primary_id)

    async def relink_secondaries(self, old_primary_id: int, new_primary_id: int) -> int:
        return await relink_secondaries(self.session, old_primary_id, new_primary_id)

    async def lock_keys(self, keys: Iterable[str]) -> None:
        await lock_keys(self.session, keys)
