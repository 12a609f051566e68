"""Identity service: one resolution per database transaction."""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.connection import get_db
from db.repositories.contacts import ContactStore
from identity.errors import StoreError
from identity.formatter import project
from identity.resolver import IdentityResolver
from schemas.identify import ConsolidatedIdentity

logger = logging.getLogger(__name__)


class IdentityService:
    """Runs the resolver inside a transaction and formats the result.

    The advisory locks taken by the resolver live exactly as long as the
    transaction opened here, so the whole match/merge/insert sequence for one
    observation commits or rolls back as a unit.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def identify(
        self, email: Optional[str], phone: Optional[str]
    ) -> ConsolidatedIdentity:
        try:
            async with get_db(self._session_factory) as session:
                resolver = IdentityResolver(ContactStore(session))
                resolution = await resolver.resolve(email, phone)
        except SQLAlchemyError as exc:
            # Gateway calls translate their own errors; what reaches here is
            # transaction-level (connect, commit, rollback).
            raise StoreError("commit", str(exc)) from exc

        for anomaly in resolution.anomalies:
            logger.warning("Identity graph anomaly excluded from group: %s", anomaly)
        if resolution.changed:
            logger.info(
                "Resolved primary id=%s: created=%s demoted=%s",
                resolution.primary.id,
                resolution.created_ids,
                resolution.demoted_ids,
            )
        return project(resolution.primary, resolution.contacts)
