import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    DuplicateKey,
    PersistenceFailed,
    PropertyNotFound,
    StaleOwnership,
)
from app.db.models import AuditLog, Property, Transfer, utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _store_errors(action: str):
    try:
        yield
    except SQLAlchemyError as e:
        logger.exception(f"Registry store failed to {action}")
        raise PersistenceFailed(f"Could not {action}") from e


class RegistryStore:
    """
    System of record for properties and transfers.

    Every public method runs in its own session and commits before it
    returns, so a read issued after a write always sees that write. All
    mutations go through this class; row locking can be added here without
    touching the callers.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # --- Properties ---

    async def create_property(self, record: Dict[str, Any], changed_by: Optional[str] = None) -> Property:
        property_id = record["property_id"]
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    if await self._find_property(db, property_id) is not None:
                        raise DuplicateKey(property_id)
                    prop = Property(**record)
                    db.add(prop)
                    await db.flush()
                    self._audit(db, "properties", property_id, "INSERT", {
                        "owner_wallet": prop.owner_wallet,
                        "transaction_hash": prop.transaction_hash,
                        "block_number": prop.block_number,
                    }, changed_by, "Property registered")
        except IntegrityError as e:
            # Another writer inserted the same id between the check and the insert
            if await self.get_property_by_id(property_id) is not None:
                raise DuplicateKey(property_id) from e
            logger.exception(f"Integrity error while creating property {property_id}")
            raise PersistenceFailed("Could not create property") from e
        except SQLAlchemyError as e:
            logger.exception(f"Registry store failed to create property {property_id}")
            raise PersistenceFailed("Could not create property") from e
        logger.info(f"Property {property_id} created for {prop.owner_wallet}")
        return prop

    async def get_property_by_id(self, property_id: str) -> Optional[Property]:
        async with _store_errors("load property"):
            async with self.session_factory() as db:
                return await self._find_property(db, property_id)

    async def list_properties(self, owner_wallet: Optional[str] = None) -> List[Property]:
        query = select(Property).order_by(Property.created_at.desc())
        if owner_wallet:
            query = query.where(func.lower(Property.owner_wallet) == owner_wallet.lower())
        async with _store_errors("list properties"):
            async with self.session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())

    async def update_owner(
        self,
        property_id: str,
        new_owner_name: str,
        new_owner_wallet: str,
        expected_revision: Optional[int] = None,
    ) -> Property:
        async with _store_errors("update owner"):
            async with self.session_factory() as db:
                async with db.begin():
                    return await self._apply_owner_update(
                        db, property_id, new_owner_name, new_owner_wallet, expected_revision
                    )

    # --- Transfers ---

    async def create_transfer(self, record: Dict[str, Any]) -> Transfer:
        async with _store_errors("create transfer"):
            async with self.session_factory() as db:
                async with db.begin():
                    return await self._insert_transfer(db, record)

    async def commit_transfer(
        self,
        record: Dict[str, Any],
        expected_revision: Optional[int] = None,
        changed_by: Optional[str] = None,
    ) -> Tuple[Transfer, Property]:
        """
        Writes the transfer row and moves ownership to the buyer in one
        database transaction. Either both changes are committed or neither is.

        Args:
            record (Dict[str, Any]): Transfer columns, including the settlement reference.
            expected_revision (int, optional): Property revision observed before
                settlement. The update is rejected if the property changed since.
            changed_by (str, optional): Acting wallet, kept in the audit log.

        Raises:
            PropertyNotFound: If the property no longer exists.
            StaleOwnership: If the property revision moved on.
            PersistenceFailed: For any other database error.

        Returns:
            Tuple[Transfer, Property]: The new transfer and the updated property.
        """
        async with _store_errors("commit transfer"):
            async with self.session_factory() as db:
                async with db.begin():
                    transfer = await self._insert_transfer(db, record)
                    prop = await self._apply_owner_update(
                        db,
                        record["property_id"],
                        record["buyer_name"],
                        record["buyer_wallet"],
                        expected_revision,
                    )
                    self._audit(db, "transfers", str(transfer.id), "INSERT", {
                        "property_id": transfer.property_id,
                        "seller_wallet": transfer.seller_wallet,
                        "buyer_wallet": transfer.buyer_wallet,
                        "transaction_hash": transfer.transaction_hash,
                        "revision": prop.revision,
                    }, changed_by, "Ownership transferred")
        logger.info(
            f"Property {record['property_id']} transferred from "
            f"{record['seller_wallet']} to {record['buyer_wallet']}"
        )
        return transfer, prop

    async def list_transfers(self, property_id: Optional[str] = None) -> List[Transfer]:
        query = select(Transfer).order_by(Transfer.created_at.desc())
        if property_id:
            query = query.where(Transfer.property_id == property_id)
        async with _store_errors("list transfers"):
            async with self.session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())

    async def count_summary(self, owner_wallet: Optional[str] = None) -> Dict[str, int]:
        property_query = select(func.count()).select_from(Property)
        transfer_query = select(func.count()).select_from(Transfer)
        if owner_wallet:
            wallet = owner_wallet.lower()
            property_query = property_query.where(func.lower(Property.owner_wallet) == wallet)
            transfer_query = transfer_query.where(or_(
                func.lower(Transfer.seller_wallet) == wallet,
                func.lower(Transfer.buyer_wallet) == wallet,
            ))
        async with _store_errors("count records"):
            async with self.session_factory() as db:
                property_count = (await db.execute(property_query)).scalar_one()
                transfer_count = (await db.execute(transfer_query)).scalar_one()
        return {"property_count": property_count, "transfer_count": transfer_count}

    # --- Helpers shared by the single-step and combined operations ---

    async def _find_property(self, db: AsyncSession, property_id: str) -> Optional[Property]:
        result = await db.execute(select(Property).where(Property.property_id == property_id))
        return result.scalar_one_or_none()

    async def _insert_transfer(self, db: AsyncSession, record: Dict[str, Any]) -> Transfer:
        if await self._find_property(db, record["property_id"]) is None:
            raise PropertyNotFound(record["property_id"])
        transfer = Transfer(**record)
        db.add(transfer)
        await db.flush()
        return transfer

    async def _apply_owner_update(
        self,
        db: AsyncSession,
        property_id: str,
        owner_name: str,
        owner_wallet: str,
        expected_revision: Optional[int],
    ) -> Property:
        stmt = update(Property).where(Property.property_id == property_id)
        if expected_revision is not None:
            stmt = stmt.where(Property.revision == expected_revision)
        stmt = stmt.values(
            owner_name=owner_name,
            owner_wallet=owner_wallet,
            revision=Property.revision + 1,
            updated_at=utcnow(),
        ).execution_options(synchronize_session=False)
        result = await db.execute(stmt)

        if result.rowcount == 0:
            if await self._find_property(db, property_id) is None:
                raise PropertyNotFound(property_id)
            raise StaleOwnership(
                f"Property {property_id} changed since revision {expected_revision}"
            )

        refreshed = await db.execute(
            select(Property)
            .where(Property.property_id == property_id)
            .execution_options(populate_existing=True)
        )
        return refreshed.scalar_one()

    def _audit(self, db: AsyncSession, table_name: str, record_id: str, action: str,
               new_values: Dict[str, Any], changed_by: Optional[str], reason: str) -> None:
        db.add(AuditLog(
            table_name=table_name,
            record_id=record_id,
            action=action,
            new_values=new_values,
            changed_by=changed_by or "system",
            change_reason=reason,
        ))
