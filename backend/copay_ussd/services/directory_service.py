# /copay_ussd/services/directory_service.py

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from copay_ussd.config.settings import settings
from copay_ussd.models.directory import (
    CooperativeContact,
    CooperativeSummary,
    PaymentHistoryEntry,
    PaymentTypeOption,
    UserRecord,
)
from copay_ussd.services.collaborators import (
    CooperativeDirectory,
    PaymentHistoryReader,
    PaymentTypeDirectory,
    UserDirectory,
)
from copay_ussd.utils.exceptions import DownstreamError
from copay_ussd.utils.metrics import database_operations_counter

# Read-only access to the Co-Pay backend's MongoDB collections: users,
# cooperatives, payment_types and payments. Field names follow the backend's
# documents (camelCase) and ids are stored as strings.

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"


class DatabaseService:
    """
    Owns the MongoDB client shared by the directory repositories.

    Failures are not swallowed: a directory that cannot answer must end the
    USSD session with the generic error, not with a misleading "not found".
    """

    def __init__(self, mongo_uri: str):
        try:
            self.client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=settings.max_pool_size,
                minPoolSize=settings.min_pool_size,
                tls=settings.mongo_ssl,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000
            )
            self.db = self.client.get_default_database()
            logger.info("MongoDB client initialized successfully.")
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise

    async def run(self, operation_name: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        """Runs a query, counting it and turning driver errors into DownstreamError."""
        try:
            result = await operation()
        except Exception as e:
            database_operations_counter.labels(operation=operation_name, status="failed").inc()
            logger.exception(f"Database operation {operation_name} failed: {type(e).__name__}")
            raise DownstreamError("directory", f"{operation_name} failed: {type(e).__name__}") from e
        database_operations_counter.labels(operation=operation_name, status="success").inc()
        return result

    # ==================== Index Management ====================

    async def create_indexes(self) -> None:
        """Create the indexes the USSD read paths rely on."""
        indexes = [
            ("users", [("phone", 1)], {}),
            ("cooperatives", [("status", 1), ("name", 1)], {}),
            ("payment_types", [("cooperativeId", 1), ("isActive", 1), ("name", 1)], {}),
            ("payments", [("senderId", 1), ("cooperativeId", 1), ("createdAt", -1)], {}),
        ]

        for collection, keys, options in indexes:
            try:
                await self.db[collection].create_index(keys, **options)
                logger.debug(f"Created index on {collection}: {keys}")
            except Exception as e:
                logger.error(f"Failed to create index on {collection} {keys}: {e}")

        logger.info("Database indexes created successfully.")

    async def health_check(self) -> bool:
        try:
            await self.client.admin.command('ping')
            return True
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return False


def _id(document: Dict[str, Any]) -> str:
    return str(document["_id"])


class UserRepository(UserDirectory):
    def __init__(self, database: DatabaseService):
        self.database = database

    async def find_by_phone(self, phone: str) -> Optional[UserRecord]:
        document = await self.database.run(
            "find_user_by_phone",
            lambda: self.database.db.users.find_one(
                {"phone": phone},
                {"pin": 1, "status": 1, "cooperativeId": 1, "firstName": 1},
            ),
        )
        if not document:
            return None
        return UserRecord(
            id=_id(document),
            hashed_pin=document.get("pin"),
            status=document.get("status", ""),
            cooperative_id=document.get("cooperativeId"),
            first_name=document.get("firstName"),
        )


class CooperativeRepository(CooperativeDirectory):
    def __init__(self, database: DatabaseService):
        self.database = database

    async def list_active(self, limit: int) -> List[CooperativeSummary]:
        async def query():
            cursor = self.database.db.cooperatives.find(
                {"status": ACTIVE}, {"name": 1, "code": 1}
            ).sort([("name", 1), ("_id", 1)]).limit(limit)
            return await cursor.to_list(length=limit)

        documents = await self.database.run("list_active_cooperatives", query)
        return [
            CooperativeSummary(id=_id(doc), name=doc.get("name", ""), code=doc.get("code", ""))
            for doc in documents
        ]

    async def get_contact(self, cooperative_id: str) -> Optional[CooperativeContact]:
        document = await self.database.run(
            "get_cooperative_contact",
            lambda: self.database.db.cooperatives.find_one(
                {"_id": cooperative_id}, {"name": 1, "phone": 1, "email": 1}
            ),
        )
        if not document:
            return None
        return CooperativeContact(
            name=document.get("name", ""),
            phone=document.get("phone"),
            email=document.get("email"),
        )


class PaymentTypeRepository(PaymentTypeDirectory):
    def __init__(self, database: DatabaseService):
        self.database = database

    async def list_active(self, cooperative_id: str, limit: int) -> List[PaymentTypeOption]:
        async def query():
            cursor = self.database.db.payment_types.find(
                {"cooperativeId": cooperative_id, "isActive": True},
                {"name": 1, "amount": 1, "description": 1},
            ).sort([("name", 1), ("_id", 1)]).limit(limit)
            return await cursor.to_list(length=limit)

        documents = await self.database.run("list_active_payment_types", query)
        return [
            PaymentTypeOption(
                id=_id(doc),
                name=doc.get("name", ""),
                amount=doc.get("amount", 0),
                description=doc.get("description"),
            )
            for doc in documents
        ]


class PaymentHistoryRepository(PaymentHistoryReader):
    def __init__(self, database: DatabaseService):
        self.database = database

    async def recent(self, user_id: str, cooperative_id: Optional[str], limit: int) -> List[PaymentHistoryEntry]:
        match: Dict[str, Any] = {"senderId": user_id}
        if cooperative_id:
            match["cooperativeId"] = cooperative_id
        pipeline = [
            {"$match": match},
            {"$sort": {"createdAt": -1}},
            {"$limit": limit},
            {"$lookup": {
                "from": "payment_types",
                "localField": "paymentTypeId",
                "foreignField": "_id",
                "as": "paymentType",
            }},
            {"$project": {
                "amount": 1, "status": 1, "createdAt": 1,
                "typeName": {"$ifNull": [{"$arrayElemAt": ["$paymentType.name", 0]}, "Payment"]},
            }},
        ]

        documents = await self.database.run(
            "recent_payments",
            lambda: self.database.db.payments.aggregate(pipeline).to_list(length=limit),
        )
        return [
            PaymentHistoryEntry(
                type_name=doc["typeName"],
                amount=doc.get("amount", 0),
                status=doc.get("status", ""),
                date=doc["createdAt"],
            )
            for doc in documents
        ]


# Globally accessible instances
db_service = DatabaseService(settings.mongo_uri)
user_directory = UserRepository(db_service)
cooperative_directory = CooperativeRepository(db_service)
payment_type_directory = PaymentTypeRepository(db_service)
payment_history = PaymentHistoryRepository(db_service)
