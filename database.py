import logging
import uuid
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING

from settings import Settings

logger = logging.getLogger(__name__)

# collection -> id field; every document carries its own UUID id next to Mongo's _id
ID_FIELDS = {
    "states": "state_id",
    "cities": "city_id",
    "localities": "locality_id",
    "sub_localities": "sub_locality_id",
    "properties": "property_id",
    "amenities": "amenity_id",
    "developers": "developer_id",
    "testimonials": "testimonial_id",
    "project_enquiries": "enquiry_id",
    "contact_enquiries": "enquiry_id",
    "users": "user_id",
}

UNIQUE_INDEXES = {
    "states": [[("name", ASCENDING)]],
    "cities": [[("name", ASCENDING), ("state_id", ASCENDING)]],
    "localities": [[("name", ASCENDING), ("city_id", ASCENDING)]],
    "sub_localities": [[("name", ASCENDING), ("locality_id", ASCENDING)]],
    "properties": [[("name", ASCENDING)]],
    "amenities": [[("title", ASCENDING)]],
}


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def connect(settings: Settings):
    client = AsyncIOMotorClient(settings.mongo_url)
    return client, client[settings.db_name]


async def ensure_indexes(db) -> None:
    for collection, id_field in ID_FIELDS.items():
        await db[collection].create_index([(id_field, ASCENDING)], unique=True)
    for collection, indexes in UNIQUE_INDEXES.items():
        for keys in indexes:
            await db[collection].create_index(keys, unique=True)
    await db.properties.create_index([("slug", ASCENDING)])
    await db.properties.create_index([("city_id", ASCENDING)])
    logger.info("Indexes ensured")


async def insert_document(collection, doc: dict) -> dict:
    """Insert ``doc`` and hand it back without Mongo's ``_id``."""
    await collection.insert_one(doc)
    doc.pop("_id", None)
    return doc
