import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from database import ensure_indexes, insert_document, new_id, now_iso
from media import NullMediaLibrary
from server import create_app
from settings import Settings


class RecordingMailer:
    def __init__(self):
        self.sent = []

    async def send(self, recipients, subject, html):
        self.sent.append({"recipients": recipients, "subject": subject, "html": html})


def make_amenity(n):
    return {"amenity_id": f"amenity-{n}", "title": f"Amenity {n}", "icon_url": f"https://cdn.test/{n}.svg"}


def property_payload(name="Skyline Residences", state="Haryana", city="Gurgaon", locality="Sector 65",
                     sub_locality="Golf Course Extension", **data):
    property_data = {
        "name": name,
        "priority": "MEDIUM",
        "developer_id": data.pop("developer_id", "missing-developer"),
        "amenities": [make_amenity(n) for n in range(1, 8)],
        "exclusive_amenities": [make_amenity(n) for n in (1, 2)],
        "starting_price": "₹1.5 Cr",
        "description": ["Three towers", "with a clubhouse"],
        "configuration": "3 BHK",
        "area": "1800",
    }
    property_data.update(data)
    payload = {"state_name": state, "city_name": city, "locality_name": locality, "property_data": property_data}
    if sub_locality is not None:
        payload["sub_locality_name"] = sub_locality
    return payload


@pytest.fixture
def settings():
    return Settings(db_name="listings_test", enquiry_mail="sales@example.com")


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest_asyncio.fixture
async def db():
    database = AsyncMongoMockClient()[f"listings_{uuid.uuid4().hex}"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def app(settings, db, mailer):
    return create_app(settings=settings, db=db, mailer=mailer, media=NullMediaLibrary())


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def developer(db):
    doc = {"developer_id": new_id(), "name": "Acme Builders", "developer_img": "https://cdn.test/acme.png",
           "description": "Builds towers", "total_properties": 3, "properties": [], "created_at": now_iso()}
    return await insert_document(db.developers, doc)
