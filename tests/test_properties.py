import pytest

from conftest import make_amenity, property_payload
from errors import ValidationError
from properties import parse_price, slugify
from schemas import PropertyData


async def create(client, developer, **kwargs):
    payload = property_payload(developer_id=developer["developer_id"], **kwargs)
    response = await client.post("/api/v1/property/add", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_property_wires_locations_and_developer(client, db, developer):
    prop = await create(client, developer)

    assert prop["slug"] == "skyline-residences"
    assert prop["price_in_figure"] == 15000000.0
    for collection, field in (("states", "state_id"), ("cities", "city_id"),
                              ("localities", "locality_id"), ("sub_localities", "sub_locality_id")):
        doc = await db[collection].find_one({field: prop[field]})
        assert doc["properties"] == [prop["property_id"]]
    stored_developer = await db.developers.find_one({"developer_id": developer["developer_id"]})
    assert stored_developer["properties"] == [prop["property_id"]]


@pytest.mark.asyncio
async def test_duplicate_name_is_rejected(client, db, developer):
    await create(client, developer)
    response = await client.post("/api/v1/property/add",
                                 json=property_payload(developer_id=developer["developer_id"]))
    assert response.status_code == 400
    assert "duplicate" in response.json()["message"]
    assert await db.properties.count_documents({}) == 1


@pytest.mark.asyncio
async def test_featured_and_exclusive_cannot_both_be_set(client, db, developer):
    payload = property_payload(developer_id=developer["developer_id"], featured=True, exclusive=True)
    response = await client.post("/api/v1/property/add", json=payload)
    assert response.status_code == 400
    assert "cannot both be true" in response.json()["message"]
    assert await db.states.count_documents({}) == 0


def test_property_data_rejects_both_flags():
    with pytest.raises(Exception, match="cannot both be true"):
        PropertyData(name="X", priority="HIGH", developer_id="d", featured=True, exclusive=True,
                     amenities=[make_amenity(1)], exclusive_amenities=[make_amenity(2)])


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"priority": "URGENT"},
    {"featured": "yes"},
    {"amenities": []},
    {"exclusive_amenities": []},
])
async def test_invalid_property_data(client, developer, overrides):
    payload = property_payload(developer_id=developer["developer_id"], **overrides)
    response = await client.post("/api/v1/property/add", json=payload)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_requires_sub_locality(client, db, developer):
    payload = property_payload(developer_id=developer["developer_id"], sub_locality=None)
    response = await client.post("/api/v1/property/add", json=payload)
    assert response.status_code == 400
    assert await db.properties.count_documents({}) == 0


@pytest.mark.asyncio
async def test_unknown_developer(client):
    response = await client.post("/api/v1/property/add", json=property_payload(developer_id="nobody"))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_detail_read_backfills_exclusive_amenities(client, db, developer):
    prop = await create(client, developer)

    response = await client.get(f"/api/v1/property/get/{prop['property_id']}")
    assert response.status_code == 200
    data = response.json()["data"]
    exclusive_ids = [a["amenity_id"] for a in data["exclusive_amenities"]]
    pool_ids = [a["amenity_id"] for a in data["amenities"]]
    assert exclusive_ids == [f"amenity-{n}" for n in (1, 2, 3, 4, 5, 6)]
    assert pool_ids == ["amenity-7"]
    assert data["city"]["name"] == "Gurgaon"
    assert data["developer"]["name"] == "Acme Builders"

    # backfill is computed on read, never written back
    stored = await db.properties.find_one({"property_id": prop["property_id"]})
    assert len(stored["exclusive_amenities"]) == 2


@pytest.mark.asyncio
async def test_lookup_by_name_slug_and_ids(client, developer):
    prop = await create(client, developer)

    by_name = await client.get("/api/v1/property/name/Skyline-Residences")
    assert by_name.status_code == 200
    assert by_name.json()["data"]["property_id"] == prop["property_id"]

    by_slug = await client.get("/api/v1/property/slug/skyline-residences")
    assert by_slug.json()["data"]["property_id"] == prop["property_id"]

    wishlist = await client.post("/api/v1/property/wishlist/ids", json={"ids": prop["property_id"]})
    assert [p["property_id"] for p in wishlist.json()["data"]] == [prop["property_id"]]

    missing = await client.get("/api/v1/property/get/nope")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_update_moves_location_and_keeps_name(client, db, developer):
    prop = await create(client, developer, featured=True)
    payload = property_payload(name="Renamed", city="Faridabad", locality="Sector 15", sub_locality=None,
                               developer_id=developer["developer_id"], exclusive=True)

    response = await client.put(f"/api/v1/property/update/{prop['property_id']}", json=payload)

    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["name"] == "Skyline Residences"
    assert updated["exclusive"] is True
    assert updated["featured"] is False
    assert updated["sub_locality_id"] is None
    gurgaon = await db.cities.find_one({"name": "Gurgaon"})
    faridabad = await db.cities.find_one({"name": "Faridabad"})
    assert gurgaon["properties"] == []
    assert faridabad["properties"] == [prop["property_id"]]
    state = await db.states.find_one({"name": "Haryana"})
    assert state["properties"] == [prop["property_id"]]


@pytest.mark.asyncio
async def test_update_rederives_price_figure(client, developer):
    prop = await create(client, developer)
    payload = property_payload(developer_id=developer["developer_id"], starting_price="₹3 Cr")

    response = await client.put(f"/api/v1/property/update/{prop['property_id']}", json=payload)

    assert response.json()["data"]["price_in_figure"] == 30000000.0
    priced = await client.post("/api/v1/property/search", json={"price_range": [20000000, 40000000]})
    assert [p["name"] for p in priced.json()["data"]["project_list"]] == ["Skyline Residences"]


@pytest.mark.asyncio
async def test_update_missing_property(client, developer):
    payload = property_payload(developer_id=developer["developer_id"])
    response = await client.put("/api/v1/property/update/nope", json=payload)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_leaves_location_references_by_default(client, db, developer):
    prop = await create(client, developer)

    response = await client.delete(f"/api/v1/property/delete/{prop['property_id']}")
    assert response.status_code == 200
    assert (await client.delete(f"/api/v1/property/delete/{prop['property_id']}")).status_code == 404

    city = await db.cities.find_one({"name": "Gurgaon"})
    assert city["properties"] == [prop["property_id"]]
    listing = await client.post("/api/v1/property/location", json={"type": "city", "name": "Gurgaon"})
    assert listing.json()["data"]["total"] == 0


@pytest.mark.asyncio
async def test_delete_prunes_references_when_configured(client, app, db, developer):
    app.state.properties.prune_references_on_delete = True
    prop = await create(client, developer)

    await client.delete(f"/api/v1/property/delete/{prop['property_id']}")

    for collection in ("states", "cities", "localities", "sub_localities", "developers"):
        doc = await db[collection].find_one({})
        assert doc["properties"] == []


@pytest.mark.asyncio
async def test_city_listing_is_ranked_and_paginated(client, developer):
    await create(client, developer, name="Low One", priority="LOW")
    await create(client, developer, name="Featured One", priority="LOW", featured=True)
    await create(client, developer, name="High One", priority="HIGH")
    await create(client, developer, name="Exclusive One", priority="LOW", exclusive=True)
    await create(client, developer, name="Elsewhere", city="Noida", state="Uttar Pradesh")

    response = await client.get("/api/v1/property/listing", params={"city": "gurgaon", "page": 1, "limit": 3})

    data = response.json()["data"]
    assert data["total"] == 4
    assert [p["name"] for p in data["properties"]] == ["Exclusive One", "Featured One", "High One"]

    page_two = await client.get("/api/v1/property/listing", params={"city": "Gurgaon", "page": 2, "limit": 3})
    assert [p["name"] for p in page_two.json()["data"]["properties"]] == ["Low One"]


@pytest.mark.asyncio
async def test_location_listing(client, developer):
    await create(client, developer, name="Medium", priority="MEDIUM")
    await create(client, developer, name="High", priority="HIGH", sub_locality="Other")

    by_locality = await client.post("/api/v1/property/location", json={"type": "locality", "name": "Sector 65"})
    assert [p["name"] for p in by_locality.json()["data"]["properties"]] == ["High", "Medium"]

    by_sub = await client.post("/api/v1/property/location", json={"type": "sub_locality", "name": "Other"})
    assert [p["name"] for p in by_sub.json()["data"]["properties"]] == ["High"]

    unknown = await client.post("/api/v1/property/location", json={"type": "city", "name": "Atlantis"})
    assert unknown.status_code == 404
    bad_type = await client.post("/api/v1/property/location", json={"type": "country", "name": "India"})
    assert bad_type.status_code == 400


@pytest.mark.asyncio
async def test_featured_sections_per_city(client, developer):
    await create(client, developer, name="Ex", exclusive=True)
    await create(client, developer, name="F Low", priority="LOW", featured=True)
    await create(client, developer, name="F High", priority="HIGH", featured=True)
    await create(client, developer, name="Plain", priority="HIGH")
    await create(client, developer, name="Noida Ex", city="Noida", state="Uttar Pradesh", exclusive=True)

    response = await client.get("/api/v1/property/featured-properties")

    sections = {s["city"]: s for s in response.json()["data"]}
    gurgaon = sections["Gurgaon"]
    assert [c["title"] for c in gurgaon["properties"]] == ["Ex", "F High", "F Low"]
    assert gurgaon["total"] == 3
    card = gurgaon["properties"][0]
    assert card["exclusive"] is True
    assert card["location"] == "Sector 65"
    assert card["description"] == "Three towers with a clubhouse"
    assert sections["Noida"]["total"] == 1


@pytest.mark.asyncio
async def test_featured_sections_without_cities(client):
    response = await client.get("/api/v1/property/featured-properties")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_search_filters(client, developer):
    await create(client, developer, name="Villa", starting_price="2 Cr",
                 property_type={"title": "Residential", "sub_type": ["Villa"]})
    await create(client, developer, name="Flat", starting_price="85 lakhs",
                 property_type={"title": "Residential", "sub_type": ["Apartment"]})
    await create(client, developer, name="Shop", starting_price="50 lakhs",
                 property_type={"title": "Commercial", "sub_type": ["Retail"]})

    residential = await client.post("/api/v1/property/search", json={
        "city": "gurgaon", "property_type": {"title": "Residential"}})
    assert residential.json()["data"]["product_count"] == 2

    apartments = await client.post("/api/v1/property/search", json={
        "property_type": {"title": "Residential"}, "sub_type": "Apartment"})
    assert [p["name"] for p in apartments.json()["data"]["project_list"]] == ["Flat"]

    priced = await client.post("/api/v1/property/search", json={"price_range": [4000000, 9000000]})
    assert sorted(p["name"] for p in priced.json()["data"]["project_list"]) == ["Flat", "Shop"]

    nowhere = await client.post("/api/v1/property/search", json={"city": "Atlantis"})
    assert nowhere.status_code == 200
    assert nowhere.json()["data"] == {"project_list": [], "product_count": 0}


@pytest.mark.asyncio
async def test_search_by_ids_keeps_requested_order(client, developer):
    first = await create(client, developer, name="First")
    second = await create(client, developer, name="Second")

    response = await client.post("/api/v1/property/search-ids",
                                 json={"ids": [second["property_id"], first["property_id"]]})
    assert [p["name"] for p in response.json()["data"]["project_list"]] == ["Second", "First"]

    by_city = await client.post("/api/v1/property/search-ids", json={"ids": [first["city_id"]]})
    assert by_city.json()["data"]["product_count"] == 2


@pytest.mark.asyncio
async def test_search_by_names(client, developer):
    await create(client, developer, name="First")
    await create(client, developer, name="Second", locality="Sector 70")

    response = await client.post("/api/v1/property/search-names", json={"names": ["Sector 70"]})
    assert [p["name"] for p in response.json()["data"]["project_list"]] == ["Second"]


@pytest.mark.asyncio
async def test_option_lists(client, developer):
    await create(client, developer)

    options = (await client.get("/api/v1/property/search-options")).json()["data"]
    assert options == {"Gurgaon": [
        {"title": "Skyline Residences", "type": "property"},
        {"title": "Golf Course Extension", "type": "sub_locality"},
        {"title": "Sector 65", "type": "locality"},
    ]}

    locations = (await client.get("/api/v1/property/location-data")).json()["data"]
    assert {"type": "city", "name": "Gurgaon"} in locations
    assert {"type": "sub_locality", "name": "Golf Course Extension"} in locations

    slugs = (await client.get("/api/v1/property/slugs")).json()["data"]
    assert slugs == [{"slug": "skyline-residences"}]

    titles = (await client.get("/api/v1/property/projects")).json()["data"]
    assert titles == [{"title": "Skyline Residences", "type": "property"},
                      {"title": "Sector 65", "type": "locality"}]


@pytest.mark.parametrize("text,expected", [
    ("₹1.5 Cr", 15000000.0),
    ("85 lakhs", 8500000.0),
    ("2,500 k", 2500000.0),
    ("1,200", 1200.0),
    ("2 cr - 7 cr", (20000000.0, 70000000.0)),
    ("90 lakh, 1.2 cr", (9000000.0, 12000000.0)),
])
def test_parse_price(text, expected):
    assert parse_price(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["", "price on request", "cr 2"])
def test_parse_price_rejects_garbage(text):
    with pytest.raises(ValidationError):
        parse_price(text)


def test_slugify():
    assert slugify("  M3M Golf Estate (Phase 2) ") == "m3m-golf-estate-phase-2"
