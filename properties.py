import logging
import re
from typing import Dict, List, Optional, Tuple, Union

from pymongo.errors import DuplicateKeyError

from database import insert_document, new_id, now_iso
from errors import DuplicateError, NotFoundError, ValidationError
from listings import backfill_exclusive, paginate, rank, select_featured
from locations import LEVELS, LEVELS_BY_NAME, LocationResolver
from schemas import PropertyWrite, SearchRequest

logger = logging.getLogger(__name__)

PRICE_MULTIPLIERS = {
    "cr": 1e7, "cr*": 1e7, "crore": 1e7, "crores": 1e7,
    "lakh": 1e5, "lakhs": 1e5, "lac": 1e5, "lacs": 1e5,
    "k": 1e3, "thousand": 1e3, "th": 1e3,
    "": 1,
}
_AMOUNT = r"(\d[\d,]*(?:\.\d+)?)\s*(cr\*?|crores?|lakhs?|lacs?|k|thousand|th)?"
_SINGLE_PRICE = re.compile(_AMOUNT)
_PRICE_RANGE = re.compile(_AMOUNT + r"(?:\s*(?:-|to)\s*|\s*,\s+)" + _AMOUNT)


def _amount(number: str, suffix: Optional[str]) -> float:
    return float(number.replace(",", "")) * PRICE_MULTIPLIERS[suffix or ""]


def parse_price(text: str) -> Union[float, Tuple[float, float]]:
    """'₹1.5 Cr' -> 15000000.0; '2 cr - 7 cr' -> (20000000.0, 70000000.0)."""
    if not text or not isinstance(text, str):
        raise ValidationError("Invalid price string")
    cleaned = text.replace("₹", "").strip().lower()
    match = _PRICE_RANGE.fullmatch(cleaned)
    if match:
        return _amount(match.group(1), match.group(2)), _amount(match.group(3), match.group(4))
    match = _SINGLE_PRICE.fullmatch(cleaned)
    if not match:
        raise ValidationError(f"Price string format is incorrect: {text}")
    return _amount(match.group(1), match.group(2))


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _refs(doc: dict) -> Dict[str, Optional[str]]:
    return {level.id_field: doc.get(level.id_field) for level in LEVELS}


def _exclusive_flags(fields: dict) -> dict:
    # featured and exclusive are never both stored as true
    if fields.get("exclusive"):
        fields["featured"] = False
    elif fields.get("featured"):
        fields["exclusive"] = False
    return fields


def _ci_exact(name: str):
    return re.compile(f"^{re.escape(name.strip())}$", re.IGNORECASE)


class PropertyService:
    """Property reads and writes on top of the location hierarchy."""

    def __init__(self, db, resolver: LocationResolver, media, exclusive_amenity_min: int = 6,
                 featured_target: int = 4, default_search_city: str = "Gurgaon",
                 prune_references_on_delete: bool = False):
        self.db = db
        self.resolver = resolver
        self.media = media
        self.exclusive_amenity_min = exclusive_amenity_min
        self.featured_target = featured_target
        self.default_search_city = default_search_city
        self.prune_references_on_delete = prune_references_on_delete

    # -- writes ---------------------------------------------------------

    async def create(self, write: PropertyWrite) -> dict:
        data = write.property_data
        if await self.db.properties.find_one({"name": data.name}, {"_id": 1}):
            raise DuplicateError("Property name exists, duplicate cannot be saved")
        await self._require_developer(data.developer_id)

        location = await self.resolver.resolve(
            write.state_name, write.city_name, write.locality_name, write.sub_locality_name)

        fields = _exclusive_flags(data.model_dump())
        if not fields.get("slug"):
            fields["slug"] = slugify(data.name)
        if fields.get("price_in_figure") is None and data.starting_price:
            fields["price_in_figure"] = self._price_figure(data.starting_price)

        media = await self.media.collect(data.name, fields["floor_plan"])
        fields["floor_plan"] = media["floor_plan"]
        for key in ("image_gallery", "brochure", "property_logo"):
            if media[key]:
                fields[key] = media[key]

        now = now_iso()
        doc = {**fields, **location.ids(), "property_id": new_id(), "created_at": now, "updated_at": now}
        try:
            await insert_document(self.db.properties, doc)
        except DuplicateKeyError:
            raise DuplicateError("Property name exists, duplicate cannot be saved")

        await self.resolver.attach_property(location.ids(), doc["property_id"])
        await self.db.developers.update_one({"developer_id": data.developer_id},
                                            {"$addToSet": {"properties": doc["property_id"]}})
        logger.info("Created property %r (%s)", doc["name"], doc["property_id"])
        return doc

    async def update(self, property_id: str, write: PropertyWrite) -> dict:
        existing = await self.db.properties.find_one({"property_id": property_id}, {"_id": 0})
        if not existing:
            raise NotFoundError("Property not found")

        changes = write.property_data.model_dump(exclude_unset=True)
        changes.pop("name", None)
        _exclusive_flags(changes)
        if changes.get("starting_price") and changes.get("price_in_figure") is None:
            changes["price_in_figure"] = self._price_figure(changes["starting_price"])
        if changes.get("developer_id") and changes["developer_id"] != existing.get("developer_id"):
            await self._require_developer(changes["developer_id"])

        location = await self.resolver.resolve(
            write.state_name, write.city_name, write.locality_name, write.sub_locality_name,
            require_sub_locality=False)
        new_refs = location.ids()
        changes.update(new_refs)
        changes["updated_at"] = now_iso()

        await self.db.properties.update_one({"property_id": property_id}, {"$set": changes})
        await self.resolver.replace_property(_refs(existing), new_refs, property_id)

        old_developer = existing.get("developer_id")
        new_developer = changes.get("developer_id", old_developer)
        if new_developer != old_developer:
            if old_developer:
                await self.db.developers.update_one({"developer_id": old_developer},
                                                    {"$pull": {"properties": property_id}})
            await self.db.developers.update_one({"developer_id": new_developer},
                                                {"$addToSet": {"properties": property_id}})

        logger.info("Updated property %s", property_id)
        return await self.db.properties.find_one({"property_id": property_id}, {"_id": 0})

    async def delete(self, property_id: str) -> None:
        existing = await self.db.properties.find_one({"property_id": property_id}, {"_id": 0})
        if not existing:
            raise NotFoundError("Property not found")
        await self.db.properties.delete_one({"property_id": property_id})

        refs = _refs(existing)
        if self.prune_references_on_delete:
            await self.resolver.detach_property(refs, property_id)
            if existing.get("developer_id"):
                await self.db.developers.update_one({"developer_id": existing["developer_id"]},
                                                    {"$pull": {"properties": property_id}})
        else:
            # Parent collections keep the id; reads skip ids that no longer resolve.
            logger.warning("Deleted property %s; references left on %s",
                           property_id, {k: v for k, v in refs.items() if v})

    async def _require_developer(self, developer_id: str) -> dict:
        developer = await self.db.developers.find_one({"developer_id": developer_id}, {"_id": 0})
        if not developer:
            raise NotFoundError(f"Developer {developer_id} not found")
        return developer

    @staticmethod
    def _price_figure(starting_price: str) -> Optional[float]:
        try:
            price = parse_price(starting_price)
        except ValidationError:
            logger.warning("Could not derive price_in_figure from %r", starting_price)
            return None
        return price[0] if isinstance(price, tuple) else price

    # -- reads ----------------------------------------------------------

    async def populate(self, docs: List[dict]) -> List[dict]:
        """Expand stored location and developer ids into their documents."""
        for level in LEVELS:
            ids = list({d[level.id_field] for d in docs if d.get(level.id_field)})
            found = await self.db[level.collection].find(
                {level.id_field: {"$in": ids}}, {"_id": 0, level.id_field: 1, "name": 1}).to_list(None)
            by_id = {f[level.id_field]: f for f in found}
            for d in docs:
                d[level.name] = by_id.get(d.get(level.id_field))

        developer_ids = list({d["developer_id"] for d in docs if d.get("developer_id")})
        developers = await self.db.developers.find(
            {"developer_id": {"$in": developer_ids}}, {"_id": 0}).to_list(None)
        by_id = {dev["developer_id"]: dev for dev in developers}
        for d in docs:
            d["developer"] = by_id.get(d.get("developer_id"))
        return docs

    def with_backfill(self, doc: dict) -> dict:
        exclusive, amenities = backfill_exclusive(
            doc.get("exclusive_amenities"), doc.get("amenities"), self.exclusive_amenity_min)
        return {**doc, "exclusive_amenities": exclusive, "amenities": amenities}

    async def _detail(self, query: dict, missing: str) -> dict:
        doc = await self.db.properties.find_one(query, {"_id": 0})
        if not doc:
            raise NotFoundError(missing)
        await self.populate([doc])
        return self.with_backfill(doc)

    async def get(self, property_id: str) -> dict:
        return await self._detail({"property_id": property_id}, f"Property with ID {property_id} not found")

    async def get_by_name(self, name: str) -> dict:
        name = name.replace("-", " ")
        return await self._detail({"name": name}, f'Property with name "{name}" not found')

    async def get_by_slug(self, slug: str) -> dict:
        return await self._detail({"slug": slug}, "No property found for the given slug")

    async def get_many(self, ids: List[str]) -> List[dict]:
        docs = await self.db.properties.find({"property_id": {"$in": ids}}, {"_id": 0}).to_list(None)
        if not docs:
            raise NotFoundError("No properties found for the given IDs")
        await self.populate(docs)
        return [self.with_backfill(d) for d in docs]

    async def _by_ids_in_order(self, property_ids: List[str]) -> List[dict]:
        docs = await self.db.properties.find({"property_id": {"$in": property_ids}}, {"_id": 0}).to_list(None)
        by_id = {d["property_id"]: d for d in docs}
        return [by_id[pid] for pid in property_ids if pid in by_id]

    async def list_all(self) -> List[dict]:
        return await self.populate(await self.db.properties.find({}, {"_id": 0}).to_list(None))

    async def list_by_city(self, city: str, page: int = 1, limit: int = 10) -> dict:
        cities = await self.db.cities.find({"name": _ci_exact(city)}, {"_id": 0, "city_id": 1}).to_list(None)
        city_ids = [c["city_id"] for c in cities]
        docs = await self.db.properties.find({"city_id": {"$in": city_ids}}, {"_id": 0}).to_list(None)
        ranked = rank(await self.populate(docs))
        return {"properties": paginate(ranked, page, limit), "total": len(ranked), "page": page, "limit": limit}

    async def list_by_location(self, location_type: str, name: str, page: int = 1, limit: int = 10) -> dict:
        level = LEVELS_BY_NAME.get(location_type)
        if level is None:
            raise ValidationError("Invalid type")
        location = await self.resolver.find_by_name(level.name, name)
        if not location:
            raise NotFoundError(f"{level.name.replace('_', ' ').title()} not found")
        docs = await self._by_ids_in_order(location.get("properties", []))
        ranked = rank(await self.populate(docs))
        return {"properties": paginate(ranked, page, limit), "total": len(ranked), "page": page, "limit": limit}

    async def featured_by_city(self) -> List[dict]:
        cities = await self.db.cities.find({}, {"_id": 0}).to_list(None)
        if not cities:
            raise NotFoundError("No cities found")
        all_ids = [pid for city in cities for pid in city.get("properties", [])]
        docs = await self.db.properties.find({"property_id": {"$in": all_ids}}, {"_id": 0}).to_list(None)
        by_id = {d["property_id"]: d for d in await self.populate(docs)}

        sections = []
        for city in cities:
            properties = [by_id[pid] for pid in city.get("properties", []) if pid in by_id]
            cards = [self._card(p) for p in select_featured(properties, self.featured_target)]
            sections.append({"city": city["name"], "properties": cards, "total": len(cards)})
        return sections

    @staticmethod
    def _card(prop: dict) -> dict:
        return {
            "id": prop["property_id"],
            "slug": prop.get("slug"),
            "title": prop["name"],
            "location": (prop.get("locality") or {}).get("name"),
            "sub_locality": (prop.get("sub_locality") or {}).get("name"),
            "description": " ".join(prop.get("description") or []),
            "amenities": prop.get("amenities", []),
            "numeric_insights": [
                {"title": "Starting Price", "value": prop.get("starting_price")},
                {"title": "Sq feet", "value": prop.get("area")},
                {"title": "Configurations", "value": prop.get("configuration")},
            ],
            "images": prop.get("image_gallery", []),
            "exclusive": bool(prop.get("exclusive")),
        }

    async def search(self, request: SearchRequest) -> Tuple[Optional[dict], dict]:
        """Returns the matched city (None when unknown) and the result page."""
        wanted = request.city or self.default_search_city
        city = await self.db.cities.find_one({"city_id": wanted}, {"_id": 0})
        if not city:
            city = await self.db.cities.find_one({"name": _ci_exact(wanted)}, {"_id": 0})
        if not city:
            return None, {"project_list": [], "product_count": 0}

        docs = await self.db.properties.find({"city_id": city["city_id"]}, {"_id": 0}).to_list(None)
        if request.property_type:
            docs = [d for d in docs if (d.get("property_type") or {}).get("title") == request.property_type.title]
        if request.sub_type:
            sub_types = request.sub_type if isinstance(request.sub_type, list) else [request.sub_type]
            docs = [d for d in docs
                    if set(sub_types) & set((d.get("property_type") or {}).get("sub_type") or [])]
        if request.price_range:
            low, high = request.price_range
            docs = [d for d in docs
                    if d.get("price_in_figure") is not None and low <= d["price_in_figure"] <= high]

        ranked = rank(await self.populate(docs))
        return city, {"project_list": paginate(ranked, request.page, request.limit),
                      "product_count": len(ranked)}

    async def search_by_ids(self, ids: List[str]) -> dict:
        clauses = [{field: {"$in": ids}} for field in
                   ("property_id", "sub_locality_id", "locality_id", "city_id", "state_id")]
        docs = await self.db.properties.find({"$or": clauses}, {"_id": 0}).to_list(None)
        order = {pid: i for i, pid in enumerate(ids)}
        docs.sort(key=lambda d: order.get(d["property_id"], len(ids)))
        return {"project_list": docs, "product_count": len(docs)}

    async def search_by_names(self, names: List[str]) -> dict:
        clauses = []
        matching = await self.db.properties.find({"name": {"$in": names}}, {"_id": 0, "property_id": 1}).to_list(None)
        clauses.append({"property_id": {"$in": [m["property_id"] for m in matching]}})
        for level in LEVELS:
            found = await self.db[level.collection].find(
                {"name": {"$in": names}}, {"_id": 0, level.id_field: 1}).to_list(None)
            clauses.append({level.id_field: {"$in": [f[level.id_field] for f in found]}})
        docs = await self.db.properties.find({"$or": clauses}, {"_id": 0}).to_list(None)
        await self.populate(docs)
        return {"project_list": docs, "product_count": len(docs)}

    async def project_titles(self) -> List[dict]:
        titles = []
        for prop in await self.list_all():
            titles.append({"title": prop["name"], "type": "property"})
            if prop.get("locality"):
                titles.append({"title": prop["locality"]["name"], "type": "locality"})
        return titles

    async def search_options(self) -> Dict[str, List[dict]]:
        options: Dict[str, List[dict]] = {}
        for prop in await self.list_all():
            if not prop.get("city"):
                continue
            entries = options.setdefault(prop["city"]["name"], [])
            entries.append({"title": prop["name"], "type": "property"})
            if prop.get("sub_locality"):
                entries.append({"title": prop["sub_locality"]["name"], "type": "sub_locality"})
            if prop.get("locality"):
                entries.append({"title": prop["locality"]["name"], "type": "locality"})
        return options

    async def location_options(self) -> List[dict]:
        result = []
        for level in LEVELS[1:]:
            for doc in await self.db[level.collection].find({}, {"_id": 0, "name": 1}).to_list(None):
                result.append({"type": level.name, "name": doc["name"]})
        return result

    async def slugs(self) -> List[dict]:
        docs = await self.db.properties.find({}, {"_id": 0, "slug": 1}).to_list(None)
        return [{"slug": d.get("slug")} for d in docs]
