"""State -> City -> Locality -> SubLocality resolution.

Each level is looked up by name within its parent and created when absent.
The unique indexes from ``database.ensure_indexes`` make creation race-safe:
an insert that loses a race raises ``DuplicateKeyError`` and the winner is
re-read. Parent collections are wired with ``$addToSet`` on every call, so a
child left unreferenced by an earlier failed request is re-attached the next
time it is resolved.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from database import insert_document, new_id, now_iso
from errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Level:
    name: str
    collection: str
    id_field: str
    children_field: Optional[str]


STATE = Level("state", "states", "state_id", "cities")
CITY = Level("city", "cities", "city_id", "localities")
LOCALITY = Level("locality", "localities", "locality_id", "sub_localities")
SUB_LOCALITY = Level("sub_locality", "sub_localities", "sub_locality_id", None)

LEVELS = (STATE, CITY, LOCALITY, SUB_LOCALITY)
LEVELS_BY_NAME = {level.name: level for level in LEVELS}


@dataclass
class ResolvedLocation:
    state: dict
    city: dict
    locality: dict
    sub_locality: Optional[dict] = None

    def ids(self) -> Dict[str, Optional[str]]:
        """Location reference fields as stored on a property."""
        return {
            "state_id": self.state["state_id"],
            "city_id": self.city["city_id"],
            "locality_id": self.locality["locality_id"],
            "sub_locality_id": self.sub_locality["sub_locality_id"] if self.sub_locality else None,
        }


def _clean(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip()
    return name or None


class LocationResolver:
    def __init__(self, db):
        self.db = db

    async def resolve(self, state_name: str, city_name: str, locality_name: str,
                      sub_locality_name: Optional[str] = None,
                      require_sub_locality: bool = True) -> ResolvedLocation:
        state_name, city_name = _clean(state_name), _clean(city_name)
        locality_name, sub_locality_name = _clean(locality_name), _clean(sub_locality_name)
        if not state_name or not city_name or not locality_name or (require_sub_locality and not sub_locality_name):
            raise ValidationError(
                "State name, city name, locality name and sub locality name are required"
                if require_sub_locality else
                "State name, city name and locality name are required"
            )

        state = await self._find_or_create(STATE, state_name)
        city = await self._find_or_create(CITY, city_name, parent_level=STATE, parent=state)
        locality = await self._find_or_create(LOCALITY, locality_name, parent_level=CITY, parent=city)
        sub_locality = None
        if sub_locality_name:
            sub_locality = await self._find_or_create(
                SUB_LOCALITY, sub_locality_name, parent_level=LOCALITY, parent=locality)
        return ResolvedLocation(state=state, city=city, locality=locality, sub_locality=sub_locality)

    async def _find_or_create(self, level: Level, name: str,
                              parent_level: Optional[Level] = None, parent: Optional[dict] = None) -> dict:
        collection = self.db[level.collection]
        query = {"name": name}
        if parent_level is not None:
            query[parent_level.id_field] = parent[parent_level.id_field]

        doc = await collection.find_one(query, {"_id": 0})
        if doc is None:
            doc = {**query, level.id_field: new_id(), "properties": [], "created_at": now_iso()}
            if level.children_field:
                doc[level.children_field] = []
            try:
                await insert_document(collection, doc)
                logger.info("Created %s %r", level.name, name)
            except DuplicateKeyError:
                doc = await collection.find_one(query, {"_id": 0})
                if doc is None:
                    raise

        if parent_level is not None:
            child_id = doc[level.id_field]
            await self.db[parent_level.collection].update_one(
                {parent_level.id_field: parent[parent_level.id_field]},
                {"$addToSet": {parent_level.children_field: child_id}},
            )
            children = parent.setdefault(parent_level.children_field, [])
            if child_id not in children:
                children.append(child_id)
        return doc

    async def attach_property(self, refs: Dict[str, Optional[str]], property_id: str) -> None:
        for level in LEVELS:
            level_id = refs.get(level.id_field)
            if level_id:
                await self.db[level.collection].update_one(
                    {level.id_field: level_id}, {"$addToSet": {"properties": property_id}})

    async def detach_property(self, refs: Dict[str, Optional[str]], property_id: str) -> None:
        for level in LEVELS:
            level_id = refs.get(level.id_field)
            if level_id:
                await self.db[level.collection].update_one(
                    {level.id_field: level_id}, {"$pull": {"properties": property_id}})

    async def replace_property(self, old_refs: Dict[str, Optional[str]],
                               new_refs: Dict[str, Optional[str]], property_id: str) -> None:
        """Move a property from its old location references to the new ones."""
        stale = {field: value for field, value in old_refs.items()
                 if value and value != new_refs.get(field)}
        if stale:
            logger.info("Property %s moved off %s", property_id, sorted(stale))
            await self.detach_property(stale, property_id)
        await self.attach_property(new_refs, property_id)

    async def find_by_name(self, level_name: str, name: str) -> Optional[dict]:
        level = LEVELS_BY_NAME[level_name]
        return await self.db[level.collection].find_one({"name": name}, {"_id": 0})

    async def reconcile(self, prune: bool = False) -> Dict[str, int]:
        """Re-attach every property to its locations; optionally drop references to deleted properties."""
        attached = 0
        live_ids: List[str] = []
        for prop in await self.db.properties.find({}, {"_id": 0}).to_list(None):
            live_ids.append(prop["property_id"])
            await self.attach_property({level.id_field: prop.get(level.id_field) for level in LEVELS},
                                       prop["property_id"])
            attached += 1

        pruned = 0
        if prune:
            live = set(live_ids)
            for level in LEVELS:
                collection = self.db[level.collection]
                docs = await collection.find({}, {"_id": 0, level.id_field: 1, "properties": 1}).to_list(None)
                for doc in docs:
                    stale = [pid for pid in doc.get("properties", []) if pid not in live]
                    if stale:
                        await collection.update_one({level.id_field: doc[level.id_field]},
                                                    {"$pullAll": {"properties": stale}})
                        pruned += 1
        logger.info("Reconciled %d properties, pruned %d location documents", attached, pruned)
        return {"attached": attached, "pruned": pruned}
