"""Display ordering for property listings.

All functions here are pure and work on plain property documents (dicts).
"""

from typing import Iterable, List, Optional, Sequence, Tuple

PRIORITY_RANK = {"HIGH": 3, "MEDIUM": 4, "LOW": 5}
UNRANKED = 6

# Fill order for the featured section. Unrecognized priorities go last and,
# because sorted() is stable, keep their source order among themselves.
FEATURED_FILL_ORDER = {"HIGH": 1, "MEDIUM": 2, "LOW": 3}
FEATURED_FILL_UNKNOWN = 4


def rank_key(prop: dict) -> int:
    if prop.get("exclusive"):
        return 1
    if prop.get("featured"):
        return 2
    return PRIORITY_RANK.get(prop.get("priority"), UNRANKED)


def rank(properties: Iterable[dict]) -> List[dict]:
    """exclusive > featured > HIGH > MEDIUM > LOW > anything else; ties keep input order."""
    return sorted(properties, key=rank_key)


def select_featured(properties: Sequence[dict], target_count: int = 4) -> List[dict]:
    """Pick the featured section for one city.

    Every exclusive property is included, even past ``target_count``. The
    remaining slots are filled with featured, non-exclusive properties in
    priority order.
    """
    selected = [p for p in properties if p.get("exclusive")]
    if len(selected) < target_count:
        candidates = [p for p in properties if p.get("featured") and not p.get("exclusive")]
        candidates = sorted(candidates,
                            key=lambda p: FEATURED_FILL_ORDER.get(p.get("priority"), FEATURED_FILL_UNKNOWN))
        selected.extend(candidates[:target_count - len(selected)])
    return selected


def _amenity_id(amenity: dict) -> Optional[str]:
    return amenity.get("amenity_id")


def backfill_exclusive(exclusive_amenities: Optional[Sequence[Optional[dict]]],
                       amenities: Optional[Sequence[Optional[dict]]],
                       min_count: int = 6) -> Tuple[List[dict], List[dict]]:
    """Top up ``exclusive_amenities`` to ``min_count`` from the general pool.

    Borrowed amenities are taken in pool order, skipping ids already
    exclusive. When a top-up happens the returned pool holds no id that is
    in the returned exclusive list, including ids that were exclusive
    before. When ``exclusive_amenities`` already has ``min_count`` entries
    both lists come back as given, so they may share ids. Null entries are
    dropped from both lists. Inputs are not mutated.
    """
    exclusive = [a for a in (exclusive_amenities or []) if a is not None]
    pool = [a for a in (amenities or []) if a is not None]
    if len(exclusive) >= min_count:
        return exclusive, pool

    needed = min_count - len(exclusive)
    exclusive_ids = {_amenity_id(a) for a in exclusive}
    borrowed = [a for a in pool if _amenity_id(a) not in exclusive_ids][:needed]
    taken = exclusive_ids | {_amenity_id(a) for a in borrowed}
    return exclusive + borrowed, [a for a in pool if _amenity_id(a) not in taken]


def paginate(items: Sequence, page: int = 1, limit: int = 10) -> list:
    page = max(page, 1)
    limit = max(limit, 1)
    skip = (page - 1) * limit
    return list(items[skip:skip + limit])
