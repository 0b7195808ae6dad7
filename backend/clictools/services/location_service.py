"""Clic-Tools — LocationService: structural queries over the location tree."""
import re
from collections import defaultdict, deque
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clictools.models.location import Location, LocationType

_DIGITS = re.compile(r"(\d+)")


class LocationNotFoundError(ValueError):
    """One or more location ids do not exist."""

    def __init__(self, missing: Iterable[int]):
        self.missing = sorted(set(missing))
        super().__init__(f"Location(s) not found: {', '.join(str(i) for i in self.missing)}")


def natural_sort_key(code: str) -> tuple:
    """Numeric-aware, case-insensitive key: "A2" sorts before "A10"."""
    parts = _DIGITS.split(code or "")
    return tuple((0, int(p)) if p.isdigit() else (1, p.lower()) for p in parts)


def sort_by_code(locations: Iterable[Location]) -> list[Location]:
    # code and id break ties so the order is total
    return sorted(locations, key=lambda l: (natural_sort_key(l.code), l.code, l.id))


def get_selectable_locations(locations: Iterable[Location]) -> list[Location]:
    """Leaves of a full location list: the ones no other location points to as parent."""
    locations = list(locations)
    parent_ids = {l.parent_id for l in locations if l.parent_id is not None}
    return [l for l in locations if l.id not in parent_ids]


def render_location_path(location_id: int | None, locations: Iterable[Location]) -> str:
    """Full path by names, e.g. "Bodega Principal > Rack 01 > Nivel 2 > B05"."""
    if not location_id:
        return "N/A"
    by_id = {l.id: l for l in locations}
    current = by_id.get(location_id)
    if current is None:
        return "N/A"
    path: list[str] = []
    seen: set[int] = set()
    while current is not None and current.id not in seen:
        seen.add(current.id)
        path.insert(0, current.name)
        if current.parent_id is None:
            break
        current = by_id.get(current.parent_id)
    return " > ".join(path)


class LocationService:
    """Read side of the warehouse structure. Editing the tree is done elsewhere."""

    @staticmethod
    async def get_all_locations(db: AsyncSession) -> list[Location]:
        """Every location of every type, with current lock state."""
        result = await db.execute(select(Location).order_by(Location.id))
        return list(result.scalars().all())

    @staticmethod
    async def get_by_id(db: AsyncSession, id: int) -> Location | None:
        result = await db.execute(select(Location).where(Location.id == id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_ids(db: AsyncSession, ids: Iterable[int]) -> list[Location]:
        ids = set(ids)
        if not ids:
            return []
        result = await db.execute(select(Location).where(Location.id.in_(ids)).order_by(Location.id))
        return list(result.scalars().all())

    @staticmethod
    async def get_racks(db: AsyncSession) -> list[Location]:
        result = await db.execute(select(Location).where(Location.location_type == LocationType.RACK))
        return sort_by_code(result.scalars().all())

    @staticmethod
    async def get_direct_children(db: AsyncSession, parent_id: int) -> list[Location]:
        result = await db.execute(select(Location).where(Location.parent_id == parent_id))
        return sort_by_code(result.scalars().all())

    @staticmethod
    async def get_child_locations(db: AsyncSession, parent_ids: Iterable[int]) -> list[Location]:
        """
        Leaf descendants (any depth) of the given parents.

        Breadth-first from each parent in ascending id order, children visited in
        ascending id order. A visited set makes overlapping or nested parent sets
        safe: every leaf is returned once. The parents themselves are never returned.
        """
        all_locations = await LocationService.get_all_locations(db)
        children: dict[int, list[Location]] = defaultdict(list)
        for loc in all_locations:
            if loc.parent_id is not None:
                children[loc.parent_id].append(loc)

        visited: set[int] = set()
        leaves: list[Location] = []
        for root_id in sorted(set(parent_ids)):
            queue = deque(children.get(root_id, ()))
            while queue:
                loc = queue.popleft()
                if loc.id in visited:
                    continue
                visited.add(loc.id)
                kids = children.get(loc.id)
                if kids:
                    queue.extend(kids)
                else:
                    leaves.append(loc)
        return leaves
