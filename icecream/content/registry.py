from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from icecream.api.models import (
    CityEventTemplate,
    CityProfile,
    GlobalEventTemplate,
    NeighborhoodEventTemplate,
    TurnContext,
)
from icecream.errors import CityNotFound, ContentLoadError


def _norm_key(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip().casefold()


@dataclass(frozen=True, slots=True)
class ContentRegistry:
    """Read-only reference data: city profiles plus the base event pools.

    City ids are canonical; lookups are case/whitespace-forgiving.
    """

    cities: dict[str, CityProfile]
    global_templates: tuple[GlobalEventTemplate, ...] = ()
    city_templates: tuple[CityEventTemplate, ...] = ()
    neighborhood_templates: tuple[NeighborhoodEventTemplate, ...] = ()

    def list_cities(self) -> list[CityProfile]:
        return sorted(self.cities.values(), key=lambda c: c.name.casefold())

    def get_city_with_neighborhoods(self, city_id: str) -> CityProfile | None:
        city = self.cities.get(city_id)
        if city is not None:
            return city
        key = _norm_key(city_id)
        return next((c for cid, c in self.cities.items() if _norm_key(cid) == key), None)

    def require_city(self, city_id: str) -> CityProfile:
        city = self.get_city_with_neighborhoods(city_id)
        if city is None:
            raise CityNotFound(city_id)
        return city

    def turn_context_for(self, city_id: str, neighborhood_id: str | None = None) -> TurnContext:
        """Base pools plus the city's own events and the neighborhood's own events."""

        city = self.require_city(city_id)
        hood = city.neighborhood(neighborhood_id) if neighborhood_id else None
        return TurnContext(
            global_templates=list(self.global_templates),
            city_templates=[*self.city_templates, *city.event_pool, *city.special_events],
            neighborhood_templates=[*self.neighborhood_templates, *(hood.event_pool if hood else ())],
        )


def _read_json(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ContentLoadError(f"Content file not found: {path}") from e
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ContentLoadError(f"Invalid JSON in {path}: {e}") from e


def load_city_file(path: Path) -> CityProfile:
    try:
        return CityProfile.model_validate(_read_json(path))
    except ValidationError as e:
        raise ContentLoadError(f"Invalid city profile {path}: {e}") from e


_POOL_ADAPTERS: dict[str, TypeAdapter] = {
    "global": TypeAdapter(list[GlobalEventTemplate]),
    "city": TypeAdapter(list[CityEventTemplate]),
    "neighborhood": TypeAdapter(list[NeighborhoodEventTemplate]),
}


def load_event_pool(path: Path, scope: str) -> tuple:
    """Load one base pool. A missing file is an empty pool."""

    if not path.exists():
        return ()
    try:
        templates = _POOL_ADAPTERS[scope].validate_python(_read_json(path))
    except ValidationError as e:
        raise ContentLoadError(f"Invalid {scope} event pool {path}: {e}") from e

    ids = [t.id for t in templates]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ContentLoadError(f"Duplicate {scope} template ids in {path}: {','.join(dupes)}")
    return tuple(templates)


def load_content(*, root: Path) -> ContentRegistry:
    content_dir = root / "content"
    cities_dir = content_dir / "cities"
    if not cities_dir.is_dir():
        raise ContentLoadError(f"Cities directory not found: {cities_dir}")

    cities: dict[str, CityProfile] = {}
    for path in sorted(cities_dir.glob("*.json")):
        city = load_city_file(path)
        if city.id in cities:
            raise ContentLoadError(f"Duplicate city id: {city.id}")
        cities[city.id] = city

    if not cities:
        raise ContentLoadError(f"No city profiles in {cities_dir}")

    events_dir = content_dir / "events"
    return ContentRegistry(
        cities=cities,
        global_templates=load_event_pool(events_dir / "global.json", "global"),
        city_templates=load_event_pool(events_dir / "city.json", "city"),
        neighborhood_templates=load_event_pool(events_dir / "neighborhood.json", "neighborhood"),
    )
