"""Equipment each kind of service needs, keyed by service-type keyword."""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Iterable, Mapping

DEFAULT_EQUIPMENT_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    "aeration": ("aerator",),
    "aerating": ("aerator",),
    "mulching": ("trailer",),
    "mulch": ("trailer",),
    "landscaping": ("trailer",),
    "hardscape": ("trailer", "skid_steer"),
    "irrigation": ("trencher",),
    "tree_removal": ("chainsaw", "trailer"),
    "stump_grinding": ("stump_grinder",),
}

_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_tag(value: str) -> str:
    """Lowercase and join words with underscores ("Tree Removal" -> "tree_removal")."""

    return _SEPARATORS.sub("_", value.strip().lower())


class EquipmentTable:
    """Validated keyword -> required equipment tags lookup."""

    def __init__(self, requirements: Mapping[str, Iterable[str]]) -> None:
        table: dict[str, frozenset[str]] = {}
        for keyword, tags in requirements.items():
            key = normalize_tag(keyword) if isinstance(keyword, str) else ""
            if not key:
                raise ValueError(f"Equipment keyword must be a non-empty string, got {keyword!r}.")
            if isinstance(tags, str):
                raise ValueError(f"Equipment tags for '{keyword}' must be a list, not a string.")
            normalized = frozenset(normalize_tag(tag) for tag in tags if tag and tag.strip())
            if not normalized:
                raise ValueError(f"Equipment keyword '{keyword}' has no required tags.")
            table[key] = normalized
        self._table = MappingProxyType(table)

    @property
    def keywords(self) -> tuple[str, ...]:
        return tuple(self._table)

    def required_for(self, service_type: str) -> frozenset[str]:
        """Union of tags for every keyword found in the service type."""

        normalized = normalize_tag(service_type or "")
        required: set[str] = set()
        for keyword, tags in self._table.items():
            if keyword in normalized:
                required.update(tags)
        return frozenset(required)

    def is_compatible(self, service_type: str, capabilities: Iterable[str]) -> bool:
        available = {normalize_tag(tag) for tag in capabilities}
        return self.required_for(service_type) <= available


DEFAULT_EQUIPMENT_TABLE = EquipmentTable(DEFAULT_EQUIPMENT_REQUIREMENTS)
