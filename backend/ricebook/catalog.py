# Overview: Brand catalog supplied by configuration; feeds default unit costs to the ledger engine.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from flask import current_app

from .validation import ValidationError


@dataclass(frozen=True)
class BrandCatalog:
    """
    Valid product identifiers and their default unit costs.

    The catalog is owned elsewhere; the ledger engine only reads it. Default
    costs are used when a product has no batch history to price from.
    """

    brands: tuple[str, ...] = ()
    default_costs: Mapping[str, int] = field(default_factory=dict)

    def default_cost_for(self, brand: str | None) -> int:
        if not brand:
            return 0
        return int(self.default_costs.get(brand, 0))

    def require_brand(self, brand: str) -> str:
        if brand not in self.brands:
            raise ValidationError(f"Unknown brand: {brand}")
        return brand

    def to_list(self) -> list[dict]:
        return [{"brand": b, "default_cost": self.default_cost_for(b)} for b in self.brands]


def _parse_brands(raw) -> tuple[str, ...]:
    if isinstance(raw, (list, tuple)):
        items = raw
    else:
        items = str(raw or "").split(",")
    seen: list[str] = []
    for item in items:
        name = str(item).strip()
        if name and name not in seen:
            seen.append(name)
    return tuple(seen)


def _parse_costs(raw) -> dict[str, int]:
    if isinstance(raw, Mapping):
        return {str(k).strip(): int(v) for k, v in raw.items()}
    costs: dict[str, int] = {}
    for entry in str(raw or "").split(";"):
        if not entry.strip():
            continue
        name, sep, value = entry.partition("=")
        if not sep:
            raise ValueError(f"invalid default cost entry {entry!r}; expected Brand=cost")
        costs[name.strip()] = int(value.strip())
    return costs


def load_catalog(config: Mapping | None = None) -> BrandCatalog:
    """Build the catalog from app config (RICEBOOK_BRANDS / RICEBOOK_DEFAULT_COSTS)."""
    if config is None:
        config = current_app.config
    costs = _parse_costs(config.get("RICEBOOK_DEFAULT_COSTS"))
    brands = _parse_brands(config.get("RICEBOOK_BRANDS"))
    # A cost configured for a brand missing from the list still makes it valid.
    brands = brands + tuple(b for b in costs if b not in brands)
    return BrandCatalog(brands=brands, default_costs=costs)
