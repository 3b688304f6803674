from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from search_orders.domain import CatalogEntry

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
SELECT_ALL = "SELECT_ALL"

STAGE_KINDS = ("BANKRUPTCY", "RELATED", "COURT", "LAND_TITLE", "PPSR")


@dataclass(frozen=True)
class LandTitleTariff:
    locator: Decimal
    title: Decimal


@dataclass(frozen=True)
class Catalog:
    """Immutable view over ``catalog.yaml``."""

    version: str
    entries: tuple[CatalogEntry, ...]
    land_title: dict[str, LandTitleTariff]
    add_on_surcharge: Decimal
    states: tuple[str, ...]
    defaults: dict[str, str]

    def entry(self, code: str) -> CatalogEntry:
        for entry in self.entries:
            if entry.code == code:
                return entry
        raise KeyError(f"Unknown catalog entry '{code}'")

    def group(self, category: str, group: str) -> list[CatalogEntry]:
        return [entry for entry in self.entries if entry.category == category and entry.group == group]

    def groups_for(self, category: str) -> list[str]:
        seen: list[str] = []
        for entry in self.entries:
            if entry.category == category and entry.group not in seen:
                seen.append(entry.group)
        return seen

    def state_tariff(self, state: str) -> LandTitleTariff:
        try:
            return self.land_title[state]
        except KeyError:
            raise KeyError(f"Missing land title tariff for state={state}") from None


def _entry_from_row(row: dict[str, Any]) -> CatalogEntry:
    stage = row.get("stage")
    if stage is not None and stage not in STAGE_KINDS:
        raise ValueError(f"Unknown stage '{stage}' for entry {row.get('code')}")
    return CatalogEntry(
        code=str(row["code"]),
        category=str(row["category"]),
        group=str(row["group"]),
        display_name=str(row.get("name") or row["code"]),
        base_price=Decimal(str(row.get("price", "0"))),
        pricing=str(row.get("pricing") or "flat"),
        stage=stage,
        per_director=bool(row.get("per_director", False)),
        report_type=row.get("report"),
        excludes=tuple(row.get("excludes") or ()),
        hidden_by=tuple(row.get("hidden_by") or ()),
    )


def parse_catalog(raw: dict[str, Any]) -> Catalog:
    land_title = {
        str(state): LandTitleTariff(locator=Decimal(str(values["locator"])), title=Decimal(str(values["title"])))
        for state, values in (raw.get("land_title") or {}).items()
    }
    return Catalog(
        version=str(raw.get("version", "0")),
        entries=tuple(_entry_from_row(row) for row in raw.get("entries") or []),
        land_title=land_title,
        add_on_surcharge=Decimal(str(raw.get("add_on_surcharge", "0"))),
        states=tuple(raw.get("states") or land_title.keys()),
        defaults={str(key): str(value) for key, value in (raw.get("defaults") or {}).items()},
    )


def catalog_path() -> Path:
    env_path = os.getenv("SEARCH_ORDERS_CATALOG")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return CONFIG_DIR / "catalog.yaml"


def load_catalog(path: Path | None = None) -> Catalog:
    path = path or catalog_path()
    if not path.exists():
        raise FileNotFoundError(f"Missing catalog at {path}")
    with path.open("r", encoding="utf-8") as fp:
        return parse_catalog(yaml.safe_load(fp) or {})


CATALOG = load_catalog()
