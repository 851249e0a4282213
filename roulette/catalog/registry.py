from __future__ import annotations

import csv
import os
import re
from dataclasses import dataclass
from pathlib import Path


UNKNOWN_CATEGORY = "Unknown"


def _norm_key(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip().casefold()


def _slug_id(s: str) -> str:
    s = s.strip().casefold()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    return s.strip("-")


@dataclass(frozen=True, slots=True)
class Provider:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    provider_id: str
    name: str


@dataclass(frozen=True, slots=True)
class Catalog:
    """Read-only game name -> provider (category) lookup.

    Lookups are forgiving about case and whitespace. Names that are not in the
    table resolve to the "Unknown" category.
    """

    providers: tuple[Provider, ...]
    entries: tuple[CatalogEntry, ...]
    _provider_by_id: dict[str, Provider]
    _key_to_provider_id: dict[str, str]

    @staticmethod
    def from_rows(providers: list[Provider], entries: list[CatalogEntry]) -> "Catalog":
        by_id: dict[str, Provider] = {}
        for p in providers:
            if p.id in by_id:
                raise CatalogLoadError(f"Duplicate provider id: {p.id}")
            by_id[p.id] = p

        key_to_provider: dict[str, str] = {}
        kept: list[CatalogEntry] = []
        for e in entries:
            if e.provider_id not in by_id:
                raise CatalogLoadError(f"Game {e.name!r} references unknown provider {e.provider_id!r}")
            key = _norm_key(e.name)
            # First listing wins when a title shows up under two providers.
            if key in key_to_provider:
                continue
            key_to_provider[key] = e.provider_id
            kept.append(e)

        return Catalog(
            providers=tuple(providers),
            entries=tuple(kept),
            _provider_by_id=by_id,
            _key_to_provider_id=key_to_provider,
        )

    def category_for(self, name: str) -> str:
        provider_id = self._key_to_provider_id.get(_norm_key(name))
        if provider_id is None:
            return UNKNOWN_CATEGORY
        return self._provider_by_id[provider_id].name

    def categories(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.providers)

    def __contains__(self, item: object) -> bool:
        return isinstance(item, str) and _norm_key(item) in self._key_to_provider_id

    def __len__(self) -> int:
        return len(self.entries)


class CatalogLoadError(RuntimeError):
    pass


def _read_csv_rows(path: Path) -> list[list[str]]:
    try:
        with path.open(encoding="utf-8-sig", newline="") as fh:
            rows = [[c.strip() for c in row if c is not None] for row in csv.reader(fh)]
    except FileNotFoundError as e:
        raise CatalogLoadError(f"Catalog file not found: {path}") from e
    except (UnicodeDecodeError, csv.Error) as e:
        raise CatalogLoadError(f"Unreadable catalog file {path}: {e}") from e

    return [row for row in rows if any(cell for cell in row)]


def load_providers_csv(path: Path) -> list[Provider]:
    rows = _read_csv_rows(path)
    if not rows:
        raise CatalogLoadError(f"Empty provider CSV: {path}")

    header = [c.casefold() for c in rows[0]]
    if header[:2] != ["id", "name"]:
        raise CatalogLoadError(f"Unexpected header in {path}: {rows[0]}")

    out: list[Provider] = []
    for row in rows[1:]:
        if len(row) < 2 or not row[1]:
            continue
        pid = row[0] or _slug_id(row[1])
        out.append(Provider(id=pid, name=row[1]))
    return out


def load_games_csv(path: Path) -> list[CatalogEntry]:
    rows = _read_csv_rows(path)
    if not rows:
        raise CatalogLoadError(f"Empty games CSV: {path}")

    header = [c.casefold() for c in rows[0]]
    if header[:2] != ["provider_id", "name"]:
        raise CatalogLoadError(f"Unexpected header in {path}: {rows[0]}")

    out: list[CatalogEntry] = []
    for row in rows[1:]:
        if len(row) < 2 or not row[0] or not row[1]:
            continue
        out.append(CatalogEntry(provider_id=row[0], name=row[1]))
    return out


def _fallback_catalog() -> Catalog:
    """Tiny built-in table used when the catalog CSVs are missing or unreadable."""

    providers = [
        Provider(id="netent", name="NetEnt"),
        Provider(id="pragmatic", name="Pragmatic Play"),
        Provider(id="hacksaw", name="Hacksaw Gaming"),
    ]
    entries = [
        CatalogEntry(provider_id="netent", name="Starburst"),
        CatalogEntry(provider_id="netent", name="Dead or Alive 2"),
        CatalogEntry(provider_id="pragmatic", name="Gates of Olympus"),
        CatalogEntry(provider_id="pragmatic", name="Sweet Bonanza"),
        CatalogEntry(provider_id="hacksaw", name="Wanted Dead or a Wild"),
    ]
    return Catalog.from_rows(providers, entries)


def load_catalog(*, root: Path) -> Catalog:
    assets_dir = root / "assets"

    # Falls back to the built-in table when files are missing.
    # Set ROULETTE_STRICT_CATALOG=1 to make a missing/broken catalog fatal.
    strict = os.getenv("ROULETTE_STRICT_CATALOG", "").strip().lower() in {"1", "true", "yes"}

    try:
        return Catalog.from_rows(
            load_providers_csv(assets_dir / "providers.csv"),
            load_games_csv(assets_dir / "games.csv"),
        )
    except CatalogLoadError:
        if strict:
            raise
        return _fallback_catalog()
