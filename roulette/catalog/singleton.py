from __future__ import annotations

import logging
from pathlib import Path

from roulette.catalog.registry import Catalog, load_catalog

logger = logging.getLogger(__name__)

_CATALOG: Catalog | None = None
_ROOT: Path | None = None


def init_catalog(*, project_root: Path) -> Catalog:
    """Load the catalog once and cache it.

    Safe to call multiple times; subsequent calls return the already loaded instance.
    """

    global _CATALOG, _ROOT
    if _CATALOG is None:
        _CATALOG = load_catalog(root=project_root)
        _ROOT = project_root
        logger.info(
            "Loaded %d games across %d providers",
            len(_CATALOG),
            len(_CATALOG.providers),
        )
    return _CATALOG


def reload_catalog() -> Catalog:
    """Re-read the catalog files from the root used at init time.

    Used after the offline catalog refresh job has rewritten the CSVs.
    """

    global _CATALOG
    if _ROOT is None:
        raise RuntimeError("Catalog not initialized. Call init_catalog() at startup.")
    _CATALOG = load_catalog(root=_ROOT)
    logger.info("Reloaded catalog: %d games across %d providers", len(_CATALOG), len(_CATALOG.providers))
    return _CATALOG


def reset_catalog_for_tests() -> None:
    global _CATALOG, _ROOT
    _CATALOG = None
    _ROOT = None


def get_catalog() -> Catalog:
    if _CATALOG is None:
        raise RuntimeError("Catalog not initialized. Call init_catalog() at startup.")
    return _CATALOG
