"""Extractor registry and site profile loader.

Loads site profiles from config/site.yaml and instantiates the listing
extractor registered for a deployment profile ("tree" or "pattern").
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Type

import yaml

from src.scrapers.base import BaseExtractor
from src.validation.schemas import SiteConfig

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "site.yaml"

_parsers_imported = False


def _ensure_parsers_imported():
    """Import all parser modules to trigger @register_extractor decorators."""
    global _parsers_imported
    if _parsers_imported:
        return
    _parsers_imported = True
    import importlib
    import pkgutil
    import src.scrapers.parsers as parsers_pkg
    for importer, modname, ispkg in pkgutil.iter_modules(parsers_pkg.__path__):
        importlib.import_module(f"src.scrapers.parsers.{modname}")

# Registry of extractor classes keyed by profile name (e.g., "tree")
_EXTRACTORS: dict[str, Type[BaseExtractor]] = {}


def register_extractor(profile: str):
    """Decorator to register an extractor class for a deployment profile."""
    def decorator(cls: Type[BaseExtractor]):
        _EXTRACTORS[profile] = cls
        return cls
    return decorator


def load_site_configs(config_path: Path | None = None) -> dict[str, dict]:
    """Load all site profiles from the YAML file."""
    path = config_path or CONFIG_PATH
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_site(site_key: str = "anond", config_path: Path | None = None) -> SiteConfig:
    """Return the validated profile for ``site_key``."""
    configs = load_site_configs(config_path)
    if site_key not in configs:
        available = ", ".join(sorted(configs.keys()))
        raise ValueError(f"Unknown site: {site_key!r}. Available: {available}")
    return SiteConfig(key=site_key, **configs[site_key])


def available_extractors() -> list[str]:
    _ensure_parsers_imported()
    return sorted(_EXTRACTORS)


def get_extractor(profile: str, site: SiteConfig) -> BaseExtractor:
    """Create the extractor registered under ``profile`` for ``site``."""
    _ensure_parsers_imported()
    cls = _EXTRACTORS.get(profile)
    if cls is None:
        available = ", ".join(sorted(_EXTRACTORS))
        raise ValueError(f"Unknown extractor profile: {profile!r}. Available: {available}")
    return cls(site)
