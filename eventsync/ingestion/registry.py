"""
Static source registry.

Source names map to adapter factories through ``ADAPTER_TYPES``; which
sources exist and how they are configured comes from ``sources.yaml``. The
registry is built once at start-up and passed to the orchestrator.

Usage:
    registry = load_source_registry(settings.SOURCES_CONFIG_PATH)
    for spec in registry.select("awara"):
        adapter = spec.create(context)
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import yaml

from eventsync.ingestion.adapters import AdapterContext, JsonLdAdapter, SourceAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str, AdapterContext, Mapping], SourceAdapter]

ADAPTER_TYPES: Dict[str, AdapterFactory] = {
    "jsonld": JsonLdAdapter,
}


@dataclass(frozen=True)
class SourceSpec:
    """One configured source."""

    name: str
    adapter_type: str
    factory: AdapterFactory
    options: Mapping = field(default_factory=lambda: MappingProxyType({}))

    def create(self, context: AdapterContext) -> SourceAdapter:
        return self.factory(self.name, context, self.options)


class SourceRegistry(Mapping):
    """Immutable name → SourceSpec mapping, in configuration order."""

    def __init__(self, specs: Iterable[SourceSpec]):
        self._specs: Dict[str, SourceSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Duplicate source name: {spec.name}")
            self._specs[spec.name] = spec

    def __getitem__(self, name: str) -> SourceSpec:
        return self._specs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._specs)

    def select(self, source: Optional[str] = None) -> List[SourceSpec]:
        """
        Return the sources to run.

        A known name selects that single source. No name, or a name that is
        not registered, selects all sources; the latter logs a warning.
        """
        if source is None:
            return list(self._specs.values())

        name = source.strip().lower()
        if name in self._specs:
            return [self._specs[name]]

        logger.warning(
            f"Invalid source '{source}'. Valid sources are: {', '.join(self.names)}. "
            "Scraping all sources instead."
        )
        return list(self._specs.values())

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SourceRegistry":
        """
        Build the registry from the parsed ``sources.yaml``.

        Raises:
            ValueError: on an unknown adapter type or malformed entry
        """
        sources = (config or {}).get("sources")
        if not isinstance(sources, dict):
            raise ValueError("Source config must contain a 'sources' mapping")

        specs = []
        for name, entry in sources.items():
            entry = entry or {}
            if not isinstance(entry, dict):
                raise ValueError(f"Source '{name}' must be a mapping")
            if not entry.get("enabled", True):
                logger.debug(f"Source {name} is disabled")
                continue

            adapter_type = entry.get("adapter")
            factory = ADAPTER_TYPES.get(adapter_type)
            if factory is None:
                raise ValueError(
                    f"Source '{name}' uses unknown adapter type '{adapter_type}'. "
                    f"Known types: {', '.join(ADAPTER_TYPES)}"
                )
            specs.append(
                SourceSpec(
                    name=str(name).lower(),
                    adapter_type=adapter_type,
                    factory=factory,
                    options=MappingProxyType(dict(entry.get("options") or {})),
                )
            )
        return cls(specs)


def load_source_registry(path: Path) -> SourceRegistry:
    """Load configuration from a YAML file and build the registry."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    registry = SourceRegistry.from_config(config)
    logger.debug(f"Loaded {len(registry)} sources from {path}")
    return registry
