"""A registry of collector builders, split into required and optional ones."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from vsesync.collectors.base import BaseCollector, CollectionConstructor

Builder = Callable[["CollectionConstructor"], "BaseCollector"]


class Inclusion(enum.Enum):
    """Whether a collector always runs or only when asked for."""

    REQUIRED = enum.auto()
    OPTIONAL = enum.auto()


class CollectorRegistry:
    """Maps collector names to the functions that build them."""

    def __init__(self) -> None:
        self._builders: dict[str, Builder] = {}
        self._required: list[str] = []
        self._optional: list[str] = []

    def register(self, name: str, builder: Builder, inclusion: Inclusion) -> None:
        """Record a builder under a name as required or optional."""
        if inclusion is Inclusion.REQUIRED:
            names = self._required
        elif inclusion is Inclusion.OPTIONAL:
            names = self._optional
        else:
            raise ValueError("Incorrect collector inclusion type")
        self._builders[name] = builder
        names.append(name)

    def get_builder(self, name: str) -> Builder:
        """Return the builder registered under ``name``."""
        try:
            return self._builders[name]
        except KeyError:
            raise KeyError(f"not index in registry for collector named {name}") from None

    @property
    def required_names(self) -> list[str]:
        return list(self._required)

    @property
    def optional_names(self) -> list[str]:
        return list(self._optional)


_registry = CollectorRegistry()


def get_registry() -> CollectorRegistry:
    """The registry that collectors add themselves to when imported."""
    return _registry


def register_collector(name: str, builder: Builder, inclusion: Inclusion) -> None:
    """Add a collector builder to the shared registry."""
    _registry.register(name, builder, inclusion)