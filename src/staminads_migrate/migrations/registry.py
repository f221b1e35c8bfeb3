"""
Immutable, ordered collection of migration units.

The registry is assembled once at process start and handed to the runner;
nothing registers into it afterwards. Duplicate versions are a build-time
defect and fail loudly here rather than at migration time.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from types import MappingProxyType

from staminads_migrate.core.errors import RegistryError
from staminads_migrate.migrations.unit import MigrationUnit


class MigrationRegistry:
    """Migration units keyed and ordered by ``major_version``.

    Example:
        >>> registry = MigrationRegistry([V3, V4, V5])
        >>> registry.get(4).description
        'Report subscriptions table'
        >>> registry.versions
        (3, 4, 5)
    """

    __slots__ = ("_units",)

    def __init__(self, units: Iterable[MigrationUnit] = ()) -> None:
        by_version: dict[int, MigrationUnit] = {}
        for unit in units:
            if unit.major_version in by_version:
                raise RegistryError(
                    f"Duplicate migration for version {unit.major_version}"
                ).with_context(version=unit.major_version)
            by_version[unit.major_version] = unit
        self._units = MappingProxyType(dict(sorted(by_version.items())))

    def get(self, version: int) -> MigrationUnit | None:
        return self._units.get(version)

    @property
    def versions(self) -> tuple[int, ...]:
        return tuple(self._units)

    @property
    def latest_version(self) -> int | None:
        return self.versions[-1] if self._units else None

    def pending(self, installed: int, target: int) -> list[MigrationUnit]:
        """Units strictly above ``installed`` up to and including ``target``."""
        return [
            unit
            for version, unit in self._units.items()
            if installed < version <= target
        ]

    def __contains__(self, version: object) -> bool:
        return version in self._units

    def __iter__(self) -> Iterator[MigrationUnit]:
        return iter(self._units.values())

    def __len__(self) -> int:
        return len(self._units)

    def __repr__(self) -> str:
        return f"MigrationRegistry(versions={list(self.versions)})"


__all__ = ["MigrationRegistry"]
