"""
Optimistic Local State

Feature hooks flip a UI-visible flag (archived, marked_read, completed...)
before the backend confirms the action, then commit it on success or roll it
back on failure.

State is an immutable map resource_id -> {field -> OptimisticOverride}. Every
mutation builds a new map (copy-on-write) and only ever touches one field, so
"mark read" and "archive" on the same email can be in flight together without
one clobbering the other.
"""

import time
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

from logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OptimisticOverride:
    """A local value shown in place of the authoritative one"""
    resource_id: str
    field: str
    value: bool
    applied_at: float
    committed: bool = False


FieldOverrides = Mapping[str, OptimisticOverride]


class OverrideMap:
    """Immutable resource_id -> field -> override map with copy-on-write updates"""

    __slots__ = ('_records',)

    def __init__(self, records: Optional[Dict[str, FieldOverrides]] = None):
        self._records: Mapping[str, FieldOverrides] = MappingProxyType(dict(records or {}))

    def get(self, resource_id: str) -> FieldOverrides:
        return self._records.get(resource_id, MappingProxyType({}))

    def get_field(self, resource_id: str, field: str) -> Optional[OptimisticOverride]:
        return self.get(resource_id).get(field)

    def merge(self, override: OptimisticOverride) -> 'OverrideMap':
        """New map with one field set; other fields of the resource are kept"""
        fields = dict(self.get(override.resource_id))
        fields[override.field] = override
        records = dict(self._records)
        records[override.resource_id] = MappingProxyType(fields)
        return OverrideMap(records)

    def delete(self, resource_id: str, field: str) -> 'OverrideMap':
        """
        New map without one field.

        The whole record is dropped once no field in it is still true.
        """
        if field not in self.get(resource_id):
            return self

        fields = {k: v for k, v in self.get(resource_id).items() if k != field}
        records = dict(self._records)
        if any(o.value for o in fields.values()):
            records[resource_id] = MappingProxyType(fields)
        else:
            records.pop(resource_id, None)
        return OverrideMap(records)

    def drop(self, resource_id: str) -> 'OverrideMap':
        if resource_id not in self._records:
            return self
        records = dict(self._records)
        del records[resource_id]
        return OverrideMap(records)

    def as_mapping(self) -> Mapping[str, FieldOverrides]:
        return self._records

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class OptimisticStateManager:
    """
    Tracks optimistic overrides per resource id and field.

    Reads should go through resolve(): the override wins while one exists,
    otherwise the authoritative value is used.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._state = OverrideMap()
        self._clock = clock or time.time

    def apply(self, resource_id: str, field: str, value: bool = True) -> OptimisticOverride:
        """Set one field optimistically, keeping the resource's other fields"""
        override = OptimisticOverride(
            resource_id=resource_id,
            field=field,
            value=value,
            applied_at=self._clock(),
        )
        self._state = self._state.merge(override)
        logger.debug(f"Applied {field}={value} on {resource_id}")
        return override

    def commit(self, resource_id: str, field: str) -> Optional[OptimisticOverride]:
        """Mark a field as confirmed by the server. No-op if it was rolled back."""
        current = self._state.get_field(resource_id, field)
        if current is None:
            return None
        committed = replace(current, committed=True)
        self._state = self._state.merge(committed)
        return committed

    def rollback(self, resource_id: str, field: str) -> bool:
        """
        Clear one field. Idempotent: rolling back twice is not an error.

        Returns:
            True if an override was removed
        """
        if self._state.get_field(resource_id, field) is None:
            return False
        self._state = self._state.delete(resource_id, field)
        logger.info(f"Rolled back {field} on {resource_id}")
        return True

    def is_applied(self, resource_id: str, field: str) -> bool:
        override = self._state.get_field(resource_id, field)
        return override is not None and override.value

    def get(self, resource_id: str, field: str) -> Optional[OptimisticOverride]:
        return self._state.get_field(resource_id, field)

    def resolve(self, resource_id: str, field: str, authoritative: bool) -> bool:
        """Value the UI should show: override first, authoritative otherwise"""
        override = self._state.get_field(resource_id, field)
        if override is None:
            return authoritative
        return override.value

    def forget(self, resource_id: str):
        """Drop every override of a resource (e.g. after a full refresh)"""
        self._state = self._state.drop(resource_id)

    def snapshot(self) -> OverrideMap:
        """Current immutable state"""
        return self._state
