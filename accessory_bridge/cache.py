"""Per-accessory value cache.

Every synchronized characteristic is a :class:`FieldState`. Values are
tri-state: :data:`UNKNOWN` (never confirmed, do not report), :class:`Known`
and :class:`Error`. ``observed`` only ever holds ``UNKNOWN`` or ``Known``;
``Error`` is what a getter reports while the field carries a ``last_error``.
"""
import copy
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union


@dataclass(frozen=True)
class Unknown:
    def __repr__(self):
        return "UNKNOWN"


UNKNOWN = Unknown()


@dataclass(frozen=True)
class Known:
    value: Any


@dataclass(frozen=True)
class Error:
    cause: str


FieldValue = Union[Unknown, Known, Error]


@dataclass
class FieldState:
    observed: FieldValue = UNKNOWN
    desired: FieldValue = UNKNOWN
    pushed_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def dirty(self) -> bool:
        return self.desired != self.observed

    @property
    def value(self) -> FieldValue:
        if self.last_error is not None:
            return Error(self.last_error)
        return self.observed


DeviceSnapshot = Dict[str, FieldState]


class ValueCache:
    """Ordered field name -> FieldState mapping owned by one SyncCoordinator.

    Callers only ever get copies back; all mutation goes through the methods
    below.
    """

    def __init__(self, fields: Iterable[str]):
        self._fields: DeviceSnapshot = {name: FieldState() for name in fields}

    def __contains__(self, name: str) -> bool:
        return name in self._fields

    @property
    def fields(self) -> List[str]:
        return list(self._fields)

    def get(self, name: str) -> FieldState:
        return replace(self._fields[name])

    def value(self, name: str) -> FieldValue:
        return self._fields[name].value

    def observed(self, name: str) -> FieldValue:
        return self._fields[name].observed

    def desired(self, name: str) -> FieldValue:
        return self._fields[name].desired

    def snapshot(self) -> DeviceSnapshot:
        return copy.deepcopy(self._fields)

    def is_dirty(self, name: str) -> bool:
        return self._fields[name].dirty

    def dirty_fields(self) -> List[str]:
        return [name for name, st in self._fields.items() if st.dirty]

    def set_desired(self, name: str, value: Any) -> None:
        self._fields[name].desired = Known(value)

    def apply(self, values: Mapping[str, Any], clear_errors: bool = True) -> Dict[str, Any]:
        """Write confirmed values into ``observed``, all or nothing.

        Fields without a pending write follow the device, so ``desired`` moves
        with ``observed``; dirty fields keep their pending ``desired``.
        Returns the subset of ``values`` that actually changed.
        """
        unknown = [name for name in values if name not in self._fields]
        if unknown:
            raise KeyError(f"unknown fields: {', '.join(unknown)}")
        changed = {}
        for name, val in values.items():
            st = self._fields[name]
            new = Known(val)
            if not st.dirty:
                st.desired = new
            if st.observed != new:
                changed[name] = val
            st.observed = new
            if clear_errors:
                st.last_error = None
        return changed

    def confirm(self, name: str, sent: Any, now: Optional[datetime] = None) -> bool:
        """A push of ``sent`` was acknowledged. Returns True if observed changed.

        If the host wrote again while the command was in flight, ``desired``
        keeps that newer value and the field stays dirty.
        """
        st = self._fields[name]
        new = Known(sent)
        changed = st.observed != new
        st.observed = new
        st.pushed_at = now or datetime.now(timezone.utc)
        st.last_error = None
        return changed

    def fail(self, names: Iterable[str], cause: str) -> None:
        for name in names:
            self._fields[name].last_error = cause

    def clear_errors(self) -> List[str]:
        """Drop every ``last_error``; returns the fields that had one."""
        cleared = []
        for name, st in self._fields.items():
            if st.last_error is not None:
                st.last_error = None
                cleared.append(name)
        return cleared

    def seed(self, persisted: Mapping[str, Any]) -> List[str]:
        """Seed ``observed``/``desired`` from persisted context. Unknown keys are ignored."""
        seeded = []
        for name, val in persisted.items():
            if name in self._fields and val is not None:
                st = self._fields[name]
                st.observed = st.desired = Known(val)
                seeded.append(name)
        return seeded

    def to_context(self) -> Dict[str, Any]:
        return {
            name: st.observed.value
            for name, st in self._fields.items()
            if isinstance(st.observed, Known)
        }

    def reported(self) -> Dict[str, FieldValue]:
        return {name: st.value for name, st in self._fields.items()}
