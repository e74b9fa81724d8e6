"""
Worksheet snapshot completeness scoring.

A worksheet snapshot is the nested legacy document of one FMEA::

    {
      "l1": {"name": "...", "failureScopes": [...]},
      "l2": [
        {"no": "10", "name": "...", "l3": [...],
         "failureModes": [...], "failureCauses": [...]},
        ...
      ],
      ...
    }

Snapshots coming from the database, the atomic reconstruction or a local
cache are often partially populated. ``WorksheetView.from_dict`` parses any
JSON-like value permissively: missing keys, ``None`` and non-list values for
list fields all become empty tuples, so scoring never raises.

Score weights:
    +50  l1.name present
    +20  per process with a name or number
    +5   per work element (l3)
    +2   per failure mode / failure cause
    +2   per failure scope (l1.failureScopes)
"""

from __future__ import annotations

from dataclasses import dataclass, field

L1_NAME_WEIGHT = 50
PROCESS_WEIGHT = 20
WORK_ELEMENT_WEIGHT = 5
CAUSE_EFFECT_WEIGHT = 2
FAILURE_SCOPE_WEIGHT = 2


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _items(value) -> tuple:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return ()


@dataclass(frozen=True)
class ProcessView:
    """One L2 process entry."""
    name: str = ""
    no: str = ""
    work_elements: tuple = ()
    failure_modes: tuple = ()
    failure_causes: tuple = ()

    @classmethod
    def from_dict(cls, raw) -> "ProcessView":
        if not isinstance(raw, dict):
            return cls()
        return cls(
            name=_text(raw.get("name")),
            no=_text(raw.get("no")),
            work_elements=_items(raw.get("l3")),
            failure_modes=_items(raw.get("failureModes")),
            failure_causes=_items(raw.get("failureCauses")),
        )

    @property
    def is_meaningful(self) -> bool:
        return bool(self.name or self.no)


@dataclass(frozen=True)
class L1View:
    name: str = ""
    failure_scopes: tuple = ()

    @classmethod
    def from_dict(cls, raw) -> "L1View":
        if not isinstance(raw, dict):
            return cls()
        return cls(name=_text(raw.get("name")), failure_scopes=_items(raw.get("failureScopes")))


@dataclass(frozen=True)
class WorksheetView:
    """Typed, read-only view of a worksheet snapshot."""
    l1: L1View = field(default_factory=L1View)
    processes: tuple[ProcessView, ...] = ()

    @classmethod
    def from_dict(cls, raw) -> "WorksheetView":
        if not isinstance(raw, dict):
            return cls()
        return cls(
            l1=L1View.from_dict(raw.get("l1")),
            processes=tuple(ProcessView.from_dict(p) for p in _items(raw.get("l2"))),
        )

    @property
    def meaningful_processes(self) -> int:
        return sum(1 for p in self.processes if p.is_meaningful)

    @property
    def work_elements(self) -> int:
        return sum(len(p.work_elements) for p in self.processes)

    @property
    def failure_modes(self) -> int:
        return sum(len(p.failure_modes) for p in self.processes)

    @property
    def failure_causes(self) -> int:
        return sum(len(p.failure_causes) for p in self.processes)

    @property
    def failure_scopes(self) -> int:
        return len(self.l1.failure_scopes)


def _view(snapshot) -> WorksheetView | None:
    if snapshot is None:
        return None
    if isinstance(snapshot, WorksheetView):
        return snapshot
    return WorksheetView.from_dict(snapshot)


def score(snapshot) -> int:
    """Completeness score of a snapshot (raw dict or ``WorksheetView``); 0 for None."""
    view = _view(snapshot)
    if view is None:
        return 0

    total = 0
    if view.l1.name:
        total += L1_NAME_WEIGHT
    total += PROCESS_WEIGHT * view.meaningful_processes
    total += WORK_ELEMENT_WEIGHT * view.work_elements
    total += CAUSE_EFFECT_WEIGHT * (view.failure_modes + view.failure_causes)
    total += FAILURE_SCOPE_WEIGHT * view.failure_scopes
    return total


def is_empty(snapshot) -> bool:
    """True when the snapshot has neither an L1 name nor a named process."""
    view = _view(snapshot)
    if view is None:
        return True
    return not view.l1.name and view.meaningful_processes == 0


def content_counts(snapshot) -> dict[str, int]:
    """Counts feeding the score, for diagnostics."""
    view = _view(snapshot) or WorksheetView()
    return {
        "meaningfulProcesses": view.meaningful_processes,
        "workElements": view.work_elements,
        "failureModes": view.failure_modes,
        "failureCauses": view.failure_causes,
        "failureScopes": view.failure_scopes,
    }
