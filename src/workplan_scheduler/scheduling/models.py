from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Tuple


class DependencyType(str, Enum):
    """Temporal link between a predecessor and its successor."""

    FS = "FS"  # finish -> start
    SS = "SS"  # start -> start
    FF = "FF"  # finish -> finish
    SF = "SF"  # start -> finish

    @classmethod
    def parse(cls, value) -> "DependencyType":
        """
        Case-insensitive parse. A missing or blank type means FS, the same
        default a bare predecessor cell like "T1.1" gets.

        Raises ValueError for anything else.
        """
        if value is None:
            return cls.FS
        text = str(value).strip().upper()
        if not text:
            return cls.FS
        return cls(text)


@dataclass(frozen=True)
class TaskRecord:
    """
    Working copy of one dated task.

    wp_index / task_index point back at the task's slot in the project so the
    writer can put the new dates where they came from.
    """

    task_id: str
    title: str
    wp_index: int
    task_index: int
    start: date
    end: date
    duration: int
    dependencies: Tuple[Mapping[str, Any], ...] = ()

    def shifted_to(self, start: date) -> "TaskRecord":
        return replace(self, start=start, end=start + timedelta(days=self.duration))


@dataclass(frozen=True)
class DependencyLink:
    # Positions in the flat record list, not task ids.
    successor: int
    predecessor: int
    kind: DependencyType


@dataclass
class ScheduleResult:
    project: Any
    converged: bool
    iterations: int
    warnings: List[str] = field(default_factory=list)
    cycles: Tuple[Tuple[str, ...], ...] = ()
    shifted: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project,
            "converged": self.converged,
            "iterations": self.iterations,
            "warnings": list(self.warnings),
        }
