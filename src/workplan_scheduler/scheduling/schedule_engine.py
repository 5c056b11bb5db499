import copy
import logging
from collections import defaultdict
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd

from workplan_scheduler.constants import ACTIVITIES_KEY, DATE_FORMAT, MAX_ITERATIONS
from workplan_scheduler.scheduling.models import (
    DependencyLink,
    DependencyType,
    ScheduleResult,
    TaskRecord,
)
from workplan_scheduler.validation.dependency_validator import resolve_dependencies

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

DUPLICATE_TASK_ID = 'Duplicate task id "{task_id}" — only the first occurrence can be a predecessor.'
REVERSED_DATES = 'Task "{task_id}" ends before it starts — task not scheduled.'
NOT_CONVERGED = "Schedule did not converge after {iterations} iterations — likely circular dependencies"

# ---------------------------------------------------------
# DATE HELPERS
# ---------------------------------------------------------

def parse_task_date(value) -> Optional[date]:
    """
    Turn a startDate/endDate field into a date.

    Blank, missing and unparseable values give None; callers treat that as
    "not scheduled" rather than as an error.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    ts = pd.to_datetime(value.strip(), errors="coerce")
    if pd.isna(ts):
        return None
    return ts.date()


def format_task_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def get_work_packages(project):
    """Work-package list of a project document, or a bare list as-is."""
    if isinstance(project, list):
        return project
    if isinstance(project, Mapping):
        activities = project.get(ACTIVITIES_KEY)
        if isinstance(activities, list):
            return activities
    return None


def iter_tasks(work_packages):
    """Yield (wp_index, task_index, work_package, task) for every task mapping."""
    for wp_index, wp in enumerate(work_packages):
        if not isinstance(wp, Mapping):
            continue
        tasks = wp.get("tasks")
        if not isinstance(tasks, list):
            continue
        for task_index, task in enumerate(tasks):
            if isinstance(task, Mapping):
                yield wp_index, task_index, wp, task

# ---------------------------------------------------------
# TASK GRAPH BUILDER
# ---------------------------------------------------------

def build_task_records(work_packages) -> Tuple[List[TaskRecord], Dict[str, int], List[str]]:
    """
    Flatten work packages into schedulable records.

    Returns:
      records:  flat list of TaskRecord, hierarchy order
      index:    {task_id: position in records}
      warnings: duplicate ids and reversed date ranges

    Tasks without an id, start or end date are skipped silently.
    """
    records: List[TaskRecord] = []
    index: Dict[str, int] = {}
    warnings: List[str] = []

    for wp_index, task_index, _, task in iter_tasks(work_packages):
        raw_id = task.get("id")
        if raw_id is None or not str(raw_id).strip():
            continue
        task_id = str(raw_id).strip()

        start = parse_task_date(task.get("startDate"))
        end = parse_task_date(task.get("endDate"))
        if start is None or end is None:
            continue

        if end < start:
            warnings.append(REVERSED_DATES.format(task_id=task_id))
            continue

        deps = task.get("dependencies")
        if isinstance(deps, list):
            deps = tuple(d for d in deps if isinstance(d, Mapping))
        else:
            deps = ()

        record = TaskRecord(
            task_id=task_id,
            title=str(task.get("title") or ""),
            wp_index=wp_index,
            task_index=task_index,
            start=start,
            end=end,
            duration=(end - start).days,
            dependencies=deps,
        )

        if task_id in index:
            warnings.append(DUPLICATE_TASK_ID.format(task_id=task_id))
        else:
            index[task_id] = len(records)
        records.append(record)

    return records, index, warnings

# ---------------------------------------------------------
# CONSTRAINT PROPAGATION
# ---------------------------------------------------------

def implied_start(record: TaskRecord, predecessor: TaskRecord, kind: DependencyType) -> date:
    """Earliest start of `record` allowed by one dependency on `predecessor`."""
    duration = timedelta(days=record.duration)

    if kind is DependencyType.FS:
        return predecessor.end + ONE_DAY
    if kind is DependencyType.SS:
        return predecessor.start
    if kind is DependencyType.FF:
        return predecessor.end - duration
    if kind is DependencyType.SF:
        return predecessor.start - ONE_DAY - duration
    raise ValueError(f"Unhandled dependency type: {kind!r}")


def run_pass(records: List[TaskRecord], links: Dict[int, List[DependencyLink]]) -> List[int]:
    """
    One forward pass in hierarchy order. Shifts are written into `records`
    immediately, so later tasks in the same pass see them.

    Returns positions that moved.
    """
    moved = []

    for position in sorted(links):
        record = records[position]

        # Most restrictive dependency wins; never earlier than today's start.
        earliest = record.start
        for link in links[position]:
            candidate = implied_start(record, records[link.predecessor], link.kind)
            if candidate > earliest:
                earliest = candidate

        if earliest > record.start:
            records[position] = record.shifted_to(earliest)
            moved.append(position)

    return moved


def propagate(
    records: Sequence[TaskRecord],
    links: Dict[int, List[DependencyLink]],
    max_iterations: int = MAX_ITERATIONS,
) -> Tuple[List[TaskRecord], bool, int, Set[int]]:
    """
    Repeat passes until nothing moves or the budget runs out.

    Returns:
      records, converged, iterations, positions moved at least once
    """
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

    records = list(records)
    moved: Set[int] = set()
    iterations = 0
    changed = True

    while changed and iterations < max_iterations:
        iterations += 1
        shifted = run_pass(records, links)
        changed = bool(shifted)
        moved.update(shifted)
        logger.debug("Pass %d moved %d task(s)", iterations, len(shifted))

    return records, not changed, iterations, moved

# ---------------------------------------------------------
# CYCLE CHECK
# ---------------------------------------------------------

def find_dependency_cycles(
    records: Sequence[TaskRecord],
    links: Dict[int, List[DependencyLink]],
) -> List[Tuple[str, ...]]:
    """
    Depth-first search for back edges over resolved dependencies.

    Each cycle is reported in precedence order and closed on its first task:
    B depends on A and A depends on B gives ("A", "B", "A").
    """
    successors = defaultdict(list)
    for position in sorted(links):
        for link in links[position]:
            successors[link.predecessor].append(position)

    # 0 = unvisited, 1 = on the current path, 2 = done
    state = [0] * len(records)
    cycles: List[Tuple[str, ...]] = []
    seen = set()

    for root in range(len(records)):
        if state[root]:
            continue

        state[root] = 1
        path = [root]
        stack = [(root, iter(successors.get(root, ())))]

        while stack:
            node, children = stack[-1]
            descended = False

            for child in children:
                if state[child] == 1:
                    loop = path[path.index(child):]
                    cycle = tuple(records[p].task_id for p in loop + [child])
                    if cycle not in seen:
                        seen.add(cycle)
                        cycles.append(cycle)
                elif state[child] == 0:
                    state[child] = 1
                    path.append(child)
                    stack.append((child, iter(successors.get(child, ()))))
                    descended = True
                    break

            if not descended:
                state[node] = 2
                path.pop()
                stack.pop()

    return cycles


def describe_non_convergence(iterations: int, cycles: Sequence[Tuple[str, ...]]) -> str:
    message = NOT_CONVERGED.format(iterations=iterations)
    if not cycles:
        return message + " or a slowly converging chain."
    listed = "; ".join(" -> ".join(cycle) for cycle in cycles)
    return f"{message}: {listed}."

# ---------------------------------------------------------
# SCHEDULE WRITER
# ---------------------------------------------------------

def write_schedule(work_packages, records: Sequence[TaskRecord]) -> None:
    """Store each record's dates in its slot of the (already cloned) work packages."""
    for record in records:
        task = work_packages[record.wp_index]["tasks"][record.task_index]
        task["startDate"] = format_task_date(record.start)
        task["endDate"] = format_task_date(record.end)

# ---------------------------------------------------------
# EXPORTED ENTRY POINT
# ---------------------------------------------------------

def recalculate_project_schedule(project, max_iterations: int = MAX_ITERATIONS) -> ScheduleResult:
    """
    Full pipeline:
      1. Clone the project and flatten its dated tasks
      2. Resolve dependencies (unknown predecessors become warnings)
      3. Push tasks forward until every constraint holds or the
         iteration budget is spent
      4. Write the new dates into the clone

    The input is never modified. Data problems end up in
    ScheduleResult.warnings; only a bad max_iterations raises.
    """
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

    cloned = copy.deepcopy(project)
    work_packages = get_work_packages(cloned)
    if work_packages is None:
        logger.debug("Project has no work-package list; nothing to schedule")
        return ScheduleResult(project=cloned, converged=True, iterations=0)

    records, index, warnings = build_task_records(work_packages)
    links, dependency_warnings = resolve_dependencies(records, index)
    warnings.extend(dependency_warnings)

    scheduled, converged, iterations, moved = propagate(records, links, max_iterations)
    cycles = find_dependency_cycles(scheduled, links)

    if not converged:
        message = describe_non_convergence(iterations, cycles)
        logger.warning(message)
        warnings.append(message)

    write_schedule(work_packages, scheduled)

    logger.info(
        "Scheduled %d task(s): %d moved, %d pass(es), converged=%s",
        len(scheduled), len(moved), iterations, converged,
    )

    return ScheduleResult(
        project=cloned,
        converged=converged,
        iterations=iterations,
        warnings=warnings,
        cycles=tuple(cycles),
        shifted=tuple(scheduled[p].task_id for p in sorted(moved)),
    )
