from collections import defaultdict
from typing import Dict, List, Set, Tuple

import pandas as pd

from workplan_scheduler.loaders.project_loader import format_predecessor_cell
from workplan_scheduler.scheduling.schedule_engine import (
    build_task_records,
    get_work_packages,
    iter_tasks,
)
from workplan_scheduler.validation.dependency_validator import resolve_dependencies

FRAME_COLUMNS = [
    "TaskID", "WorkPackage", "Title",
    "Start", "Finish", "Duration",
    "Level", "IsCritical", "Predecessors",
]

# ---------------------------------------------------------
# GRAPH CONSTRUCTION
# ---------------------------------------------------------

def build_graph(project):
    """
    Dependency graph of the project's dated tasks.

    records:    flat list of TaskRecord
    edges_from: dict {pred position: [succ position, ...]}
    edges_to:   dict {succ position: [pred position, ...]}

    Unknown predecessors and bad types are left out, same as in scheduling.
    """
    work_packages = get_work_packages(project) or []
    records, index, _ = build_task_records(work_packages)
    links, _ = resolve_dependencies(records, index)

    edges_from = defaultdict(list)
    edges_to = defaultdict(list)
    for succ in sorted(links):
        for link in links[succ]:
            edges_from[link.predecessor].append(succ)
            edges_to[succ].append(link.predecessor)

    return records, edges_from, edges_to

# ---------------------------------------------------------
# LEVELS (PERT columns)
# ---------------------------------------------------------

def compute_task_levels(project) -> Dict[str, int]:
    """
    Topological depth of each dated task: 0 without predecessors,
    otherwise one more than the deepest predecessor.

    Memoized depth-first walk over predecessors. An edge leading back into
    the task currently being walked closes a cycle and is cut, so every
    task still sits above the predecessors it kept.
    """
    records, _, edges_to = build_graph(project)

    level: Dict[int, int] = {}
    on_path: Set[int] = set()

    for root in range(len(records)):
        if root in level:
            continue

        on_path.add(root)
        stack = [(root, iter(edges_to.get(root, [])))]
        while stack:
            n, preds = stack[-1]
            for p in preds:
                if p in level or p in on_path:
                    continue
                on_path.add(p)
                stack.append((p, iter(edges_to.get(p, []))))
                break
            else:
                stack.pop()
                on_path.discard(n)
                placed = [level[p] for p in edges_to.get(n, []) if p in level]
                level[n] = 1 + max(placed) if placed else 0

    result = {}
    for n, record in enumerate(records):
        # duplicates keep the first occurrence's level
        result.setdefault(record.task_id, level[n])
    return result

# ---------------------------------------------------------
# CRITICAL PATH
# ---------------------------------------------------------

def trace_critical_path(project) -> Tuple[Set[str], Set[Tuple[str, str]]]:
    """
    Walk back from every task that finishes on the project's last day,
    always following the predecessor that finishes latest (first one wins
    on a tie).

    Returns:
      critical task ids, critical edges as (pred id, succ id)
    """
    records, _, edges_to = build_graph(project)
    if not records:
        return set(), set()

    last_finish = max(r.end for r in records)

    nodes: Set[str] = set()
    edges: Set[Tuple[str, str]] = set()
    visited: Set[int] = set()

    stack = [n for n, r in enumerate(records) if r.end == last_finish]
    while stack:
        n = stack.pop()
        if n in visited:
            continue
        visited.add(n)
        nodes.add(records[n].task_id)

        driving = None
        for p in edges_to.get(n, []):
            if driving is None or records[p].end > records[driving].end:
                driving = p

        if driving is not None:
            edges.add((records[driving].task_id, records[n].task_id))
            stack.append(driving)

    return nodes, edges

# ---------------------------------------------------------
# COMPILE RESULTS
# ---------------------------------------------------------

def build_schedule_frame(project) -> pd.DataFrame:
    """
    One row per dated task, ready for a Gantt/PERT view:
      TaskID, WorkPackage, Title, Start, Finish, Duration,
      Level, IsCritical, Predecessors
    """
    work_packages = get_work_packages(project) or []
    records, _, _ = build_task_records(work_packages)
    if not records:
        return pd.DataFrame(columns=FRAME_COLUMNS)

    levels = compute_task_levels(project)
    critical, _ = trace_critical_path(project)

    rows: List[dict] = []
    for r in records:
        wp = work_packages[r.wp_index]
        rows.append({
            "TaskID": r.task_id,
            "WorkPackage": str(wp.get("id") or ""),
            "Title": r.title,
            "Start": pd.Timestamp(r.start),
            "Finish": pd.Timestamp(r.end),
            "Duration": r.duration,
            "Level": levels.get(r.task_id, 0),
            "IsCritical": r.task_id in critical,
            "Predecessors": format_predecessor_cell(r.dependencies),
        })

    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df = df.sort_values(["Start", "TaskID"], kind="stable").reset_index(drop=True)
    return df


def summarize_work_packages(project) -> pd.DataFrame:
    """
    Span of every work package that has dated tasks, in project order.

    Columns: WorkPackage, Title, Start, Finish, Duration, TaskCount
    """
    columns = ["WorkPackage", "Title", "Start", "Finish", "Duration", "TaskCount"]
    df = build_schedule_frame(project)
    if df.empty:
        return pd.DataFrame(columns=columns)

    titles = {}
    for _, _, wp, _ in iter_tasks(get_work_packages(project) or []):
        titles.setdefault(str(wp.get("id") or ""), str(wp.get("title") or ""))

    order = {wp_id: i for i, wp_id in enumerate(titles)}

    spans = (
        df.groupby("WorkPackage", sort=False)
        .agg(
            Start=("Start", "min"),
            Finish=("Finish", "max"),
            TaskCount=("TaskID", "count"),
        )
        .reset_index()
    )
    spans["Title"] = spans["WorkPackage"].map(titles).fillna("")
    spans["Duration"] = (spans["Finish"] - spans["Start"]).dt.days
    spans["_order"] = spans["WorkPackage"].map(order)

    spans = spans.sort_values("_order", kind="stable").drop(columns="_order")
    return spans[columns].reset_index(drop=True)
