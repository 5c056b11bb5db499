import logging
from typing import Dict, List, Sequence, Tuple

from workplan_scheduler.scheduling.models import DependencyLink, DependencyType, TaskRecord

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Warning texts shown to the user next to the chart
# ------------------------------------------------------------------
UNKNOWN_PREDECESSOR = (
    'Task "{task_id}" references unknown predecessor "{predecessor_id}" — dependency ignored.'
)
UNKNOWN_DEPENDENCY_TYPE = (
    'Task "{task_id}" uses unknown dependency type "{dep_type}" on '
    '"{predecessor_id}" — dependency ignored.'
)


def _predecessor_id(dep) -> str:
    value = dep.get("predecessorId")
    if value is None:
        return ""
    return str(value).strip()


# ------------------------------------------------------------------
# MAIN VALIDATION
# ------------------------------------------------------------------
def resolve_dependencies(
    records: Sequence[TaskRecord],
    index: Dict[str, int],
) -> Tuple[Dict[int, List[DependencyLink]], List[str]]:
    """
    Check every dependency against the id lookup table.

    Returns:
      links:    {successor position: [DependencyLink, ...]} for tasks with at
                least one usable dependency, in flat task order
      warnings: one message per dependency that was dropped

    A dependency is dropped when its predecessor id is not a dated task of
    the project, or when its type is not one of FS/SS/FF/SF. Dropped edges
    never reach the propagator. Nothing here raises.
    """
    links: Dict[int, List[DependencyLink]] = {}
    warnings: List[str] = []

    for position, record in enumerate(records):
        resolved = []

        for dep in record.dependencies:
            pred_id = _predecessor_id(dep)
            pred_position = index.get(pred_id)

            if pred_position is None:
                warnings.append(UNKNOWN_PREDECESSOR.format(
                    task_id=record.task_id, predecessor_id=pred_id,
                ))
                continue

            try:
                kind = DependencyType.parse(dep.get("type"))
            except ValueError:
                warnings.append(UNKNOWN_DEPENDENCY_TYPE.format(
                    task_id=record.task_id,
                    dep_type=dep.get("type"),
                    predecessor_id=pred_id,
                ))
                continue

            resolved.append(DependencyLink(position, pred_position, kind))

        if resolved:
            links[position] = resolved

    if warnings:
        logger.debug("Dropped %d dependency link(s)", len(warnings))

    return links, warnings
