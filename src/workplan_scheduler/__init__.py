from workplan_scheduler.constants import MAX_ITERATIONS
from workplan_scheduler.scheduling.models import (
    DependencyLink,
    DependencyType,
    ScheduleResult,
    TaskRecord,
)
from workplan_scheduler.scheduling.schedule_engine import (
    build_task_records,
    find_dependency_cycles,
    format_task_date,
    parse_task_date,
    propagate,
    recalculate_project_schedule,
)
from workplan_scheduler.validation.dependency_validator import resolve_dependencies
from workplan_scheduler.loaders.project_loader import (
    frame_to_project,
    load_project,
    parse_predecessor_cell,
    project_to_frame,
    save_project,
)
from workplan_scheduler.cpm.pert_analysis import (
    build_schedule_frame,
    compute_task_levels,
    summarize_work_packages,
    trace_critical_path,
)

__version__ = "0.1.0"
