"""
Reschedule project files from the command line and report what happened.

Usage:
    workplan-validate project.json [more.json tasks.csv ...]
    workplan-validate project.json --write rescheduled.json
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from workplan_scheduler.constants import DEFAULT_LOG_LEVEL, LOG_LEVEL_ENV, MAX_ITERATIONS
from workplan_scheduler.loaders.project_loader import load_project, save_project
from workplan_scheduler.scheduling.schedule_engine import (
    build_task_records,
    get_work_packages,
    recalculate_project_schedule,
)


def setup_logging() -> None:
    level_name = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def validate_file(path: Path, max_iterations: int = MAX_ITERATIONS):
    """
    Run the scheduler on one file and print a compact summary.

    Returns the ScheduleResult, or None when the file could not be loaded.
    """
    try:
        project = load_project(path)
        result = recalculate_project_schedule(project, max_iterations=max_iterations)
    except (OSError, ValueError) as e:
        print(f"[{path.name}] ERROR ({e})")
        return None

    task_count = len(build_task_records(get_work_packages(result.project) or [])[0])
    status = "OK" if result.converged and not result.warnings else "WARN"

    print(
        f"{path.name:20s}  "
        f"tasks={task_count:3d}  "
        f"iterations={result.iterations:2d}  "
        f"shifted={len(result.shifted):3d}  "
        f"{status}"
    )
    for warning in result.warnings:
        print(f"    {warning}")

    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workplan-validate",
        description="Recalculate task dates from their dependencies and list scheduling warnings.",
    )
    parser.add_argument("paths", nargs="+", type=Path, help="Project .json or task table .csv")
    parser.add_argument(
        "--write", type=Path, metavar="OUT",
        help="Save the rescheduled project as JSON (single input only)",
    )
    parser.add_argument(
        "--max-iterations", type=int, default=MAX_ITERATIONS,
        help=f"Propagation pass budget (default {MAX_ITERATIONS})",
    )
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.write is not None and len(args.paths) != 1:
        parser.error("--write needs exactly one input file")
    if args.max_iterations < 1:
        parser.error("--max-iterations must be at least 1")

    setup_logging()

    failed = False
    for path in args.paths:
        result = validate_file(path, args.max_iterations)
        if result is None:
            failed = True
            continue
        if not result.converged:
            failed = True
        if args.write is not None:
            save_project(result.project, args.write)
            print(f"\nRescheduled project saved to: {args.write}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
