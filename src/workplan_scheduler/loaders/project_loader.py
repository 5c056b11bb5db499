import json
import re
from collections.abc import Mapping
from pathlib import Path

import pandas as pd

from workplan_scheduler.constants import ACTIVITIES_KEY, DATE_FORMAT
from workplan_scheduler.scheduling.models import DependencyType
from workplan_scheduler.scheduling.schedule_engine import get_work_packages, iter_tasks

REQUIRED_COLUMNS = ["TaskID", "WorkPackage"]

TABLE_COLUMNS = [
    "TaskID", "WorkPackage", "WorkPackageTitle",
    "Title", "Start", "Finish", "Predecessors",
]

TYPE_CODES = {t.value for t in DependencyType}

CELL_PATTERN = re.compile(
    r"""
    ^\s*
    (?P<pred>.+?)                     # task id, e.g. T1.1
    \s*
    (?P<type>FS|SS|FF|SF)?            # optional link type
    \s*$
    """,
    re.IGNORECASE | re.VERBOSE,
)


# ---------------------------------------------------------
# PREDECESSOR CELLS
# ---------------------------------------------------------

def _parse_cell_part(s, known_ids=None):
    if known_ids is not None and s in known_ids:
        return s, "FS"

    # "T1.1:SS" keeps whatever follows the colon, unknown codes included
    if ":" in s:
        pred, _, dep_type = s.rpartition(":")
        if pred.strip():
            return pred.strip(), dep_type.strip().upper() or "FS"

    m = CELL_PATTERN.match(s)
    if m and m.group("type"):
        pred = m.group("pred").strip()
        if known_ids is None or pred in known_ids:
            return pred, m.group("type").upper()
    return s, "FS"


def parse_predecessor_cell(cell, known_ids=None):
    """
    Parse a Predecessors cell like:
      "T1.1"
      "T1.1FS"
      "T1.1 SS, T2.3ff"
      "T2.3:SF"
    into a list of tuples:
      [("T1.1", "FS"), ("T2.3", "FF"), ...]

    A bare id means FS. With known_ids, an entry that is itself a known id
    is never split, and a trailing type is only split off when what is left
    is a known id ("PROCESS" stays "PROCESS", not "PROCE" + SS).
    """
    if cell is None:
        return []
    if not isinstance(cell, str) and pd.isna(cell):
        return []

    text = str(cell).strip()
    if not text:
        return []

    results = []
    for raw in re.split(r"[;,]", text):
        s = raw.strip()
        if not s:
            continue
        results.append(_parse_cell_part(s, known_ids))

    return results


def format_predecessor_cell(dependencies) -> str:
    """
    Inverse of parse_predecessor_cell for a task's dependency list.

    Uses "T1.1:XX" when the type is not a known code or the id itself ends
    in one, so the type stays apart from the id on reload.
    """
    if not isinstance(dependencies, (list, tuple)):
        return ""

    parts = []
    for dep in dependencies:
        if not isinstance(dep, Mapping):
            continue
        pred = str(dep.get("predecessorId") or "").strip()
        if not pred:
            continue
        dep_type = str(dep.get("type") or "FS").strip().upper()
        if dep_type not in TYPE_CODES or pred[-2:].upper() in TYPE_CODES:
            parts.append(f"{pred}:{dep_type}")
        else:
            parts.append(f"{pred}{dep_type}")
    return ", ".join(parts)


# ---------------------------------------------------------
# TABLE <-> PROJECT
# ---------------------------------------------------------

def _date_text(value) -> str:
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return ""
    return ts.strftime(DATE_FORMAT)


def _cell_text(value) -> str:
    if value is None:
        return ""
    if not isinstance(value, str) and pd.isna(value):
        return ""
    return str(value).strip()


def frame_to_project(df_input: pd.DataFrame) -> dict:
    """
    Build a project document from a flat task table.

    Needs TaskID and WorkPackage columns; Title, WorkPackageTitle, Start,
    Finish and Predecessors are optional. Work packages keep the order in
    which they first appear.
    """
    df = df_input.copy()
    df.columns = [str(c).strip() for c in df.columns]

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    task_ids = df["TaskID"].map(_cell_text)
    if (task_ids == "").any():
        bad = df[task_ids == ""].head()
        raise ValueError(
            "Blank TaskID values found. Example rows:\n"
            f"{bad.to_string(index=False)}"
        )

    known_ids = set(task_ids)
    packages = {}
    for pos, (_, row) in enumerate(df.iterrows()):
        wp_id = _cell_text(row["WorkPackage"])

        wp = packages.get(wp_id)
        if wp is None:
            wp = {
                "id": wp_id,
                "title": _cell_text(row.get("WorkPackageTitle")),
                "tasks": [],
                "milestones": [],
                "deliverables": [],
            }
            packages[wp_id] = wp

        wp["tasks"].append({
            "id": task_ids.iloc[pos],
            "title": _cell_text(row.get("Title")),
            "description": "",
            "startDate": _date_text(row.get("Start")),
            "endDate": _date_text(row.get("Finish")),
            "dependencies": [
                {"predecessorId": pred, "type": dep_type}
                for pred, dep_type in parse_predecessor_cell(row.get("Predecessors"), known_ids)
            ],
        })

    return {ACTIVITIES_KEY: list(packages.values())}


def project_to_frame(project) -> pd.DataFrame:
    """Flat task table of a project, undated tasks included."""
    rows = []
    for _, _, wp, task in iter_tasks(get_work_packages(project) or []):
        rows.append({
            "TaskID": _cell_text(task.get("id")),
            "WorkPackage": _cell_text(wp.get("id")),
            "WorkPackageTitle": _cell_text(wp.get("title")),
            "Title": _cell_text(task.get("title")),
            "Start": _cell_text(task.get("startDate")),
            "Finish": _cell_text(task.get("endDate")),
            "Predecessors": format_predecessor_cell(task.get("dependencies")),
        })

    return pd.DataFrame(rows, columns=TABLE_COLUMNS)


# ---------------------------------------------------------
# FILES
# ---------------------------------------------------------

def load_project(path):
    """
    Read a project from disk.

    .json -> project document as saved by the authoring tool
    .csv  -> flat task table, see frame_to_project
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    if suffix == ".csv":
        return frame_to_project(pd.read_csv(path, dtype=str, keep_default_na=False))

    raise ValueError(f"Unsupported project file type: {path.name}")


def save_project(project, path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(project, f, indent=2, ensure_ascii=False)
        f.write("\n")
