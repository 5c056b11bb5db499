import json

import pandas as pd
import pytest

from workplan_scheduler import (
    frame_to_project,
    load_project,
    parse_predecessor_cell,
    project_to_frame,
    recalculate_project_schedule,
    save_project,
)
from workplan_scheduler.loaders.project_loader import format_predecessor_cell


# ----------------------------------------------------------------
# 1. PARSING TESTS
# ----------------------------------------------------------------

def test_parse_predecessor_cell():
    # Bare id is FS
    assert parse_predecessor_cell("T1.1") == [("T1.1", "FS")]
    assert parse_predecessor_cell("T1.1FS") == [("T1.1", "FS")]

    # Types, any case, optional separator
    assert parse_predecessor_cell("T2.3ss") == [("T2.3", "SS")]
    assert parse_predecessor_cell("T2.3 FF") == [("T2.3", "FF")]
    assert parse_predecessor_cell("T2.3:SF") == [("T2.3", "SF")]

    # Multiple dependencies
    res = parse_predecessor_cell("T1.1FS, T1.2SS; T3")
    assert res == [("T1.1", "FS"), ("T1.2", "SS"), ("T3", "FS")]

    # Empty cells
    assert parse_predecessor_cell("") == []
    assert parse_predecessor_cell(None) == []
    assert parse_predecessor_cell(float("nan")) == []
    assert parse_predecessor_cell(" , ") == []


def test_format_predecessor_cell():
    deps = [
        {"predecessorId": "T1.1", "type": "FS"},
        {"predecessorId": "T1.2", "type": "ss"},
        {"predecessorId": "T1.3"},
        {"predecessorId": "", "type": "FS"},
    ]
    assert format_predecessor_cell(deps) == "T1.1FS, T1.2SS, T1.3FS"
    assert format_predecessor_cell(None) == ""

    # Unknown types and ids ending in a type code keep a separator
    assert format_predecessor_cell([{"predecessorId": "T1.1", "type": "xx"}]) == "T1.1:XX"
    assert format_predecessor_cell([{"predecessorId": "PROCESS", "type": "FS"}]) == "PROCESS:FS"


def test_parse_predecessor_cell_with_known_ids():
    known = {"PROCESS", "T1.1"}

    # An exact id is never split, even when it ends in a type code
    assert parse_predecessor_cell("PROCESS", known) == [("PROCESS", "FS")]
    assert parse_predecessor_cell("PROCESSSS", known) == [("PROCESS", "SS")]
    assert parse_predecessor_cell("PROCESS:FF", known) == [("PROCESS", "FF")]

    # No split when the leftover is not a task
    assert parse_predecessor_cell("T9SS", known) == [("T9SS", "FS")]
    assert parse_predecessor_cell("T1.1SS", known) == [("T1.1", "SS")]

    # Type after a colon is kept as written
    assert parse_predecessor_cell("T1.1:xx") == [("T1.1", "XX")]


# ----------------------------------------------------------------
# 2. TABLES
# ----------------------------------------------------------------

def sample_frame():
    return pd.DataFrame([
        {"TaskID": "T1.1", "WorkPackage": "WP1", "WorkPackageTitle": "Design",
         "Title": "Survey", "Start": "2025-01-01", "Finish": "2025-01-10", "Predecessors": ""},
        {"TaskID": "T2.1", "WorkPackage": "WP2", "WorkPackageTitle": "Build",
         "Title": "Pilot", "Start": "2025-01-05", "Finish": "2025-01-08", "Predecessors": "T1.1FS"},
        {"TaskID": "T1.2", "WorkPackage": "WP1", "WorkPackageTitle": "Design",
         "Title": "Report", "Start": None, "Finish": None, "Predecessors": "T1.1 SS"},
    ])


def test_frame_to_project_groups_work_packages():
    project = frame_to_project(sample_frame())
    wps = project["activities"]

    assert [wp["id"] for wp in wps] == ["WP1", "WP2"]
    assert wps[0]["title"] == "Design"
    assert [t["id"] for t in wps[0]["tasks"]] == ["T1.1", "T1.2"]
    assert wps[0]["milestones"] == [] and wps[0]["deliverables"] == []

    pilot = wps[1]["tasks"][0]
    assert pilot["startDate"] == "2025-01-05"
    assert pilot["dependencies"] == [{"predecessorId": "T1.1", "type": "FS"}]

    report = wps[0]["tasks"][1]
    assert report["startDate"] == "" and report["endDate"] == ""
    assert report["dependencies"] == [{"predecessorId": "T1.1", "type": "SS"}]


def test_frame_to_project_requires_columns():
    with pytest.raises(ValueError, match="Missing required columns"):
        frame_to_project(pd.DataFrame([{"TaskID": "T1"}]))


def test_frame_to_project_rejects_blank_ids():
    df = pd.DataFrame([{"TaskID": "", "WorkPackage": "WP1"}])
    with pytest.raises(ValueError, match="Blank TaskID"):
        frame_to_project(df)


def test_project_to_frame():
    df = project_to_frame(frame_to_project(sample_frame()))

    assert df["TaskID"].tolist() == ["T1.1", "T1.2", "T2.1"]
    assert df["Predecessors"].tolist() == ["", "T1.1SS", "T1.1FS"]
    assert df["WorkPackageTitle"].tolist() == ["Design", "Design", "Build"]
    assert df.loc[1, "Start"] == ""


def test_frame_to_project_keeps_ids_ending_in_type_codes():
    df = pd.DataFrame([
        {"TaskID": "PROCESS", "WorkPackage": "WP1", "Start": "2025-01-01",
         "Finish": "2025-01-10", "Predecessors": ""},
        {"TaskID": "REVIEW", "WorkPackage": "WP1", "Start": "2025-01-05",
         "Finish": "2025-01-08", "Predecessors": "PROCESS"},
    ])

    project = frame_to_project(df)

    review = project["activities"][0]["tasks"][1]
    assert review["dependencies"] == [{"predecessorId": "PROCESS", "type": "FS"}]

    result = recalculate_project_schedule(project)
    assert result.warnings == []
    moved = result.project["activities"][0]["tasks"][1]
    assert (moved["startDate"], moved["endDate"]) == ("2025-01-11", "2025-01-14")


def test_table_round_trip_keeps_unknown_types_apart():
    project = {"activities": [{"id": "WP1", "tasks": [
        {"id": "T1.1", "startDate": "2025-01-01", "endDate": "2025-01-02", "dependencies": []},
        {"id": "T1.2", "startDate": "2025-01-03", "endDate": "2025-01-04",
         "dependencies": [{"predecessorId": "T1.1", "type": "XX"}]},
    ]}]}

    reloaded = frame_to_project(project_to_frame(project))

    deps = reloaded["activities"][0]["tasks"][1]["dependencies"]
    assert deps == [{"predecessorId": "T1.1", "type": "XX"}]
    assert recalculate_project_schedule(reloaded).warnings == [
        'Task "T1.2" uses unknown dependency type "XX" on "T1.1" — dependency ignored.',
    ]


def test_project_to_frame_skips_malformed_entries():
    project = {"activities": [
        "not a work package",
        {"id": "WP1", "tasks": [
            None,
            {"id": "T1", "dependencies": ["junk", {"predecessorId": "T0"}]},
        ]},
        {"id": "WP2", "tasks": "none"},
    ]}

    df = project_to_frame(project)

    assert df["TaskID"].tolist() == ["T1"]
    assert df["WorkPackage"].tolist() == ["WP1"]
    assert df["Predecessors"].tolist() == ["T0FS"]


# ----------------------------------------------------------------
# 3. FILES
# ----------------------------------------------------------------

def test_load_project_json(tmp_path):
    doc = {"activities": [{"id": "WP1", "tasks": []}], "projectIdea": {"projectTitle": "X"}}
    path = tmp_path / "project.json"
    path.write_text(json.dumps(doc), encoding="utf-8")

    assert load_project(path) == doc


def test_load_project_csv(tmp_path):
    path = tmp_path / "tasks.csv"
    sample_frame().to_csv(path, index=False)

    project = load_project(path)

    assert [wp["id"] for wp in project["activities"]] == ["WP1", "WP2"]
    assert project["activities"][1]["tasks"][0]["endDate"] == "2025-01-08"
    assert project["activities"][0]["tasks"][1]["startDate"] == ""


def test_load_project_rejects_other_files(tmp_path):
    path = tmp_path / "plan.xml"
    path.write_text("<Project/>", encoding="utf-8")

    with pytest.raises(ValueError, match="Unsupported project file type"):
        load_project(path)


def test_save_project(tmp_path):
    doc = {"activities": [{"id": "WP1", "title": "Načrt", "tasks": []}]}
    path = tmp_path / "out.json"

    save_project(doc, path)

    assert json.loads(path.read_text(encoding="utf-8")) == doc
