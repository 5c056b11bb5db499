import json

import pytest

from workplan_scheduler.validation.validate_project import main


def write_project(path, tasks):
    doc = {"activities": [{"id": "WP1", "title": "Work", "tasks": tasks}]}
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def scenario_tasks():
    return [
        {"id": "T1.1", "startDate": "2025-01-01", "endDate": "2025-01-10", "dependencies": []},
        {"id": "T1.2", "startDate": "2025-01-05", "endDate": "2025-01-08",
         "dependencies": [{"predecessorId": "T1.1", "type": "FS"}]},
    ]


def test_clean_project_reports_ok(tmp_path, capsys):
    path = write_project(tmp_path / "plan.json", scenario_tasks())

    assert main([str(path)]) == 0

    out = capsys.readouterr().out
    assert "plan.json" in out
    assert "tasks=  2" in out
    assert "shifted=  1" in out
    assert "OK" in out


def test_warnings_are_listed(tmp_path, capsys):
    tasks = scenario_tasks()
    tasks[0]["dependencies"] = [{"predecessorId": "T9", "type": "FS"}]
    path = write_project(tmp_path / "plan.json", tasks)

    assert main([str(path)]) == 0

    out = capsys.readouterr().out
    assert "WARN" in out
    assert 'references unknown predecessor "T9"' in out


def test_circular_project_fails(tmp_path, capsys):
    path = write_project(tmp_path / "loop.json", [
        {"id": "A", "startDate": "2025-01-01", "endDate": "2025-01-02",
         "dependencies": [{"predecessorId": "B", "type": "FS"}]},
        {"id": "B", "startDate": "2025-01-01", "endDate": "2025-01-02",
         "dependencies": [{"predecessorId": "A", "type": "FS"}]},
    ])

    assert main([str(path), "--max-iterations", "5"]) == 1

    out = capsys.readouterr().out
    assert "iterations= 5" in out
    assert "circular dependencies" in out


def test_write_saves_rescheduled_project(tmp_path, capsys):
    path = write_project(tmp_path / "plan.json", scenario_tasks())
    out_path = tmp_path / "out.json"

    assert main([str(path), "--write", str(out_path)]) == 0

    saved = json.loads(out_path.read_text(encoding="utf-8"))
    task = saved["activities"][0]["tasks"][1]
    assert (task["startDate"], task["endDate"]) == ("2025-01-11", "2025-01-14")


def test_unreadable_file_is_reported(tmp_path, capsys):
    bad = tmp_path / "broken.json"
    bad.write_text("{not json", encoding="utf-8")
    missing = tmp_path / "missing.json"

    assert main([str(bad), str(missing)]) == 1

    out = capsys.readouterr().out
    assert "[broken.json] ERROR" in out
    assert "[missing.json] ERROR" in out


def test_write_needs_single_input(tmp_path):
    a = write_project(tmp_path / "a.json", scenario_tasks())
    b = write_project(tmp_path / "b.json", scenario_tasks())

    with pytest.raises(SystemExit):
        main([str(a), str(b), "--write", str(tmp_path / "out.json")])
