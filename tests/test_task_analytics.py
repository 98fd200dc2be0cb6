from datetime import date, datetime

import pytest

from task_analytics import (
    completion_rate,
    days_to_complete,
    export_analytics,
    list_analytics,
    overdue_analytics,
    productivity_metrics,
    tag_analytics,
    time_to_complete_metrics,
    window_bounds,
)
from web_models import Task, TaskList


def done(created, completed, **kwargs):
    return Task(title="feita", status="concluida", created_at=created, completed_at=completed, **kwargs)


def test_completion_rate():
    assert completion_rate(0, 0) == 0
    assert completion_rate(1, 2) == 50
    assert completion_rate(1, 3) == 33
    assert completion_rate(2, 3) == 67
    assert completion_rate(29, 200) == 15


def test_window_bounds():
    # 10/05/2024 é uma sexta-feira; a semana vai de domingo a sábado
    assert window_bounds("week", date(2024, 5, 10)) == (date(2024, 5, 5), date(2024, 5, 11))
    assert window_bounds("week", date(2024, 5, 12)) == (date(2024, 5, 12), date(2024, 5, 18))
    assert window_bounds("month", date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
    with pytest.raises(ValueError):
        window_bounds("year", date(2024, 2, 10))


def test_days_to_complete_rounds_up():
    task = done(datetime(2024, 5, 1, 10, 0), datetime(2024, 5, 2, 10, 1))
    assert days_to_complete(task) == 2

    same_day = done(datetime(2024, 5, 1, 10, 0), datetime(2024, 5, 1, 18, 0))
    assert days_to_complete(same_day) == 1


def test_time_to_complete_metrics():
    assert time_to_complete_metrics([]) == {
        "count": 0, "average_days": 0, "median_days": 0, "fastest": 0, "slowest": 0,
    }

    tasks = [
        done(datetime(2024, 5, 1), datetime(2024, 5, 2)),
        done(datetime(2024, 5, 1), datetime(2024, 5, 3)),
        done(datetime(2024, 5, 1), datetime(2024, 5, 5)),
        Task(title="aberta", created_at=datetime(2024, 5, 1)),
    ]
    metrics = time_to_complete_metrics(tasks)
    assert metrics["count"] == 3
    assert metrics["average_days"] == 2
    assert metrics["median_days"] == 2
    assert metrics["fastest"] == 1
    assert metrics["slowest"] == 4


def test_productivity_metrics_week():
    now = datetime(2024, 5, 10, 12, 0)
    tasks = [
        done(datetime(2024, 5, 7, 9, 0), datetime(2024, 5, 8, 9, 0), priority="alta"),
        Task(title="nova", created_at=datetime(2024, 5, 9, 9, 0)),
        Task(title="antiga", created_at=datetime(2024, 4, 1, 9, 0)),
    ]

    metrics = productivity_metrics(tasks, "week", now)

    assert metrics["start"] == "2024-05-05"
    assert metrics["total_tasks"] == 2
    assert metrics["completed"] == 1
    assert metrics["pending"] == 1
    assert metrics["completion_rate"] == 50
    assert metrics["priority_distribution"] == {"alta": 1, "media": 1}
    assert len(metrics["daily_tasks"]) == 7
    wednesday = metrics["daily_tasks"][3]
    assert wednesday == {"date": "2024-05-08", "label": "08/05", "created": 0, "completed": 1}


def test_empty_collection_has_zero_rate():
    metrics = productivity_metrics([], "month", datetime(2024, 5, 10))
    assert metrics["completion_rate"] == 0
    assert len(metrics["daily_tasks"]) == 31


def test_list_rollup_omits_empty_lists():
    lists = [TaskList(id="l1", name="Trabalho"), TaskList(id="l2", name="Vazia")]
    tasks = [
        Task(title="a", list_id="l1", status="concluida"),
        Task(title="b", list_id="l1"),
        Task(title="c"),
    ]

    result = list_analytics(tasks, lists)

    assert len(result) == 1
    assert result[0]["name"] == "Trabalho"
    assert result[0]["total"] == 2
    assert result[0]["completion_rate"] == 50


def test_tag_rollup_sorted_by_count():
    tasks = [
        Task(title="a", tags=["x", "y"]),
        Task(title="b", tags=["y"]),
    ]
    assert [t["tag"] for t in tag_analytics(tasks)] == ["y", "x"]


def test_overdue_buckets():
    today = date(2024, 5, 31)
    tasks = [
        Task(title="a", due_date=date(2024, 5, 30), priority="alta"),
        Task(title="b", due_date=date(2024, 5, 15)),
        Task(title="c", due_date=date(2024, 3, 1)),
        Task(title="d", due_date=date(2024, 5, 1), status="concluida"),
    ]

    result = overdue_analytics(tasks, today)

    assert result["total"] == 3
    assert result["by_days_range"] == {"1-7": 1, "8-30": 1, "30+": 1}
    assert result["by_priority"] == {"alta": 1, "media": 2}


def test_export_summary():
    report = export_analytics([Task(title="a"), Task(title="b", status="concluida")],
                              now=datetime(2024, 5, 10))
    assert report["summary"]["total_tasks"] == 2
    assert report["summary"]["completion_rate"] == 50
    assert report["productivity"]["window"] == "week"
