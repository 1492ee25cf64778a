"""
Tests for dashboard counters and the per-employee hours report
"""

from datetime import date, datetime, timedelta

from shopfloor.services import archiver, lifecycle, reports, timer_ledger


def test_dashboard_stats(db, make_job, users, bus):
    todo = make_job(title="Todo")
    running = make_job(title="Running", assignees=("e1", "e2"))
    done = make_job(title="Done")
    gone = make_job(title="Archived")
    timer_ledger.start_timer(db, running.id, users["e1"], bus=bus)
    timer_ledger.start_timer(db, running.id, users["e2"], bus=bus)
    lifecycle.set_status(db, done.id, "completed", users["admin"], bus=bus)
    lifecycle.set_status(db, gone.id, "completed", users["admin"], bus=bus)
    archiver.archive_job(db, gone.id, users["admin"], bus=bus)

    stats = reports.dashboard_stats(db)

    assert stats == {
        "todo_jobs": 1,
        "in_progress_jobs": 1,
        "completed_jobs": 1,
        "total_jobs": 3,
        "active_timers": 2,
        "archived_jobs": 1,
    }
    assert todo.status == "todo"


def test_dashboard_stats_on_empty_board(db):
    assert reports.dashboard_stats(db) == {
        "todo_jobs": 0,
        "in_progress_jobs": 0,
        "completed_jobs": 0,
        "total_jobs": 0,
        "active_timers": 0,
        "archived_jobs": 0,
    }


def test_employee_hours_grouped_by_day(db, make_job, users, bus):
    e1 = users["e1"]
    brakes = make_job(title="Brakes", assignees=("e1",))
    clutch = make_job(title="Clutch", assignees=("e1",))
    sessions = [
        (brakes, datetime(2024, 9, 2, 8, 0), 50),
        (clutch, datetime(2024, 9, 2, 13, 0), 70),
        (brakes, datetime(2024, 9, 2, 16, 0), 15),
        (clutch, datetime(2024, 9, 3, 9, 30), 120),
    ]
    for job, start, minutes in sessions:
        timer_ledger.start_timer(db, job.id, e1, now=start, bus=bus)
        timer_ledger.stop_timer(db, job.id, e1, now=start + timedelta(minutes=minutes), bus=bus)
    # Still running: not counted
    timer_ledger.start_timer(db, brakes.id, e1, now=datetime(2024, 9, 3, 15, 0), bus=bus)

    days = reports.employee_hours(db, e1.user_id)

    assert days == [
        {"work_date": "2024-09-03", "total_minutes": 120, "total_hours": 2.0, "sessions_count": 1, "jobs_worked": 1},
        {"work_date": "2024-09-02", "total_minutes": 135, "total_hours": 2.25, "sessions_count": 3, "jobs_worked": 2},
    ]
    only_second = reports.employee_hours(db, e1.user_id, start_date=date(2024, 9, 3), end_date=date(2024, 9, 3))
    assert [d["work_date"] for d in only_second] == ["2024-09-03"]
    assert reports.employee_hours(db, users["e2"].user_id) == []
