"""
tests/integration/test_tasks.py — Integration tests for task and scheduler endpoints.

Endpoints covered:
  POST   /tasks/                  → 201 (create)
  GET    /tasks/                  → 200 (group tasks)
  GET    /tasks/mine              → 200 (caller's tasks this week)
  GET    /tasks/week/:date        → 200 (tasks relevant to a week)
  GET    /tasks/date/:date        → 200 (tasks relevant to a day)
  PUT    /tasks/:id/status        → 200 (update own assignment)
  POST   /tasks/:id/assign        → 200 (replace this week's assignees)
  POST   /tasks/assign-weekly     → 200 (weekly scheduler)
  DELETE /tasks/:id               → 200 (delete)

CLI covered:
  flask assign-weekly-tasks [--group-id ID]

Clock-dependent scheduler rules (one-time tasks across weeks, NULL
required_people backfill) are covered DB-free in
tests/unit/test_task_service_units.py.
"""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from roomsync.app.ids import new_record_id
from roomsync.app.services.task_service import NO_TASKS_MESSAGE, TaskService
from roomsync.app.services.week import week_start

from .conftest import (
    auth_headers,
    delete_user,
    future_deadline,
    join_group,
    make_group,
    make_task,
    make_user,
)


def _setup(app, client):
    """Alice (owner), Bob and Carol in one group."""
    alice = make_user(app, "alice")
    bob   = make_user(app, "bob")
    carol = make_user(app, "carol")
    group = make_group(client, alice)
    join_group(client, bob, group["invite_code"])
    join_group(client, carol, group["invite_code"])
    return alice, bob, carol, group


def _created(resp) -> dict:
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def _assignee_ids(task: dict) -> set[str]:
    return {a["user_id"] for a in task["current_week_assignments"]}


def _assign(client, user_id: str, task_id: str, user_ids: list[str]):
    return client.post(
        f"/api/v1/tasks/{task_id}/assign",
        json={"user_ids": user_ids},
        headers=auth_headers(user_id),
    )


def _set_status(client, user_id: str, task_id: str, status: str):
    return client.put(
        f"/api/v1/tasks/{task_id}/status",
        json={"status": status},
        headers=auth_headers(user_id),
    )


def _run_scheduler(client, user_id: str):
    return client.post("/api/v1/tasks/assign-weekly", headers=auth_headers(user_id))


# ═══════════════════════════════════════════════════════════════════════════
# POST /tasks/
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateTask:

    def test_create_task_returns_201(self, app, client):
        alice, _, _, group = _setup(app, client)
        task = _created(make_task(
            client, alice,
            name="Take out bins",
            difficulty=3,
            recurrence="weekly",
            required_people=2,
            description="Green bin on Tuesdays",
        ))
        assert task["group_id"] == group["id"]
        assert task["name"] == "Take out bins"
        assert task["difficulty"] == 3
        assert task["recurrence"] == "weekly"
        assert task["required_people"] == 2
        assert task["created_by"] == alice
        assert task["creator"]["name"] == "alice"
        assert task["completion_rate"] == 0
        assert task["assignments"] == []

    def test_create_with_assignees_assigns_current_week(self, app, client):
        alice, bob, carol, _ = _setup(app, client)
        task = _created(make_task(client, alice, assigned_user_ids=[bob, carol], required_people=2))
        assert _assignee_ids(task) == {bob, carol}
        assert all(a["status"] == "incomplete" for a in task["current_week_assignments"])
        assert {a["user"]["name"] for a in task["current_week_assignments"]} == {"bob", "carol"}

    def test_deleted_creator_shows_as_null(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        _created(make_task(client, bob, assigned_user_ids=[bob]))
        delete_user(app, bob)

        (task,) = client.get("/api/v1/tasks/", headers=auth_headers(alice)).get_json()["data"]
        assert task["created_by"] == bob
        assert task["creator"] is None
        assert task["current_week_assignments"][0]["user"] is None

    def test_one_time_task_requires_deadline(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = make_task(client, alice, recurrence="one-time")
        assert resp.status_code == 400
        err = resp.get_json()["error"]
        assert err["code"] == "INVALID_FIELD"
        assert err["field"] == "deadline"

    def test_one_time_task_with_future_deadline(self, app, client):
        alice, _, _, _ = _setup(app, client)
        task = _created(make_task(client, alice, recurrence="one-time", deadline=future_deadline()))
        assert task["recurrence"] == "one-time"
        assert task["deadline"] is not None

    def test_past_deadline_returns_400(self, app, client):
        alice, _, _, _ = _setup(app, client)
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        resp = make_task(client, alice, recurrence="one-time", deadline=past)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "deadline"

    def test_difficulty_out_of_range_returns_400(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = make_task(client, alice, difficulty=6)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "difficulty"

    def test_difficulty_as_string_returns_400(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = make_task(client, alice, difficulty="3")
        assert resp.status_code == 400

    def test_unknown_recurrence_returns_400(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = make_task(client, alice, recurrence="hourly")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "recurrence"

    def test_missing_required_people_returns_missing_field(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = client.post(
            "/api/v1/tasks/",
            json={"name": "Dishes", "difficulty": 2, "recurrence": "weekly"},
            headers=auth_headers(alice),
        )
        assert resp.status_code == 400
        err = resp.get_json()["error"]
        assert err["code"] == "MISSING_FIELD"
        assert err["field"] == "required_people"

    def test_assigning_outsider_returns_404(self, app, client):
        alice, _, _, _ = _setup(app, client)
        outsider = make_user(app, "outsider")
        resp = make_task(client, alice, assigned_user_ids=[outsider])
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_A_MEMBER"

    def test_create_without_group_returns_404(self, app, client):
        loner = make_user(app, "loner")
        resp = make_task(client, loner)
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_IN_GROUP"


# ═══════════════════════════════════════════════════════════════════════════
# GET /tasks/, /tasks/mine, /tasks/week/:date
# ═══════════════════════════════════════════════════════════════════════════

class TestListTasks:

    def test_list_group_tasks(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        _created(make_task(client, alice, name="Dishes"))
        _created(make_task(client, bob, name="Vacuum"))

        resp = client.get("/api/v1/tasks/", headers=auth_headers(bob))
        assert resp.status_code == 200
        assert {t["name"] for t in resp.get_json()["data"]} == {"Dishes", "Vacuum"}

    def test_other_groups_tasks_are_not_listed(self, app, client):
        alice, _, _, _ = _setup(app, client)
        _created(make_task(client, alice, name="Dishes"))

        dave = make_user(app, "dave")
        make_group(client, dave, name="Elsewhere")
        resp = client.get("/api/v1/tasks/", headers=auth_headers(dave))
        assert resp.get_json()["data"] == []

    def test_list_my_tasks_only_returns_own_assignments(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        _created(make_task(client, alice, name="Dishes", assigned_user_ids=[bob]))
        _created(make_task(client, alice, name="Vacuum", assigned_user_ids=[alice]))

        bob_tasks = client.get("/api/v1/tasks/mine", headers=auth_headers(bob)).get_json()["data"]
        assert [t["name"] for t in bob_tasks] == ["Dishes"]

    def test_week_view_filters_one_time_tasks_by_deadline(self, app, client):
        alice, _, _, _ = _setup(app, client)
        deadline = datetime.now().astimezone() + timedelta(days=30)
        _created(make_task(client, alice, name="Dishes", recurrence="weekly"))
        _created(make_task(
            client, alice,
            name="Defrost freezer",
            recurrence="one-time",
            deadline=deadline.isoformat(),
        ))

        that_week = week_start(deadline.date()).isoformat()
        resp = client.get(f"/api/v1/tasks/week/{that_week}", headers=auth_headers(alice))
        assert resp.status_code == 200
        assert {t["name"] for t in resp.get_json()["data"]} == {"Dishes", "Defrost freezer"}

        this_week = week_start(datetime.now().astimezone().date()).isoformat()
        resp = client.get(f"/api/v1/tasks/week/{this_week}", headers=auth_headers(alice))
        assert [t["name"] for t in resp.get_json()["data"]] == ["Dishes"]

    def test_week_view_rejects_bad_date(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = client.get("/api/v1/tasks/week/next-tuesday", headers=auth_headers(alice))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "week_start"

    def test_date_view_lists_one_time_tasks_due_that_day(self, app, client):
        alice, _, _, _ = _setup(app, client)
        deadline = datetime.now().astimezone() + timedelta(days=10)
        _created(make_task(client, alice, name="Dishes", recurrence="weekly"))
        _created(make_task(
            client, alice,
            name="Defrost freezer",
            recurrence="one-time",
            deadline=deadline.isoformat(),
        ))

        due_day = deadline.date()
        resp = client.get(f"/api/v1/tasks/date/{due_day.isoformat()}", headers=auth_headers(alice))
        assert resp.status_code == 200
        assert {t["name"] for t in resp.get_json()["data"]} == {"Dishes", "Defrost freezer"}

        day_after = (due_day + timedelta(days=1)).isoformat()
        resp = client.get(f"/api/v1/tasks/date/{day_after}", headers=auth_headers(alice))
        assert [t["name"] for t in resp.get_json()["data"]] == ["Dishes"]

    def test_date_view_rejects_bad_date(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = client.get("/api/v1/tasks/date/2026-13-40", headers=auth_headers(alice))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "date"

    def test_date_view_requires_a_group(self, app, client):
        loner = make_user(app, "loner")
        resp = client.get("/api/v1/tasks/date/2026-11-21", headers=auth_headers(loner))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_IN_GROUP"


@pytest.fixture
def pacific_time(monkeypatch):
    """Runs the test with the process's local zone set to America/Los_Angeles."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "America/Los_Angeles")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def _saturday_at_least_a_month_out() -> date:
    day = date.today() + timedelta(days=30)
    return day + timedelta(days=(5 - day.weekday()) % 7)  # Saturday == 5


class TestLocalCalendar:

    def test_saturday_evening_deadline_belongs_to_its_local_week(self, app, client, pacific_time):
        alice, _, _, _ = _setup(app, client)
        saturday = _saturday_at_least_a_month_out()
        # 20:00 Pacific on a Saturday is already Sunday in UTC.
        deadline = datetime(saturday.year, saturday.month, saturday.day, 20, 0).astimezone()
        assert deadline.astimezone(timezone.utc).date() == saturday + timedelta(days=1)
        _created(make_task(
            client, alice,
            name="Defrost",
            recurrence="one-time",
            deadline=deadline.isoformat(),
        ))

        its_week = week_start(saturday).isoformat()
        resp = client.get(f"/api/v1/tasks/week/{its_week}", headers=auth_headers(alice))
        assert [t["name"] for t in resp.get_json()["data"]] == ["Defrost"]

        next_week = (week_start(saturday) + timedelta(days=7)).isoformat()
        resp = client.get(f"/api/v1/tasks/week/{next_week}", headers=auth_headers(alice))
        assert resp.get_json()["data"] == []

    def test_saturday_evening_deadline_is_listed_on_saturday(self, app, client, pacific_time):
        alice, _, _, _ = _setup(app, client)
        saturday = _saturday_at_least_a_month_out()
        deadline = datetime(saturday.year, saturday.month, saturday.day, 20, 0).astimezone()
        _created(make_task(
            client, alice,
            name="Defrost",
            recurrence="one-time",
            deadline=deadline.isoformat(),
        ))

        on_saturday = client.get(
            f"/api/v1/tasks/date/{saturday.isoformat()}", headers=auth_headers(alice)
        ).get_json()["data"]
        on_sunday = client.get(
            f"/api/v1/tasks/date/{(saturday + timedelta(days=1)).isoformat()}",
            headers=auth_headers(alice),
        ).get_json()["data"]
        assert [t["name"] for t in on_saturday] == ["Defrost"]
        assert on_sunday == []


# ═══════════════════════════════════════════════════════════════════════════
# PUT /tasks/:id/status
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateStatus:

    def test_complete_then_reopen(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        task = _created(make_task(client, alice, assigned_user_ids=[bob]))

        resp = _set_status(client, bob, task["id"], "completed")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        (mine,) = data["current_week_assignments"]
        assert mine["status"] == "completed"
        assert mine["completed_at"] is not None
        assert data["completion_rate"] == 100

        resp = _set_status(client, bob, task["id"], "in-progress")
        (mine,) = resp.get_json()["data"]["current_week_assignments"]
        assert mine["status"] == "in-progress"
        assert mine["completed_at"] is None

    def test_unassigned_user_returns_404(self, app, client):
        alice, bob, carol, _ = _setup(app, client)
        task = _created(make_task(client, alice, assigned_user_ids=[bob]))
        resp = _set_status(client, carol, task["id"], "completed")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "ASSIGNMENT_NOT_FOUND"

    def test_unknown_status_returns_400(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        task = _created(make_task(client, alice, assigned_user_ids=[bob]))
        resp = _set_status(client, bob, task["id"], "done")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "status"

    def test_unknown_task_returns_404(self, app, client):
        alice, _, _, _ = _setup(app, client)
        resp = _set_status(client, alice, new_record_id(), "completed")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "TASK_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# POST /tasks/:id/assign
# ═══════════════════════════════════════════════════════════════════════════

class TestManualAssign:

    def test_assign_replaces_current_week(self, app, client):
        alice, bob, carol, _ = _setup(app, client)
        task = _created(make_task(client, alice, assigned_user_ids=[bob]))

        resp = _assign(client, alice, task["id"], [alice, carol])
        assert resp.status_code == 200
        assert _assignee_ids(resp.get_json()["data"]) == {alice, carol}

        # Re-listing a user who is already assigned must not trip the
        # (task, user, week) unique constraint.
        resp = _assign(client, alice, task["id"], [carol, bob])
        assert resp.status_code == 200
        assert _assignee_ids(resp.get_json()["data"]) == {carol, bob}

    def test_duplicate_user_returns_409(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        task = _created(make_task(client, alice))
        resp = _assign(client, alice, task["id"], [bob, bob])
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "DUPLICATE_ASSIGNMENT"

    def test_creator_who_is_not_owner_can_assign(self, app, client):
        _, bob, carol, _ = _setup(app, client)
        task = _created(make_task(client, bob))
        resp = _assign(client, bob, task["id"], [carol])
        assert resp.status_code == 200

    def test_other_member_cannot_assign(self, app, client):
        alice, bob, carol, _ = _setup(app, client)
        task = _created(make_task(client, alice))
        resp = _assign(client, carol, task["id"], [bob])
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "NO_PERMISSION"

    def test_empty_list_returns_400(self, app, client):
        alice, _, _, _ = _setup(app, client)
        task = _created(make_task(client, alice))
        resp = _assign(client, alice, task["id"], [])
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "user_ids"


# ═══════════════════════════════════════════════════════════════════════════
# POST /tasks/assign-weekly
# ═══════════════════════════════════════════════════════════════════════════

class TestWeeklyScheduler:

    def test_assigns_every_unassigned_task(self, app, client):
        alice, bob, carol, _ = _setup(app, client)
        _created(make_task(client, alice, name="Dishes", required_people=1))
        _created(make_task(client, alice, name="Bathroom", required_people=2))

        resp = _run_scheduler(client, bob)
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["assigned_tasks"] == 2
        assert data["week_start"] == week_start(datetime.now().astimezone().date()).isoformat()

        tasks = client.get("/api/v1/tasks/", headers=auth_headers(alice)).get_json()["data"]
        by_name = {t["name"]: t for t in tasks}
        assert len(by_name["Dishes"]["current_week_assignments"]) == 1
        assert len(by_name["Bathroom"]["current_week_assignments"]) == 2
        for task in tasks:
            assert _assignee_ids(task) <= {alice, bob, carol}

    def test_required_people_is_capped_at_member_count(self, app, client):
        alice, bob, carol, _ = _setup(app, client)
        _created(make_task(client, alice, required_people=5))

        _run_scheduler(client, alice)

        (task,) = client.get("/api/v1/tasks/", headers=auth_headers(alice)).get_json()["data"]
        assert _assignee_ids(task) == {alice, bob, carol}
        assert len(task["current_week_assignments"]) == 3

    def test_second_run_in_same_week_is_a_no_op(self, app, client):
        alice, _, _, _ = _setup(app, client)
        _created(make_task(client, alice))

        assert _run_scheduler(client, alice).get_json()["data"]["assigned_tasks"] == 1
        data = _run_scheduler(client, alice).get_json()["data"]
        assert data["assigned_tasks"] == 0
        assert data["message"] == NO_TASKS_MESSAGE

    def test_manually_assigned_task_is_skipped(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        task = _created(make_task(client, alice, required_people=3, assigned_user_ids=[bob]))

        assert _run_scheduler(client, alice).get_json()["data"]["assigned_tasks"] == 0

        (listed,) = client.get("/api/v1/tasks/", headers=auth_headers(alice)).get_json()["data"]
        assert listed["id"] == task["id"]
        assert _assignee_ids(listed) == {bob}

    def test_group_without_tasks(self, app, client):
        alice, _, _, _ = _setup(app, client)
        data = _run_scheduler(client, alice).get_json()["data"]
        assert data == {
            "assigned_tasks": 0,
            "week_start": data["week_start"],
            "message": NO_TASKS_MESSAGE,
        }


# ═══════════════════════════════════════════════════════════════════════════
# DELETE /tasks/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestDeleteTask:

    def test_creator_deletes_task(self, app, client):
        _, bob, carol, _ = _setup(app, client)
        task = _created(make_task(client, bob, assigned_user_ids=[carol]))

        resp = client.delete(f"/api/v1/tasks/{task['id']}", headers=auth_headers(bob))
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"deleted": True, "task_id": task["id"]}
        assert client.get("/api/v1/tasks/", headers=auth_headers(bob)).get_json()["data"] == []

    def test_owner_deletes_any_task(self, app, client):
        alice, bob, _, _ = _setup(app, client)
        task = _created(make_task(client, bob))
        resp = client.delete(f"/api/v1/tasks/{task['id']}", headers=auth_headers(alice))
        assert resp.status_code == 200

    def test_other_member_cannot_delete(self, app, client):
        alice, _, carol, _ = _setup(app, client)
        task = _created(make_task(client, alice))
        resp = client.delete(f"/api/v1/tasks/{task['id']}", headers=auth_headers(carol))
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "NO_PERMISSION"

    def test_task_of_other_group_is_not_found(self, app, client):
        alice, _, _, _ = _setup(app, client)
        task = _created(make_task(client, alice))

        dave = make_user(app, "dave")
        make_group(client, dave, name="Elsewhere")
        resp = client.delete(f"/api/v1/tasks/{task['id']}", headers=auth_headers(dave))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "TASK_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# flask assign-weekly-tasks
# ═══════════════════════════════════════════════════════════════════════════

class TestAssignWeeklyCommand:

    def test_command_schedules_every_group(self, app, client):
        alice, _, _, group = _setup(app, client)
        _created(make_task(client, alice))

        dave = make_user(app, "dave")
        other = make_group(client, dave, name="Elsewhere")

        result = app.test_cli_runner().invoke(args=["assign-weekly-tasks"])
        assert result.exit_code == 0, result.output
        assert f"{group['id']}: Assigned 1 task(s)" in result.output
        assert f"{other['id']}: {NO_TASKS_MESSAGE}" in result.output

    def test_command_for_single_group(self, app, client):
        alice, _, _, group = _setup(app, client)
        _created(make_task(client, alice))

        result = app.test_cli_runner().invoke(
            args=["assign-weekly-tasks", "--group-id", group["id"]]
        )
        assert result.exit_code == 0, result.output

        (task,) = client.get("/api/v1/tasks/", headers=auth_headers(alice)).get_json()["data"]
        assert len(task["current_week_assignments"]) == 1

    def test_command_unknown_group_exits_non_zero(self, app):
        result = app.test_cli_runner().invoke(
            args=["assign-weekly-tasks", "--group-id", new_record_id()]
        )
        assert result.exit_code == 1
        assert "GROUP_NOT_FOUND" in result.output

    def test_store_failure_in_one_group_does_not_stop_the_run(self, app, client, monkeypatch):
        alice, _, _, broken = _setup(app, client)
        _created(make_task(client, alice, name="Dishes"))

        dave = make_user(app, "dave")
        healthy = make_group(client, dave, name="Elsewhere")
        _created(make_task(client, dave, name="Vacuum"))

        run_weekly = TaskService._run_weekly

        def flaky_run_weekly(service, group):
            if group.id == broken["id"]:
                raise OperationalError("SELECT", {}, Exception("connection reset"))
            return run_weekly(service, group)

        monkeypatch.setattr(TaskService, "_run_weekly", flaky_run_weekly)

        result = app.test_cli_runner().invoke(args=["assign-weekly-tasks"])
        assert result.exit_code == 1
        assert f"{broken['id']}: DEPENDENCY_FAILURE" in result.output
        assert f"{healthy['id']}: Assigned 1 task(s)" in result.output

        (task,) = client.get("/api/v1/tasks/", headers=auth_headers(dave)).get_json()["data"]
        assert len(task["current_week_assignments"]) == 1
