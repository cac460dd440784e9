"""
services/task_service.py — Chore tasks and the weekly assignment scheduler.

Weekly scheduler (assign_weekly_tasks / assign_weekly_tasks_for_group), per
task of the group:
  1. one-time task that was ever assigned          → skip
  2. task already assigned for the current week    → skip (re-runs are no-ops)
  3. n = min(required_people, member count); legacy NULL required_people is
     backfilled to 1
  4. n members drawn uniformly without replacement from the whole roster
     (the owner is just another member)
  5. one INCOMPLETE assignment per drawn member, then COMMIT

The scheduler is the one place in the service layer that commits: each task
is committed on its own so a failure half-way leaves earlier tasks assigned
(at-least-once, not all-or-nothing). A store error on that commit is rolled
back and raised as DependencyFailure. Selection has no memory across weeks.

Deadlines are stored in UTC but placed on the calendar by their local date
(services/week.py); the zone is injectable and defaults to the system zone.

Task views dereference the creator and the assignees through UserDirectory.
A user that cannot be resolved shows as null; the ids are always present.

Manual assignment (assign_task) replaces the current week's assignees
wholesale. Status updates only touch the caller's assignment for the current
week.

Layer rules:
  - No Flask imports. Session, random source and clock are injected so tests
    can pin "now" and the draw.
  - Apart from the scheduler, only flush here; the route commits.
"""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomsync.app.errors import AppError, DependencyFailure, ErrorCode
from roomsync.app.models.assignment import Assignment, AssignmentStatus
from roomsync.app.models.group import Group
from roomsync.app.models.membership import Membership
from roomsync.app.models.task import (
    MAX_DIFFICULTY,
    MAX_REQUIRED_PEOPLE,
    MIN_DIFFICULTY,
    MIN_REQUIRED_PEOPLE,
    Recurrence,
    Task,
)
from roomsync.app.services.user_directory import UserDirectory
from roomsync.app.services.week import in_week, on_day, week_start
from roomsync.app.validators import require_record_id

logger = logging.getLogger(__name__)

TASK_NAME_MAX_LENGTH = 100
TASK_DESCRIPTION_MAX_LENGTH = 500

NO_TASKS_MESSAGE = "No tasks to assign."


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _as_aware(value: datetime) -> datetime:
    # Naive datetimes (SQLite round-trips, direct callers) are taken as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _invalid(field: str, message: str) -> AppError:
    return AppError(ErrorCode.INVALID_FIELD, message, 400, field=field)


def _user_brief(user) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email}


def _assignment_dict(assignment: Assignment, users: dict[str, dict | None]) -> dict:
    return {
        "user_id": assignment.user_id,
        "user": users.get(assignment.user_id),
        "week_start": assignment.week_start.isoformat(),
        "status": assignment.status.value,
        "completed_at": _isoformat(assignment.completed_at),
    }


def _completion_rate(task: Task) -> int:
    if not task.assignments:
        return 0
    completed = sum(
        1 for a in task.assignments if a.status == AssignmentStatus.COMPLETED
    )
    return round(completed / len(task.assignments) * 100)


def _build_task_dict(task: Task, current_week: date, users: dict[str, dict | None]) -> dict:
    """Serialises a Task. `users` maps user ids to display briefs (or None)."""
    return {
        "id": task.id,
        "group_id": task.group_id,
        "name": task.name,
        "description": task.description,
        "difficulty": task.difficulty,
        "recurrence": task.recurrence.value,
        "required_people": task.required_people,
        "deadline": _isoformat(task.deadline),
        "created_by": task.created_by,
        "creator": users.get(task.created_by),
        "created_at": _isoformat(task.created_at),
        "completion_rate": _completion_rate(task),
        "assignments": [_assignment_dict(a, users) for a in task.assignments],
        "current_week_assignments": [
            _assignment_dict(a, users)
            for a in task.assignments
            if a.week_start == current_week
        ],
    }


def parse_status(value) -> AssignmentStatus:
    try:
        return AssignmentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in AssignmentStatus)
        raise _invalid("status", f"status must be one of: {allowed}.") from None


def parse_recurrence(value) -> Recurrence:
    try:
        return Recurrence(value)
    except ValueError:
        allowed = ", ".join(r.value for r in Recurrence)
        raise _invalid("recurrence", f"recurrence must be one of: {allowed}.") from None


class TaskService:

    def __init__(
            self,
            session: Session,
            rng: random.Random | None = None,
            clock: Callable[[], datetime] = _local_now,
            tz: tzinfo | None = None,
            directory: UserDirectory | None = None,
    ) -> None:
        self.session = session
        self.rng = rng if rng is not None else random.Random()
        self.clock = clock
        self.tz = tz  # None: the system zone
        self.directory = directory if directory is not None else UserDirectory(session)

    # ── Private helpers ────────────────────────────────────────────────────

    def _current_week(self) -> date:
        return week_start(self.clock().date())

    def _resolve_users(self, user_ids: Iterable[str]) -> dict[str, dict | None]:
        """Display briefs for `user_ids`; unresolvable users map to None."""
        users: dict[str, dict | None] = {}
        for user_id in user_ids:
            if user_id in users:
                continue
            try:
                user = self.directory.resolve(user_id)
            except DependencyFailure:
                logger.warning("User lookup failed for %s while building a task view", user_id)
                user = None
            users[user_id] = _user_brief(user) if user is not None else None
        return users

    def _views(self, tasks: list[Task], current: date) -> list[dict]:
        user_ids = []
        for task in tasks:
            user_ids.append(task.created_by)
            user_ids.extend(a.user_id for a in task.assignments)
        users = self._resolve_users(user_ids)
        return [_build_task_dict(t, current, users) for t in tasks]

    def _view(self, task: Task, current: date) -> dict:
        return self._views([task], current)[0]

    def _group_tasks(self, group: Group) -> list[Task]:
        return self.session.execute(
            select(Task)
            .where(Task.group_id == group.id)
            .order_by(Task.created_at.desc())
        ).scalars().all()

    def _require_group_for_user(self, user_id: str) -> Group:
        group = self.session.execute(
            select(Group)
            .join(Membership, Group.id == Membership.group_id)
            .where(Membership.user_id == user_id)
        ).scalar_one_or_none()
        if group is None:
            raise AppError(
                ErrorCode.NOT_IN_GROUP,
                "You are not a member of any group.",
                404,
            )
        return group

    def _get_task_in_group(self, task_id: str, group: Group) -> Task:
        """
        Returns the task, or TASK_NOT_FOUND (404). Tasks of other groups are
        reported as missing rather than forbidden.
        """
        task = self.session.get(Task, task_id)
        if task is None or task.group_id != group.id:
            raise AppError(
                ErrorCode.TASK_NOT_FOUND,
                f"Task {task_id} does not exist.",
                404,
            )
        return task

    def _require_task_manager(self, task: Task, group: Group, caller_id: str, action: str) -> None:
        if caller_id not in (task.created_by, group.owner_user_id):
            raise AppError(
                ErrorCode.NO_PERMISSION,
                f"Only the task creator or the group owner can {action} this task.",
                403,
            )

    def _check_assignees(self, group: Group, user_ids) -> list[str]:
        """Validates an explicit assignee list: well-formed, unique, members."""
        if not isinstance(user_ids, (list, tuple)) or not user_ids:
            raise _invalid("user_ids", "At least one user id is required.")

        for user_id in user_ids:
            require_record_id(user_id, "user_ids")

        if len(set(user_ids)) != len(user_ids):
            raise AppError(
                ErrorCode.DUPLICATE_ASSIGNMENT,
                "The same user appears more than once in the assignment list.",
                409,
                field="user_ids",
            )

        members = set(group.member_ids)
        for user_id in user_ids:
            if user_id not in members:
                raise AppError(
                    ErrorCode.NOT_A_MEMBER,
                    f"User {user_id} is not a member of this group.",
                    404,
                    field="user_ids",
                )
        return list(user_ids)

    def _validate_task_fields(
            self,
            name,
            difficulty,
            recurrence,
            required_people,
            description,
            deadline,
    ) -> tuple[str, Recurrence, datetime | None]:
        if not isinstance(name, str) or not name.strip():
            raise _invalid("name", "Task name is required.")
        if len(name.strip()) > TASK_NAME_MAX_LENGTH:
            raise _invalid("name", f"Task name must be {TASK_NAME_MAX_LENGTH} characters or fewer.")

        if description is not None and len(description.strip()) > TASK_DESCRIPTION_MAX_LENGTH:
            raise _invalid(
                "description",
                f"Description must be {TASK_DESCRIPTION_MAX_LENGTH} characters or fewer.",
            )

        if (
            isinstance(difficulty, bool)
            or not isinstance(difficulty, int)
            or not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY
        ):
            raise _invalid(
                "difficulty",
                f"Difficulty must be an integer between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}.",
            )

        if (
            isinstance(required_people, bool)
            or not isinstance(required_people, int)
            or not MIN_REQUIRED_PEOPLE <= required_people <= MAX_REQUIRED_PEOPLE
        ):
            raise _invalid(
                "required_people",
                "Required people must be an integer between "
                f"{MIN_REQUIRED_PEOPLE} and {MAX_REQUIRED_PEOPLE}.",
            )

        parsed_recurrence = parse_recurrence(recurrence)

        if deadline is not None:
            deadline = _as_aware(deadline).astimezone(timezone.utc)
            if deadline <= self.clock():
                raise _invalid("deadline", "Deadline must be in the future.")
        elif parsed_recurrence == Recurrence.ONE_TIME:
            raise _invalid("deadline", "Deadline is required for one-time tasks.")

        return name.strip(), parsed_recurrence, deadline

    def _assign_for_week(self, task: Task, user_ids: list[str], week: date) -> None:
        for user_id in user_ids:
            task.assignments.append(
                Assignment(
                    user_id=user_id,
                    week_start=week,
                    status=AssignmentStatus.INCOMPLETE,
                )
            )

    def _run_weekly(self, group: Group) -> dict:
        current = self._current_week()
        roster = list(group.member_ids)
        group_id = group.id

        tasks = self.session.execute(
            select(Task)
            .where(Task.group_id == group_id)
            .order_by(Task.created_at.asc())
        ).scalars().all()

        assigned_tasks = 0
        for task in tasks:
            task_id = task.id
            if task.recurrence == Recurrence.ONE_TIME and task.assignments:
                continue
            if any(a.week_start == current for a in task.assignments):
                continue

            if task.required_people is None:
                task.required_people = 1

            count = min(task.required_people, len(roster))
            chosen = self.rng.sample(roster, count)
            self._assign_for_week(task, chosen, current)

            # Per-task commit: earlier tasks stay assigned if a later one fails.
            try:
                self.session.commit()
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.warning(
                    "Weekly assignment for group %s stopped at task %s after %d task(s): %s",
                    group_id,
                    task_id,
                    assigned_tasks,
                    exc,
                )
                raise DependencyFailure(
                    "Could not save this week's assignments.",
                    details={
                        "group_id": group_id,
                        "task_id": task_id,
                        "assigned_tasks": assigned_tasks,
                    },
                ) from exc
            assigned_tasks += 1
            logger.debug("Task %s assigned to %s for week %s", task_id, chosen, current)

        logger.info(
            "Weekly assignment for group %s, week %s: %d task(s) assigned",
            group_id,
            current,
            assigned_tasks,
        )

        if assigned_tasks == 0:
            message = NO_TASKS_MESSAGE
        else:
            message = f"Assigned {assigned_tasks} task(s) for the week of {current.isoformat()}."

        return {
            "assigned_tasks": assigned_tasks,
            "week_start": current.isoformat(),
            "message": message,
        }

    # ── Public operations ──────────────────────────────────────────────────

    def create_task(
            self,
            caller_id: str,
            name: str,
            difficulty: int,
            recurrence: str,
            required_people: int,
            description: str | None = None,
            deadline: datetime | None = None,
            assigned_user_ids: list[str] | None = None,
    ) -> dict:
        """
        Creates a task in the caller's group.

        If `assigned_user_ids` is given, those members are assigned for the
        current week straight away; otherwise the task waits for the weekly
        scheduler or a manual assignment.
        """
        require_record_id(caller_id, "user_id")
        clean_name, parsed_recurrence, deadline = self._validate_task_fields(
            name, difficulty, recurrence, required_people, description, deadline,
        )
        group = self._require_group_for_user(caller_id)
        assignees = (
            self._check_assignees(group, assigned_user_ids)
            if assigned_user_ids else []
        )

        task = Task(
            group_id=group.id,
            name=clean_name,
            description=description.strip() if description else None,
            difficulty=difficulty,
            recurrence=parsed_recurrence,
            required_people=required_people,
            deadline=deadline,
            created_by=caller_id,
        )
        self.session.add(task)

        current = self._current_week()
        self._assign_for_week(task, assignees, current)
        self.session.flush()

        logger.info("User %s created task %s in group %s", caller_id, task.id, group.id)
        return self._view(task, current)

    def list_group_tasks(self, caller_id: str) -> list[dict]:
        """All tasks of the caller's group, newest first."""
        require_record_id(caller_id, "user_id")
        group = self._require_group_for_user(caller_id)
        return self._views(self._group_tasks(group), self._current_week())

    def list_my_tasks(self, caller_id: str) -> list[dict]:
        """Tasks the caller is assigned to in the current week."""
        require_record_id(caller_id, "user_id")
        group = self._require_group_for_user(caller_id)
        current = self._current_week()

        tasks = self.session.execute(
            select(Task)
            .join(Assignment, Task.id == Assignment.task_id)
            .where(
                Task.group_id == group.id,
                Assignment.user_id == caller_id,
                Assignment.week_start == current,
            )
            .order_by(Task.created_at.desc())
        ).scalars().all()

        return self._views(tasks, current)

    def list_tasks_for_week(self, caller_id: str, start: date) -> list[dict]:
        """
        Tasks relevant to the 7 days opening on `start`: every recurring task,
        plus one-time tasks whose deadline falls inside the window (local dates).
        """
        require_record_id(caller_id, "user_id")
        if not isinstance(start, date):
            raise _invalid("week_start", "week_start must be a date (YYYY-MM-DD).")
        if isinstance(start, datetime):
            start = start.date()

        group = self._require_group_for_user(caller_id)
        tasks = [
            t for t in self._group_tasks(group)
            if t.recurrence != Recurrence.ONE_TIME
            or (t.deadline is not None and in_week(t.deadline, start, self.tz))
        ]
        return self._views(tasks, self._current_week())

    def list_tasks_for_date(self, caller_id: str, day: date) -> list[dict]:
        """
        Tasks relevant to one calendar day: every recurring task, plus one-time
        tasks due on that local date.
        """
        require_record_id(caller_id, "user_id")
        if not isinstance(day, date):
            raise _invalid("date", "date must be a date (YYYY-MM-DD).")
        if isinstance(day, datetime):
            day = day.date()

        group = self._require_group_for_user(caller_id)
        tasks = [
            t for t in self._group_tasks(group)
            if t.recurrence != Recurrence.ONE_TIME
            or (t.deadline is not None and on_day(t.deadline, day, self.tz))
        ]
        return self._views(tasks, self._current_week())

    def update_task_status(self, caller_id: str, task_id: str, status: str) -> dict:
        """
        Sets the status of the caller's assignment for the current week.

        completed_at is stamped on 'completed' and cleared for any other
        status. Only the three assignment states are accepted.

        Raises:
          AppError(INVALID_FIELD, 400)         — unknown status
          AppError(TASK_NOT_FOUND, 404)        — no such task in the caller's group
          AppError(ASSIGNMENT_NOT_FOUND, 404)  — caller not assigned this week
        """
        new_status = parse_status(status)
        require_record_id(caller_id, "user_id")
        require_record_id(task_id, "task_id")
        group = self._require_group_for_user(caller_id)
        task = self._get_task_in_group(task_id, group)

        current = self._current_week()
        assignment = next(
            (
                a for a in task.assignments
                if a.user_id == caller_id and a.week_start == current
            ),
            None,
        )
        if assignment is None:
            raise AppError(
                ErrorCode.ASSIGNMENT_NOT_FOUND,
                "You are not assigned to this task this week.",
                404,
            )

        assignment.status = new_status
        if new_status == AssignmentStatus.COMPLETED:
            assignment.completed_at = self.clock()
        else:
            assignment.completed_at = None
        self.session.flush()

        return self._view(task, current)

    def assign_task(self, caller_id: str, task_id: str, user_ids: list[str]) -> dict:
        """
        Replaces the current week's assignees of a task with `user_ids`.

        Raises:
          AppError(TASK_NOT_FOUND, 404)        — no such task in the caller's group
          AppError(NO_PERMISSION, 403)         — caller is neither creator nor owner
          AppError(DUPLICATE_ASSIGNMENT, 409)  — a user id is listed twice
          AppError(NOT_A_MEMBER, 404)          — a user id is not in the group
        """
        require_record_id(caller_id, "user_id")
        require_record_id(task_id, "task_id")
        group = self._require_group_for_user(caller_id)
        task = self._get_task_in_group(task_id, group)
        self._require_task_manager(task, group, caller_id, "assign")
        assignees = self._check_assignees(group, user_ids)

        current = self._current_week()
        for assignment in [a for a in task.assignments if a.week_start == current]:
            task.assignments.remove(assignment)
        # Deletes must hit the DB before the inserts or the
        # (task, user, week) UNIQUE constraint trips on re-assigned users.
        self.session.flush()

        self._assign_for_week(task, assignees, current)
        self.session.flush()

        logger.info("User %s assigned task %s to %s", caller_id, task.id, assignees)
        return self._view(task, current)

    def assign_weekly_tasks(self, caller_id: str) -> dict:
        """Runs the weekly scheduler for the caller's group."""
        require_record_id(caller_id, "user_id")
        group = self._require_group_for_user(caller_id)
        return self._run_weekly(group)

    def assign_weekly_tasks_for_group(self, group_id: str) -> dict:
        """Runs the weekly scheduler for a group by id (cron / CLI entry point)."""
        require_record_id(group_id, "group_id")
        group = self.session.get(Group, group_id)
        if group is None:
            raise AppError(
                ErrorCode.GROUP_NOT_FOUND,
                f"Group {group_id} does not exist.",
                404,
            )
        return self._run_weekly(group)

    def delete_task(self, caller_id: str, task_id: str) -> dict:
        """Deletes a task. Task creator or group owner only."""
        require_record_id(caller_id, "user_id")
        require_record_id(task_id, "task_id")
        group = self._require_group_for_user(caller_id)
        task = self._get_task_in_group(task_id, group)
        self._require_task_manager(task, group, caller_id, "delete")

        self.session.delete(task)
        self.session.flush()
        logger.info("User %s deleted task %s", caller_id, task_id)
        return {"deleted": True, "task_id": task_id}
