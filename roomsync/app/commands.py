"""
commands.py — Flask CLI commands.

The weekly scheduler has no loop of its own; cron (or an operator) triggers
it through this command:

    flask --app roomsync.app assign-weekly-tasks               # every group
    flask --app roomsync.app assign-weekly-tasks --group-id ID  # one group

Groups are processed one after another. A group that fails (an AppError,
or a store error the service did not wrap) is rolled back, logged and
reported, and the run moves on; the exit code is non-zero if any group
failed.
"""

from __future__ import annotations

import logging

import click
from flask import Flask
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from roomsync.app.errors import AppError, ErrorCode
from roomsync.app.extensions import db
from roomsync.app.models.group import Group
from roomsync.app.routes.tasks import scheduler_rng
from roomsync.app.services.task_service import TaskService

logger = logging.getLogger(__name__)


def register_commands(app: Flask) -> None:

    @app.cli.command("assign-weekly-tasks")
    @click.option("--group-id", default=None, help="Only schedule this group.")
    def assign_weekly_tasks(group_id: str | None) -> None:
        """Assign this week's chores for one or all groups."""
        service = TaskService(db.session, rng=scheduler_rng())

        if group_id is not None:
            group_ids = [group_id]
        else:
            group_ids = list(db.session.execute(select(Group.id)).scalars())

        failures = 0
        for gid in group_ids:
            try:
                result = service.assign_weekly_tasks_for_group(gid)
            except AppError as exc:
                db.session.rollback()
                failures += 1
                logger.error("Weekly assignment failed for group %s: %s", gid, exc.message)
                click.echo(f"{gid}: {exc.code} {exc.message}", err=True)
                continue
            except SQLAlchemyError as exc:
                db.session.rollback()
                failures += 1
                logger.error("Weekly assignment failed for group %s: %s", gid, exc)
                click.echo(f"{gid}: {ErrorCode.DEPENDENCY_FAILURE} The record store is unavailable.", err=True)
                continue
            click.echo(f"{gid}: {result['message']}")

        if failures:
            raise click.exceptions.Exit(1)
