"""JSON backups of league data and the RQ-driven backup schedule."""

from __future__ import annotations

import json
import os
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import redis
from flask import current_app
from rq import Queue
from sqlalchemy import DateTime, Enum as SqlEnum, delete, inspect, select
from sqlalchemy.exc import IntegrityError

from leaguehub.extensions import db
from leaguehub.models import Group, Match, MatchEvent, Organization, Player, Team
from leaguehub.services.league import get_orchestrator
from leaguehub.standings.errors import ConflictError, NotFoundError, ValidationError

BACKUP_VERSION = '1.0'
BACKUP_SYSTEM = 'leaguehub'
BACKUP_KINDS = ('manual', 'automatic')
BACKUP_FILENAME_RE = re.compile(r'^backup-[a-z0-9][a-z0-9-]*\.json$')

# Insert order; deletes run in reverse.
BACKUP_TABLES: tuple[tuple[str, type], ...] = (
    ('groups', Group),
    ('teams', Team),
    ('players', Player),
    ('matches', Match),
    ('match_events', MatchEvent),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_row(obj) -> dict[str, Any]:
    """Column values keyed by attribute name, JSON friendly."""
    row = {}
    for attr in inspect(type(obj)).column_attrs:
        value = getattr(obj, attr.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        row[attr.key] = value
    return row


def deserialize_row(model, row: dict[str, Any]):
    values = {}
    for attr in inspect(model).column_attrs:
        if attr.key not in row:
            continue
        value = row[attr.key]
        column_type = attr.columns[0].type
        if value is not None and isinstance(column_type, DateTime) and isinstance(value, str):
            value = datetime.fromisoformat(value)
        elif value is not None and isinstance(column_type, SqlEnum) and column_type.enum_class:
            value = column_type.enum_class(value)
        values[attr.key] = value
    return model(**values)


def validate_backup_filename(filename: str) -> str:
    if not filename or not BACKUP_FILENAME_RE.match(filename):
        raise ValidationError("Invalid backup filename", filename=filename)
    return filename


class BackupService:
    """Create, list, load, delete and restore backup files in ``BACKUP_DIR``."""

    @staticmethod
    def backup_dir() -> str:
        path = current_app.config['BACKUP_DIR']
        os.makedirs(path, exist_ok=True)
        return path

    @staticmethod
    def build_backup(
        org_id: str | None = None,
        kind: str = 'manual',
        created_by: str | None = None,
    ) -> dict[str, Any]:
        """Snapshot one client, or every client when ``org_id`` is None."""
        org_query = select(Organization).order_by(Organization.slug)
        if org_id:
            if db.session.get(Organization, org_id) is None:
                raise NotFoundError("Client not found", id=org_id)
            org_query = org_query.where(Organization.id == org_id)
        organizations = list(db.session.execute(org_query).scalars())
        org_ids = [org.id for org in organizations]

        data: dict[str, list] = {
            'organizations': [
                {'id': org.id, 'name': org.name, 'slug': org.slug, 'contact_email': org.contact_email}
                for org in organizations
            ]
        }
        for key, model in BACKUP_TABLES:
            rows = db.session.execute(
                select(model).where(model.org_id.in_(org_ids)).order_by(model.id)
            ).scalars()
            data[key] = [serialize_row(row) for row in rows]

        counts = {key: len(rows) for key, rows in data.items()}
        return {
            'metadata': {
                'version': BACKUP_VERSION,
                'system': BACKUP_SYSTEM,
                'created_at': _utcnow().isoformat(),
                'created_by': created_by or 'system',
                'type': kind,
                'org_id': org_id,
            },
            'data': data,
            'statistics': {
                'total_tables': len(counts),
                'total_records': sum(counts.values()),
                'table_counts': counts,
            },
        }

    @staticmethod
    def create_backup(
        org_id: str | None = None,
        kind: str = 'manual',
        created_by: str | None = None,
    ) -> str:
        if kind not in BACKUP_KINDS:
            raise ValidationError(f"Backup type must be one of: {', '.join(BACKUP_KINDS)}", type=kind)
        payload = BackupService.build_backup(org_id=org_id, kind=kind, created_by=created_by)
        timestamp = _utcnow().strftime('%Y%m%d-%H%M%S-%f')
        filename = f"backup-{kind}-{timestamp}.json"
        path = os.path.join(BackupService.backup_dir(), filename)

        with open(path, 'w', encoding='utf-8') as fh:
            json.dump(payload, fh, indent=2)

        current_app.logger.info(
            f"Backup {filename} created with {payload['statistics']['total_records']} record(s)"
        )
        return filename

    @staticmethod
    def list_backups() -> list[dict[str, Any]]:
        backups = []
        directory = BackupService.backup_dir()
        for filename in sorted(os.listdir(directory), reverse=True):
            if not BACKUP_FILENAME_RE.match(filename):
                continue
            path = os.path.join(directory, filename)
            try:
                with open(path, encoding='utf-8') as fh:
                    payload = json.load(fh)
            except (OSError, ValueError) as e:
                current_app.logger.warning(f"Skipping unreadable backup {filename}: {e}")
                continue
            metadata = payload.get('metadata') or {}
            backups.append({
                'filename': filename,
                'size': os.path.getsize(path),
                'created_at': metadata.get('created_at'),
                'type': metadata.get('type', 'manual'),
                'created_by': metadata.get('created_by'),
                'org_id': metadata.get('org_id'),
                'total_records': (payload.get('statistics') or {}).get('total_records', 0),
            })
        return backups

    @staticmethod
    def backup_path(filename: str) -> str:
        validate_backup_filename(filename)
        path = os.path.join(BackupService.backup_dir(), filename)
        if not os.path.isfile(path):
            raise NotFoundError("Backup not found", filename=filename)
        return path

    @staticmethod
    def load_backup(filename: str) -> dict[str, Any]:
        with open(BackupService.backup_path(filename), encoding='utf-8') as fh:
            try:
                return json.load(fh)
            except ValueError:
                raise ValidationError("Backup file is not valid JSON", filename=filename) from None

    @staticmethod
    def delete_backup(filename: str) -> None:
        os.remove(BackupService.backup_path(filename))
        current_app.logger.info(f"Backup {filename} deleted")

    @staticmethod
    def restore(payload: dict[str, Any], org_id: str | None = None) -> dict[str, int]:
        """Replace league data with the backup's rows, then recalculate standings.

        With ``org_id`` only that client's rows are replaced; otherwise every
        client present in the backup is. Users are never touched.
        """
        if not isinstance(payload, dict) or not all(
            isinstance(payload.get(key), dict) for key in ('metadata', 'data', 'statistics')
        ):
            raise ValidationError("Invalid backup structure")

        data = payload['data']
        organizations = data.get('organizations') or []
        backup_org_ids = {org.get('id') for org in organizations}
        if org_id is not None:
            if org_id not in backup_org_ids:
                raise ValidationError("Backup does not contain this client", org_id=org_id)
            target_ids = {org_id}
        else:
            target_ids = backup_org_ids
        if not target_ids:
            raise ValidationError("Backup contains no clients")

        restored: dict[str, int] = {}
        try:
            for org in organizations:
                if org.get('id') in target_ids and db.session.get(Organization, org['id']) is None:
                    db.session.add(Organization(
                        id=org['id'],
                        name=org['name'],
                        slug=org['slug'],
                        contact_email=org.get('contact_email'),
                    ))
            db.session.flush()

            for _key, model in reversed(BACKUP_TABLES):
                db.session.execute(
                    delete(model).where(model.org_id.in_(target_ids)),
                    execution_options={'synchronize_session': 'fetch'},
                )

            for key, model in BACKUP_TABLES:
                rows = [row for row in data.get(key) or [] if row.get('org_id') in target_ids]
                db.session.add_all(deserialize_row(model, row) for row in rows)
                db.session.flush()
                restored[key] = len(rows)

            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            current_app.logger.error(f"Backup restore failed: {e}")
            raise ConflictError("Backup conflicts with existing data", reason=str(e.orig)) from None
        except (TypeError, ValueError, KeyError) as e:
            db.session.rollback()
            current_app.logger.error(f"Backup restore failed: {e}")
            raise ValidationError("Backup rows are malformed", reason=str(e)) from None
        except Exception as e:
            db.session.rollback()
            current_app.logger.error(f"Backup restore failed: {e}")
            raise

        orchestrator = get_orchestrator()
        for target in sorted(target_ids):
            orchestrator.recalculate_tenant(target)

        current_app.logger.info(
            f"Backup restored for {len(target_ids)} client(s): {restored}"
        )
        return restored


FREQUENCIES: dict[str, int | None] = {
    'daily': None,
    'weekly': 6,  # Sunday
    'monday': 0,
    'friday': 4,
}

DEFAULT_SCHEDULE = {
    'enabled': False,
    'time': '02:00',
    'frequency': 'daily',
    'job_id': None,
    'next_run': None,
    'last_run': None,
}

SCHEDULED_JOB = 'leaguehub.services.jobs.run_scheduled_backup_job'


def parse_time(value: str) -> tuple[int, int]:
    match = re.match(r'^(\d{1,2}):(\d{2})$', (value or '').strip())
    if not match:
        raise ValidationError("Time must be HH:MM", time=value)
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError("Time must be HH:MM", time=value)
    return hour, minute


def next_run_time(time_value: str, frequency: str, now: datetime | None = None) -> datetime:
    """Next UTC instant matching ``HH:MM`` and the frequency, strictly after now."""
    if frequency not in FREQUENCIES:
        raise ValidationError(
            f"Frequency must be one of: {', '.join(FREQUENCIES)}", frequency=frequency
        )
    hour, minute = parse_time(time_value)
    now = now or _utcnow()
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)

    weekday = FREQUENCIES[frequency]
    if weekday is None:
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    candidate += timedelta(days=(weekday - candidate.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


class BackupScheduler:
    """Owns the single scheduled backup job on an RQ queue.

    The schedule is persisted as JSON so it survives restarts. Only one job
    is ever queued; ``start`` replaces it and ``stop`` cancels it.
    """

    def __init__(self, queue, schedule_file: str, logger=None):
        self.queue = queue
        self.schedule_file = schedule_file
        self._logger = logger

    @property
    def logger(self):
        return self._logger or current_app.logger

    def load(self) -> dict[str, Any]:
        schedule = dict(DEFAULT_SCHEDULE)
        try:
            with open(self.schedule_file, encoding='utf-8') as fh:
                schedule.update(json.load(fh))
        except FileNotFoundError:
            pass
        except ValueError as e:
            self.logger.warning(f"Ignoring unreadable backup schedule {self.schedule_file}: {e}")
        return schedule

    def save(self, schedule: dict[str, Any]) -> dict[str, Any]:
        directory = os.path.dirname(self.schedule_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.schedule_file, 'w', encoding='utf-8') as fh:
            json.dump(schedule, fh, indent=2)
        return schedule

    def _cancel(self, job_id: str | None) -> None:
        if not job_id:
            return
        job = self.queue.fetch_job(job_id)
        if job is not None:
            job.cancel()

    def _enqueue(self, schedule: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
        run_at = next_run_time(schedule['time'], schedule['frequency'], now)
        job = self.queue.enqueue_at(run_at, SCHEDULED_JOB)
        schedule.update(enabled=True, job_id=job.id, next_run=run_at.isoformat())
        return schedule

    def start(self, time_value: str, frequency: str, now: datetime | None = None) -> dict[str, Any]:
        next_run_time(time_value, frequency, now)
        schedule = self.load()
        self._cancel(schedule.get('job_id'))
        schedule.update(time=time_value.strip(), frequency=frequency)
        self.save(self._enqueue(schedule, now))
        self.logger.info(
            f"Backup scheduled {frequency} at {schedule['time']}; next run {schedule['next_run']}"
        )
        return schedule

    def stop(self) -> dict[str, Any]:
        schedule = self.load()
        self._cancel(schedule.get('job_id'))
        schedule.update(enabled=False, job_id=None, next_run=None)
        self.save(schedule)
        self.logger.info("Automatic backups disabled")
        return schedule

    def record_run(self, now: datetime | None = None) -> dict[str, Any]:
        """Called by the job after a backup; queues the following run."""
        now = now or _utcnow()
        schedule = self.load()
        schedule['last_run'] = now.isoformat()
        if schedule.get('enabled'):
            self._enqueue(schedule, now)
        return self.save(schedule)


def get_backup_scheduler(app=None) -> BackupScheduler:
    """Scheduler stored on ``app.extensions``; built on first use."""
    app = app or current_app._get_current_object()
    scheduler = app.extensions.get('backup_scheduler')
    if scheduler is None:
        connection = redis.from_url(app.config['REDIS_URL'])
        queue = Queue(app.config.get('BACKUP_QUEUE_NAME', 'backups'), connection=connection)
        scheduler = BackupScheduler(queue, app.config['BACKUP_SCHEDULE_FILE'], logger=app.logger)
        app.extensions['backup_scheduler'] = scheduler
    return scheduler


__all__ = [
    'BACKUP_VERSION',
    'BackupService',
    'BackupScheduler',
    'FREQUENCIES',
    'get_backup_scheduler',
    'next_run_time',
    'serialize_row',
    'deserialize_row',
    'validate_backup_filename',
]
