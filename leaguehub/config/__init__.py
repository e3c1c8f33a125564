import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # Provide a safe development fallback to avoid 500s when SECRET_KEY is missing.
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-me'
    DATABASE_URL = os.getenv('DATABASE_URL')
    SQLALCHEMY_DATABASE_URI = DATABASE_URL or 'sqlite:///leaguehub.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'true').lower() in ('1', 'true', 'yes')
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = True
    REMEMBER_COOKIE_HTTPONLY = True
    WTF_CSRF_TIME_LIMIT = None

    # Background jobs (scheduled backups)
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    BACKUP_QUEUE_NAME = os.getenv('BACKUP_QUEUE_NAME', 'backups')

    # Backups are plain JSON files in this directory
    BACKUP_DIR = os.getenv('BACKUP_DIR', os.path.join(os.getcwd(), 'backups'))
    BACKUP_SCHEDULE_FILE = os.getenv(
        'BACKUP_SCHEDULE_FILE', os.path.join(os.getcwd(), 'backup-schedule.json')
    )

    # Which scoring path wins when a match has goal events:
    #   "events" - goal events are authoritative, direct score edits are rejected
    #   "either" - direct edits are accepted and overwrite the projection
    SCORE_SOURCE = os.getenv('SCORE_SOURCE', 'events')
