"""RQ worker for scheduled backups."""

import redis
from rq import Queue, Worker

from leaguehub.config import Config


def get_redis_connection():
    """Get Redis connection from configuration."""
    return redis.from_url(Config.REDIS_URL)


def setup_queues(connection):
    """The backup queue; scheduled jobs need the worker's scheduler running."""
    return [Queue(Config.BACKUP_QUEUE_NAME, connection=connection)]


def main():
    connection = get_redis_connection()
    queues = setup_queues(connection)
    worker = Worker(queues, connection=connection)

    print("Starting RQ worker...")
    print(f"Listening on queues: {[q.name for q in queues]}")
    try:
        worker.work(with_scheduler=True)
    except KeyboardInterrupt:
        print("\nWorker stopped by user")


if __name__ == '__main__':
    main()
