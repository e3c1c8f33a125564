"""Background job functions for the RQ worker."""


def run_scheduled_backup_job():
    """Write an automatic backup of every client, then queue the next run."""
    from leaguehub import create_app

    app = create_app()

    with app.app_context():
        from leaguehub.services.backup import BackupService, get_backup_scheduler

        try:
            filename = BackupService.create_backup(kind='automatic')
        except Exception as e:
            app.logger.error(f"Scheduled backup failed: {e}")
            raise
        finally:
            get_backup_scheduler(app).record_run()
        return filename
