"""
Command line entry points, registered on the Flask CLI:

    flask replicate JOB_NAME [--dry-run] [--file PATH ...]
    flask prune JOB_NAME [--dry-run] [--interactive]
"""

import click

from vaultprune.models import BackupJob
from vaultprune.backup.executor import ReplicationError, ReplicationExecutor


def _get_job(name):
    job = BackupJob.query.filter_by(name=name).first()
    if job is None:
        raise click.ClickException(f"Backup job not found: {name}")
    return job


def _interactive_confirm(described_action, resource_id):
    return click.confirm(f"{described_action} ({resource_id})?", default=False)


def _report(records):
    if not records:
        click.echo("No enabled destinations.")
        return
    for record in records:
        click.echo(
            f"{record.destination_name}: {record.status} "
            f"(uploaded {record.files_transferred}, deleted {record.retention_deleted}, "
            f"failed {record.retention_failed}, skipped {record.retention_skipped})"
        )
        if record.error_message:
            click.echo(f"  {record.error_message}", err=True)


def register_commands(app):

    @app.cli.command('replicate')
    @click.argument('job_name')
    @click.option('--dry-run', is_flag=True, help='Simulate uploads and deletions.')
    @click.option('--file', 'files', multiple=True, type=click.Path(exists=True, dir_okay=False),
                  help='Archive file to replicate (default: newest instance in the staging directory).')
    def replicate_command(job_name, dry_run, files):
        """Replicate the latest backup run of JOB_NAME and apply retention."""
        job = _get_job(job_name)
        try:
            records = ReplicationExecutor(job, dry_run=dry_run or None).execute(list(files) or None)
        except ReplicationError as e:
            raise click.ClickException(str(e))
        _report(records)
        if any(r.status == 'failed' for r in records):
            raise SystemExit(1)

    @app.cli.command('prune')
    @click.argument('job_name')
    @click.option('--dry-run', is_flag=True, help='Only report what would be deleted.')
    @click.option('--interactive', is_flag=True, help='Ask before deleting each file.')
    def prune_command(job_name, dry_run, interactive):
        """Apply the retention policy of every destination of JOB_NAME."""
        job = _get_job(job_name)
        executor = ReplicationExecutor(
            job,
            dry_run=dry_run or None,
            confirm=_interactive_confirm if interactive else None,
            max_workers=1 if interactive else None
        )
        _report(executor.prune())
