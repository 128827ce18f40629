import re
import sys
from datetime import timedelta
from typing import Optional

import click

from common.logging import LoggingManager
from devinsight.config import get_config
from devinsight.errors import DevInsightError
from devinsight.reports import REPORT_WINDOWS
from devinsight.scheduler import ReportScheduler
from devinsight.service import DevInsightService

logger = LoggingManager.get_logger('app.cli')

CADENCES = list(REPORT_WINDOWS)


# --- Duration Parsing Helper ---
def parse_duration(duration_str: str) -> Optional[timedelta]:
    """Parses a duration string like '7d', '3h', '30m' into a timedelta."""
    match = re.fullmatch(r'(\d+)([dhms])', duration_str.strip().lower())
    if not match:
        logger.error(f"Invalid duration format: '{duration_str}'. Use <number><d|h|m|s>.")
        return None

    value, unit = int(match.group(1)), match.group(2)
    if unit == 'd':
        return timedelta(days=value)
    elif unit == 'h':
        return timedelta(hours=value)
    elif unit == 'm':
        return timedelta(minutes=value)
    return timedelta(seconds=value)


def _require_duration(value: str, option: str) -> timedelta:
    duration = parse_duration(value)
    if not duration:
        click.echo(f"Invalid {option} format.", err=True)
        sys.exit(1)
    return duration


def _build_service(config) -> DevInsightService:
    try:
        return DevInsightService.from_config(config)
    except Exception as e:
        logger.critical(f"Failed to initialize DevInsight: {e}", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


# --- Click Command Group ---
@click.group()
@click.option('--logs-dir', default='logs', show_default=True, help='Directory for the timestamped log file.')
@click.pass_context
def cli(ctx, logs_dir: str):
    """DevInsight: GitHub repository metrics, alerts and reports."""
    config = get_config()
    LoggingManager.for_cli(logs_dir=logs_dir, log_level=config.log_level)
    ctx.obj = config


@cli.command('serve')
@click.option('--host', default='0.0.0.0', show_default=True)
@click.option('--port', type=int, default=8000, show_default=True)
@click.pass_obj
def serve(config, host: str, port: int):
    """Runs the HTTP API."""
    import uvicorn
    from devinsight.api.main import create_app

    app = create_app(config=config, service=_build_service(config))
    logger.info(f"Serving DevInsight API on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


@cli.command('refresh')
@click.argument('repo_full_name')
@click.option('--user-id', type=int, required=True, help='Subscriber whose GitHub credential is used.')
@click.option('--force', is_flag=True, help='Refresh even when cached metrics are still fresh.')
@click.pass_obj
def refresh(config, repo_full_name: str, user_id: int, force: bool):
    """Refreshes metrics and alerts of a connected repository."""
    service = _build_service(config)
    repository = service.store.find_repository(repo_full_name)
    if repository is None:
        click.echo(f"Repository {repo_full_name} is not connected.", err=True)
        sys.exit(1)

    try:
        snapshot = service.refresh_repository(user_id, repository.id, force=force)
    except DevInsightError as e:
        logger.error(f"Refresh of {repo_full_name} failed: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"{repo_full_name}: {snapshot.total_commits} commits, "
               f"{snapshot.open_pull_requests} open / {snapshot.merged_pull_requests} merged pull requests, "
               f"{snapshot.open_issues} open issues, {snapshot.contributors} contributors")


@cli.command('send-reports')
@click.option('--cadence', type=click.Choice(CADENCES), default=None,
              help='Report cadence to run. Defaults to REPORT_CADENCE.')
@click.pass_obj
def send_reports(config, cadence: Optional[str]):
    """Runs one report batch."""
    cadence = cadence or config.report_cadence
    service = _build_service(config)
    summary = service.dispatcher.run(cadence)
    click.echo(f"{cadence.capitalize()} reports: {summary.sent} sent, {summary.failed} failed, "
               f"{summary.skipped} skipped ({summary.users} users)")


@cli.command('schedule')
@click.option('--cadence', type=click.Choice(CADENCES), default=None,
              help='Report cadence to run. Defaults to REPORT_CADENCE.')
@click.option('--interval', default='7d', help='Time between report runs (e.g., 1d, 7d, 12h). Default 7 days.')
@click.option('--duration', default='30d', help='Total duration to keep scheduling for (e.g., 30d, 12h). Default 30 days.')
@click.pass_obj
def schedule(config, cadence: Optional[str], interval: str, duration: str):
    """Runs the report batch periodically for a bounded duration."""
    cadence = cadence or config.report_cadence
    interval_td = _require_duration(interval, '--interval')
    duration_td = _require_duration(duration, '--duration')
    logger.info(f"Starting {cadence} report scheduler. Interval: {interval}, Duration: {duration}")

    service = _build_service(config)
    scheduler = ReportScheduler(service.dispatcher, cadence, interval_td)
    summaries = scheduler.run(duration_td)

    sent = sum(s.sent for s in summaries)
    failed = sum(s.failed for s in summaries)
    click.echo(f"Scheduler finished after {len(summaries)} run(s): {sent} sent, {failed} failed.")


if __name__ == '__main__':
    cli()
