"""
Report building, CSV export and notification rendering.

Rendering uses the Jinja2 templates shipped in ``devinsight/templates``.
"""
import csv
import io
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from devinsight.dates import format_date
from devinsight.errors import ValidationError
from devinsight.metrics import MetricsSnapshot

REPORT_WINDOWS = {
    'daily': timedelta(days=1),
    'weekly': timedelta(days=7),
    'monthly': timedelta(days=30),
}

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), 'templates')
CSV_HEADER = ['Metric', 'Value', 'Details']


def report_window(report_type: str, now: datetime) -> Tuple[datetime, datetime]:
    """(start, end) of the period a report of ``report_type`` covers, ending at ``now``."""
    try:
        return now - REPORT_WINDOWS[report_type], now
    except KeyError:
        raise ValidationError(f"Invalid report type '{report_type}'") from None


def build_report_data(snapshot: MetricsSnapshot) -> Dict[str, Any]:
    """Report payload: the metrics snapshot in its serialised shape."""
    return snapshot.to_dict()


def export_report_csv(report, repository) -> str:
    """Flat ``Metric,Value,Details`` rows for a report.

    Counts are written as bare numbers so the export can be read back by spreadsheets
    and scripts; units go into the Details column.
    """
    snapshot = MetricsSnapshot.from_dict(report.data)
    pulls_total = (snapshot.open_pull_requests + snapshot.closed_pull_requests
                   + snapshot.merged_pull_requests)
    issues_total = snapshot.open_issues + snapshot.closed_issues
    weekly = snapshot.weekly_commits

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(CSV_HEADER)
    writer.writerow(['Repository', repository.full_name, repository.description or 'No description'])
    writer.writerow(['Report Period',
                     f"{format_date(report.start_date)} to {format_date(report.end_date)}",
                     f"{report.report_type} report"])
    writer.writerow(['Generated On', format_date(report.created_at), ''])
    writer.writerow([])
    writer.writerow(['METRICS SUMMARY', '', ''])
    writer.writerow(['Total Commits', snapshot.total_commits, f"{len(weekly)} weeks"])
    writer.writerow(['Commits This Week', weekly[-1] if weekly else 0, ''])
    writer.writerow(['Pull Requests', pulls_total, ''])
    writer.writerow(['Open Pull Requests', snapshot.open_pull_requests, ''])
    writer.writerow(['Closed Pull Requests', snapshot.closed_pull_requests, 'closed without merge'])
    writer.writerow(['Merged Pull Requests', snapshot.merged_pull_requests, ''])
    writer.writerow(['Average Merge Time', f"{snapshot.merge_time:.2f}", 'hours'])
    writer.writerow(['Issues', issues_total, ''])
    writer.writerow(['Open Issues', snapshot.open_issues, ''])
    writer.writerow(['Closed Issues', snapshot.closed_issues, ''])
    writer.writerow(['Contributors', snapshot.contributors, ''])
    return buffer.getvalue()


def export_filename(report, repository) -> str:
    return f"{repository.full_name.replace('/', '-')}-report-{format_date(report.start_date)}.csv"


class ReportRenderer:
    """Turns a stored report into the payload and message bodies sent to a user."""

    def __init__(self, frontend_url: str = "http://localhost:3000", environment: Optional[Environment] = None):
        self.frontend_url = frontend_url.rstrip('/')
        self.env = environment or Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            autoescape=select_autoescape(['html', 'html.j2', 'xml']),
            undefined=StrictUndefined,
        )

    def payload(self, user, repository, report) -> Dict[str, Any]:
        return {
            'username': user.username,
            'repo_name': repository.full_name,
            'report_type': report.report_type,
            'start_date': format_date(report.start_date),
            'end_date': format_date(report.end_date),
            'metrics': MetricsSnapshot.from_dict(report.data).to_dict(),
            'dashboard_url': f"{self.frontend_url}/dashboard/repo/{repository.id}",
        }

    def subject(self, payload: Dict[str, Any]) -> str:
        return f"DevInsight {payload['report_type'].capitalize()} Report: {payload['repo_name']}"

    def render_html(self, payload: Dict[str, Any]) -> str:
        return self.env.get_template('report_email.html.j2').render(**payload)

    def render_text(self, payload: Dict[str, Any]) -> str:
        return self.env.get_template('report_email.txt.j2').render(**payload)
