"""
Operator report formatting.

Builds the subject and HTML body for the alerts sent after a run:
price-update failure reports, valuation failure reports, and
critical alerts for exhausted stages or crashed jobs.
"""

from datetime import datetime, timezone
from html import escape
from typing import Optional

from pricesync.domain.market.entities import ValuationOutcome
from pricesync.domain.market.results import RunResult


def _timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S %Z")


def format_run_report(
    result: RunResult, now: Optional[datetime] = None
) -> tuple[str, str]:
    """Return ``(subject, html)`` for a run that had fetch failures."""
    update_type = result.update_type.value
    rate = f"{result.failure_rate:.2f}"
    subject = f"Stock Price Update Report ({update_type}) - {rate}% Failed"

    lines = [
        f"<h1>Stock Price Update Report ({escape(update_type)})</h1>",
        f"<p><strong>Time:</strong> {_timestamp(now)}</p>",
        f"<p><strong>Duration:</strong> {result.duration_ms}ms</p>",
        f"<p><strong>Total Symbols:</strong> {result.total}</p>",
        f"<p><strong>Updated:</strong> {result.updated_count}</p>",
        f"<p><strong>Failed:</strong> {len(result.failed)} ({rate}%)</p>",
    ]
    if result.failed:
        lines.append("<h2>Failure Details:</h2><ul>")
        lines.extend(
            f"<li>{escape(f.symbol)} ({escape(f.exchange)}): {escape(f.error)}</li>"
            for f in result.failed
        )
        lines.append("</ul>")
    return subject, "\n".join(lines)


def format_valuation_report(
    outcomes: list[ValuationOutcome], now: Optional[datetime] = None
) -> tuple[str, str]:
    """Return ``(subject, html)`` listing portfolios that failed to revalue."""
    failed = [o for o in outcomes if o.failed]
    subject = f"Portfolio Valuation Failed for {len(failed)} Portfolio(s)"
    lines = [
        "<h1>Portfolio Valuation Report</h1>",
        f"<p><strong>Date:</strong> {_timestamp(now)}</p>",
        f"<p><strong>Total Portfolios:</strong> {len(outcomes)}</p>",
        f"<p><strong>Successful:</strong> {len(outcomes) - len(failed)}</p>",
        f"<p><strong>Failed:</strong> {len(failed)}</p>",
        "<h2>Failed Portfolios:</h2><ul>",
    ]
    lines.extend(
        f"<li><strong>{escape(o.entity_id)}</strong>: {escape(o.detail or 'unknown error')}</li>"
        for o in failed
    )
    lines.append("</ul>")
    return subject, "\n".join(lines)


def format_critical_alert(
    title: str, error: str, now: Optional[datetime] = None
) -> tuple[str, str]:
    """Return ``(subject, html)`` for a job or stage that gave up."""
    subject = f"CRITICAL: {title}"
    html = "\n".join(
        [
            f"<h1>{escape(title)}</h1>",
            f"<p><strong>Time:</strong> {_timestamp(now)}</p>",
            f"<p><strong>Error:</strong> {escape(error)}</p>",
        ]
    )
    return subject, html
