"""Text reports for dry-run, sync and connectivity results."""

import logging
from datetime import datetime, timezone
from io import StringIO
from typing import List, Optional

from rich.console import Console

from cert_sync.models import (
    CertificateRecord,
    CertificateStatus,
    ConnectivityResult,
    SyncResult,
    SyncState,
    Verbosity,
)

logger = logging.getLogger(__name__)

_STATUS_STYLE = {
    CertificateStatus.INSTALLED: ("green", "✓"),
    CertificateStatus.VALIDATED: ("green", "✓"),
    CertificateStatus.NORMALIZED: ("blue", "•"),
    CertificateStatus.PENDING: ("blue", "•"),
    CertificateStatus.REJECTED: ("red", "✗"),
}


def _colorize(text: str, style: str, color: bool) -> str:
    if not color:
        return text
    output = StringIO()
    console = Console(file=output, force_terminal=True, color_system="standard", width=1000)
    console.print(f"[{style}]{text}[/{style}]", end="", markup=True, highlight=False)
    return output.getvalue()


def _format_status(status: CertificateStatus, color: bool) -> str:
    """Format a record status with a visual indicator."""
    style, marker = _STATUS_STYLE[status]
    return _colorize(f"{status.value} {marker}", style, color)


def _format_expiry(not_after: Optional[datetime]) -> str:
    if not_after is None:
        return "<unknown>"
    return not_after.strftime("%Y-%m-%d %H:%M:%S UTC")


def _is_expired(record: CertificateRecord, now: datetime) -> bool:
    if record.not_after is None:
        return False
    not_after = record.not_after
    if not_after.tzinfo is None:
        not_after = not_after.replace(tzinfo=timezone.utc)
    return not_after <= now


def _header(title: str, timestamp: datetime) -> List[str]:
    return [
        "=" * 70,
        title,
        "=" * 70,
        f"Timestamp: {timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        "",
    ]


def generate_dry_run_report(result: SyncResult, color: bool = True) -> str:
    """
    List the host root certificates a sync would pick up.

    Args:
        result: SyncResult in state DRY_RUN
        color: Use ANSI colours

    Returns:
        Formatted text report
    """
    lines = _header("Dry-Run: Host Root Certificates", result.timestamp)
    lines.append("Root Certificates:")

    expired = 0
    for record in result.batch:
        line = f"  Subject: {record.subject} | Issuer: {record.issuer} | Expiry: {_format_expiry(record.not_after)}"
        if _is_expired(record, result.timestamp):
            expired += 1
            line += " " + _colorize("(expired, would be rejected)", "yellow", color)
        lines.append(line)
    if not len(result.batch):
        lines.append("  (none)")

    lines.append("")
    lines.append(f"Total: {len(result.batch)} certificate(s), {expired} expired")
    lines.append(_colorize("Dry-run completed: No files were modified.", "green", color))
    lines.append("=" * 70)
    return "\n".join(lines)


def generate_sync_report(result: SyncResult, color: bool = True, show_all: bool = False) -> str:
    """
    Summarize an update run.

    Args:
        result: SyncResult from the orchestrator
        color: Use ANSI colours
        show_all: List every record, not only rejected ones

    Returns:
        Formatted text report
    """
    lines = _header("Certificate Sync Report", result.timestamp)

    state_style = "green" if result.state == SyncState.DONE else "red"
    lines.append(f"State: {_colorize(result.state.value, state_style, color)}")
    if result.failed_stage:
        lines.append(f"Failed during: {result.failed_stage.value}")
    if result.error:
        lines.append(f"Error: {result.error}")
    lines.append(f"Copied: {result.copied_count}")
    lines.append(f"Trust store refreshed: {'yes' if result.refreshed else 'no'}")
    lines.append("")

    lines.append("Certificates:")
    for status, count in result.batch.status_counts().items():
        if count:
            lines.append(f"  {_format_status(status, color)}: {count}")

    rejected = result.batch.rejected
    if rejected:
        lines.append("")
        lines.append("Rejected:")
        for record in rejected:
            name = record.subject or record.source or record.thumbprint
            lines.append(f"  - {name}: {record.rejection_reason}")

    if show_all and len(result.batch):
        lines.append("")
        lines.append("Details:")
        for record in result.batch:
            lines.append(
                f"  {record.thumbprint}  {_format_status(record.status, color)}  "
                f"{record.subject} | Expiry: {_format_expiry(record.not_after)}"
            )

    lines.append("=" * 70)
    return "\n".join(lines)


def generate_connectivity_report(
    result: ConnectivityResult,
    verbosity: Verbosity = Verbosity.NORMAL,
    color: bool = True,
) -> str:
    """
    Report a connectivity test.

    Verbosity only controls how much detail is shown; the verdict line is
    identical at every level.
    """
    lines: List[str] = []
    if verbosity == Verbosity.VERBOSE:
        lines.append(f"URL: {result.url}")
        if result.tls_version:
            lines.append(f"TLS Version: {result.tls_version}")
        if result.cipher:
            lines.append(f"Cipher: {result.cipher}")
        if result.peer_subject:
            lines.append(f"Server Certificate: {result.peer_subject}")
        if result.http_version:
            lines.append(f"HTTP Version: {result.http_version}")
    if verbosity != Verbosity.NORMAL and result.status_code is not None:
        lines.append(f"HTTP Status: {result.status_code}")
    if verbosity == Verbosity.VERBOSE and result.response_headers:
        lines.append("Response Headers:")
        for name, value in result.response_headers.items():
            lines.append(f"  {name}: {value}")
    if result.error and verbosity != Verbosity.NORMAL:
        lines.append(f"Error: {result.error}")

    if result.success:
        lines.append(_colorize("Certificate is working!", "green", color))
    else:
        lines.append(_colorize("Certificate verification failed!", "red", color))
    return "\n".join(lines)
