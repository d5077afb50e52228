#!/usr/bin/env python3
"""
View stored claims.

Usage:
    python view_claims.py                     # List all claims
    python view_claims.py NC-20260119-0001    # View specific claim details
    python view_claims.py --status open       # Filter by status
    python view_claims.py --pending           # Pending reminders, overdue first
    python view_claims.py --finance           # Exposure summary
    python view_claims.py NC-... --json       # Export claim as JSON
"""

import argparse
import json
import os
import sys
from datetime import datetime

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.reporting import pending_reminders, summarize_finances
from src.storage import Claim, get_claim_store

console = Console()


def format_datetime(iso_str: str) -> str:
    """Format ISO datetime string for display."""
    if not iso_str:
        return ""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except (ValueError, TypeError):
        return iso_str[:16]


def truncate(text: str, max_len: int = 50) -> str:
    """Truncate text with ellipsis, escaped for Rich markup."""
    text = str(text or "")
    if len(text) > max_len:
        text = text[:max_len - 3] + "..."
    return escape(text)


def plain(text) -> str:
    """Stored text shown verbatim, never read as Rich markup."""
    return escape(str(text or "")) or "-"


def money(value: float) -> str:
    return f"{value:,.0f}"


def styled_status(status: str) -> str:
    if status == "closed":
        return f"[green]{status}[/green]"
    if status == "in_progress":
        return f"[yellow]{status}[/yellow]"
    return status


def print_claim_list(claims: list[Claim]):
    """Print a table of claims."""
    if not claims:
        console.print("\nNo claims found.")
        return

    table = Table(title="Claims", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Claim ID", style="bold")
    table.add_column("Created", style="dim")
    table.add_column("Status")
    table.add_column("Stage")
    table.add_column("Line")
    table.add_column("Vessel")
    table.add_column("Incident")
    table.add_column("Reserve", justify="right")
    table.add_column("Paid", justify="right")

    for claim in claims:
        table.add_row(
            plain(claim.id),
            plain(format_datetime(claim.created_at)),
            styled_status(claim.meta.status),
            claim.meta.stage,
            plain(claim.meta.line_primary),
            truncate(claim.report.vessel, 20),
            truncate(claim.report.incident_type, 20),
            money(claim.financials.reserve),
            money(claim.financials.paid),
        )

    console.print(table)
    console.print(f"Total: {len(claims)} claim(s)")


def print_claim_detail(claim: Claim):
    """Print detailed view of a single claim."""
    meta, fin, report = claim.meta, claim.financials, claim.report

    console.print(Panel(
        f"[bold]{plain(claim.id)}[/bold]\n"
        f"Status: {styled_status(meta.status)}   Stage: {meta.stage}   Line: {plain(meta.line_primary)}\n"
        f"Created: {plain(format_datetime(claim.created_at))}   "
        f"Updated: {plain(format_datetime(claim.updated_at))}\n"
        f"Handler: {plain(meta.handler)}   Counterparty: {plain(meta.counterparty)}   "
        f"Ref: {plain(meta.reference_external)}",
        title="Claim",
        box=box.ROUNDED,
    ))

    console.print(Panel(
        f"{plain(report.incident_type)} | {plain(report.vessel)} | {plain(report.location)} | "
        f"{plain(report.date_time)}\n\n"
        f"{plain(report.summary)}\n\n"
        f"[bold]Immediate actions:[/bold] {plain(report.immediate_actions)}\n"
        f"[bold]Missing information:[/bold] {plain(report.missing_information)}\n"
        f"[bold]Potential claims:[/bold] {plain(', '.join(report.potential_claims))}",
        title="Report",
        box=box.ROUNDED,
    ))

    fin_table = Table(title=f"Financials ({fin.currency})", box=box.SIMPLE)
    for column in ("Claim value", "Reserve", "Paid", "Deductible", "Recovery exp.", "Recovery rec."):
        fin_table.add_column(column, justify="right")
    fin_table.add_row(*(money(v) for v in (
        fin.claim_value, fin.reserve, fin.paid, fin.deductible, fin.recovery_expected, fin.recovery_received,
    )))
    console.print(fin_table)

    if claim.tasks:
        tasks = Table(title="Tasks", box=box.SIMPLE)
        tasks.add_column("ID", style="dim")
        tasks.add_column("Status")
        tasks.add_column("Title")
        for task in claim.tasks:
            tasks.add_row(plain(task.id), "✓" if task.status == "done" else "·", plain(task.title))
        console.print(tasks)

    if claim.reminders:
        reminders = Table(title="Reminders", box=box.SIMPLE)
        for column in ("ID", "Status", "Due", "To", "Subject"):
            reminders.add_column(column)
        for r in claim.reminders:
            reminders.add_row(
                plain(r.id), r.status, plain(format_datetime(r.due_at)), plain(r.to), truncate(r.subject, 40)
            )
        console.print(reminders)

    if claim.drafts:
        drafts = Table(title="Drafts", box=box.SIMPLE)
        for column in ("ID", "Type", "Status", "To", "Subject"):
            drafts.add_column(column)
        for d in claim.drafts:
            drafts.add_row(plain(d.id), d.type, d.status, plain(d.to), truncate(d.subject, 40))
        console.print(drafts)

    timeline = Table(title="Timeline", box=box.SIMPLE)
    timeline.add_column("When", style="dim")
    timeline.add_column("Type")
    timeline.add_column("Message")
    for entry in claim.timeline:
        timeline.add_row(plain(format_datetime(entry.created_at)), plain(entry.type), plain(entry.message))
    console.print(timeline)


def print_pending(claims: list[Claim]):
    """Print pending reminders across claims."""
    rows = pending_reminders(claims)
    if not rows:
        console.print("\nNo pending reminders.")
        return

    table = Table(title="Pending reminders", box=box.ROUNDED, header_style="bold cyan")
    for column in ("Due", "Claim", "Vessel", "Line", "To", "Subject"):
        table.add_column(column)
    for row in rows:
        due = plain(format_datetime(row.due_at))
        table.add_row(
            f"[red]{due}[/red]" if row.is_overdue else due,
            plain(row.claim_id),
            truncate(row.vessel, 20),
            plain(row.line),
            plain(row.to),
            truncate(row.subject, 40),
        )
    console.print(table)


def print_finance(claims: list[Claim]):
    """Print the exposure summary."""
    summary = summarize_finances(claims)

    table = Table(title=f"Exposure by line ({summary.currency})", box=box.ROUNDED, header_style="bold cyan")
    for column in ("Line", "Claims", "Reserve", "Paid", "Recovery exp.", "Exposure"):
        table.add_column(column, justify="right")
    for bucket in summary.by_line + [summary.totals]:
        table.add_row(
            plain(bucket.key),
            str(bucket.count),
            money(bucket.reserve),
            money(bucket.paid),
            money(bucket.recovery_expected),
            money(bucket.exposure),
        )
    console.print(table)
    console.print(
        f"Open: {summary.open_totals.count} claim(s), exposure {money(summary.open_totals.exposure)}   "
        f"Closed: {summary.closed_totals.count} claim(s)"
    )


def main():
    parser = argparse.ArgumentParser(description="View stored claims")
    parser.add_argument("claim_id", nargs="?", help="Specific claim ID to view")
    parser.add_argument("--status", help="Filter by status (open, in_progress, closed)")
    parser.add_argument("--pending", action="store_true", help="Show pending reminders")
    parser.add_argument("--finance", action="store_true", help="Show exposure summary")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of tables")

    args = parser.parse_args()

    store = get_claim_store()

    if args.claim_id:
        claim = store.get_claim(args.claim_id)
        if claim is None:
            console.print(f"\nClaim not found: {plain(args.claim_id)}")
            sys.exit(1)
        if args.json:
            print(json.dumps(claim.to_dict(), indent=2, ensure_ascii=False))
        else:
            print_claim_detail(claim)
        return

    claims = store.list_claims(status=args.status)

    if args.pending:
        if args.json:
            print(json.dumps([r.to_dict() for r in pending_reminders(claims)], indent=2))
        else:
            print_pending(claims)
    elif args.finance:
        if args.json:
            print(json.dumps(summarize_finances(claims).to_dict(), indent=2))
        else:
            print_finance(claims)
    elif args.json:
        print(json.dumps([c.to_dict() for c in claims], indent=2, ensure_ascii=False))
    else:
        print_claim_list(claims)


if __name__ == "__main__":
    main()
