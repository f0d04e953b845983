"""Summary: Command-line interface for TicketDesk.

Importance: Provides a local-first entry point for the operator workflow.
Alternatives: Build a web UI or desktop client first.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date

from ticketdesk.app import AppServices, build_services
from ticketdesk.config import AppConfig
from ticketdesk.errors import AuthExpired
from ticketdesk.models import SupportCategory
from ticketdesk.triage import TriageOverrides


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="TicketDesk CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Fetch recent mail into the desk")
    sync.add_argument("--limit", type=int, default=None)

    list_tickets = subparsers.add_parser("list", help="List tickets")
    list_tickets.add_argument("--tab", choices=["new", "in_progress", "resolved"], default=None)
    list_tickets.add_argument("--query", type=str, default="")

    triage = subparsers.add_parser("triage", help="Classify one ticket")
    triage.add_argument("ticket_id", type=str)
    triage.add_argument("--user-id", type=str, default=None)
    triage.add_argument("--payment-method", type=str, default=None)
    triage.add_argument("--supplement", type=str, default=None)
    triage.add_argument("--payment-proof", action="store_true")

    classify = subparsers.add_parser("classify", help="Classify selected tickets")
    classify.add_argument("ids", nargs="*")

    send = subparsers.add_parser("send", help="Send the reply for one ticket")
    send.add_argument("ticket_id", type=str)

    bulk_send = subparsers.add_parser("bulk-send", help="Send replies for selected tickets")
    bulk_send.add_argument("ids", nargs="*")

    customers = subparsers.add_parser("customers", help="List customers")
    customers.add_argument("--search", type=str, default="")
    customers.add_argument("--tab", type=str, default="ALL")

    subparsers.add_parser("stats", help="Show dashboard statistics")
    subparsers.add_parser("templates", help="List reply templates")

    add_template = subparsers.add_parser("add-template", help="Create a reply template")
    add_template.add_argument("name", type=str)
    add_template.add_argument("body", type=str)
    add_template.add_argument("--rule", type=str, default="")
    add_template.add_argument(
        "--category", choices=[item.value for item in SupportCategory], default=None
    )

    set_model = subparsers.add_parser("set-model", help="Select the classification engine")
    set_model.add_argument("model_id", type=str)

    db_sync = subparsers.add_parser("db-sync", help="Fetch backend database tickets")
    db_sync.add_argument("--day", type=date.fromisoformat, default=None)
    return parser


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute the CLI command.

    Importance: Primary entry point for local usage.
    Alternatives: Use the HTTP API for every operation.
    """

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    services = build_services(AppConfig.from_env())
    try:
        asyncio.run(dispatch_command(services, args))
    except AuthExpired as exc:
        print(f"{exc.reason}. Set a fresh GMAIL_ACCESS_TOKEN and retry.", file=sys.stderr)
        sys.exit(2)


async def dispatch_command(services: AppServices, args: argparse.Namespace) -> None:
    """Summary: Run one parsed command against the services."""

    if args.command == "sync":
        added = await services.inbox.sync(args.limit)
        print(f"Added {len(added)} tickets.")
        return

    if args.command == "list":
        for ticket in services.inbox.list_tickets(args.tab, args.query):
            marker = "*" if ticket.selected else " "
            print(f"{marker} {ticket.id} [{ticket.status.value}] {ticket.subject} ({ticket.sender})")
        return

    if args.command == "triage":
        overrides = TriageOverrides(
            user_id=args.user_id,
            payment_method=args.payment_method,
            supplement=args.supplement,
            payment_proof=args.payment_proof,
        )
        ticket = await services.triage.triage(args.ticket_id, overrides)
        category = ticket.category.value if ticket.category else "-"
        print(f"{ticket.id}: {category} -> {ticket.status.value}")
        return

    if args.command == "classify":
        result = await services.triage.classify_selected(args.ids or None)
        print(f"Classified {len(result.updated)} tickets, {len(result.failures)} failed.")
        for ticket_id, reason in result.failures.items():
            print(f"  {ticket_id}: {reason}")
        return

    if args.command == "send":
        ticket = await services.dispatch.send(args.ticket_id)
        print(f"Sent reply for {ticket.id}.")
        return

    if args.command == "bulk-send":
        result = await services.dispatch.send_selected(
            args.ids or None, lambda percent: print(f"{percent}%")
        )
        print(f"Sent {result.success_count}, failed {result.failed_count}.")
        if result.needs_review:
            print(f"Needs review: {', '.join(result.needs_review)}")
        if result.auth_expired:
            print("Mail authorization expired during the batch.")
        return

    if args.command == "customers":
        for customer in services.customers.roster(args.search, args.tab):
            tags = ",".join(customer.tags) or "-"
            print(
                f"{customer.email} {customer.name} uid={customer.user_id} "
                f"{customer.latest_category} tickets={customer.total_tickets} tags={tags}"
            )
        return

    if args.command == "stats":
        snapshot = services.stats.snapshot()
        for key, value in vars(snapshot).items():
            print(f"{key}: {value}")
        return

    if args.command == "templates":
        for template in services.templates.list_templates():
            print(f"{template.id}: {template.name}")
        return

    if args.command == "add-template":
        category = SupportCategory(args.category) if args.category else None
        template = services.templates.add(args.name, args.body, args.rule, category)
        print(f"Created template {template.id}.")
        return

    if args.command == "set-model":
        print(f"Active engine: {services.settings.set_active_model(args.model_id)}")
        return

    if args.command == "db-sync":
        added = await services.database.sync(args.day or date.today())
        print(f"Added {len(added)} database tickets.")
        return


if __name__ == "__main__":
    run_cli()
