"""
Main CLI entry point for the billing service.

Usage:
    python src/main.py api --port 8000
    python src/main.py init-db
    python src/main.py packages
    python src/main.py menu --role ADMIN --path /billing
"""

import sys
import argparse

from rich.console import Console
from rich.table import Table

from config.settings import get_settings


def command_api(args):
    """Start the API server."""
    import uvicorn

    from api.app import create_app

    console = Console()

    app = create_app()

    console.print("[bold green]Starting API server[/bold green]")
    console.print(f"Host: {args.host}")
    console.print(f"Port: {args.port}")
    console.print(f"Docs: http://{args.host}:{args.port}/docs")

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        workers=args.workers
    )

    return 0


def command_init_db(args):
    """Create the database tables."""
    from db import init_db

    init_db()
    Console().print(f"[green]Database ready:[/green] {get_settings().database_url}")
    return 0


def command_packages(args):
    """Show the pricing-page packages configured in Stripe."""
    from billing.stripe_client import StripeService
    from db import SessionLocal
    from services import MessagesService, OrganizationService, SubscriptionService

    console = Console()
    db = SessionLocal()
    try:
        service = StripeService(SubscriptionService(db), OrganizationService(db), MessagesService(db))
        packages = service.get_packages()
    finally:
        db.close()

    table = Table(title="Packages")
    table.add_column("Interval", style="cyan")
    table.add_column("Name")
    table.add_column("Price", justify="right")

    for interval, entries in packages.items():
        for entry in entries:
            price = f"${entry['price']:.2f}" if entry["price"] is not None else "-"
            table.add_row(str(interval), entry["name"] or "-", price)

    console.print(table)
    return 0


def command_menu(args):
    """Preview the top menu for a role."""
    from navigation.menu import render_menu

    billing_enabled = get_settings().is_billing_enabled if args.billing is None else args.billing == "on"

    table = Table(title=f"Menu for {args.role} at {args.path}")
    table.add_column("Name")
    table.add_column("Path")
    table.add_column("Active", justify="center")

    for entry in render_menu(args.path, args.role, billing_enabled=billing_enabled):
        table.add_row(entry["name"], entry["path"], "*" if entry["active"] else "")

    Console().print(table)
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Gitroom Billing - Stripe subscriptions, marketplace payouts and navigation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s api --port 8000
  %(prog)s init-db
  %(prog)s packages
  %(prog)s menu --role USER --path /launches
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # API command
    api_parser = subparsers.add_parser("api", help="Start API server")
    api_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to"
    )
    api_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to"
    )
    api_parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of workers"
    )

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("packages", help="List pricing packages from Stripe")

    menu_parser = subparsers.add_parser("menu", help="Preview the top menu for a role")
    menu_parser.add_argument("--role", default="USER", choices=["USER", "ADMIN", "SUPERADMIN"])
    menu_parser.add_argument("--path", default="/", help="Current page path")
    menu_parser.add_argument(
        "--billing",
        choices=["on", "off"],
        help="Override the billing-enabled setting"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "api": command_api,
        "init-db": command_init_db,
        "packages": command_packages,
        "menu": command_menu,
    }
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
