#!/usr/bin/env python3
"""
Command-line interface for the order alerts engine.

Usage:
    python cli.py [command] [options]

Commands:
    alerts      Show due-date alerts for an orders JSON file
    render      Preview a customer message template
    test        Run the test suite
    serve       Start the API server

Examples:
    python cli.py alerts data/orders.json
    python cli.py alerts data/orders.json --now 2024-05-10T10:00:00+00:00
    python cli.py render order_status --context '{"order_number": "1001", "status": "ready"}'
    python cli.py serve --reload
"""

import argparse
import json
import subprocess
import sys
from datetime import datetime
from pathlib import Path

from alerting.computer import DUE_SOON_WINDOW_DAYS, compute_notifications, sort_by_urgency
from dispatch.templates import TemplateType, render
from shared.errors import UnknownTemplate
from shared.models import Order, utcnow


def run_alerts(orders_file: Path, now: datetime, window_days: int) -> int:
    """Print the alert list for a snapshot of orders."""
    with open(orders_file, "r") as f:
        orders = [Order(**o) for o in json.load(f)]

    notifications = sort_by_urgency(compute_notifications(orders, now, window_days))

    print(f"{len(notifications)} alert(s) from {len(orders)} order(s) as of {now.isoformat()}")
    for notification in notifications:
        marker = "!!" if notification.priority == "high" else " !"
        print(f"  {marker} [{notification.type}] {notification.message} (due {notification.due_date})")
    return 0


def run_render(template_type: str, context: str) -> int:
    """Print a rendered customer message."""
    try:
        rendered = render(template_type, json.loads(context) if context else {})
    except UnknownTemplate as e:
        print(str(e), file=sys.stderr)
        return 1
    print(f"Subject: {rendered.subject}\n")
    print(rendered.message)
    return 0


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = [sys.executable, "-m", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = [sys.executable, "-m", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd)


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Order due-date alerts CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s alerts data/orders.json
  %(prog)s render measurement_ready --context '{"customer_name": "Asha"}'
  %(prog)s test -v
  %(prog)s serve --reload
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Alerts command
    alerts_parser = subparsers.add_parser("alerts", help="Show alerts for an orders file")
    alerts_parser.add_argument("orders_file", type=Path, help="JSON list of orders")
    alerts_parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Evaluate as of this ISO timestamp (default: current time)",
    )
    alerts_parser.add_argument(
        "--window",
        type=int,
        default=DUE_SOON_WINDOW_DAYS,
        help="Days ahead that count as due soon",
    )

    # Render command
    render_parser = subparsers.add_parser("render", help="Preview a message template")
    render_parser.add_argument(
        "template_type",
        help=f"One of: {', '.join(t.value for t in TemplateType)}",
    )
    render_parser.add_argument("--context", default="", help="Template variables as JSON")

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args(argv)

    if args.command == "alerts":
        return run_alerts(args.orders_file, args.now or utcnow(), args.window)
    elif args.command == "render":
        return run_render(args.template_type, args.context)
    elif args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    else:
        parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
