#!/usr/bin/env python3
"""
Turvo Loads CLI

Operator tool for checking the Turvo connection and inspecting loads.

Usage:
    turvo-loads setup              # Interactive setup wizard
    turvo-loads test               # Test your connection
    turvo-loads list               # Show a page of loads
    turvo-loads get 12345          # Show one load by Turvo id
    turvo-loads find PO-1001       # Find a load by external id
    turvo-loads customers          # List customers
    turvo-loads stats              # Token and request statistics
"""

import argparse
import json
import os
import sys
from pathlib import Path

import httpx
from colorama import Fore, Style, init

from turvo_connector.config import TurvoConfig, get_config_path, load_config
from turvo_connector.exceptions import TurvoAPIError, TurvoRateLimitError
from turvo_connector.logging_setup import configure_logging
from turvo_connector.service import LoadService

init()
GREEN = Fore.GREEN
RED = Fore.RED
YELLOW = Fore.YELLOW
BLUE = Fore.CYAN
RESET = Style.RESET_ALL
BOLD = Style.BRIGHT


def print_banner():
    """Print the banner."""
    print(f"""
{BLUE}╔══════════════════════════════════════════════════════════════╗
║     {BOLD}Turvo Loads Connector{RESET}{BLUE}                                    ║
║     Loads in, shipments out                                  ║
╚══════════════════════════════════════════════════════════════╝{RESET}
""")


def print_success(msg: str):
    print(f"{GREEN}✓ {msg}{RESET}")


def print_error(msg: str):
    print(f"{RED}✗ {msg}{RESET}")


def print_warning(msg: str):
    print(f"{YELLOW}⚠ {msg}{RESET}")


def print_info(msg: str):
    print(f"{BLUE}ℹ {msg}{RESET}")


def save_config(config: dict, path: Path | None = None) -> None:
    """Save configuration to file."""
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(config, f, indent=2)

    # Secure the file (contains credentials)
    os.chmod(config_path, 0o600)
    print_success(f"Configuration saved to {config_path}")


def _mask(value: str) -> str:
    return f"{value[:4]}...{value[-2:]}" if len(value) > 8 else "(not set)"


def _run(action):
    """Run action(service), translating connector errors to exit codes."""
    try:
        service = LoadService.from_config(load_config())
        with service.client:
            return action(service)
    except TurvoRateLimitError as e:
        print_warning(f"Turvo is rate limiting us, retry after {e.retry_after_header}s")
        return 1
    except TurvoAPIError as e:
        print_error(str(e))
        return 1
    except httpx.HTTPError as e:
        print_error(f"Network error: {e}")
        return 1


def cmd_setup(args):
    """Interactive setup wizard."""
    print_banner()
    print(f"{BOLD}Setup Wizard{RESET}")
    print("Let's configure your Turvo connection.\n")

    path = get_config_path()
    current: dict = {}
    if path.exists():
        with open(path) as f:
            current = json.load(f)

    base_url = input(f"Turvo base URL [{current.get('base_url', 'https://app.turvo.com')}]: ").strip()
    base_url = base_url or current.get("base_url", "https://app.turvo.com")

    username = input(f"Username [{current.get('username', '')}]: ").strip() or current.get("username", "")
    password = input(f"Password [{_mask(current.get('password', ''))}]: ").strip() or current.get("password", "")
    client_id = input(f"Client id [{current.get('client_id', '')}]: ").strip() or current.get("client_id", "")
    client_secret = (
        input(f"Client secret [{_mask(current.get('client_secret', ''))}]: ").strip()
        or current.get("client_secret", "")
    )
    api_key = input(f"API key [{_mask(current.get('api_key', ''))}]: ").strip() or current.get("api_key", "")
    tenant = input(f"Tenant [{current.get('tenant', '')}]: ").strip() or current.get("tenant", "")

    if not username and not api_key:
        print_error("A username/password or an API key is required")
        return 1

    config = {
        **current,
        "base_url": base_url,
        "username": username,
        "password": password,
        "client_id": client_id,
        "client_secret": client_secret,
        "api_key": api_key,
        "tenant": tenant,
    }
    save_config(config, path)

    print(f"\n{BOLD}Testing connection...{RESET}")
    return cmd_test(args, load_config(path))


def cmd_test(args, config: TurvoConfig | None = None):
    """Test the Turvo connection."""
    config = config or load_config()

    if not config.has_credentials:
        print_error("Not configured.")
        print_info("Option 1: Run 'turvo-loads setup' for interactive setup")
        print_info("Option 2: Set environment variables:")
        print("    export TURVO_USERNAME=you@example.com")
        print("    export TURVO_PASSWORD=...")
        print("    export TURVO_CLIENT_ID=... TURVO_CLIENT_SECRET=... TURVO_API_KEY=...")
        return 1

    print_info(f"Connecting to {config.base_url}...")

    with LoadService.from_config(config).client as client:
        result = client.health_check()

    if result["status"] == "healthy":
        print_success("Connected successfully!")
        mode = "bearer token" if result.get("authenticated") else "API key only"
        print_success(f"Authenticated with {mode}")
        return 0
    if result["status"] == "rate_limited":
        print_warning(f"Rate limited, retry after {result['retry_after']:.0f}s")
        return 1

    print_error(f"Connection failed: {result.get('message', 'Unknown error')}")
    return 1


def cmd_list(args):
    """Show one page of loads."""
    filters = {}
    if args.status:
        filters["status[eq]"] = args.status
    if args.query:
        filters["q"] = args.query

    def _list(service: LoadService):
        page = service.list_loads(filters, start=args.start, page_size=args.page_size)
        if args.json:
            print(json.dumps(page.to_dict(), indent=2))
            return 0

        print(f"{BOLD}Loads{RESET} (start {page.pagination.start}, {len(page.items)} shown)\n")
        for load in page.items:
            lane = f"{load.pickup.lane_label or '?'} → {load.consignee.lane_label or '?'}"
            print(f"  {load.turvo_shipment_id or '-':>10}  {load.external_tms_load_id or '-':<16} "
                  f"{load.status:<14} {lane}")
        if page.pagination.next_start is not None:
            print_info(f"More available: --start {page.pagination.next_start}")
        return 0

    return _run(_list)


def cmd_get(args):
    """Show one load by Turvo id."""
    return _run(lambda service: _print_load(service.get_load(args.id)))


def cmd_find(args):
    """Find a load by external id."""
    print_warning("This scans every shipment page in Turvo and may take a while")
    return _run(lambda service: _print_load(service.find_load_by_external_id(args.external_id)))


def _print_load(load) -> int:
    print(json.dumps(load.to_json_dict(), indent=2))
    return 0


def cmd_customers(args):
    """List customers."""
    filters = {}
    if args.name:
        filters["name[eq]"] = args.name

    def _customers(service: LoadService):
        for customer in service.list_customers(filters):
            print(f"  {customer.id:>10}  {customer.name}")
        return 0

    return _run(_customers)


def cmd_stats(args):
    """Show token and request statistics after a health check."""
    return _run(_print_stats)


def _print_stats(service: LoadService) -> int:
    client = service.client
    client.health_check()
    stats = client.get_stats()

    print(f"{BOLD}Client Statistics{RESET}\n")
    print(f"  Base URL: {stats['base_url']}")
    print(f"  Requests: {stats['request_count']}")
    print(f"  Errors: {stats['error_count']} ({stats['error_rate']:.2%})")

    tokens = stats["tokens"]
    print(f"\n{BOLD}Token:{RESET}")
    print(f"  Held: {tokens['has_token']}")
    if tokens["seconds_left"] is not None:
        print(f"  Expires in: {tokens['seconds_left']:.0f}s")
    print(f"  Grants: {tokens['password_grants']} password, {tokens['refresh_grants']} refresh")
    if tokens["cooldown_seconds"]:
        print_warning(f"  OAuth cooldown: {tokens['cooldown_seconds']:.0f}s")
    return 0


def main(argv: list[str] | None = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Turvo Loads Connector CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  turvo-loads setup              Interactive setup wizard
  turvo-loads test               Test your connection
  turvo-loads list --status Tendered
  turvo-loads get 12345
  turvo-loads find PO-1001
        """,
    )
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "warning"))
    parser.add_argument("--log-json", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("setup", help="Interactive setup wizard")
    subparsers.add_parser("test", help="Test your connection")

    list_parser = subparsers.add_parser("list", help="Show a page of loads")
    list_parser.add_argument("--start", type=int, default=0)
    list_parser.add_argument("--page-size", type=int, default=24)
    list_parser.add_argument("--status", help="Turvo status filter (status[eq])")
    list_parser.add_argument("-q", "--query", help="Search by external id")
    list_parser.add_argument("--json", action="store_true", help="Print the JSON response body")

    get_parser = subparsers.add_parser("get", help="Show one load by Turvo id")
    get_parser.add_argument("id")

    find_parser = subparsers.add_parser("find", help="Find a load by external id")
    find_parser.add_argument("external_id")

    customers_parser = subparsers.add_parser("customers", help="List customers")
    customers_parser.add_argument("--name", help="Exact customer name")

    subparsers.add_parser("stats", help="Show statistics")

    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_output=args.log_json)

    if args.command is None:
        print_banner()
        print(f"{BOLD}Quick Start:{RESET}")
        print()
        print("  1. Set your credentials:")
        print(f"     {BLUE}export TURVO_USERNAME=you@example.com TURVO_PASSWORD=...{RESET}")
        print()
        print("  2. Test the connection:")
        print(f"     {BLUE}turvo-loads test{RESET}")
        print()
        print(f"{BOLD}Or run 'turvo-loads setup' for interactive configuration.{RESET}")
        return 0

    commands = {
        "setup": cmd_setup,
        "test": cmd_test,
        "list": cmd_list,
        "get": cmd_get,
        "find": cmd_find,
        "customers": cmd_customers,
        "stats": cmd_stats,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
