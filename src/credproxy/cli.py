"""
Command line interface for credproxy.
"""

import argparse
import secrets
from pathlib import Path

from rich.console import Console

from credproxy.config import default_config, save_config
from credproxy.encryption import generate_key


console = Console()


def serve(args: argparse.Namespace):
    """
    Start the FastAPI server from the current directory.
    """
    from credproxy.server import find_ssl_certificates, start_server

    ssl_keyfile, ssl_certfile = find_ssl_certificates()

    try:
        start_server(
            host=args.host,
            port=args.port,
            reload=args.reload,
            ssl_keyfile=ssl_keyfile,
            ssl_certfile=ssl_certfile,
            block=True,
        )
    except ValueError as e:
        console.print(f"[red]{e}[/red]")


def init(args: argparse.Namespace):
    """
    Write a new config.json with a fresh encryption key and admin token.
    """
    config_path = Path(args.config)

    if config_path.exists():
        console.print(
            f"[yellow]'{config_path}' already exists, not overwriting.[/yellow]"
        )
        return

    config = default_config()
    config["encryption_key"] = generate_key()
    config["admin_token"] = secrets.token_urlsafe(32)
    if args.memory:
        config["store"]["backend"] = "memory"

    save_config(config, config_path)

    console.print(f"[green]Created '{config_path}'.[/green]")
    console.print(f"Admin token: [bold]{config['admin_token']}[/bold]")
    console.print(
        "[dim]Losing the encryption key makes stored secrets unreadable.[/dim]"
    )


def genkey(args: argparse.Namespace):
    """
    Print a new base64 encryption key.
    """
    console.print(generate_key())


def main():
    """
    Main entry point for the CLI.
    """
    parser = argparse.ArgumentParser(
        description="credproxy - API credential injecting proxy."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser(
        "serve", help="Start the FastAPI server."
    )
    serve_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1).",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000).",
    )
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on file changes.",
    )

    init_parser = subparsers.add_parser(
        "init", help="Create config.json with new keys."
    )
    init_parser.add_argument(
        "--config",
        default="config.json",
        help="Path of the config file to create (default: config.json).",
    )
    init_parser.add_argument(
        "--memory",
        action="store_true",
        help="Keep data in memory only instead of a JSON file.",
    )

    subparsers.add_parser("genkey", help="Print a new encryption key.")

    args = parser.parse_args()

    if args.command == "serve":
        serve(args)
    elif args.command == "init":
        init(args)
    elif args.command == "genkey":
        genkey(args)


if __name__ == "__main__":
    main()
