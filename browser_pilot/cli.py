"""
CLI for Browser Pilot.

Provides the command-line interface using argparse.
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import Optional

from rich.console import Console

from . import __version__
from .agent import BrowserAgent
from .config import AgentConfig, DEFAULTS
from .errors import InitializationError
from .logger import configure_logging
from .types import AgentResult


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="browser-pilot",
        description="Browser Pilot - drives a browser toward a goal with an LLM.",
        epilog="""
Examples:
  # Extract the top story from Hacker News
  browser-pilot run "Extract the title of the top story" --start-url https://news.ycombinator.com

  # Use a specific LLM endpoint
  browser-pilot run "Find the docs link" --start-url example.com --model-endpoint http://localhost:1234/v1 --model qwen2.5:7b

  # Headless with JSON output
  browser-pilot run "Read the page heading" --start-url example.com --headless --json
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Browser Pilot {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the browser agent with a goal",
    )

    run_parser.add_argument(
        "goal",
        type=str,
        help="The goal to accomplish in natural language",
    )

    run_parser.add_argument(
        "--start-url",
        type=str,
        required=True,
        help="Page to open before the first step",
    )

    run_parser.add_argument(
        "--headless",
        action="store_true",
        default=DEFAULTS["headless"],
        help="Run browser in headless mode",
    )

    run_parser.add_argument(
        "--max-steps",
        type=int,
        default=DEFAULTS["max_steps"],
        help=f"Maximum steps to execute (default: {DEFAULTS['max_steps']})",
    )

    run_parser.add_argument(
        "--model-endpoint",
        type=str,
        default=None,
        help=f"LLM API endpoint (default: {DEFAULTS['model_endpoint']})",
    )

    run_parser.add_argument(
        "--model",
        type=str,
        default=None,
        help=f"LLM model name (default: {DEFAULTS['model']})",
    )

    run_parser.add_argument(
        "--screenshots",
        action="store_true",
        default=False,
        help="Send a screenshot of the page with every step",
    )

    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Stop the run after this many seconds",
    )

    run_parser.add_argument(
        "--no-persist",
        action="store_true",
        default=False,
        help="Don't write the run directory (steps.jsonl, screenshots)",
    )

    run_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Output result as JSON",
    )

    run_parser.add_argument(
        "-d", "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )

    return parser


async def _run(args: argparse.Namespace, config: AgentConfig) -> AgentResult:
    abort = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, abort.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops don't support signal handlers
            pass

    async with BrowserAgent(config, enable_console=not args.json) as agent:
        await agent.init()
        return await agent.run(args.goal, args.start_url, abort=abort)


def run_command(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    console = Console()
    configure_logging(args.debug)

    try:
        config = AgentConfig.from_cli_args(
            headless=args.headless,
            max_steps=args.max_steps,
            model_endpoint=args.model_endpoint,
            model=args.model,
            screenshots=args.screenshots,
            run_timeout_s=args.timeout,
            no_persist=args.no_persist,
            debug=args.debug,
        )
    except ValueError as e:
        console.print(f"[bold red]Invalid configuration: {e}[/bold red]")
        return 2

    if config.persist_runs:
        config.ensure_directories()

    try:
        result = asyncio.run(_run(args, config))
    except InitializationError as e:
        console.print(f"[bold red]Fatal error: {e}[/bold red]")
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    elif result.data:
        console.print()
        console.print("[bold]Extracted data:[/bold]")
        console.print_json(json.dumps(result.data, default=str))

    return 0 if result.success else 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return run_command(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
