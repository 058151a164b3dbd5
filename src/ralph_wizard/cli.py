"""Command-line interface for Ralph."""

import argparse
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

from ralph_wizard import __version__
from ralph_wizard import commands
from ralph_wizard.ascii_art import display_ralph_banner
from ralph_wizard.errors import RalphError


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="ralph",
        description="Ralph: Autonomous AI Coding Agent Loop",
        epilog="""
Examples:
  ralph                             # Set up Ralph, or run it if already set up
  ralph init                        # Interactive setup wizard
  ralph run 20                      # Run up to 20 iterations in the sandbox
  ralph run --no-sandbox            # Run the loop directly on this machine
  ralph status                      # Show story progress
  ralph next                        # Show the story to work on next
  ralph gh import 42                # Import GitHub issue #42 as a story
  ralph story finish US-003         # Rebase, open a PR and mark the story done
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-C", "--dir",
        type=Path,
        default=None,
        help="Run as if ralph was started in this directory",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Init command
    subparsers.add_parser(
        "init",
        help="Interactive setup of Ralph in the current directory",
    )

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run the Ralph loop",
        aliases=["start"],
    )
    run_parser.add_argument(
        "iterations",
        type=int,
        nargs="?",
        default=None,
        help="Maximum iterations (default: maxIterations from config)",
    )
    run_parser.add_argument(
        "--no-sandbox",
        action="store_true",
        help="Run the agent directly instead of inside sandy",
    )

    # Status command
    subparsers.add_parser(
        "status",
        help="Show story progress",
    )

    # Next command
    next_parser = subparsers.add_parser(
        "next",
        help="Show the story to work on next",
    )
    next_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the selection as JSON",
    )

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate PRD JSON structure",
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings as errors",
    )

    # Compound command
    subparsers.add_parser(
        "compound",
        help="Extract learnings from recent sessions",
    )

    # Schedule command
    subparsers.add_parser(
        "schedule",
        help="Set up nightly automated runs (macOS launchd)",
    )

    # GitHub commands
    gh_parser = subparsers.add_parser(
        "gh",
        help="GitHub issue integration",
    )
    gh_subparsers = gh_parser.add_subparsers(dest="gh_command", required=True)
    gh_subparsers.add_parser(
        "check",
        help="Check that the GitHub CLI is installed and authenticated",
    )
    gh_import_parser = gh_subparsers.add_parser(
        "import",
        help="Import one issue as a story",
    )
    gh_import_parser.add_argument(
        "issue_number",
        type=int,
        help="Issue number",
    )
    gh_subparsers.add_parser(
        "sync",
        help="Import all open issues not yet in the backlog",
    )

    # Story commands
    story_parser = subparsers.add_parser(
        "story",
        help="Story branch workflow",
    )
    story_subparsers = story_parser.add_subparsers(dest="story_command", required=True)
    for name, help_text in (
        ("start", "Create and record the story's branch"),
        ("finish", "Rebase, open a PR (if configured) and mark the story as passing"),
        ("unblock", "Clear the story's blocked flag"),
    ):
        sub = story_subparsers.add_parser(name, help=help_text)
        sub.add_argument("story_id", help="Story ID (e.g., US-001)")

    # Help / version
    subparsers.add_parser(
        "help",
        help="Show this help",
    )
    subparsers.add_parser(
        "version",
        help="Show version",
    )

    return parser


def _default_command(args: argparse.Namespace) -> str:
    """Pick init or run when no command is given."""
    project_dir = args.dir or Path.cwd()
    if (project_dir / ".ralph" / "ralph.sh").exists():
        args.iterations = None
        args.no_sandbox = False
        return "run"
    return "init"


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    command = args.command
    if command == "help":
        display_ralph_banner()
        parser.print_help()
        sys.exit(0)
    if not command:
        display_ralph_banner()
        command = _default_command(args)
    if command == "gh":
        command = f"gh {args.gh_command}"
    elif command == "story":
        command = f"story {args.story_command}"

    # Route to command handlers
    command_map = {
        "init": commands.init_command,
        "run": commands.run_command,
        "start": commands.run_command,
        "status": commands.status_command,
        "next": commands.next_command,
        "validate": commands.validate_command,
        "compound": commands.compound_command,
        "schedule": commands.schedule_command,
        "gh check": commands.gh_check_command,
        "gh import": commands.gh_import_command,
        "gh sync": commands.gh_sync_command,
        "story start": commands.story_start_command,
        "story finish": commands.story_finish_command,
        "story unblock": commands.story_unblock_command,
        "version": commands.version_command,
    }

    handler = command_map.get(command)
    if not handler:
        print(f"❌ Unknown command: {command}")
        parser.print_help()
        sys.exit(1)

    try:
        handler(args)
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        sys.exit(130)
    except RalphError as e:
        print(f"❌ {e}")
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
