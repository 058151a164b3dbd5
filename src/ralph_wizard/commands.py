"""Command handlers for Ralph CLI."""

import argparse
import json
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ralph_wizard import __version__
from ralph_wizard import agents, prompts, sandbox
from ralph_wizard.config import (
    AGENT_IDS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TICKET_PREFIX,
    GitSettings,
    RalphConfig,
)
from ralph_wizard.errors import (
    BranchCreationError,
    ConfigurationError,
    GitHubError,
    InvalidBacklogError,
    WorkerError,
)
from ralph_wizard.git import (
    base_branch_for_story,
    branch_exists,
    branch_name_for_story,
    create_pull_request,
    create_story_branch,
    pr_target_branch,
    rebase_onto,
)
from ralph_wizard.github import check_gh_available, fetch_issue, list_open_issues
from ralph_wizard.logs import IterationLogger
from ralph_wizard.loop import AgentWorker, IterationDriver
from ralph_wizard.models import Backlog, Story
from ralph_wizard.prd import convert_markdown, empty_backlog, example_prd, story_from_issue, validate_prd
from ralph_wizard.selection import Selection, SelectionStatus, select_next_story, unmet_dependencies
from ralph_wizard.templates import (
    agent_prompt,
    caffeinate_plist,
    compound_prompt,
    compound_script,
    launchd_plist,
    loop_script,
    progress_header,
    schedule_times,
)
from ralph_wizard.tools import PRDManager, write_backlog

console = Console()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _project_dir(args: argparse.Namespace) -> Path:
    return getattr(args, "dir", None) or Path.cwd()


def _load_config(args: argparse.Namespace) -> RalphConfig:
    """Build the project context, exiting with a message on failure."""
    try:
        config = RalphConfig(project_dir=_project_dir(args))
    except ConfigurationError as e:
        console.print(f"❌ {escape(str(e))}")
        sys.exit(1)

    if not config.is_initialized:
        console.print("❌ Ralph not initialized. Run `ralph init` first.")
        sys.exit(1)
    return config


def _load_manager(config: RalphConfig) -> PRDManager:
    if not config.prd_path.exists():
        console.print(f"❌ PRD not found: {config.prd_path}")
        sys.exit(1)
    try:
        return PRDManager(config.prd_path)
    except InvalidBacklogError as e:
        console.print(f"❌ {escape(str(e))}")
        console.print("   Run `ralph validate` for details.")
        sys.exit(1)


def _get_story_or_exit(manager: PRDManager, story_id: str) -> Story:
    story = manager.get_story(story_id)
    if story is None:
        console.print(f"❌ Story {escape(story_id)} not found")
        sys.exit(1)
    return story


def _block_cycles(manager: PRDManager) -> None:
    """Block stories on dependency cycles and persist if anything changed."""
    blocked = manager.block_cycles()
    if blocked:
        manager.save()
        console.print(
            f"[yellow]⚠️  Circular dependencies found - blocked: {escape(', '.join(blocked))}[/yellow]"
        )


def _describe_selection(selection: Selection, backlog: Backlog) -> None:
    if selection.status is SelectionStatus.READY and selection.story:
        story = selection.story
        console.print(f"\n   ➡️  Next: {escape(story.id)} - {escape(story.title)}")
    elif selection.is_complete:
        console.print("\n   ✅ All unblocked stories complete!")
    else:
        console.print("\n   [yellow]⏸  Stalled: remaining stories wait on unmet dependencies[/yellow]")
        for story in selection.waiting:
            missing = ", ".join(unmet_dependencies(story, backlog))
            console.print(f"      {escape(story.id)} waits on {escape(missing)}")
    if selection.blocked:
        ids = ", ".join(s.id for s in selection.blocked)
        console.print(f"   ⛔ Blocked: {escape(ids)} (ralph story unblock <id>)")


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@dataclass
class InitAnswers:
    """Everything the init wizard collects before writing files."""

    agent: str = "claude"
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    ticket_prefix: str = DEFAULT_TICKET_PREFIX
    prd_content: Optional[str] = None
    git: GitSettings = field(default_factory=GitSettings)


def scaffold_project(project_dir: Path, answers: InitAnswers) -> RalphConfig:
    """Write the .ralph/ directory for a project.

    Creates ralph.sh, the agent prompt, progress.txt, prd.json and
    config.json. Nothing is written until every answer has been collected,
    so an aborted wizard leaves no partial setup behind.

    Args:
        project_dir: Project root
        answers: Wizard answers

    Returns:
        The saved configuration
    """
    ralph_dir = project_dir / ".ralph"
    ralph_dir.mkdir(parents=True, exist_ok=True)
    (ralph_dir / "logs").mkdir(exist_ok=True)

    config_path = ralph_dir / "config.json"
    if config_path.exists():
        config_path.unlink()
    config = RalphConfig(project_dir=project_dir)
    config.set("agent", answers.agent)
    config.set("maxIterations", answers.max_iterations)
    config.set("createdAt", datetime.now().isoformat())
    config.set("ticketPrefix", answers.ticket_prefix)
    config.set("git", answers.git.to_dict())
    config.save()

    config.script_path.write_text(loop_script(answers.agent, answers.max_iterations))
    config.script_path.chmod(0o755)
    config.prompt_path.write_text(agent_prompt(answers.agent, answers.git))
    config.progress_path.write_text(progress_header(datetime.now()))

    project_name = config.project_dir.name
    if answers.prd_content:
        backlog = convert_markdown(answers.prd_content, config.ticket_prefix, project=project_name)
    else:
        backlog = empty_backlog(project=project_name)
    write_backlog(config.prd_path, backlog)

    return config


def _collect_git_settings() -> GitSettings:
    use_xgit = shutil.which("xgit") is not None

    ok, error = check_gh_available()
    if not ok:
        console.print(f"[dim]   GitHub workflow unavailable: {escape(error.splitlines()[0])}[/dim]")
        return GitSettings(provider="none", use_xgit=use_xgit)

    if not prompts.confirm("Use the GitHub workflow (one branch per story)?", default=True):
        return GitSettings(provider="none", use_xgit=use_xgit)

    create_prs = prompts.confirm("Open a pull request for each finished story?", default=True)
    use_template = create_prs and prompts.confirm("Use the repository's PR template?", default=False)
    wait_for_merge = create_prs and prompts.confirm(
        "Wait for dependency PRs to merge before starting dependent stories?", default=False
    )
    branch_prefix = prompts.ask_text("Branch prefix (empty for none)", default="")
    return GitSettings(
        provider="github",
        create_prs=create_prs,
        use_pr_template=use_template,
        wait_for_merge=wait_for_merge,
        branch_prefix=branch_prefix,
        use_xgit=use_xgit,
    )


def _collect_prd_content() -> Optional[str]:
    while True:
        source = prompts.choose("How would you like to provide your PRD?", [
            ("paste", "Paste/type PRD content (opens editor)"),
            ("file", "Load from file"),
            ("example", "Start with example PRD"),
            ("skip", "Skip (create PRD later)"),
        ])
        if source == "paste":
            content = prompts.edit_text()
            if content is None:
                continue
            return content
        if source == "file":
            return prompts.ask_text_file("Path to PRD file")
        if source == "example":
            return example_prd()
        return None


def init_command(args: argparse.Namespace) -> None:
    """Interactive setup of Ralph in the current project."""
    project_dir = _project_dir(args)

    if (project_dir / ".ralph").exists():
        if not prompts.confirm("Ralph is already set up. Reinitialize?", default=False):
            console.print("[yellow]Aborted.[/yellow]")
            return

    answers = InitAnswers()
    answers.agent = prompts.choose("Select your AI coding agent:", [
        (agent_id, f"[cyan]{agents.AGENTS[agent_id].name}[/cyan] - {agents.AGENTS[agent_id].description}")
        for agent_id in AGENT_IDS
    ])
    spec = agents.get_agent(answers.agent)

    with console.status(f"Checking {spec.name} installation..."):
        installed = agents.is_installed(answers.agent)
    if not installed:
        console.print(f"❌ {spec.name} not found")
        console.print(f"\n[yellow]Please install {spec.name} first:[/yellow]")
        console.print(f"[dim]  {spec.install_hint}[/dim]")
        sys.exit(1)
    console.print(f"✅ {spec.name} installed")

    with console.status("Checking authentication..."):
        authed = agents.check_auth(answers.agent)
    if authed:
        console.print("✅ Authenticated")
    else:
        console.print("⚠️  Not authenticated")
        if prompts.confirm(f"Would you like to authenticate {spec.name} now?", default=True):
            console.print(f"\n[cyan]Launching {spec.name} for authentication...[/cyan]\n")
            result = subprocess.run([spec.command])
            if result.returncode != 0:
                console.print("[yellow]Authentication may have been cancelled. Continuing anyway...[/yellow]")

    answers.ticket_prefix = prompts.ask_ticket_prefix(DEFAULT_TICKET_PREFIX)
    answers.prd_content = _collect_prd_content()
    answers.max_iterations = prompts.ask_positive_int(
        "Default max iterations (recommended 10-50)", DEFAULT_MAX_ITERATIONS
    )
    answers.git = _collect_git_settings()

    with console.status("Checking sandy..."):
        sandy_ok = sandbox.is_sandy_installed()
    if not sandy_ok:
        console.print("❌ Sandy not installed")
        console.print("\n[yellow]  Sandy is required for AFK Ralph mode.[/yellow]")
        console.print(f"[dim]  {sandbox.SANDY_INSTALL_HINT}[/dim]")
        sys.exit(1)
    console.print("✅ Sandy installed")

    if (project_dir / "sandy.json").exists():
        console.print("[dim]  sandy.json already exists[/dim]")
    elif sandbox.ensure_sandy_config(project_dir):
        console.print("✅ sandy init complete")
    else:
        console.print("⚠️  sandy init failed - run it manually before `ralph run`")

    with console.status("Creating Ralph files..."):
        config = scaffold_project(project_dir, answers)
    console.print("✅ Ralph files created")

    manager = PRDManager(config.prd_path)
    console.print("\n[bold green]Ralph initialized successfully![/bold green]")
    console.print("[dim]\nFiles created:[/dim]")
    console.print("[dim]  .ralph/ralph.sh      - Main loop script[/dim]")
    console.print(f"[dim]  .ralph/{config.prompt_path.name:<13} - Prompt template[/dim]")
    console.print("[dim]  .ralph/progress.txt  - Progress tracking[/dim]")
    console.print(f"[dim]  .ralph/prd.json      - PRD tasks ({len(manager.stories)} stories)[/dim]")
    console.print("[dim]  .ralph/config.json   - Configuration[/dim]")

    if prompts.confirm("Start Ralph now (in sandy sandbox)?", default=True):
        run_command(argparse.Namespace(dir=project_dir, iterations=None, no_sandbox=False))
    else:
        console.print("[cyan]\nTo start Ralph later, run:[/cyan]")
        console.print("  ralph run")
        console.print("[dim]  or[/dim]")
        console.print("  rw run\n")


# ---------------------------------------------------------------------------
# run / status / next / validate
# ---------------------------------------------------------------------------

def run_command(args: argparse.Namespace) -> None:
    """Run the Ralph loop, in the sandbox unless --no-sandbox is given."""
    config = _load_config(args)

    iterations = getattr(args, "iterations", None)
    if iterations is None:
        iterations = config.max_iterations
    if iterations < 1:
        console.print(f"❌ Iterations must be at least 1, got {iterations}")
        sys.exit(1)

    spec = agents.get_agent(config.agent)
    console.print(f"\n[cyan]Starting Ralph with {spec.name}[/cyan]")
    console.print(f"[dim]Max iterations: {iterations}[/dim]")
    console.print(f"[dim]Working directory: {config.project_dir}[/dim]\n")

    if config.prd_path.exists():
        manager = _load_manager(config)
        _block_cycles(manager)
        summary = manager.get_summary()
        console.print(
            f"[yellow]PRD Status: {summary['completed_stories']}/{summary['total_stories']} stories complete[/yellow]"
        )
        selection = select_next_story(manager.backlog)
        if selection.is_complete and manager.stories:
            console.print("[bold green]All stories already complete![/bold green]")
            if not prompts.confirm("Continue anyway?", default=False):
                return
        elif selection.is_stalled:
            _describe_selection(selection, manager.backlog)

    if getattr(args, "no_sandbox", False):
        exit_code = _run_driver(config, iterations)
    else:
        with console.status("Checking sandy..."):
            sandy_ok = sandbox.is_sandy_installed()
        if not sandy_ok:
            console.print("❌ Sandy not found")
            console.print(f"\n[yellow]Sandy is required. {sandbox.SANDY_INSTALL_HINT}[/yellow]")
            console.print("[dim]Or run without a sandbox: ralph run --no-sandbox[/dim]")
            sys.exit(1)
        console.print("[cyan]\nLaunching in sandy sandbox...\n[/cyan]")
        exit_code = sandbox.run_in_sandbox(config.project_dir, config.script_path, iterations)

    if exit_code == 0:
        console.print("\n[bold green]Ralph completed successfully![/bold green]")
    else:
        console.print(f"\n[yellow]Ralph exited with code {exit_code}[/yellow]")
    _print_status(config)
    if exit_code != 0:
        sys.exit(exit_code)


def _run_driver(config: RalphConfig, iterations: int) -> int:
    """Run the loop in-process with the configured agent."""
    if not config.prompt_path.exists():
        console.print(f"❌ Prompt file not found: {config.prompt_path}")
        sys.exit(1)
    worker = AgentWorker(config.agent, config.prompt_path, config.project_dir)
    driver = IterationDriver(
        worker,
        max_iterations=iterations,
        logger=IterationLogger(config.logs_dir),
    )
    return driver.run().exit_code


def _print_status(config: RalphConfig) -> None:
    console.print("[bold]\n PRD Status:\n[/bold]")

    if not config.prd_path.exists():
        console.print("[yellow]  prd.json not found.[/yellow]")
        return

    manager = _load_manager(config)
    if not manager.stories:
        console.print("[yellow]  No stories in PRD yet.[/yellow]")
        return

    backlog = manager.backlog
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("", width=2, justify="center")
    table.add_column("P", justify="right")
    table.add_column("ID", no_wrap=True)
    table.add_column("Title")
    table.add_column("Branch / PR", style="dim")

    for story in manager.stories:
        if story.passes:
            icon = "[green]✓[/green]"
        elif story.blocked:
            icon = "[red]⛔[/red]"
        elif unmet_dependencies(story, backlog):
            icon = "[yellow]⏳[/yellow]"
        else:
            icon = "[dim]○[/dim]"
        git_info = story.branch or ""
        if story.pull_request:
            git_info = f"{git_info} #{story.pull_request}".strip()
        table.add_row(icon, f"P{story.priority}", escape(story.id), escape(story.title), escape(git_info))
    console.print(table)

    summary = manager.get_summary()
    console.print(
        f"[bold]\n  Progress: {summary['completed_stories']}/{summary['total_stories']} "
        f"({summary['completion_percentage']}%)[/bold]"
    )
    _describe_selection(select_next_story(backlog), backlog)
    console.print()


def status_command(args: argparse.Namespace) -> None:
    """Show Ralph status."""
    config = _load_config(args)
    _print_status(config)


def next_command(args: argparse.Namespace) -> None:
    """Show the story the agent should work on next."""
    config = _load_config(args)
    manager = _load_manager(config)
    _block_cycles(manager)

    backlog = manager.backlog
    selection = select_next_story(backlog)

    if getattr(args, "json", False):
        payload = {
            "status": selection.status.value,
            "story": selection.story.to_dict() if selection.story else None,
            "blocked": [s.id for s in selection.blocked],
            "waiting": [s.id for s in selection.waiting],
        }
        print(json.dumps(payload, indent=2))
    elif selection.story:
        story = selection.story
        console.print(f"\n📋 [bold]{escape(story.id)}[/bold]: {escape(story.title)}")
        console.print(f"   Priority: {story.priority}")
        if story.description and story.description != story.title:
            console.print(f"   {escape(story.description)}")
        for criterion in story.acceptance_criteria:
            console.print(f"   - {escape(criterion)}")
        if config.git.uses_github:
            base = base_branch_for_story(story, backlog, config.git)
            branch = story.branch or branch_name_for_story(story, config.git.branch_prefix)
            console.print(f"   Branch: {escape(branch)} (from {escape(base)})")
    else:
        _describe_selection(selection, backlog)

    if selection.is_stalled:
        sys.exit(2)


def validate_command(args: argparse.Namespace) -> None:
    """Validate PRD JSON structure."""
    config = _load_config(args)

    if not config.prd_path.exists():
        console.print(f"❌ PRD not found: {config.prd_path}")
        sys.exit(1)

    try:
        with open(config.prd_path, 'r') as f:
            prd = json.load(f)
    except json.JSONDecodeError as e:
        console.print(f"❌ Invalid JSON: {escape(str(e))}")
        sys.exit(1)

    result = validate_prd(prd)
    console.print(escape(result.format()))

    if not result.valid:
        sys.exit(1)

    if getattr(args, "strict", False) and result.warnings:
        console.print("\n❌ Validation failed (strict mode: warnings treated as errors)")
        sys.exit(1)

    if result.warnings:
        console.print("\n⚠️  Warnings found but validation passed (use --strict to treat warnings as errors)")


# ---------------------------------------------------------------------------
# compound / schedule
# ---------------------------------------------------------------------------

def compound_command(args: argparse.Namespace) -> None:
    """Have the agent extract learnings from recent sessions."""
    config = _load_config(args)

    console.print("[cyan]\nRunning Compound Review...[/cyan]")
    console.print("[dim]Extracting learnings from recent sessions\n[/dim]")

    try:
        returncode = agents.run_agent(config.agent, compound_prompt(), config.project_dir)
    except WorkerError as e:
        console.print(f"❌ {escape(str(e))}")
        sys.exit(1)

    if returncode == 0:
        console.print("[green]\nCompound review complete![/green]")
    else:
        console.print("[yellow]\nCompound review finished (check output above)[/yellow]")


def schedule_command(args: argparse.Namespace) -> None:
    """Set up nightly automated runs with launchd."""
    config = _load_config(args)
    console.print("[cyan]\nSetting up nightly automation...\n[/cyan]")

    schedule_type = prompts.choose("What would you like to schedule?", [
        ("full", "Full nightly loop (compound + run)"),
        ("compound", "Compound review only (extract learnings)"),
        ("run", "Run only (execute PRD tasks)"),
        ("view", "View generated plist files only"),
    ])
    hour, minute = prompts.ask_time("What time should it run? (HH:MM, 24h format)", default="23:00")

    project_dir = config.project_dir
    project_name = project_dir.name
    (compound_hour, compound_minute), (run_hour, run_minute), caffeinate_hour = schedule_times(hour, minute)

    compound_path = config.ralph_dir / "compound-review.sh"
    plists = {
        "compound": launchd_plist(
            f"com.ralph.{project_name}.compound", compound_path, project_dir,
            compound_hour, compound_minute, "compound",
        ),
        "run": launchd_plist(
            f"com.ralph.{project_name}.run", config.script_path, project_dir,
            run_hour, run_minute, "run",
        ),
        "caffeinate": caffeinate_plist(f"com.ralph.{project_name}.caffeinate", caffeinate_hour),
    }

    compound_path.write_text(compound_script(project_dir))
    compound_path.chmod(0o755)
    (project_dir / "logs").mkdir(parents=True, exist_ok=True)

    if schedule_type == "view":
        console.print("[bold]\nGenerated plist files:\n[/bold]")
        for kind, content in plists.items():
            console.print(f"[cyan]=== {kind.title()} ===[/cyan]")
            console.print(escape(content))
        return

    launch_agents_dir = Path.home() / "Library" / "LaunchAgents"
    launch_agents_dir.mkdir(parents=True, exist_ok=True)

    kinds = ["caffeinate"]
    if schedule_type in ("full", "compound"):
        kinds.insert(0, "compound")
    if schedule_type in ("full", "run"):
        kinds.insert(len(kinds) - 1, "run")

    files: List[Path] = []
    for kind in kinds:
        path = launch_agents_dir / f"com.ralph.{project_name}.{kind}.plist"
        path.write_text(plists[kind])
        files.append(path)

    console.print("[green]\nPlist files created:[/green]")
    for path in files:
        console.print(f"[dim]  {path}[/dim]")

    if prompts.confirm("Load these schedules now?", default=True):
        for path in files:
            try:
                result = subprocess.run(["launchctl", "load", str(path)], capture_output=True)
            except OSError:
                console.print("[yellow]  launchctl not available - load the plists manually[/yellow]")
                break
            if result.returncode == 0:
                console.print(f"[green]  Loaded: {path.name}[/green]")
            else:
                console.print(f"[yellow]  Already loaded or error: {path.name}[/yellow]")

    console.print("[cyan]\nSchedule set! Your agent will run nightly.[/cyan]")
    console.print("[dim]\nTo check status: launchctl list | grep ralph[/dim]")
    console.print("[dim]To unload: launchctl unload <plist-path>[/dim]")


# ---------------------------------------------------------------------------
# gh
# ---------------------------------------------------------------------------

def gh_check_command(args: argparse.Namespace) -> None:
    """Check that gh is installed and authenticated."""
    ok, error = check_gh_available()
    if not ok:
        console.print(f"❌ {escape(error)}")
        sys.exit(1)
    console.print("✅ GitHub CLI installed and authenticated")


def gh_import_command(args: argparse.Namespace) -> None:
    """Import one GitHub issue as a story."""
    config = _load_config(args)
    manager = _load_manager(config)

    existing = manager.backlog.find_by_issue(args.issue_number)
    if existing:
        console.print(f"⚠️  Issue #{args.issue_number} is already tracked as {escape(existing.id)}")
        sys.exit(1)

    try:
        with console.status(f"Fetching issue #{args.issue_number}..."):
            issue = fetch_issue(config.project_dir, args.issue_number)
    except GitHubError as e:
        console.print(f"❌ Failed to fetch issue #{args.issue_number}: {escape(str(e))}")
        sys.exit(1)

    story = story_from_issue(issue, manager.backlog, config.ticket_prefix)
    manager.add_story(story)
    manager.save()
    console.print(f"✅ Imported issue #{issue.number} as {escape(story.id)}: {escape(story.title)} (P{story.priority})")


def gh_sync_command(args: argparse.Namespace) -> None:
    """Import every open GitHub issue that is not tracked yet."""
    config = _load_config(args)
    manager = _load_manager(config)

    try:
        with console.status("Fetching open issues..."):
            issues = list_open_issues(config.project_dir)
    except GitHubError as e:
        console.print(f"❌ Failed to list issues: {escape(str(e))}")
        sys.exit(1)

    imported: List[Story] = []
    for issue in issues:
        if manager.backlog.find_by_issue(issue.number):
            continue
        story = story_from_issue(issue, manager.backlog, config.ticket_prefix)
        manager.add_story(story)
        imported.append(story)

    if not imported:
        console.print("✅ Backlog already tracks every open issue")
        return

    manager.save()
    console.print(f"✅ Imported {len(imported)} issue(s):")
    for story in imported:
        console.print(f"  - #{story.github_issue} → {escape(story.id)}: {escape(story.title)}")


# ---------------------------------------------------------------------------
# story
# ---------------------------------------------------------------------------

def story_start_command(args: argparse.Namespace) -> None:
    """Create the branch for a story and record it."""
    config = _load_config(args)
    manager = _load_manager(config)
    story = _get_story_or_exit(manager, args.story_id)
    git = config.git

    base = base_branch_for_story(story, manager.backlog, git)
    try:
        branch = create_story_branch(config.project_dir, story, base, git.branch_prefix)
    except BranchCreationError as e:
        console.print(f"❌ {escape(str(e))}")
        sys.exit(1)

    story.branch = branch
    manager.save()
    console.print(f"▶ Started {escape(story.id)} on branch {escape(branch)} (from {escape(base)})")


def story_finish_command(args: argparse.Namespace) -> None:
    """Mark a story as passing, rebasing and opening a PR when configured."""
    config = _load_config(args)
    manager = _load_manager(config)
    story = _get_story_or_exit(manager, args.story_id)
    git = config.git

    if git.uses_github and git.create_prs:
        branch = story.branch or branch_name_for_story(story, git.branch_prefix)
        target = pr_target_branch(story, manager.backlog, git)

        if not branch_exists(config.project_dir, branch):
            console.print(f"❌ Branch {escape(branch)} does not exist")
            console.print(f"   Run `ralph story start {escape(story.id)}` first.")
            sys.exit(1)

        if not rebase_onto(config.project_dir, target, branch):
            manager.block_story(story.id, f"Blocked: merge conflict rebasing {branch} onto {target}")
            manager.save()
            console.print(f"❌ Merge conflict rebasing onto {escape(target)} - {escape(story.id)} marked blocked")
            sys.exit(1)

        story.branch = branch
        story.pull_request = create_pull_request(
            config.project_dir, story, branch, target, use_template=git.use_pr_template
        )
        if story.pull_request:
            console.print(f"✅ Opened PR #{story.pull_request} into {escape(target)}")
        else:
            console.print("⚠️  No PR created; the story is still marked as passing")

    story.passes = True
    manager.save()
    console.print(f"✅ {escape(story.id)} passes")


def story_unblock_command(args: argparse.Namespace) -> None:
    """Clear a story's blocked flag."""
    config = _load_config(args)
    manager = _load_manager(config)
    if not manager.unblock_story(args.story_id):
        console.print(f"❌ Story {escape(args.story_id)} not found")
        sys.exit(1)
    manager.save()
    console.print(f"✅ Unblocked {escape(args.story_id)}")


# ---------------------------------------------------------------------------
# misc
# ---------------------------------------------------------------------------

def version_command(args: argparse.Namespace) -> None:
    """Print the installed version."""
    print(f"ralph {__version__}")
