"""Text templates for the files Ralph writes: loop script, agent prompt, plists."""

from datetime import datetime
from pathlib import Path
from typing import Tuple

from ralph_wizard.agents import get_agent
from ralph_wizard.config import GitSettings, prompt_filename
from ralph_wizard.loop import COMPLETION_SENTINEL, ITERATION_DELAY

BANNER_LINES = (
    "╦═╗╔═╗╦  ╔═╗╦ ╦  ╦ ╦╦╔═╗╔═╗╦ ╦╔╦╗",
    "╠╦╝╠═╣║  ╠═╝╠═╣  ║║║║║ ╦║ ╦║ ║║║║",
    "╩╚═╩ ╩╩═╝╩  ╩ ╩  ╚╩╝╩╚═╝╚═╝╚═╝╩ ╩",
)

LAUNCHD_PATH = "/opt/homebrew/bin:/usr/local/bin:/usr/bin:/bin"

# Keep the machine awake for four hours around the nightly run
CAFFEINATE_SECONDS = 14400


def _agent_invocation(agent_id: str) -> str:
    spec = get_agent(agent_id)
    if spec.id == "claude":
        return f'OUTPUT=$({spec.command} {spec.dangerous_flag} --print < "$PROMPT_FILE" 2>&1 | tee /dev/stderr) || true'
    return (
        f'OUTPUT=$({spec.command} {spec.dangerous_flag} {spec.prompt_flag} "$(cat "$PROMPT_FILE")" '
        f'2>&1 | tee /dev/stderr) || true'
    )


def loop_script(agent_id: str, max_iterations: int) -> str:
    """Bash loop run inside the sandbox by `ralph run`.

    Mirrors IterationDriver: run the agent, stop on the completion sentinel,
    otherwise pause and continue; exit 1 when iterations run out.
    """
    spec = get_agent(agent_id)
    banner = "\n".join(f'echo "{line}"' for line in BANNER_LINES)
    return f"""#!/bin/bash
# Ralph Wiggum - Autonomous AI Coding Agent Loop
# Generated by ralph CLI
# Agent: {spec.name}

set -e

SCRIPT_DIR="$(cd "$(dirname "${{BASH_SOURCE[0]}}")" && pwd)"
PRD_FILE="$SCRIPT_DIR/prd.json"
PROGRESS_FILE="$SCRIPT_DIR/progress.txt"
PROMPT_FILE="$SCRIPT_DIR/{prompt_filename(agent_id)}"
MAX_ITERATIONS=${{1:-{max_iterations}}}

echo ""
{banner}
echo ""
echo "Agent: {spec.name}"
echo "Max iterations: $MAX_ITERATIONS"
echo "Started: $(date)"
echo ""

for i in $(seq 1 $MAX_ITERATIONS); do
  echo ""
  echo "═══════════════════════════════════════════════════════"
  echo "  Iteration $i of $MAX_ITERATIONS"
  echo "═══════════════════════════════════════════════════════"
  echo ""

  {_agent_invocation(agent_id)}

  if echo "$OUTPUT" | grep -qF "{COMPLETION_SENTINEL}"; then
    echo ""
    echo "════════════════════════════════════════════════════"
    echo "  RALPH COMPLETED ALL TASKS!"
    echo "  Finished at iteration $i of $MAX_ITERATIONS"
    echo "════════════════════════════════════════════════════"
    exit 0
  fi

  if [ "$i" -lt "$MAX_ITERATIONS" ]; then
    echo ""
    echo "Iteration $i complete. Continuing in {ITERATION_DELAY:g} seconds..."
    sleep {ITERATION_DELAY:g}
  fi
done

echo ""
echo "Ralph reached max iterations ($MAX_ITERATIONS) without completing."
echo "Check progress.txt for status."
exit 1
"""


def _git_workflow_section(git: GitSettings) -> str:
    if not git.uses_github:
        return """## Git Workflow

- Work on the branch named in the PRD `branchName`. Create it from main if needed.
- Commit with: `feat: [Story ID] - [Story Title]`
"""

    lines = [
        "## Git Workflow",
        "",
        "Each story gets its own branch.",
        "",
        "- Before implementing, run `ralph story start <Story ID>`. It creates the story branch"
        " (from main, or from the branch of the story's last dependency) and records it in prd.json.",
        "- Commit with: `feat: [Story ID] - [Story Title]`",
    ]
    if git.create_prs:
        lines.append(
            "- When quality checks pass, run `ralph story finish <Story ID>`. It rebases the branch,"
            " opens a pull request, and sets `passes: true`. Do not edit `passes` yourself."
        )
        lines.append(
            "- If `ralph story finish` reports a merge conflict, the story is marked `blocked`."
            " Leave it and end the iteration."
        )
    else:
        lines.append(
            "- When quality checks pass, run `ralph story finish <Story ID>` to mark the story as passing."
        )
    if git.wait_for_merge:
        lines.append("- Do not start a story whose dependencies have open, unmerged pull requests.")
    if git.use_xgit:
        lines.append("- `xgit` is available; prefer it for commits.")
    return "\n".join(lines) + "\n"


def agent_prompt(agent_id: str, git: GitSettings) -> str:
    """Instructions the agent reads at the start of every iteration."""
    return f"""## Your Task

You are Ralph, an autonomous AI coding agent. Follow these steps precisely:

1. **Read the PRD** at `.ralph/prd.json`
2. **Read progress.txt** at `.ralph/progress.txt` - check Codebase Patterns section first
3. **Pick ONE story** - run `ralph next`, or choose by hand: among stories with `passes: false`
   and `blocked: false` whose `dependsOn` stories all have `passes: true`, take the lowest
   `priority` number (ties: first in the list)
4. **Implement** that single user story completely
5. **Run quality checks** - typecheck, lint, test (whatever the project uses)
6. **Commit** if checks pass
7. **Update prd.json** - set `passes: true` for the completed story (`ralph story finish` does this for you)
8. **Append to progress.txt** using the format below

If you cannot make progress on a story (for example an unresolved merge conflict), set
`blocked: true`, explain why in `notes`, and end the iteration.

{_git_workflow_section(git)}
## Progress Report Format

APPEND to .ralph/progress.txt (never replace, always append):

```
## [Date/Time] - [Story ID]
- What was implemented
- Files changed
- **Learnings for future iterations:**
  - Patterns discovered
  - Gotchas encountered
  - Useful context
---
```

## Consolidate Patterns

If you discover a reusable pattern, add it to the `## Codebase Patterns` section at the TOP of progress.txt:

```
## Codebase Patterns
- Pattern: description
- Pattern: description
```

## Quality Requirements

- ALL commits must pass quality checks (typecheck, lint, test)
- Do NOT commit broken code
- Keep changes focused and minimal
- Follow existing code patterns
- Small, atomic commits

## Stop Condition

After completing a user story, check whether every story that is not `blocked` has `passes: true`.

If ALL of them are complete: output `{COMPLETION_SENTINEL}`

If stories remain with `passes: false`: end normally (next iteration will continue)

## Important Rules

- Work on ONE story per iteration
- Commit frequently
- Keep CI green
- Read Codebase Patterns before starting
- Each iteration is fresh context - progress.txt is your memory
"""


def progress_header(started: datetime) -> str:
    """Initial content of progress.txt."""
    return f"""## Codebase Patterns
(Patterns discovered during implementation will be added here)

---

# Ralph Progress Log
Started: {started.isoformat()}

---
"""


def compound_prompt() -> str:
    """Prompt for `ralph compound`."""
    return """You are reviewing recent work to extract learnings.

1. Look at the git log for recent commits in the last 24 hours
2. Review what was implemented and any patterns discovered
3. Update .ralph/progress.txt with any new patterns in the "## Codebase Patterns" section
4. If there are project-level CLAUDE.md or AGENTS.md files, update them with relevant learnings

Focus on:
- Patterns that help future work go faster
- Gotchas to avoid
- File locations and conventions discovered
- API patterns or quirks

Commit any changes with: "chore: compound learnings from recent sessions"
"""


def compound_script(project_dir: Path) -> str:
    """Wrapper launchd runs for the nightly compound review."""
    return f"""#!/bin/bash
# Compound Review - Extract learnings from recent sessions
cd "{project_dir}"
ralph compound
"""


def schedule_times(hour: int, minute: int) -> Tuple[Tuple[int, int], Tuple[int, int], int]:
    """Times for the nightly jobs.

    The run starts 30 minutes after the compound review (wrapping into the
    next hour) and caffeinate starts an hour before, never earlier than 0:00.

    Returns:
        ((compound_hour, compound_minute), (run_hour, run_minute), caffeinate_hour)
    """
    run_total = hour * 60 + minute + 30
    run_time = ((run_total // 60) % 24, run_total % 60)
    return (hour, minute), run_time, max(0, hour - 1)


def launchd_plist(label: str, script_path: Path, work_dir: Path, hour: int, minute: int, kind: str) -> str:
    """launchd job that runs a script daily at hour:minute."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
  <key>Label</key>
  <string>{label}</string>

  <key>ProgramArguments</key>
  <array>
    <string>{script_path}</string>
  </array>

  <key>WorkingDirectory</key>
  <string>{work_dir}</string>

  <key>StartCalendarInterval</key>
  <dict>
    <key>Hour</key>
    <integer>{hour}</integer>
    <key>Minute</key>
    <integer>{minute}</integer>
  </dict>

  <key>StandardOutPath</key>
  <string>{work_dir}/logs/ralph-{kind}.log</string>

  <key>StandardErrorPath</key>
  <string>{work_dir}/logs/ralph-{kind}.log</string>

  <key>EnvironmentVariables</key>
  <dict>
    <key>PATH</key>
    <string>{LAUNCHD_PATH}</string>
  </dict>
</dict>
</plist>"""


def caffeinate_plist(label: str, start_hour: int) -> str:
    """launchd job keeping the Mac awake during the nightly run."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
  <key>Label</key>
  <string>{label}</string>
  <key>ProgramArguments</key>
  <array>
    <string>/usr/bin/caffeinate</string>
    <string>-i</string>
    <string>-t</string>
    <string>{CAFFEINATE_SECONDS}</string>
  </array>
  <key>StartCalendarInterval</key>
  <dict>
    <key>Hour</key>
    <integer>{start_hour}</integer>
    <key>Minute</key>
    <integer>0</integer>
  </dict>
</dict>
</plist>"""
