"""Ralph iteration driver.

Runs the external agent over and over until it reports that every story is
done (by printing the completion sentinel) or the iteration budget runs out.
The driver only owns the counter, the sentinel check and the pause between
iterations; picking the story and updating prd.json is the agent's job.
"""

import subprocess
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from ralph_wizard.agents import build_command, get_agent
from ralph_wizard.config import DEFAULT_MAX_ITERATIONS
from ralph_wizard.errors import WorkerError
from ralph_wizard.logs import IterationLogger

console = Console()

COMPLETION_SENTINEL = "<promise>COMPLETE</promise>"

# Pause between iterations (seconds)
ITERATION_DELAY = 3.0

# A worker takes the 1-based iteration number and returns the agent's combined output
Worker = Callable[[int], str]


def contains_completion_sentinel(output: str) -> bool:
    """Exact, case-sensitive substring match anywhere in the output."""
    return COMPLETION_SENTINEL in output


class LoopState(Enum):
    """States of the iteration driver."""

    RUNNING = "running"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"


@dataclass
class LoopResult:
    """Terminal outcome of a run."""

    state: LoopState
    iterations: int

    @property
    def exit_code(self) -> int:
        return 0 if self.state is LoopState.COMPLETED else 1


class IterationDriver:
    """Bounded loop around a worker with a textual completion sentinel.

    The worker may be anything callable - an agent subprocess, an in-process
    function in tests - so the state machine does not depend on how the agent
    is reached.
    """

    def __init__(
        self,
        worker: Worker,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        delay: float = ITERATION_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[IterationLogger] = None,
    ) -> None:
        """Initialize the driver in RUNNING state at iteration 1.

        Args:
            worker: Callable invoked once per iteration
            max_iterations: Maximum number of worker invocations (>= 1)
            delay: Seconds to wait between iterations
            sleep: Sleep function (injectable for tests)
            logger: Optional iteration logger

        Raises:
            ValueError: If max_iterations is less than 1
        """
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        self.worker = worker
        self.max_iterations = max_iterations
        self.delay = delay
        self.sleep = sleep
        self.logger = logger
        self.state = LoopState.RUNNING
        self.iteration = 1

    @property
    def is_terminal(self) -> bool:
        return self.state is not LoopState.RUNNING

    def step(self) -> LoopState:
        """Run one iteration and advance the state machine.

        Returns:
            The new state

        Raises:
            RuntimeError: If the driver already reached a terminal state
        """
        if self.is_terminal:
            raise RuntimeError(f"Driver already finished ({self.state.value})")

        console.print(Panel(
            f"[bold magenta]Iteration {self.iteration} of {self.max_iterations}[/bold magenta]",
            border_style="magenta",
        ))

        started = time.time()
        error: Optional[str] = None
        try:
            output = self.worker(self.iteration)
        except Exception as e:
            # Any worker failure counts as an iteration without the sentinel
            error = str(e) if isinstance(e, WorkerError) else f"{type(e).__name__}: {e}"
            output = ""
            console.print(f"[yellow]⚠️  Agent failed on iteration {self.iteration}: {escape(error)}[/yellow]")
        duration_ms = (time.time() - started) * 1000

        completed = contains_completion_sentinel(output)
        if self.logger:
            self.logger.log_iteration(
                iteration=self.iteration,
                max_iterations=self.max_iterations,
                output=output,
                duration_ms=duration_ms,
                completed=completed,
                error=error,
            )

        if completed:
            self.state = LoopState.COMPLETED
            console.print(Panel(
                f"[bold green]RALPH COMPLETED ALL TASKS![/bold green]\n"
                f"Finished at iteration {self.iteration} of {self.max_iterations}",
                border_style="green",
            ))
        elif self.iteration >= self.max_iterations:
            self.state = LoopState.EXHAUSTED
            console.print(
                f"\n[yellow]Ralph reached max iterations ({self.max_iterations}) without completing.[/yellow]"
            )
            console.print("[dim]Check progress.txt for status.[/dim]")
        else:
            console.print(
                f"\n[dim]Iteration {self.iteration} complete. Continuing in {self.delay:g} seconds...[/dim]"
            )
            self.sleep(self.delay)
            self.iteration += 1

        return self.state

    def run(self) -> LoopResult:
        """Step until COMPLETED or EXHAUSTED."""
        while not self.is_terminal:
            self.step()
        return LoopResult(state=self.state, iterations=self.iteration)


class AgentWorker:
    """Worker that runs the configured agent CLI with the prompt file.

    Output is streamed to the terminal while it is collected, like
    `tee /dev/stderr` in the generated shell script.
    """

    def __init__(self, agent_id: str, prompt_path: Path, cwd: Path) -> None:
        self.agent = get_agent(agent_id)
        self.prompt_path = prompt_path
        self.cwd = cwd

    def __call__(self, iteration: int) -> str:
        try:
            prompt = self.prompt_path.read_text()
        except OSError as e:
            raise WorkerError(f"Cannot read prompt file {self.prompt_path}: {e}")

        argv, stdin_text = build_command(self.agent.id, prompt)
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE if stdin_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                cwd=self.cwd,
            )
        except OSError as e:
            raise WorkerError(f"Could not start {self.agent.name}: {e}")

        if stdin_text is not None and proc.stdin is not None:
            try:
                proc.stdin.write(stdin_text)
                proc.stdin.close()
            except BrokenPipeError:
                # Agent exited before reading the prompt; its output explains why
                pass

        chunks: List[str] = []
        assert proc.stdout is not None
        try:
            for line in proc.stdout:
                sys.stdout.write(line)
                chunks.append(line)
        finally:
            returncode = proc.wait()
        if returncode != 0:
            # Non-zero exits still count as an iteration; the output is checked as usual
            console.print(f"[dim]{self.agent.name} exited with code {returncode}[/dim]")
        return "".join(chunks)
