"""
Iteration logging for Ralph runs.

Every loop iteration is appended to a date-rotated JSONL file so an
unattended (AFK) run can be reviewed afterwards, including iterations where
the agent crashed.
"""

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

# Characters of agent output kept per log entry
OUTPUT_TAIL_CHARS = 2000


class IterationLogger:
    """
    Logs loop iterations to .ralph/logs/iterations-YYYY-MM-DD.jsonl.

    Each log entry contains:
    - timestamp: ISO format timestamp
    - run_id: UUID shared by every iteration of one `ralph run`
    - iteration / max_iterations
    - duration_ms: Time the agent took
    - completed: Whether the completion sentinel was seen
    - output_tail: Last part of the agent output
    - error: Error message if the agent could not be invoked
    """

    def __init__(self, logs_dir: Path, run_id: Optional[str] = None) -> None:
        """
        Initialize iteration logger.

        Args:
            logs_dir: Directory for log files (usually RalphConfig.logs_dir)
            run_id: Identifier for this run (auto-generated if not provided)
        """
        self.logs_dir = logs_dir
        self.run_id = run_id or str(uuid.uuid4())
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def log_file_path(self, date: Optional[datetime] = None) -> Path:
        """
        Get log file path for a specific date.

        Args:
            date: Date for log file. Defaults to today.
        """
        if date is None:
            date = datetime.now()
        return self.logs_dir / f"iterations-{date.strftime('%Y-%m-%d')}.jsonl"

    def log_iteration(
        self,
        iteration: int,
        max_iterations: int,
        output: str,
        duration_ms: float,
        completed: bool,
        error: Optional[str] = None,
    ) -> None:
        """Append one iteration to today's log file."""
        entry = {
            "timestamp": datetime.now().isoformat(),
            "run_id": self.run_id,
            "iteration": iteration,
            "max_iterations": max_iterations,
            "duration_ms": round(duration_ms, 1),
            "completed": completed,
            "output_tail": output[-OUTPUT_TAIL_CHARS:],
            "error": error,
        }
        with open(self.log_file_path(), "a") as f:
            f.write(json.dumps(entry) + "\n")

    def read_entries(self, date: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Read back the entries for a day (used by status and tests)."""
        path = self.log_file_path(date)
        if not path.exists():
            return []
        entries = []
        with open(path) as f:
            for line in f:
                line = line.strip()
                if line:
                    entries.append(json.loads(line))
        return entries
