"""last_run files read by scripts/health_check.py."""

from datetime import datetime, timezone
from pathlib import Path


def write_last_run(project_root: Path, job: str, success: bool, message: str = ""):
    """Write logs/last_run_<job>.txt for health check monitoring."""
    last_run_path = Path(project_root) / "logs" / f"last_run_{job}.txt"
    last_run_path.parent.mkdir(parents=True, exist_ok=True)
    status = "SUCCESS" if success else "FAILURE"
    timestamp = datetime.now(timezone.utc).isoformat()
    last_run_path.write_text(f"{status}\n{timestamp}\n{message}\n")


def read_last_run(project_root: Path, job: str) -> tuple[str, datetime, str] | None:
    """(status, timestamp, message) from a last_run file, or None when absent.

    Raises ValueError when the file is malformed.
    """
    last_run_path = Path(project_root) / "logs" / f"last_run_{job}.txt"
    if not last_run_path.exists():
        return None
    lines = last_run_path.read_text().strip().split("\n")
    if len(lines) < 2:
        raise ValueError(f"{last_run_path.name} is malformed")
    message = lines[2].strip() if len(lines) > 2 else ""
    return lines[0].strip(), datetime.fromisoformat(lines[1].strip()), message
