"""Output manager for harvest runs: timestamped run directories with JSON Lines records."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from harvest.models import ProfileRecord, RunSummary

logger = logging.getLogger(__name__)


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime objects."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


class OutputManager:
    """Output sink: one directory per run holding records.jsonl and the run summary."""

    RECORDS_FILE = "records.jsonl"
    SUMMARY_FILE = "summary.json"
    SUMMARY_TEXT_FILE = "summary.txt"

    def __init__(self, base_output_dir: str = "runs"):
        """Initialize output manager.

        Args:
            base_output_dir: Base directory for all run outputs
        """
        self.base_output_dir = Path(base_output_dir)
        self.base_output_dir.mkdir(parents=True, exist_ok=True)
        self.run_dir: Optional[Path] = None
        self.records_written = 0

    def create_run_directory(self, start_url: str, timestamp: Optional[datetime] = None) -> Path:
        """Create a timestamped directory for this run.

        Args:
            start_url: First listing URL of the run
            timestamp: Optional timestamp (defaults to now)

        Returns:
            Path to the created directory

        Example structure:
            runs/
            └── www.vitals.com/
                ├── 2026-10-19_143022/
                │   ├── records.jsonl
                │   ├── summary.json
                │   └── summary.txt
                └── latest -> 2026-10-19_143022
        """
        if timestamp is None:
            timestamp = datetime.now()

        domain = urlparse(start_url).netloc or "local"
        domain = domain.replace(":", "_").replace("/", "_")

        run_dir = self.base_output_dir / domain / timestamp.strftime("%Y-%m-%d_%H%M%S")
        run_dir.mkdir(parents=True, exist_ok=True)

        self.run_dir = run_dir
        self.records_written = 0
        self._create_latest_link(run_dir)
        logger.info(f"Writing run output to {run_dir}")
        return run_dir

    def _require_run_dir(self) -> Path:
        if self.run_dir is None:
            raise RuntimeError("create_run_directory() must be called before writing output")
        return self.run_dir

    def append(self, record: ProfileRecord) -> None:
        """Append one record as a JSON line."""
        path = self._require_run_dir() / self.RECORDS_FILE
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record.to_dict(), ensure_ascii=False, cls=DateTimeEncoder) + "\n")
        self.records_written += 1

    def save_summary(self, summary: RunSummary, search: Optional[Dict[str, Any]] = None) -> None:
        """Save the run summary as JSON plus a human-readable text file.

        Args:
            summary: Outcome of the run
            search: Search parameters the run was started with
        """
        run_dir = self._require_run_dir()
        data = {"search": search or {}, "finished_at": datetime.now(), **summary.to_dict()}
        self._save_json(run_dir / self.SUMMARY_FILE, data)
        self._save_summary_text(run_dir / self.SUMMARY_TEXT_FILE, summary, search or {})

    def _save_json(self, filepath: Path, data: dict) -> None:
        """Save data as formatted JSON."""
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, cls=DateTimeEncoder)

    def _save_summary_text(self, filepath: Path, summary: RunSummary, search: Dict[str, Any]) -> None:
        with open(filepath, "w", encoding="utf-8") as f:
            f.write("=" * 60 + "\n")
            f.write("HARVEST RUN SUMMARY\n")
            f.write("=" * 60 + "\n\n")

            f.write(f"Finished at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            f.write(f"Result: {'success' if summary.success else 'failure'}\n")
            f.write(f"Message: {summary.message}\n")
            if summary.remediation:
                f.write(f"Hint: {summary.remediation}\n")
            f.write(f"Runtime: {summary.runtime_seconds:.2f}s\n\n")

            if search:
                f.write("SEARCH\n")
                f.write("-" * 60 + "\n")
                for key, value in search.items():
                    f.write(f"{key}: {value}\n")
                f.write("\n")

            f.write("RUN STATISTICS\n")
            f.write("-" * 60 + "\n")
            for key, value in summary.stats.to_dict().items():
                f.write(f"{key}: {value}\n")

            if summary.failed_urls:
                f.write("\nFAILED TARGETS\n")
                f.write("-" * 60 + "\n")
                for i, url in enumerate(summary.failed_urls, 1):
                    f.write(f"{i:3d}. {url}\n")

    def _create_latest_link(self, run_dir: Path) -> None:
        """Create/update 'latest' symlink to this run."""
        latest_link = run_dir.parent / "latest"

        if latest_link.exists() or latest_link.is_symlink():
            latest_link.unlink()

        try:
            latest_link.symlink_to(run_dir.name)
        except (OSError, NotImplementedError):
            # Symlinks might not work on all systems (Windows)
            with open(run_dir.parent / "latest.txt", "w") as f:
                f.write(str(run_dir.name))

    def get_previous_runs(self, domain: str) -> List[Path]:
        """Get run directories for a domain, newest first."""
        domain_dir = self.base_output_dir / domain
        if not domain_dir.exists():
            return []

        run_dirs = [d for d in domain_dir.iterdir() if d.is_dir() and d.name != "latest"]
        return sorted(run_dirs, reverse=True)

    def load_records(self, run_dir: Optional[Path] = None) -> List[Dict[str, Any]]:
        """Read back the records of a run (default: the current one)."""
        path = Path(run_dir or self._require_run_dir()) / self.RECORDS_FILE
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
