"""
Logging utilities for fodtrack

Provides console logging with an optional timestamped log file, plus an
append-only markdown log of tracking runs.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional


class FodTrackLogger:
    """Centralized logger for fodtrack runs"""

    def __init__(
        self,
        name: str = "fodtrack",
        log_dir: Optional[str] = None,
        level: int = logging.INFO,
        console: bool = True
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.handlers = []  # Clear existing handlers
        self.log_file: Optional[Path] = None

        detailed_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        simple_formatter = logging.Formatter(
            '%(levelname)s: %(message)s'
        )

        if console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(simple_formatter)
            self.logger.addHandler(console_handler)

        # File handler only when a directory is requested
        if log_dir is not None:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            self.log_file = log_path / f"fodtrack_{timestamp}.log"

            file_handler = logging.FileHandler(self.log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(detailed_formatter)
            self.logger.addHandler(file_handler)

            self.logger.info(f"Logging to: {self.log_file}")

    def get_logger(self) -> logging.Logger:
        """Get the configured logger instance"""
        return self.logger


# Global logger instance
_global_logger: Optional[FodTrackLogger] = None


def get_logger(name: str = "fodtrack", log_dir: Optional[str] = None) -> logging.Logger:
    """Get or create global logger"""
    global _global_logger
    if _global_logger is None:
        _global_logger = FodTrackLogger(name, log_dir=log_dir)
    return _global_logger.get_logger()


def log_decision(
    decision_id: str,
    component: str,
    decision: str,
    rationale: str,
    parameters: dict,
    output_file: str = "tracking_runs/decision_log.md"
):
    """
    Append a tracking-run record to a markdown log

    Args:
        decision_id: Unique identifier for the record
        component: Component/module name
        decision: What was done
        rationale: Context for the run
        parameters: Dictionary of parameters and values
        output_file: Path to the markdown log
    """
    timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    entry = f"""
### [{decision_id}] Tracking Run
**Timestamp**: {timestamp}
**Component**: {component}

**Outcome**: {decision}

**Context**: {rationale}

**Parameters**:
"""
    for key, value in parameters.items():
        entry += f"- {key} = {value}\n"

    entry += "\n---\n"

    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'a', encoding='utf-8') as f:
        f.write(entry)

    logging.getLogger(__name__).info(f"Run logged: {decision_id}")
