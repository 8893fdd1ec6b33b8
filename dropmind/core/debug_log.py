"""
Debug logging for classification decisions and capture sessions.

When DM_DEBUG=1, every classification and every finished capture session is
written as a JSON record into {project_root}/.dropmind/debug/session_<ts>/,
so surprising routing or normalization results can be replayed later.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .types import CaptureResult, ClassificationResult


def is_debug_enabled() -> bool:
    """True when DM_DEBUG=1 is set right now."""
    return os.getenv("DM_DEBUG", "0") == "1"


class DebugLogger:
    """
    Writes one JSON file per logged event into a per-session directory.

    Nothing touches the filesystem unless the logger is enabled.
    """

    def __init__(self, project_root: str = ".", enabled: Optional[bool] = None):
        """
        Args:
            project_root: Directory whose .dropmind/debug folder receives the records
            enabled: Force logging on or off; None follows DM_DEBUG
        """
        self.project_root = project_root
        self.enabled = enabled if enabled is not None else is_debug_enabled()
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.session_dir: Optional[Path] = None

        if self.enabled:
            self.session_dir = Path(self.project_root) / ".dropmind" / "debug" / f"session_{self.session_id}"
            self.session_dir.mkdir(parents=True, exist_ok=True)

    def is_enabled(self) -> bool:
        return self.enabled

    def _write(self, step: str, payload: Dict[str, Any]) -> Optional[Path]:
        if not self.enabled or self.session_dir is None:
            return None

        written_at = datetime.now()
        record = {"timestamp": written_at.isoformat(), "session_id": self.session_id, "step": step, **payload}

        path = self.session_dir / f"{step}_{written_at.strftime('%H%M%S_%f')}.json"
        path.write_text(json.dumps(record, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
        return path

    def log_classification(self, text: str, result: ClassificationResult) -> Optional[Path]:
        """
        Log a classification decision.

        Args:
            text: Input that was classified
            result: The classifier's decision
        """
        return self._write(
            "classification",
            {
                "input": text,
                "input_length": len(text.strip()),
                "intent": result.intent.key,
                "pipeline_id": result.intent.pipeline_id,
                "confidence": result.confidence,
                "level": result.level,
                "reason": result.reason,
            },
        )

    def log_cleaning_trace(self, raw: str, trace: List[Tuple[str, str]]) -> Optional[Path]:
        """Log the text after each normalization stage."""
        return self._write("cleaning_trace", {"raw": raw, "stages": [{"stage": name, "text": text} for name, text in trace]})

    def log_capture_summary(self, result: CaptureResult, restart_count: int) -> Optional[Path]:
        """
        Log a finished capture session.

        Args:
            result: Completion payload of the session
            restart_count: How often the upstream stream had to be restarted
        """
        return self._write(
            "capture_summary",
            {
                "raw": result.raw,
                "cleaned": result.cleaned,
                "chunks": [chunk.model_dump() for chunk in result.chunks],
                "stats": {
                    "chunk_count": len(result.chunks),
                    "duration_seconds": result.duration,
                    "restart_count": restart_count,
                    "raw_length": len(result.raw),
                    "cleaned_length": len(result.cleaned),
                },
            },
        )


_shared: Optional[DebugLogger] = None


def get_debug_logger(project_root: str = ".") -> DebugLogger:
    """
    Shared logger for project_root.

    A new logger (and session directory) is created when the root changes or
    DM_DEBUG is toggled.
    """
    global _shared
    if _shared is None or _shared.project_root != project_root or _shared.enabled != is_debug_enabled():
        _shared = DebugLogger(project_root)
    return _shared
