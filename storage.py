#!/usr/bin/env python3
"""Run directories for headless match batches."""
from __future__ import annotations

import json
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


@dataclass
class RunStore:
    """
    One directory per batch of matches, under ``runs/`` by default:
    - ``meta.json`` with the batch settings and creation time.
    - ``metrics.jsonl``, one record per finished match.
    - ``summary.json`` with the outcome tally, written at the end.
    """

    run_type: str
    root: Path = Path("runs")
    name: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    outcomes: Counter = field(default_factory=Counter, init=False)

    def __post_init__(self) -> None:
        ts = _timestamp()
        self.name = self.name or f"{self.run_type}_{ts}"
        self.dir = (self.root / self.name).resolve()
        self.dir.mkdir(parents=True, exist_ok=True)

        meta = {"run_type": self.run_type, "created_utc": ts, "config": self.config}
        (self.dir / "meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")

        self.metrics_path = self.dir / "metrics.jsonl"
        self._metrics_fh = self.metrics_path.open("a", encoding="utf-8")

    def log(self, record: Dict[str, Any]) -> None:
        if not self._metrics_fh:
            return
        rec = {"ts": time.time(), **record}
        self._metrics_fh.write(json.dumps(rec) + "\n")
        self._metrics_fh.flush()

    def log_match(self, index: int, seed: Optional[int], result: Any) -> None:
        """Record a finished match. `result` is a dataclass with an `outcome` field."""
        self.outcomes[result.outcome] += 1
        self.log({"event": "match_end", "match": index, "seed": seed, **asdict(result)})

    @property
    def matches(self) -> int:
        return sum(self.outcomes.values())

    def write_summary(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        summary = {"matches": self.matches, "outcomes": dict(self.outcomes), **(extra or {})}
        path = self.dir / "summary.json"
        path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        return path

    def close(self) -> None:
        if self._metrics_fh:
            self._metrics_fh.close()
            self._metrics_fh = None

    def __enter__(self) -> "RunStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
