from __future__ import annotations

import json
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import numpy as np

EVENT_GUESS_LOADED = "guess_loaded"
EVENT_GUESS_REJECTED = "guess_rejected"
EVENT_EVALUATION = "evaluation"
EVENT_ITERATION = "iteration"
EVENT_BUDGET_EXHAUSTED = "budget_exhausted"
EVENT_COMPLETED = "completed"


def _utc_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class NumpyEncoder(json.JSONEncoder):
    def default(self, obj):  # noqa: D102
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, (np.floating, np.integer)):
            return obj.item()
        return super().default(obj)


@dataclass(frozen=True)
class SolveEvent:
    """Structured progress record emitted by the trajectory optimizer."""

    kind: str
    elapsed_s: float
    payload: dict = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "elapsed_s": float(self.elapsed_s), "payload": dict(self.payload)}


ProgressSink = Callable[[SolveEvent], None]


def null_sink(_event: SolveEvent) -> None:
    return None


@dataclass
class SolveLogger:
    """
    Progress sink that records optimizer events and writes them as a JSON log.

    Pass an instance as ``sink`` to the optimizer; call ``save()`` afterwards.
    """

    output_dir: Optional[Path] = None
    run_id: str = ""
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.output_dir is not None:
            self.output_dir = Path(self.output_dir)
        if not self.run_id:
            self.run_id = uuid.uuid4().hex[:8]
        self.log_data: dict[str, Any] = {
            "metadata": {
                "run_id": self.run_id,
                "timestamp": _utc_now(),
                "tags": list(self.tags),
                "schema_version": "v1",
            },
            "config": {},
            "events": [],
            "summary": {},
        }

    def __call__(self, event: SolveEvent) -> None:
        self.log_data["events"].append(event.to_dict())
        if event.kind in (EVENT_COMPLETED, EVENT_GUESS_REJECTED):
            self.log_data["summary"] = dict(event.payload)

    @property
    def events(self) -> list[dict[str, Any]]:
        return self.log_data["events"]

    @property
    def summary(self) -> dict[str, Any]:
        return self.log_data["summary"]

    def log_config(
        self,
        params: dict | None = None,
        constraints: dict | None = None,
        solver: dict | None = None,
    ) -> None:
        payload: dict[str, Any] = {}
        if params is not None:
            payload["params"] = params
        if constraints is not None:
            payload["constraints"] = constraints
        if solver is not None:
            payload["solver"] = solver
        self.log_data["config"] = payload

    def event_counts(self) -> dict[str, int]:
        return dict(Counter(str(e.get("kind")) for e in self.events))

    def costs(self) -> np.ndarray:
        """Objective values reported by evaluation events, in order."""
        vals = [
            float(e["payload"]["cost"])
            for e in self.events
            if e.get("kind") == EVENT_EVALUATION and "cost" in e.get("payload", {})
        ]
        return np.asarray(vals, dtype=float)

    def save(self, filename: str | None = None) -> Path:
        if self.output_dir is None:
            raise ValueError("SolveLogger has no output_dir to save into")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        name = filename or f"{self.run_id}.json"
        path = self.output_dir / name
        path.write_text(json.dumps(self.log_data, indent=2, ensure_ascii=False, cls=NumpyEncoder))
        return path
