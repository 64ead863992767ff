from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from typing import List, Optional

PAYLOAD_VERSION = 1
MAX_DIAGNOSTICS = 200


@dataclass
class Candidate:
    """A transaction-like row pulled out of a statement, before classification."""
    date: str                          # YYYY-MM-DD
    description: str
    amount: float                      # +income, -expense
    raw_balance: Optional[float] = None
    line_no: Optional[int] = None


@dataclass
class ExtractionResult:
    candidates: List[Candidate] = field(default_factory=list)
    diagnostics: List[dict] = field(default_factory=list)
    method: str = ""
    dropped_diagnostics: int = 0

    def add_diagnostic(self, line_no: Optional[int], text: str, reason: str) -> None:
        if len(self.diagnostics) >= MAX_DIAGNOSTICS:
            self.dropped_diagnostics += 1
            return
        self.diagnostics.append({"line": line_no, "text": (text or "")[:200], "reason": reason})

    def to_payload(self, source_type: str) -> str:
        return json.dumps(
            {
                "version": PAYLOAD_VERSION,
                "source_type": source_type,
                "method": self.method,
                "candidates": [asdict(c) for c in self.candidates],
                "diagnostics": self.diagnostics,
                "dropped_diagnostics": self.dropped_diagnostics,
            }
        )

    @classmethod
    def from_payload(cls, payload: str) -> "ExtractionResult":
        data = json.loads(payload)
        return cls(
            candidates=[Candidate(**c) for c in data.get("candidates", [])],
            diagnostics=list(data.get("diagnostics", [])),
            method=data.get("method", ""),
            dropped_diagnostics=int(data.get("dropped_diagnostics", 0)),
        )
