from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class PolicyDecision(BaseModel):
    allow: bool
    reason: str | None = None
    member: str = ""  # archive member the manifest came from
    actual: str | None = None
    expected: str | None = None


class InspectionReport(BaseModel):
    path: Path
    members: list[str] = Field(default_factory=list)
    decisions: list[PolicyDecision] = Field(default_factory=list)

    @property
    def accepted(self) -> bool:
        # zero manifest members counts as accepted
        return all(d.allow for d in self.decisions)


class UploadOutcome(BaseModel):
    digest: str
    path: Path
    size: int
    report: InspectionReport
