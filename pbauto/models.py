"""Data models delivered to consumers."""

from pydantic import BaseModel, Field


class SequenceInfo(BaseModel):
    """A sequence discovered on the server."""

    id: int = Field(..., description="Server-assigned sequence ID")
    name: str = Field(..., description="Resolved sequence name")

    @classmethod
    def placeholder(cls, seq_id: int) -> "SequenceInfo":
        """Label used for an ID whose name never resolved."""
        return cls(id=seq_id, name=f"Sequence {seq_id}")


class Timecode(BaseModel):
    """Hours, minutes, seconds and frames as reported by the server."""

    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    frames: int = 0

    def __str__(self) -> str:
        return f"{self.hours:02d}:{self.minutes:02d}:{self.seconds:02d}:{self.frames:02d}"

    @property
    def total_seconds(self) -> int:
        """Whole seconds, ignoring frames."""
        return self.hours * 3600 + self.minutes * 60 + self.seconds

    def is_under(self, threshold_seconds: float) -> bool:
        """True when the time is at or below the threshold (remaining-time checks)."""
        return self.total_seconds <= threshold_seconds
