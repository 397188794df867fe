"""Structured outcomes returned by every orchestration entry point."""
from dataclasses import asdict, dataclass, field

ACCEPTED = "accepted"
ALREADY_SUBMITTED = "already_submitted"
ERROR = "error"


class _Result:
    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class SubmitResult(_Result):
    content_id: str
    outcome: str
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome != ERROR


@dataclass
class ReconcileResult(_Result):
    mode: str = ""
    checked: int = 0
    finished: int = 0
    errored: int = 0
    unchanged: int = 0
    messages: int = 0
    skipped_reason: str = ""


@dataclass
class SweepResult(_Result):
    selected: int = 0
    finished: int = 0
    errored: int = 0
    skipped: int = 0
    skipped_reason: str = ""


@dataclass
class SubtitleRequestResult(_Result):
    success: bool = True
    requested: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.requested) and bool(self.errors)

    @classmethod
    def failure(cls, message: str) -> "SubtitleRequestResult":
        return cls(success=False, errors=[message])


@dataclass
class SubtitleReconcileResult(_Result):
    checked: int = 0
    completed: int = 0
    failed: int = 0
    still_pending: int = 0
    skipped_reason: str = ""


@dataclass
class PurgeResult(_Result):
    purged: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    skipped_reason: str = ""
