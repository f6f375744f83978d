"""Data models for plans, queue items and execution history."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

RISK_LEVELS = ("safe", "caution", "danger")
STEP_TYPES = ("command", "write", "template")
QUEUE_STATUSES = ("pending", "picked_up", "completed", "failed")

# workingDirectory value that marks a plan as forbidden to execute
BLOCKED_WORKDIR = "BLOCKED_ROOT_PROTECTION"
CRITICAL_MARKER = "CRITICAL"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def max_risk(*levels: str) -> str:
    """Return the most severe of the given risk levels."""
    known = [lvl for lvl in levels if lvl in RISK_LEVELS]
    if not known:
        return "safe"
    return max(known, key=RISK_LEVELS.index)


def is_critical(warning: str) -> bool:
    return CRITICAL_MARKER in warning


def _list_field(data: dict, *keys: str) -> list:
    """Value of the first non-empty key among ``keys``; it must be a JSON array."""
    for key in keys:
        value = data.get(key)
        if value is None or value == []:
            continue
        if not isinstance(value, list):
            raise ValueError(f"Field '{key}' must be a list")
        return value
    return []


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"Field '{key}' must be a string")
    return value


@dataclass(frozen=True)
class Step:
    step: int
    type: str
    action: str
    risk: str = "safe"
    template: str | None = None
    path: str | None = None
    content: str | None = None
    overwrite: bool = False

    def to_dict(self) -> dict:
        data = {
            "step": self.step,
            "type": self.type,
            "action": self.action,
            "risk": self.risk,
        }
        if self.template is not None:
            data["template"] = self.template
        if self.path is not None:
            data["path"] = self.path
        if self.content is not None:
            data["content"] = self.content
        if self.overwrite:
            data["overwrite"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Step":
        number = data.get("step", 0)
        if isinstance(number, bool) or not isinstance(number, (int, str)):
            raise ValueError("Field 'step' must be an integer")
        try:
            number = int(number)
        except ValueError:
            raise ValueError(f"Field 'step' must be an integer, got {number!r}") from None
        return cls(
            step=number,
            type=str(data.get("type", "")),
            action=str(data.get("action", "")),
            risk=data.get("risk") if data.get("risk") in RISK_LEVELS else "safe",
            template=_optional_str(data, "template"),
            path=_optional_str(data, "path"),
            content=_optional_str(data, "content"),
            overwrite=bool(data.get("overwrite", False)),
        )


@dataclass(frozen=True)
class Plan:
    plan_id: str
    original_command: str
    steps: tuple[Step, ...] = ()
    templates: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    overall_risk: str = "safe"
    working_directory: str | None = None
    detected_format: str = "natural_language"
    original_input: str = ""
    generated_at: str = field(default_factory=utc_now)

    @property
    def requires_confirmation(self) -> bool:
        # Plans are never auto-executed.
        return True

    @property
    def has_critical_warning(self) -> bool:
        return any(is_critical(w) for w in self.warnings)

    @property
    def execution_forbidden(self) -> bool:
        return self.working_directory == BLOCKED_WORKDIR

    def to_dict(self) -> dict:
        return {
            "planId": self.plan_id,
            "originalCommand": self.original_command,
            "originalInput": self.original_input,
            "detectedFormat": self.detected_format,
            "workingDirectory": self.working_directory,
            "plan": [s.to_dict() for s in self.steps],
            "templates": list(self.templates),
            "warnings": list(self.warnings),
            "overallRisk": self.overall_risk,
            "requiresConfirmation": self.requires_confirmation,
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Plan":
        if not isinstance(data, dict):
            raise ValueError("Plan must be a JSON object")
        if not data.get("planId") or not isinstance(data["planId"], (str, int)):
            raise ValueError("Missing planId")
        raw_steps = _list_field(data, "plan", "steps")
        return cls(
            plan_id=str(data["planId"]),
            original_command=str(data.get("originalCommand", "")),
            original_input=str(data.get("originalInput", "")),
            detected_format=str(data.get("detectedFormat", "natural_language")),
            working_directory=_optional_str(data, "workingDirectory"),
            steps=tuple(Step.from_dict(s) for s in raw_steps if isinstance(s, dict)),
            templates=tuple(str(t) for t in _list_field(data, "templates")),
            warnings=tuple(str(w) for w in _list_field(data, "warnings")),
            overall_risk=(
                data.get("overallRisk") if data.get("overallRisk") in RISK_LEVELS else "safe"
            ),
            generated_at=str(data.get("generatedAt") or utc_now()),
        )


@dataclass
class QueueItem:
    plan: Plan
    status: str = "pending"
    queued_at: str = field(default_factory=utc_now)
    picked_up_at: str | None = None

    @property
    def id(self) -> str:
        return self.plan.plan_id

    def to_dict(self) -> dict:
        data = self.plan.to_dict()
        data["status"] = self.status
        data["queuedAt"] = self.queued_at
        data["pickedUpAt"] = self.picked_up_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "QueueItem":
        status = data.get("status", "pending")
        if status not in QUEUE_STATUSES:
            raise ValueError(f"Unknown queue status: {status!r}")
        return cls(
            plan=Plan.from_dict(data),
            status=status,
            queued_at=data.get("queuedAt") or utc_now(),
            picked_up_at=data.get("pickedUpAt"),
        )

    def picked_up(self) -> "QueueItem":
        return replace(self, status="picked_up", picked_up_at=utc_now())


@dataclass
class HistoryEntry:
    id: str
    original_command: str
    status: str
    result: list[dict] | None = None
    error: str | None = None
    queued_at: str | None = None
    completed_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "originalCommand": self.original_command,
            "status": self.status,
            "result": self.result,
            "error": self.error,
            "queuedAt": self.queued_at,
            "completedAt": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        return cls(
            id=str(data.get("id", "")),
            original_command=str(data.get("originalCommand", "")),
            status=data.get("status", "failed"),
            result=data.get("result"),
            error=data.get("error"),
            queued_at=data.get("queuedAt"),
            completed_at=data.get("completedAt") or utc_now(),
        )


@dataclass
class TemplateMetadata:
    name: str
    comment: str = ""
    score: float | None = None
    quarantined: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "comment": self.comment,
            "score": self.score,
            "quarantined": self.quarantined,
        }
