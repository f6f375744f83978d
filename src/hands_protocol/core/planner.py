"""Directive parsing and execution plan generation.

``PlanGenerator.generate`` never raises: every parse path falls back to the
keyword-driven plan so that any input yields some plan for a human to review.
"""

import json
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from hands_protocol.core import formats
from hands_protocol.core.rules import PlannerRules
from hands_protocol.core.safety import SafetyGate, normalize_path
from hands_protocol.core.templates import TemplateRegistry
from hands_protocol.integrations.translator import TranslationError, Translator
from hands_protocol.store.models import (
    BLOCKED_WORKDIR,
    RISK_LEVELS,
    Plan,
    Step,
    max_risk,
)

logger = logging.getLogger(__name__)

DESTRUCTIVE_WARNING = "CRITICAL: DESTRUCTIVE OPERATION - files may be deleted"
ROOT_BLOCK_WARNING = (
    "CRITICAL: workingDirectory is the Hands Protocol installation root. "
    "Template application and file writes there are blocked."
)
ROOT_REMEDY_WARNING = (
    "Set workingDirectory to a separate project folder and generate the plan again."
)

SHELL_LANGS = {"bash", "sh", "shell", "zsh", "console", "powershell", "ps1", "pwsh", "cmd", "bat"}

_FENCED_BLOCK = re.compile(r"```[ \t]*([A-Za-z0-9_+-]*)[^\n]*\n(.*?)```", re.DOTALL)
_HEADING = re.compile(r"^\s*#{1,6}\s*(.+?)\s*#*\s*$")
_LABELED_WARNING = re.compile(
    r"^\s*(?:[-*>]\s*)*(?:⚠️?\s*)?(?:\*\*)?"
    r"(warning|caution|danger|critical)(?:\*\*)?\s*:\s*(?:\*\*)?\s*(.+?)\s*$",
    re.IGNORECASE,
)
_EMOJI_WARNING = re.compile(r"^\s*(?:[-*>]\s*)*⚠️?\s*(.+?)\s*$")


def new_plan_id() -> str:
    return f"plan_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def assess_risk(text: str, rules: PlannerRules) -> str:
    """Keyword risk scan. Danger keywords win over caution keywords."""
    lower = (text or "").lower()
    if any(k in lower for k in rules.danger_keywords):
        return "danger"
    if any(k in lower for k in rules.caution_keywords):
        return "caution"
    return "safe"


def match_templates(text: str, rules: PlannerRules, excluded=frozenset()) -> list[str]:
    """Templates whose trigger occurs in ``text``, in declaration order."""
    lower = (text or "").lower()
    return [
        name
        for name, triggers in rules.template_triggers
        if name not in excluded and any(t in lower for t in triggers)
    ]


def _dedupe(values) -> list:
    seen = set()
    result = []
    for v in values:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


@dataclass
class _Draft:
    """Directive fields extracted from one input, before validation."""

    description: str = ""
    steps: list = field(default_factory=list)
    templates: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    working_directory: str | None = None

    def merge(self, other: "_Draft") -> None:
        self.steps.extend(other.steps)
        self.templates.extend(other.templates)
        self.warnings.extend(other.warnings)
        self.working_directory = other.working_directory or self.working_directory
        self.description = self.description or other.description


def _draft_from_mapping(data: dict, default_description: str) -> _Draft:
    working_directory = (
        data.get("workingDirectory") or data.get("working_directory") or data.get("cwd")
    )
    return _Draft(
        description=str(
            data.get("description") or data.get("originalCommand") or default_description
        ),
        steps=_as_list(data.get("steps", data.get("plan"))),
        templates=[str(t) for t in _as_list(data.get("templates")) if isinstance(t, str)],
        warnings=[str(w) for w in _as_list(data.get("warnings")) if w is not None],
        working_directory=str(working_directory) if working_directory else None,
    )


def _shell_commands(body: str) -> list[str]:
    """Commands in a shell block: continuations joined, comments dropped."""
    commands = []
    pending = ""
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.endswith("\\"):
            pending += stripped[:-1].strip() + " "
            continue
        stripped = (pending + stripped).strip()
        pending = ""
        if stripped.startswith("$ "):
            stripped = stripped[2:].strip()
        if not stripped or stripped.startswith("#") or stripped.startswith("REM "):
            continue
        commands.append(stripped)
    if pending.strip():
        commands.append(pending.strip())
    return commands


def _markdown_title(text: str) -> str:
    lines = [line for line in text.splitlines() if line.strip()]
    for idx, line in enumerate(lines):
        if "### Directive" in line:
            title = line.split("### Directive", 1)[1].strip(" :-")
            if title:
                return title[:100]
            if idx + 1 < len(lines) and not lines[idx + 1].lstrip().startswith("```"):
                return lines[idx + 1].strip()[:100]
    for line in lines:
        m = _HEADING.match(line)
        if m:
            return m.group(1)[:100]
    return lines[0].strip()[:100] if lines else "Markdown Directive"


def _markdown_warnings(text: str) -> list[str]:
    warnings = []
    in_fence = False
    for line in text.splitlines():
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        m = _LABELED_WARNING.match(line)
        if m:
            label, message = m.group(1).lower(), m.group(2)
            warnings.append(f"CRITICAL: {message}" if label == "critical" else message)
            continue
        m = _EMOJI_WARNING.match(line)
        if m:
            warnings.append(m.group(1))
    return warnings


def _coerce_step(raw) -> dict | None:
    """Normalize one raw step into Step keyword arguments, or None to drop it."""
    if isinstance(raw, str):
        action = raw.strip()
        return {"type": "command", "action": action} if action else None
    if not isinstance(raw, dict):
        return None

    step_type = str(raw.get("type") or "").strip().lower()
    if step_type in ("file", "write_file"):
        step_type = "write"
    elif step_type in ("shell", "bash", "run"):
        step_type = "command"

    path = raw.get("path") or raw.get("file") or raw.get("filePath")
    template = raw.get("template")
    if not step_type:
        step_type = "template" if template else "write" if path else "command"

    action = raw.get("action") or raw.get("command") or raw.get("description") or ""
    if not action:
        if step_type == "write" and path:
            action = f"Write {path}"
        elif step_type == "template":
            action = "Apply template"
    action = str(action).strip()
    if step_type == "command" and not action:
        return None

    content = raw.get("content")
    return {
        "type": step_type,
        "action": action,
        "risk": raw.get("risk"),
        "template": str(template) if template else None,
        "path": str(path) if path else None,
        "content": content if isinstance(content, str) else None,
        "overwrite": bool(raw.get("overwrite", False)),
    }


class PlanGenerator:
    def __init__(
        self,
        rules: PlannerRules,
        safety: SafetyGate,
        install_root: str | Path,
        translator: Translator | None = None,
        templates: TemplateRegistry | None = None,
    ):
        self.rules = rules
        self.safety = safety
        self.install_root = Path(install_root)
        self.translator = translator
        self.templates = templates

    # ── Keyword heuristics ────────────────────────────────────────────────

    def assess_risk(self, text: str) -> str:
        return assess_risk(text, self.rules)

    def _quarantined(self) -> set[str]:
        if self.templates is None:
            return set()
        return self.templates.quarantined_names()

    def match_templates(self, text: str) -> list[str]:
        return match_templates(text, self.rules, excluded=self._quarantined())

    def _keyword_draft(self, command: str) -> _Draft:
        lower = command.lower()
        templates = self.match_templates(command)
        steps = [
            {"type": "template", "action": "Apply template", "template": t, "risk": "safe"}
            for t in templates
        ]
        warnings = []

        if "npm install" in lower or "install dependencies" in lower:
            steps.append({"type": "command", "action": "npm install", "risk": "caution"})
            warnings.append("Will download npm packages")

        if "create" in lower or "new project" in lower or "init" in lower:
            warnings.append("Will create new files/directories")

        if "delete" in lower or "remove" in lower:
            warnings.append(DESTRUCTIVE_WARNING)

        return _Draft(description=command[:100], steps=steps, templates=templates, warnings=warnings)

    def generate_plan(self, command: str) -> Plan:
        """Keyword-driven plan for free text."""
        command = (command or "").strip()
        return self._finalize(self._keyword_draft(command), command, formats.NATURAL_LANGUAGE)

    # ── Per-format extraction ─────────────────────────────────────────────

    def _from_json(self, text: str) -> _Draft:
        data = json.loads(text)
        if isinstance(data, list):
            return _Draft(description="JSON Directive", steps=data)
        if not isinstance(data, dict):
            raise ValueError("JSON directive must be an object or a list of steps")
        return _draft_from_mapping(data, "JSON Directive")

    def _from_yaml(self, text: str) -> _Draft:
        data = next((d for d in yaml.safe_load_all(text) if isinstance(d, dict)), None)
        if data is None:
            raise ValueError("No key/value mapping found")
        return _draft_from_mapping(data, "YAML Directive")

    def _from_markdown(self, text: str) -> _Draft:
        draft = _Draft(description=_markdown_title(text))
        for lang, body in _FENCED_BLOCK.findall(text):
            lang = lang.lower()
            if lang == "json":
                try:
                    data = json.loads(body)
                except json.JSONDecodeError as e:
                    logger.debug("Skipping malformed json block: %s", e)
                    continue
                if isinstance(data, list):
                    data = {"steps": data}
                if isinstance(data, dict):
                    draft.merge(_draft_from_mapping(data, ""))
            elif lang in SHELL_LANGS:
                draft.steps.extend(
                    {"type": "command", "action": c} for c in _shell_commands(body)
                )
        draft.warnings.extend(_markdown_warnings(text))
        return draft

    def _from_translator(self, text: str, translator: Translator | None) -> _Draft | None:
        if translator is None:
            return None
        try:
            directive = translator.translate(text)
        except TranslationError as e:
            logger.warning("Translator unavailable (%s); using keyword plan", e)
            return None
        except Exception:
            logger.exception("Translator failed; using keyword plan")
            return None
        return _Draft(
            description=directive.description or text[:100],
            steps=list(directive.steps),
            templates=list(directive.templates),
            warnings=list(directive.warnings),
            working_directory=directive.working_directory,
        )

    # ── Entry point ───────────────────────────────────────────────────────

    def generate(
        self,
        text: str,
        fmt: str | None = None,
        translator: Translator | None = None,
    ) -> Plan:
        """Turn raw input into a plan. Never raises."""
        trimmed = (text or "").strip()
        fmt = fmt if fmt in formats.FORMATS else formats.detect(trimmed)
        translator = translator or self.translator

        draft = None
        try:
            if fmt == formats.JSON:
                draft = self._from_json(trimmed)
            elif fmt == formats.YAML:
                draft = self._from_yaml(trimmed)
            elif fmt == formats.MARKDOWN:
                draft = self._from_markdown(trimmed)
        except Exception as e:
            logger.info("Could not parse %s directive (%s); treating as natural language", fmt, e)
            fmt = formats.NATURAL_LANGUAGE

        if fmt == formats.NATURAL_LANGUAGE:
            draft = self._from_translator(trimmed, translator)

        if draft is None or not draft.steps:
            keyword = self._keyword_draft(trimmed)
            if draft is not None:
                keyword.templates = draft.templates + keyword.templates
                keyword.warnings = draft.warnings + keyword.warnings
                keyword.working_directory = draft.working_directory
                keyword.description = draft.description or keyword.description
            draft = keyword

        try:
            return self._finalize(draft, trimmed, fmt)
        except Exception:
            logger.exception("Plan assembly failed; using keyword plan")
            return self._finalize(self._keyword_draft(trimmed), trimmed, formats.NATURAL_LANGUAGE)

    # ── Validation and invariants ─────────────────────────────────────────

    def is_install_root(self, working_directory: str | None) -> bool:
        if not working_directory or working_directory == BLOCKED_WORKDIR:
            return False
        root = normalize_path(self.install_root)
        candidates = {normalize_path(working_directory)}
        try:
            candidates.add(normalize_path(Path(working_directory).expanduser().resolve()))
            root_resolved = normalize_path(self.install_root.expanduser().resolve())
        except (OSError, RuntimeError):
            root_resolved = root
        return root in candidates or root_resolved in candidates

    def violates_root_protection(self, plan: Plan) -> bool:
        """True when the plan would apply templates or write files in the install root."""
        writes = plan.templates or any(s.type in ("template", "write") for s in plan.steps)
        return bool(writes) and self.is_install_root(plan.working_directory)

    def _finalize(self, draft: _Draft, text: str, fmt: str) -> Plan:
        excluded = self._quarantined()
        warnings = list(draft.warnings)

        parsed_steps = []
        for raw in draft.steps:
            parsed = _coerce_step(raw)
            if parsed is None:
                continue
            if parsed["type"] == "template" and parsed["template"] in excluded:
                warnings.append(f"Template {parsed['template']} is quarantined and was skipped")
                continue
            parsed_steps.append(parsed)

        steps = []
        for position, parsed in enumerate(parsed_steps, start=1):
            given = parsed.pop("risk")
            if parsed["type"] == "command":
                risk = self.assess_risk(parsed["action"])
            elif given in RISK_LEVELS:
                risk = given
            else:
                risk = "safe" if parsed["type"] == "template" else "caution"
            steps.append(Step(step=position, risk=risk, **parsed))

        templates = _dedupe(
            [t for t in draft.templates if t not in excluded]
            + [s.template for s in steps if s.type == "template" and s.template]
        )

        working_directory = draft.working_directory
        for s in steps:
            if s.type == "command":
                verdict = self.safety.check_command(s.action)
            elif s.type == "write" and s.path:
                verdict = self.safety.check_write(s.path, base=working_directory)
            else:
                continue
            if not verdict.safe:
                warnings.append(f"CRITICAL: step {s.step} is blocked by safety policy: {verdict.reason}")

        writes = templates or any(s.type in ("template", "write") for s in steps)
        if writes and self.is_install_root(working_directory):
            warnings.append(ROOT_BLOCK_WARNING)
            warnings.append(ROOT_REMEDY_WARNING)
            working_directory = BLOCKED_WORKDIR

        return Plan(
            plan_id=new_plan_id(),
            original_command=(draft.description or text[:100] or "(empty directive)"),
            original_input=text,
            detected_format=fmt,
            working_directory=working_directory,
            steps=tuple(steps),
            templates=tuple(templates),
            warnings=tuple(_dedupe(warnings)),
            overall_risk=max_risk(self.assess_risk(text), *(s.risk for s in steps)),
        )
