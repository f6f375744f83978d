"""Plan submission surface shared by the CLI, HTTP API and MCP server."""

import logging

from hands_protocol.config import Config
from hands_protocol.core.executor import PlanExecutor
from hands_protocol.core.planner import PlanGenerator
from hands_protocol.core.rules import default_planner_rules, default_safety_rules
from hands_protocol.core.safety import SafetyGate
from hands_protocol.core.templates import TemplateRegistry
from hands_protocol.core.worker import ExecutionWorker
from hands_protocol.integrations.slack import make_notifier
from hands_protocol.integrations.translator import GeminiTranslator
from hands_protocol.store.history import HistoryStore
from hands_protocol.store.models import HistoryEntry, Plan, QueueItem, TemplateMetadata
from hands_protocol.store.queue import QueueStore

logger = logging.getLogger(__name__)


class PlanRejected(Exception):
    """Raised when a plan may not be queued for execution."""


class PlanService:
    def __init__(
        self,
        generator: PlanGenerator,
        queue: QueueStore,
        history: HistoryStore,
        templates: TemplateRegistry,
    ):
        self.generator = generator
        self.queue = queue
        self.history = history
        self.templates = templates

    @classmethod
    def from_config(cls, config: Config) -> "PlanService":
        safety = SafetyGate(default_safety_rules(config.extra_protected_dirs))
        templates = TemplateRegistry(config.templates_dir)
        translator = None
        if config.translator_api_key:
            translator = GeminiTranslator(
                config.translator_api_key,
                model=config.translator_model,
                base_url=config.translator_url,
                timeout=config.translator_timeout,
            )
        generator = PlanGenerator(
            default_planner_rules(),
            safety,
            config.install_root,
            translator=translator,
            templates=templates,
        )
        return cls(
            generator,
            QueueStore(config.queue_dir),
            HistoryStore(config.queue_dir, limit=config.history_limit),
            templates,
        )

    # ── Plans ─────────────────────────────────────────────────────────────

    def parse(self, text: str) -> Plan:
        return self.generator.generate(text)

    def blocking_reasons(self, plan: Plan) -> list[str]:
        """Why a plan must not run; empty when it may be queued."""
        reasons = []
        if plan.execution_forbidden:
            reasons.append("working directory is marked execution-forbidden")
        if plan.has_critical_warning:
            reasons.append("plan carries a critical warning")
        if self.generator.violates_root_protection(plan):
            reasons.append("plan writes into the installation root")
        for step in plan.steps:
            if step.type == "command":
                verdict = self.generator.safety.check_command(step.action)
                if not verdict.safe:
                    reasons.append(f"step {step.step}: {verdict.reason}")
        return reasons

    def submit(self, plan: Plan | dict) -> QueueItem:
        """Queue a plan the operator has confirmed."""
        if isinstance(plan, dict):
            plan = Plan.from_dict(plan)
        reasons = self.blocking_reasons(plan)
        if reasons:
            logger.warning("Rejected plan %s: %s", plan.plan_id, "; ".join(reasons))
            raise PlanRejected(f"Plan {plan.plan_id} is blocked: " + "; ".join(reasons))
        return self.queue.enqueue(plan)

    # ── Queue and history ─────────────────────────────────────────────────

    def list_pending(self) -> list[QueueItem]:
        return self.queue.list_pending()

    def remove_pending(self, plan_id: str) -> bool:
        return self.queue.remove(plan_id)

    def clear_pending(self) -> int:
        return self.queue.clear()

    def list_history(self) -> list[HistoryEntry]:
        return self.history.list()

    def clear_history(self) -> None:
        self.history.clear()

    # ── Templates ─────────────────────────────────────────────────────────

    def list_templates(self) -> list[TemplateMetadata]:
        return self.templates.list_templates()

    def get_template(self, name: str) -> str | None:
        return self.templates.get_content(name)

    def update_template_meta(self, name: str, **fields) -> TemplateMetadata:
        return self.templates.update_metadata(name, **fields)


def build_worker(config: Config) -> ExecutionWorker:
    """Wire an execution worker for the queue described by ``config``."""
    safety = SafetyGate(default_safety_rules(config.extra_protected_dirs))
    executor = PlanExecutor(safety, work_dir=config.work_dir, timeout=config.exec_timeout)
    return ExecutionWorker(
        QueueStore(config.queue_dir),
        HistoryStore(config.queue_dir, limit=config.history_limit),
        executor,
        poll_interval=config.poll_interval,
        notifier=make_notifier(config.slack_bot_token, config.slack_channel),
    )
