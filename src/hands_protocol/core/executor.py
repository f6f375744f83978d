"""Step-by-step plan execution with a safety re-check before every action."""

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from hands_protocol.core.safety import SafetyBlock, SafetyGate
from hands_protocol.store.models import Plan, Step

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 10000


class StepError(Exception):
    """Base class for step failures recorded in history."""

    kind = "ExecutionFailure"


class ExecutionFailure(StepError):
    """Non-zero exit status or I/O error."""


class ExecutionTimeout(StepError):
    """A command ran past the configured timeout."""

    kind = "ExecutionTimeout"


@dataclass
class ExecutionResult:
    success: bool
    results: list[dict] | None = field(default_factory=list)
    error: str | None = None


class ProcessRunner:
    """Runs shell commands and writes files on behalf of the executor."""

    def run_command(self, command: str, cwd: Path, timeout: float) -> str:
        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise ExecutionTimeout(
                f"Command timed out after {timeout:g}s: {command} "
                "(hint: increase HP_EXEC_TIMEOUT)"
            ) from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
            raise ExecutionFailure(f"Command failed: {detail}") from e
        except OSError as e:
            raise ExecutionFailure(f"Command failed: {e}") from e
        return result.stdout

    def write_file(self, path: Path, content: str, overwrite: bool = False) -> str:
        if path.exists() and not overwrite:
            raise ExecutionFailure(f"File exists and overwrite flag not set: {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ExecutionFailure(f"Failed to write file {path}: {e}") from e
        return str(path)


class PlanExecutor:
    """Executes a plan's steps in order and stops at the first failure."""

    def __init__(
        self,
        safety: SafetyGate,
        runner: ProcessRunner | None = None,
        work_dir: str | Path | None = None,
        timeout: float = 60.0,
    ):
        self.safety = safety
        self.runner = runner or ProcessRunner()
        self.work_dir = Path(work_dir) if work_dir else Path.cwd()
        self.timeout = timeout

    def base_dir(self, plan: Plan) -> Path:
        if plan.working_directory and not plan.execution_forbidden:
            return Path(plan.working_directory).expanduser()
        return self.work_dir

    def execute(self, plan: Plan) -> ExecutionResult:
        if plan.execution_forbidden:
            return ExecutionResult(
                False, [], "SafetyBlock: execution forbidden for this plan's working directory"
            )

        base = self.base_dir(plan)
        results = []
        logger.info("Executing plan %s (%d steps) in %s", plan.plan_id, len(plan.steps), base)

        for step in sorted(plan.steps, key=lambda s: s.step):
            record = {"step": step.step, "action": step.action, "type": step.type}
            try:
                record.update(self._run_step(step, base))
            except (SafetyBlock, StepError) as e:
                return self._fail(plan, step, record, results, e, e.kind)
            except Exception as e:
                logger.exception("Unexpected error in step %s of plan %s", step.step, plan.plan_id)
                return self._fail(plan, step, record, results, e, ExecutionFailure.kind)
            results.append(record)

        return ExecutionResult(True, results)

    def _fail(self, plan, step, record, results, error, kind) -> ExecutionResult:
        record.update(status="failed", error=str(error), errorType=kind)
        results.append(record)
        logger.warning("Plan %s step %s failed (%s): %s", plan.plan_id, step.step, kind, error)
        return ExecutionResult(False, results, f"Step {step.step} failed: {error}")

    def _run_step(self, step: Step, base: Path) -> dict:
        if step.type == "command":
            verdict = self.safety.check_command(step.action)
            if not verdict.safe:
                raise SafetyBlock(f"Blocked by safety policy: {verdict.reason}")
            output = self.runner.run_command(step.action, cwd=base, timeout=self.timeout)
            return {"status": "success", "output": output[:MAX_OUTPUT_CHARS]}

        if step.type == "write":
            if not step.path or step.content is None:
                return {"status": "skipped", "message": "Missing path or content for file operation"}
            verdict = self.safety.check_write(step.path, base=base)
            if not verdict.safe:
                raise SafetyBlock(f"Blocked by safety policy: {verdict.reason}")
            target = Path(step.path).expanduser()
            if not target.is_absolute():
                target = base / target
            written = self.runner.write_file(target, step.content, overwrite=step.overwrite)
            return {"status": "success", "path": written}

        if step.type == "template":
            # template content is delivered for reference at planning time
            return {"status": "success", "message": f"Template {step.template} applied"}

        return {"status": "skipped", "message": f"Unknown step type: {step.type}"}
