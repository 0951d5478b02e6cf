"""Tamper-evident audit logging with HMAC-SHA256 signatures.

Every execution produces one Markdown document: a YAML header holding the
identifying fields and the signature, followed by a body that renders the
full step trace. The signature covers the body only, exactly as persisted,
so verification never re-renders anything.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from cron_claude.errors import (
    CronClaudeError,
    SignatureAbsentError,
    SignatureMismatchError,
    TaskParseError,
)
from cron_claude.frontmatter import render_document, split_document
from cron_claude.keys import SecretKeyManager
from cron_claude.models import ExecutionLog, LogHeader, LogStatus, LogStep
from cron_claude.settings import CronSettings
from cron_claude.storage import LogStore

logger = logging.getLogger(__name__)

LOG_CATEGORY = "cron-task"


def sign_content(content: str, key: bytes) -> str:
    """Hex HMAC-SHA256 of the UTF-8 encoded content."""
    return hmac.new(key, content.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(content: str, signature: str, key: bytes) -> bool:
    expected = sign_content(content, key)
    return hmac.compare_digest(expected, signature.strip().lower())


def _render_step(index: int, step: LogStep) -> str:
    lines = [f"### Step {index}: {step.action}", f"**Time:** {step.timestamp}"]
    if step.output:
        lines.extend(["", "**Output:**", "```", step.output, "```"])
    if step.error:
        lines.extend(["", "**Error:**", "```", step.error, "```"])
    return "\n".join(lines)


def render_log_body(log: ExecutionLog) -> str:
    """Human-readable body of a log; this exact text is what gets signed."""
    steps = "\n\n".join(_render_step(i, step) for i, step in enumerate(log.steps, 1))
    return (
        f"# Task Execution Log: {log.task_id}\n"
        f"\n"
        f"**Execution ID:** {log.execution_id}\n"
        f"**Status:** {log.status.value}\n"
        f"**Started:** {log.timestamp}\n"
        f"\n"
        f"## Execution Steps\n"
        f"\n"
        f"{steps}\n"
        f"\n"
        f"## Summary\n"
        f"Total steps: {len(log.steps)}\n"
        f"Status: {log.status.value}\n"
    )


@dataclass
class VerificationResult:
    valid: bool
    log: Optional[ExecutionLog] = None
    error: Optional[str] = None
    # SignatureAbsentError / SignatureMismatchError / TaskParseError, when invalid
    error_type: Optional[type] = None


class AuditLogger:
    """Builds, signs, persists and verifies execution logs."""

    def __init__(
        self,
        settings: CronSettings,
        key_manager: Optional[SecretKeyManager] = None,
        store: Optional[LogStore] = None,
    ):
        self.key_manager = key_manager or SecretKeyManager(settings)
        self.store = store or LogStore(settings.logs_dir)

    def create_log(self, task_id: str) -> ExecutionLog:
        return ExecutionLog(task_id=task_id)

    @staticmethod
    def add_step(
        log: ExecutionLog,
        action: str,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> LogStep:
        if log.is_final:
            raise CronClaudeError(
                f"Execution log {log.execution_id} is already finalized"
            )
        step = LogStep(action=action, output=output, error=error)
        log.steps.append(step)
        return step

    def render(self, log: ExecutionLog) -> str:
        """Sign the log and return the full document (header + body)."""
        body = render_log_body(log)
        signature = sign_content(body, self.key_manager.get_key())
        log.signature = signature
        header = {
            "category": LOG_CATEGORY,
            "taskId": log.task_id,
            "executionId": log.execution_id,
            "timestamp": log.timestamp,
            "status": log.status.value,
            "signature": signature,
        }
        return render_document(header, body)

    def finalize(self, log: ExecutionLog, success: bool) -> Path:
        """Set the terminal status, sign, and persist. Returns the log path."""
        if log.is_final:
            raise CronClaudeError(
                f"Execution log {log.execution_id} is already finalized"
            )
        log.status = LogStatus.SUCCESS if success else LogStatus.FAILURE
        document = self.render(log)
        path = self.store.save(document, log.task_id, log.execution_id)
        logger.info(
            f"Logged execution {log.execution_id} ({log.status.value}) to {path}"
        )
        return path

    def verify(self, document: str) -> VerificationResult:
        """Check a persisted document's signature against the installation key."""
        try:
            header_data, body = split_document(document, "log document")
            header = LogHeader.model_validate(header_data)
        except TaskParseError as e:
            return VerificationResult(valid=False, error=str(e), error_type=TaskParseError)
        except ValidationError as e:
            error = TaskParseError("log document", str(e))
            return VerificationResult(valid=False, error=str(error), error_type=TaskParseError)

        if not header.signature:
            return VerificationResult(
                valid=False,
                error=str(SignatureAbsentError()),
                error_type=SignatureAbsentError,
            )

        if not verify_signature(body, str(header.signature), self.key_manager.get_key()):
            logger.warning(
                f"Signature mismatch for execution {header.execution_id} of task {header.task_id}"
            )
            return VerificationResult(
                valid=False,
                error=str(SignatureMismatchError()),
                error_type=SignatureMismatchError,
            )

        return VerificationResult(
            valid=True,
            log=ExecutionLog(
                task_id=header.task_id,
                execution_id=header.execution_id,
                timestamp=header.timestamp,
                status=header.status,
                signature=header.signature,
            ),
        )

    def verify_file(self, path) -> VerificationResult:
        return self.verify(self.store.read(path))
