#!/usr/bin/env python3
# CUI // SP-CTI
"""Workflow execution boundary.

The pipeline never runs playbooks itself. It hands each workflow of a
validation plan to a WorkflowExecutor collaborator:

    await executor.execute(workflow_path, target_hosts)
        -> ExecutionOutcome (or the equivalent dict:
           {"status": "completed"|"failed", "output": str,
            "findings": [{"control", "status": PASS|FAIL|WARN, "message", "evidence"}]})

Workflows run one at a time in registration order. A workflow reporting
"failed" is recorded and the run continues. Transport problems (OSError,
ConnectionError, TimeoutError) abort the run as CollaboratorUnavailableError.

CommandExecutor is a concrete executor that runs an external command per
workflow (by default ansible-playbook) and reads the outcome JSON from its
stdout.
"""

import asyncio
import json
import logging
import uuid
from typing import Dict, List, Optional, Protocol, Sequence, Union

from grctools.compliance.models import (
    ExecutionOutcome,
    ValidationPlan,
    ValidationRun,
    WorkflowResult,
)
from grctools.compliance.oscal_documents import oscal_timestamp
from grctools.resilience.errors import CollaboratorUnavailableError

logger = logging.getLogger("grctools.compliance.workflow_executor")

DEFAULT_COMMAND = ("ansible-playbook", "-i", "{hosts},", "{workflow_path}")


class WorkflowExecutor(Protocol):
    """Anything that can run one workflow against a set of hosts."""

    async def execute(
        self, workflow_path: str, target_hosts: List[str]
    ) -> Union[ExecutionOutcome, Dict]:
        ...


def _as_outcome(raw) -> ExecutionOutcome:
    if isinstance(raw, ExecutionOutcome):
        return raw
    if isinstance(raw, dict):
        return ExecutionOutcome.from_dict(raw)
    raise TypeError(f"Executor returned {type(raw).__name__}, expected an outcome mapping")


async def execute_validation(
    plan: ValidationPlan,
    target_hosts: Sequence[str],
    executor: WorkflowExecutor,
    execution_id: Optional[str] = None,
) -> ValidationRun:
    """Run every workflow in the plan sequentially and collect the outcomes.

    Raises:
        CollaboratorUnavailableError: The executor could not be reached.
    """
    execution_id = execution_id or str(uuid.uuid4())
    hosts = list(target_hosts)
    start = oscal_timestamp()
    results = []

    for wf in plan.workflows:
        logger.info("Executing workflow %s (%s) on %d host(s)", wf.id, wf.path, len(hosts))
        try:
            raw = await executor.execute(wf.path, hosts)
        except CollaboratorUnavailableError:
            raise
        except (ConnectionError, TimeoutError, OSError) as exc:
            raise CollaboratorUnavailableError(
                f"Workflow executor unreachable while running {wf.id}: {exc}",
                service="executor",
            ) from exc

        outcome = _as_outcome(raw)
        if outcome.failed:
            logger.warning("Workflow %s reported failure", wf.id)
        results.append(WorkflowResult(workflow=wf, outcome=outcome, timestamp=oscal_timestamp()))

    run = ValidationRun(
        execution_id=execution_id,
        start_time=start,
        end_time=oscal_timestamp(),
        target_hosts=tuple(hosts),
        results=tuple(results),
    )
    logger.info(
        "Validation run %s finished: %d workflow(s), status %s",
        execution_id, len(results), run.overall_status,
    )
    return run


class CommandExecutor:
    """Run each workflow as an external command.

    The command is built from ``command`` with ``{workflow_path}`` and
    ``{hosts}`` (comma-joined) substituted, and executed without a shell.
    The last stdout line that parses as a JSON object is taken as the
    outcome. A non-zero exit without such a line is a failed outcome.
    """

    def __init__(self, command: Sequence[str] = DEFAULT_COMMAND, timeout: Optional[float] = None,
                 cwd: Optional[str] = None):
        self.command = tuple(command)
        self.timeout = timeout
        self.cwd = cwd

    def build_command(self, workflow_path, target_hosts):
        hosts = ",".join(target_hosts) or "localhost"
        return [part.format(workflow_path=workflow_path, hosts=hosts) for part in self.command]

    async def execute(self, workflow_path, target_hosts):
        cmd = self.build_command(workflow_path, target_hosts)
        logger.debug("Running: %s", " ".join(cmd))
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=self.cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TimeoutError(f"{cmd[0]} timed out after {self.timeout}s")

        text = stdout.decode("utf-8", errors="replace")
        outcome = _parse_outcome(text)
        if outcome is not None:
            return outcome
        status = "completed" if proc.returncode == 0 else "failed"
        output = text.strip() or stderr.decode("utf-8", errors="replace").strip()
        return ExecutionOutcome(status=status, output=output)


def _parse_outcome(text) -> Optional[ExecutionOutcome]:
    for line in reversed(text.strip().splitlines()):
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and "status" in data:
            return ExecutionOutcome.from_dict(data)
    return None
