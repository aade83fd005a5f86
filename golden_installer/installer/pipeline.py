"""Stage sequencing and per-step failure policies.

Every stage and every sub-step runs through :func:`apply_policy` with an
explicit :class:`StepPolicy`:

    FATAL        the error propagates and aborts the run
    RETRYABLE    retried ``retry_attempts`` times, then propagates
    BEST_EFFORT  logged as a warning, recorded on the context, run continues

There is no rollback. A fatal error leaves the target in whatever state the
failing stage reached.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from golden_installer.domain import InstallContext, StepPolicy
from golden_installer.logging import get_logger, operation_context
from golden_installer.storage.exceptions import InstallerError
from golden_installer.storage.partition_table import settle_udev


log = get_logger(source="pipeline", tags=["pipeline"])

# Failures a policy may absorb; anything else is a bug and always propagates
POLICY_ERRORS = (InstallerError, OSError)


@dataclass(frozen=True)
class Stage:
    """A named pipeline stage and the policy applied to its failure."""

    name: str
    run: Callable[[InstallContext], Any]
    policy: StepPolicy = StepPolicy.FATAL


@dataclass
class PipelineResult:
    ran_stages: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def apply_policy(
    ctx: InstallContext,
    name: str,
    policy: StepPolicy,
    func: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Optional[Any]:
    """Run ``func(*args, **kwargs)`` under ``policy``.

    Returns the callable's result, or None when a BEST_EFFORT step failed.
    """
    if policy is StepPolicy.FATAL:
        return func(*args, **kwargs)

    if policy is StepPolicy.RETRYABLE:
        attempts = ctx.settings.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except POLICY_ERRORS as error:
                if attempt == attempts:
                    log.error(f"{name} failed after {attempts} attempts: {error}")
                    raise
                log.warning(f"{name} failed (attempt {attempt}/{attempts}): {error}")
                time.sleep(ctx.settings.retry_delay_seconds)

    try:
        return func(*args, **kwargs)
    except POLICY_ERRORS as error:
        message = f"{name}: {error}"
        log.warning(f"Ignoring failed step {message}")
        ctx.record_warning(message)
        return None


def settle(seconds: float) -> None:
    """Let udev finish processing events, then wait a fixed delay."""
    settle_udev()
    if seconds > 0:
        time.sleep(seconds)


def run_pipeline(ctx: InstallContext, stages: Sequence[Stage]) -> PipelineResult:
    """Run ``stages`` strictly in order; the first fatal failure propagates."""
    result = PipelineResult()
    for stage in stages:
        with operation_context(stage.name, policy=stage.policy.value):
            apply_policy(ctx, stage.name, stage.policy, stage.run, ctx)
        result.ran_stages.append(stage.name)
    result.warnings = list(ctx.warnings)
    return result
