"""
Pipeline operator: waits on launched jobs.

Polls job state at a fixed interval with a bounded budget using tenacity.
Transient API errors while polling are retried within the same budget.
"""

import logging
import math
import time
from collections.abc import Callable
from datetime import timedelta

import logfire
from google.api_core import exceptions as gcp_exceptions
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from launcher.base import JobResult, JobState, LaunchInfo, PipelineLauncher
from utils.config import OperatorConfig
from utils.exceptions import PipelineTimeoutError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.DeadlineExceeded,
    gcp_exceptions.InternalServerError,
    gcp_exceptions.TooManyRequests,
)


class PollConfig(BaseModel):
    """Which job to wait for and how long."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    region: str
    job_id: str
    poll_interval: timedelta = Field(default=timedelta(seconds=15))
    timeout: timedelta = Field(default=timedelta(minutes=30))

    @classmethod
    def for_job(
        cls, project_id: str, region: str, job_id: str, config: OperatorConfig | None = None
    ) -> "PollConfig":
        """Build a poll config for a job id with the configured interval and timeout."""
        config = config or OperatorConfig()
        return cls(
            project_id=project_id,
            region=region,
            job_id=job_id,
            poll_interval=timedelta(seconds=config.poll_interval_seconds),
            timeout=timedelta(minutes=config.timeout_minutes),
        )

    @classmethod
    def from_launch_info(
        cls, info: LaunchInfo, config: OperatorConfig | None = None
    ) -> "PollConfig":
        return cls.for_job(info.project_id, info.region, info.job_id, config)

    @property
    def max_polls(self) -> int:
        """Upper bound on status checks that fit in the timeout."""
        interval = self.poll_interval.total_seconds()
        if interval <= 0:
            return 1
        return math.floor(self.timeout.total_seconds() / interval) + 1


class PipelineOperator:
    """Blocks until launched jobs reach the state a test needs."""

    def __init__(self, launcher: PipelineLauncher, sleep: Callable[[float], None] = time.sleep):
        self.launcher = launcher
        self._sleep = sleep
        self._last_state: JobState | None = None

    def _poll(self, config: PollConfig, check: Callable[[], bool], description: str) -> None:
        """
        Call ``check`` until it returns True or the budget runs out.

        Raises:
            PipelineTimeoutError: If ``check`` never returned True in time
        """
        retrying = Retrying(
            stop=stop_after_delay(config.timeout.total_seconds())
            | stop_after_attempt(config.max_polls),
            wait=wait_fixed(config.poll_interval.total_seconds()),
            retry=retry_if_result(lambda done: not done)
            | retry_if_exception_type(TRANSIENT_ERRORS),
            sleep=self._sleep,
            before_sleep=lambda state: logger.debug(
                f"Waiting for job {config.job_id} to be {description} "
                f"(attempt {state.attempt_number})"
            ),
        )
        try:
            retrying(check)
        except RetryError as e:
            last_state = self._last_state.value if self._last_state else None
            logger.error(
                f"⏱️  Job {config.job_id} not {description} after "
                f"{config.timeout.total_seconds():.0f}s (last state: {last_state})"
            )
            raise PipelineTimeoutError(
                config.job_id, config.timeout.total_seconds(), last_state
            ) from e

    def _check_state(self, config: PollConfig) -> JobState:
        state = self.launcher.get_job_status(config.project_id, config.region, config.job_id)
        if state != self._last_state:
            logger.info(f"Job {config.job_id} is {state.value}")
        self._last_state = state
        return state

    def wait_until_done(self, config: PollConfig) -> JobResult:
        """
        Wait until the job reaches a terminal state.

        Returns:
            The job result mapped from the terminal state

        Raises:
            PipelineTimeoutError: If the job is still running when the budget runs out
        """
        self._last_state = None
        with logfire.span(
            "operator.wait_until_done",
            job_id=config.job_id,
            timeout_seconds=config.timeout.total_seconds(),
        ) as span:
            self._poll(config, lambda: self._check_state(config).is_terminal(), "done")
            result = JobResult.from_state(self._last_state)  # type: ignore[arg-type]
            span.set_attribute("result", result.value)
            logger.info(f"🏁 Job {config.job_id} finished: {result.value}")
            return result

    def wait_for_condition(self, config: PollConfig, condition: Callable[[], bool]) -> bool:
        """
        Wait until ``condition`` holds while the job is still running.

        Returns:
            True if the condition was met, False if the job reached a terminal
            state first

        Raises:
            PipelineTimeoutError: If neither happened within the budget
        """
        self._last_state = None
        met = False

        def check() -> bool:
            nonlocal met
            if condition():
                met = True
                return True
            return self._check_state(config).is_terminal()

        with logfire.span("operator.wait_for_condition", job_id=config.job_id):
            self._poll(config, check, "ready")

        if not met:
            logger.warning(f"Job {config.job_id} finished before the condition was met")
        return met

    def wait_for_condition_and_finish(
        self, config: PollConfig, condition: Callable[[], bool]
    ) -> JobResult:
        """Wait for ``condition``, then drain the job and wait until it is done."""
        if self.wait_for_condition(config, condition):
            self.launcher.drain_job(config.project_id, config.region, config.job_id)
        return self.wait_until_done(config)

    def cancel_job_and_finish(self, config: PollConfig) -> JobResult:
        """Cancel the job and wait until it reaches a terminal state."""
        self.launcher.cancel_job(config.project_id, config.region, config.job_id)
        return self.wait_until_done(config)
