"""
Abstract base class and data model for pipeline launchers.

This module defines the job state model, the immutable launch configuration
and the handle returned by a launch, plus the interface every launcher
implementation must follow.
"""

from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from resources.base import ResourceManager


class JobState(str, Enum):
    """Dataflow job states, without the ``JOB_STATE_`` prefix."""

    UNKNOWN = "UNKNOWN"
    STOPPED = "STOPPED"
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    CANCELLING = "CANCELLING"
    RESOURCE_CLEANING_UP = "RESOURCE_CLEANING_UP"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    DRAINED = "DRAINED"
    UPDATED = "UPDATED"

    @classmethod
    def parse(cls, value: Any) -> "JobState":
        """Parse an API state (enum or string, with or without prefix)."""
        name = getattr(value, "name", value)
        if not isinstance(name, str):
            return cls.UNKNOWN
        name = name.upper().removeprefix("JOB_STATE_")
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def terminal(cls) -> frozenset["JobState"]:
        return frozenset({cls.DONE, cls.FAILED, cls.CANCELLED, cls.DRAINED, cls.UPDATED})

    @classmethod
    def active(cls) -> frozenset["JobState"]:
        return frozenset({cls.PENDING, cls.QUEUED, cls.RUNNING})

    def is_terminal(self) -> bool:
        return self in JobState.terminal()

    def is_active(self) -> bool:
        return self in JobState.active()


class JobResult(str, Enum):
    """Final outcome of a job that reached a terminal state."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @classmethod
    def from_state(cls, state: JobState) -> "JobResult":
        """
        Map a terminal job state to a result.

        Raises:
            ValueError: If the state is not terminal
        """
        if state in (JobState.DONE, JobState.UPDATED):
            return cls.SUCCEEDED
        if state == JobState.FAILED:
            return cls.FAILED
        if state in (JobState.CANCELLED, JobState.DRAINED):
            return cls.CANCELLED
        raise ValueError(f"Job state {state.value} is not terminal")


@dataclass(frozen=True)
class LaunchConfig:
    """
    Everything needed to launch one template run.

    ``parameters`` keeps insertion order and cannot be modified after the
    config is built. Use ``LaunchConfig.builder`` to assemble one.
    """

    job_name: str
    spec_path: str
    parameters: Mapping[str, str] = field(default_factory=dict)
    environment: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.job_name.strip():
            raise ValueError("job_name cannot be empty")
        if not self.spec_path.startswith("gs://"):
            raise ValueError(f"spec_path must be a gs:// path: {self.spec_path}")
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        object.__setattr__(self, "environment", MappingProxyType(dict(self.environment)))

    @property
    def is_flex_template(self) -> bool:
        """Flex templates are launched from a JSON container spec."""
        return self.spec_path.endswith(".json")

    @classmethod
    def builder(cls, job_name: str, spec_path: str) -> "LaunchConfigBuilder":
        return LaunchConfigBuilder(job_name, spec_path)


class LaunchConfigBuilder:
    """Mutable builder for ``LaunchConfig``."""

    def __init__(self, job_name: str, spec_path: str):
        self.job_name = job_name
        self.spec_path = spec_path
        self._parameters: dict[str, str] = {}
        self._environment: dict[str, Any] = {}

    def add_parameter(self, key: str, value: Any) -> "LaunchConfigBuilder":
        if not key or not key.strip():
            raise ValueError("Parameter name cannot be empty")
        if value is None:
            raise ValueError(f"Parameter {key} cannot be None")
        self._parameters[key] = str(value)
        return self

    def add_environment(self, key: str, value: Any) -> "LaunchConfigBuilder":
        self._environment[key] = value
        return self

    def get_parameter(self, key: str) -> str | None:
        return self._parameters.get(key)

    def build(self) -> LaunchConfig:
        return LaunchConfig(
            job_name=self.job_name,
            spec_path=self.spec_path,
            parameters=self._parameters,
            environment=self._environment,
        )


class LaunchInfo(BaseModel):
    """Handle for a launched job."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(..., min_length=1)
    project_id: str
    region: str
    job_name: str
    spec_path: str
    state: JobState = JobState.UNKNOWN
    create_time: datetime | None = None
    parameters: dict[str, str] = Field(default_factory=dict)


class PipelineLauncher(ResourceManager):
    """
    Abstract base class for pipeline launchers.

    Launchers remember the jobs they started so ``cleanup_all`` can cancel
    any that are still active.
    """

    @abstractmethod
    def launch(self, project_id: str, region: str, config: LaunchConfig) -> LaunchInfo:
        """
        Launch a template run.

        Raises:
            LaunchError: If the service rejects the template or its parameters
        """
        pass

    @abstractmethod
    def get_job_status(self, project_id: str, region: str, job_id: str) -> JobState:
        """Return the current state of a job."""
        pass

    @abstractmethod
    def get_job_info(self, project_id: str, region: str, job_id: str) -> dict[str, Any]:
        """Return a summary of a job (name, state, type, create time...)."""
        pass

    @abstractmethod
    def cancel_job(self, project_id: str, region: str, job_id: str) -> JobState:
        """Request cancellation and return the state reported afterwards."""
        pass

    @abstractmethod
    def drain_job(self, project_id: str, region: str, job_id: str) -> JobState:
        """Request a drain and return the state reported afterwards."""
        pass
