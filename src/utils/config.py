"""
Configuration module for templit.

This module provides configuration management for running Dataflow template
integration tests against Google Cloud: project and credentials, the Bigtable
instance used for ephemeral tables, pipeline polling budgets and cleanup
policy. It uses Pydantic Settings for validation and python-dotenv for
environment variable loading.

Environment Variables:
- GCP_PROJECT, GCP_REGION, GCP_CREDENTIALS_FILE, GCP_ARTIFACT_BUCKET
- BIGTABLE_STATIC_INSTANCE_ID, BIGTABLE_CLUSTER_ZONE, BIGTABLE_NUM_NODES, ...
- PIPELINE_POLL_INTERVAL_SECONDS, PIPELINE_TIMEOUT_MINUTES
- CLEANUP_FAILURE_POLICY
- TEMPLATE_SPEC_{NAME}: template spec path for the template called NAME
"""

import os
import re
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

BIGTABLE_INSTANCE_ID_PATTERN = re.compile(r"^[a-z][-a-z0-9]{4,31}[a-z0-9]$")


class GcpConfig(BaseSettings):
    """
    Google Cloud project configuration.

    Credentials default to Application Default Credentials; a service account
    key file can be supplied instead.
    """

    model_config = {
        "env_prefix": "GCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    project: str = Field(..., description="Google Cloud project id")
    region: str = Field(default="us-central1", description="Region for pipeline jobs")
    credentials_file: str | None = Field(
        default=None,
        description="Path to a service account key file (None for ADC)",
    )
    artifact_bucket: str | None = Field(
        default=None,
        description="Bucket used to stage test artifacts",
    )

    @field_validator("project")
    @classmethod
    def validate_project(cls, v: str) -> str:
        """Validate Google Cloud project id format."""
        v_clean = v.strip()
        if not v_clean:
            raise ValueError("Project id cannot be empty")
        if not re.match(r"^[a-z][-a-z0-9:.]{4,61}[a-z0-9]$", v_clean):
            raise ValueError(f"Invalid project id: {v}")
        return v_clean

    @field_validator("credentials_file")
    @classmethod
    def validate_credentials_file_exists(cls, v: str | None) -> str | None:
        """Validate that the credentials file exists and is readable."""
        if v is None:
            return None
        from pathlib import Path

        key_path = Path(v).expanduser().resolve()
        if not key_path.is_file():
            raise ValueError(f"Credentials file not found: {v}")
        if not os.access(key_path, os.R_OK):
            raise ValueError(f"Credentials file is not readable: {v}")
        return str(key_path)

    @field_validator("artifact_bucket")
    @classmethod
    def validate_bucket(cls, v: str | None) -> str | None:
        """Accept bucket names with or without the gs:// scheme."""
        if v is None:
            return None
        v_clean = v.strip().removeprefix("gs://").rstrip("/")
        if not v_clean:
            raise ValueError("Artifact bucket cannot be empty if provided")
        if "/" in v_clean:
            raise ValueError(f"Artifact bucket must be a bucket name, not a path: {v}")
        return v_clean


class BigtableConfig(BaseSettings):
    """Configuration for the Bigtable instance backing ephemeral test tables."""

    model_config = {
        "env_prefix": "BIGTABLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    static_instance_id: str | None = Field(
        default=None,
        description="Pre-existing instance to reuse instead of creating one per run",
    )
    cluster_zone: str = Field(default="us-central1-b", description="Zone for the test cluster")
    num_nodes: int = Field(default=1, ge=1, le=30, description="Nodes per test cluster")
    storage_type: Literal["SSD", "HDD"] = Field(default="SSD", description="Cluster storage type")
    table_max_age_hours: int | None = Field(
        default=None,
        ge=1,
        description="Garbage collection max age applied to created column families",
    )

    @field_validator("static_instance_id")
    @classmethod
    def validate_instance_id(cls, v: str | None) -> str | None:
        """Validate Bigtable instance id format."""
        if v is None or not v.strip():
            return None
        v_clean = v.strip()
        if not BIGTABLE_INSTANCE_ID_PATTERN.match(v_clean):
            raise ValueError(f"Invalid Bigtable instance id: {v}")
        return v_clean

    @field_validator("storage_type", mode="before")
    @classmethod
    def normalize_storage_type(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @property
    def use_static_instance(self) -> bool:
        return self.static_instance_id is not None


class OperatorConfig(BaseSettings):
    """Polling budget for waiting on launched jobs."""

    model_config = {
        "env_prefix": "PIPELINE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    poll_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        le=600,
        description="Seconds between job status checks",
    )
    timeout_minutes: float = Field(
        default=30.0,
        gt=0,
        le=24 * 60,
        description="Maximum time to wait for a job to finish",
    )

    @model_validator(mode="after")
    def validate_interval_within_timeout(self):
        """Ensure at least one poll fits in the timeout."""
        if self.poll_interval_seconds > self.timeout_minutes * 60:
            raise ValueError("PIPELINE_POLL_INTERVAL_SECONDS must not exceed the timeout")
        return self


class CleanupConfig(BaseSettings):
    """
    Cleanup failure policy.

    Cleanup never fails a test. The policy only decides how loudly a failed
    release is reported: "warn" logs at WARNING, "ignore" logs at DEBUG.
    """

    model_config = {
        "env_prefix": "CLEANUP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    failure_policy: Literal["warn", "ignore"] = Field(
        default="warn",
        description="How cleanup failures are reported (warn, ignore)",
    )

    @field_validator("failure_policy", mode="before")
    @classmethod
    def normalize_policy(cls, v: Any) -> Any:
        return v.lower().strip() if isinstance(v, str) else v


class LogfireConfig(BaseSettings):
    """
    Logfire observability configuration.

    Enables Logfire tracing of provisioning, launches, polling and cleanup.
    """

    model_config = {
        "env_prefix": "LOGFIRE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    enabled: bool = Field(default=False, description="Enable Logfire observability and tracing")
    token: str | None = Field(default=None, description="Logfire API token for cloud logging")
    service_name: str = Field(default="templit", description="Service name for Logfire")
    environment: str = Field(default="development", description="Environment tag")
    send_to_logfire: bool = Field(default=True, description="Send logs to Logfire cloud")
    console_logging: bool = Field(default=True, description="Keep Rich console logging")
    log_level: str = Field(default="INFO", description="Minimum log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {', '.join(valid_levels)}")
        return v_upper

    @model_validator(mode="after")
    def validate_token_when_enabled(self):
        """Ensure token is provided when Logfire is enabled and sending to cloud."""
        if self.enabled and self.send_to_logfire and not self.token:
            raise ValueError(
                "LOGFIRE_TOKEN is required when LOGFIRE_ENABLED=true and LOGFIRE_SEND_TO_LOGFIRE=true"
            )
        return self


class TemplitConfig(BaseSettings):
    """
    Main configuration class for templit.

    Aggregates the per-concern settings and the registry of template spec
    paths, which is parsed dynamically from TEMPLATE_SPEC_{NAME} variables.
    """

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    gcp: GcpConfig
    bigtable: BigtableConfig = Field(default_factory=BigtableConfig)
    operator: OperatorConfig = Field(default_factory=OperatorConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    logfire: LogfireConfig = Field(default_factory=LogfireConfig)

    template_specs: dict[str, str] = Field(default_factory=dict)

    def __init__(self, **kwargs):
        """Initialize configuration with dynamic parsing of template spec variables."""
        super().__init__(**kwargs)
        self._parse_template_specs(dict(os.environ))

    def _parse_template_specs(self, env_vars: dict[str, str]) -> None:
        pattern = re.compile(r"^TEMPLATE_SPEC_([A-Z0-9_]+)$")
        for key, value in env_vars.items():
            match = pattern.match(key)
            if match and value.strip():
                name = match.group(1).lower().replace("_", "-")
                if not value.strip().startswith("gs://"):
                    raise ValueError(f"{key} must be a gs:// path: {value}")
                self.template_specs.setdefault(name, value.strip())

    @field_validator("template_specs")
    @classmethod
    def validate_spec_paths(cls, v: dict[str, str]) -> dict[str, str]:
        for name, path in v.items():
            if not path.startswith("gs://"):
                raise ValueError(f"Template spec for {name} must be a gs:// path: {path}")
        return v

    def get_template_spec(self, name: str) -> str | None:
        """Get the spec path registered for a template name."""
        return self.template_specs.get(name)

    def validate_configuration(self) -> dict[str, Any]:
        """
        Validate the complete configuration and return a validation summary.

        Returns a dictionary with validation results including any warnings or issues.
        """
        warnings: list[str] = []
        errors: list[str] = []

        results = {
            "valid": True,
            "project": self.gcp.project,
            "region": self.gcp.region,
            "templates_count": len(self.template_specs),
            "static_instance": self.bigtable.static_instance_id,
            "warnings": warnings,
            "errors": errors,
        }

        if not self.gcp.artifact_bucket:
            errors.append("GCP_ARTIFACT_BUCKET is required to stage test artifacts")

        if not self.template_specs:
            warnings.append("No TEMPLATE_SPEC_* variables found; nothing can be launched")

        for name, path in self.template_specs.items():
            if not (path.endswith(".json") or "/templates/" in path):
                warnings.append(
                    f"Template {name} spec path does not look like a classic or flex template: {path}"
                )

        if not self.bigtable.use_static_instance:
            warnings.append(
                "No BIGTABLE_STATIC_INSTANCE_ID set; each run provisions its own instance"
            )

        if errors:
            results["valid"] = False

        return results


def load_config(env_file: str | None = None) -> TemplitConfig:
    """
    Load configuration from environment file.

    Args:
        env_file: Optional path to .env file. Defaults to .env in current directory.

    Returns:
        Configured TemplitConfig instance.

    Raises:
        ValidationError: If configuration is invalid.
        FileNotFoundError: If specified env file doesn't exist.
        ValueError: If GCP_PROJECT is not set.
    """
    from pathlib import Path

    from dotenv import load_dotenv

    if env_file:
        env_path = Path(env_file)
        if not env_path.exists():
            raise FileNotFoundError(f"Environment file not found: {env_file}")
        load_dotenv(env_path)
    else:
        # Optional .env in the working directory
        load_dotenv(Path.cwd() / ".env")

    if not os.getenv("GCP_PROJECT"):
        raise ValueError("GCP_PROJECT environment variable is required")

    return TemplitConfig(gcp=GcpConfig())  # type: ignore[call-arg]
