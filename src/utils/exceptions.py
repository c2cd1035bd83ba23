"""
Exception hierarchy for templit.

Each phase of a template integration test has its own failure type so callers
can tell a broken environment (setup) from a rejected job (launch) or a job
that never finished (timeout). Data mismatches are reported as plain
AssertionError so pytest renders them natively.
"""


class TemplateTestError(Exception):
    """Base exception for template integration test operations."""

    pass


class SetupError(TemplateTestError):
    """Provisioning a resource or staging an artifact failed.

    The test aborts before the act phase.
    """

    pass


class ResourceExistsError(SetupError):
    """A resource with the requested id already exists."""

    pass


class ArtifactUploadError(SetupError):
    """Uploading an artifact to the staging bucket failed."""

    pass


class LaunchError(TemplateTestError):
    """The pipeline service rejected the launch request."""

    pass


class PipelineTimeoutError(TemplateTestError):
    """A job did not reach a terminal state within the configured budget."""

    def __init__(self, job_id: str, timeout_seconds: float, last_state: str | None = None):
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds
        self.last_state = last_state
        super().__init__(
            f"Job {job_id} did not reach a terminal state within {timeout_seconds:.0f}s "
            f"(last state: {last_state or 'unknown'})"
        )


class CleanupError(TemplateTestError):
    """Releasing one or more resources failed.

    Only raised by managers themselves; the cleanup helpers log it instead.
    """

    pass
