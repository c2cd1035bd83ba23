"""
Dataflow template launcher.

Launches classic templates (a template file in Cloud Storage) and flex
templates (a JSON container spec) through the Dataflow v1beta3 API, and
reads or changes job state.
Reference: https://cloud.google.com/dataflow/docs/reference/rest/v1b3/projects.locations.templates
"""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import logfire
from google.api_core import exceptions as gcp_exceptions
from google.auth.credentials import Credentials
from google.cloud import dataflow_v1beta3
from tenacity import Retrying, retry_if_exception_type, retry_if_result, stop_after_attempt, wait_fixed

from launcher.base import JobState, LaunchConfig, LaunchInfo, PipelineLauncher
from launcher.operator import TRANSIENT_ERRORS
from utils.exceptions import CleanupError, LaunchError

logger = logging.getLogger(__name__)

# Status checks after a launch until the job is active
LAUNCH_STATE_POLL_SECONDS = 5
LAUNCH_STATE_MAX_POLLS = 60


class DataflowTemplateClient(PipelineLauncher):
    """Dataflow launcher for classic and flex templates."""

    def __init__(
        self,
        credentials: Credentials | None = None,
        templates_client: Any | None = None,
        flex_templates_client: Any | None = None,
        jobs_client: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the launcher.

        Args:
            credentials: Credentials for the Dataflow API (None for ADC)
            templates_client: Classic templates client override, mainly for tests
            flex_templates_client: Flex templates client override
            jobs_client: Jobs client override
            sleep: Sleep function used while waiting for a launched job
        """
        self._sleep = sleep
        self.templates_client = templates_client or dataflow_v1beta3.TemplatesServiceClient(
            credentials=credentials
        )
        self.flex_templates_client = (
            flex_templates_client
            or dataflow_v1beta3.FlexTemplatesServiceClient(credentials=credentials)
        )
        self.jobs_client = jobs_client or dataflow_v1beta3.JobsV1Beta3Client(
            credentials=credentials
        )
        self.launched_jobs: list[LaunchInfo] = []

    def launch(self, project_id: str, region: str, config: LaunchConfig) -> LaunchInfo:
        """Launch a classic or flex template run."""
        template_type = "flex" if config.is_flex_template else "classic"
        with logfire.span(
            "dataflow.launch",
            job_name=config.job_name,
            spec_path=config.spec_path,
            template_type=template_type,
            project=project_id,
            region=region,
        ) as span:
            logger.info(
                f"🚀 Launching {template_type} template {config.spec_path} as {config.job_name} "
                f"in {project_id}/{region}"
            )
            logger.debug(f"Launch parameters: {dict(config.parameters)}")

            try:
                if config.is_flex_template:
                    job = self._launch_flex(project_id, region, config)
                else:
                    job = self._launch_classic(project_id, region, config)
            except gcp_exceptions.GoogleAPICallError as e:
                logger.error(f"❌ Launch of {config.job_name} rejected: {e}")
                span.set_attribute("error", str(e))
                raise LaunchError(f"Launch of {config.job_name} rejected: {e.message}") from e
            except (ValueError, TypeError) as e:
                # proto-plus rejects unknown environment fields with ValueError
                raise LaunchError(f"Malformed launch request for {config.job_name}: {e}") from e

            if job is None or not job.id:
                raise LaunchError(f"Launch of {config.job_name} returned no job")

            state = JobState.parse(job.current_state)
            try:
                state = self._wait_until_active(project_id, region, job.id, state)
            except gcp_exceptions.GoogleAPICallError as e:
                logger.warning(f"Could not read state of launched job {job.id}: {e}")

            info = LaunchInfo(
                job_id=job.id,
                project_id=project_id,
                region=region,
                job_name=job.name or config.job_name,
                spec_path=config.spec_path,
                state=state,
                create_time=job.create_time or datetime.now(UTC),
                parameters=dict(config.parameters),
            )
            self.launched_jobs.append(info)
            span.set_attribute("job_id", info.job_id)

            logger.info(f"✅ Launched job {info.job_id} (state: {info.state.value})")
            return info

    def _launch_classic(self, project_id: str, region: str, config: LaunchConfig):
        request = dataflow_v1beta3.LaunchTemplateRequest(
            project_id=project_id,
            location=region,
            gcs_path=config.spec_path,
            launch_parameters=dataflow_v1beta3.LaunchTemplateParameters(
                job_name=config.job_name,
                parameters=dict(config.parameters),
                environment=dataflow_v1beta3.RuntimeEnvironment(**config.environment),
            ),
        )
        return self.templates_client.launch_template(request=request).job

    def _launch_flex(self, project_id: str, region: str, config: LaunchConfig):
        request = dataflow_v1beta3.LaunchFlexTemplateRequest(
            project_id=project_id,
            location=region,
            launch_parameter=dataflow_v1beta3.LaunchFlexTemplateParameter(
                job_name=config.job_name,
                container_spec_gcs_path=config.spec_path,
                parameters=dict(config.parameters),
                environment=dataflow_v1beta3.FlexTemplateRuntimeEnvironment(
                    **config.environment
                ),
            ),
        )
        return self.flex_templates_client.launch_flex_template(request=request).job

    def _wait_until_active(
        self, project_id: str, region: str, job_id: str, launched_state: JobState
    ) -> JobState:
        """
        Poll a freshly launched job until it is active or already terminal.

        The launch response does not carry the job state, so the first status
        check happens right away. After ``LAUNCH_STATE_MAX_POLLS`` checks the
        last state seen is returned as is.
        """
        retrying = Retrying(
            stop=stop_after_attempt(LAUNCH_STATE_MAX_POLLS),
            wait=wait_fixed(LAUNCH_STATE_POLL_SECONDS),
            retry=retry_if_result(lambda state: not (state.is_active() or state.is_terminal()))
            | retry_if_exception_type(TRANSIENT_ERRORS),
            sleep=self._sleep,
            retry_error_callback=lambda retry_state: (
                launched_state if retry_state.outcome.failed else retry_state.outcome.result()
            ),
        )
        state = retrying(self.get_job_status, project_id, region, job_id)
        if not (state.is_active() or state.is_terminal()):
            logger.warning(f"Job {job_id} is still {state.value} after launch")
        return state

    def _get_job(self, project_id: str, region: str, job_id: str):
        request = dataflow_v1beta3.GetJobRequest(
            project_id=project_id, location=region, job_id=job_id
        )
        return self.jobs_client.get_job(request=request)

    def get_job_status(self, project_id: str, region: str, job_id: str) -> JobState:
        state = JobState.parse(self._get_job(project_id, region, job_id).current_state)
        logger.debug(f"Job {job_id} state: {state.value}")
        return state

    def get_job_info(self, project_id: str, region: str, job_id: str) -> dict[str, Any]:
        job = self._get_job(project_id, region, job_id)
        return {
            "job_id": job.id,
            "name": job.name,
            "state": JobState.parse(job.current_state).value,
            "type": getattr(job.type_, "name", str(job.type_)),
            "create_time": job.create_time,
            "location": job.location,
        }

    def _request_state(
        self, project_id: str, region: str, job_id: str, requested: str
    ) -> JobState:
        request = dataflow_v1beta3.UpdateJobRequest(
            project_id=project_id,
            location=region,
            job_id=job_id,
            job=dataflow_v1beta3.Job(
                requested_state=dataflow_v1beta3.JobState[f"JOB_STATE_{requested}"]
            ),
        )
        job = self.jobs_client.update_job(request=request)
        return JobState.parse(job.current_state)

    def cancel_job(self, project_id: str, region: str, job_id: str) -> JobState:
        with logfire.span("dataflow.cancel", job_id=job_id):
            logger.info(f"🛑 Cancelling job {job_id}")
            return self._request_state(project_id, region, job_id, "CANCELLED")

    def drain_job(self, project_id: str, region: str, job_id: str) -> JobState:
        with logfire.span("dataflow.drain", job_id=job_id):
            logger.info(f"Draining job {job_id}")
            return self._request_state(project_id, region, job_id, "DRAINED")

    def cleanup_all(self) -> None:
        """
        Cancel every launched job that has not reached a terminal state.

        Raises:
            CleanupError: If any job could not be cancelled
        """
        errors: list[str] = []
        for info in list(self.launched_jobs):
            try:
                state = self.get_job_status(info.project_id, info.region, info.job_id)
                if not state.is_terminal() and state != JobState.CANCELLING:
                    self.cancel_job(info.project_id, info.region, info.job_id)
            except gcp_exceptions.NotFound:
                logger.debug(f"Job {info.job_id} no longer exists")
            except gcp_exceptions.GoogleAPICallError as e:
                errors.append(f"{info.job_id}: {e}")
                continue
            self.launched_jobs.remove(info)

        if errors:
            raise CleanupError(f"Failed to cancel jobs: {'; '.join(errors)}")
