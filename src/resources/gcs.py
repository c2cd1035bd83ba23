"""
Cloud Storage resource manager for staging test artifacts.

Every artifact lives under ``<test_class>/<run_id>/`` in the configured
bucket so parallel runs never overwrite each other, and cleanup only touches
this run's prefix.
"""

import logging
import re
from pathlib import Path

import logfire
from google.api_core import exceptions as gcp_exceptions
from google.auth.credentials import Credentials
from google.cloud import storage

from resources.base import ResourceManager
from utils.exceptions import ArtifactUploadError, CleanupError

logger = logging.getLogger(__name__)


class GcsResourceManager(ResourceManager):
    """Stages artifacts for one test run and deletes them afterwards."""

    def __init__(
        self,
        bucket: str,
        test_class: str,
        run_id: str,
        project_id: str | None = None,
        credentials: Credentials | None = None,
        client: storage.Client | None = None,
    ):
        self.bucket_name = bucket.removeprefix("gs://").rstrip("/")
        self.prefix = f"{test_class}/{run_id}"
        self.client = client or storage.Client(project=project_id, credentials=credentials)
        self._bucket = self.client.bucket(self.bucket_name)

    def _blob_name(self, artifact_name: str) -> str:
        return f"{self.prefix}/{artifact_name.lstrip('/')}"

    def get_path(self, artifact_name: str) -> str:
        """Return the gs:// URI an artifact is (or will be) stored at."""
        return f"gs://{self.bucket_name}/{self._blob_name(artifact_name)}"

    def upload_artifact(self, artifact_name: str, local_path: str | Path) -> str:
        """
        Upload a local file as an artifact.

        Args:
            artifact_name: Path of the artifact relative to this run's prefix
            local_path: File to upload

        Returns:
            The blob name of the uploaded artifact

        Raises:
            ArtifactUploadError: If the file is missing or the upload fails
        """
        local_file = Path(local_path)
        if not local_file.is_file():
            raise ArtifactUploadError(f"Artifact source file not found: {local_path}")

        blob_name = self._blob_name(artifact_name)
        with logfire.span("gcs.upload_artifact", bucket=self.bucket_name, blob=blob_name):
            logger.info(f"Uploading {local_file} to {self.get_path(artifact_name)}")
            try:
                self._bucket.blob(blob_name).upload_from_filename(str(local_file))
            except gcp_exceptions.GoogleAPICallError as e:
                logger.error(f"Failed to upload {local_file}: {e}", exc_info=True)
                raise ArtifactUploadError(f"Failed to upload {artifact_name}: {e}") from e

        return blob_name

    def create_artifact(self, artifact_name: str, contents: bytes | str) -> str:
        """Create an artifact from in-memory contents."""
        blob_name = self._blob_name(artifact_name)
        with logfire.span("gcs.create_artifact", bucket=self.bucket_name, blob=blob_name):
            try:
                self._bucket.blob(blob_name).upload_from_string(contents)
            except gcp_exceptions.GoogleAPICallError as e:
                raise ArtifactUploadError(f"Failed to create {artifact_name}: {e}") from e

        logger.debug(f"Created artifact {self.get_path(artifact_name)}")
        return blob_name

    def list_artifacts(self, sub_prefix: str = "", pattern: str | None = None) -> list[str]:
        """
        List artifact names under this run's prefix.

        Args:
            sub_prefix: Optional path below the run prefix to narrow the listing
            pattern: Optional regex the artifact name must match

        Returns:
            Artifact names relative to the run prefix
        """
        full_prefix = self._blob_name(sub_prefix) if sub_prefix else f"{self.prefix}/"
        regex = re.compile(pattern) if pattern else None

        names = []
        for blob in self.client.list_blobs(self.bucket_name, prefix=full_prefix):
            name = blob.name.removeprefix(f"{self.prefix}/")
            if regex is None or regex.search(name):
                names.append(name)
        return names

    def cleanup_all(self) -> None:
        """
        Delete every blob under this run's prefix.

        Raises:
            CleanupError: If any blob could not be deleted
        """
        errors: list[str] = []

        with logfire.span("gcs.cleanup", bucket=self.bucket_name, prefix=self.prefix):
            try:
                blobs = list(self.client.list_blobs(self.bucket_name, prefix=f"{self.prefix}/"))
            except gcp_exceptions.NotFound:
                logger.debug(f"Bucket {self.bucket_name} no longer exists")
                return
            except gcp_exceptions.GoogleAPICallError as e:
                raise CleanupError(f"Failed to list artifacts under {self.prefix}: {e}") from e

            for blob in blobs:
                try:
                    blob.delete()
                except gcp_exceptions.NotFound:
                    logger.debug(f"Artifact {blob.name} was already deleted")
                except gcp_exceptions.GoogleAPICallError as e:
                    errors.append(f"{blob.name}: {e}")

            if blobs:
                logger.info(f"🗑️  Deleted {len(blobs) - len(errors)} artifact(s) under {self.prefix}")

        if errors:
            raise CleanupError(f"Failed to delete artifacts: {'; '.join(errors)}")

