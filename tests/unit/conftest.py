"""
In-memory doubles for Google Cloud clients used by unit tests.

These stand in for the Bigtable admin client, the Cloud Storage client and
the Dataflow launcher so the harness lifecycle can be exercised end to end
without network access.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as gcp_exceptions

from launcher.base import JobState, LaunchConfig, LaunchInfo, PipelineLauncher


# ============================================================================
# Bigtable
# ============================================================================


class MockBigtableDirectRow:
    """Collects set_cell calls like ``google.cloud.bigtable.row.DirectRow``."""

    def __init__(self, row_key: bytes):
        self.row_key = row_key
        self.cells: list[tuple[str, bytes, bytes, datetime | None]] = []

    def set_cell(self, column_family_id, column, value, timestamp=None):
        self.cells.append((column_family_id, column, value, timestamp))


class MockBigtableTable:
    """Table handle backed by the owning instance's storage."""

    def __init__(self, instance: "MockBigtableInstance", table_id: str):
        self.instance = instance
        self.table_id = table_id

    def exists(self) -> bool:
        return self.table_id in self.instance.tables

    def create(self, column_families=None):
        if self.exists():
            raise gcp_exceptions.AlreadyExists(f"Table {self.table_id} already exists")
        self.instance.tables[self.table_id] = {
            "families": dict(column_families or {}),
            "rows": {},
        }

    def delete(self):
        if self.instance.fail_table_delete:
            raise gcp_exceptions.ServiceUnavailable("Bigtable is unavailable")
        if not self.exists():
            raise gcp_exceptions.NotFound(f"Table {self.table_id} not found")
        del self.instance.tables[self.table_id]

    def direct_row(self, row_key: bytes) -> MockBigtableDirectRow:
        return MockBigtableDirectRow(row_key)

    def mutate_rows(self, rows):
        statuses = []
        storage = self.instance.tables[self.table_id]
        for row in rows:
            families = storage["rows"].setdefault(row.row_key, {})
            for family, qualifier, value, timestamp in row.cells:
                if family not in storage["families"]:
                    statuses.append(SimpleNamespace(code=5, message=f"Unknown family {family}"))
                    break
                families.setdefault(family, {}).setdefault(qualifier, []).append(
                    (timestamp or datetime.now(UTC), value)
                )
            else:
                statuses.append(SimpleNamespace(code=0, message=""))
        return statuses

    def read_rows(self):
        if not self.exists():
            raise gcp_exceptions.NotFound(f"Table {self.table_id} not found")
        for row_key, families in sorted(self.instance.tables[self.table_id]["rows"].items()):
            yield SimpleNamespace(
                row_key=row_key,
                cells={
                    family: {
                        qualifier: [
                            SimpleNamespace(value=value, timestamp=ts)
                            for ts, value in sorted(versions, key=lambda v: v[0], reverse=True)
                        ]
                        for qualifier, versions in columns.items()
                    }
                    for family, columns in families.items()
                },
            )


class MockBigtableInstance:
    """Instance handle that keeps tables in memory."""

    def __init__(self, instance_id: str, exists: bool = False):
        self.instance_id = instance_id
        self.exists_remotely = exists
        self.tables: dict[str, dict] = {}
        self.clusters: list[SimpleNamespace] = []
        self.fail_table_delete = False
        self.fail_instance_delete = False

    def cluster(self, cluster_id, location_id=None, serve_nodes=None, default_storage_type=None):
        return SimpleNamespace(
            cluster_id=cluster_id,
            location_id=location_id,
            serve_nodes=serve_nodes,
            default_storage_type=default_storage_type,
        )

    def create(self, clusters=None):
        if self.exists_remotely:
            raise gcp_exceptions.AlreadyExists(f"Instance {self.instance_id} already exists")
        self.exists_remotely = True
        self.clusters = list(clusters or [])
        return SimpleNamespace(result=lambda timeout=None: self)

    def delete(self):
        if self.fail_instance_delete:
            raise gcp_exceptions.ServiceUnavailable("Bigtable is unavailable")
        if not self.exists_remotely:
            raise gcp_exceptions.NotFound(f"Instance {self.instance_id} not found")
        self.exists_remotely = False
        self.tables.clear()

    def table(self, table_id: str) -> MockBigtableTable:
        return MockBigtableTable(self, table_id)

    def list_tables(self):
        return [MockBigtableTable(self, table_id) for table_id in self.tables]


class MockBigtableClient:
    """Admin client returning one ``MockBigtableInstance`` per id."""

    def __init__(self):
        self.instances: dict[str, MockBigtableInstance] = {}
        self.instance_calls: list[dict] = []

    def instance(self, instance_id, instance_type=None, labels=None):
        self.instance_calls.append(
            {"instance_id": instance_id, "instance_type": instance_type, "labels": labels}
        )
        if instance_id not in self.instances:
            self.instances[instance_id] = MockBigtableInstance(instance_id)
        return self.instances[instance_id]


# ============================================================================
# Cloud Storage
# ============================================================================


class MockBlob:
    def __init__(self, bucket: "MockBucket", name: str):
        self.bucket = bucket
        self.name = name

    def upload_from_filename(self, filename):
        if self.bucket.fail_uploads:
            raise gcp_exceptions.Forbidden("Permission denied on bucket")
        with open(filename, "rb") as f:
            self.bucket.objects[self.name] = f.read()

    def upload_from_string(self, data):
        if self.bucket.fail_uploads:
            raise gcp_exceptions.Forbidden("Permission denied on bucket")
        self.bucket.objects[self.name] = data.encode() if isinstance(data, str) else data

    def download_as_bytes(self):
        try:
            return self.bucket.objects[self.name]
        except KeyError:
            raise gcp_exceptions.NotFound(f"Object {self.name} not found") from None

    def delete(self):
        if self.name in self.bucket.fail_deletes:
            raise gcp_exceptions.ServiceUnavailable("Storage is unavailable")
        if self.name not in self.bucket.objects:
            raise gcp_exceptions.NotFound(f"Object {self.name} not found")
        del self.bucket.objects[self.name]


class MockBucket:
    def __init__(self, name: str):
        self.name = name
        self.objects: dict[str, bytes] = {}
        self.fail_uploads = False
        self.fail_deletes: set[str] = set()

    def blob(self, name: str) -> MockBlob:
        return MockBlob(self, name)


class MockStorageClient:
    def __init__(self):
        self.buckets: dict[str, MockBucket] = {}

    def bucket(self, name: str) -> MockBucket:
        if name not in self.buckets:
            self.buckets[name] = MockBucket(name)
        return self.buckets[name]

    def list_blobs(self, bucket_name: str, prefix: str = ""):
        if bucket_name not in self.buckets:
            raise gcp_exceptions.NotFound(f"Bucket {bucket_name} not found")
        bucket = self.buckets[bucket_name]
        return [MockBlob(bucket, name) for name in sorted(bucket.objects) if name.startswith(prefix)]


# ============================================================================
# Launcher
# ============================================================================


class MockPipelineLauncher(PipelineLauncher):
    """
    Launcher that replays scripted job states.

    ``states`` is consumed one entry per status check; the last state sticks.
    ``on_launch`` runs when a job is launched, letting tests simulate the
    template's side effects.
    """

    def __init__(
        self,
        states: list[JobState] | None = None,
        launch_state: JobState = JobState.RUNNING,
        on_launch: Callable[[LaunchConfig], None] | None = None,
    ):
        self.states = list(states or [JobState.RUNNING, JobState.DONE])
        self.launch_state = launch_state
        self.on_launch = on_launch
        self.launch_error: Exception | None = None
        self.launched: list[LaunchConfig] = []
        self.current: dict[str, JobState] = {}
        self.cancelled: list[str] = []
        self.drained: list[str] = []
        self.cleanup_calls = 0

    def launch(self, project_id, region, config):
        if self.launch_error is not None:
            raise self.launch_error
        self.launched.append(config)
        job_id = f"job-{len(self.launched)}"
        self.current[job_id] = self.launch_state
        if self.on_launch is not None:
            self.on_launch(config)
        return LaunchInfo(
            job_id=job_id,
            project_id=project_id,
            region=region,
            job_name=config.job_name,
            spec_path=config.spec_path,
            state=self.launch_state,
            create_time=datetime.now(UTC),
            parameters=dict(config.parameters),
        )

    def get_job_status(self, project_id, region, job_id):
        if self.states:
            self.current[job_id] = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return self.current[job_id]

    def get_job_info(self, project_id, region, job_id):
        return {"job_id": job_id, "state": self.current[job_id].value}

    def cancel_job(self, project_id, region, job_id):
        self.cancelled.append(job_id)
        self.states = [JobState.CANCELLING, JobState.CANCELLED]
        self.current[job_id] = JobState.CANCELLING
        return JobState.CANCELLING

    def drain_job(self, project_id, region, job_id):
        self.drained.append(job_id)
        self.states = [JobState.DRAINING, JobState.DRAINED]
        self.current[job_id] = JobState.DRAINING
        return JobState.DRAINING

    def cleanup_all(self):
        self.cleanup_calls += 1
        for job_id, state in self.current.items():
            if not state.is_terminal() and job_id not in self.cancelled:
                self.cancel_job("", "", job_id)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def bigtable_client() -> MockBigtableClient:
    return MockBigtableClient()


@pytest.fixture
def storage_client() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def mock_launcher() -> MockPipelineLauncher:
    return MockPipelineLauncher()


class RecordingSleep:
    """Sleep replacement that records requested delays instead of waiting."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()
