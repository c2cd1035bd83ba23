"""
Bigtable resource manager for template integration tests.

Provisions an instance (or reuses a static one), creates uniquely named
tables with the requested column families, writes and reads rows, and
deletes everything it created on cleanup.

Usage:
    manager = BigtableResourceManager(test_id="testAvroToBigtable", project_id="my-project")
    table_id = generate_table_id("testAvroToBigtable")
    manager.create_table(table_id, ["family1", "family2"])
    rows = manager.read_table(table_id)
    manager.cleanup_all()
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import logfire
from google.api_core import exceptions as gcp_exceptions
from google.auth.credentials import Credentials
from google.cloud import bigtable
from google.cloud.bigtable import column_family, enums

from resources.base import ResourceManager
from utils.config import BigtableConfig
from utils.exceptions import CleanupError, ResourceExistsError, SetupError
from utils.resource_utils import generate_cluster_id, generate_instance_id

logger = logging.getLogger(__name__)

INSTANCE_CREATE_TIMEOUT_SECONDS = 600


@dataclass(frozen=True)
class BigtableCellWrite:
    """A single cell to write through ``BigtableResourceManager.write``."""

    row_key: bytes | str
    family: str
    qualifier: bytes | str
    value: bytes | str
    timestamp_micros: int | None = None


@dataclass
class BigtableRow:
    """
    A row read back from a table.

    Attributes:
        key: Row key bytes
        cells: family -> qualifier -> values, newest version first
    """

    key: bytes
    cells: dict[str, dict[bytes, list[bytes]]] = field(default_factory=dict)

    def records(self, family: str) -> list[dict[bytes, bytes]]:
        """Return one ``{qualifier: value}`` record per cell version in ``family``."""
        return [
            {qualifier: value}
            for qualifier, values in self.cells.get(family, {}).items()
            for value in values
        ]

    def latest(self, family: str, qualifier: bytes | str) -> bytes | None:
        """Return the newest value of a column, or None if absent."""
        if isinstance(qualifier, str):
            qualifier = qualifier.encode()
        values = self.cells.get(family, {}).get(qualifier)
        return values[0] if values else None


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode() if isinstance(value, str) else value


class BigtableResourceManager(ResourceManager):
    """
    Manages Bigtable resources for one test run.

    When ``BigtableConfig.static_instance_id`` is set, tables are created in
    that instance and the instance itself is never deleted. Otherwise an
    instance is created lazily on first table creation and deleted by
    ``cleanup_all``.
    """

    def __init__(
        self,
        test_id: str,
        project_id: str,
        credentials: Credentials | None = None,
        config: BigtableConfig | None = None,
        client: bigtable.Client | None = None,
    ):
        """
        Initialize the resource manager.

        Args:
            test_id: Test name used to derive the instance id
            project_id: Project owning the instance
            credentials: Credentials for the admin client (None for ADC)
            config: Instance settings; loaded from the environment if omitted
            client: Pre-built client, mainly for tests
        """
        self.project_id = project_id
        self.config = config or BigtableConfig()
        self.client = client or bigtable.Client(
            project=project_id, credentials=credentials, admin=True
        )

        if self.config.static_instance_id:
            self.instance_id = self.config.static_instance_id
            self.uses_static_instance = True
        else:
            self.instance_id = generate_instance_id(test_id)
            self.uses_static_instance = False

        self.cluster_id = generate_cluster_id(self.instance_id)
        self._instance = self.client.instance(
            self.instance_id,
            instance_type=enums.Instance.Type.PRODUCTION,
            labels={"created-by": "templit"},
        )
        self._has_instance = self.uses_static_instance
        self._created_tables: list[str] = []

    def get_instance_id(self) -> str:
        return self.instance_id

    @property
    def created_tables(self) -> list[str]:
        return list(self._created_tables)

    def _ensure_instance(self) -> None:
        """Create the per-run instance if it does not exist yet."""
        if self._has_instance:
            return

        with logfire.span(
            "bigtable.instance.create",
            instance_id=self.instance_id,
            zone=self.config.cluster_zone,
            num_nodes=self.config.num_nodes,
        ):
            logger.info(
                f"Creating Bigtable instance {self.instance_id} in {self.config.cluster_zone} "
                f"({self.config.num_nodes} node(s), {self.config.storage_type})"
            )
            storage_type = (
                enums.StorageType.SSD
                if self.config.storage_type == "SSD"
                else enums.StorageType.HDD
            )
            cluster = self._instance.cluster(
                self.cluster_id,
                location_id=self.config.cluster_zone,
                serve_nodes=self.config.num_nodes,
                default_storage_type=storage_type,
            )
            try:
                operation = self._instance.create(clusters=[cluster])
                operation.result(timeout=INSTANCE_CREATE_TIMEOUT_SECONDS)
            except gcp_exceptions.AlreadyExists as e:
                raise ResourceExistsError(
                    f"Bigtable instance {self.instance_id} already exists"
                ) from e
            except gcp_exceptions.GoogleAPICallError as e:
                logger.error(f"Failed to create instance {self.instance_id}: {e}", exc_info=True)
                raise SetupError(f"Failed to create instance {self.instance_id}: {e}") from e

            self._has_instance = True
            logger.info(f"✅ Bigtable instance {self.instance_id} created")

    def create_table(
        self,
        table_id: str,
        column_families: Iterable[str],
        max_age: timedelta | None = None,
    ) -> None:
        """
        Create a table with the given column families.

        Args:
            table_id: Unique table id, usually from ``generate_table_id``
            column_families: Column family names; at least one is required
            max_age: Optional garbage collection age for every family.
                Defaults to ``BigtableConfig.table_max_age_hours`` when set.

        Raises:
            ValueError: If no column families are given
            ResourceExistsError: If the table already exists
            SetupError: If the admin API rejects the request
        """
        families = list(dict.fromkeys(column_families))
        if not families:
            raise ValueError("There must be at least one column family specified")

        if max_age is None and self.config.table_max_age_hours:
            max_age = timedelta(hours=self.config.table_max_age_hours)
        gc_rule = column_family.MaxAgeGCRule(max_age) if max_age else None

        self._ensure_instance()

        with logfire.span(
            "bigtable.table.create",
            instance_id=self.instance_id,
            table_id=table_id,
            column_families=families,
        ):
            table = self._instance.table(table_id)
            try:
                if table.exists():
                    raise ResourceExistsError(
                        f"Table {table_id} already exists in instance {self.instance_id}"
                    )
                table.create(column_families={name: gc_rule for name in families})
            except gcp_exceptions.AlreadyExists as e:
                raise ResourceExistsError(
                    f"Table {table_id} already exists in instance {self.instance_id}"
                ) from e
            except gcp_exceptions.GoogleAPICallError as e:
                logger.error(f"Failed to create table {table_id}: {e}", exc_info=True)
                raise SetupError(f"Failed to create table {table_id}: {e}") from e

            self._created_tables.append(table_id)
            logger.info(f"✅ Created table {table_id} with families {families}")

    def write(self, table_id: str, cells: Iterable[BigtableCellWrite]) -> int:
        """
        Write cells to a table, grouping them by row key.

        Returns:
            Number of rows mutated

        Raises:
            SetupError: If any row mutation is rejected
        """
        table = self._instance.table(table_id)
        rows: dict[bytes, object] = {}
        for cell in cells:
            key = _to_bytes(cell.row_key)
            row = rows.get(key)
            if row is None:
                row = rows[key] = table.direct_row(key)
            kwargs = {}
            if cell.timestamp_micros is not None:
                kwargs["timestamp"] = datetime.fromtimestamp(cell.timestamp_micros / 1e6, UTC)
            row.set_cell(cell.family, _to_bytes(cell.qualifier), _to_bytes(cell.value), **kwargs)

        if not rows:
            return 0

        statuses = table.mutate_rows(list(rows.values()))
        failed = [status for status in statuses if status.code != 0]
        if failed:
            raise SetupError(
                f"{len(failed)} of {len(rows)} row mutations failed on {table_id}: "
                f"{failed[0].message}"
            )

        logger.debug(f"Wrote {len(rows)} rows to {table_id}")
        return len(rows)

    def read_table(self, table_id: str) -> list[BigtableRow]:
        """
        Read every row of a table with all cell versions.

        Raises:
            SetupError: If the table cannot be read
        """
        with logfire.span("bigtable.table.read", instance_id=self.instance_id, table_id=table_id):
            table = self._instance.table(table_id)
            try:
                partial_rows = table.read_rows()
                rows = [
                    BigtableRow(
                        key=partial_row.row_key,
                        cells={
                            family: {
                                qualifier: [cell.value for cell in cells]
                                for qualifier, cells in columns.items()
                            }
                            for family, columns in partial_row.cells.items()
                        },
                    )
                    for partial_row in partial_rows
                ]
            except gcp_exceptions.GoogleAPICallError as e:
                logger.error(f"Failed to read table {table_id}: {e}", exc_info=True)
                raise SetupError(f"Failed to read table {table_id}: {e}") from e

            logger.info(f"Read {len(rows)} rows from {table_id}")
            return rows

    def list_tables(self, prefix: str = "") -> list[str]:
        """List table ids in the instance, optionally filtered by prefix."""
        return sorted(
            table.table_id
            for table in self._instance.list_tables()
            if table.table_id.startswith(prefix)
        )

    def delete_table(self, table_id: str) -> bool:
        """
        Delete a table.

        Returns:
            True if the table was deleted, False if it did not exist
        """
        deleted = True
        try:
            self._instance.table(table_id).delete()
            logger.info(f"🗑️  Deleted table {table_id}")
        except gcp_exceptions.NotFound:
            logger.debug(f"Table {table_id} was already deleted")
            deleted = False

        if table_id in self._created_tables:
            self._created_tables.remove(table_id)
        return deleted

    def cleanup_all(self) -> None:
        """
        Delete every created table, then the instance if this run created it.

        Safe to call more than once. Resources that are already gone count as
        released.

        Raises:
            CleanupError: If any resource could not be deleted
        """
        errors: list[str] = []

        with logfire.span(
            "bigtable.cleanup",
            instance_id=self.instance_id,
            tables=len(self._created_tables),
            static_instance=self.uses_static_instance,
        ):
            for table_id in list(self._created_tables):
                try:
                    self.delete_table(table_id)
                except gcp_exceptions.GoogleAPICallError as e:
                    errors.append(f"table {table_id}: {e}")

            if not self.uses_static_instance and self._has_instance:
                try:
                    self._instance.delete()
                    logger.info(f"🗑️  Deleted instance {self.instance_id}")
                except gcp_exceptions.NotFound:
                    logger.debug(f"Instance {self.instance_id} was already deleted")
                    self._has_instance = False
                except gcp_exceptions.GoogleAPICallError as e:
                    errors.append(f"instance {self.instance_id}: {e}")
                else:
                    self._has_instance = False

        if errors:
            raise CleanupError(f"Failed to clean up Bigtable resources: {'; '.join(errors)}")
