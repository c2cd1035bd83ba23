"""
Avro fixtures in the Bigtable export format.

The Avro-to-Bigtable template reads files written with the schema below (the
same one the Bigtable-to-Avro template produces). Fixtures are generated at
test time with fastavro instead of shipping binary files.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from fastavro import parse_schema, reader, writer

from resources.bigtable import BigtableCellWrite

logger = logging.getLogger(__name__)

BIGTABLE_ROW_SCHEMA = parse_schema(
    {
        "type": "record",
        "name": "BigtableRow",
        "namespace": "com.google.cloud.teleport.bigtable",
        "fields": [
            {"name": "key", "type": "bytes"},
            {
                "name": "cells",
                "type": {
                    "type": "array",
                    "items": {
                        "type": "record",
                        "name": "BigtableCell",
                        "fields": [
                            {"name": "family", "type": "string"},
                            {"name": "qualifier", "type": "bytes"},
                            {"name": "timestamp", "type": "long"},
                            {"name": "value", "type": "bytes"},
                        ],
                    },
                },
            },
        ],
    }
)

# Row "rowkey1": one family1 cell and two versions of family2:column2
AVRO_TO_BIGTABLE_CELLS: tuple[BigtableCellWrite, ...] = (
    BigtableCellWrite(b"rowkey1", "family1", b"column1", b"value1", timestamp_micros=1_000),
    BigtableCellWrite(b"rowkey1", "family2", b"column2", b"value2", timestamp_micros=1_000),
    BigtableCellWrite(b"rowkey1", "family2", b"column2", b"value3", timestamp_micros=2_000),
)


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode() if isinstance(value, str) else value


def write_bigtable_avro(path: str | Path, cells: Iterable[BigtableCellWrite]) -> Path:
    """
    Write cells to an Avro file, one record per row key.

    Row order follows the first appearance of each key; cells keep their
    given order. Cells without a timestamp are written with timestamp 0.

    Returns:
        The path written
    """
    rows: dict[bytes, list[dict]] = {}
    for cell in cells:
        rows.setdefault(_to_bytes(cell.row_key), []).append(
            {
                "family": cell.family,
                "qualifier": _to_bytes(cell.qualifier),
                "timestamp": cell.timestamp_micros or 0,
                "value": _to_bytes(cell.value),
            }
        )

    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("wb") as out:
        writer(out, BIGTABLE_ROW_SCHEMA, [{"key": k, "cells": v} for k, v in rows.items()])

    logger.debug(f"Wrote {len(rows)} Bigtable row(s) to {output}")
    return output


def read_bigtable_avro(path: str | Path) -> list[BigtableCellWrite]:
    """Read every cell from an Avro file in the Bigtable export format."""
    with Path(path).open("rb") as fo:
        return [
            BigtableCellWrite(
                row_key=record["key"],
                family=cell["family"],
                qualifier=cell["qualifier"],
                value=cell["value"],
                timestamp_micros=cell["timestamp"],
            )
            for record in reader(fo)
            for cell in record["cells"]
        ]
