"""
Assertions over rows read back from Bigtable.

Each cell version in a column family becomes one ``{qualifier: value}``
record. Records are compared as unordered multisets, so physical row and
version ordering never matters, and failures list exactly which records are
missing, unexpected, or altered.

Usage:
    assert_that_bigtable_records(rows, "family1").contains_exactly_unordered(
        [{"column1": "value1"}]
    )
"""

from collections import Counter
from collections.abc import Iterable, Mapping

from resources.bigtable import BigtableRow

Record = frozenset[tuple[bytes, bytes]]


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


def _normalize(record: Mapping[bytes | str, bytes | str]) -> Record:
    return frozenset((_to_bytes(k), _to_bytes(v)) for k, v in record.items())


def _render(record: Record) -> str:
    items = sorted(record)
    return (
        "{"
        + ", ".join(
            f"{k.decode(errors='backslashreplace')!r}: {v.decode(errors='backslashreplace')!r}"
            for k, v in items
        )
        + "}"
    )


class BigtableRecordsSubject:
    """Fluent assertions over the records of one column family."""

    def __init__(self, rows: Iterable[BigtableRow], family: str, row_key: bytes | str | None = None):
        self.family = family
        self.row_key = _to_bytes(row_key) if row_key is not None else None
        self.records: list[Record] = [
            _normalize(record)
            for row in rows
            if self.row_key is None or row.key == self.row_key
            for record in row.records(family)
        ]

    def _describe(self) -> str:
        scope = f"family '{self.family}'"
        if self.row_key is not None:
            scope += f" of row {self.row_key.decode(errors='backslashreplace')!r}"
        return scope

    def _diff(self, expected: Iterable[Mapping]) -> tuple[list[Record], list[Record]]:
        expected_counts = Counter(_normalize(record) for record in expected)
        actual_counts = Counter(self.records)
        missing = list((expected_counts - actual_counts).elements())
        unexpected = list((actual_counts - expected_counts).elements())
        return missing, unexpected

    def _failure(self, missing: list[Record], unexpected: list[Record]) -> AssertionError:
        lines = [f"Bigtable records in {self._describe()} do not match."]

        # pair missing and unexpected records that share the same columns
        altered = []
        remaining_unexpected = list(unexpected)
        remaining_missing = []
        for record in missing:
            columns = {k for k, _ in record}
            match = next(
                (other for other in remaining_unexpected if {k for k, _ in other} == columns),
                None,
            )
            if match is None:
                remaining_missing.append(record)
            else:
                remaining_unexpected.remove(match)
                altered.append((record, match))

        for expected_record, actual_record in altered:
            lines.append(f"  altered: expected {_render(expected_record)}, got {_render(actual_record)}")
        for record in remaining_missing:
            lines.append(f"  missing: {_render(record)}")
        for record in remaining_unexpected:
            lines.append(f"  unexpected: {_render(record)}")
        lines.append(f"  actual records ({len(self.records)}): [{', '.join(map(_render, self.records))}]")
        return AssertionError("\n".join(lines))

    def has_records_unordered(self, expected: Iterable[Mapping]) -> "BigtableRecordsSubject":
        """Assert every expected record is present, in any order. Extras are allowed."""
        missing, _ = self._diff(expected)
        if missing:
            raise self._failure(missing, [])
        return self

    def contains_exactly_unordered(self, expected: Iterable[Mapping]) -> "BigtableRecordsSubject":
        """Assert the records equal ``expected`` as a multiset: no missing, no extras."""
        missing, unexpected = self._diff(expected)
        if missing or unexpected:
            raise self._failure(missing, unexpected)
        return self

    def has_record_count(self, count: int) -> "BigtableRecordsSubject":
        if len(self.records) != count:
            raise AssertionError(
                f"Expected {count} record(s) in {self._describe()}, found {len(self.records)}: "
                f"[{', '.join(map(_render, self.records))}]"
            )
        return self

    def is_empty(self) -> "BigtableRecordsSubject":
        return self.has_record_count(0)

    def is_not_empty(self) -> "BigtableRecordsSubject":
        if not self.records:
            raise AssertionError(f"Expected records in {self._describe()}, found none")
        return self


def assert_that_bigtable_records(
    rows: Iterable[BigtableRow], family: str, row_key: bytes | str | None = None
) -> BigtableRecordsSubject:
    """Start an assertion over the records of ``family``, optionally limited to one row."""
    return BigtableRecordsSubject(rows, family, row_key)
