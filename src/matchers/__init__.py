# Matchers for template integration tests

from .bigtable import BigtableRecordsSubject, assert_that_bigtable_records
from .pipeline import assert_that_pipeline, assert_that_result

__all__ = [
    "BigtableRecordsSubject",
    "assert_that_bigtable_records",
    "assert_that_pipeline",
    "assert_that_result",
]
