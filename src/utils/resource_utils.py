"""
Helpers shared by the resource managers: unique id generation and
guaranteed cleanup.
"""

import logging
import re
import secrets
from datetime import UTC, datetime
from typing import Literal

import logfire

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y%m%d-%H%M%S"

# Bigtable table ids: [_a-zA-Z0-9][-_.a-zA-Z0-9]*, max 50 chars
ILLEGAL_TABLE_CHARS = re.compile(r"[^a-zA-Z0-9-_.]")
MAX_TABLE_ID_LENGTH = 30

# Bigtable instance ids: [a-z][-a-z0-9]*[a-z0-9], 6-33 chars
ILLEGAL_INSTANCE_CHARS = re.compile(r"[^a-z0-9-]")
MAX_INSTANCE_ID_LENGTH = 30

# Cluster ids share the instance charset and are suffixed with "-c1"
MAX_CLUSTER_ID_LENGTH = 30


def generate_resource_id(
    base_string: str,
    illegal_chars: re.Pattern[str],
    replace_char: str,
    target_length: int,
    lowercase: bool = False,
    now: datetime | None = None,
) -> str:
    """
    Generate a resource id unique to one run.

    The id is ``<base>-<timestamp>-<random>``, with characters matching
    ``illegal_chars`` replaced and the base truncated so the whole id fits
    ``target_length``. The result always starts with a letter.

    Args:
        base_string: Human readable seed, usually the test name
        illegal_chars: Pattern of characters not allowed in the id
        replace_char: Replacement for illegal characters
        target_length: Maximum length of the generated id
        lowercase: Lowercase the base before sanitizing
        now: Timestamp to embed (defaults to current UTC time)

    Raises:
        ValueError: If target_length cannot hold the timestamp and suffix
    """
    now = now or datetime.now(UTC)
    suffix = f"{now.strftime(TIME_FORMAT)}-{secrets.token_hex(3)}"

    # one char for the leading letter plus the separator
    if target_length < len(suffix) + 2:
        raise ValueError(
            f"target_length {target_length} is too short, need at least {len(suffix) + 2}"
        )

    base = base_string.lower() if lowercase else base_string
    base = illegal_chars.sub(replace_char, base).strip(replace_char)
    if not base or not base[0].isalpha():
        base = f"r{base}"

    max_base_length = target_length - len(suffix) - 1
    base = base[:max_base_length].rstrip(replace_char)

    return f"{base}-{suffix}"


def generate_table_id(base_string: str) -> str:
    """Generate a Bigtable table id from a test name."""
    return generate_resource_id(base_string, ILLEGAL_TABLE_CHARS, "-", MAX_TABLE_ID_LENGTH)


def generate_instance_id(base_string: str) -> str:
    """Generate a Bigtable instance id from a test name."""
    return generate_resource_id(
        base_string, ILLEGAL_INSTANCE_CHARS, "-", MAX_INSTANCE_ID_LENGTH, lowercase=True
    )


def generate_cluster_id(instance_id: str) -> str:
    """Derive the cluster id for a generated instance."""
    return f"{instance_id[: MAX_CLUSTER_ID_LENGTH - 3]}-c1"


def clean_resources(*managers, policy: Literal["warn", "ignore"] = "warn") -> list[Exception]:
    """
    Release every manager, never letting a cleanup failure escape.

    A failure in one manager does not stop the others from being released.
    Failures are logged according to ``policy`` and returned so callers can
    report them without masking the primary test outcome.

    Args:
        managers: Objects exposing ``cleanup_all()``; None entries are skipped
        policy: "warn" logs failures at WARNING, "ignore" at DEBUG

    Returns:
        The exceptions raised by failing managers, in order
    """
    failures: list[Exception] = []
    level = logging.WARNING if policy == "warn" else logging.DEBUG

    with logfire.span("resources.cleanup", managers=len(managers), policy=policy):
        for manager in managers:
            if manager is None:
                continue
            try:
                manager.cleanup_all()
            except Exception as e:
                failures.append(e)
                logger.log(
                    level,
                    f"Failed to clean up {type(manager).__name__}: {e}",
                    exc_info=policy == "warn",
                )

    if failures:
        logger.log(level, f"⚠️  {len(failures)} resource manager(s) failed to clean up")

    return failures
