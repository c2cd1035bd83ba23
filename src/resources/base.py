"""
Abstract base class for test resource managers.

A resource manager provisions backing-service resources for a single test
run and releases all of them in one call, whatever the test outcome.
"""

from abc import ABC, abstractmethod


class ResourceManager(ABC):
    """
    Abstract base class for resource managers.

    Implementations must provide:
    - cleanup_all: release everything the manager created. It must be
      idempotent and treat already-deleted resources as released.
    """

    @abstractmethod
    def cleanup_all(self) -> None:
        """
        Delete every resource this manager created.

        Raises:
            CleanupError: If one or more resources could not be deleted
        """
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # Cleanup errors must not replace an exception raised in the block
        from utils.resource_utils import clean_resources

        clean_resources(self)
