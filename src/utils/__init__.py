# Utils package for templit

from .config import (
    BigtableConfig,
    CleanupConfig,
    GcpConfig,
    OperatorConfig,
    TemplitConfig,
    load_config,
)
from .exceptions import (
    ArtifactUploadError,
    CleanupError,
    LaunchError,
    PipelineTimeoutError,
    ResourceExistsError,
    SetupError,
    TemplateTestError,
)

__all__ = [
    "ArtifactUploadError",
    "BigtableConfig",
    "CleanupConfig",
    "CleanupError",
    "GcpConfig",
    "LaunchError",
    "OperatorConfig",
    "PipelineTimeoutError",
    "ResourceExistsError",
    "SetupError",
    "TemplateTestError",
    "TemplitConfig",
    "load_config",
]
