"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class UnknownPartitionError(PipelineError):
    """Raised when a partition key is outside the configured set."""

    error_code = "UNKNOWN_PARTITION"


class StageError(PipelineError):
    """Raised for stage failures that should halt in strict mode."""

    error_code = "STAGE_ERROR"


class UpstreamUnavailable(StageError):
    """Raised when no snapshot can be produced and none exists to fall back on."""

    error_code = "UPSTREAM_UNAVAILABLE"


class PersistenceFailure(StageError):
    """Raised after a rolled-back partition write."""

    error_code = "PERSISTENCE_ERROR"
