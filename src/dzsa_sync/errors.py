"""Base exceptions for dzsa-sync."""


class DzsaSyncError(Exception):
    """Base exception for all dzsa-sync errors."""

    pass


class ConfigError(DzsaSyncError):
    """Configuration is missing or invalid."""

    pass


class QueryError(DzsaSyncError):
    """DZSA launcher query failed."""

    pass


class IpDetectionError(DzsaSyncError):
    """Failed to detect the external IP address."""

    pass


class StartupError(DzsaSyncError):
    """Error during daemon startup."""

    pass
