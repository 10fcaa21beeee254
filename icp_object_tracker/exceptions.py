"""Error types raised by the tracking engine."""


class TrackingError(Exception):
    """Base class for every error raised by icp_object_tracker."""


class ConfigError(TrackingError, ValueError):
    """Invalid or unknown configuration value. Fatal at startup."""


class ModelLoadError(TrackingError):
    """The reference model could not be read. Fatal for the instance."""

    def __init__(self, path, reason):
        super().__init__(f"Failed to load reference model {path}: {reason}")
        self.path = path
        self.reason = reason


class InsufficientDataError(TrackingError):
    """A filtering stage left too few points; the frame is abandoned."""

    def __init__(self, stage, count, required):
        super().__init__(
            f"{stage}: {count} points left, at least {required} required")
        self.stage = stage
        self.count = count
        self.required = required
