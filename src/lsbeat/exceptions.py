"""Custom exceptions for the lsbeat package."""


class BeatError(Exception):
    """Base exception for all lsbeat errors."""
    pass


class ConfigError(BeatError):
    """Invalid configuration value."""
    pass


class RegistrarError(BeatError):
    """Error related to the registrar file."""
    pass


class DetectionError(BeatError):
    """A marker directory could not be listed."""
    pass


class CollectError(BeatError):
    """A candidate file could not be read."""
    pass


class SinkError(BeatError):
    """Event could not be handed to the sink."""
    pass


class OutboxError(SinkError):
    """Error related to the SQLite outbox."""
    pass


class BeatAlreadyRunningError(BeatError):
    """Scheduler is already running."""
    pass


class BeatStoppedError(BeatError):
    """Scheduler has been stopped and cannot be restarted."""
    pass
