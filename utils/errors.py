"""
Custom exception classes for the AutoRoom bot.

These provide a hierarchy of typed exceptions for better error handling.
"""


class BotError(Exception):
    """Base exception for bot-related errors."""

    pass


class ConfigError(BotError):
    """Exception raised for configuration-related errors."""

    pass


class ServiceError(BotError):
    """Exception raised for service-related errors."""

    pass


class PolicyMissing(ConfigError):
    """The guild has no usable AutoRoom policy (no creator channel configured)."""

    def __init__(self, tenant_id: int | None = None) -> None:
        self.tenant_id = tenant_id
        super().__init__(f"No AutoRoom policy configured for guild {tenant_id}")


class PlatformUnavailable(ServiceError):
    """
    Transient failure talking to the platform.

    The operation that raised it is aborted and must leave the directory
    exactly as it was before the call.
    """

    def __init__(self, operation: str, detail: str | None = None) -> None:
        self.operation = operation
        self.detail = detail
        message = f"Platform call '{operation}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ResourceAlreadyGone(ServiceError):
    """The channel no longer exists on the platform. Never user-visible."""

    def __init__(self, resource_id: int) -> None:
        self.resource_id = resource_id
        super().__init__(f"Channel {resource_id} no longer exists")
