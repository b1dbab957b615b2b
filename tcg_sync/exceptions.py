"""Exception types raised by the catalog client, the store and the config layer"""

from typing import Optional


class PokemonTCGError(Exception):
    """Base class for errors coming from the Pokemon TCG API"""


class APIError(PokemonTCGError):
    """Non-2xx response other than 429"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class NotFoundError(APIError):
    """The requested set or card does not exist upstream"""


class RateLimitError(PokemonTCGError):
    """Exception raised when rate limit is exceeded"""

    def __init__(self, message: str, retry_after: float = None):
        self.retry_after = retry_after
        super().__init__(message)


class MalformedResponseError(PokemonTCGError):
    """Empty body or a body that is not valid JSON"""


class StoreError(Exception):
    """Base class for storage layer errors"""


class DuplicateRecordError(StoreError):
    """A uniqueness constraint rejected the insert"""


class ConfigError(ValueError):
    """Invalid configuration value"""
