from llmcore.config.loader import clear_cache, load_settings
from llmcore.config.schema import (
    BatchSettings,
    CacheSettings,
    CoreSettings,
    ProviderSettings,
    RateLimitSettings,
    RetrySettings,
)

__all__ = [
    "BatchSettings",
    "CacheSettings",
    "CoreSettings",
    "ProviderSettings",
    "RateLimitSettings",
    "RetrySettings",
    "clear_cache",
    "load_settings",
]
