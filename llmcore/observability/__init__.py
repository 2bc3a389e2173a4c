from llmcore.observability.hooks import Hooks, MetricsCollector
from llmcore.observability.logging_config import configure_logging
from llmcore.observability.stats import UsageStats

__all__ = ["Hooks", "MetricsCollector", "UsageStats", "configure_logging"]
