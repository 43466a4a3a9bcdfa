from .context import MetricsContext

__all__ = ["MetricsContext"]
