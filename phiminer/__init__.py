"""Mining-farm utilities: hex and hash helpers, logging, workers and a monitoring API."""

__version__ = "1.2.4"

__all__ = [
    "api_requests",
    "api_server",
    "api_stats",
    "common_data",
    "fixed_hash",
    "log",
    "worker",
]