"""
Core refresh pipeline: caching, retry, freshness and process reliability.

LAZY LOADING: the clients import core.errors, so the heavier modules here are
resolved on first access instead of at package import time.
"""

__all__ = [
    "CacheEngine",
    "FingerprintHasher",
    "ErrorClassifier",
    "RetryExecutor",
    "ErrorLedger",
    "FreshnessTracker",
    "ProcessWatchdog",
    "ReliabilityCoordinator",
    "RefreshCycle",
    "InstanceLock",
    "UsageDaemon",
    "build_runtime",
]

_lazy_modules = {
    "CacheEngine": (".cache_engine", "CacheEngine"),
    "FingerprintHasher": (".fingerprint", "FingerprintHasher"),
    "ErrorClassifier": (".recovery_engine", "ErrorClassifier"),
    "RetryExecutor": (".recovery_engine", "RetryExecutor"),
    "ErrorLedger": (".recovery_engine", "ErrorLedger"),
    "FreshnessTracker": (".freshness_tracker", "FreshnessTracker"),
    "ProcessWatchdog": (".process_watchdog", "ProcessWatchdog"),
    "ReliabilityCoordinator": (".reliability_coordinator", "ReliabilityCoordinator"),
    "RefreshCycle": (".refresh_cycle", "RefreshCycle"),
    "InstanceLock": (".instance_lock", "InstanceLock"),
    "UsageDaemon": (".daemon", "UsageDaemon"),
    "build_runtime": (".daemon", "build_runtime"),
}

_loaded_modules = {}


def __getattr__(name: str):
    """Lazy import handler - imports modules only when accessed."""
    if name in _lazy_modules:
        if name not in _loaded_modules:
            module_path, attr_name = _lazy_modules[name]
            import importlib
            module = importlib.import_module(module_path, package=__name__)
            _loaded_modules[name] = getattr(module, attr_name)
        return _loaded_modules[name]
    raise AttributeError(f"module 'claude_live.core' has no attribute '{name}'")
