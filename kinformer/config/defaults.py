"""
Default configuration values for kinformer.

Centralized defaults that can be overridden by a config file or environment variables.
"""

from typing import Any, Dict

# Global default settings
DEFAULT_SETTINGS: Dict[str, Any] = {
    # Dispatch and retry
    "informer": {
        "max_retries": 5,
        "workers": 1,
        "poll_interval": 1.0,
        "handler_timeout": None,
        "shutdown_timeout": 5.0,
        "sync_timeout": None,
        "sync_poll_interval": 0.1,
        "default_resync": 0.0
    },

    # Re-queue backoff
    "rate_limiter": {
        "kind": "default",
        "base_delay": 0.005,
        "max_delay": 1000.0,
        "qps": 10.0,
        "burst": 100,
        "fast_delay": 0.005,
        "slow_delay": 10.0,
        "max_fast_attempts": 5
    }
}

# Environment variable mappings
ENV_VAR_MAPPING = {
    'KINFORMER_MAX_RETRIES': 'informer.max_retries',
    'KINFORMER_WORKERS': 'informer.workers',
    'KINFORMER_POLL_INTERVAL': 'informer.poll_interval',
    'KINFORMER_HANDLER_TIMEOUT': 'informer.handler_timeout',
    'KINFORMER_SYNC_TIMEOUT': 'informer.sync_timeout',
    'KINFORMER_DEFAULT_RESYNC': 'informer.default_resync',
    'KINFORMER_RATE_LIMITER': 'rate_limiter.kind',
    'KINFORMER_BASE_DELAY': 'rate_limiter.base_delay',
    'KINFORMER_MAX_DELAY': 'rate_limiter.max_delay',
    'KINFORMER_QPS': 'rate_limiter.qps',
    'KINFORMER_BURST': 'rate_limiter.burst'
}
