"""
Production configuration for the client resilience layer.
All tunable values live here so retry, cache and polling behaviour can be
adjusted without touching the components.
"""

import os
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Central configuration for all resilience components."""

    # Backend connection
    BACKEND_URL = os.getenv('BACKEND_URL', 'http://localhost:3000')
    BACKEND_TIMEOUT = float(os.getenv('BACKEND_TIMEOUT', '30.0'))
    BACKEND_TOKEN = os.getenv('BACKEND_TOKEN')

    # Retry Configuration
    MAX_RETRIES = int(os.getenv('MAX_RETRIES', '2'))
    BASE_DELAY_MS = int(os.getenv('BASE_DELAY_MS', '1000'))

    # Cache TTLs (milliseconds)
    SUMMARY_CACHE_TTL_MS = int(os.getenv('SUMMARY_CACHE_TTL_MS', str(60 * 60 * 1000)))
    PLAN_CACHE_TTL_MS = int(os.getenv('PLAN_CACHE_TTL_MS', str(60 * 60 * 1000)))
    NOTIFICATIONS_CACHE_TTL_MS = int(os.getenv('NOTIFICATIONS_CACHE_TTL_MS', str(5 * 60 * 1000)))
    DATA_CACHE_TTL_MS = int(os.getenv('DATA_CACHE_TTL_MS', str(15 * 60 * 1000)))
    CACHE_FILE = os.getenv('CACHE_FILE', '.cache/client_cache.json')

    # Poll reconciliation
    POLL_MAX_ATTEMPTS = int(os.getenv('POLL_MAX_ATTEMPTS', '12'))
    POLL_INTERVAL_MS = int(os.getenv('POLL_INTERVAL_MS', '5000'))
    POLL_INITIAL_DELAY_MS = int(os.getenv('POLL_INITIAL_DELAY_MS', '2000'))

    # Notifications
    NOTIFICATION_REFRESH_MS = int(os.getenv('NOTIFICATION_REFRESH_MS', '30000'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    VERBOSE = os.getenv('VERBOSE', 'false').lower() == 'true'

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Return all config values as a dictionary."""
        return {
            'backend_url': cls.BACKEND_URL,
            'backend_timeout': cls.BACKEND_TIMEOUT,
            'max_retries': cls.MAX_RETRIES,
            'base_delay_ms': cls.BASE_DELAY_MS,
            'summary_cache_ttl_ms': cls.SUMMARY_CACHE_TTL_MS,
            'plan_cache_ttl_ms': cls.PLAN_CACHE_TTL_MS,
            'notifications_cache_ttl_ms': cls.NOTIFICATIONS_CACHE_TTL_MS,
            'data_cache_ttl_ms': cls.DATA_CACHE_TTL_MS,
            'cache_file': cls.CACHE_FILE,
            'poll_max_attempts': cls.POLL_MAX_ATTEMPTS,
            'poll_interval_ms': cls.POLL_INTERVAL_MS,
            'poll_initial_delay_ms': cls.POLL_INITIAL_DELAY_MS,
            'notification_refresh_ms': cls.NOTIFICATION_REFRESH_MS,
            'log_level': cls.LOG_LEVEL,
            'verbose': cls.VERBOSE,
        }
