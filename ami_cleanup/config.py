"""
Explicit run configuration for the retention engine.

The fan-out, inventory and deletion stages receive an EngineConfig instead of
reading region or credential settings from process-wide state.
"""

import threading
from typing import List, Optional

import boto3

DEFAULT_PATTERN = 'northflier-????-??-??-*'
DEFAULT_HOME_REGION = 'us-west-2'
MAX_CONCURRENT_REGIONS = 10


class EngineConfig:
    """AWS session plus the region settings the engine needs."""

    def __init__(self, session=None, home_region: str = DEFAULT_HOME_REGION,
                 regions: Optional[List[str]] = None,
                 max_concurrency: int = MAX_CONCURRENT_REGIONS):
        self.session = session or boto3.Session()
        self.home_region = home_region
        self.regions = list(regions) if regions else None
        self.max_concurrency = max_concurrency
        self._client_lock = threading.Lock()

    @classmethod
    def from_profile(cls, profile: Optional[str] = None, **kwargs) -> 'EngineConfig':
        """Build a config from a named AWS profile; raises botocore's ProfileNotFound."""
        session = boto3.Session(profile_name=profile) if profile else boto3.Session()
        return cls(session=session, **kwargs)

    def client_for(self, region: str, service: str = 'ec2'):
        # boto3 sessions are not thread-safe; clients built from them are
        with self._client_lock:
            return self.session.client(service, region_name=region)

    def __repr__(self):
        return (f"EngineConfig(home_region={self.home_region!r}, regions={self.regions!r}, "
                f"max_concurrency={self.max_concurrency})")
