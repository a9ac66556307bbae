from __future__ import annotations

import logging
import threading
from typing import Any

from s3knife.config import KnifeConfig, resolve_endpoint_url, resolve_region


logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 8
CONNECT_TIMEOUT_SECONDS = 10
READ_TIMEOUT_SECONDS = 60


def create_s3_client(
    *,
    region: str,
    endpoint_url: str | None = None,
    profile: str | None = None,
    max_pool_connections: int = 32,
) -> Any:
    """Build a boto3 S3 client; credentials come from the usual AWS chain."""
    import boto3
    from botocore.config import Config as BotoConfig

    config = BotoConfig(
        region_name=region,
        retries={"max_attempts": MAX_RETRY_ATTEMPTS, "mode": "standard"},
        connect_timeout=CONNECT_TIMEOUT_SECONDS,
        read_timeout=READ_TIMEOUT_SECONDS,
        max_pool_connections=max_pool_connections,
    )
    if profile:
        session = boto3.Session(profile_name=profile, region_name=region)
    else:
        session = boto3.Session(region_name=region)
    logger.debug("creating s3 client region=%s endpoint=%s profile=%s", region, endpoint_url, profile)
    return session.client("s3", config=config, endpoint_url=endpoint_url)


class ClientFactory:
    """Creates the S3 client on first use, so local-only commands never need one."""

    def __init__(
        self,
        *,
        config: KnifeConfig | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any = None,
    ) -> None:
        self.config = config or KnifeConfig()
        self.region = resolve_region(region, self.config)
        self.endpoint_url = resolve_endpoint_url(endpoint_url, self.config)
        self.max_pool_connections = 32
        self._client = client
        self._lock = threading.Lock()

    def __call__(self) -> Any:
        with self._lock:
            if self._client is None:
                self._client = create_s3_client(
                    region=self.region,
                    endpoint_url=self.endpoint_url,
                    profile=self.config.profile,
                    max_pool_connections=self.max_pool_connections,
                )
            return self._client
