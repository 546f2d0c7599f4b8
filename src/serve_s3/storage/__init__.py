"""Storage clients for serve-s3."""

from typing import TYPE_CHECKING

from serve_s3.storage.backend import ObjectHead, ObjectStream, StorageClient

if TYPE_CHECKING:
    from serve_s3.config import RouteConfig

__all__ = [
    "create_storage_client",
    "ObjectHead",
    "ObjectStream",
    "StorageClient",
]


def create_storage_client(config: "RouteConfig") -> StorageClient:
    """Create the storage client for a route.

    An explicit ``config.storage`` instance is returned as-is; otherwise an
    S3 client is built from the route's connection parameters.

    Args:
        config: The route configuration.

    Returns:
        A client implementing the StorageClient protocol.
    """
    if config.storage is not None:
        return config.storage

    from serve_s3.storage.aws import AWSStorageClient

    return AWSStorageClient(
        region=config.region,
        endpoint_url=config.endpoint_url,
        access_key_id=config.access_key_id,
        secret_access_key=config.secret_access_key,
        ssl_enabled=config.ssl_enabled,
        path_style=config.path_style,
        client_options=config.client_options,
    )
