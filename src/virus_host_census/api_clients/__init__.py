from virus_host_census.api_clients.base import CachedAPIClient, InvalidResponseError

__all__ = ["CachedAPIClient", "InvalidResponseError"]
