"""Client singletons for external API interactions."""
from candsync.clients.endpoint_client import EndpointClient

__all__ = ["EndpointClient"]
