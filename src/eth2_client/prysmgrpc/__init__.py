"""
Prysm gRPC backend.

Usage::

    service = await prysmgrpc.new(address="localhost:4000", timeout=30)
    domain = await service.randao_domain()
"""

from .service import NAME, Service, new

__all__ = [
    "NAME",
    "Service",
    "new",
]
