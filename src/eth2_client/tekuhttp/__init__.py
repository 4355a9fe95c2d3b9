"""
Teku HTTP backend.

Usage::

    service = await tekuhttp.new(address="localhost:5051", timeout=30)
    domain = await service.randao_domain()
"""

from .service import NAME, Service, new

__all__ = [
    "NAME",
    "Service",
    "new",
]
