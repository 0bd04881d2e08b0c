"""
Edge tier.

This package serves clients:
- DeliveryPipeline: auth check, cache lookup, origin fetch, response assembly
- negotiation: conditional, range and content-coding helpers
- SingleFlight: per-key miss coalescing
- VersionTable: last known version per resource
- create_edge_app: the edge HTTP surface
"""

from edgecdn.edge.pipeline import DeliveryPipeline, DeliveryRequest, DeliveryResponse
from edgecdn.edge.singleflight import SingleFlight
from edgecdn.edge.versions import VersionTable

__all__ = [
    "DeliveryPipeline",
    "DeliveryRequest",
    "DeliveryResponse",
    "SingleFlight",
    "VersionTable",
]
