"""Discovery of the remote folder hierarchy."""

from .engine import (
    DiscoveryStats,
    RemoteDiscoverer,
    depth_limited_discoverer,
    naive_discoverer,
)
from .strategies import (
    AlwaysMap,
    AlwaysSync,
    BfsTraversal,
    DepthLimitFilter,
    DepthTrackingBfsTraversal,
    DepthTrackingDfsTraversal,
    DfsTraversal,
    FilterIfIgnored,
    FilterStrategy,
    InheritSync,
    MapIfNotAlreadyMapped,
    MappingStrategy,
    NeverSync,
    NoFilter,
    SyncIfIdIn,
    SyncIfNotIgnored,
    SyncStrategy,
    TraversalStrategy,
)

__all__ = [
    # Engine
    "RemoteDiscoverer",
    "DiscoveryStats",
    "naive_discoverer",
    "depth_limited_discoverer",
    # Protocols
    "TraversalStrategy",
    "MappingStrategy",
    "SyncStrategy",
    "FilterStrategy",
    # Traversal
    "DfsTraversal",
    "BfsTraversal",
    "DepthTrackingDfsTraversal",
    "DepthTrackingBfsTraversal",
    # Mapping
    "AlwaysMap",
    "MapIfNotAlreadyMapped",
    # Sync
    "AlwaysSync",
    "NeverSync",
    "InheritSync",
    "SyncIfNotIgnored",
    "SyncIfIdIn",
    # Filter
    "NoFilter",
    "FilterIfIgnored",
    "DepthLimitFilter",
]
