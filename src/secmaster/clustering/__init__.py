from secmaster.clustering.graph_cluster import (
    CanonicalComponent,
    GraphResult,
    build_canonical_graph,
)

__all__ = ["CanonicalComponent", "GraphResult", "build_canonical_graph"]
