"""vpcgraph - Resolve VPC module variables into a network resource graph."""

__version__ = "1.0.0"

from .builder import BuildResult, ResourceGraphBuilder, build, resolve
from .counts import CountSet, resolve_counts
from .errors import ErrorKind, ResolutionError, TopologyIssue
from .graph import ResourceGraph, ResourceKind, ResourceNode
from .indices import IndexMapper, IndexPlan, map_indices
from .network_spec import NetworkFlags, NetworkSpec, SubnetTier, TagKind, TagLayers
from .tags import TagResolver, resolve_tags
from .validator import validate
from .variable_loader import VariableLoader, load_spec

__all__ = [
    "__version__",
    "BuildResult",
    "CountSet",
    "ErrorKind",
    "IndexMapper",
    "IndexPlan",
    "NetworkFlags",
    "NetworkSpec",
    "ResolutionError",
    "ResourceGraph",
    "ResourceGraphBuilder",
    "ResourceKind",
    "ResourceNode",
    "SubnetTier",
    "TagKind",
    "TagLayers",
    "TagResolver",
    "TopologyIssue",
    "VariableLoader",
    "build",
    "load_spec",
    "map_indices",
    "resolve",
    "resolve_counts",
    "resolve_tags",
    "validate",
]
