"""
Tag Resolver

Merges the layered tag maps of a spec into the final tags of one resource.
"""

from typing import Dict, Mapping, Optional

from .network_spec import TagKind, TagLayers


class TagResolver:
    """Left-to-right merge: Name tag, global, per kind, per AZ for that kind.

    Later layers win on key collisions. Missing layers count as empty.
    """

    def __init__(self, layers: TagLayers):
        self.layers = layers

    def resolve(
        self,
        kind: TagKind,
        az: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Dict[str, str]:
        """Resolve the tags for one resource.

        Args:
            kind: The tag layer the resource belongs to
            az: Availability zone of the resource, for per-AZ layers
            name: Generated Name tag, overridable by every other layer

        Returns:
            The merged tag map
        """
        tags: Dict[str, str] = {}
        if name is not None:
            tags["Name"] = name
        tags.update(self.layers.global_tags or {})
        tags.update(self.layers.kind_tags.get(kind) or {})
        if az is not None:
            per_az: Mapping[str, Dict[str, str]] = self.layers.az_tags.get(kind) or {}
            tags.update(per_az.get(az) or {})
        return tags


def resolve_tags(
    layers: TagLayers,
    kind: TagKind,
    az: Optional[str] = None,
    name: Optional[str] = None,
) -> Dict[str, str]:
    return TagResolver(layers).resolve(kind, az, name)
