"""In-memory library state owned by one LibraryManager."""

from __future__ import annotations

from dataclasses import dataclass, field

from envoy.db.models import DEFAULT_GROUP_ID, Group, SourceDescriptor, default_groups


@dataclass
class LibraryState:
    """Group list plus the active-group selection.

    ``version`` increases on every mutation so readers can tell whether a
    snapshot they hold is still current.
    """

    groups: list[Group] = field(default_factory=default_groups)
    active_group_id: str = DEFAULT_GROUP_ID
    version: int = 0

    @property
    def active_group(self) -> Group:
        """The selected group, or the first group if the selection is stale."""
        return self.get_group(self.active_group_id) or self.groups[0]

    def get_group(self, group_id: str) -> Group | None:
        return next((g for g in self.groups if g.id == group_id), None)

    def find_source(self, source_id: str) -> SourceDescriptor | None:
        for group in self.groups:
            for source in group.sources:
                if source.id == source_id:
                    return source
        return None

    def bump(self) -> None:
        self.version += 1
