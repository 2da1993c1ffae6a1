"""Routing id -> category resolution."""

import logging
from collections.abc import Iterable, Mapping

from callrecon.config import Settings
from callrecon.matching.records import RoutingCallRecord

logger = logging.getLogger("callrecon.matching.categories")


class CategoryResolver:
    """Exact-match lookup of a routing id to a category label.

    Unknown routing ids resolve to None. The matcher treats a None category as
    an unconditional non-match; the record is reported, never dropped.
    """

    def __init__(self, table: Mapping[str, str]):
        self._table = dict(table)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CategoryResolver":
        return cls(settings.routing_targets)

    def resolve(self, routing_id: str | None) -> str | None:
        if not routing_id:
            return None
        return self._table.get(routing_id.strip())

    def routing_ids_for(self, category: str) -> list[str]:
        return [routing_id for routing_id, label in self._table.items() if label == category]

    def annotate(self, records: Iterable[RoutingCallRecord]) -> list[RoutingCallRecord]:
        """Set ``category`` on each routing record in place and return them as a list."""
        annotated = []
        unknown = 0
        for record in records:
            record.category = self.resolve(record.routing_id)
            if record.category is None:
                unknown += 1
            annotated.append(record)
        if unknown:
            logger.warning("%d routing records have an unknown routing id", unknown)
        return annotated
