"""Candidate index: category -> E.164 caller id -> records."""

from collections import defaultdict
from collections.abc import Iterable
from typing import Generic, TypeVar

from callrecon.matching.records import LeadCallRecord, RoutingCallRecord

R = TypeVar("R", LeadCallRecord, RoutingCallRecord)


class CandidateIndex(Generic[R]):
    """Groups the candidate side of a pass for O(1) lookup by (category, caller).

    Built in a single linear scan. Records without a category or without a
    resolvable caller id are kept aside in ``excluded`` so the matcher can
    report them instead of silently dropping them.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, list[R]]] = defaultdict(lambda: defaultdict(list))
        self.excluded: list[tuple[R, str]] = []

    @classmethod
    def build(cls, records: Iterable[R]) -> "CandidateIndex[R]":
        index: CandidateIndex[R] = cls()
        for record in records:
            index.add(record)
        return index

    def add(self, record: R) -> None:
        if not record.category:
            self.excluded.append((record, "invalid category"))
            return
        if not record.caller_id_e164:
            self.excluded.append((record, "invalid caller id"))
            return
        self._buckets[record.category][record.caller_id_e164].append(record)

    def has_category(self, category: str | None) -> bool:
        return bool(category) and category in self._buckets

    def candidates(self, category: str | None, caller_id_e164: str | None) -> list[R]:
        if not category or not caller_id_e164:
            return []
        by_caller = self._buckets.get(category)
        if not by_caller:
            return []
        return list(by_caller.get(caller_id_e164, ()))

    def __len__(self) -> int:
        return sum(len(bucket) for by_caller in self._buckets.values() for bucket in by_caller.values())
