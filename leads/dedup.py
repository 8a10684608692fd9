from typing import Dict, Iterable, Iterator, List, Optional


class DedupSet:
    """Set of unique ids already present in the Leads tab or pushed by the current run.

    Keeps insertion order so it can be persisted as a stable list. Ids are
    only ever added, never removed.
    """

    def __init__(self, ids: Optional[Iterable[str]] = None):
        self._ids: Dict[str, None] = {}
        if ids:
            self.update(ids)

    def __contains__(self, uid: object) -> bool:
        return uid in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __repr__(self) -> str:
        return f"DedupSet({len(self._ids)} ids)"

    def add(self, uid: str) -> bool:
        """Add an id. Returns True if it was new, False if already seen or empty."""
        uid = (uid or "").strip()
        if not uid or uid in self._ids:
            return False
        self._ids[uid] = None
        return True

    def update(self, ids: Iterable[str]) -> int:
        return sum(1 for uid in ids if self.add(str(uid) if uid is not None else ""))

    def copy(self) -> "DedupSet":
        return DedupSet(self._ids)

    def to_list(self) -> List[str]:
        return list(self._ids)


def seed_from_column(values: Iterable[object]) -> DedupSet:
    """Build a dedup set from the raw cell values of the Unique ID column."""
    return DedupSet(str(v).strip() for v in values if v is not None and str(v).strip())
