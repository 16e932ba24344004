from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional

from ..models.common import normalize_title
from ..models.subscriptions import SubscriberRecord, Watch, WatchKind

__all__ = ["GroupEntry", "TitleGroup", "TitleIndex", "group"]


@dataclass
class GroupEntry:
    record: SubscriberRecord
    watch: Watch
    channel_id: Optional[str]


@dataclass
class TitleGroup:
    key: str
    title: str  # first-seen spelling; used as the upstream query
    entries: List[GroupEntry] = field(default_factory=list)


class TitleIndex:
    """
    Per-tick index of title groups. Groups live in a list in first-seen order;
    the dict only maps a normalized title to its slot. Never persisted.
    """

    def __init__(self) -> None:
        self.groups: List[TitleGroup] = []
        self._slots: Dict[str, int] = {}

    def add(self, record: SubscriberRecord, watch: Watch) -> None:
        key = normalize_title(watch.title)
        if not key:
            return
        slot = self._slots.get(key)
        if slot is None:
            slot = len(self.groups)
            self._slots[key] = slot
            self.groups.append(TitleGroup(key=key, title=watch.title.strip()))
        # channel may be None; the entry is kept so its progress still advances
        self.groups[slot].entries.append(
            GroupEntry(record=record, watch=watch, channel_id=record.delivery_channel_id)
        )

    def get(self, title: str) -> Optional[TitleGroup]:
        slot = self._slots.get(normalize_title(title))
        return self.groups[slot] if slot is not None else None

    def __iter__(self) -> Iterator[TitleGroup]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)


def group(records: Iterable[SubscriberRecord], kind: WatchKind) -> TitleIndex:
    index = TitleIndex()
    for rec in records:
        for watch in rec.watches(kind):
            index.add(rec, watch)
    return index
