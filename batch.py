"""Bookkeeping for batch writes that keep the valid part of a submission."""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class EntryResult:
    user_id: Optional[str]
    accepted: bool
    reason: Optional[str] = None


@dataclass
class BatchResult:
    results: List[EntryResult] = field(default_factory=list)

    @property
    def saved(self):
        return sum(1 for r in self.results if r.accepted)

    @property
    def dropped(self):
        return sum(1 for r in self.results if not r.accepted)

    def as_dict(self, message: str, detail: bool = False) -> dict:
        body = {"message": message, "saved": self.saved, "dropped": self.dropped}
        if detail:
            body["results"] = [{"user_id": r.user_id, "accepted": r.accepted, "reason": r.reason}
                               for r in self.results]
        return body


def screen_entries(entries: Iterable, visible: Iterable[str],
                   clean: Callable[[dict], Tuple[Optional[dict], Optional[str]]]
                   ) -> Tuple[Dict[str, dict], BatchResult]:
    """
    Splits a submitted batch into the entries that may be written and a
    result record for every entry.

    ``clean`` returns ``(values, None)`` for a well-formed entry or
    ``(None, reason)`` otherwise. Entries without a user id, malformed
    entries, and entries for students outside ``visible`` are dropped. When a
    user appears twice the later entry wins.
    """
    visible = set(visible)
    accepted: Dict[str, dict] = {}
    slots: Dict[str, int] = {}
    result = BatchResult()

    for entry in entries or []:
        user_id = entry.get("user_id") if isinstance(entry, dict) else None
        if not isinstance(user_id, str) or not user_id:
            result.results.append(EntryResult(None, False, "missing user_id"))
            continue

        values, reason = clean(entry)
        if values is None:
            result.results.append(EntryResult(user_id, False, reason))
            continue
        if user_id not in visible:
            result.results.append(EntryResult(user_id, False, "not in section scope"))
            continue

        if user_id in slots:
            result.results[slots[user_id]] = EntryResult(user_id, False, "superseded")
        slots[user_id] = len(result.results)
        accepted[user_id] = values
        result.results.append(EntryResult(user_id, True))

    for r in result.results:
        if not r.accepted:
            logger.debug(f"Dropped entry for {r.user_id}: {r.reason}")
    return accepted, result
