from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from scenebundle.core.settings import DEFAULT_INCOMPATIBLE_FILTERS
from scenebundle.models import SkippedFilterRecord

logger = logging.getLogger(__name__)


class FilterCompatibilityFilter:
    """
    Drops filters that cannot travel with a bundle (e.g. VST plug-ins that
    need a locally installed library) and remembers what was dropped.
    """

    def __init__(self, incompatible_ids: Optional[Iterable[str]] = None):
        self.incompatible_ids = frozenset(
            DEFAULT_INCOMPATIBLE_FILTERS if incompatible_ids is None else incompatible_ids
        )
        self.skipped: List[SkippedFilterRecord] = []

    def reset(self) -> None:
        self.skipped = []

    def is_incompatible(self, filter_obj: Any) -> bool:
        if not isinstance(filter_obj, dict):
            return False
        filter_id = filter_obj.get("id")
        return isinstance(filter_id, str) and filter_id in self.incompatible_ids

    def apply(self, source_name: str, filters: List[Any]) -> List[SkippedFilterRecord]:
        """
        Removes incompatible entries from `filters` in place.
        Retained filters keep their relative order.
        Returns the records added by this call.
        """
        kept: List[Any] = []
        removed: List[SkippedFilterRecord] = []

        for f in filters:
            if not self.is_incompatible(f):
                kept.append(f)
                continue

            record = SkippedFilterRecord(
                source_name=source_name,
                filter_name=str(f.get("name", "")),
            )
            removed.append(record)
            logger.info(
                "Incompatible filter removed: %s on source %s",
                record.filter_name,
                record.source_name,
            )

        filters[:] = kept
        self.skipped.extend(removed)
        return removed
