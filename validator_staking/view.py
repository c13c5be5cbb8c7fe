"""Filter, sort and paginate validator records for display.

The module-level functions are pure. :class:`ValidatorView` keeps the search
term, sort key and page index and applies the page reset and clamp rules
whenever one of them, or the underlying records, change.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Sequence, Tuple

from .models import ValidatorRecord

PAGE_SIZE = 12


class SortCriterion(str, Enum):
    COMMISSION = "commission"
    ACTIVE_STAKE = "activeStake"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortKey:
    criterion: SortCriterion = SortCriterion.COMMISSION
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def parse(cls, value: str) -> "SortKey":
        """Parse an option string such as ``"commission-asc"`` or ``"activeStake-desc"``."""
        criterion, _, direction = value.partition("-")
        try:
            return cls(SortCriterion(criterion), SortDirection(direction or SortDirection.ASC.value))
        except ValueError as exc:
            raise ValueError(f"Unknown sort option: {value!r}") from exc

    def __str__(self) -> str:
        return f"{self.criterion.value}-{self.direction.value}"


SORT_OPTIONS: Tuple[str, ...] = tuple(
    str(SortKey(criterion, direction)) for criterion in SortCriterion for direction in SortDirection
)


def matches_search(record: ValidatorRecord, search: str) -> bool:
    term = search.lower()
    if not term:
        return True
    return term in str(record.address).lower() or term in str(record.node_identity).lower()


def filter_validators(records: Iterable[ValidatorRecord], search: str = "") -> Tuple[ValidatorRecord, ...]:
    return tuple(record for record in records if matches_search(record, search))


def _sort_value(record: ValidatorRecord, criterion: SortCriterion):
    if criterion is SortCriterion.COMMISSION:
        return record.commission_percent
    return record.active_stake_units


def sort_validators(records: Iterable[ValidatorRecord], sort_key: SortKey = SortKey()) -> Tuple[ValidatorRecord, ...]:
    # reverse=True preserves input order among equal keys.
    return tuple(
        sorted(
            records,
            key=lambda record: _sort_value(record, sort_key.criterion),
            reverse=sort_key.direction is SortDirection.DESC,
        )
    )


def total_pages(count: int, page_size: int = PAGE_SIZE) -> int:
    return math.ceil(count / page_size) if count > 0 else 0


def paginate(records: Sequence[ValidatorRecord], page: int, page_size: int = PAGE_SIZE) -> Tuple[ValidatorRecord, ...]:
    start = (page - 1) * page_size
    return tuple(records[start : start + page_size])


def project(
    records: Iterable[ValidatorRecord],
    search: str = "",
    sort_key: SortKey = SortKey(),
) -> Tuple[ValidatorRecord, ...]:
    return sort_validators(filter_validators(records, search), sort_key)


class ValidatorView:
    def __init__(
        self,
        records: Iterable[ValidatorRecord] = (),
        page_size: int = PAGE_SIZE,
        sort_key: SortKey = SortKey(),
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self._records: Tuple[ValidatorRecord, ...] = tuple(records)
        self._search = ""
        self._sort_key = sort_key
        self._page = 1
        self._visible = project(self._records, self._search, self._sort_key)

    @property
    def search(self) -> str:
        return self._search

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    @property
    def page(self) -> int:
        return self._page

    @property
    def records(self) -> Tuple[ValidatorRecord, ...]:
        return self._records

    @property
    def visible(self) -> Tuple[ValidatorRecord, ...]:
        """All filtered and sorted records, across every page."""
        return self._visible

    @property
    def total_pages(self) -> int:
        return total_pages(len(self._visible), self.page_size)

    @property
    def page_items(self) -> Tuple[ValidatorRecord, ...]:
        return paginate(self._visible, self._page, self.page_size)

    def set_records(self, records: Iterable[ValidatorRecord]) -> None:
        previous_count = len(self._visible)
        self._records = tuple(records)
        self._visible = project(self._records, self._search, self._sort_key)
        if len(self._visible) < previous_count:
            self._page = self._clamp(self._page)

    def set_search(self, search: str) -> None:
        if search == self._search:
            return
        self._search = search
        self._refresh()

    def set_sort(self, sort_key: SortKey) -> None:
        if sort_key == self._sort_key:
            return
        self._sort_key = sort_key
        self._refresh()

    def go_to_page(self, page: int) -> int:
        self._page = self._clamp(page)
        return self._page

    def next_page(self) -> int:
        return self.go_to_page(self._page + 1)

    def previous_page(self) -> int:
        return self.go_to_page(self._page - 1)

    def _refresh(self) -> None:
        self._visible = project(self._records, self._search, self._sort_key)
        self._page = 1

    def _clamp(self, page: int) -> int:
        return min(max(page, 1), max(self.total_pages, 1))

    def page_rows(self) -> List[dict]:
        return [record.to_row() for record in self.page_items]
