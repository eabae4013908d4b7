"""Generation grid layout.

A breadth-first walk starting at the topmost paternal ancestor gives every
reachable individual and family a row (generation) and a slot within that
row. Families share the row of their spouses, children sit one row below.
Husbands are placed left of their family, wives right of it.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable

from errors import DanglingReference, EmptyGraphError, TraversalBoundError
from gedcom_record import Record, RecordKind
from gedcom_utils import FamilyTree, get_family_data, get_individual_data

logger = logging.getLogger("famgrid.tree_layout")

# Anchor row before normalisation; any value works since rows are shifted to start at 0
INIT_LEVEL = -10
MAX_ANCESTOR_STEPS = 100


class RowBucket:
    """Ordered records sharing one row."""

    def __init__(self):
        self.order: list[Record] = []

    def __len__(self) -> int:
        return len(self.order)

    def __iter__(self):
        return iter(self.order)

    def __contains__(self, record: Record) -> bool:
        return self.index_of(record) > -1

    def index_of(self, record: Record | None) -> int:
        if record is None:
            return -1
        for index, existing in enumerate(self.order):
            if existing is record:
                return index
        return -1

    def add_after(self, new_element: Record, existing: Record | None) -> None:
        """Insert right of `existing`; append when it is not in this row."""
        index = self.index_of(existing)
        if index > -1:
            self.order.insert(index + 1, new_element)
        else:
            self.order.append(new_element)

    def add_before(self, new_element: Record, existing: Record | None) -> None:
        """Insert left of `existing`; append when it is not in this row."""
        index = self.index_of(existing)
        if index > -1:
            self.order.insert(index, new_element)
        else:
            self.order.append(new_element)


@dataclass
class TraversalState:
    visited: bool = False
    row: int | None = None


@dataclass
class Layout:
    """Result of one layout run."""
    rows: dict[int, RowBucket]
    anchor: Record
    states: dict[Record, TraversalState] = field(default_factory=dict)
    errors: list[DanglingReference] = field(default_factory=list)

    def row_of(self, record: Record) -> int | None:
        state = self.states.get(record)
        if state is None or not state.visited:
            return None
        return state.row

    def position_of(self, record: Record) -> tuple[int, int] | None:
        row = self.row_of(record)
        if row is None:
            return None
        order = self.rows[row].index_of(record)
        if order < 0:
            return None
        return row, order

    def placed(self) -> list[Record]:
        return [record for row in sorted(self.rows) for record in self.rows[row]]

    def to_rows(self) -> list[dict[str, Any]]:
        """Rows top to bottom, each with its nodes left to right."""
        result = []
        for row in sorted(self.rows):
            nodes = []
            for order, record in enumerate(self.rows[row]):
                if record.kind is RecordKind.FAMILY:
                    data = get_family_data(record)
                    node_type = "family"
                else:
                    data = get_individual_data(record)
                    node_type = "individual"
                nodes.append({"type": node_type, "row": row, "order": order, "data": data})
            result.append({"row": row, "nodes": nodes})
        return result


# ============================================================================
# Anchor discovery
# ============================================================================

def find_paternal_anchor(tree: FamilyTree, start: Record) -> Record:
    """
    Follow FAMC -> HUSB upwards from `start` until an individual has no
    resolvable father. Raises TraversalBoundError on a cyclic FAMC chain.
    """
    current = start
    for _ in range(MAX_ANCESTOR_STEPS):
        family = tree.get_family(_first_id(current, "FAMC"))
        father = tree.get_individual(_first_id(family, "HUSB")) if family else None
        if father is None:
            return current
        current = father
    logger.error(f"Ancestor walk from {start.id} exceeded {MAX_ANCESTOR_STEPS} steps")
    raise TraversalBoundError(start.id, MAX_ANCESTOR_STEPS)


def _first_id(record: Record | None, tag: str) -> str | None:
    if record is None:
        return None
    ids = record.reference_ids(tag)
    return ids[0] if ids else None


# ============================================================================
# Breadth-first traversal
# ============================================================================

class LayoutEngine:
    """One layout run over a tree. Traversal state lives in `self.states` only."""

    def __init__(self, tree: FamilyTree):
        self.tree = tree
        self.states: dict[Record, TraversalState] = {}
        self.rows: dict[int, RowBucket] = {}
        self.queue: deque[Record] = deque()
        self.errors: list[DanglingReference] = []

    def _state(self, record: Record) -> TraversalState:
        state = self.states.get(record)
        if state is None:
            state = TraversalState()
            self.states[record] = state
        return state

    def _report(self, missing_id: str, referrer: Record, tag: str) -> None:
        fault = DanglingReference(missing_id, referrer.id, tag)
        if fault not in self.errors:
            logger.error(fault.message)
            self.errors.append(fault)

    def _resolve(self, ref_id: str, referrer: Record, tag: str, kind: RecordKind) -> Record | None:
        if kind is RecordKind.FAMILY:
            target = self.tree.get_family(ref_id)
        else:
            target = self.tree.get_individual(ref_id)
        if target is None:
            self._report(ref_id, referrer, tag)
        return target

    def run(self, start: Record | None = None) -> Layout:
        if start is None:
            start = next(iter(self.tree.individuals.values()), None)
        if start is None:
            logger.warning("Nothing to display: the tree has no individuals")
            raise EmptyGraphError("the tree has no individuals")

        anchor = find_paternal_anchor(self.tree, start)
        logger.debug(f"Layout anchor is {anchor.id}")
        self._state(anchor).row = INIT_LEVEL
        self.queue.append(anchor)

        while self.queue:
            element = self.queue.popleft()
            state = self._state(element)
            if state.visited:
                continue
            state.visited = True

            self._add_next_elements(element, state.row)
            self._place(element, state.row)

        self._normalize()
        logger.info(
            f"Layout placed {sum(len(row) for row in self.rows.values())} nodes "
            f"in {len(self.rows)} rows ({len(self.errors)} integrity errors)"
        )
        return Layout(rows=self.rows, anchor=anchor, states=self.states, errors=self.errors)

    def _add_next_elements(self, element: Record, row: int) -> None:
        if element.kind is RecordKind.FAMILY:
            self._enqueue(element, "HUSB", row, RecordKind.INDIVIDUAL)
            self._enqueue(element, "WIFE", row, RecordKind.INDIVIDUAL)
            self._enqueue(element, "CHIL", row + 1, RecordKind.INDIVIDUAL)
        elif element.kind is RecordKind.INDIVIDUAL:
            self._enqueue(element, "FAMS", row, RecordKind.FAMILY)
            self._enqueue(element, "FAMC", row - 1, RecordKind.FAMILY)

    def _enqueue(self, source: Record, tag: str, row: int, kind: RecordKind) -> None:
        batch = []
        for ref_id in source.reference_ids(tag):
            target = self._resolve(ref_id, source, tag, kind)
            if target is None:
                continue
            state = self._state(target)
            if state.visited:
                continue
            # Row is fixed at enqueue time; a later enqueue before the dequeue wins
            state.row = row
            batch.append(target)
        self.queue.extend(sort_batch(batch))

    def _place(self, element: Record, row: int) -> None:
        prev_element = None
        next_element = None
        if element.kind is RecordKind.FAMILY:
            prev_element = self._visited_member(element, "HUSB")
            next_element = self._visited_member(element, "WIFE")
        elif element.kind is RecordKind.INDIVIDUAL:
            for family_id in element.reference_ids("FAMS"):
                family = self._resolve(family_id, element, "FAMS", RecordKind.FAMILY)
                if family is None or not self._state(family).visited:
                    continue
                if family.has_reference("HUSB", element.id):
                    next_element = family
                elif family.has_reference("WIFE", element.id):
                    prev_element = family
                if next_element or prev_element:
                    break

        bucket = self.rows.get(row)
        if bucket is None:
            bucket = RowBucket()
            self.rows[row] = bucket
        if prev_element:
            bucket.add_after(element, prev_element)
        else:
            bucket.add_before(element, next_element)

    def _visited_member(self, family: Record, tag: str) -> Record | None:
        for member_id in family.reference_ids(tag):
            member = self._resolve(member_id, family, tag, RecordKind.INDIVIDUAL)
            if member is not None and self._state(member).visited:
                return member
        return None

    def _normalize(self) -> None:
        """Shift every row so the smallest one becomes 0."""
        if not self.rows:
            return
        minimum = min(self.rows)
        shifted = {}
        for key in sorted(self.rows):
            bucket = self.rows[key]
            for record in bucket:
                self.states[record].row -= minimum
            shifted[key - minimum] = bucket
        self.rows = shifted


def order_value(record: Record) -> float | None:
    raw = record.value_of("ORDER")
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def sort_batch(batch: Iterable[Record]) -> list[Record]:
    """Sort siblings by ORDER when every one of them has a numeric ORDER."""
    batch = list(batch)
    keys = [order_value(record) for record in batch]
    if batch and all(key is not None for key in keys):
        return [record for _, record in sorted(zip(keys, batch), key=lambda pair: pair[0])]
    return batch


def compute_layout(tree: FamilyTree, start: Record | None = None) -> Layout:
    """Lay out `tree` as a generation grid. A fresh side table is used on every call."""
    return LayoutEngine(tree).run(start)
