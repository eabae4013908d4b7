"""GEDCOM record tree: one Record per line, children grouped by tag."""

from enum import Enum
from typing import Iterator

from errors import TraversalBoundError


ROOT_LEVEL = -1
ROOT_TAG = "TOP"
MAX_PARENT_STEPS = 100

# Relationship pointers are always kept as sequences (multiple marriages, children)
RELATIONSHIP_TAGS = frozenset({"FAMS", "FAMC", "CHIL", "HUSB", "WIFE"})


class RecordKind(Enum):
    ROOT = "root"
    INDIVIDUAL = "individual"
    FAMILY = "family"
    FIELD = "field"


class FieldKind(Enum):
    ONE = "one"
    MANY = "many"


def record_kind_for(level: int, tag: str) -> RecordKind:
    """Classify a record from its level and tag."""
    if level == ROOT_LEVEL:
        return RecordKind.ROOT
    if level == 0 and tag == "INDI":
        return RecordKind.INDIVIDUAL
    if level == 0 and tag == "FAM":
        return RecordKind.FAMILY
    return RecordKind.FIELD


class Field:
    """A tag slot on a record: a single child or an ordered run of children."""

    def __init__(self, kind: FieldKind, records: list["Record"] | None = None):
        self.kind = kind
        self.records: list[Record] = records if records is not None else []

    @property
    def is_many(self) -> bool:
        return self.kind is FieldKind.MANY

    def __repr__(self) -> str:
        return f"Field({self.kind.value}, {self.records!r})"


class Record:
    """A node in the parsed hierarchy.

    `id` holds the xref of level 0 entities (`@I1@`) and, for pointer fields
    such as FAMC or CHIL, the id they point at. `id_first` records whether the
    id is written before the tag; None means "before the tag at level 0 only".
    """

    def __init__(
        self,
        level: int,
        tag: str,
        id: str | None = None,
        value: str | None = None,
        kind: RecordKind | None = None,
        id_first: bool | None = None,
    ):
        self.level = level
        self.tag = tag
        self.id = id
        self.value = value
        self.kind = kind if kind is not None else record_kind_for(level, tag)
        self.id_first = id_first
        self.parent: Record | None = None
        self._fields: dict[str, Field] = {}

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __contains__(self, tag: str) -> bool:
        return tag in self._fields

    def __getitem__(self, tag: str) -> "Record":
        field = self._fields.get(tag)
        if field is None or not field.records:
            raise KeyError(tag)
        return field.records[0]

    def get(self, tag: str) -> "Record | None":
        """First child under `tag`, or None."""
        field = self._fields.get(tag)
        if field is None or not field.records:
            return None
        return field.records[0]

    def get_all(self, tag: str) -> list["Record"]:
        """All children under `tag` in insertion order."""
        field = self._fields.get(tag)
        if field is None:
            return []
        return list(field.records)

    def field(self, tag: str) -> Field | None:
        return self._fields.get(tag)

    def value_of(self, tag: str, default: str | None = None) -> str | None:
        child = self.get(tag)
        if child is None or child.value is None:
            return default
        return child.value

    def reference_ids(self, tag: str) -> list[str]:
        """Ids carried by the pointer children under `tag` (FAMS, CHIL, ...)."""
        return [child.id for child in self.get_all(tag) if child.id]

    def has_reference(self, tag: str, ref_id: str) -> bool:
        return ref_id in self.reference_ids(tag)

    def iter_fields(self) -> Iterator[tuple[str, Field]]:
        return iter(list(self._fields.items()))

    def iter_children(self) -> Iterator["Record"]:
        for _, field in self.iter_fields():
            yield from list(field.records)

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def add_child(self, child: "Record") -> "Record":
        """Attach `child` under its tag.

        An existing run grows, a single child is promoted to a run of two, and
        relationship tags always start as a run.
        """
        field = self._fields.get(child.tag)
        if field is None:
            kind = FieldKind.MANY if child.tag in RELATIONSHIP_TAGS else FieldKind.ONE
            self._fields[child.tag] = Field(kind, [child])
        elif field.is_many:
            field.records.append(child)
        else:
            field.kind = FieldKind.MANY
            field.records.append(child)
        child.parent = self
        return child

    def set_child(self, child: "Record") -> "Record":
        """Replace whatever is stored under the child's tag with `child` alone."""
        old = self._fields.get(child.tag)
        if old is not None:
            for record in old.records:
                record.parent = None
        kind = FieldKind.MANY if child.tag in RELATIONSHIP_TAGS else FieldKind.ONE
        self._fields[child.tag] = Field(kind, [child])
        child.parent = self
        return child

    def remove_child(self, child: "Record") -> bool:
        field = self._fields.get(child.tag)
        if field is None:
            return False
        for index, record in enumerate(field.records):
            if record is child:
                del field.records[index]
                child.parent = None
                if not field.records:
                    del self._fields[child.tag]
                return True
        return False

    def remove_field(self, tag: str) -> list["Record"]:
        field = self._fields.pop(tag, None)
        if field is None:
            return []
        for record in field.records:
            record.parent = None
        return field.records

    def remove_reference(self, tag: str, ref_id: str) -> bool:
        """Drop the first pointer child under `tag` whose id is `ref_id`."""
        for child in self.get_all(tag):
            if child.id == ref_id:
                return self.remove_child(child)
        return False

    def add_reference(self, tag: str, ref_id: str) -> "Record":
        return self.add_child(Record(self.level + 1, tag, id=ref_id))

    # ------------------------------------------------------------------

    def to_line(self, level: int | None = None) -> str:
        """Render this record as one GEDCOM line (children not included)."""
        level = self.level if level is None else level
        id_first = self.id_first if self.id_first is not None else level == 0
        parts = [str(level)]
        if id_first and self.id:
            parts.append(self.id)
        parts.append(self.tag)
        if not id_first and self.id:
            parts.append(self.id)
        if self.value:
            parts.append(self.value)
        return " ".join(parts)

    def __repr__(self) -> str:
        return f"Record({self.to_line()!r})"


def find_root(record: Record) -> Record:
    """Walk parent links up to the synthetic root."""
    iterator = record
    steps = 0
    while iterator.kind is not RecordKind.ROOT:
        if iterator.parent is None:
            return iterator
        iterator = iterator.parent
        steps += 1
        if steps >= MAX_PARENT_STEPS:
            raise TraversalBoundError(record.id, steps)
    return iterator
