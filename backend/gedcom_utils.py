"""GEDCOM line parsing, export and the loaded-tree session."""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from gedcom_record import ROOT_LEVEL, ROOT_TAG, Record, RecordKind
from graph_index import GraphIndex

logger = logging.getLogger("famgrid.gedcom_utils")

ID_MARKER = "@"
ID_IN_VALUE = re.compile(r"@[^@]+@")

# Shown when nothing has been loaded yet: you and your parents
DEFAULT_TREE_LINES = [
    "0 HEAD",
    "1 SOUR famgrid",
    "1 GEDC",
    "2 VERS 5.5.1",
    "2 FORM LINEAGE-LINKED",
    "1 CHAR UTF-8",
    "0 @I1@ INDI",
    "1 NAME You",
    "1 SEX M",
    "1 FAMC @F1@",
    "0 @I2@ INDI",
    "1 NAME Father",
    "1 SEX M",
    "1 FAMS @F1@",
    "0 @I3@ INDI",
    "1 NAME Mother",
    "1 SEX F",
    "1 FAMS @F1@",
    "0 @F1@ FAM",
    "1 HUSB @I2@",
    "1 WIFE @I3@",
    "1 CHIL @I1@",
    "0 TRLR",
]


# ============================================================================
# Line Parsing
# ============================================================================

class LineParseError(ValueError):
    """A single line could not be tokenised."""


@dataclass
class ParseReport:
    """What happened while parsing: counts and the lines that were skipped."""
    line_count: int = 0
    record_count: int = 0
    skipped_lines: list[tuple[int, str]] = field(default_factory=list)
    reinterpreted_ids: list[tuple[int, str]] = field(default_factory=list)
    used_default: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "lineCount": self.line_count,
            "recordCount": self.record_count,
            "skippedLines": [{"line": n, "text": text} for n, text in self.skipped_lines],
            "reinterpretedIds": [{"line": n, "text": text} for n, text in self.reinterpreted_ids],
            "usedDefault": self.used_default,
        }


def format_line(line: str) -> tuple[Record, bool]:
    """
    Turn one `<level> [<id>] <tag> [<value>]` line into a detached Record.

    Returns the record and whether a value that merely contains a pointer was
    moved into the id slot. A plain pointer value (`1 FAMC @F1@`) always ends
    up in `record.id`.
    """
    tokens = line.split(" ")
    level_token = tokens.pop(0)
    try:
        level = int(level_token)
    except ValueError:
        raise LineParseError(f"level '{level_token}' is not a number") from None
    if level < 0:
        raise LineParseError(f"negative level {level}")

    while tokens and tokens[0] == "":
        tokens.pop(0)
    if not tokens:
        raise LineParseError("missing tag")

    record_id = None
    id_first = None
    tmp = tokens.pop(0)
    if tmp.startswith(ID_MARKER):
        record_id = tmp
        id_first = True
        while tokens and tokens[0] == "":
            tokens.pop(0)
        if not tokens:
            raise LineParseError(f"missing tag after id {record_id}")
        tmp = tokens.pop(0)

    tag = tmp
    value = None
    reinterpreted = False
    if tokens:
        value = " ".join(tokens)
        if ID_IN_VALUE.search(value):
            # `1 NOTE see @N1@` becomes an id too; only plain pointers are expected
            reinterpreted = ID_IN_VALUE.fullmatch(value) is None
            record_id = value
            id_first = False
            value = None

    return Record(level, tag, id=record_id, value=value, id_first=id_first), reinterpreted


def attach_record(element: Record, last_element: Record) -> Record:
    """Hang `element` under the nearest preceding record one level above it."""
    parent = last_element
    while parent.level > element.level - 1:
        parent = parent.parent
    parent.add_child(element)
    return element


def new_root() -> Record:
    return Record(ROOT_LEVEL, ROOT_TAG, kind=RecordKind.ROOT)


def parse_gedcom_lines(lines: Iterable[str] | None, report: ParseReport | None = None) -> Record:
    """
    Build the record tree from GEDCOM lines and return its synthetic root.

    Blank lines are ignored; a malformed line is logged and skipped without
    aborting the rest of the file. With no lines at all the starter tree is
    used instead.
    """
    report = report if report is not None else ParseReport()
    lines = list(lines) if lines is not None else []
    if not lines:
        logger.info("No GEDCOM lines supplied, using the starter tree")
        lines = list(DEFAULT_TREE_LINES)
        report.used_default = True

    root = new_root()
    last_element = root
    for line_number, raw in enumerate(lines, start=1):
        line = str(raw).strip()
        if not line:
            continue
        report.line_count += 1
        try:
            element, reinterpreted = format_line(line)
        except LineParseError as e:
            logger.warning(f"Skipping line {line_number} ->{line}<-: {e}")
            report.skipped_lines.append((line_number, line))
            continue
        if reinterpreted:
            logger.warning(
                f"Line {line_number} carries a pointer in its value, treating it as id: {line}"
            )
            report.reinterpreted_ids.append((line_number, line))
        last_element = attach_record(element, last_element)
        report.record_count += 1

    logger.debug(
        f"Parsed {report.record_count} records, skipped {len(report.skipped_lines)} lines"
    )
    return root


def split_gedcom_text(content: str) -> list[str]:
    if content.startswith("\ufeff"):
        content = content[1:]
    return content.splitlines()


# ============================================================================
# Export GEDCOM
# ============================================================================

def export_gedcom_lines(root: Record) -> list[str]:
    """Walk the tree back into GEDCOM lines: HEAD first, TRLR last."""
    first: list[str] = []
    middle: list[str] = []
    last: list[str] = []

    def record_to_lines(record: Record, level: int, out: list[str]) -> None:
        out.append(record.to_line(level))
        for child in record.iter_children():
            record_to_lines(child, level + 1, out)

    for tag, slot in root.iter_fields():
        target = first if tag == "HEAD" else last if tag == "TRLR" else middle
        for record in slot.records:
            record_to_lines(record, 0, target)

    return first + middle + last


def export_gedcom_content(source: "FamilyTree | Record") -> str:
    """Export the current tree state to GEDCOM text."""
    root = source.root if isinstance(source, FamilyTree) else source
    return "\n".join(export_gedcom_lines(root)) + "\n"


# ============================================================================
# Loaded Tree
# ============================================================================

class FamilyTree:
    """The record tree plus its id index; the unit every operation works on."""

    def __init__(self, root: Record | None = None, report: ParseReport | None = None):
        self.root = root if root is not None else new_root()
        self.report = report if report is not None else ParseReport()
        self.index = GraphIndex().rebuild(self.root)

    @property
    def individuals(self) -> dict[str, Record]:
        return self.index.individuals

    @property
    def families(self) -> dict[str, Record]:
        return self.index.families

    def reindex(self) -> GraphIndex:
        """Rebuild the id maps after a structural change."""
        return self.index.rebuild(self.root)

    def get_individual(self, individual_id: str | None) -> Record | None:
        return self.index.get_individual(individual_id)

    def get_family(self, family_id: str | None) -> Record | None:
        return self.index.get_family(family_id)

    def add_top_level(self, record: Record) -> Record:
        """Attach a level 0 record, keeping TRLR as the last entry."""
        trailer = self.root.remove_field("TRLR")
        self.root.add_child(record)
        for trl in trailer:
            self.root.add_child(trl)
        return record

    def add_individual_record(self, record: Record) -> Record:
        self.add_top_level(record)
        self.index.individuals[record.id] = record
        return record

    def add_family_record(self, record: Record) -> Record:
        self.add_top_level(record)
        self.index.families[record.id] = record
        return record

    def remove_top_level(self, record: Record) -> bool:
        removed = self.root.remove_child(record)
        if record.kind is RecordKind.INDIVIDUAL:
            self.index.individuals.pop(record.id, None)
        elif record.kind is RecordKind.FAMILY:
            self.index.families.pop(record.id, None)
        return removed

    def to_gedcom(self) -> str:
        return export_gedcom_content(self.root)


def parse_gedcom_content(content: str | None) -> FamilyTree:
    """Parse GEDCOM content from a string."""
    report = ParseReport()
    lines = split_gedcom_text(content) if content else []
    root = parse_gedcom_lines(lines, report)
    return FamilyTree(root, report)


def parse_gedcom_file(file_path: str | Path) -> FamilyTree:
    """Parse a GEDCOM file, falling back to latin-1 when it is not UTF-8."""
    data = Path(file_path).read_bytes()
    try:
        content = data.decode("utf-8")
    except UnicodeDecodeError:
        logger.info(f"UTF-8 decode failed for {file_path}, trying latin-1 encoding")
        content = data.decode("latin-1")
    return parse_gedcom_content(content)


# ============================================================================
# Helper: Find individual by ID or Name
# ============================================================================

def normalize_xref(identifier: str) -> str:
    identifier = identifier.strip()
    if not identifier.startswith(ID_MARKER):
        identifier = f"@{identifier}@"
    return identifier


def split_name(name_value: str | None) -> tuple[str, str]:
    """Split a GEDCOM name `Given /Surname/` into (given, surname)."""
    if not name_value:
        return "", ""
    if "/" in name_value:
        given, _, rest = name_value.partition("/")
        surname = rest.split("/", 1)[0]
        return given.strip(), surname.strip()
    return name_value.strip(), ""


def display_name(record: Record) -> str:
    given, surname = split_name(record.value_of("NAME"))
    return f"{given} {surname}".strip()


def find_individual_by_id(tree: FamilyTree, person_id: str) -> Record | None:
    """Find an individual by their GEDCOM ID (pointer)."""
    return tree.get_individual(normalize_xref(person_id))


def find_individual_by_name(tree: FamilyTree, name: str) -> Record | None:
    """Find an individual by name (case-insensitive, exact match preferred)."""
    name_lower = name.lower().strip()
    partial = None
    for individual in tree.individuals.values():
        full_name = display_name(individual).lower()
        if full_name == name_lower:
            return individual
        if partial is None and name_lower and name_lower in full_name:
            partial = individual
    return partial


def find_individual(tree: FamilyTree, identifier: str) -> Record | None:
    """
    Find an individual by ID or name.
    First tries the ID (e.g., '@I1@' or 'I1'), then falls back to name search.
    """
    identifier = identifier.strip()
    if not identifier:
        return None
    result = find_individual_by_id(tree, identifier)
    if result:
        return result
    return find_individual_by_name(tree, identifier)


# ============================================================================
# Summaries for the API
# ============================================================================

def extract_year(date_str: str | None) -> int | None:
    """Extract a four digit year from a GEDCOM date string."""
    if not date_str:
        return None
    match = re.search(r"\b(\d{4})\b", date_str)
    return int(match.group(1)) if match else None


def get_individual_data(individual: Record) -> dict[str, Any]:
    """Extract display data from an individual record."""
    given, surname = split_name(individual.value_of("NAME"))
    birth = individual.get("BIRT")
    death = individual.get("DEAT")
    return {
        "id": individual.id,
        "firstName": given,
        "lastName": surname,
        "fullName": f"{given} {surname}".strip(),
        "gender": individual.value_of("SEX"),
        "birthYear": extract_year(birth.value_of("DATE")) if birth else None,
        "birthPlace": birth.value_of("PLAC") if birth else None,
        "deathYear": extract_year(death.value_of("DATE")) if death else None,
        "deathPlace": death.value_of("PLAC") if death else None,
        "familiesAsSpouse": individual.reference_ids("FAMS"),
        "familiesAsChild": individual.reference_ids("FAMC"),
    }


def get_family_data(family: Record) -> dict[str, Any]:
    """Extract display data from a family record."""
    marriage = family.get("MARR")
    return {
        "id": family.id,
        "husbands": family.reference_ids("HUSB"),
        "wives": family.reference_ids("WIFE"),
        "children": family.reference_ids("CHIL"),
        "marriageDate": marriage.value_of("DATE") if marriage else None,
        "marriagePlace": marriage.value_of("PLAC") if marriage else None,
    }


def get_all_individuals(tree: FamilyTree) -> list[dict[str, Any]]:
    """Get a list of all individuals in the loaded tree."""
    return [get_individual_data(indi) for indi in tree.individuals.values()]


def get_all_families(tree: FamilyTree) -> list[dict[str, Any]]:
    return [get_family_data(fam) for fam in tree.families.values()]


def get_parents(tree: FamilyTree, individual: Record) -> list[Record]:
    """Parents from every family the individual is a child of."""
    parents = []
    for family_id in individual.reference_ids("FAMC"):
        family = tree.get_family(family_id)
        if not family:
            continue
        for parent_id in family.reference_ids("HUSB") + family.reference_ids("WIFE"):
            parent = tree.get_individual(parent_id)
            if parent and parent not in parents:
                parents.append(parent)
    return parents


def get_spouses(tree: FamilyTree, individual: Record) -> list[Record]:
    spouses = []
    for family_id in individual.reference_ids("FAMS"):
        family = tree.get_family(family_id)
        if not family:
            continue
        for spouse_id in family.reference_ids("HUSB") + family.reference_ids("WIFE"):
            spouse = tree.get_individual(spouse_id)
            if spouse and spouse is not individual and spouse not in spouses:
                spouses.append(spouse)
    return spouses


def get_children(tree: FamilyTree, individual: Record) -> list[Record]:
    children = []
    for family_id in individual.reference_ids("FAMS"):
        family = tree.get_family(family_id)
        if not family:
            continue
        for child_id in family.reference_ids("CHIL"):
            child = tree.get_individual(child_id)
            if child and child not in children:
                children.append(child)
    return children
