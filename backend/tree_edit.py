"""Editing the loaded tree: adding relatives, deleting nodes, changing fields."""

import logging
import re

from errors import InvalidMutationError
from gedcom_record import RELATIONSHIP_TAGS, Record, RecordKind
from gedcom_utils import FamilyTree

logger = logging.getLogger("famgrid.tree_edit")

MONTHS = ["JAN", "FEB", "MAR", "APR", "MAY", "JUN",
          "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]


# ============================================================================
# ID generation
# ============================================================================

def get_individual_id(number: int) -> str:
    return f"@I{number}@"


def get_family_id(number: int) -> str:
    return f"@F{number}@"


def next_individual_id(tree: FamilyTree) -> str:
    """First free `@I<n>@` counting up from the number of individuals + 1."""
    next_id = len(tree.individuals) + 1
    while get_individual_id(next_id) in tree.individuals:
        next_id += 1
    return get_individual_id(next_id)


def next_family_id(tree: FamilyTree) -> str:
    next_id = len(tree.families) + 1
    while get_family_id(next_id) in tree.families:
        next_id += 1
    return get_family_id(next_id)


# ============================================================================
# Record creation
# ============================================================================

def create_new_individual(tree: FamilyTree, name: str | None = None, sex: str | None = None) -> Record:
    """Create an INDI record with NAME (and SEX when known) and register it."""
    individual = Record(0, "INDI", id=next_individual_id(tree))
    individual.add_child(Record(1, "NAME", value=name.strip() if name and name.strip() else None))
    if sex:
        individual.add_child(Record(1, "SEX", value=sex))
    tree.add_individual_record(individual)
    logger.info(f"Created individual {individual.id} ({name or 'unnamed'})")
    return individual


def create_new_family(tree: FamilyTree) -> Record:
    family = Record(0, "FAM", id=next_family_id(tree))
    tree.add_family_record(family)
    logger.info(f"Created family {family.id}")
    return family


def _require_kind(record: Record, kind: RecordKind, operation: str) -> None:
    if record.kind is not kind:
        raise InvalidMutationError(
            f"{operation} needs an {kind.value} selection",
            f"got {record.tag} {record.id}",
        )


def check_single_line(*values: str | None) -> None:
    """Values are written on one GEDCOM line; a line break would start a new record."""
    for value in values:
        if value and ("\n" in value or "\r" in value):
            raise InvalidMutationError("Values cannot contain line breaks", repr(value))


def spouse_slot(individual: Record) -> str:
    """HUSB for SEX M, WIFE otherwise (including no SEX at all)."""
    return "HUSB" if individual.value_of("SEX") == "M" else "WIFE"


def opposite_sex(individual: Record) -> str:
    return "F" if individual.value_of("SEX") == "M" else "M"


def create_or_get_family_of_child(tree: FamilyTree, individual: Record) -> Record:
    """
    The family `individual` is a child of; one is created (and linked both
    ways) when there is none. Only the first FAMC is considered.
    """
    family_id = next(iter(individual.reference_ids("FAMC")), None)
    if family_id is None:
        logger.debug(f"Creating a family for child {individual.id}")
        family = create_new_family(tree)
        individual.add_reference("FAMC", family.id)
        family.add_reference("CHIL", individual.id)
        return family

    family = tree.get_family(family_id)
    if family is None:
        raise InvalidMutationError(
            f"Family {family_id} referenced by {individual.id} does not exist"
        )
    return family


def create_or_get_family_of_partner(tree: FamilyTree, individual: Record) -> Record:
    """The first family `individual` is a spouse in, created when missing."""
    family_id = next(iter(individual.reference_ids("FAMS")), None)
    if family_id is None:
        logger.debug(f"Creating a family for partner {individual.id}")
        family = create_new_family(tree)
        individual.add_reference("FAMS", family.id)
        family.add_reference(spouse_slot(individual), individual.id)
        return family

    family = tree.get_family(family_id)
    if family is None:
        raise InvalidMutationError(
            f"Family {family_id} referenced by {individual.id} does not exist"
        )
    return family


# ============================================================================
# Adding relatives
# ============================================================================

def add_spouse(tree: FamilyTree, individual: Record, name: str | None = None, sex: str | None = None) -> Record:
    """
    Add a partner to the first marriage of `individual` (creating it if needed).
    The partner's sex defaults to the opposite of the selected individual's.
    """
    _require_kind(individual, RecordKind.INDIVIDUAL, "Adding a spouse")
    check_single_line(name, sex)
    family = create_or_get_family_of_partner(tree, individual)
    partner = create_new_individual(tree, name, sex or opposite_sex(individual))
    partner.add_reference("FAMS", family.id)
    family.add_reference(spouse_slot(partner), partner.id)
    tree.reindex()
    logger.info(f"Added spouse {partner.id} to {individual.id} in {family.id}")
    return partner


def add_child_to_family(tree: FamilyTree, family: Record, name: str | None = None, sex: str | None = None) -> Record:
    _require_kind(family, RecordKind.FAMILY, "Adding a child to a family")
    check_single_line(name, sex)
    child = create_new_individual(tree, name, sex)
    child.add_reference("FAMC", family.id)
    family.add_reference("CHIL", child.id)
    tree.reindex()
    logger.info(f"Added child {child.id} to {family.id}")
    return child


def add_child(tree: FamilyTree, selected: Record, name: str | None = None, sex: str | None = None) -> Record:
    """Add a child to a family, or to the first marriage of an individual."""
    if selected.kind is RecordKind.FAMILY:
        return add_child_to_family(tree, selected, name, sex)
    _require_kind(selected, RecordKind.INDIVIDUAL, "Adding a child")
    check_single_line(name, sex)
    family = create_or_get_family_of_partner(tree, selected)
    return add_child_to_family(tree, family, name, sex)


def add_sibling(tree: FamilyTree, individual: Record, name: str | None = None, sex: str | None = None) -> Record:
    _require_kind(individual, RecordKind.INDIVIDUAL, "Adding a sibling")
    check_single_line(name, sex)
    family = create_or_get_family_of_child(tree, individual)
    sibling = create_new_individual(tree, name, sex)
    family.add_reference("CHIL", sibling.id)
    sibling.add_reference("FAMC", family.id)
    tree.reindex()
    logger.info(f"Added sibling {sibling.id} to {individual.id} in {family.id}")
    return sibling


def add_parents(
    tree: FamilyTree,
    individual: Record,
    father_name: str | None = None,
    mother_name: str | None = None,
) -> list[Record]:
    """Fill whichever of father and mother is missing. Returns the new parents."""
    _require_kind(individual, RecordKind.INDIVIDUAL, "Adding parents")
    check_single_line(father_name, mother_name)
    family = create_or_get_family_of_child(tree, individual)
    created = []
    if family.reference_ids("HUSB"):
        logger.debug(f"Family {family.id} already has a husband")
    else:
        father = create_new_individual(tree, father_name, "M")
        father.add_reference("FAMS", family.id)
        family.add_reference("HUSB", father.id)
        created.append(father)
    if family.reference_ids("WIFE"):
        logger.debug(f"Family {family.id} already has a wife")
    else:
        mother = create_new_individual(tree, mother_name, "F")
        mother.add_reference("FAMS", family.id)
        family.add_reference("WIFE", mother.id)
        created.append(mother)
    tree.reindex()
    logger.info(f"Added {len(created)} parents for {individual.id} in {family.id}")
    return created


# ============================================================================
# Deleting
# ============================================================================

def is_empty_family(family: Record) -> bool:
    return not (
        family.reference_ids("CHIL")
        or family.reference_ids("HUSB")
        or family.reference_ids("WIFE")
    )


def _clear_from_families(tree: FamilyTree, individual_id: str) -> list[str]:
    """Strip an individual from every family; families left empty are deleted."""
    deleted = []
    for family in tree.root.get_all("FAM"):
        updated = False
        for tag in ("CHIL", "HUSB", "WIFE"):
            while family.remove_reference(tag, individual_id):
                updated = True
        if updated:
            logger.debug(f"Removed {individual_id} from family {family.id}")
            if is_empty_family(family):
                _delete_family_record(tree, family)
                deleted.append(family.id)
    return deleted


def _clear_from_individuals(tree: FamilyTree, family_id: str) -> None:
    """Unlink a family from every individual. Orphaned individuals are kept."""
    for individual in tree.root.get_all("INDI"):
        updated = False
        for tag in ("FAMC", "FAMS"):
            while individual.remove_reference(tag, family_id):
                updated = True
        if updated:
            logger.debug(f"Removed family {family_id} from {individual.id}")


def _delete_family_record(tree: FamilyTree, family: Record) -> None:
    tree.remove_top_level(family)
    _clear_from_individuals(tree, family.id)


def delete_individual(tree: FamilyTree, individual: Record) -> list[str]:
    """
    Delete an individual and every reference to it. Families it leaves empty
    are deleted too; their remaining links are cleared but no further records
    are deleted. Returns the ids of the deleted families.
    """
    _require_kind(individual, RecordKind.INDIVIDUAL, "Deleting an individual")
    tree.remove_top_level(individual)
    deleted_families = _clear_from_families(tree, individual.id)
    tree.reindex()
    logger.info(
        f"Deleted individual {individual.id}"
        + (f" and empty families {', '.join(deleted_families)}" if deleted_families else "")
    )
    return deleted_families


def delete_family(tree: FamilyTree, family: Record) -> None:
    """Delete a family and unlink it from its members (members stay)."""
    _require_kind(family, RecordKind.FAMILY, "Deleting a family")
    _delete_family_record(tree, family)
    tree.reindex()
    logger.info(f"Deleted family {family.id}")


def delete_record(tree: FamilyTree, record: Record) -> None:
    if record.kind is RecordKind.INDIVIDUAL:
        delete_individual(tree, record)
    elif record.kind is RecordKind.FAMILY:
        delete_family(tree, record)
    else:
        raise InvalidMutationError(f"Cannot delete {record.tag}: only INDI and FAM records can be deleted")


# ============================================================================
# Field editing
# ============================================================================

def format_name(full_name: str) -> str:
    """`First Middle Last` -> `First Middle /Last/`."""
    parts = full_name.split()
    if not parts:
        return ""
    surname = parts.pop()
    given = " ".join(parts)
    return f"{given} /{surname}/".strip()


def _check_editable(tag: str) -> None:
    if not tag or any(ch.isspace() for ch in tag):
        raise InvalidMutationError(f"Invalid tag {tag!r}")
    if tag in RELATIONSHIP_TAGS:
        raise InvalidMutationError(
            f"{tag} is a relationship field", "use the relative operations instead"
        )


def set_field(record: Record, tag: str, value: str | None) -> Record:
    """Set a direct field such as NAME, SEX or OCCU, creating it when missing."""
    tag = tag.upper()
    _check_editable(tag)
    check_single_line(value)
    if tag == "NAME" and value and "/" not in value:
        value = format_name(value)
    value = value or None
    existing = record.get(tag)
    if existing is not None:
        existing.value = value
    else:
        existing = record.add_child(Record(record.level + 1, tag, value=value))
    logger.info(f"Updated {record.id or record.tag} {tag} to: {value}")
    return existing


def set_nested_field(
    record: Record,
    parent_tag: str,
    child_tag: str,
    value: str | None,
    is_date: bool = False,
) -> Record:
    """Set e.g. BIRT/DATE or DEAT/PLAC, creating the event when missing."""
    parent_tag = parent_tag.upper()
    child_tag = child_tag.upper()
    _check_editable(parent_tag)
    _check_editable(child_tag)
    check_single_line(value)
    if is_date and value:
        value = convert_from_date_input(value)
    value = value or None

    event = record.get(parent_tag)
    if event is None:
        event = record.add_child(Record(record.level + 1, parent_tag))
    existing = event.get(child_tag)
    if existing is not None:
        existing.value = value
    else:
        existing = event.add_child(Record(event.level + 1, child_tag, value=value))
    logger.info(f"Updated {record.id or record.tag} {parent_tag}/{child_tag} to: {value}")
    return existing


def delete_field(record: Record, tag: str) -> bool:
    tag = tag.upper()
    _check_editable(tag)
    removed = record.remove_field(tag)
    if removed:
        logger.info(f"Removed {tag} from {record.id or record.tag}")
    return bool(removed)


def convert_to_date_input(gedcom_date: str | None) -> str:
    """GEDCOM date (`15 JAN 1990`, `JAN 1990`, `1990`) -> `YYYY-MM-DD`."""
    if not gedcom_date:
        return ""
    match = re.search(r"(\d{1,2})\s+([A-Z]{3})\s+(\d{4})", gedcom_date, re.IGNORECASE)
    if match:
        month = _month_number(match.group(2))
        return f"{match.group(3)}-{month}-{int(match.group(1)):02d}"
    match = re.search(r"([A-Z]{3})\s+(\d{4})", gedcom_date, re.IGNORECASE)
    if match:
        return f"{match.group(2)}-{_month_number(match.group(1))}-01"
    match = re.search(r"(\d{4})", gedcom_date)
    if match:
        return f"{match.group(1)}-01-01"
    return ""


def _month_number(abbreviation: str) -> str:
    try:
        return f"{MONTHS.index(abbreviation.upper()) + 1:02d}"
    except ValueError:
        return "01"


def convert_from_date_input(html_date: str) -> str:
    """`YYYY-MM-DD` -> `D MMM YYYY`; anything else is returned unchanged."""
    parts = html_date.split("-")
    if len(parts) == 3:
        try:
            month_number = int(parts[1])
            day = int(parts[2])
        except ValueError:
            return html_date
        if not 1 <= month_number <= 12:
            return html_date
        return f"{day} {MONTHS[month_number - 1]} {parts[0]}"
    return html_date
