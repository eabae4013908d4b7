"""GEDCOM-JSON export and import."""

import logging
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, StringConstraints, ValidationError

from errors import AdapterError
from gedcom_record import Record
from gedcom_utils import FamilyTree

logger = logging.getLogger("famgrid.adapters.json_io")

JSON_FORMAT = "GEDCOM-JSON"
JSON_VERSION = "1.0"


# ============================================================================
# Models
# ============================================================================

# `@I1@`: a single pointer token, as written on a GEDCOM line
Xref = Annotated[str, StringConstraints(pattern=r"^@[^@\s]+@$")]
# Any value that fits on one GEDCOM line
LineText = Annotated[str, StringConstraints(pattern=r"^[^\r\n]*$")]


class EventExport(BaseModel):
    """Date and place of a birth, death or marriage."""
    date: LineText | None = None
    place: LineText | None = None


class IndividualExport(BaseModel):
    id: Xref
    name: LineText | None = None
    givenName: LineText | None = None
    surname: LineText | None = None
    sex: LineText | None = None
    birth: EventExport | None = None
    death: EventExport | None = None
    familyAsSpouse: list[Xref] = Field(default_factory=list)
    familyAsChild: list[Xref] = Field(default_factory=list)
    image: LineText | None = None


class FamilyExport(BaseModel):
    id: Xref
    husband: list[Xref] | None = None
    wife: list[Xref] | None = None
    children: list[Xref] = Field(default_factory=list)
    marriage: EventExport | None = None


class TreeExport(BaseModel):
    exported: str = Field(default_factory=lambda: datetime.now().isoformat())
    format: str = JSON_FORMAT
    version: str = JSON_VERSION
    individuals: list[IndividualExport] = Field(default_factory=list)
    families: list[FamilyExport] = Field(default_factory=list)


# ============================================================================
# Export
# ============================================================================

def _event(record: Record, tag: str) -> EventExport | None:
    event = record.get(tag)
    if event is None:
        return None
    return EventExport(date=event.value_of("DATE"), place=event.value_of("PLAC"))


def _build_export(tree: FamilyTree) -> TreeExport:
    individuals = []
    for individual_id, person in tree.individuals.items():
        name = person.get("NAME")
        individuals.append(IndividualExport(
            id=individual_id,
            name=name.value if name else None,
            givenName=name.value_of("GIVN") if name else None,
            surname=name.value_of("SURN") if name else None,
            sex=person.value_of("SEX"),
            birth=_event(person, "BIRT"),
            death=_event(person, "DEAT"),
            familyAsSpouse=person.reference_ids("FAMS"),
            familyAsChild=person.reference_ids("FAMC"),
            image=person.value_of("IMG"),
        ))

    families = []
    for family_id, family in tree.families.items():
        families.append(FamilyExport(
            id=family_id,
            husband=family.reference_ids("HUSB") or None,
            wife=family.reference_ids("WIFE") or None,
            children=family.reference_ids("CHIL"),
            marriage=_event(family, "MARR"),
        ))

    logger.info(f"Exported {len(individuals)} individuals and {len(families)} families to JSON")
    return TreeExport(individuals=individuals, families=families)


def export_json(tree: FamilyTree) -> TreeExport:
    """Summarise the tree as GEDCOM-JSON (people, families and their links)."""
    try:
        return _build_export(tree)
    except ValidationError as e:
        raise AdapterError("Tree cannot be exported as GEDCOM-JSON", str(e)) from e


# ============================================================================
# Import
# ============================================================================

def _event_lines(tag: str, event: EventExport | None) -> list[str]:
    if event is None or not (event.date or event.place):
        return []
    lines = [f"1 {tag}"]
    if event.date:
        lines.append(f"2 DATE {event.date}")
    if event.place:
        lines.append(f"2 PLAC {event.place}")
    return lines


def import_json(data: dict[str, Any] | TreeExport) -> list[str]:
    """Turn a GEDCOM-JSON document back into GEDCOM lines."""
    try:
        document = data if isinstance(data, TreeExport) else TreeExport.model_validate(data)
    except ValidationError as e:
        raise AdapterError("Invalid GEDCOM-JSON document", str(e)) from e
    if document.format != JSON_FORMAT:
        raise AdapterError(f"Unsupported format '{document.format}'", f"expected {JSON_FORMAT}")

    lines = ["0 HEAD", "1 SOUR JSON Import", "1 GEDC", "2 VERS 5.5.1", "2 FORM LINEAGE-LINKED"]
    for person in document.individuals:
        lines.append(f"0 {person.id} INDI")
        if person.name is not None:
            lines.append(f"1 NAME {person.name}".rstrip())
            if person.givenName:
                lines.append(f"2 GIVN {person.givenName}")
            if person.surname:
                lines.append(f"2 SURN {person.surname}")
        if person.sex:
            lines.append(f"1 SEX {person.sex}")
        lines.extend(_event_lines("BIRT", person.birth))
        lines.extend(_event_lines("DEAT", person.death))
        for family_id in person.familyAsChild:
            lines.append(f"1 FAMC {family_id}")
        for family_id in person.familyAsSpouse:
            lines.append(f"1 FAMS {family_id}")
        if person.image:
            lines.append(f"1 IMG {person.image}")

    for family in document.families:
        lines.append(f"0 {family.id} FAM")
        for husband_id in family.husband or []:
            lines.append(f"1 HUSB {husband_id}")
        for wife_id in family.wife or []:
            lines.append(f"1 WIFE {wife_id}")
        for child_id in family.children:
            lines.append(f"1 CHIL {child_id}")
        lines.extend(_event_lines("MARR", family.marriage))
    lines.append("0 TRLR")

    logger.info(
        f"Imported {len(document.individuals)} individuals and "
        f"{len(document.families)} families from JSON"
    )
    return lines
