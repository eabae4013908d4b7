"""CSV import: one row per person, converted to GEDCOM text."""

import csv
import io
import logging
from typing import Any

from errors import AdapterError

logger = logging.getLogger("famgrid.adapters.csv_import")


EXPECTED_COLUMNS = [
    {"name": "Name", "required": True, "description": "Full name"},
    {"name": "Sex", "required": False, "description": "M or F"},
    {"name": "BirthDate", "required": False, "description": "Birth date"},
    {"name": "BirthPlace", "required": False, "description": "Birth place"},
    {"name": "DeathDate", "required": False, "description": "Death date"},
    {"name": "DeathPlace", "required": False, "description": "Death place"},
    {"name": "Father", "required": False, "description": "Father's name"},
    {"name": "Mother", "required": False, "description": "Mother's name"},
    {"name": "Spouse", "required": False, "description": "Spouse's name"},
]


def expected_columns() -> list[dict[str, Any]]:
    return [dict(column) for column in EXPECTED_COLUMNS]


def parse_csv(csv_text: str) -> list[dict[str, str]]:
    """Parse CSV text into rows keyed by lower-cased header names."""
    reader = csv.reader(io.StringIO(csv_text.strip()))
    rows = [row for row in reader]
    if len(rows) < 2:
        return []

    headers = [header.lower().strip() for header in rows[0]]
    result = []
    for values in rows[1:]:
        if not any(value.strip() for value in values):
            continue
        result.append({
            header: values[idx] if idx < len(values) else ""
            for idx, header in enumerate(headers)
        })
    return result


def _first(row: dict[str, str], *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value:
            return value.strip()
    return ""


def convert_to_gedcom(rows: list[dict[str, str]]) -> str:
    """
    Convert parsed CSV rows to GEDCOM text.

    People are matched to their father, mother and spouse by (case-insensitive)
    name; one family is created per distinct parent pair and per couple.
    """
    if not rows:
        raise AdapterError("No data found in CSV file")

    individuals: dict[str, dict[str, Any]] = {}
    families: dict[str, dict[str, Any]] = {}
    indi_counter = 1
    fam_counter = 1

    for row in rows:
        name = _first(row, "name", "fullname")
        if not name:
            continue
        individuals[name.lower()] = {
            "id": f"@I{indi_counter:04d}@",
            "name": name,
            "sex": _first(row, "sex", "gender").upper()[:1],
            "birth_date": _first(row, "birthdate", "birth_date", "birth date"),
            "birth_place": _first(row, "birthplace", "birth_place", "birth place"),
            "death_date": _first(row, "deathdate", "death_date", "death date"),
            "death_place": _first(row, "deathplace", "death_place", "death place"),
            "father": _first(row, "father", "fathername", "father name"),
            "mother": _first(row, "mother", "mothername", "mother name"),
            "spouse": _first(row, "spouse", "spousename", "spouse name"),
            "famc": None,
            "fams": None,
        }
        indi_counter += 1

    def new_family_id() -> str:
        nonlocal fam_counter
        family_id = f"@F{fam_counter:03d}@"
        fam_counter += 1
        return family_id

    for key, person in individuals.items():
        if person["father"] or person["mother"]:
            father_key = person["father"].lower()
            mother_key = person["mother"].lower()
            family_key = f"{father_key}|{mother_key}"
            if family_key not in families:
                father = individuals.get(father_key)
                mother = individuals.get(mother_key)
                families[family_key] = {
                    "id": new_family_id(),
                    "husband": father["id"] if father else None,
                    "wife": mother["id"] if mother else None,
                    "children": [],
                }
            families[family_key]["children"].append(person["id"])
            person["famc"] = families[family_key]["id"]

        if person["spouse"]:
            spouse_key = person["spouse"].lower()
            spouse = individuals.get(spouse_key)
            if spouse:
                is_male = person["sex"] == "M"
                family_key = f"{key}|{spouse_key}" if is_male else f"{spouse_key}|{key}"
                if family_key not in families:
                    husband, wife = (person, spouse) if is_male else (spouse, person)
                    families[family_key] = {
                        "id": new_family_id(),
                        "husband": husband["id"],
                        "wife": wife["id"],
                        "children": [],
                    }
                person["fams"] = families[family_key]["id"]

    # Parents listed by name get their FAMS from the family they head
    for family in families.values():
        for member_id in (family["husband"], family["wife"]):
            for person in individuals.values():
                if person["id"] == member_id and not person["fams"]:
                    person["fams"] = family["id"]

    lines = [
        "0 HEAD",
        "1 SOUR CSV Import",
        "1 GEDC",
        "2 VERS 5.5.1",
        "2 FORM LINEAGE-LINKED",
        "1 CHAR UTF-8",
    ]
    for person in individuals.values():
        lines.append(f"0 {person['id']} INDI")
        lines.append(f"1 NAME {person['name']}")
        if person["sex"]:
            lines.append(f"1 SEX {person['sex']}")
        if person["birth_date"] or person["birth_place"]:
            lines.append("1 BIRT")
            if person["birth_date"]:
                lines.append(f"2 DATE {person['birth_date']}")
            if person["birth_place"]:
                lines.append(f"2 PLAC {person['birth_place']}")
        if person["death_date"] or person["death_place"]:
            lines.append("1 DEAT")
            if person["death_date"]:
                lines.append(f"2 DATE {person['death_date']}")
            if person["death_place"]:
                lines.append(f"2 PLAC {person['death_place']}")
        if person["famc"]:
            lines.append(f"1 FAMC {person['famc']}")
        if person["fams"]:
            lines.append(f"1 FAMS {person['fams']}")

    for family in families.values():
        lines.append(f"0 {family['id']} FAM")
        if family["husband"]:
            lines.append(f"1 HUSB {family['husband']}")
        if family["wife"]:
            lines.append(f"1 WIFE {family['wife']}")
        for child_id in family["children"]:
            lines.append(f"1 CHIL {child_id}")
    lines.append("0 TRLR")

    logger.info(f"Converted {len(individuals)} CSV rows into {len(families)} families")
    return "\n".join(lines) + "\n"


def import_csv_text(csv_text: str) -> str:
    rows = parse_csv(csv_text)
    if not rows:
        raise AdapterError("No data found in CSV file")
    return convert_to_gedcom(rows)
