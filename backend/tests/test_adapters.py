"""Tests for the CSV and GEDCOM-JSON adapters."""

import os
import pytest
import sys

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adapters import convert_to_gedcom, export_json, expected_columns, import_csv_text, import_json, parse_csv
from errors import AdapterError
from gedcom_utils import FamilyTree, parse_gedcom_content, parse_gedcom_file, parse_gedcom_lines
from tree_layout import compute_layout


BRONTE_CSV = """Name,Sex,BirthDate,BirthPlace,Father,Mother,Spouse
Patrick Brontë,M,17 MAR 1777,County Down,,,Maria Branwell
Maria Branwell,F,15 APR 1783,Penzance,,,Patrick Brontë
Charlotte Brontë,F,21 APR 1816,Thornton,Patrick Brontë,Maria Branwell,
"""


@pytest.fixture
def sample_tree():
    return parse_gedcom_file(os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
        "sample-family.ged"
    ))


# ============================================================================
# CSV
# ============================================================================

class TestCsvImport:
    """Tests for converting CSV rows to GEDCOM."""

    def test_parse_csv_lowercases_headers(self):
        rows = parse_csv(BRONTE_CSV)
        assert len(rows) == 3
        assert rows[0]["name"] == "Patrick Brontë"
        assert rows[2]["father"] == "Patrick Brontë"

    def test_parse_csv_skips_blank_rows(self):
        rows = parse_csv("Name,Sex\nAnne,F\n,\nEmily,F\n")
        assert [row["name"] for row in rows] == ["Anne", "Emily"]

    def test_couple_and_child_share_family(self):
        tree = parse_gedcom_content(import_csv_text(BRONTE_CSV))

        assert len(tree.individuals) == 3
        assert list(tree.families) == ["@F001@"]
        family = tree.get_family("@F001@")
        assert family.reference_ids("HUSB") == ["@I0001@"]
        assert family.reference_ids("WIFE") == ["@I0002@"]
        assert family.reference_ids("CHIL") == ["@I0003@"]
        charlotte = tree.get_individual("@I0003@")
        assert charlotte["BIRT"]["DATE"].value == "21 APR 1816"
        assert charlotte["BIRT"]["PLAC"].value == "Thornton"
        assert charlotte.reference_ids("FAMC") == ["@F001@"]

    def test_named_parent_gets_fams(self):
        text = convert_to_gedcom(parse_csv("Name,Sex,Father\nHugh Brunty,M,\nPatrick Brontë,M,Hugh Brunty\n"))
        tree = parse_gedcom_content(text)
        assert tree.get_individual("@I0001@").reference_ids("FAMS") == ["@F001@"]
        assert tree.get_family("@F001@").reference_ids("WIFE") == []

    def test_imported_tree_can_be_laid_out(self):
        layout = compute_layout(parse_gedcom_content(import_csv_text(BRONTE_CSV)))
        assert [r.id for r in layout.rows[0]] == ["@I0001@", "@F001@", "@I0002@"]

    def test_empty_csv_rejected(self):
        with pytest.raises(AdapterError):
            import_csv_text("Name,Sex\n")
        with pytest.raises(AdapterError):
            convert_to_gedcom([])

    def test_expected_columns(self):
        columns = expected_columns()
        assert columns[0] == {"name": "Name", "required": True, "description": "Full name"}
        columns[0]["required"] = False
        assert expected_columns()[0]["required"] is True


# ============================================================================
# GEDCOM-JSON
# ============================================================================

class TestJsonExport:
    """Tests for the GEDCOM-JSON format."""

    def test_export_json(self, sample_tree):
        document = export_json(sample_tree)
        assert document.format == "GEDCOM-JSON"
        assert len(document.individuals) == 14
        charlotte = next(p for p in document.individuals if p.id == "@I0005@")
        assert charlotte.givenName == "Charlotte"
        assert charlotte.surname == "Brontë"
        assert charlotte.birth.date == "21 APR 1816"
        assert charlotte.familyAsSpouse == ["@F002@"]
        family = next(f for f in document.families if f.id == "@F001@")
        assert family.husband == ["@I0001@"]
        assert family.marriage.date == "29 December 1812"

    def test_import_exported_document(self, sample_tree):
        data = export_json(sample_tree).model_dump()
        tree = FamilyTree(parse_gedcom_lines(import_json(data)))

        assert list(tree.individuals) == list(sample_tree.individuals)
        assert tree.get_family("@F001@").reference_ids("CHIL") == \
            sample_tree.get_family("@F001@").reference_ids("CHIL")
        assert tree.get_individual("@I0011@")["DEAT"]["DATE"].value == "abt 1808"

    def test_import_minimal_document(self):
        lines = import_json({
            "format": "GEDCOM-JSON",
            "individuals": [{"id": "@I1@", "name": "Anne /Brontë/", "sex": "F"}],
            "families": [{"id": "@F1@", "wife": ["@I1@"]}],
        })
        assert lines[0] == "0 HEAD"
        assert lines[-1] == "0 TRLR"
        assert "1 NAME Anne /Brontë/" in lines
        assert "1 WIFE @I1@" in lines

    def test_wrong_format_rejected(self):
        with pytest.raises(AdapterError) as exc_info:
            import_json({"format": "CSV"})
        assert "Unsupported format" in str(exc_info.value)

    def test_invalid_document_rejected(self):
        with pytest.raises(AdapterError):
            import_json({"individuals": "nope"})

    @pytest.mark.parametrize("person", [
        {"id": "I1"},
        {"id": "@I 1@"},
        {"id": "@I1@", "familyAsSpouse": ["F1"]},
        {"id": "@I1@", "name": "Anne\n0 @I9@ INDI"},
        {"id": "@I1@", "birth": {"place": "Thornton\r1 SEX M"}},
    ])
    def test_malformed_values_rejected(self, person):
        with pytest.raises(AdapterError):
            import_json({"format": "GEDCOM-JSON", "individuals": [person]})

    def test_malformed_family_links_rejected(self):
        with pytest.raises(AdapterError):
            import_json({"format": "GEDCOM-JSON", "families": [{"id": "@F1@", "children": ["I1"]}]})
