"""Tests for the generation grid layout."""

import os
import pytest
import sys

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import DanglingReference, EmptyGraphError, TraversalBoundError
from gedcom_record import Record
from gedcom_utils import FamilyTree, parse_gedcom_file, parse_gedcom_lines
from tree_layout import (
    RowBucket,
    compute_layout,
    find_paternal_anchor,
    sort_batch,
)


SCENARIO_A = [
    "0 @I1@ INDI", "1 NAME You", "1 SEX M", "1 FAMC @F1@",
    "0 @I2@ INDI", "1 NAME Father", "1 SEX M", "1 FAMS @F1@",
    "0 @I3@ INDI", "1 NAME Mother", "1 SEX F", "1 FAMS @F1@",
    "0 @F1@ FAM", "1 HUSB @I2@", "1 WIFE @I3@", "1 CHIL @I1@",
]

TWO_MARRIAGES = [
    "0 @I1@ INDI", "1 SEX M", "1 FAMS @F1@", "1 FAMS @F2@",
    "0 @I2@ INDI", "1 SEX F", "1 FAMS @F1@",
    "0 @I3@ INDI", "1 SEX F", "1 FAMS @F2@",
    "0 @F1@ FAM", "1 HUSB @I1@", "1 WIFE @I2@",
    "0 @F2@ FAM", "1 HUSB @I1@", "1 WIFE @I3@",
]


def build_tree(lines):
    return FamilyTree(parse_gedcom_lines(lines))


def row_ids(layout, row):
    return [record.id for record in layout.rows[row]]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def sample_tree():
    """The Brontë family from the sample file."""
    return parse_gedcom_file(os.path.join(
        os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
        "sample-family.ged"
    ))


# ============================================================================
# RowBucket
# ============================================================================

class TestRowBucket:
    """Tests for ordered insertion within a row."""

    def test_add_after_and_before(self):
        bucket = RowBucket()
        a, b, c = Record(0, "INDI", id="@A@"), Record(0, "INDI", id="@B@"), Record(0, "INDI", id="@C@")
        bucket.add_before(a, None)
        bucket.add_after(b, a)
        bucket.add_before(c, b)
        assert [r.id for r in bucket] == ["@A@", "@C@", "@B@"]
        assert bucket.index_of(c) == 1

    def test_missing_reference_appends(self):
        bucket = RowBucket()
        a, b, c = Record(0, "INDI", id="@A@"), Record(0, "INDI", id="@B@"), Record(0, "INDI", id="@C@")
        bucket.add_after(a, None)
        bucket.add_before(b, c)
        bucket.add_after(c, Record(0, "INDI", id="@X@"))
        assert [r.id for r in bucket] == ["@A@", "@B@", "@C@"]

    def test_membership_is_by_identity(self):
        bucket = RowBucket()
        a = Record(0, "INDI", id="@A@")
        bucket.add_after(a, None)
        assert a in bucket
        assert Record(0, "INDI", id="@A@") not in bucket


# ============================================================================
# Layout
# ============================================================================

class TestLayout:
    """Tests for row assignment and placement."""

    def test_parents_and_child(self):
        tree = build_tree(SCENARIO_A)
        layout = compute_layout(tree)
        assert layout.anchor.id == "@I2@"
        assert row_ids(layout, 0) == ["@I2@", "@F1@", "@I3@"]
        assert row_ids(layout, 1) == ["@I1@"]
        assert layout.row_of(tree.get_family("@F1@")) == 0
        assert layout.position_of(tree.get_individual("@I1@")) == (1, 0)
        assert layout.errors == []

    def test_two_marriages_share_a_row(self):
        tree = build_tree(TWO_MARRIAGES)
        layout = compute_layout(tree)
        assert list(layout.rows) == [0]
        assert row_ids(layout, 0) == ["@I1@", "@F2@", "@I3@", "@F1@", "@I2@"]
        assert layout.row_of(tree.get_family("@F1@")) == layout.row_of(tree.get_family("@F2@"))

    def test_sample_family_rows(self, sample_tree):
        layout = compute_layout(sample_tree)
        assert layout.anchor.id == "@I0011@"
        assert row_ids(layout, 0) == ["@I0011@", "@F003@", "@I0010@", "@I0013@", "@F004@", "@I0012@"]
        assert row_ids(layout, 1) == ["@I0001@", "@F001@", "@I0002@", "@I0014@"]
        assert row_ids(layout, 2) == [
            "@I0003@", "@I0004@", "@I0009@", "@F002@", "@I0005@",
            "@I0006@", "@I0007@", "@I0008@",
        ]

    def test_spouses_share_row_and_children_sit_below(self, sample_tree):
        layout = compute_layout(sample_tree)
        for family in sample_tree.families.values():
            row = layout.row_of(family)
            for tag in ("HUSB", "WIFE"):
                for member_id in family.reference_ids(tag):
                    assert layout.row_of(sample_tree.get_individual(member_id)) == row
            for child_id in family.reference_ids("CHIL"):
                assert layout.row_of(sample_tree.get_individual(child_id)) == row + 1

    def test_every_record_placed_once(self, sample_tree):
        layout = compute_layout(sample_tree)
        placed = layout.placed()
        assert len(placed) == len({id(record) for record in placed})
        assert len(placed) == len(sample_tree.individuals) + len(sample_tree.families)

    def test_rows_start_at_zero(self, sample_tree):
        layout = compute_layout(sample_tree)
        assert sorted(layout.rows) == [0, 1, 2]

    def test_start_resolves_to_same_anchor(self, sample_tree):
        charlotte = sample_tree.get_individual("@I0005@")
        assert find_paternal_anchor(sample_tree, charlotte).id == "@I0011@"
        layout = compute_layout(sample_tree, start=charlotte)
        assert layout.anchor.id == "@I0011@"

    def test_unreachable_individual_not_placed(self):
        tree = build_tree(SCENARIO_A + ["0 @I9@ INDI", "1 NAME Stranger"])
        layout = compute_layout(tree)
        assert layout.row_of(tree.get_individual("@I9@")) is None
        assert layout.position_of(tree.get_individual("@I9@")) is None

    def test_repeated_runs_do_not_touch_records(self, sample_tree):
        first = compute_layout(sample_tree)
        second = compute_layout(sample_tree)
        assert [r.id for r in first.placed()] == [r.id for r in second.placed()]
        assert not hasattr(sample_tree.get_individual("@I0001@"), "visited")

    def test_to_rows(self):
        layout = compute_layout(build_tree(SCENARIO_A))
        rows = layout.to_rows()
        assert [row["row"] for row in rows] == [0, 1]
        family_node = rows[0]["nodes"][1]
        assert family_node["type"] == "family"
        assert family_node["order"] == 1
        assert family_node["data"]["husbands"] == ["@I2@"]
        assert rows[1]["nodes"][0]["data"]["fullName"] == "You"


class TestChildOrder:
    """Tests for ORDER-based sibling sorting."""

    def test_children_sorted_by_order(self):
        tree = build_tree([
            "0 @I1@ INDI", "1 SEX M", "1 FAMS @F1@",
            "0 @I2@ INDI", "1 FAMC @F1@", "1 ORDER 3",
            "0 @I3@ INDI", "1 FAMC @F1@", "1 ORDER 1",
            "0 @I4@ INDI", "1 FAMC @F1@", "1 ORDER 2",
            "0 @F1@ FAM", "1 HUSB @I1@", "1 CHIL @I2@", "1 CHIL @I3@", "1 CHIL @I4@",
        ])
        layout = compute_layout(tree)
        assert row_ids(layout, 1) == ["@I3@", "@I4@", "@I2@"]

    def test_partial_order_keeps_file_order(self):
        children = [Record(0, "INDI", id=f"@I{n}@") for n in range(3)]
        children[0].add_child(Record(1, "ORDER", value="5"))
        children[2].add_child(Record(1, "ORDER", value="1"))
        assert sort_batch(children) == children


class TestLayoutFaults:
    """Tests for broken input."""

    def test_dangling_reference_is_reported(self):
        tree = build_tree(["0 @I1@ INDI", "1 FAMS @F9@"])
        layout = compute_layout(tree)
        assert layout.errors == [DanglingReference("@F9@", "@I1@", "FAMS")]
        assert row_ids(layout, 0) == ["@I1@"]
        assert "@F9@" in layout.errors[0].message

    def test_cyclic_ancestry_raises(self):
        tree = build_tree([
            "0 @I1@ INDI", "1 FAMC @F1@", "1 FAMS @F2@",
            "0 @I2@ INDI", "1 FAMC @F2@", "1 FAMS @F1@",
            "0 @F1@ FAM", "1 HUSB @I2@", "1 CHIL @I1@",
            "0 @F2@ FAM", "1 HUSB @I1@", "1 CHIL @I2@",
        ])
        with pytest.raises(TraversalBoundError):
            compute_layout(tree)

    def test_empty_tree_raises(self):
        tree = build_tree(["0 HEAD", "0 TRLR"])
        with pytest.raises(EmptyGraphError) as exc_info:
            compute_layout(tree)
        assert exc_info.value.message == "Nothing to display"
