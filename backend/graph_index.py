"""Id lookup maps derived from the record tree."""

import logging

from gedcom_record import Record

logger = logging.getLogger("famgrid.graph_index")


class GraphIndex:
    """Individuals and families keyed by xref.

    Never the source of truth: `rebuild` can always reconstruct it from the
    root's INDI and FAM children.
    """

    def __init__(self):
        self.individuals: dict[str, Record] = {}
        self.families: dict[str, Record] = {}

    def rebuild(self, root: Record) -> "GraphIndex":
        self.individuals = {}
        self.families = {}
        for indi in root.get_all("INDI"):
            if indi.id:
                self.individuals[indi.id] = indi
            else:
                logger.warning("Skipping INDI record without id")
        for fam in root.get_all("FAM"):
            if fam.id:
                self.families[fam.id] = fam
            else:
                logger.warning("Skipping FAM record without id")
        logger.debug(
            f"Indexed {len(self.individuals)} individuals and {len(self.families)} families"
        )
        return self

    def get_individual(self, individual_id: str | None) -> Record | None:
        if not individual_id:
            return None
        return self.individuals.get(individual_id)

    def get_family(self, family_id: str | None) -> Record | None:
        if not family_id:
            return None
        return self.families.get(family_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphIndex):
            return NotImplemented
        return (
            list(self.individuals.items()) == list(other.individuals.items())
            and list(self.families.items()) == list(other.families.items())
        )


def build_graph_index(root: Record) -> GraphIndex:
    return GraphIndex().rebuild(root)
