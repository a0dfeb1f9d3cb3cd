"""Data models for taxonomic lineage records."""

from dataclasses import dataclass, field
from enum import Enum

# Ranks attached to the hit table as lineage_<rank> columns, broad to specific
CANONICAL_RANKS = [
    "superkingdom",
    "kingdom",
    "phylum",
    "class",
    "order",
    "family",
    "genus",
    "species",
]

# NCBI renamed superkingdom to domain in 2025; both map onto one column
RANK_ALIASES = {
    "domain": "superkingdom",
    "realm": "superkingdom",
}

# Unranked nodes carry no rank name and are skipped when building lineages
UNRANKED = {"no rank", "clade"}

LINEAGE_COLUMN_PREFIX = "lineage_"


class TaxonomyMode(str, Enum):
    """Taxonomy backend selector."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class TaxonLineage:
    """Ordered lineage for one taxon id.

    Attributes:
        taxon_id: NCBI taxonomy identifier
        ranks: (rank, name) pairs ordered from broad to specific
    """
    taxon_id: int
    ranks: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def from_pairs(cls, taxon_id: int, pairs) -> "TaxonLineage":
        """Build a lineage from (rank, name) pairs, normalizing rank names.

        Unranked nodes and empty names are skipped. When a rank repeats, the
        first (broadest) occurrence is kept.
        """
        seen: set[str] = set()
        ranks = []
        for rank, name in pairs:
            if not rank or not name:
                continue
            rank = RANK_ALIASES.get(rank.strip().lower(), rank.strip().lower())
            if rank in UNRANKED or rank in seen:
                continue
            seen.add(rank)
            ranks.append((rank, str(name)))
        return cls(taxon_id=int(taxon_id), ranks=tuple(ranks))

    def as_dict(self) -> dict[str, str]:
        """Lineage as an insertion-ordered {rank: name} dict."""
        return dict(self.ranks)

    def get(self, rank: str) -> str | None:
        """Name at a rank, or None when the lineage lacks it."""
        return self.as_dict().get(rank)

    def canonical_columns(self) -> dict[str, str | None]:
        """Lineage restricted to CANONICAL_RANKS as prefixed column values."""
        values = self.as_dict()
        return {
            f"{LINEAGE_COLUMN_PREFIX}{rank}": values.get(rank)
            for rank in CANONICAL_RANKS
        }
