"""Abstract taxonomy oracle interface."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

# NCBI taxonomy root node
ROOT_TAXID = 1


class TaxonomyOracle(ABC):
    """Read-only view of an external taxonomic hierarchy.

    Implementations raise TaxonNotFoundError for unknown taxids and
    OracleUnavailable when the backing service cannot be reached.
    """

    @abstractmethod
    def resolve_names(self, names: Iterable[str]) -> dict[str, set[int]]:
        """Map each name to its candidate taxids (empty set if unknown)."""

    @abstractmethod
    def canonical_name(self, taxid: int) -> str:
        """Scientific name of a taxon."""

    @abstractmethod
    def common_name(self, taxid: int) -> str | None:
        """Common name of a taxon, if one is recorded."""

    @abstractmethod
    def ancestor_path(self, taxid: int) -> list[int]:
        """Taxids from the root down to and including ``taxid``."""

    @abstractmethod
    def descendants(self, taxid: int) -> set[int]:
        """All taxids in the subtree rooted at ``taxid``, including itself."""

    def prefetch(self, taxids: Iterable[int]) -> None:
        """Warm per-node lookups in bulk. No-op for in-memory backends."""
        return None
