"""Collapse ambiguous name matches to their lowest common ancestor.

A name that matches several taxa (genus/subgenus collisions, cross-kingdom
homonyms) is mapped to the deepest node that is an ancestor of, or equal to,
every candidate. Unrelated candidates reduce to a node near the root; the
result is still returned, and it is up to the reader to treat coarse nodes
as low-confidence.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from virus_host_census.errors import AmbiguityReductionFailure, TaxonNotFoundError
from virus_host_census.taxonomy.base import TaxonomyOracle

logger = logging.getLogger(__name__)


def lowest_common_ancestor(paths: Sequence[Sequence[int]]) -> int:
    """Deepest node shared by root-to-node paths.

    Paths are compared from the root inward; the node before the first
    divergence is the LCA. If one path is a prefix of another, the end of
    the shorter path is the LCA.

    Args:
        paths: Root-to-node taxid paths, one per candidate

    Returns:
        LCA taxid

    Raises:
        ValueError: If no paths are given or the paths share no root
    """
    if not paths:
        raise ValueError("Cannot compute LCA of zero paths")

    lca = None
    for nodes in zip(*paths):
        if any(node != nodes[0] for node in nodes[1:]):
            break
        lca = nodes[0]

    if lca is None:
        raise ValueError("Paths do not share a root")
    return lca


@dataclass
class ReductionResult:
    """Outcome of reducing ambiguous keys.

    Attributes:
        reduced: Key -> LCA taxid
        failures: Key -> failure explaining why no LCA was produced
    """
    reduced: dict[str, int] = field(default_factory=dict)
    failures: dict[str, AmbiguityReductionFailure] = field(default_factory=dict)


class AmbiguityReducer:
    """Reduce multi-candidate keys to one taxid via LCA."""

    def __init__(self, oracle: TaxonomyOracle):
        self.oracle = oracle

    def reduce_key(self, key: str, candidates: set[int]) -> int:
        """Reduce one key's candidates to their LCA.

        Raises:
            AmbiguityReductionFailure: If an ancestor path is unavailable
                or the candidates share no root
        """
        paths = []
        missing = []
        for taxid in sorted(candidates):
            try:
                paths.append(self.oracle.ancestor_path(taxid))
            except TaxonNotFoundError:
                missing.append(taxid)

        if missing:
            raise AmbiguityReductionFailure(key, missing)

        try:
            return lowest_common_ancestor(paths)
        except ValueError:
            raise AmbiguityReductionFailure(key, []) from None

    def reduce(self, ambiguous: dict[str, set[int]]) -> ReductionResult:
        """Reduce every ambiguous key.

        Failures are isolated per key; they never abort the remaining keys.

        Args:
            ambiguous: Key -> candidate taxids (each set has 2+ members)

        Returns:
            ReductionResult with reduced keys and per-key failures
        """
        logger.info(f"Reducing {len(ambiguous)} ambiguous names to their LCA")
        self.oracle.prefetch({t for ids in ambiguous.values() for t in ids})

        result = ReductionResult()
        for key in sorted(ambiguous):
            try:
                result.reduced[key] = self.reduce_key(key, ambiguous[key])
            except AmbiguityReductionFailure as e:
                logger.warning(f"LCA reduction failed: {e}")
                result.failures[key] = e
                continue
            logger.debug(
                f"Reduced '{key}' {sorted(ambiguous[key])} -> {result.reduced[key]}"
            )

        logger.info(
            f"LCA reduction complete: {len(result.reduced)} reduced, "
            f"{len(result.failures)} failed"
        )
        return result
