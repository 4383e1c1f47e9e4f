"""Remove records whose virus lies in an excluded taxonomic subtree."""

from collections.abc import Iterable

import polars as pl
import structlog

from virus_host_census.taxonomy.base import TaxonomyOracle

logger = structlog.get_logger()


def excluded_taxids(roots: Iterable[int], oracle: TaxonomyOracle) -> set[int]:
    """Union of the roots and every descendant of each root."""
    excluded: set[int] = set()
    for root in sorted(set(roots)):
        subtree = oracle.descendants(root)
        excluded.add(root)
        excluded.update(subtree)
        logger.info("subtree_expanded", root=root, size=len(subtree))
    return excluded


def filter_subtrees(
    df: pl.DataFrame,
    roots: Iterable[int],
    oracle: TaxonomyOracle,
    column: str = "virus_taxid",
) -> pl.DataFrame:
    """Drop records whose taxid falls under any excluded root.

    The input frame is left untouched. Records with a null taxid are kept,
    since they cannot be shown to lie inside an excluded subtree.

    Args:
        df: Enriched records
        roots: Excluded root taxids
        oracle: Oracle providing descendant sets
        column: Taxid column to test

    Returns:
        Filtered DataFrame (a subset of df, original order preserved)
    """
    roots = sorted(set(roots))
    excluded = excluded_taxids(roots, oracle)
    if not excluded:
        return df.clone()

    filtered = df.filter(
        ~pl.col(column).is_in(sorted(excluded)).fill_null(False)
    )

    logger.info(
        "subtree_filter_applied",
        roots=roots,
        excluded_taxa=len(excluded),
        records_before=df.height,
        records_after=filtered.height,
    )
    return filtered
