"""Rank taxa by number of associated sequence records."""

import polars as pl
import structlog

from virus_host_census.errors import TaxonNotFoundError
from virus_host_census.taxonomy.base import TaxonomyOracle

logger = structlog.get_logger()

GROUP_COLUMNS = {
    "host_taxid": pl.Int64,
    "virus_taxid": pl.Int64,
    "virus_species": pl.Utf8,
    "host_key": pl.Utf8,
}


def ranking_schema(column: str) -> dict:
    return {
        "rank": pl.UInt32,
        column: GROUP_COLUMNS[column],
        "count": pl.Int64,
        "total_length": pl.Int64,
        "fraction": pl.Float64,
        "cumulative_fraction": pl.Float64,
    }


def rank_by(df: pl.DataFrame, column: str) -> pl.DataFrame:
    """Group records by a column and rank groups by record count.

    Groups are sorted by count descending. Equal counts keep the order in
    which the groups first appear in ``df``, so the result is fully
    determined by the input order. Rows with a null grouping value are
    excluded; they are reported by summarize_coverage instead.

    fraction is count / number of non-null rows, and cumulative_fraction is
    the running record count over the same denominator, so it is
    non-decreasing and its last value is exactly 1.0.

    Args:
        df: Record set (enriched, optionally filtered)
        column: One of host_taxid, virus_taxid, virus_species, host_key

    Returns:
        DataFrame with columns rank, <column>, count, total_length,
        fraction, cumulative_fraction

    Raises:
        ValueError: If column is not a supported grouping column
    """
    if column not in GROUP_COLUMNS:
        raise ValueError(
            f"Cannot rank by '{column}'; expected one of {sorted(GROUP_COLUMNS)}"
        )

    present = df.filter(pl.col(column).is_not_null())
    total = present.height
    if total == 0:
        logger.info("ranking_empty", column=column)
        return pl.DataFrame(schema=ranking_schema(column))

    ranked = (
        present.group_by(column, maintain_order=True)
        .agg(
            pl.len().cast(pl.Int64).alias("count"),
            pl.col("sequence_length").sum().cast(pl.Int64).alias("total_length"),
        )
        .sort("count", descending=True, maintain_order=True)
        .with_columns(
            (pl.col("count") / total).alias("fraction"),
            (pl.col("count").cum_sum() / total).alias("cumulative_fraction"),
        )
        .with_row_index("rank", offset=1)
    )

    logger.info(
        "ranking_complete",
        column=column,
        records=total,
        excluded_null=df.height - total,
        groups=ranked.height,
    )
    return ranked.select(list(ranking_schema(column))).cast(ranking_schema(column))


def add_taxon_names(ranking: pl.DataFrame, column: str, oracle: TaxonomyOracle) -> pl.DataFrame:
    """Append taxon_name and common_name for a taxid-ranked table.

    Taxids the oracle does not know get null names.
    """
    taxids = ranking[column].to_list()
    oracle.prefetch(taxids)

    scientific = []
    common = []
    for taxid in taxids:
        try:
            name = oracle.canonical_name(taxid)
            common_name = oracle.common_name(taxid)
        except TaxonNotFoundError:
            logger.warning("taxon_name_missing", taxid=taxid)
            name = common_name = None
        scientific.append(name)
        common.append(common_name)

    return ranking.with_columns(
        pl.Series("taxon_name", scientific, dtype=pl.Utf8),
        pl.Series("common_name", common, dtype=pl.Utf8),
    )
