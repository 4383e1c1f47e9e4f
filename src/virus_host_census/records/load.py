"""Parse sequence metadata tables into the record schema."""

from collections.abc import Iterable
from pathlib import Path

import polars as pl
import structlog

from virus_host_census.records.models import (
    COLUMN_VARIANTS,
    RECORD_SCHEMA,
    SequenceRecord,
)
from virus_host_census.resolution.extractor import extract_binomial_key

logger = structlog.get_logger()


def _check_unique_accessions(df: pl.DataFrame) -> None:
    duplicated = df.filter(pl.col("accession").is_duplicated())["accession"].unique()
    if len(duplicated) > 0:
        examples = sorted(duplicated.to_list())[:5]
        raise ValueError(
            f"Found {len(duplicated)} duplicated accessions (examples: {examples})"
        )


def parse_sequence_metadata(path: Path | str) -> pl.DataFrame:
    """Read a metadata table into the record schema.

    Column names are matched against known variants (NCBI Virus exports use
    Accession/Length/Host/Species). Comma separation is assumed for .csv
    files and tab separation otherwise. Empty host cells become null.

    Args:
        path: Path to TSV/CSV metadata table

    Returns:
        DataFrame with columns accession, sequence_length, host, virus_species

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a required column is missing or accessions repeat
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Metadata table not found: {path}")

    separator = "," if path.suffix.lower() == ".csv" else "\t"
    raw = pl.read_csv(
        path,
        separator=separator,
        infer_schema_length=0,
        null_values=[""],
    )

    column_mapping = {}
    for our_name, variants in COLUMN_VARIANTS.items():
        for variant in variants:
            if variant in raw.columns:
                column_mapping[our_name] = variant
                break

    missing = [c for c in COLUMN_VARIANTS if c not in column_mapping]
    if missing:
        raise ValueError(
            f"Metadata table {path} lacks required columns {missing} "
            f"(found: {raw.columns[:10]})"
        )

    logger.info("metadata_column_mapping", mapping=column_mapping)

    df = raw.select(
        [pl.col(column_mapping[c]).alias(c) for c in RECORD_SCHEMA]
    ).cast(RECORD_SCHEMA)

    _check_unique_accessions(df)

    logger.info(
        "metadata_parsed",
        path=str(path),
        records=df.height,
        missing_host=df.filter(pl.col("host").is_null()).height,
    )
    return df


def build_record_frame(records: Iterable[SequenceRecord]) -> pl.DataFrame:
    """Build a record frame from SequenceRecord models.

    Only the ingested attributes are taken; derived columns are recomputed
    by the pipeline.
    """
    records = list(records)
    df = pl.DataFrame(
        {
            column: [getattr(r, column) for r in records]
            for column in RECORD_SCHEMA
        },
        schema=RECORD_SCHEMA,
    )
    _check_unique_accessions(df)
    return df


def add_host_keys(df: pl.DataFrame) -> pl.DataFrame:
    """Add host_key column with the binomial key of each host annotation.

    Blank or missing annotations get a null key.
    """
    stripped = pl.col("host").str.strip_chars()
    df = df.with_columns(
        pl.when(stripped.is_null() | (stripped == ""))
        .then(pl.lit(None, dtype=pl.Utf8))
        .otherwise(pl.col("host"))
        .map_elements(extract_binomial_key, return_dtype=pl.Utf8, skip_nulls=True)
        .alias("host_key")
    )

    logger.info(
        "host_keys_derived",
        records=df.height,
        with_key=df.filter(pl.col("host_key").is_not_null()).height,
        distinct_keys=df["host_key"].drop_nulls().n_unique(),
    )
    return df
