"""Join resolved taxids back onto sequence records."""

from collections.abc import Iterable

import polars as pl
import structlog

from virus_host_census.errors import CatalogInvariantError, VirusAmbiguityViolation
from virus_host_census.records.models import ENRICHED_SCHEMA
from virus_host_census.resolution.catalog import build_identity_catalog
from virus_host_census.resolution.resolver import CheckpointCallback, NameResolver
from virus_host_census.taxonomy.base import TaxonomyOracle

logger = structlog.get_logger()

TAXID_COLUMNS = ("host_taxid", "virus_taxid")


def resolve_virus_species(
    species: Iterable[str],
    oracle: TaxonomyOracle,
    batch_size: int = 100,
    resolved: dict[str, set[int]] | None = None,
    checkpoint_callback: CheckpointCallback | None = None,
) -> tuple[pl.DataFrame, list[str]]:
    """Resolve virus species labels, which must map one-to-one to taxa.

    Args:
        species: Species labels to resolve
        oracle: Taxonomy oracle
        batch_size: Names per oracle batch
        resolved: Candidate sets from an interrupted earlier run
        checkpoint_callback: Receives each completed batch of answers

    Returns:
        Tuple of (catalog, unresolved labels). The catalog has the same
        columns as the host identity catalog.

    Raises:
        VirusAmbiguityViolation: If any label matches more than one taxon.
            No label is picked arbitrarily; every offender is listed.
    """
    resolution = NameResolver(oracle, batch_size=batch_size).resolve(
        species,
        resolved=resolved,
        checkpoint_callback=checkpoint_callback,
    )

    ambiguous = resolution.ambiguous
    if ambiguous:
        logger.error(
            "virus_species_ambiguous",
            count=len(ambiguous),
            names=sorted(ambiguous)[:10],
        )
        raise VirusAmbiguityViolation(ambiguous)

    catalog = build_identity_catalog(resolution.unambiguous, {}, oracle)
    unresolved = resolution.unresolved
    if unresolved:
        logger.warning(
            "virus_species_unresolved",
            count=len(unresolved),
            examples=unresolved[:10],
        )

    logger.info(
        "virus_species_resolved",
        resolved=catalog.height,
        unresolved=len(unresolved),
    )
    return catalog, unresolved


def _attach(df: pl.DataFrame, on: str, catalog: pl.DataFrame, alias: str) -> pl.DataFrame:
    """Left-join catalog taxids onto df, keeping df's row order."""
    lookup = catalog.select(
        pl.col("key").alias(on),
        pl.col("taxid").alias(alias),
    )
    return (
        df.with_row_index("_row")
        .join(lookup, on=on, how="left")
        .sort("_row")
        .drop("_row")
    )


def enrich_records(
    df: pl.DataFrame,
    host_catalog: pl.DataFrame,
    virus_catalog: pl.DataFrame,
) -> pl.DataFrame:
    """Annotate every record with host_taxid and virus_taxid.

    Records whose host key (or species label) did not resolve get a null
    taxid; no record is dropped.

    Args:
        df: Records with host_key column
        host_catalog: Identity catalog for host keys
        virus_catalog: Identity catalog for virus species labels

    Returns:
        New DataFrame with host_taxid and virus_taxid columns typed as in
        ENRICHED_SCHEMA
    """
    df = df.drop([c for c in TAXID_COLUMNS if c in df.columns])
    enriched = _attach(df, "host_key", host_catalog, "host_taxid")
    enriched = _attach(enriched, "virus_species", virus_catalog, "virus_taxid")

    if enriched.height != df.height:
        raise CatalogInvariantError("Catalog join changed record count; catalog keys are not unique")

    enriched = enriched.cast({c: ENRICHED_SCHEMA[c] for c in TAXID_COLUMNS})

    logger.info(
        "records_enriched",
        records=enriched.height,
        host_resolved=enriched.filter(pl.col("host_taxid").is_not_null()).height,
        virus_resolved=enriched.filter(pl.col("virus_taxid").is_not_null()).height,
    )
    return enriched
