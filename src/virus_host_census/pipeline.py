"""End-to-end census: resolve hosts and viruses, filter, and rank.

Data flows strictly forward:
virus species resolution -> host key resolution (LCA reduction) ->
identity catalogs -> record enrichment -> subtree filter -> rankings
(unfiltered and filtered) -> optional Parquet export.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import polars as pl
import structlog

from virus_host_census.config.schema import PipelineConfig
from virus_host_census.persistence import PipelineStore, ProvenanceTracker
from virus_host_census.records.enrich import enrich_records, resolve_virus_species
from virus_host_census.records.filter import filter_subtrees
from virus_host_census.records.load import add_host_keys
from virus_host_census.resolution.catalog import ResolutionReport, resolve_keys
from virus_host_census.stats.ranking import add_taxon_names, rank_by
from virus_host_census.stats.summary import (
    CoverageSummary,
    sample_singletons,
    summarize_coverage,
)
from virus_host_census.taxonomy import TaxonomyOracle, oracle_from_config

logger = structlog.get_logger()

HOST_CANDIDATES_TABLE = "host_name_candidates"
VIRUS_CANDIDATES_TABLE = "virus_name_candidates"
RANKING_TABLES = (
    "host_ranking",
    "virus_ranking",
    "filtered_host_ranking",
    "filtered_virus_ranking",
)


@dataclass
class CensusResult:
    """All outputs of one census run.

    Rankings on taxid columns carry taxon_name and common_name.
    """
    records: pl.DataFrame
    filtered_records: pl.DataFrame
    host_catalog: pl.DataFrame
    virus_catalog: pl.DataFrame
    host_report: ResolutionReport
    unresolved_virus_species: list[str]
    host_ranking: pl.DataFrame
    virus_ranking: pl.DataFrame
    filtered_host_ranking: pl.DataFrame
    filtered_virus_ranking: pl.DataFrame
    coverage: CoverageSummary
    filtered_coverage: CoverageSummary
    excluded_virus_roots: list[int] = field(default_factory=list)
    singleton_hosts: pl.DataFrame | None = None


def load_candidate_checkpoint(store: PipelineStore, table_name: str) -> dict[str, set[int]]:
    """Read saved name -> candidate taxids answers (empty if none saved)."""
    if not store.has_checkpoint(table_name):
        return {}
    df = store.load_dataframe(table_name)

    candidates: dict[str, set[int]] = {}
    for key, taxid in df.select("key", "candidate_taxid").iter_rows():
        ids = candidates.setdefault(key, set())
        if taxid is not None:
            ids.add(taxid)
    return candidates


def candidates_to_frame(candidates: dict[str, set[int]]) -> pl.DataFrame:
    """Long-form table of answers; a null taxid marks a name with no match."""
    rows = []
    for key in sorted(candidates):
        ids = sorted(candidates[key])
        rows.extend((key, taxid) for taxid in ids or [None])
    return pl.DataFrame(
        rows,
        schema={"key": pl.Utf8, "candidate_taxid": pl.Int64},
        orient="row",
    )


def _checkpoint_saver(store: PipelineStore, table_name: str, answered: dict[str, set[int]]):
    def save(batch: dict[str, set[int]]) -> None:
        answered.update(batch)
        store.save_dataframe(
            candidates_to_frame(answered),
            table_name,
            description="Oracle name -> candidate taxid answers",
        )
    return save


def run_census(
    records: pl.DataFrame,
    oracle: TaxonomyOracle,
    excluded_virus_roots: Iterable[int] = (),
    batch_size: int = 100,
    store: PipelineStore | None = None,
    provenance: ProvenanceTracker | None = None,
) -> CensusResult:
    """Run the full census over a record set.

    Args:
        records: Record frame (accession, sequence_length, host, virus_species)
        oracle: Taxonomy oracle
        excluded_virus_roots: Taxids whose virus subtrees are removed for
            the filtered rankings
        batch_size: Names per oracle batch
        store: Optional checkpoint store; answered names are saved after
            every batch and reused on the next run
        provenance: Optional tracker receiving one step per stage

    Returns:
        CensusResult

    Raises:
        VirusAmbiguityViolation: If a virus species label is ambiguous
        OracleUnavailable: If the oracle stays unreachable; progress up to the
            failing batch is already in ``store``
    """
    roots = sorted(set(excluded_virus_roots))
    logger.info("census_start", records=records.height, excluded_roots=roots)

    def step(name: str, details: dict) -> None:
        if provenance is not None:
            provenance.record_step(name, details)

    records = add_host_keys(records)
    host_keys = records["host_key"].drop_nulls().unique().to_list()

    host_resume: dict[str, set[int]] = {}
    virus_resume: dict[str, set[int]] = {}
    host_callback = virus_callback = None
    if store is not None:
        host_resume = load_candidate_checkpoint(store, HOST_CANDIDATES_TABLE)
        virus_resume = load_candidate_checkpoint(store, VIRUS_CANDIDATES_TABLE)
        host_callback = _checkpoint_saver(store, HOST_CANDIDATES_TABLE, dict(host_resume))
        virus_callback = _checkpoint_saver(store, VIRUS_CANDIDATES_TABLE, dict(virus_resume))
        logger.info(
            "census_checkpoint_loaded",
            host_names=len(host_resume),
            virus_names=len(virus_resume),
        )

    # An ambiguous virus label aborts the run before any host lookup
    species = records["virus_species"].drop_nulls().unique().to_list()
    virus_catalog, unresolved_species = resolve_virus_species(
        species,
        oracle,
        batch_size=batch_size,
        resolved=virus_resume,
        checkpoint_callback=virus_callback,
    )
    step("resolve_virus_species", {
        "species": len(species),
        "resolved": virus_catalog.height,
        "unresolved": len(unresolved_species),
    })

    host_catalog, host_report = resolve_keys(
        host_keys,
        oracle,
        batch_size=batch_size,
        resolved=host_resume,
        checkpoint_callback=host_callback,
    )
    step("resolve_host_keys", host_report.to_dict())

    enriched = enrich_records(records, host_catalog, virus_catalog)
    filtered = filter_subtrees(enriched, roots, oracle)
    step("filter_virus_subtrees", {
        "roots": roots,
        "records_before": enriched.height,
        "records_after": filtered.height,
    })

    host_ranking = add_taxon_names(rank_by(enriched, "host_taxid"), "host_taxid", oracle)
    virus_ranking = add_taxon_names(rank_by(enriched, "virus_taxid"), "virus_taxid", oracle)
    filtered_host_ranking = add_taxon_names(
        rank_by(filtered, "host_taxid"), "host_taxid", oracle
    )
    filtered_virus_ranking = add_taxon_names(
        rank_by(filtered, "virus_taxid"), "virus_taxid", oracle
    )

    coverage = summarize_coverage(enriched)
    filtered_coverage = summarize_coverage(filtered)
    step("rank_taxa", {
        "host_taxa": host_ranking.height,
        "virus_taxa": virus_ranking.height,
        "filtered_host_taxa": filtered_host_ranking.height,
        "filtered_virus_taxa": filtered_virus_ranking.height,
        "unresolved_host_records": coverage.unresolved_host_records,
        "unresolved_host_fraction": round(coverage.unresolved_host_fraction, 6),
        "unresolved_virus_records": coverage.unresolved_virus_records,
        "unresolved_virus_fraction": round(coverage.unresolved_virus_fraction, 6),
    })

    if store is not None:
        store.save_dataframe(enriched, "enriched_records", "Records with host/virus taxids")
        store.save_dataframe(host_catalog, "host_catalog", "Host key -> taxid")
        store.save_dataframe(virus_catalog, "virus_catalog", "Virus species -> taxid")
        store.save_dataframe(host_ranking, "host_ranking", "Hosts ranked by records")
        store.save_dataframe(virus_ranking, "virus_ranking", "Viruses ranked by records")
        store.save_dataframe(
            filtered_host_ranking, "filtered_host_ranking",
            "Hosts ranked by records after subtree filter",
        )
        store.save_dataframe(
            filtered_virus_ranking, "filtered_virus_ranking",
            "Viruses ranked by records after subtree filter",
        )

    logger.info(
        "census_complete",
        records=enriched.height,
        filtered_records=filtered.height,
        host_taxa=host_ranking.height,
        virus_taxa=virus_ranking.height,
    )

    return CensusResult(
        records=enriched,
        filtered_records=filtered,
        host_catalog=host_catalog,
        virus_catalog=virus_catalog,
        host_report=host_report,
        unresolved_virus_species=unresolved_species,
        host_ranking=host_ranking,
        virus_ranking=virus_ranking,
        filtered_host_ranking=filtered_host_ranking,
        filtered_virus_ranking=filtered_virus_ranking,
        coverage=coverage,
        filtered_coverage=filtered_coverage,
        excluded_virus_roots=roots,
    )


def run_census_from_config(
    config: PipelineConfig,
    records: pl.DataFrame,
    oracle: TaxonomyOracle | None = None,
) -> CensusResult:
    """Run the census with oracle, store and provenance built from config.

    Provenance is saved to the store, a seeded sample of hosts seen
    exactly once is attached as ``singleton_hosts``, and the four rankings
    are exported to ``<data_dir>/rankings``.
    """
    if oracle is None:
        oracle = oracle_from_config(config)

    provenance = ProvenanceTracker.from_config(config)
    with PipelineStore.from_config(config) as store:
        result = run_census(
            records,
            oracle,
            excluded_virus_roots=config.analysis.excluded_virus_roots,
            batch_size=config.oracle.batch_size,
            store=store,
            provenance=provenance,
        )

        result.singleton_hosts = sample_singletons(
            result.host_ranking,
            config.analysis.singleton_sample_size,
            seed=config.analysis.sample_seed,
        )
        provenance.record_step("sample_singleton_hosts", {
            "sampled": result.singleton_hosts.height,
            "seed": config.analysis.sample_seed,
        })
        logger.info(
            "singleton_hosts_sampled",
            hosts=result.singleton_hosts["taxon_name"].to_list(),
        )
        provenance.save_to_store(store)
        export_rankings(store, provenance, config.data_dir / "rankings")

    return result


def export_rankings(
    store: PipelineStore,
    provenance: ProvenanceTracker,
    output_dir: Path,
) -> list[Path]:
    """Write each saved ranking table as Parquet with a provenance sidecar."""
    paths = []
    for table_name in RANKING_TABLES:
        path = store.export_parquet(table_name, output_dir / f"{table_name}.parquet")
        provenance.save_sidecar(path)
        paths.append(path)

    logger.info(
        "rankings_exported",
        output_dir=str(output_dir),
        tables=[c["table_name"] for c in store.list_checkpoints()],
    )
    return paths
