"""End-to-end census tests on the toy taxonomy."""

import json
from pathlib import Path
from unittest.mock import Mock

import polars as pl
import pytest
from polars.testing import assert_frame_equal

from virus_host_census.config import load_config
from virus_host_census.errors import OracleUnavailable, VirusAmbiguityViolation
from virus_host_census.persistence import PipelineStore, ProvenanceTracker
from virus_host_census.pipeline import (
    HOST_CANDIDATES_TABLE,
    RANKING_TABLES,
    VIRUS_CANDIDATES_TABLE,
    candidates_to_frame,
    load_candidate_checkpoint,
    run_census,
    run_census_from_config,
)

from conftest import TOY_COMMON_NAMES, TOY_NODES, TOY_SYNONYMS

SARS_RELATED = 694009


def test_census_host_ranking(census_records, toy_oracle):
    result = run_census(census_records, toy_oracle)
    ranking = result.host_ranking

    assert ranking["host_taxid"].to_list() == [9606, 7159, 9913, 2759]
    assert ranking["count"].to_list() == [2, 1, 1, 1]
    assert ranking["fraction"].to_list() == pytest.approx([0.4, 0.2, 0.2, 0.2])
    assert ranking["cumulative_fraction"].to_list() == pytest.approx([0.4, 0.6, 0.8, 1.0])
    assert ranking["taxon_name"].to_list() == [
        "Homo sapiens", "Aedes aegypti", "Bos taurus", "Eukaryota",
    ]
    assert ranking["common_name"][0] == "human"


def test_census_virus_ranking(census_records, toy_oracle):
    result = run_census(census_records, toy_oracle)
    ranking = result.virus_ranking

    assert ranking["virus_taxid"].to_list() == [SARS_RELATED, 11320, 12637]
    assert ranking["count"].to_list() == [3, 3, 2]
    assert ranking["fraction"].to_list() == pytest.approx([0.375, 0.375, 0.25])
    assert ranking["cumulative_fraction"].to_list() == pytest.approx([0.375, 0.75, 1.0])
    assert ranking["total_length"][0] == 29903 + 800 + 29800
    assert result.unresolved_virus_species == ["Mystery virus"]


def test_census_subtree_filtered_rankings(census_records, toy_oracle):
    result = run_census(census_records, toy_oracle, excluded_virus_roots=[11118])

    assert result.filtered_records["accession"].to_list() == [
        "MN2", "MN3", "MN4", "MN5", "MN7", "MN9",
    ]
    assert result.filtered_virus_ranking["virus_taxid"].to_list() == [11320, 12637]
    assert result.filtered_virus_ranking["fraction"].to_list() == pytest.approx([0.6, 0.4])
    assert result.filtered_host_ranking["host_taxid"].to_list() == [7159, 9913]
    assert result.filtered_host_ranking["fraction"].to_list() == pytest.approx([0.5, 0.5])
    # Unfiltered rankings are unaffected by the filter
    assert result.virus_ranking["virus_taxid"].to_list() == [SARS_RELATED, 11320, 12637]
    assert result.excluded_virus_roots == [11118]


def test_census_coverage_and_report(census_records, toy_oracle):
    result = run_census(census_records, toy_oracle)

    coverage = result.coverage
    assert coverage.total_records == 9
    assert coverage.records_with_host == 7
    assert coverage.resolved_host_records == 5
    assert coverage.unresolved_host_records == 2
    assert coverage.unresolved_host_fraction == pytest.approx(2 / 7)
    assert coverage.resolved_virus_records == 8
    assert coverage.unresolved_virus_records == 1
    assert coverage.unresolved_virus_fraction == pytest.approx(1 / 9)

    report = result.host_report
    assert report.total_keys == 6
    assert report.unambiguous == 3
    assert report.ambiguous == 1
    assert report.reduced == 1
    assert report.unresolved == {"Homo sapiens;": "no_match", "bat sp.": "no_match"}

    lca_rows = result.host_catalog.filter(pl.col("resolution") == "lca")
    assert lca_rows.select("key", "taxid").rows() == [("Morus", 2759)]


def test_census_leaves_input_untouched(census_records, toy_oracle):
    before = census_records.clone()

    run_census(census_records, toy_oracle, excluded_virus_roots=[11118])

    assert_frame_equal(census_records, before)


def test_census_is_idempotent(census_records, toy_oracle):
    first = run_census(census_records, toy_oracle, excluded_virus_roots=[11118])
    second = run_census(census_records, toy_oracle, excluded_virus_roots=[11118])

    for name in (
        "host_ranking",
        "virus_ranking",
        "filtered_host_ranking",
        "filtered_virus_ranking",
        "host_catalog",
        "virus_catalog",
    ):
        assert_frame_equal(getattr(first, name), getattr(second, name))


def test_ambiguous_virus_label_stops_before_host_lookup(census_records, toy_oracle):
    records = census_records.with_columns(
        pl.when(pl.col("accession") == "MN3")
        .then(pl.lit("Aedes"))
        .otherwise(pl.col("virus_species"))
        .alias("virus_species")
    )
    counting_oracle = Mock(wraps=toy_oracle)

    with pytest.raises(VirusAmbiguityViolation) as exc_info:
        run_census(records, counting_oracle)

    assert exc_info.value.names == {"Aedes": [7158, 149531]}
    queried = {n for c in counting_oracle.resolve_names.call_args_list for n in c.args[0]}
    assert queried <= set(records["virus_species"].drop_nulls())
    assert "Homo sapiens" not in queried


def test_census_records_provenance(census_records, toy_oracle):
    provenance = Mock(spec=ProvenanceTracker)

    run_census(census_records, toy_oracle, excluded_virus_roots=[11118], provenance=provenance)

    steps = [c.args[0] for c in provenance.record_step.call_args_list]
    assert steps == [
        "resolve_virus_species",
        "resolve_host_keys",
        "filter_virus_subtrees",
        "rank_taxa",
    ]


# ============================================================================
# Checkpoint / resume
# ============================================================================

def test_candidate_frame_roundtrip_keeps_no_match(tmp_path):
    answers = {"Aedes": {7158, 149531}, "bat sp.": set(), "Homo sapiens": {9606}}

    frame = candidates_to_frame(answers)
    assert frame.height == 4

    with PipelineStore(tmp_path / "ckpt.duckdb") as store:
        store.save_dataframe(frame, HOST_CANDIDATES_TABLE)
        assert load_candidate_checkpoint(store, HOST_CANDIDATES_TABLE) == answers
        assert load_candidate_checkpoint(store, "absent_table") == {}


def test_census_saves_results_to_store(census_records, toy_oracle, tmp_path):
    with PipelineStore(tmp_path / "census.duckdb") as store:
        result = run_census(census_records, toy_oracle, store=store)

        saved = {c["table_name"] for c in store.list_checkpoints()}
        assert {
            "host_name_candidates",
            "virus_name_candidates",
            "enriched_records",
            "host_catalog",
            "virus_catalog",
            "host_ranking",
            "virus_ranking",
            "filtered_host_ranking",
            "filtered_virus_ranking",
        } <= saved
        assert_frame_equal(store.load_dataframe("host_ranking"), result.host_ranking)


def test_rerun_reuses_checkpointed_answers(census_records, toy_oracle, tmp_path):
    db_path = tmp_path / "census.duckdb"
    with PipelineStore(db_path) as store:
        first = run_census(census_records, toy_oracle, store=store)

    counting_oracle = Mock(wraps=toy_oracle)
    with PipelineStore(db_path) as store:
        second = run_census(census_records, counting_oracle, store=store)

    assert counting_oracle.resolve_names.call_count == 0
    assert_frame_equal(first.host_ranking, second.host_ranking)
    assert_frame_equal(first.virus_ranking, second.virus_ranking)


def test_interrupted_run_resumes_from_last_batch(census_records, toy_oracle, tmp_path):
    db_path = tmp_path / "census.duckdb"
    calls = []

    def flaky(names):
        calls.append(list(names))
        # Two virus batches, one host batch, then the service drops
        if len(calls) > 3:
            raise OracleUnavailable("service down")
        return toy_oracle.resolve_names(names)

    flaky_oracle = Mock(wraps=toy_oracle)
    flaky_oracle.resolve_names.side_effect = flaky

    with PipelineStore(db_path) as store:
        with pytest.raises(OracleUnavailable) as exc_info:
            run_census(census_records, flaky_oracle, batch_size=2, store=store)
        saved = load_candidate_checkpoint(store, HOST_CANDIDATES_TABLE)
        saved_viruses = load_candidate_checkpoint(store, VIRUS_CANDIDATES_TABLE)

    assert calls[0] == ["Dengue virus", "Influenza A virus"]
    assert calls[2] == ["Aedes aegypti", "Bos taurus"]
    assert saved_viruses["Mystery virus"] == set()
    assert saved == {"Aedes aegypti": {7159}, "Bos taurus": {9913}}
    assert exc_info.value.pending == ["Homo sapiens", "Homo sapiens;", "Morus", "bat sp."]

    resumed_oracle = Mock(wraps=toy_oracle)
    with PipelineStore(db_path) as store:
        resumed = run_census(census_records, resumed_oracle, batch_size=2, store=store)

    queried = {n for c in resumed_oracle.resolve_names.call_args_list for n in c.args[0]}
    assert "Aedes aegypti" not in queried
    assert "Bos taurus" not in queried
    assert "Dengue virus" not in queried
    assert_frame_equal(resumed.host_ranking, run_census(census_records, toy_oracle).host_ranking)


# ============================================================================
# Config-driven run
# ============================================================================

def _write_toy_taxdump(directory: Path) -> tuple[Path, Path]:
    nodes_path = directory / "nodes.dmp"
    names_path = directory / "names.dmp"
    nodes_path.write_text("".join(
        f"{taxid}\t|\t{parent}\t|\tno rank\t|\t\t|\n"
        for taxid, (parent, _) in TOY_NODES.items()
    ))
    lines = [
        f"{taxid}\t|\t{name}\t|\t\t|\tscientific name\t|\n"
        for taxid, (_, name) in TOY_NODES.items()
    ]
    lines += [
        f"{taxid}\t|\t{name}\t|\t\t|\tsynonym\t|\n"
        for name, taxids in TOY_SYNONYMS.items()
        for taxid in taxids
    ]
    lines += [
        f"{taxid}\t|\t{name}\t|\t\t|\tgenbank common name\t|\n"
        for taxid, name in TOY_COMMON_NAMES.items()
    ]
    names_path.write_text("".join(lines))
    return nodes_path, names_path


def test_run_census_from_config(census_records, tmp_path):
    nodes_path, names_path = _write_toy_taxdump(tmp_path)
    config_path = tmp_path / "census.yaml"
    config_path.write_text(f"""
data_dir: {tmp_path / "data"}
cache_dir: {tmp_path / "cache"}
duckdb_path: {tmp_path / "census.duckdb"}
oracle:
  backend: local
  batch_size: 2
  nodes_path: {nodes_path}
  names_path: {names_path}
analysis:
  excluded_virus_roots: [11118]
  singleton_sample_size: 2
  sample_seed: 7
""")
    config = load_config(config_path)

    result = run_census_from_config(config, census_records)

    assert result.host_ranking["host_taxid"].to_list() == [9606, 7159, 9913, 2759]
    assert result.filtered_virus_ranking["virus_taxid"].to_list() == [11320, 12637]
    assert result.singleton_hosts.height == 2
    assert (result.singleton_hosts["count"] == 1).all()

    with PipelineStore(config.duckdb_path) as store:
        rows = store.conn.execute("SELECT version, config_hash FROM _provenance").fetchall()
        assert rows == [(ProvenanceTracker.from_config(config).pipeline_version, config.config_hash())]
        assert store.has_checkpoint("filtered_virus_ranking")

    rankings_dir = tmp_path / "data" / "rankings"
    for table_name in RANKING_TABLES:
        assert (rankings_dir / f"{table_name}.provenance.json").exists()
    exported = pl.read_parquet(rankings_dir / "host_ranking.parquet")
    assert exported["host_taxid"].to_list() == [9606, 7159, 9913, 2759]
    sidecar = json.loads((rankings_dir / "host_ranking.provenance.json").read_text())
    assert sidecar["processing_steps"][0]["step_name"] == "resolve_virus_species"
