"""Shared fixtures: a toy NCBI-like taxonomy and a small record set."""

import polars as pl
import pytest

from virus_host_census.records.models import RECORD_SCHEMA
from virus_host_census.taxonomy.local import LocalTaxonomyOracle

# taxid: (parent, scientific name)
TOY_NODES = {
    1: (1, "root"),
    131567: (1, "cellular organisms"),
    2759: (131567, "Eukaryota"),
    33208: (2759, "Metazoa"),
    7711: (33208, "Chordata"),
    40674: (7711, "Mammalia"),
    9606: (40674, "Homo sapiens"),
    9913: (40674, "Bos taurus"),
    8782: (7711, "Aves"),
    37577: (8782, "Morus"),
    6656: (33208, "Arthropoda"),
    7157: (6656, "Culicidae"),
    7158: (7157, "Aedes"),
    149531: (7158, "Aedes"),
    7159: (149531, "Aedes aegypti"),
    33090: (2759, "Viridiplantae"),
    3497: (33090, "Morus"),
    10239: (1, "Viruses"),
    11118: (10239, "Coronaviridae"),
    694009: (11118, "Severe acute respiratory syndrome-related coronavirus"),
    2697049: (694009, "Severe acute respiratory syndrome coronavirus 2"),
    11308: (10239, "Orthomyxoviridae"),
    11320: (11308, "Influenza A virus"),
    11050: (10239, "Flaviviridae"),
    12637: (11050, "Dengue virus"),
}

TOY_SYNONYMS = {
    "human": {9606},
    "cattle": {9913},
    "SARS-CoV-2": {2697049},
}

TOY_COMMON_NAMES = {
    9606: "human",
    9913: "cattle",
    7159: "yellow fever mosquito",
}


@pytest.fixture
def toy_oracle() -> LocalTaxonomyOracle:
    """In-memory taxonomy with genus/subgenus and cross-kingdom homonyms."""
    return LocalTaxonomyOracle(
        parents={taxid: parent for taxid, (parent, _) in TOY_NODES.items()},
        scientific_names={taxid: name for taxid, (_, name) in TOY_NODES.items()},
        other_names=TOY_SYNONYMS,
        common_names=TOY_COMMON_NAMES,
    )


@pytest.fixture
def census_records() -> pl.DataFrame:
    """Nine records covering resolved, unresolved, ambiguous and blank hosts."""
    sars = "Severe acute respiratory syndrome-related coronavirus"
    rows = [
        ("MN1", 29903, "Homo sapiens", sars),
        ("MN2", 1000, "Homo sapiens; female", "Influenza A virus"),
        ("MN3", 1200, "Aedes aegypti", "Dengue virus"),
        ("MN4", 1500, "Bos taurus", "Influenza A virus"),
        ("MN5", 900, None, "Influenza A virus"),
        ("MN6", 800, "Morus", sars),
        ("MN7", 700, "bat sp.", "Mystery virus"),
        ("MN8", 29800, "Homo  sapiens", sars),
        ("MN9", 500, "   ", "Dengue virus"),
    ]
    return pl.DataFrame(rows, schema=RECORD_SCHEMA, orient="row")
