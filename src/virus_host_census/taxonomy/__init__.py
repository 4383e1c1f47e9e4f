"""Taxonomic hierarchy oracle adapters.

The oracle answers name -> taxid lookups (possibly multi-valued), taxid ->
canonical/common name, taxid -> root-to-node ancestor path, and taxid ->
descendant set. Two backends are provided: NCBI E-utilities (remote, rate
limited) and a local NCBI taxdump mirror.
"""

from virus_host_census.taxonomy.base import ROOT_TAXID, TaxonomyOracle
from virus_host_census.taxonomy.entrez import EntrezTaxonomyOracle
from virus_host_census.taxonomy.local import LocalTaxonomyOracle

__all__ = [
    "ROOT_TAXID",
    "TaxonomyOracle",
    "EntrezTaxonomyOracle",
    "LocalTaxonomyOracle",
    "oracle_from_config",
]


def oracle_from_config(config) -> TaxonomyOracle:
    """Build the oracle backend selected in the configuration."""
    if config.oracle.backend == "local":
        return LocalTaxonomyOracle.from_dmp(
            config.oracle.nodes_path,
            config.oracle.names_path,
        )
    return EntrezTaxonomyOracle.from_config(config)
