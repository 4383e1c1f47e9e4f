"""Data model for deposited virus sequence records."""

import polars as pl
from pydantic import BaseModel, Field

# Column name variants seen in sequence metadata exports
# NCBI Virus uses: Accession, Length, Host, Species
COLUMN_VARIANTS = {
    "accession": ["Accession", "accession", "Nucleotide Accession", "acc"],
    "sequence_length": ["Length", "length", "sequence_length", "Sequence Length"],
    "host": ["Host", "host", "Host Name", "host_name"],
    "virus_species": ["Species", "species", "virus_species", "Virus Species"],
}

# Schema of an ingested record set (before enrichment)
RECORD_SCHEMA = {
    "accession": pl.Utf8,
    "sequence_length": pl.Int64,
    "host": pl.Utf8,
    "virus_species": pl.Utf8,
}

# Columns added by key derivation and enrichment
ENRICHED_SCHEMA = {
    **RECORD_SCHEMA,
    "host_key": pl.Utf8,
    "host_taxid": pl.Int64,
    "virus_taxid": pl.Int64,
}


class SequenceRecord(BaseModel):
    """One deposited virus sequence.

    Attributes:
        accession: Unique sequence accession
        sequence_length: Sequence length in bases
        host: Free-text host annotation (None or blank when not recorded)
        virus_species: Virus species label
        host_key: Binomial key derived from the host annotation
        host_taxid: Resolved host taxid (None if the key did not resolve)
        virus_taxid: Resolved virus taxid (None if the label did not resolve)

    Records with a blank host are kept: they count towards overall and
    virus-centric totals but never towards host-centric statistics.
    """

    accession: str = Field(..., min_length=1)
    sequence_length: int = Field(..., ge=0)
    host: str | None = None
    virus_species: str = Field(..., min_length=1)
    host_key: str | None = None
    host_taxid: int | None = None
    virus_taxid: int | None = None
