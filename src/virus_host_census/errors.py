"""Exception hierarchy for taxonomy resolution and census runs."""


class CensusError(Exception):
    """Base class for all census errors."""


class TaxonNotFoundError(CensusError, LookupError):
    """The taxonomy oracle has no node for an identifier."""

    def __init__(self, taxid: int):
        self.taxid = taxid
        super().__init__(f"Taxon {taxid} not found in taxonomy")


class AmbiguityReductionFailure(CensusError):
    """Lowest common ancestor could not be computed for a key.

    Attributes:
        key: The textual key whose candidates could not be reduced
        missing: Candidate taxids for which no ancestor path was available
    """

    def __init__(self, key: str, missing: list[int]):
        self.key = key
        self.missing = sorted(missing)
        super().__init__(
            f"Cannot reduce '{key}': no ancestor path for taxids {self.missing}"
        )


class OracleUnavailable(CensusError):
    """The taxonomy oracle could not be reached within the retry budget.

    Attributes:
        pending: Keys (or taxids) still unanswered when the batch failed
    """

    def __init__(self, message: str, pending: list | None = None):
        self.pending = sorted(pending or [], key=str)
        super().__init__(f"{message} ({len(self.pending)} pending)")


class VirusAmbiguityViolation(CensusError):
    """A virus species label resolved to more than one taxon.

    Virus species labels are expected to be unambiguous; a violation points
    at an oracle version mismatch or corrupted metadata and aborts the run.

    Attributes:
        names: Offending species label -> sorted candidate taxids
    """

    def __init__(self, names: dict[str, list[int]]):
        self.names = {name: sorted(ids) for name, ids in sorted(names.items())}
        details = "; ".join(f"{name!r} -> {ids}" for name, ids in self.names.items())
        super().__init__(
            f"{len(self.names)} virus species label(s) resolved to multiple taxa: {details}"
        )


class CatalogInvariantError(CensusError):
    """A key would map to more than one identifier in the identity catalog."""
