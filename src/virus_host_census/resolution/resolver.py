"""Batch name -> taxid resolution against the taxonomy oracle."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from virus_host_census.errors import OracleUnavailable
from virus_host_census.taxonomy.base import TaxonomyOracle

logger = logging.getLogger(__name__)

CheckpointCallback = Callable[[dict[str, set[int]]], None]


@dataclass
class NameResolution:
    """Candidate taxids for every queried name.

    Attributes:
        candidates: Name -> candidate taxids (empty set when unknown)
    """
    candidates: dict[str, set[int]] = field(default_factory=dict)

    @property
    def unresolved(self) -> list[str]:
        return sorted(k for k, ids in self.candidates.items() if not ids)

    @property
    def unambiguous(self) -> dict[str, int]:
        return {
            k: next(iter(ids))
            for k, ids in sorted(self.candidates.items())
            if len(ids) == 1
        }

    @property
    def ambiguous(self) -> dict[str, set[int]]:
        return {k: ids for k, ids in sorted(self.candidates.items()) if len(ids) > 1}


class NameResolver:
    """Resolve distinct textual keys to candidate taxids in batches.

    Each batch is answered independently and merged only after it completes.
    Keys the oracle leaves out of a batch answer are re-queried in later
    rounds; a key still missing after ``max_rounds`` is reported as pending
    through OracleUnavailable.
    """

    def __init__(
        self,
        oracle: TaxonomyOracle,
        batch_size: int = 100,
        max_rounds: int = 3,
    ):
        """Initialize resolver.

        Args:
            oracle: Taxonomy oracle to query
            batch_size: Number of names per oracle batch
            max_rounds: Passes over keys the oracle omitted from its answers
        """
        self.oracle = oracle
        self.batch_size = batch_size
        self.max_rounds = max_rounds
        logger.info(f"Initialized NameResolver with batch_size={batch_size}")

    def resolve(
        self,
        keys: Iterable[str],
        resolved: dict[str, set[int]] | None = None,
        checkpoint_callback: CheckpointCallback | None = None,
    ) -> NameResolution:
        """Resolve keys to candidate taxid sets.

        Args:
            keys: Keys to resolve; duplicates are ignored, order is irrelevant
            resolved: Answers from an earlier, interrupted run; these keys
                are not queried again
            checkpoint_callback: Called with the answers of each completed
                batch so progress can be persisted

        Returns:
            NameResolution covering every key

        Raises:
            OracleUnavailable: If a batch fails after retries, or keys remain
                unanswered after all rounds. ``pending`` lists every key
                without an answer; answers already passed to the callback
                remain valid.
        """
        wanted_set = set(keys)
        wanted = sorted(wanted_set)
        candidates: dict[str, set[int]] = {
            k: set(ids) for k, ids in (resolved or {}).items() if k in wanted_set
        }
        pending = [k for k in wanted if k not in candidates]

        logger.info(
            f"Resolving {len(wanted)} names "
            f"({len(candidates)} from checkpoint, {len(pending)} to query)"
        )

        for round_num in range(1, self.max_rounds + 1):
            if not pending:
                break
            if round_num > 1:
                logger.warning(
                    f"Round {round_num}: re-querying {len(pending)} names "
                    "missing from earlier answers"
                )
            missing: list[str] = []
            total_batches = (len(pending) + self.batch_size - 1) // self.batch_size

            for i in range(0, len(pending), self.batch_size):
                batch = pending[i:i + self.batch_size]
                logger.info(
                    f"Processing batch {i // self.batch_size + 1}/{total_batches} "
                    f"({len(batch)} names)"
                )

                try:
                    answer = self.oracle.resolve_names(batch)
                except OracleUnavailable as e:
                    still_pending = missing + [k for k in pending[i:] if k not in candidates]
                    raise OracleUnavailable(
                        f"Name resolution stopped at batch {i // self.batch_size + 1}",
                        pending=still_pending,
                    ) from e

                batch_answers = {k: set(answer[k]) for k in batch if k in answer}
                missing.extend(k for k in batch if k not in answer)
                candidates.update(batch_answers)

                if checkpoint_callback is not None and batch_answers:
                    checkpoint_callback(batch_answers)

            pending = missing

        if pending:
            raise OracleUnavailable(
                f"Oracle left names unanswered after {self.max_rounds} rounds",
                pending=pending,
            )

        result = NameResolution(candidates=candidates)
        logger.info(
            f"Name resolution complete: {len(result.unambiguous)} unambiguous, "
            f"{len(result.ambiguous)} ambiguous, {len(result.unresolved)} unresolved"
        )
        return result
