"""Memoized physicochemical profile calculator."""

import threading
from typing import Mapping

import structlog

from hmmer_pipeline.config.schema import PipelineConfig
from hmmer_pipeline.errors import InvalidSequenceError
from hmmer_pipeline.normalize.models import HIT_SCHEMA
from hmmer_pipeline.properties.indices import (
    INDEX_FUNCTIONS,
    STANDARD_RESIDUES,
    IndexFunction,
)
from hmmer_pipeline.taxonomy.models import LINEAGE_COLUMN_PREFIX

logger = structlog.get_logger()

PhysicochemicalProfile = dict[str, float]

# Hit columns an index may not shadow when profiles are joined onto hits
RESERVED_COLUMNS = set(HIT_SCHEMA) | {"significant_domain_count", "red_flag"}


def clean_sequence(sequence: str) -> str:
    """Uppercase a sequence, drop whitespace and a trailing stop symbol.

    Raises:
        InvalidSequenceError: If the sequence is empty or contains residues
            outside the 20 standard amino acids
    """
    if sequence is None:
        raise InvalidSequenceError("Sequence is missing")

    cleaned = "".join(sequence.split()).upper().rstrip("*")
    if not cleaned:
        raise InvalidSequenceError("Sequence is empty")

    invalid = set(cleaned) - STANDARD_RESIDUES
    if invalid:
        raise InvalidSequenceError(
            f"Sequence contains non-standard residues: {''.join(sorted(invalid))}",
            invalid_residues=invalid,
        )
    return cleaned


class PropertyCalculator:
    """Compute a configurable set of indices, once per distinct sequence.

    The index set is a strategy: pass ``indices`` as names from
    INDEX_FUNCTIONS or as a {name: function} mapping for custom scores.
    Profiles are memoized by the cleaned sequence string; computation for a
    key happens at most once even when called from several threads.
    """

    def __init__(
        self,
        indices: list[str] | Mapping[str, IndexFunction] | None = None,
    ):
        if indices is None:
            self.functions = dict(INDEX_FUNCTIONS)
        elif isinstance(indices, Mapping):
            self.functions = dict(indices)
        else:
            unknown = [name for name in indices if name not in INDEX_FUNCTIONS]
            if unknown:
                raise ValueError(
                    f"Unknown property indices: {unknown}. "
                    f"Available: {sorted(INDEX_FUNCTIONS)}"
                )
            self.functions = {name: INDEX_FUNCTIONS[name] for name in indices}

        clashes = [
            name for name in self.functions
            if name in RESERVED_COLUMNS or name.startswith(LINEAGE_COLUMN_PREFIX)
        ]
        if clashes:
            raise ValueError(f"Property index names clash with hit columns: {clashes}")

        self._memo: dict[str, PhysicochemicalProfile] = {}
        self._lock = threading.Lock()
        self.compute_count = 0

    @property
    def index_names(self) -> list[str]:
        return list(self.functions)

    def compute(self, sequence: str) -> PhysicochemicalProfile:
        """Return the profile for a sequence.

        Raises:
            InvalidSequenceError: On residues outside the accepted alphabet
        """
        key = clean_sequence(sequence)

        with self._lock:
            profile = self._memo.get(key)
            if profile is None:
                profile = {name: func(key) for name, func in self.functions.items()}
                self._memo[key] = profile
                self.compute_count += 1

        return dict(profile)

    def memo_size(self) -> int:
        with self._lock:
            return len(self._memo)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "PropertyCalculator":
        logger.info("property_calculator_init", indices=config.properties.indices)
        return cls(config.properties.indices)
