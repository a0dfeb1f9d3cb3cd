"""Physicochemical property indices computed from full sequences."""

from hmmer_pipeline.properties.calculator import (
    PhysicochemicalProfile,
    PropertyCalculator,
    clean_sequence,
)
from hmmer_pipeline.properties.indices import INDEX_FUNCTIONS, STANDARD_RESIDUES

__all__ = [
    "PhysicochemicalProfile",
    "PropertyCalculator",
    "clean_sequence",
    "INDEX_FUNCTIONS",
    "STANDARD_RESIDUES",
]
