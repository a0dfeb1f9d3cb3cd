"""Persistence layer for pipeline checkpoints and provenance tracking."""

from hmmer_pipeline.persistence.duckdb_store import PipelineStore
from hmmer_pipeline.persistence.provenance import ProvenanceTracker

__all__ = ["PipelineStore", "ProvenanceTracker"]
