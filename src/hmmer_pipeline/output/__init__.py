"""Output generation: dual-format hits/domains export with provenance sidecar."""

from hmmer_pipeline.output.writers import write_result_tables

__all__ = ["write_result_tables"]
