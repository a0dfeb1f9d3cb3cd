"""hmmer-pipeline: profile-HMM search, normalization, enrichment and curation."""

__version__ = "0.1.0"
