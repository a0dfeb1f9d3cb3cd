"""Exception hierarchy for search, enrichment and curation failures.

Recoverable per-row errors (missing data, transient network failures,
malformed sequences) are caught by the enrichment layer and accumulated.
Structural errors (NormalizationError, ReferentialIntegrityError) indicate
a bug or corrupt input and always stop the run.
"""


class PipelineError(Exception):
    """Base class for all hmmer_pipeline errors."""


class NotReadyError(PipelineError):
    """Results requested for a search job that has not completed."""


class TransientError(PipelineError):
    """Retryable remote failure (5xx, 429, network error, timeout)."""


class ServiceError(PipelineError):
    """Non-retryable remote rejection (4xx or a failed remote job)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SearchTimeoutError(PipelineError, TimeoutError):
    """Poll loop exceeded its maximum wait or maximum poll count."""

    def __init__(self, message: str, job=None):
        super().__init__(message)
        self.job = job


class SearchCancelledError(PipelineError):
    """Poll loop cancelled by the caller.

    The job record is attached so its remote handles survive and polling
    can be resumed.
    """

    def __init__(self, message: str, job=None):
        super().__init__(message)
        self.job = job


class UnknownTaxonError(PipelineError, LookupError):
    """Taxon id absent from the selected taxonomy source."""

    def __init__(self, taxon_id: int, source: str = ""):
        super().__init__(f"Unknown taxon id {taxon_id}" + (f" in {source}" if source else ""))
        self.taxon_id = taxon_id
        self.source = source


class TaxonomyNotLoadedError(PipelineError):
    """Local taxonomy index used before it was loaded."""


class SequenceNotFoundError(PipelineError, LookupError):
    """Sequence source has no entry for the accession."""

    def __init__(self, accession: str):
        super().__init__(f"No sequence found for {accession}")
        self.accession = accession


class InvalidSequenceError(PipelineError, ValueError):
    """Sequence contains residues outside the accepted alphabet."""

    def __init__(self, message: str, invalid_residues: set[str] | None = None):
        super().__init__(message)
        self.invalid_residues = invalid_residues or set()


class NormalizationError(PipelineError):
    """Raw search result cannot be traversed into hits and domains."""


class ReferentialIntegrityError(PipelineError):
    """Domain table references a hit that does not exist."""
