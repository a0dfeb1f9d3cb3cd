"""Caching taxonomy resolver with single-flight lookups."""

import threading
from concurrent.futures import Future
from typing import Mapping

import structlog

from hmmer_pipeline.config.schema import PipelineConfig
from hmmer_pipeline.taxonomy.models import TaxonLineage, TaxonomyMode
from hmmer_pipeline.taxonomy.sources import (
    LocalTaxonomySource,
    RemoteTaxonomySource,
    TaxonomySource,
)

logger = structlog.get_logger()


class TaxonomyResolver:
    """Resolve taxon ids to lineages through interchangeable backends.

    Lineages are cached per resolver keyed by (mode, taxon_id). Concurrent
    callers asking for an id that is already being looked up wait on that
    lookup instead of issuing a second one. Failed lookups are not cached,
    so a later call retries the source.
    """

    def __init__(
        self,
        sources: Mapping[TaxonomyMode | str, TaxonomySource],
        default_mode: TaxonomyMode | str = TaxonomyMode.REMOTE,
    ):
        self._sources = {TaxonomyMode(mode): source for mode, source in sources.items()}
        self.default_mode = TaxonomyMode(default_mode)
        self._cache: dict[tuple[TaxonomyMode, int], TaxonLineage] = {}
        self._inflight: dict[tuple[TaxonomyMode, int], Future] = {}
        self._lock = threading.Lock()
        self.lookup_count = 0

    @property
    def modes(self) -> list[TaxonomyMode]:
        return list(self._sources)

    def _source(self, mode: TaxonomyMode) -> TaxonomySource:
        try:
            return self._sources[mode]
        except KeyError:
            raise ValueError(f"No taxonomy source configured for mode '{mode.value}'") from None

    def resolve(
        self,
        taxon_id: int,
        mode: TaxonomyMode | str | None = None,
    ) -> TaxonLineage:
        """Return the lineage for taxon_id from the selected backend.

        Raises:
            UnknownTaxonError: If the id is absent from the selected source
            TransientError, ServiceError: Remote failures after retries
        """
        mode = TaxonomyMode(mode) if mode is not None else self.default_mode
        source = self._source(mode)
        key = (mode, int(taxon_id))

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            future = self._inflight.get(key)
            is_owner = future is None
            if is_owner:
                future = Future()
                self._inflight[key] = future
                self.lookup_count += 1

        if not is_owner:
            return future.result()

        try:
            lineage = source.lookup(key[1])
        except BaseException as e:
            with self._lock:
                del self._inflight[key]
            future.set_exception(e)
            raise

        with self._lock:
            self._cache[key] = lineage
            del self._inflight[key]
        future.set_result(lineage)
        return lineage

    def cached(self, taxon_id: int, mode: TaxonomyMode | str | None = None) -> TaxonLineage | None:
        """Return a cached lineage without querying any source."""
        mode = TaxonomyMode(mode) if mode is not None else self.default_mode
        with self._lock:
            return self._cache.get((mode, int(taxon_id)))

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "TaxonomyResolver":
        """Build a resolver with the backends the configuration enables.

        The remote source is always available; the local source is added
        when ``taxonomy.local_index_path`` is set.
        """
        sources: dict[TaxonomyMode, TaxonomySource] = {
            TaxonomyMode.REMOTE: RemoteTaxonomySource(
                email=config.taxonomy.entrez_email,
                api_key=config.taxonomy.entrez_api_key,
                max_retries=config.api.max_retries,
            ),
        }
        if config.taxonomy.local_index_path is not None:
            sources[TaxonomyMode.LOCAL] = LocalTaxonomySource.from_file(
                config.taxonomy.local_index_path
            )
        elif config.taxonomy.mode == TaxonomyMode.LOCAL.value:
            raise ValueError(
                "taxonomy.mode is 'local' but taxonomy.local_index_path is not set"
            )

        logger.info(
            "taxonomy_resolver_init",
            modes=[m.value for m in sources],
            default_mode=config.taxonomy.mode,
        )
        return cls(sources, default_mode=config.taxonomy.mode)
