from .loader import apply_overrides, load_config, load_config_with_overrides
from .schema import (
    PipelineConfig,
    SearchConfig,
    APIConfig,
    TaxonomyConfig,
    PropertyConfig,
    CurationConfig,
)

__all__ = [
    "apply_overrides",
    "load_config",
    "load_config_with_overrides",
    "PipelineConfig",
    "SearchConfig",
    "APIConfig",
    "TaxonomyConfig",
    "PropertyConfig",
    "CurationConfig",
]
