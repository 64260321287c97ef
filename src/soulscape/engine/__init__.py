"""Pure spirit computations: attribute scoring, stage derivation and art.

The evolution pipeline (``engine.evolution``) and batch runner
(``engine.batch``) depend on I/O clients and are imported from their modules.
"""

from soulscape.engine.art import derive_seed, render
from soulscape.engine.metadata import build_metadata, describe
from soulscape.engine.scoring import compute_attributes, derive_stage, extract_features

__all__ = [
    "build_metadata",
    "compute_attributes",
    "derive_seed",
    "derive_stage",
    "describe",
    "extract_features",
    "render",
]
