"""
Snapshot, pipeline and service layer
"""

from .snapshot import (
    MarketSnapshot,
    load_snapshot,
    snapshot_from_dict,
)
from .pipeline import (
    PipelineResult,
    run_pipeline,
    positions_payload,
    tokens_payload,
)

__all__ = [
    "MarketSnapshot",
    "load_snapshot",
    "snapshot_from_dict",
    "PipelineResult",
    "run_pipeline",
    "positions_payload",
    "tokens_payload",
]
