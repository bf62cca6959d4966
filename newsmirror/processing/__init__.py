"""
NewsMirror Processing Module
============================

Per-item decisions and transformations between scraping and storing.
"""

from .dedup_gate import DedupGate, GateDecision, PassTracker, SeenGuidCache
from .asset_mirror import AssetMirror
from .content_assembler import ContentAssembler, extract_source_link

__all__ = [
    'DedupGate',
    'GateDecision',
    'PassTracker',
    'SeenGuidCache',
    'AssetMirror',
    'ContentAssembler',
    'extract_source_link',
]
