"""Evidence trails: provenance trees for computed numbers."""

from .nodes import EvidenceContext, EvidenceNode, EvidenceTrail, verify_evidence_tree
from .trail import build_evidence_trail

__all__ = [
    "EvidenceContext",
    "EvidenceNode",
    "EvidenceTrail",
    "build_evidence_trail",
    "verify_evidence_tree",
]
