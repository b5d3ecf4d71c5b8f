"""
Analysis — Heuristics shared by the classifier.

Functions:
- obfuscation_score: Weighted 0.0-1.0 score for encoded/concatenated code
"""

from rdguard.core.analysis.utils import obfuscation_score

__all__ = ['obfuscation_score']
