"""
Chronologicon temporal analysis.
"""

from chronologicon.analysis.temporal_analyzer import TemporalAnalyzer

__all__ = ["TemporalAnalyzer"]
