"""
Chronologicon - Hierarchical historical event store with temporal analysis.

Bulk-loads parent/child event hierarchies from delimited text through an
asynchronous, fault-isolating ingestion pipeline and answers temporal questions
(overlaps, gaps, influence paths, statistics) over the stored event graph.
"""

__version__ = "0.1.0"
__author__ = "Chronologicon Team"
__description__ = "Hierarchical historical event store with async ingestion and temporal analysis"
