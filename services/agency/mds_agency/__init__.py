"""
MDS Agency service: vehicle registration, event and telemetry ingestion.
"""

__version__ = "1.0.0"
