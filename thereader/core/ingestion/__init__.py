"""Book ingestion: cover analysis and per-page text detection."""

from thereader.core.ingestion.cover_analysis import CoverAnalysis, CoverAnalyzer
from thereader.core.ingestion.pipeline import IngestionPipeline

__all__ = ["CoverAnalysis", "CoverAnalyzer", "IngestionPipeline"]
