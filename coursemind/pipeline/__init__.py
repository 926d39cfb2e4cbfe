"""Ingestion pipeline: the job scheduler and the per-material processor."""

from coursemind.pipeline.material_processor import MaterialProcessor
from coursemind.pipeline.scheduler import MaterialJobScheduler

__all__ = ["MaterialJobScheduler", "MaterialProcessor"]
