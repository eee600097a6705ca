"""reportd pipeline -- Datenquelle → Charts → Artefakt → Historie."""

from reportd.pipeline.charts import build_charts
from reportd.pipeline.executor import ExecutionPipeline

__all__ = ["ExecutionPipeline", "build_charts"]
