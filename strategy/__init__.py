# PATH: strategy/__init__.py
"""Detection and selection: scanner, strategy engine and the per-block pipeline."""

from strategy.engine import StrategyEngine, path_gas_cost_usd, route_gas_cost_usd, selection_key
from strategy.pipeline import ArbitragePipeline, PipelineStats, build_pipeline
from strategy.scanner import OpportunityScanner

__all__ = [
    "ArbitragePipeline",
    "OpportunityScanner",
    "PipelineStats",
    "StrategyEngine",
    "build_pipeline",
    "path_gas_cost_usd",
    "route_gas_cost_usd",
    "selection_key",
]
