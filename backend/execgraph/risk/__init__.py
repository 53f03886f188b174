"""Risk propagation: scoring, engine and run orchestration."""

from execgraph.risk.consumers import WebhookDriverConsumer, build_default_consumers
from execgraph.risk.engine import RiskEngine
from execgraph.risk.orchestrator import DriverConsumer, RiskRunOrchestrator

__all__ = [
    "DriverConsumer",
    "RiskEngine",
    "RiskRunOrchestrator",
    "WebhookDriverConsumer",
    "build_default_consumers",
]
