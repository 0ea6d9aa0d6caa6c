"""Orchestrator module - Scheduling, aggregation, gating, and iteration."""

from .aggregator import ReviewAggregator
from .controller import IterationController, IterationDecision, LoopAction
from .gate import GateEvaluator, evaluate_verdict
from .scheduler import PhaseScheduler, SchedulerState

__all__ = [
	"PhaseScheduler",
	"SchedulerState",
	"ReviewAggregator",
	"GateEvaluator",
	"evaluate_verdict",
	"IterationController",
	"IterationDecision",
	"LoopAction",
]
