"""
Review Workflow - One quality-gated run from task to final summary.

Wires the dispatcher, scheduler, gate and iteration controller together:

	dispatch -> Phase 1 -> Phase 2 (parallel) -> Phase 3 -> decision
	    ^                                                       |
	    +----------------- feedback (loop) ---------------------+
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .collaborators import Collaborator
from .config import Config, get_config
from .dispatcher import TaskDispatcher, feedback_lines, parse_task
from .models import (
	ArtifactRef,
	CycleResult,
	FeedbackItem,
	TaskDescriptor,
	TerminationReason,
	WorkflowSummary,
)
from .orchestrator.aggregator import ReviewAggregator
from .orchestrator.controller import ConfirmFn, IterationController, IterationDecision
from .orchestrator.gate import GateEvaluator
from .orchestrator.scheduler import PhaseScheduler
from .registry import ReviewerRegistry, build_registry, command_collaborators, resolve_domain
from .trace import EventKind, WorkflowTrace

logger = logging.getLogger(__name__)


def build_summary(
	domain: str,
	task: TaskDescriptor,
	result: CycleResult,
	decision: IterationDecision,
) -> WorkflowSummary:
	"""
	Build the final summary from the last cycle.

	Approved items come from the review and gate phases. Every remaining
	blocker and recommendation is listed as unresolved.
	"""
	approved = result.review.approved + result.gate_feedback.approved
	unresolved: list[FeedbackItem] = []
	for feedback in (result.implementation_feedback, result.review, result.gate_feedback):
		unresolved.extend(feedback.blockers)
		unresolved.extend(feedback.issues)

	return WorkflowSummary(
		domain=domain,
		task=task,
		cycles_run=result.cycle,
		final_verdict=result.decision.verdict,
		reason=decision.reason or TerminationReason.MAX_CYCLES_REACHED,
		approved=approved,
		unresolved=unresolved,
	)


class ReviewWorkflow:
	"""
	Runs the implement / review / gate loop for one domain.

	Every call to run() gets fresh cycle state and a fresh trace; the
	trace of the most recent run stays available as ``last_trace``.
	"""

	def __init__(
		self,
		domain: str,
		registry: ReviewerRegistry,
		config: Optional[Config] = None,
		confirm: Optional[ConfirmFn] = None,
		dispatcher: Optional[TaskDispatcher] = None,
	):
		"""
		Initialize the workflow.

		Args:
			domain: Domain name, used in the summary
			registry: Phase-scoped collaborators
			config: Timeouts, cycle limit and dedup setting
			confirm: Async callback asked before a voluntary extra cycle
			dispatcher: Task dispatcher (default lookup table if omitted)
		"""
		registry.validate()
		self.domain = domain
		self.registry = registry
		self.config = config or get_config()
		self.confirm = confirm
		self.dispatcher = dispatcher or TaskDispatcher()
		self.last_trace: Optional[WorkflowTrace] = None

	async def run(
		self,
		task: Union[str, TaskDescriptor],
		artifact: Union[str, Path, ArtifactRef],
	) -> WorkflowSummary:
		"""
		Run cycles until the controller terminates.

		Args:
			task: '<prefix>: <text>' string or a parsed TaskDescriptor
			artifact: Project path or ArtifactRef under review

		Returns:
			WorkflowSummary of the final cycle
		"""
		task = parse_task(task) if isinstance(task, str) else task
		if not isinstance(artifact, ArtifactRef):
			artifact = ArtifactRef(location=str(Path(artifact).expanduser().resolve()))

		trace = WorkflowTrace()
		self.last_trace = trace
		controller = IterationController(
			max_cycles=self.config.max_cycles,
			confirm=self.confirm,
			trace=trace,
		)
		scheduler = PhaseScheduler(
			self.registry,
			aggregator=ReviewAggregator(dedupe=self.config.dedupe_feedback),
			gate=GateEvaluator(),
			trace=trace,
			implementer_timeout=self.config.implementer_timeout,
			reviewer_timeout=self.config.reviewer_timeout,
			gate_timeout=self.config.gate_timeout,
		)

		logger.info(f"[{self.domain}] Starting workflow: {task}")
		trace.record(EventKind.WORKFLOW_STARTED, controller.cycle, detail=str(task))

		cycle_task = task
		focus = self.dispatcher.dispatch(cycle_task)
		while True:
			result = await scheduler.run_cycle(controller.cycle, cycle_task, focus, artifact)
			controller.record(result)
			decision = await controller.decide(result)
			scheduler.finish(loop=decision.loops)
			if not decision.loops:
				break

			artifact = result.artifact
			carried = controller.carried_feedback()
			lines: list[str] = []
			for feedback in carried:
				lines.extend(feedback_lines(feedback.blockers))
			for feedback in carried:
				lines.extend(feedback_lines(feedback.issues))
			cycle_task = task.with_feedback(lines)
			focus = self.dispatcher.dispatch(cycle_task, carried)

		summary = build_summary(self.domain, task, result, decision)
		trace.record(
			EventKind.WORKFLOW_TERMINATED,
			summary.cycles_run,
			detail=f"{summary.reason.value}, verdict {summary.final_verdict.value}",
		)
		logger.info(
			f"[{self.domain}] Finished after {summary.cycles_run} cycle(s): "
			f"{summary.final_verdict.value}, {len(summary.unresolved)} unresolved"
		)
		return summary


def create_workflow(
	domain: str,
	config: Optional[Config] = None,
	collaborators: Optional[dict[str, Collaborator]] = None,
	confirm: Optional[ConfirmFn] = None,
) -> ReviewWorkflow:
	"""
	Build a workflow for a named domain.

	Collaborator ids come from the built-in domain table plus config
	overrides. When no collaborators are passed in, each id is backed by
	the shell command configured under [domains.<name>.commands].

	Raises:
		RegistryError: if the domain or any of its collaborators is missing
	"""
	config = config or get_config()
	settings = config.domain_settings(domain)
	spec = resolve_domain(domain, settings)
	if collaborators is None:
		collaborators = command_collaborators(spec, settings.get("commands", {}))
	registry = build_registry(spec, collaborators)
	return ReviewWorkflow(domain, registry, config=config, confirm=confirm)
