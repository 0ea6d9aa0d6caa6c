"""
Phase Scheduler - Runs one cycle through the three phases.

State machine:
	INIT -> PHASE1 -> PHASE2 -> PHASE3 -> DECISION -> (LOOP | DONE)
	LOOP -> PHASE1

- Phase 1: the single implementer; the only writer of the artifact.
- Phase 2: all reviewers dispatched together, joined at a barrier.
  A reviewer that raises or times out is recorded as a Blocker for
  that reviewer; its siblings are unaffected.
- Phase 3: the gate collaborator. Always runs, even when Phase 2
  already produced a Blocker.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from ..collaborators import Collaborator
from ..errors import CollaboratorError, CollaboratorTimeoutError, SchedulerStateError
from ..models import ArtifactRef, CycleResult, FocusProfile, Report, TaskDescriptor, Verdict
from ..registry import GATE_PHASE, IMPLEMENTATION_PHASE, REVIEW_PHASE, ReviewerRegistry
from ..trace import EventKind, WorkflowTrace
from .aggregator import ReviewAggregator
from .gate import GateEvaluator

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
	"""Where the scheduler is in the cycle."""
	INIT = "init"
	PHASE1 = "phase1"
	PHASE2 = "phase2"
	PHASE3 = "phase3"
	DECISION = "decision"
	LOOP = "loop"
	DONE = "done"


_TRANSITIONS: dict[SchedulerState, set[SchedulerState]] = {
	SchedulerState.INIT: {SchedulerState.PHASE1},
	SchedulerState.PHASE1: {SchedulerState.PHASE2},
	SchedulerState.PHASE2: {SchedulerState.PHASE3},
	SchedulerState.PHASE3: {SchedulerState.DECISION},
	SchedulerState.DECISION: {SchedulerState.LOOP, SchedulerState.DONE},
	SchedulerState.LOOP: {SchedulerState.PHASE1},
	SchedulerState.DONE: set(),
}


class PhaseScheduler:
	"""
	Sequences the phases of a cycle.

	Collaborators come from an injected ReviewerRegistry; every call runs
	under a per-phase timeout and degrades to a Blocker report on error.
	"""

	def __init__(
		self,
		registry: ReviewerRegistry,
		aggregator: Optional[ReviewAggregator] = None,
		gate: Optional[GateEvaluator] = None,
		trace: Optional[WorkflowTrace] = None,
		implementer_timeout: float = 1800.0,
		reviewer_timeout: float = 600.0,
		gate_timeout: float = 900.0,
	):
		"""
		Initialize the scheduler.

		Args:
			registry: Phase-scoped collaborators (validated here)
			aggregator: Merges Phase 2 reports
			gate: Turns the Phase 3 report into a decision
			trace: Event log for this run
			implementer_timeout: Phase 1 timeout in seconds
			reviewer_timeout: Per-reviewer Phase 2 timeout in seconds
			gate_timeout: Phase 3 timeout in seconds
		"""
		registry.validate()
		self.registry = registry
		self.aggregator = aggregator or ReviewAggregator()
		self.gate = gate or GateEvaluator()
		self.trace = trace if trace is not None else WorkflowTrace()
		self.implementer_timeout = implementer_timeout
		self.reviewer_timeout = reviewer_timeout
		self.gate_timeout = gate_timeout
		self.state = SchedulerState.INIT
		self._cycle = 0

	def transition(self, target: SchedulerState) -> None:
		"""Move to a new state, rejecting illegal transitions."""
		if target not in _TRANSITIONS[self.state]:
			raise SchedulerStateError(f"Illegal transition {self.state.value} -> {target.value}")
		logger.debug(f"Scheduler {self.state.value} -> {target.value}")
		self.state = target
		self.trace.record(EventKind.STATE_CHANGED, self._cycle, detail=target.value)

	async def run_cycle(
		self,
		cycle: int,
		task: TaskDescriptor,
		focus: FocusProfile,
		artifact: ArtifactRef,
	) -> CycleResult:
		"""
		Run Phase 1 through Phase 3 and stop at DECISION.

		Args:
			cycle: Current cycle number
			task: Task descriptor for this cycle
			focus: Focus profile from the dispatcher
			artifact: Artifact at the start of the cycle

		Returns:
			CycleResult carrying reports, feedback and the gate decision
		"""
		self._cycle = cycle
		self.transition(SchedulerState.PHASE1)
		implementation = await self.run_implementation(artifact, focus)
		if implementation.failed:
			# Nothing was written; reviewers see the unchanged revision
			reviewed = artifact
		else:
			reviewed = artifact.next_revision()
		impl_feedback = self.aggregator.consolidate(IMPLEMENTATION_PHASE, cycle, [implementation])

		self.transition(SchedulerState.PHASE2)
		reports = await self.run_reviews(reviewed, focus)
		review = self.aggregator.consolidate(REVIEW_PHASE, cycle, reports)

		self.transition(SchedulerState.PHASE3)
		gate_report = await self.run_gate(reviewed, focus)
		gate_feedback = self.aggregator.consolidate(GATE_PHASE, cycle, [gate_report])

		self.transition(SchedulerState.DECISION)
		decision = self.gate.decide(gate_report, review, gate_feedback, extra_blockers=impl_feedback)
		self.trace.record(EventKind.VERDICT, cycle, phase=GATE_PHASE, detail=decision.verdict.value)

		return CycleResult(
			cycle=cycle,
			task=task,
			focus=focus,
			artifact=reviewed,
			implementation=implementation,
			implementation_feedback=impl_feedback,
			review=review,
			gate_report=gate_report,
			gate_feedback=gate_feedback,
			decision=decision,
		)

	async def run_implementation(self, artifact: ArtifactRef, focus: FocusProfile) -> Report:
		"""Phase 1: single sequential call to the implementer."""
		return await self._invoke(
			self.registry.implementer,
			IMPLEMENTATION_PHASE,
			artifact,
			focus,
			self.implementer_timeout,
		)

	async def run_reviews(self, artifact: ArtifactRef, focus: FocusProfile) -> list[Report]:
		"""
		Phase 2: dispatch every reviewer at once and wait for all of them.

		Returns:
			One report per reviewer, in registration order
		"""
		reviewers = self.registry.reviewers
		logger.info(f"Dispatching {len(reviewers)} reviewers concurrently (cycle {self._cycle})")

		# Fan out
		tasks = [
			asyncio.create_task(
				self._invoke(reviewer, REVIEW_PHASE, artifact, focus, self.reviewer_timeout),
				name=f"review-{reviewer.collaborator_id}",
			)
			for reviewer in reviewers
		]
		# Fan in: _invoke never raises, so gather returns only when all are back
		reports = list(await asyncio.gather(*tasks))

		self.trace.record(
			EventKind.BARRIER_RELEASED,
			self._cycle,
			phase=REVIEW_PHASE,
			detail=f"{len(reports)}/{len(reviewers)} reports",
		)
		return reports

	async def run_gate(self, artifact: ArtifactRef, focus: FocusProfile) -> Report:
		"""Phase 3: single sequential call to the gate collaborator."""
		return await self._invoke(
			self.registry.gate,
			GATE_PHASE,
			artifact,
			focus,
			self.gate_timeout,
			failure_verdict=Verdict.FAIL,
		)

	def finish(self, loop: bool) -> None:
		"""Leave DECISION, either back to Phase 1 or to DONE."""
		self.transition(SchedulerState.LOOP if loop else SchedulerState.DONE)

	async def _invoke(
		self,
		collaborator: Collaborator,
		phase: int,
		artifact: ArtifactRef,
		focus: FocusProfile,
		timeout: float,
		failure_verdict: Optional[Verdict] = None,
	) -> Report:
		"""Call a collaborator; any error or timeout becomes a Blocker report."""
		cid = collaborator.collaborator_id
		self.trace.record(EventKind.COLLABORATOR_INVOKED, self._cycle, phase=phase, collaborator_id=cid)
		try:
			report = await asyncio.wait_for(collaborator.review(artifact, focus), timeout=timeout)
			if not isinstance(report, Report):
				raise CollaboratorError(cid, f"expected a Report, got {type(report).__name__}")
		except asyncio.TimeoutError:
			error = str(CollaboratorTimeoutError(cid, timeout))
			logger.warning(f"Phase {phase} collaborator {error}")
			self.trace.record(EventKind.COLLABORATOR_FAILED, self._cycle, phase=phase, collaborator_id=cid, detail=error)
			return Report.from_failure(cid, error, verdict=failure_verdict)
		except Exception as e:
			logger.warning(f"Phase {phase} collaborator {cid} failed: {e}")
			self.trace.record(EventKind.COLLABORATOR_FAILED, self._cycle, phase=phase, collaborator_id=cid, detail=str(e))
			return Report.from_failure(cid, str(e) or type(e).__name__, verdict=failure_verdict)

		if report.collaborator_id != cid:
			report = report.model_copy(update={"collaborator_id": cid})

		self.trace.record(
			EventKind.COLLABORATOR_RETURNED,
			self._cycle,
			phase=phase,
			collaborator_id=cid,
			detail=f"{len(report.blockers)} blockers",
		)
		return report
