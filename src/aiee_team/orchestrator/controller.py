"""
Iteration Controller - Owns the cycle count and decides loop-back vs stop.

Decision rule, applied once per cycle:
- FAIL verdict or any review blocker: loop again automatically, without
  asking, unless the cycle limit is reached.
- Passing verdict below the cycle limit: ask whether to run another cycle.
- At the cycle limit: stop, whatever the verdict.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..errors import SchedulerStateError
from ..models import ConsolidatedFeedback, CycleResult, CycleState, TerminationReason
from ..trace import EventKind, WorkflowTrace

logger = logging.getLogger(__name__)

# Callback(next_cycle, result) -> run another cycle?
ConfirmFn = Callable[[int, CycleResult], Awaitable[bool]]


class LoopAction(str, Enum):
	"""What happens after a cycle's decision."""
	RETRY = "retry"
	CONTINUE = "continue"
	TERMINATE = "terminate"


@dataclass
class IterationDecision:
	"""Outcome of the DECISION state."""
	action: LoopAction
	cycle: int
	next_cycle: Optional[int] = None
	reason: Optional[TerminationReason] = None
	confirmation_requested: bool = False

	@property
	def loops(self) -> bool:
		return self.action != LoopAction.TERMINATE


class IterationController:
	"""
	Applies the iteration policy and keeps the per-run CycleState.

	The state lives only as long as the controller; a new workflow run
	gets a new controller.
	"""

	def __init__(
		self,
		max_cycles: int = 3,
		confirm: Optional[ConfirmFn] = None,
		trace: Optional[WorkflowTrace] = None,
	):
		"""
		Initialize the controller.

		Args:
			max_cycles: Hard upper bound on cycles
			confirm: Async callback asked before a voluntary extra cycle.
				Without one, the answer is always no.
			trace: Event log for this run
		"""
		self.state = CycleState(max_cycles=max_cycles)
		self.confirm = confirm
		self.trace = trace if trace is not None else WorkflowTrace()

	@property
	def cycle(self) -> int:
		return self.state.cycle

	@property
	def max_cycles(self) -> int:
		return self.state.max_cycles

	def record(self, result: CycleResult) -> None:
		"""Append a cycle's consolidated feedback to the history."""
		self.state.record(result.implementation_feedback)
		self.state.record(result.review)
		self.state.record(result.gate_feedback)

	def carried_feedback(self) -> list[ConsolidatedFeedback]:
		"""Feedback from the most recent recorded cycle, all phases."""
		if not self.state.feedback_history:
			return []
		last = self.state.feedback_history[-1].cycle
		return [f for f in self.state.feedback_history if f.cycle == last]

	async def decide(self, result: CycleResult) -> IterationDecision:
		"""
		Apply the iteration policy to a finished cycle.

		Args:
			result: The cycle that just reached DECISION

		Returns:
			IterationDecision; the cycle counter is already advanced when it loops
		"""
		current = self.state.cycle
		if result.cycle != current:
			raise SchedulerStateError(f"Decision for cycle {result.cycle} while controller is at cycle {current}")
		if not 1 <= current <= self.max_cycles:
			raise SchedulerStateError(f"Cycle {current} outside 1..{self.max_cycles}")

		if result.decision.forces_retry:
			if self.state.at_limit:
				logger.warning(
					f"Cycle limit {self.max_cycles} reached with open blockers ({result.decision.reason}), stopping"
				)
				return IterationDecision(LoopAction.TERMINATE, current, reason=TerminationReason.MAX_CYCLES_REACHED)
			next_cycle = self._advance(f"auto retry: {result.decision.reason}")
			return IterationDecision(LoopAction.RETRY, current, next_cycle=next_cycle)

		if self.state.at_limit:
			logger.info(f"Cycle limit {self.max_cycles} reached, stopping")
			return IterationDecision(LoopAction.TERMINATE, current, reason=TerminationReason.MAX_CYCLES_REACHED)

		proposed = current + 1
		self.trace.record(
			EventKind.CONFIRMATION_REQUESTED,
			current,
			detail=f"continue to cycle {proposed}?",
		)
		approved = await self._ask(proposed, result)
		self.trace.record(EventKind.CONFIRMATION_ANSWERED, current, detail="yes" if approved else "no")

		if not approved:
			logger.info(f"Continuation to cycle {proposed} declined, stopping")
			return IterationDecision(
				LoopAction.TERMINATE,
				current,
				reason=TerminationReason.USER_DECLINED,
				confirmation_requested=True,
			)

		next_cycle = self._advance("continuation approved")
		return IterationDecision(LoopAction.CONTINUE, current, next_cycle=next_cycle, confirmation_requested=True)

	async def _ask(self, proposed: int, result: CycleResult) -> bool:
		if self.confirm is None:
			return False
		try:
			return bool(await self.confirm(proposed, result))
		except Exception as e:
			logger.warning(f"Confirmation callback failed, treating as 'no': {e}")
			return False

	def _advance(self, why: str) -> int:
		next_cycle = self.state.advance()
		self.trace.record(EventKind.CYCLE_ADVANCED, next_cycle, detail=why)
		logger.info(f"Starting cycle {next_cycle}/{self.max_cycles} ({why})")
		return next_cycle
