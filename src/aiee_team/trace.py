"""
Workflow trace - in-memory event log of a single run.

Every phase transition, collaborator call, verdict, and confirmation
is recorded so a run can be inspected after it finishes. Events are
mirrored to the module logger at DEBUG.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
	"""Kind of trace event."""
	WORKFLOW_STARTED = "workflow_started"
	STATE_CHANGED = "state_changed"
	COLLABORATOR_INVOKED = "collaborator_invoked"
	COLLABORATOR_RETURNED = "collaborator_returned"
	COLLABORATOR_FAILED = "collaborator_failed"
	BARRIER_RELEASED = "barrier_released"
	VERDICT = "verdict"
	CONFIRMATION_REQUESTED = "confirmation_requested"
	CONFIRMATION_ANSWERED = "confirmation_answered"
	CYCLE_ADVANCED = "cycle_advanced"
	WORKFLOW_TERMINATED = "workflow_terminated"


@dataclass
class TraceEvent:
	"""A single recorded event."""
	kind: EventKind
	cycle: int
	phase: Optional[int] = None
	collaborator_id: str = ""
	detail: str = ""
	timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class WorkflowTrace:
	"""Append-only list of trace events for one workflow instance."""

	def __init__(self) -> None:
		self._events: list[TraceEvent] = []

	def record(
		self,
		kind: EventKind,
		cycle: int,
		phase: Optional[int] = None,
		collaborator_id: str = "",
		detail: str = "",
	) -> TraceEvent:
		event = TraceEvent(
			kind=kind,
			cycle=cycle,
			phase=phase,
			collaborator_id=collaborator_id,
			detail=detail,
		)
		self._events.append(event)
		logger.debug(
			f"[cycle {cycle}] {kind.value}"
			+ (f" phase={phase}" if phase is not None else "")
			+ (f" {collaborator_id}" if collaborator_id else "")
			+ (f": {detail}" if detail else "")
		)
		return event

	@property
	def events(self) -> list[TraceEvent]:
		return list(self._events)

	def of_kind(self, kind: EventKind, cycle: Optional[int] = None) -> list[TraceEvent]:
		"""Events of one kind, optionally limited to a cycle."""
		return [
			e for e in self._events
			if e.kind == kind and (cycle is None or e.cycle == cycle)
		]

	def to_dicts(self) -> list[dict]:
		return [{**asdict(e), "kind": e.kind.value} for e in self._events]

	def __len__(self) -> int:
		return len(self._events)
