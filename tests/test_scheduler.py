"""
Tests for the phase scheduler.

Tests:
- Phase ordering and the Phase 2 barrier
- Fault isolation and timeouts
- State machine transitions
"""

import asyncio
import time

import pytest

from aiee_team.collaborators import CallableCollaborator
from aiee_team.dispatcher import TaskDispatcher, parse_task
from aiee_team.errors import RegistryError, SchedulerStateError
from aiee_team.models import ArtifactRef, Verdict
from aiee_team.orchestrator.scheduler import PhaseScheduler, SchedulerState
from aiee_team.registry import BACKEND, FRONTEND, ReviewerRegistry, build_registry
from aiee_team.trace import EventKind, WorkflowTrace

from tests.helpers import FakeCollaborator, fake_registry, fake_team, make_report


TASK = parse_task("fix: resolve N+1 query in user profile endpoint")
FOCUS = TaskDispatcher().dispatch(TASK)


def _artifact(tmp_path) -> ArtifactRef:
	return ArtifactRef(location=str(tmp_path))


class TestPhaseOrdering:
	"""Tests for the Phase 1 -> 2 -> 3 sequence."""

	@pytest.mark.asyncio
	async def test_full_cycle(self, tmp_path):
		registry, team = fake_registry(BACKEND)
		trace = WorkflowTrace()
		scheduler = PhaseScheduler(registry, trace=trace)

		result = await scheduler.run_cycle(1, TASK, FOCUS, _artifact(tmp_path))

		assert scheduler.state == SchedulerState.DECISION
		assert result.decision.verdict == Verdict.PASS
		assert not result.decision.forces_retry
		assert result.review.collaborators == list(BACKEND.reviewers)
		for collaborator in team.values():
			assert len(collaborator.calls) == 1
		assert scheduler.trace is trace
		assert len(trace.of_kind(EventKind.BARRIER_RELEASED)) == 1

	@pytest.mark.asyncio
	async def test_implementer_runs_once_before_reviewers(self, tmp_path):
		registry, _ = fake_registry(BACKEND)
		trace = WorkflowTrace()
		await PhaseScheduler(registry, trace=trace).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))

		invoked = [(e.phase, e.collaborator_id) for e in trace.of_kind(EventKind.COLLABORATOR_INVOKED)]
		assert invoked[0] == (1, BACKEND.implementer)
		assert [cid for phase, cid in invoked if phase == 1] == [BACKEND.implementer]
		assert {cid for phase, cid in invoked if phase == 2} == set(BACKEND.reviewers)
		assert invoked[-1] == (3, BACKEND.gate)

	@pytest.mark.asyncio
	async def test_focus_forwarded_unchanged(self, tmp_path):
		registry, team = fake_registry(FRONTEND)
		await PhaseScheduler(registry).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))
		for collaborator in team.values():
			assert collaborator.calls[0][1] == FOCUS

	@pytest.mark.asyncio
	async def test_reviewers_see_implemented_revision(self, tmp_path):
		"""Only Phase 1 advances the artifact; reviewers get the new revision read-only."""
		registry, team = fake_registry(BACKEND)
		result = await PhaseScheduler(registry).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))

		assert team[BACKEND.implementer].calls[0][0].revision == 0
		for reviewer_id in BACKEND.reviewers:
			assert team[reviewer_id].calls[0][0].revision == 1
		assert team[BACKEND.gate].calls[0][0].revision == 1
		assert result.artifact.revision == 1


class TestReviewBarrier:
	"""Tests for the concurrent fan-out and barrier join."""

	@pytest.mark.asyncio
	async def test_reviewers_run_concurrently(self, tmp_path):
		registry, team = fake_registry(BACKEND)
		for reviewer_id in BACKEND.reviewers:
			team[reviewer_id].delay = 0.2

		scheduler = PhaseScheduler(registry)
		loop = asyncio.get_running_loop()
		start = loop.time()
		reports = await scheduler.run_reviews(_artifact(tmp_path), FOCUS)
		elapsed = loop.time() - start

		assert len(reports) == 3
		# Sequential would take 0.6s
		assert elapsed < 0.5

	@pytest.mark.asyncio
	async def test_gate_waits_for_all_reviewers(self, tmp_path):
		registry, team = fake_registry(FRONTEND)
		slow = team[FRONTEND.reviewers[1]]
		slow.delay = 0.1
		gate = team[FRONTEND.gate]
		observed = {}
		original = gate.review

		async def gate_review(artifact, focus):
			observed["slow_finished"] = slow.finished
			return await original(artifact, focus)

		gate.review = gate_review
		await PhaseScheduler(registry).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))
		assert observed["slow_finished"] == 1

	@pytest.mark.asyncio
	async def test_barrier_releases_with_n_reports(self, tmp_path):
		registry, _ = fake_registry(FRONTEND)
		trace = WorkflowTrace()
		reports = await PhaseScheduler(registry, trace=trace).run_reviews(_artifact(tmp_path), FOCUS)

		assert len(reports) == FRONTEND.review_count == 2
		released = trace.of_kind(EventKind.BARRIER_RELEASED)
		assert len(released) == 1
		assert released[0].detail == "2/2 reports"

	@pytest.mark.asyncio
	async def test_reports_in_registration_order(self, tmp_path):
		registry, team = fake_registry(BACKEND)
		team[BACKEND.reviewers[0]].delay = 0.05
		reports = await PhaseScheduler(registry).run_reviews(_artifact(tmp_path), FOCUS)
		assert [r.collaborator_id for r in reports] == list(BACKEND.reviewers)


class TestFaultIsolation:
	"""Tests for collaborator errors and timeouts."""

	@pytest.mark.asyncio
	async def test_reviewer_error_becomes_blocker(self, tmp_path):
		registry, team = fake_registry(BACKEND)
		team["security-reviewer"].error = RuntimeError("model overloaded")
		trace = WorkflowTrace()

		result = await PhaseScheduler(registry, trace=trace).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))

		blockers = result.review.blockers
		assert len(blockers) == 1
		assert blockers[0].collaborator_id == "security-reviewer"
		assert "model overloaded" in blockers[0].text
		# Siblings still reported
		assert team["architecture-reviewer"].finished == 1
		assert team["performance-reviewer"].finished == 1
		# Phase 3 still ran
		assert team[BACKEND.gate].finished == 1
		assert result.decision.forces_retry
		assert len(trace.of_kind(EventKind.COLLABORATOR_FAILED)) == 1

	@pytest.mark.asyncio
	async def test_reviewer_timeout_becomes_blocker(self, tmp_path):
		registry, team = fake_registry(FRONTEND)
		team["accessibility-reviewer"].delay = 5
		scheduler = PhaseScheduler(registry, reviewer_timeout=0.05)

		reports = await scheduler.run_reviews(_artifact(tmp_path), FOCUS)

		timed_out = next(r for r in reports if r.collaborator_id == "accessibility-reviewer")
		assert timed_out.failed
		assert "timed out" in timed_out.blockers[0]
		assert len(reports) == 2

	@pytest.mark.asyncio
	async def test_gate_error_is_fail(self, tmp_path):
		registry, team = fake_registry(BACKEND)
		team[BACKEND.gate].error = ValueError("pytest crashed")

		result = await PhaseScheduler(registry).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))

		assert result.gate_report.verdict == Verdict.FAIL
		assert result.decision.verdict == Verdict.FAIL
		assert result.decision.forces_retry

	@pytest.mark.asyncio
	async def test_implementer_error_keeps_revision_and_forces_retry(self, tmp_path):
		registry, team = fake_registry(BACKEND)
		team[BACKEND.implementer].error = RuntimeError("could not apply patch")

		result = await PhaseScheduler(registry).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))

		assert result.artifact.revision == 0
		assert result.implementation.failed
		assert result.decision.forces_retry
		# Reviews and gate still ran
		assert all(team[r].finished == 1 for r in BACKEND.reviewers)
		assert team[BACKEND.gate].finished == 1

	@pytest.mark.asyncio
	async def test_report_attributed_to_invoked_collaborator(self, tmp_path):
		registry, team = fake_registry(BACKEND)
		team["architecture-reviewer"].reports = [make_report("someone-else", blockers=("x",))]
		reports = await PhaseScheduler(registry).run_reviews(_artifact(tmp_path), FOCUS)
		assert reports[0].collaborator_id == "architecture-reviewer"

	@pytest.mark.asyncio
	async def test_non_report_return_becomes_blocker(self, tmp_path):
		class SilentReviewer:
			collaborator_id = "security-reviewer"

			async def review(self, artifact, focus):
				return None

		team = fake_team(BACKEND)
		team["security-reviewer"] = SilentReviewer()
		result = await PhaseScheduler(build_registry(BACKEND, team)).run_cycle(1, TASK, FOCUS, _artifact(tmp_path))

		blockers = result.review.blockers
		assert [b.collaborator_id for b in blockers] == ["security-reviewer"]
		assert "expected a Report, got NoneType" in blockers[0].text
		assert team["architecture-reviewer"].finished == 1
		assert result.decision.forces_retry

	@pytest.mark.asyncio
	async def test_sync_reviewers_run_concurrently_and_time_out(self, tmp_path):
		def slow_review(artifact, focus):
			time.sleep(0.3)
			return make_report(approved=("fine",))

		team = fake_team(BACKEND)
		for reviewer_id in BACKEND.reviewers:
			team[reviewer_id] = CallableCollaborator(reviewer_id, slow_review)
		scheduler = PhaseScheduler(build_registry(BACKEND, team), reviewer_timeout=0.05)

		started = time.monotonic()
		reports = await scheduler.run_reviews(_artifact(tmp_path), FOCUS)
		elapsed = time.monotonic() - started

		assert elapsed < 0.6
		assert [r.collaborator_id for r in reports] == list(BACKEND.reviewers)
		assert all(r.failed and "timed out" in r.blockers[0] for r in reports)


class TestStateMachine:
	"""Tests for legal and illegal transitions."""

	def test_starts_in_init(self):
		registry, _ = fake_registry(BACKEND)
		assert PhaseScheduler(registry).state == SchedulerState.INIT

	def test_cannot_skip_phases(self):
		registry, _ = fake_registry(BACKEND)
		scheduler = PhaseScheduler(registry)
		with pytest.raises(SchedulerStateError):
			scheduler.transition(SchedulerState.PHASE3)

	@pytest.mark.asyncio
	async def test_loop_then_done(self, tmp_path):
		registry, _ = fake_registry(BACKEND)
		scheduler = PhaseScheduler(registry)
		await scheduler.run_cycle(1, TASK, FOCUS, _artifact(tmp_path))
		scheduler.finish(loop=True)
		assert scheduler.state == SchedulerState.LOOP

		await scheduler.run_cycle(2, TASK, FOCUS, _artifact(tmp_path))
		scheduler.finish(loop=False)
		assert scheduler.state == SchedulerState.DONE

		with pytest.raises(SchedulerStateError):
			scheduler.transition(SchedulerState.PHASE1)

	def test_rejects_invalid_registry(self):
		registry = ReviewerRegistry(domain="backend")
		registry.register(1, FakeCollaborator("backend-engineer"))
		with pytest.raises(RegistryError):
			PhaseScheduler(registry)
