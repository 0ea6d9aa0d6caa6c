"""Shared test fixtures and helpers for aiee-team tests."""

import asyncio
from pathlib import Path
from typing import Optional

from aiee_team.config import Config
from aiee_team.models import ArtifactRef, FocusProfile, Report, Verdict
from aiee_team.registry import BACKEND, FRONTEND, DomainSpec, ReviewerRegistry, build_registry


def make_report(
	cid: str = "reviewer",
	approved: tuple[str, ...] = (),
	issues: Optional[dict[str, list[str]]] = None,
	blockers: tuple[str, ...] = (),
	verdict: Optional[Verdict] = None,
) -> Report:
	"""Create a Report with realistic defaults."""
	return Report(
		collaborator_id=cid,
		approved=list(approved),
		issues=issues or {},
		blockers=list(blockers),
		verdict=verdict,
	)


class FakeCollaborator:
	"""
	Scripted collaborator that records every call.

	Returns the scripted reports in order, repeating the last one.
	Can sleep before answering or raise instead of answering.
	"""

	def __init__(
		self,
		collaborator_id: str,
		reports: Optional[list[Report]] = None,
		delay: float = 0.0,
		error: Optional[Exception] = None,
	):
		self.collaborator_id = collaborator_id
		self.reports = reports or [make_report(collaborator_id, approved=("looks good",))]
		self.delay = delay
		self.error = error
		self.calls: list[tuple[ArtifactRef, FocusProfile]] = []
		self.started = 0
		self.finished = 0

	async def review(self, artifact: ArtifactRef, focus: FocusProfile) -> Report:
		self.calls.append((artifact, focus))
		self.started += 1
		if self.delay:
			await asyncio.sleep(self.delay)
		if self.error is not None:
			raise self.error
		report = self.reports[min(len(self.calls) - 1, len(self.reports) - 1)]
		self.finished += 1
		return report.model_copy(update={"collaborator_id": self.collaborator_id})


def fake_team(
	domain: DomainSpec = BACKEND,
	reviewer_reports: Optional[dict[str, list[Report]]] = None,
	gate_reports: Optional[list[Report]] = None,
) -> dict[str, FakeCollaborator]:
	"""One FakeCollaborator per collaborator id of a domain."""
	reviewer_reports = reviewer_reports or {}
	team = {domain.implementer: FakeCollaborator(domain.implementer)}
	for reviewer_id in domain.reviewers:
		team[reviewer_id] = FakeCollaborator(reviewer_id, reviewer_reports.get(reviewer_id))
	team[domain.gate] = FakeCollaborator(
		domain.gate,
		gate_reports or [make_report(domain.gate, approved=("tests pass",), verdict=Verdict.PASS)],
	)
	return team


def fake_registry(domain: DomainSpec = BACKEND, **kwargs) -> tuple[ReviewerRegistry, dict[str, FakeCollaborator]]:
	team = fake_team(domain, **kwargs)
	return build_registry(domain, team), team


def make_config(tmp_path: Path, **overrides) -> Config:
	"""Config rooted in a temp dir."""
	config = Config(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
	for key, val in overrides.items():
		setattr(config, key, val)
	return config

