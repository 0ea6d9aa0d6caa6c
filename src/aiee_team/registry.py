"""
Reviewer Registry - Phase-scoped collaborator wiring.

Collaborators are registered per phase and injected into the
scheduler. Phase 1 and Phase 3 take exactly one collaborator;
Phase 2 takes the domain's specialist reviewers.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .collaborators import Collaborator, CommandCollaborator
from .errors import RegistryError
from .models import PhaseMode, PhaseSpec

logger = logging.getLogger(__name__)

IMPLEMENTATION_PHASE = 1
REVIEW_PHASE = 2
GATE_PHASE = 3

PHASE_MODES = {
	IMPLEMENTATION_PHASE: PhaseMode.SEQUENTIAL,
	REVIEW_PHASE: PhaseMode.PARALLEL,
	GATE_PHASE: PhaseMode.SEQUENTIAL,
}


@dataclass(frozen=True)
class DomainSpec:
	"""Collaborator ids for one domain."""
	name: str
	implementer: str
	reviewers: tuple[str, ...]
	gate: str = "test-enforcement"
	description: str = ""

	@property
	def review_count(self) -> int:
		return len(self.reviewers)

	def collaborator_ids(self) -> list[str]:
		return [self.implementer, *self.reviewers, self.gate]


BACKEND = DomainSpec(
	name="backend",
	implementer="backend-engineer",
	reviewers=("architecture-reviewer", "security-reviewer", "performance-reviewer"),
	description="Backend services: API design, data access, security",
)

FRONTEND = DomainSpec(
	name="frontend",
	implementer="frontend-engineer",
	reviewers=("ui-architecture-reviewer", "accessibility-reviewer"),
	description="Frontend components: composition, state, accessibility",
)

DOMAINS: dict[str, DomainSpec] = {
	BACKEND.name: BACKEND,
	FRONTEND.name: FRONTEND,
}


def resolve_domain(name: str, overrides: Optional[dict] = None) -> DomainSpec:
	"""
	Look up a built-in domain and apply config overrides.

	Args:
		name: Domain name (backend, frontend, or one defined in config)
		overrides: Keys 'implementer', 'reviewers', 'gate', 'description'

	Raises:
		RegistryError: if the domain is unknown and not fully defined by overrides
	"""
	overrides = overrides or {}
	base = DOMAINS.get(name)
	if base is None:
		missing = [k for k in ("implementer", "reviewers") if k not in overrides]
		if missing:
			raise RegistryError(f"Unknown domain '{name}' (config is missing: {', '.join(missing)})")
		base = DomainSpec(name=name, implementer=overrides["implementer"], reviewers=tuple(overrides["reviewers"]))

	return DomainSpec(
		name=name,
		implementer=overrides.get("implementer", base.implementer),
		reviewers=tuple(overrides.get("reviewers", base.reviewers)),
		gate=overrides.get("gate", base.gate),
		description=overrides.get("description", base.description),
	)


@dataclass
class ReviewerRegistry:
	"""Collaborators registered per phase ordinal."""
	domain: str
	_phases: dict[int, list[Collaborator]] = field(default_factory=lambda: {
		IMPLEMENTATION_PHASE: [],
		REVIEW_PHASE: [],
		GATE_PHASE: [],
	})

	def register(self, phase: int, collaborator: Collaborator) -> None:
		"""Register a collaborator for a phase."""
		if phase not in self._phases:
			raise RegistryError(f"Invalid phase ordinal: {phase}")
		if not isinstance(collaborator, Collaborator):
			raise RegistryError(f"{collaborator!r} does not implement the Collaborator interface")
		existing = {c.collaborator_id for c in self.all()}
		if collaborator.collaborator_id in existing:
			raise RegistryError(f"Collaborator already registered: {collaborator.collaborator_id}")
		self._phases[phase].append(collaborator)

	def phase(self, ordinal: int) -> list[Collaborator]:
		if ordinal not in self._phases:
			raise RegistryError(f"Invalid phase ordinal: {ordinal}")
		return list(self._phases[ordinal])

	@property
	def implementer(self) -> Collaborator:
		return self._single(IMPLEMENTATION_PHASE)

	@property
	def reviewers(self) -> list[Collaborator]:
		return self.phase(REVIEW_PHASE)

	@property
	def gate(self) -> Collaborator:
		return self._single(GATE_PHASE)

	def _single(self, ordinal: int) -> Collaborator:
		collaborators = self._phases[ordinal]
		if len(collaborators) != 1:
			raise RegistryError(
				f"Phase {ordinal} needs exactly one collaborator, has {len(collaborators)}"
			)
		return collaborators[0]

	def all(self) -> list[Collaborator]:
		return [c for ordinal in sorted(self._phases) for c in self._phases[ordinal]]

	def specs(self) -> list[PhaseSpec]:
		"""Describe the registered phases."""
		return [
			PhaseSpec(
				ordinal=ordinal,
				mode=PHASE_MODES[ordinal],
				collaborators=[c.collaborator_id for c in self._phases[ordinal]],
			)
			for ordinal in sorted(self._phases)
		]

	def validate(self, expected_reviewers: Optional[int] = None) -> None:
		"""
		Check the wiring before a run starts.

		Raises:
			RegistryError: on a missing or ambiguous phase
		"""
		self._single(IMPLEMENTATION_PHASE)
		self._single(GATE_PHASE)
		count = len(self._phases[REVIEW_PHASE])
		if count == 0:
			raise RegistryError("Phase 2 needs at least one reviewer")
		if expected_reviewers is not None and count != expected_reviewers:
			raise RegistryError(
				f"Domain '{self.domain}' expects {expected_reviewers} reviewers, has {count}"
			)


def build_registry(domain: DomainSpec, collaborators: dict[str, Collaborator]) -> ReviewerRegistry:
	"""
	Wire collaborators into phases according to a domain spec.

	Args:
		domain: Which ids go in which phase
		collaborators: Collaborator implementations keyed by id

	Raises:
		RegistryError: if any id in the domain has no implementation
	"""
	missing = [cid for cid in domain.collaborator_ids() if cid not in collaborators]
	if missing:
		raise RegistryError(f"No collaborator configured for: {', '.join(missing)}")

	registry = ReviewerRegistry(domain=domain.name)
	registry.register(IMPLEMENTATION_PHASE, collaborators[domain.implementer])
	for reviewer_id in domain.reviewers:
		registry.register(REVIEW_PHASE, collaborators[reviewer_id])
	registry.register(GATE_PHASE, collaborators[domain.gate])
	registry.validate(expected_reviewers=domain.review_count)
	logger.debug(f"Registry for '{domain.name}': {[s.model_dump() for s in registry.specs()]}")
	return registry


def command_collaborators(domain: DomainSpec, commands: dict[str, str]) -> dict[str, Collaborator]:
	"""Build CommandCollaborators for every id of a domain that has a command."""
	phase_of = {domain.implementer: IMPLEMENTATION_PHASE, domain.gate: GATE_PHASE}
	phase_of.update({reviewer_id: REVIEW_PHASE for reviewer_id in domain.reviewers})
	return {
		cid: CommandCollaborator(cid, commands[cid], phase=phase_of[cid])
		for cid in domain.collaborator_ids()
		if cid in commands
	}
