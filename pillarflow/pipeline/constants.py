"""Stage types, phases, and the static tables that tie them together."""

from __future__ import annotations

from enum import Enum


class StageType(str, Enum):
    """The eight content-generation stages ("pillars"), in workflow order."""

    A = "A"
    D = "D"
    V = "V"
    E = "E"
    R = "R"
    T = "T"
    I = "I"  # noqa: E741
    S = "S"


class Phase(str, Enum):
    """Workflow checkpoints, in canonical order."""

    fiche = "fiche"
    fiche_review = "fiche-review"
    audit_r = "audit-r"
    market_study = "market-study"
    audit_t = "audit-t"
    audit_review = "audit-review"
    implementation = "implementation"
    cockpit = "cockpit"
    complete = "complete"


STAGE_TITLES: dict[StageType, str] = {
    StageType.A: "Authenticité",
    StageType.D: "Distinction",
    StageType.V: "Valeur",
    StageType.E: "Engagement",
    StageType.R: "Risk",
    StageType.T: "Track",
    StageType.I: "Implémentation",
    StageType.S: "Stratégie",
}

PHASES: tuple[Phase, ...] = tuple(Phase)
PHASE_NAMES: tuple[str, ...] = tuple(p.value for p in PHASES)
TERMINAL_PHASE = Phase.complete

# market-study can be jumped over (audit-r -> audit-t directly)
SKIPPABLE_PHASES: frozenset[Phase] = frozenset({Phase.market_study})

LEGACY_PHASE_MAP: dict[str, Phase] = {
    "audit": Phase.audit_r,
}

# Anything a stored strategy phase may hold
KNOWN_PHASE_NAMES: frozenset[str] = frozenset(PHASE_NAMES) | frozenset(LEGACY_PHASE_MAP)

# Which stage completions move the workflow, and where to.
# A, D, V, E are advanced manually by the operator.
POST_GENERATION_PHASE: dict[StageType, Phase | None] = {
    StageType.A: None,
    StageType.D: None,
    StageType.V: None,
    StageType.E: None,
    StageType.R: Phase.market_study,
    StageType.T: Phase.audit_review,
    StageType.I: Phase.cockpit,
    StageType.S: Phase.complete,
}

MARKET_CONTEXT_STAGE = StageType.T
IMPLEMENTATION_STAGE = StageType.I


def stage_order(stage_type: StageType) -> int:
    """Zero-based position of a stage type in workflow order."""
    return list(StageType).index(stage_type)
