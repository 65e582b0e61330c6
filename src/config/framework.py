"""
Framework Catalog for the Luna productivity coach.

Static reference data the guidance engine reasons over:
- CORE_PRINCIPLES: the five framework principles insights are tagged with
- STAGE_DEFINITIONS: implementation stages, their length and weekly focus
- RECOVERY_LEVELS: remediation actions, ordered by severity
- COMMAND_CATALOG: example commands grouped by category, used for
  contextual suggestions

Nothing here is user-specific; user state lives in src.models.guidance.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.models.guidance import Stage

# =============================================================================
# Principles
# =============================================================================

PRINCIPLE_CAPTURE = "principle-1"
PRINCIPLE_CLARIFY = "principle-2"
PRINCIPLE_ORGANIZE = "principle-3"
PRINCIPLE_REFLECT = "principle-4"
PRINCIPLE_ENGAGE = "principle-5"

CORE_PRINCIPLES: dict[str, str] = {
    PRINCIPLE_CAPTURE: "Capture Everything + Intentional Planning",
    PRINCIPLE_CLARIFY: "Clarify Purpose + Focus Management",
    PRINCIPLE_ORGANIZE: "Organize by Context + Energy Conservation",
    PRINCIPLE_REFLECT: "Reflect & Review + Well-being Integration",
    PRINCIPLE_ENGAGE: "Engage with Confidence + Continuous Improvement",
}

# =============================================================================
# Stages
# =============================================================================


@dataclass(frozen=True)
class WeekBlock:
    """A two-week block inside a stage."""

    first_week: int  # 1-based, relative to the stage
    title: str
    activities: tuple[str, ...]


@dataclass(frozen=True)
class StageDefinition:
    stage: Stage
    name: str
    focus: str
    total_weeks: int
    week_blocks: tuple[WeekBlock, ...] = ()

    def next_block(self, week: int) -> WeekBlock | None:
        """Return the first block that starts after the given week."""
        for block in self.week_blocks:
            if block.first_week > week:
                return block
        return None


STAGE_DEFINITIONS: dict[Stage, StageDefinition] = {
    Stage.FOUNDATION: StageDefinition(
        stage=Stage.FOUNDATION,
        name="Foundation",
        focus="Build the infrastructure for sustainable productivity",
        total_weeks=8,
        week_blocks=(
            WeekBlock(1, "System Setup", (
                "Configure capture on every device",
                "Do an initial brain dump into the system",
                "Record a baseline of productivity and wellness",
            )),
            WeekBlock(3, "Habit Formation", (
                "Practice daily capture with reminders",
                "Build muscle memory for quick-capture shortcuts",
            )),
            WeekBlock(5, "Foundation Strengthening", (
                "Integrate calendar and email with the system",
                "Introduce a basic processing workflow",
            )),
            WeekBlock(7, "Confidence Building", (
                "Troubleshoot capture failures",
                "Celebrate early wins",
                "Run the foundation assessment",
            )),
        ),
    ),
    Stage.OPTIMIZATION: StageDefinition(
        stage=Stage.OPTIMIZATION,
        name="Optimization",
        focus="Refine workflows and enhance productivity systems",
        total_weeks=8,
        week_blocks=(
            WeekBlock(1, "Clarification Mastery", (
                "Practice purpose and outcome clarification",
                "Identify next actions for every project",
            )),
            WeekBlock(3, "Organization Excellence", (
                "Organize tasks by context",
                "Schedule tasks against your energy pattern",
            )),
            WeekBlock(5, "Advanced Workflows", (
                "Track goals as a hierarchy",
                "Plan capacity before committing",
            )),
            WeekBlock(7, "Technology Integration", (
                "Automate routine capture and processing",
                "Review analytics and insights weekly",
            )),
        ),
    ),
    Stage.MASTERY: StageDefinition(
        stage=Stage.MASTERY,
        name="Mastery",
        focus="Achieve confident engagement and sustainable excellence",
        total_weeks=8,
        week_blocks=(
            WeekBlock(1, "Review Rhythm Establishment", (
                "Automate the daily review",
                "Master the weekly review",
            )),
            WeekBlock(3, "Engagement Optimization", (
                "Cultivate flow-state sessions",
                "Refine your focus protocol",
            )),
            WeekBlock(5, "Well-being Integration", (
                "Enforce work-life boundaries",
                "Keep burnout prevention active",
            )),
            WeekBlock(7, "Continuous Improvement", (
                "Evolve the system from your analytics",
                "Experiment with one new practice",
            )),
        ),
    ),
    Stage.SUSTAINABILITY: StageDefinition(
        stage=Stage.SUSTAINABILITY,
        name="Sustainability",
        focus="Maintain the system with regular review and quick recovery",
        total_weeks=8,
        week_blocks=(
            WeekBlock(1, "Maintenance Rhythm", (
                "Keep weekly reviews at 100%",
                "Run a monthly system health check",
            )),
            WeekBlock(5, "Resilience", (
                "Recover from disruptions within an hour",
                "Mentor someone through the foundation stage",
            )),
        ),
    ),
}

# Used when a profile somehow carries a stage with no definition
DEFAULT_STAGE_WEEKS = 8


def total_weeks_for(stage: Stage) -> int:
    definition = STAGE_DEFINITIONS.get(stage)
    return definition.total_weeks if definition else DEFAULT_STAGE_WEEKS


# =============================================================================
# Recovery levels
# =============================================================================


@dataclass(frozen=True)
class RecoveryLevel:
    """A remediation action selected when system health degrades."""

    level: int
    name: str
    duration_minutes: int
    when: str
    action: str
    command: str
    outcome: str


RECOVERY_LEVELS: tuple[RecoveryLevel, ...] = (
    RecoveryLevel(
        level=1,
        name="Quick Capture Recovery",
        duration_minutes=5,
        when="System feels chaotic, overwhelmed by inputs",
        action="Brain dump everything into capture system",
        command="Luna, help me do a brain dump",
        outcome="Mental clarity, nothing lost",
    ),
    RecoveryLevel(
        level=2,
        name="Processing Reset",
        duration_minutes=15,
        when="Capture system full but unprocessed",
        action="Rapid processing of captured items",
        command="Luna, help me process my inbox",
        outcome="Clear inboxes, actionable items identified",
    ),
    RecoveryLevel(
        level=3,
        name="Context Reorganization",
        duration_minutes=30,
        when="Tasks exist but organization is unclear",
        action="Resort tasks by context and priority",
        command="Luna, help me reorganize by context",
        outcome="Clear next actions for current context",
    ),
    RecoveryLevel(
        level=4,
        name="Project Realignment",
        duration_minutes=60,
        when="Tasks clear but project coherence lost",
        action="Review and reorganize by project outcomes",
        command="Luna, review my projects with me",
        outcome="Clear project priorities and next steps",
    ),
    RecoveryLevel(
        level=5,
        name="Goal Resynchronization",
        duration_minutes=120,
        when="Projects active but disconnected from goals",
        action="Complete goal review and project alignment",
        command="Luna, let's review my goals and alignment",
        outcome="All projects aligned with clear purpose",
    ),
    RecoveryLevel(
        level=6,
        name="System Redesign",
        duration_minutes=240,
        when="Multiple system components failing",
        action="Comprehensive system audit and redesign",
        command="Luna, run a complete system audit",
        outcome="Optimized system matching current needs",
    ),
    RecoveryLevel(
        level=7,
        name="Complete Reset",
        duration_minutes=1440,
        when="System fundamentally broken or life changed dramatically",
        action="Fresh start with new system design",
        command="Luna, help me start fresh",
        outcome="New system optimized for current reality",
    ),
)


def recovery_level_for_health(system_health_score: int) -> int:
    """Map a degraded health score to the recovery level worth starting.

    Health 4 suggests the lightest level (1); health 1 suggests level 4.
    The heavier levels (5-7) are only ever started explicitly by the user.
    """
    return min(4, max(1, 5 - system_health_score))


# =============================================================================
# Command catalog
# =============================================================================

COMMAND_CATALOG: dict[str, tuple[str, ...]] = {
    "Capture & Planning": (
        "Capture this: [task/idea]",
        "What's on my plate today?",
        "Plan my week",
        "Schedule [task] for optimal time",
    ),
    "Focus & Execution": (
        "What should I work on now?",
        "Start a focus session for [task]",
        "Block distractions",
        "How much time until my next meeting?",
    ),
    "Review & Reflection": (
        "Let's do my weekly review",
        "How am I doing?",
        "Show me my progress on [goal]",
        "What patterns do you see?",
    ),
    "Recovery & Support": (
        "Help me do a brain dump",
        "I'm feeling overwhelmed",
        "Reorganize my tasks",
        "Run a system health check",
    ),
    "Well-being": (
        "Am I working too much?",
        "Suggest a break",
        "Check my stress levels",
        "Block recovery time",
    ),
}
