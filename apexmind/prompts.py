"""Prompt templates and rendering for the inference boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from .memory import grudge_level
from .personalities import COMMENTARY_STYLES, profile_for, speaker_for
from .schemas import ACTIONS, DecisionContext


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


@dataclass
class RenderedPrompt:
    system: str
    user: str


class PromptLibrary:
    """Container for named prompt templates, one per inference purpose."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]


DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="decide",
        system=(
            "You are an intelligent shark with the following personality: {{personality_prompt}}\n"
            "Decide your next action and respond with JSON only."
        ),
        user=(
            "Current situation:\n"
            "- Your health: {{agent_health}}%\n"
            "- Your position: {{agent_position}}\n"
            "- Time: {{time_of_day}}, Weather: {{weather}}\n"
            "- Recent events: {{recent_events}}\n\n"
            "Opponents in the game:\n{{opponents_text}}\n\n"
            "Your memories of these opponents:\n{{memories_text}}\n\n"
            "Based on your personality and the current situation, decide your next action. Consider:\n"
            "1. Which opponent to target (if any)\n"
            "2. Your tactical approach\n"
            "3. Your current health and positioning\n"
            "4. Opponent patterns and your memories\n\n"
            "Respond with a JSON object containing:\n"
            "- action: one of {{actions}}\n"
            "- target_id: id of the opponent to target (omit when none)\n"
            "- destination: {\"x\": ..., \"y\": ...} coordinates to move to\n"
            "- monologue: your inner thoughts (1-2 sentences, in character)\n"
            "- confidence: how confident you are in this decision (0-1)\n"
            "- reasoning: tactical explanation for this decision"
        ),
        description="Structured decision for the agent's next move.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="generate-taunt",
        system="You are a {{personality}} shark. {{personality_prompt}}",
        user=(
            "Generate a short, menacing taunt based on this trigger: {{trigger}}\n\n"
            "Current context:\n"
            "- Your health: {{agent_health}}%\n"
            "- Opponents in the water: {{in_zone_count}}\n"
            "- Time: {{time_of_day}}\n\n"
            "Keep it under 10 words. Be creative and personality-appropriate. Return only the taunt."
        ),
        description="One-line taunt reacting to a game trigger.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="generate-dialogue",
        system="{{speaker_prompt}}",
        user=(
            "React in one or two sentences to this moment: {{trigger}}\n\n"
            "Scene:\n"
            "- Opponents in the water: {{in_zone_count}}\n"
            "- Time: {{time_of_day}}, Weather: {{weather}}\n\n"
            "Stay in character. Return only the line of dialogue."
        ),
        description="Bystander dialogue reacting to the hunt.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="generate-commentary",
        system="{{style_prompt}}",
        user=(
            "Current event: {{event}}\n"
            "Players involved: {{players}}\n"
            "Shark health: {{agent_health}}%\n"
            "Intensity level: {{intensity}}\n\n"
            "Provide commentary for this moment. Keep it brief (1-2 sentences) but impactful. "
            "Match the intensity level."
        ),
        description="Spectator narration of a game event.",
    )
)


def _opponents_text(context: DecisionContext) -> str:
    if not context.opponents:
        return "- none"
    lines = []
    for opponent in context.opponents:
        where = "IN WATER" if opponent.in_zone else "ON BEACH"
        lines.append(
            f"- {opponent.name} (ID: {opponent.id}): Position ({opponent.position.x:.0f}, "
            f"{opponent.position.y:.0f}), Health: {opponent.health:.0f}, {where}, Speed: {opponent.speed}"
        )
    return "\n".join(lines)


def _memories_text(context: DecisionContext) -> str:
    if not context.memories:
        return "- none"
    lines = []
    for memory in context.memories:
        name = memory.opponent_name or memory.opponent_id
        pattern_types = ", ".join(p.type for p in memory.patterns) or "none"
        lines.append(
            f"- {name}: Encountered {memory.encounters} times, Relationship: {memory.relationship}, "
            f"Patterns: {pattern_types}, Grudge Level: {grudge_level(memory):.0f}/10"
        )
    return "\n".join(lines)


def context_replacements(context: DecisionContext) -> Dict[str, str]:
    """Placeholder values derived from a decision context."""

    profile = profile_for(context.personality)
    return {
        "{{personality}}": context.personality,
        "{{personality_prompt}}": profile.prompt,
        "{{agent_health}}": f"{context.agent_health:.0f}",
        "{{agent_position}}": f"({context.agent_position.x:.0f}, {context.agent_position.y:.0f})",
        "{{time_of_day}}": context.time_of_day,
        "{{weather}}": context.weather,
        "{{recent_events}}": ", ".join(context.recent_events) or "none",
        "{{opponents_text}}": _opponents_text(context),
        "{{memories_text}}": _memories_text(context),
        "{{in_zone_count}}": str(len(context.in_zone())),
        "{{actions}}": ", ".join(ACTIONS),
    }


def render_prompt(template: PromptTemplate, replacements: Dict[str, str]) -> RenderedPrompt:
    """Replace ``{{placeholders}}`` in both halves of ``template``.

    Unknown placeholders are left as-is.
    """

    system = template.system
    user = template.user
    for placeholder, value in replacements.items():
        system = system.replace(placeholder, value)
        user = user.replace(placeholder, value)
    return RenderedPrompt(system=system, user=user)


def render_decide_prompt(
    context: DecisionContext, library: PromptLibrary = DEFAULT_PROMPTS
) -> RenderedPrompt:
    return render_prompt(library.get("decide"), context_replacements(context))


def render_taunt_prompt(
    context: DecisionContext, trigger: str, library: PromptLibrary = DEFAULT_PROMPTS
) -> RenderedPrompt:
    replacements = context_replacements(context)
    replacements["{{trigger}}"] = trigger
    return render_prompt(library.get("generate-taunt"), replacements)


def render_dialogue_prompt(
    speaker: str,
    trigger: str,
    context: Optional[DecisionContext] = None,
    library: PromptLibrary = DEFAULT_PROMPTS,
) -> RenderedPrompt:
    profile = speaker_for(speaker)
    replacements = context_replacements(context) if context is not None else {
        "{{in_zone_count}}": "unknown",
        "{{time_of_day}}": "day",
        "{{weather}}": "calm",
    }
    replacements["{{trigger}}"] = trigger
    replacements["{{speaker_prompt}}"] = (
        profile.prompt if profile is not None else f"You are a {speaker} on a beach with a shark problem."
    )
    return render_prompt(library.get("generate-dialogue"), replacements)


def render_commentary_prompt(
    event: str,
    players: Sequence[str],
    agent_health: float,
    intensity: str,
    style: str,
    library: PromptLibrary = DEFAULT_PROMPTS,
) -> RenderedPrompt:
    replacements = {
        "{{style_prompt}}": COMMENTARY_STYLES.get(style, COMMENTARY_STYLES["documentary"]),
        "{{event}}": event,
        "{{players}}": ", ".join(players) or "none",
        "{{agent_health}}": f"{agent_health:.0f}",
        "{{intensity}}": intensity,
    }
    return render_prompt(library.get("generate-commentary"), replacements)
