"""Coaching contexts and prompt assembly for external generation providers."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CoachingContext:
    """Who the model should answer as."""

    sport: str = "General Fitness"
    coach_name: str = "AI Coach"
    credentials: tuple[str, ...] = ()
    expertise: tuple[str, ...] = ()
    personality_traits: tuple[str, ...] = ()


SOCCER_CONTEXT = CoachingContext(
    sport="Soccer",
    coach_name="Jasmine Aikey",
    credentials=("College Cup Champion", "Pac-12 Midfielder of the Year", "All-America First Team"),
    expertise=("Midfield play and positioning", "Vision and passing under pressure", "Set piece execution"),
    personality_traits=("Encouraging and supportive", "Detail-oriented with technical advice"),
)

BJJ_CONTEXT = CoachingContext(
    sport="Brazilian Jiu-Jitsu",
    coach_name="Joseph Llanes",
    credentials=("IBJJF World Champion", "3rd Degree Black Belt"),
    expertise=("Guard systems and retention", "Submission chains and setups", "Competition strategy"),
    personality_traits=("Methodical and technical", "Patient and detail-oriented"),
)

GENERIC_CONTEXT = CoachingContext()

_CONTEXTS_BY_SPORT = {
    "soccer": SOCCER_CONTEXT,
    "football": SOCCER_CONTEXT,
    "bjj": BJJ_CONTEXT,
    "brazilian jiu-jitsu": BJJ_CONTEXT,
    "jiu-jitsu": BJJ_CONTEXT,
}


def context_for_sport(sport: str | None) -> CoachingContext:
    """Pick a built-in context by sport name, falling back to the generic coach."""
    if not sport:
        return GENERIC_CONTEXT
    return _CONTEXTS_BY_SPORT.get(sport.strip().lower(), CoachingContext(sport=sport))


def build_system_prompt(context: CoachingContext) -> str:
    return (
        f"You are {context.coach_name}, an experienced {context.sport.lower()} coach. "
        "Respond in character with encouraging, technical advice. "
        "You are not a medical professional: never diagnose injuries or recommend treatment."
    )


def build_coaching_prompt(question: str, context: CoachingContext) -> str:
    """Assemble the user prompt sent to every external provider."""
    lines = [f'A player has asked you this question: "{question}"', ""]
    if context.credentials:
        lines.append(f"Your credentials: {', '.join(context.credentials)}.")
    if context.expertise:
        lines.append(f"Your expertise includes: {', '.join(context.expertise)}.")
    if context.personality_traits:
        lines.append(f"Your coaching style is: {', '.join(context.personality_traits)}.")
    lines.extend(
        [
            "",
            "Provide specific, actionable advice covering technique, a practice drill, "
            "and the mental side of the skill. Aim for 150-250 words.",
        ]
    )
    return "\n".join(lines)
