"""Local, deterministic answer generator used when every external provider fails.

Answers come from a declarative topic table: the first topic whose keywords
appear in the question wins, otherwise a general answer is used. Output
depends only on the question and the coaching context.
"""

from dataclasses import dataclass

from src.generation.models import Provider, ProviderReply
from src.generation.prompts import GENERIC_CONTEXT, CoachingContext

FALLBACK_MODEL = "local-topic-table-v1"


@dataclass(frozen=True)
class FallbackTopic:
    name: str
    keywords: tuple[str, ...]
    body: str


FALLBACK_TOPICS: tuple[FallbackTopic, ...] = (
    FallbackTopic(
        name="passing",
        keywords=("passing", "pass ", "accuracy"),
        body=(
            "**Key focus areas:**\n"
            "• **Plant foot** - set it beside the ball, pointed at your target\n"
            "• **Locked ankle** - strike through the middle of the ball and follow through low\n"
            "• **Scan first** - look up before the ball arrives so you already know the next pass\n\n"
            "**Drill:** two cones 15 yards apart, 50 passes a day. Start stationary, then add movement."
        ),
    ),
    FallbackTopic(
        name="finishing",
        keywords=("shooting", "shoot", "finish", "goal", "scoring"),
        body=(
            "**Technical fundamentals:**\n"
            "• **First touch** - take it into space, away from pressure\n"
            "• **Body shape** - open to the target and stay balanced\n"
            "• **Pick your spot** before you strike; placement beats power\n\n"
            "**Drill:** 20 finishes each from the left, centre and right of the box, every session."
        ),
    ),
    FallbackTopic(
        name="guard",
        keywords=("guard", "retention", "pressure", "frames"),
        body=(
            "**Core principles:**\n"
            "• **Frames** - build them early to manage distance\n"
            "• **Hip movement** - keep shrimping to recover angles\n"
            "• **Grip fighting** - control their grips before they control yours\n\n"
            "**Drill:** 100 hip escapes a day until the movement is automatic."
        ),
    ),
    FallbackTopic(
        name="submissions",
        keywords=("submission", "choke", "armbar", "triangle", "chain"),
        body=(
            "**Chain concepts:**\n"
            "• **Always have a backup** - when one attack is defended, the next is already there\n"
            "• **Position before submission** - secure control before you hunt the finish\n"
            "• **Flow over force** - smooth transitions beat muscling through defences\n\n"
            "**Drill:** run a three-attack chain slowly with a partner, then add resistance."
        ),
    ),
    FallbackTopic(
        name="mental",
        keywords=("mental", "nerves", "nervous", "confidence", "competition", "pressure"),
        body=(
            "**Before competition:**\n"
            "• **Visualise** the first exchanges of the match in detail\n"
            "• **Breathe** - slow exhales to bring your heart rate down\n"
            "• **Self-talk** - replace doubt with one simple process cue\n\n"
            "**In training:** simulate pressure by drilling tired, with a clock and an audience."
        ),
    ),
    FallbackTopic(
        name="conditioning",
        keywords=("fitness", "conditioning", "stamina", "endurance", "cardio", "speed"),
        body=(
            "**Build the engine:**\n"
            "• **Intervals** - short efforts that match the work-to-rest ratio of your sport\n"
            "• **Strength** - two sessions a week of compound lifts\n"
            "• **Recovery** - sleep and easy days are where the adaptation happens\n\n"
            "**Progression:** add no more than about 10% volume per week."
        ),
    ),
)

GENERAL_BODY = (
    "**My coaching approach:**\n"
    "• **Fundamentals first** - master the basics before advancing\n"
    "• **Practice with purpose** - every repetition should have an intention\n"
    "• **Consistency over perfection** - 100 decent repetitions beat 10 perfect ones\n\n"
    "**Next step:** break your question into one specific skill and build a short, "
    "structured practice plan around it."
)


class FallbackGenerator:
    """The terminal provider. ``attempt`` cannot fail."""

    name = Provider.FALLBACK.value
    model = FALLBACK_MODEL

    def __init__(self, topics: tuple[FallbackTopic, ...] = FALLBACK_TOPICS) -> None:
        self._topics = topics

    def match_topic(self, question: str) -> FallbackTopic | None:
        lowered = f"{question.lower()} "
        for topic in self._topics:
            if any(keyword in lowered for keyword in topic.keywords):
                return topic
        return None

    def generate(self, question: str, context: CoachingContext | None = None) -> str:
        ctx = context or GENERIC_CONTEXT
        topic = self.match_topic(question)
        body = topic.body if topic is not None else GENERAL_BODY
        intro = f"Thanks for the question! Here's how I, {ctx.coach_name}, would approach it in {ctx.sport.lower()}."
        return f"{intro}\n\n{body}"

    async def attempt(self, prompt: str, context: CoachingContext | None, timeout_seconds: float) -> ProviderReply:
        return ProviderReply(text=self.generate(prompt, context), model=self.model)
