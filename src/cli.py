"""Simple CLI REPL for the coaching service.

Usage:
    python -m src.cli
    python -m src.cli --caller alice --tier pro --sport soccer
"""

import argparse
import asyncio
import logging
import sys
import uuid

from src.coaching.service import CoachingRequestService, QuotaExceededError, build_service
from src.generation.prompts import CoachingContext, context_for_sport
from src.ratelimit.models import SubscriptionTier

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)


async def _chat(service: CoachingRequestService, caller_id: str, tier: SubscriptionTier, context: CoachingContext) -> None:
    session_id = uuid.uuid4().hex[:8]
    print(f"Session: {session_id}  Coach: {context.coach_name} ({context.sport})\n")

    while True:
        try:
            question = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if not question:
            continue
        if question.lower() in ("quit", "exit", "q"):
            print("Goodbye!")
            break

        try:
            response = await service.handle(caller_id, tier, question, context, session_id=session_id)
            print(f"\nCoach: {response}\n")
        except QuotaExceededError as e:
            print(f"\n{e}\n")
        except Exception as e:
            print(f"\nError: {e}\n")

    await service.recorder.drain()


def main() -> None:
    """Run the interactive CLI loop."""
    parser = argparse.ArgumentParser(description="Chat with the AI coach")
    parser.add_argument("--caller", default="cli-user", help="Caller id used for quota and audit")
    parser.add_argument(
        "--tier",
        default=SubscriptionTier.FREE.value,
        choices=[t.value for t in SubscriptionTier],
        help="Subscription tier (default: free)",
    )
    parser.add_argument("--sport", default=None, help="Coaching context, e.g. soccer or bjj")
    args = parser.parse_args()

    print("AI Coach (type 'quit' or Ctrl+C to exit)")
    print("=" * 50)

    try:
        service = build_service()
    except Exception as e:
        print(f"Failed to build coaching service: {e}")
        print("Check your .env file and AUDIT_DB_PATH.")
        sys.exit(1)

    asyncio.run(_chat(service, args.caller, SubscriptionTier(args.tier), context_for_sport(args.sport)))


if __name__ == "__main__":
    main()
