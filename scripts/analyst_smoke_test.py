#!/usr/bin/env python3
"""
Analyst Smoke Test - one question end-to-end against the configured
sports data provider and model gateway.

Usage:
    python scripts/analyst_smoke_test.py --home Arsenal --away Chelsea --question "Who will win?"
    python scripts/analyst_smoke_test.py --home Arsenal --away Chelsea --fixture-id 1208021 \
        --mode live --question "What's the score and who scored?"

Environment:
    RAPIDAPI_KEY: API-Football key (required for data; without it answers degrade)
    GEMINI_API_KEY or OPENAI_API_KEY: model key (optional; without it the fallback answers)
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from analyst.config import get_settings
from analyst.events import ANALYSIS_COMPLETED, Event
from analyst.llm.need_detector import detect_needs
from analyst.match_context import MatchContext, MatchMode
from analyst.service import build_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_smoke_test(
    match: MatchContext,
    question: str,
    room_id: Optional[str] = None,
    follow_up: Optional[str] = None,
) -> dict:
    """Answer `question` (and optionally a follow-up) and collect what happened."""
    # Smoke runs never touch the configured database
    settings = get_settings().model_copy(update={"ANALYST_STORE_BACKEND": "memory"})
    service = build_service(settings)

    completed: list[Event] = []

    async def collect(event: Event) -> None:
        completed.append(event)

    service.bus.subscribe(ANALYSIS_COMPLETED, collect)
    await service.bus.start()

    results = {
        "match": match.pair_key,
        "mode": match.mode.value,
        "provider": settings.ANALYST_LLM_PROVIDER,
        "model_configured": service.generator.gateway is not None,
        "exchanges": [],
    }

    try:
        for q in filter(None, (question, follow_up)):
            start = time.time()
            answer = await service.answer(q, match, room_id=room_id)
            elapsed_ms = (time.time() - start) * 1000
            await service.bus.drain()

            bundle = completed[-1].payload["bundle"] if completed else None
            results["exchanges"].append({
                "question": q,
                "tags": sorted(detect_needs(q)),
                "elapsed_ms": round(elapsed_ms),
                "fetched": bundle.fetched_categories() if bundle else [],
                "failures": dict(bundle.failures) if bundle else {},
                "from_snapshot": not completed[-1].payload["fresh"] if completed else False,
                "answer": answer,
            })

        insights = await service.learned_insights(match.home_team, match.away_team)
        results["insights"] = [i.text for i in insights]
    finally:
        await service.bus.stop()
        await service.close()

    return results


def _save_and_print_results(results: dict, output_path: Optional[str]):
    """Save results to file (when asked) and print summary."""
    if output_path:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, "w") as f:
            json.dump(results, f, indent=2, ensure_ascii=False)
        logger.info(f"Results saved to {output_file}")

    print("\n" + "=" * 60)
    print("ANALYST SMOKE TEST RESULTS")
    print("=" * 60)
    print(f"Match:          {results['match']} ({results['mode']})")
    print(f"Model:          {results['provider'] if results['model_configured'] else 'not configured (fallback)'}")

    for exchange in results["exchanges"]:
        print("-" * 60)
        print(f"Question:       {exchange['question']}")
        print(f"Tags:           {', '.join(exchange['tags']) or '(none)'}")
        print(f"Latency:        {exchange['elapsed_ms']} ms")
        if exchange["from_snapshot"]:
            print("Data:           room snapshot")
        else:
            print(f"Fetched:        {', '.join(exchange['fetched']) or '(nothing)'}")
        for category, reason in exchange["failures"].items():
            print(f"  ! {category}: {reason}")
        print(f"\n{exchange['answer']}\n")

    insights = results.get("insights", [])
    if insights:
        print("-" * 60)
        print(f"Learned:        {len(insights)} insights")
        for text in insights[:5]:
            print(f"  - {text}")

    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(
        description="Analyst Smoke Test - one question through the full pipeline",
    )

    parser.add_argument("--home", required=True, help="Home team name")
    parser.add_argument("--away", required=True, help="Away team name")
    parser.add_argument("--question", required=True, help="Fan question")
    parser.add_argument(
        "--follow-up",
        help="Second, untagged question to exercise snapshot reuse (requires --room-id)",
    )
    parser.add_argument("--room-id", help="Room id (enables snapshot reuse)")
    parser.add_argument("--fixture-id", type=int, help="API-Football fixture id (lineups/live data)")
    parser.add_argument("--league", help="League name, e.g. 'La Liga' (default: Premier League)")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in MatchMode],
        default=MatchMode.PRE_MATCH.value,
        help="Match phase (default: pre_match)",
    )
    parser.add_argument("--kickoff", help="Kickoff as ISO datetime (sets the season)")
    parser.add_argument("--out", help="Output JSON file path")

    args = parser.parse_args()

    if args.follow_up and not args.room_id:
        parser.error("--follow-up requires --room-id")

    match = MatchContext(
        home_team=args.home,
        away_team=args.away,
        fixture_id=args.fixture_id,
        league_name=args.league,
        mode=MatchMode(args.mode),
        kickoff=datetime.fromisoformat(args.kickoff) if args.kickoff else None,
    )

    results = asyncio.run(run_smoke_test(match, args.question, args.room_id, args.follow_up))
    _save_and_print_results(results, args.out)


if __name__ == "__main__":
    main()
