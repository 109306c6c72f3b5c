#!/usr/bin/env python3
"""Learning brain - CLI entry point.

Usage:
    python -m learning_brain.main analyze --user-id UUID              # Print StudentState as JSON
    python -m learning_brain.main analyze --user-id UUID --generate   # Also realize top interventions
    python -m learning_brain.main weekly --user-id A --user-id B      # Weekly cron batch
    python -m learning_brain.main weekly --user-id A --store supabase # Use the Supabase backend
"""

import argparse
import json
import logging

from learning_brain.brain import LearningBrain
from learning_brain.config import settings
from learning_brain.models import WeeklyReport
from learning_brain.services.llm import LLMService
from learning_brain.services.store import JsonStore, LearningStore
from learning_brain.services.supabase import SupabaseStore
from learning_brain.triggers import InterventionTriggers

log = logging.getLogger(__name__)


def build_store(backend: str, data_dir: str) -> LearningStore:
    if backend == "supabase":
        return SupabaseStore()
    return JsonStore(data_dir)


def run_analyze(brain: LearningBrain, user_id: str, generate: bool = False) -> dict:
    """Analyze one student and return a JSON-ready payload."""
    if not generate:
        state = brain.analyze_student(user_id)
        return {"analysis": state.model_dump(mode="json")}

    state, generated = brain.analyze_and_generate(user_id)
    return {
        "analysis": state.model_dump(mode="json"),
        "generated_interventions": [
            {**intervention.model_dump(mode="json"), "content": content.model_dump(mode="json")}
            for intervention, content in generated
        ],
    }


def run_weekly_batch(triggers: InterventionTriggers, user_ids: list[str]) -> list[WeeklyReport]:
    """Run the weekly analysis for each student; one failure does not stop the batch."""
    log.info(f"Weekly batch for {len(user_ids)} students")
    reports = []
    for user_id in user_ids:
        try:
            reports.append(triggers.run_weekly_analysis(user_id))
        except Exception as e:
            log.error(f"Weekly analysis failed for {user_id}: {e}")
    log.info(f"Weekly batch done: {len(reports)}/{len(user_ids)} succeeded")
    return reports


def main(argv=None):
    parser = argparse.ArgumentParser(description="Adaptive learning brain")
    parser.add_argument("command", choices=["analyze", "weekly"])
    parser.add_argument(
        "--user-id",
        action="append",
        required=True,
        help="Student to analyze (repeatable for weekly)",
    )
    parser.add_argument("--store", choices=["json", "supabase"], default=settings.STORE_BACKEND)
    parser.add_argument("--data-dir", type=str, default=settings.DATA_DIR)
    parser.add_argument(
        "--generate",
        action="store_true",
        help="Realize the top urgent/high interventions into content",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(levelname)s: %(message)s")
    log.info(f"Config: command={args.command}, store={args.store}, users={len(args.user_id)}")

    brain = LearningBrain(build_store(args.store, args.data_dir), llm=LLMService())

    if args.command == "analyze":
        results = [run_analyze(brain, user_id, args.generate) for user_id in args.user_id]
        print(json.dumps(results[0] if len(results) == 1 else results, indent=2))
        return results

    reports = run_weekly_batch(InterventionTriggers(brain), args.user_id)
    print(json.dumps([r.model_dump(mode="json") for r in reports], indent=2))
    return reports


if __name__ == "__main__":
    main()
