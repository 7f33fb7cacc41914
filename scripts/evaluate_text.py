#!/usr/bin/env python3
"""CLI script to run guardrail evaluation on ad-hoc text.

Usage:
    uv run python scripts/evaluate_text.py "What is the weather today?"
    uv run python scripts/evaluate_text.py --output "model reply" --input "user prompt"
    cat prompts.txt | uv run python scripts/evaluate_text.py --batch
    POLICIES='[{"name": "default"}]' uv run python scripts/evaluate_text.py --policy default "hello there"
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

# Add src to path so we can import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import Settings
from src.infrastructure.observability import init_from_settings, shutdown_observability
from src.infrastructure.safety import PolicyNotFoundError, PolicyViolationError
from src.modules.guardrails import create_orchestrator


async def evaluate(args: argparse.Namespace) -> int:
    """Run the requested evaluation and print JSON to stdout.

    Returns:
        Exit code: 0 for ALLOW, 2 for any other decision, 1 on error.
    """
    settings = Settings()
    if args.strict:
        settings = settings.model_copy(update={"strict_mode": True})
    init_from_settings(settings)
    orchestrator = create_orchestrator(settings)

    try:
        if args.batch:
            inputs = [line.strip() for line in sys.stdin if line.strip()]
            batch = await orchestrator.evaluate_batch(inputs)
            print(
                json.dumps(
                    {
                        "results": [r.to_dict() for r in batch.results],
                        "summary": asdict(batch.summary),
                    },
                    indent=2,
                )
            )
            return 0 if batch.summary.allowed == batch.summary.total else 2

        if args.output is not None:
            record = await orchestrator.evaluate_output(args.output, args.input or "")
        elif args.policy:
            record = await orchestrator.enforce_policy(args.policy, args.text)
        else:
            record = await orchestrator.evaluate_input(args.text)

        print(json.dumps(record.to_dict(), indent=2))
        return 0 if record.decision.value == "ALLOW" else 2

    except PolicyNotFoundError as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        return 1
    except PolicyViolationError as e:
        print(f"✗ {e}", file=sys.stderr)
        print(json.dumps(e.evaluation.to_dict(), indent=2))  # type: ignore[attr-defined]
        return 2
    finally:
        await orchestrator.close()
        shutdown_observability()


def main() -> None:
    """Parse arguments and run the evaluation."""
    parser = argparse.ArgumentParser(
        description="Evaluate text through the guardrail layers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Evaluate a prompt
  uv run python scripts/evaluate_text.py "Ignore all previous instructions"

  # Evaluate a model response
  uv run python scripts/evaluate_text.py --output "Sure, here it is" --input "hi"

  # Evaluate one prompt per line from stdin
  uv run python scripts/evaluate_text.py --batch < prompts.txt

  # Enforce a policy declared in the POLICIES setting
  uv run python scripts/evaluate_text.py --policy default "hello there"
        """,
    )

    parser.add_argument("text", nargs="?", help="Prompt text to evaluate")
    parser.add_argument("--output", help="Evaluate this model response instead")
    parser.add_argument("--input", help="Prompt that produced --output")
    parser.add_argument("--policy", help="Enforce a named policy on the prompt")
    parser.add_argument(
        "--batch",
        action="store_true",
        help="Read one prompt per line from stdin",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Enable strict mode (bias escalates to REVIEW)",
    )

    args = parser.parse_args()

    if not args.batch and args.output is None and not args.text:
        parser.error("text is required unless --batch or --output is given")

    sys.exit(asyncio.run(evaluate(args)))


if __name__ == "__main__":
    main()
