#!/usr/bin/env python3
"""
Quality Loop Runner

Runs the email quality loop on an HTML file and prints the outcome.

Usage:
    # Set environment variables first (or put them in .env):
    export ANTHROPIC_API_KEY=your_key
    export TOOL_SERVICE_URL=https://tools.example.com

    # Run the loop:
    python scripts/run_quality_loop.py email.html "Summer sale to Turkey"

    # With options:
    python scripts/run_quality_loop.py email.html "Summer sale to Turkey" \
        --subject "Hot deals on flights to Antalya" \
        --audience "families" \
        --approve-all \
        --max-iterations 5
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from emailcraft.consultant import create_consultant
from emailcraft.errors import ConsultantError
from emailcraft.loop.controller import create_quality_loop_controller
from emailcraft.models import AgentCommand, ConsultantRequest, SessionStatus
from emailcraft.utils.config import ConsultantConfig, get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def approve_everything(command: AgentCommand) -> bool:
    logger.info(f"Auto-approving {command.tool} ({command.recommendation_id})")
    return True


async def run_quality_loop(args: argparse.Namespace) -> int:
    """Run the loop and print a summary. Returns the process exit code."""
    html_path = Path(args.html_file)
    if not html_path.exists():
        print(f"ERROR: {html_path} not found")
        return 2

    config = ConsultantConfig.from_settings(settings)
    if args.max_iterations:
        config = config.with_overrides(max_iterations=args.max_iterations)
    if args.gate:
        config = config.with_overrides(quality_gate_threshold=args.gate)

    try:
        consultant = create_consultant(config=config, settings=settings)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2
    controller = create_quality_loop_controller(consultant=consultant, settings=settings)

    request = ConsultantRequest(
        html_content=html_path.read_text(encoding="utf-8"),
        topic=args.topic,
        subject_line=args.subject,
        target_audience=args.audience,
        campaign_type=args.campaign_type,
        language=args.language,
        approval_callback=approve_everything if args.approve_all else None,
    )

    print(f"\n{'='*70}")
    print("EMAIL QUALITY LOOP")
    print(f"{'='*70}")
    print(f"File:           {html_path}")
    print(f"Topic:          {args.topic}")
    print(f"Gate:           {config.quality_gate_threshold:.0f}")
    print(f"Max iterations: {config.max_iterations}")
    print(f"{'='*70}\n")

    try:
        session = await controller.run_quality_loop(request)
    except ConsultantError as e:
        print(f"ERROR [{e.code}]: {e.message}")
        return 1
    finally:
        await controller.close()

    for iteration in session.iterations:
        status = "ok" if iteration.success else f"failed: {iteration.error_message}"
        print(
            f"Iteration {iteration.iteration_number}: "
            f"{iteration.initial_score:.1f} -> {iteration.final_score:.1f} "
            f"({len(iteration.recommendations_applied)} applied, "
            f"{len(iteration.pending_approvals)} pending) {status}"
        )

    print(f"\nStatus:      {session.current_status.value}")
    print(f"Reason:      {session.completion_reason.value if session.completion_reason else '-'}")
    print(f"Final score: {session.final_score:.1f}")
    print(f"Improvement: {session.total_improvement:+.1f}")

    if session.current_status == SessionStatus.REQUIRES_APPROVAL:
        pending = session.iterations[-1].pending_approvals
        print(f"Awaiting approval: {', '.join(pending)}")

    if args.output:
        Path(args.output).write_text(
            json.dumps(session.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        print(f"\nSession written to {args.output}")

    if args.html_output and session.current_html:
        Path(args.html_output).write_text(session.current_html, encoding="utf-8")
        print(f"Improved HTML written to {args.html_output}")

    return 0 if session.success else 1


def main():
    parser = argparse.ArgumentParser(description="Run the email quality loop")
    parser.add_argument("html_file", help="Path to the email HTML")
    parser.add_argument("topic", help="Campaign topic")
    parser.add_argument("--subject", help="Subject line")
    parser.add_argument("--audience", help="Target audience")
    parser.add_argument("--campaign-type", default="promotional")
    parser.add_argument("--language", default="en")
    parser.add_argument("--max-iterations", type=int)
    parser.add_argument("--gate", type=float, help="Quality gate threshold")
    parser.add_argument("--approve-all", action="store_true", help="Approve every manual command")
    parser.add_argument("--output", help="Write the session JSON here")
    parser.add_argument("--html-output", help="Write the improved HTML here")

    args = parser.parse_args()
    sys.exit(asyncio.run(run_quality_loop(args)))


if __name__ == "__main__":
    main()
