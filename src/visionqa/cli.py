"""
Command-line interface for visionQA.

Provides commands to run a test case through the self-healing loop and to
inspect what the knowledge base has learned.
"""

import argparse
import logging
import os
import sys

from .config import API_KEY_VARS, Settings


def _settings_from_args(args) -> Settings:
    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)

    backend = getattr(args, "backend", None)
    if backend and backend != settings.backend:
        settings.backend = backend
        settings.api_key = next((os.environ[v] for v in API_KEY_VARS[backend] if os.environ.get(v)), None)
    if getattr(args, "api_key", None):
        settings.api_key = args.api_key
    if getattr(args, "knowledge_dir", None):
        settings.knowledge_dir = args.knowledge_dir
    if getattr(args, "output_dir", None):
        settings.output_dir = args.output_dir
    if getattr(args, "max_retries", None) is not None:
        settings.max_retries = args.max_retries
    if getattr(args, "headless", None) is not None:
        settings.headless = args.headless
    try:
        settings.validate()
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(2)
    return settings


def run_command(args):
    """Generate, execute and (if needed) repair one test case."""
    from .assets import AssetValidationError
    from .backends import BackendError
    from .orchestrator import Orchestrator, TestCase

    settings = _settings_from_args(args)
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        test_case = TestCase.load(args.testcase)
    except (OSError, ValueError) as e:
        print(f"❌ Error: could not read test case: {e}")
        sys.exit(2)

    print("🧪 visionQA")
    print(f"Test case: {test_case.name}")
    print(f"Target: {test_case.url}")
    print(f"Max retries: {settings.max_retries}")
    print()

    if not settings.api_key and (args.no_cache or not test_case.assets_path.exists()):
        print("❌ Error: No API key provided.")
        print("   Set GEMINI_API_KEY (or OPENAI_API_KEY / ANTHROPIC_API_KEY with VISIONQA_BACKEND) or use --api-key")
        sys.exit(1)

    orchestrator = Orchestrator.from_settings(settings, reuse_assets=not args.no_cache)

    print("🤖 Running the self-healing test loop...")
    try:
        outcome = orchestrator.run(test_case)
    except AssetValidationError as e:
        print(f"❌ The generated assets are malformed: {e}")
        sys.exit(1)
    except BackendError as e:
        print(f"❌ AI backend error: {e}")
        sys.exit(1)

    print()
    print(outcome.summary())
    print()
    if outcome.passed:
        print(f"✅ Test passed after {outcome.attempts} attempt(s)")
        return
    print(f"❌ Test failed after {outcome.attempts} attempt(s)")
    sys.exit(1)


def report_command(args):
    """Print the learning report, and page-specific hints when --url is given."""
    import json

    from .knowledge import SelectorCandidateStore
    from .learning import KnowledgeUpdater

    settings = _settings_from_args(args)
    logging.basicConfig(level=settings.log_level)

    store = SelectorCandidateStore(settings.knowledge_dir)
    store.load()
    updater = KnowledgeUpdater(store, max_candidates=settings.max_candidates)

    report = updater.generate_learning_report()
    print("📊 visionQA learning report")
    print(f"Knowledge base: {settings.knowledge_dir}")
    print()
    print(json.dumps(report, indent=2, ensure_ascii=False))

    if args.url:
        suggestions = updater.suggest_improvements(args.url)
        print()
        if suggestions:
            print(f"💡 Suggestions for {args.url}:")
            for suggestion in suggestions:
                print(f"   {suggestion}")
        else:
            print(f"💡 No failure patterns recorded for {args.url}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="visionQA - self-healing AI-generated E2E tests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate and run a test from a user story
  visionqa run tests/login.testcase.json

  # Regenerate the assets instead of reusing login.ai-assets.json
  visionqa run tests/login.testcase.json --no-cache

  # Use OpenAI instead of Gemini
  visionqa run tests/login.testcase.json --backend openai --api-key your-key

  # Show what the knowledge base has learned
  visionqa report --url https://example.com/login
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Generate, execute and self-heal a test case")
    run_parser.add_argument("testcase", help="Path to a *.testcase.json file")
    run_parser.add_argument(
        "--backend",
        choices=sorted(API_KEY_VARS),
        help="AI backend to use (default: VISIONQA_BACKEND or gemini)",
    )
    run_parser.add_argument(
        "--api-key", help="API key for the backend (or set GEMINI_API_KEY, OPENAI_API_KEY or ANTHROPIC_API_KEY)"
    )
    run_parser.add_argument("--max-retries", type=int, help="Repair attempts after the first run (default: 1)")
    run_parser.add_argument("--knowledge-dir", help="Knowledge base directory (default: ./knowledge-base)")
    run_parser.add_argument("--output-dir", help="Where generated code is written (default: ./generated)")
    run_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Always ask the AI for fresh assets instead of reusing *.ai-assets.json",
    )
    run_parser.add_argument(
        "--headed",
        action="store_false",
        dest="headless",
        default=None,
        help="Run browser in headed mode (show browser window)",
    )
    run_parser.set_defaults(func=run_command)

    # Report command
    report_parser = subparsers.add_parser("report", help="Show the learning report")
    report_parser.add_argument("--knowledge-dir", help="Knowledge base directory (default: ./knowledge-base)")
    report_parser.add_argument("--url", help="Also show improvement hints for this page")
    report_parser.set_defaults(func=report_command)

    # Parse args
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Run command
    args.func(args)


if __name__ == "__main__":
    main()
