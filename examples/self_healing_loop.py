#!/usr/bin/env python3
"""
visionQA Example: the self-healing loop as a library

Runs a test case through generate -> execute -> analyze -> repair -> retry
and prints what the knowledge base learned.

Configure via environment variables (or a .env file):
  GEMINI_API_KEY          - Required unless the *.ai-assets.json is already cached
  VISIONQA_BACKEND        - gemini (default) or openai
  VISIONQA_MAX_RETRIES    - Repair attempts after the first run (default: 1)
  VISIONQA_KNOWLEDGE_DIR  - Knowledge base directory (default: ./knowledge-base)

Usage:
  python examples/self_healing_loop.py examples/login.testcase.json
"""

import logging
import sys

from visionqa.config import Settings
from visionqa.orchestrator import Orchestrator, TestCase


def main():
    testcase_path = sys.argv[1] if len(sys.argv) > 1 else "examples/login.testcase.json"

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

    test_case = TestCase.load(testcase_path)
    orchestrator = Orchestrator.from_settings(settings)

    print(f"🧪 {test_case.name}")
    print(f"   {test_case.url}")
    print()

    outcome = orchestrator.run(test_case)
    print(outcome.summary())
    print()

    updater = orchestrator.updater
    report = updater.generate_learning_report()
    print(f"📊 Knowledge base: {report['totalTests']} run(s), {report['successRate']:.0f}% passed")
    for element in report["problematicElements"]:
        print(f"   ⚠️  {element['name']}: {element['successRate']:.0f}% of its selectors work")
    for suggestion in updater.suggest_improvements(test_case.url):
        print(f"   💡 {suggestion}")

    return 0 if outcome.passed else 1


if __name__ == "__main__":
    sys.exit(main())
