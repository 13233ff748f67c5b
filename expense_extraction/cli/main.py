#!/usr/bin/env python3
"""
Main CLI entrypoint for expense extraction.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from expense_extraction.core.config import LLMConfig
from expense_extraction.core.categorization import CATEGORIES
from expense_extraction.core.intake import process_upload
from expense_extraction.core.processor import ExtractionOrchestrator
from expense_extraction.core.utils import guess_mime_type, money_fmt


def main(argv=None):
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Extract an expense (description, amount, category, date) from a receipt, invoice or CSV file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Extract with the LLM configured through LLM_PROVIDER / LLM_API_KEY
  expense-extract receipt.jpg

  # Heuristics only, with a manual amount in case nothing is detected
  expense-extract invoice.pdf --no-llm --amount 42.50

  # Machine-readable output
  expense-extract statement.csv --json
        """
    )
    parser.add_argument("file", help="Receipt, invoice or CSV file to extract from")
    parser.add_argument("--mime-type",
                        help="Declared MIME type (guessed from the file name if not specified)")
    parser.add_argument("--description", help="Fallback description if none is detected")
    parser.add_argument("--amount", help="Fallback amount if none is detected")
    parser.add_argument("--category", choices=CATEGORIES, help="Fallback category if none is detected")
    parser.add_argument("--date", help="Fallback date if none is detected (default: now)")

    # LLM configuration
    parser.add_argument("--llm-provider",
                        choices=["openai", "anthropic"],
                        help="LLM provider to use (default: openai, or LLM_PROVIDER env var)")
    parser.add_argument("--llm-model",
                        help="LLM model to use (uses provider default if not specified, or LLM_MODEL env var)")
    parser.add_argument("--no-llm", action="store_true",
                        help="Disable LLM extraction, use only OCR and heuristic parsing")

    parser.add_argument("--json", action="store_true", help="Print the record as JSON")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show detailed extraction information for debugging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    path = Path(args.file)
    if not path.is_file():
        print(f"[ERROR] File not found: {path}")
        return 2

    if args.no_llm:
        config = LLMConfig.unconfigured()
    else:
        try:
            config = LLMConfig.from_env(provider=args.llm_provider, model=args.llm_model)
        except ValueError as e:
            print(f"[ERROR] {e}")
            return 1
        if config.is_configured and not args.json:
            print(f"[INFO] LLM: {config.provider.value} ({config.resolved_model})")

    orchestrator = ExtractionOrchestrator(config)
    result = process_upload(
        orchestrator,
        path.read_bytes(),
        args.mime_type or guess_mime_type(path),
        path.name,
        description=args.description,
        amount=args.amount,
        category=args.category,
        date=args.date,
    )

    if not result.success:
        print(f"[ERROR] {result.message}")
        return 1

    record = result.record
    if args.json:
        print(json.dumps(record.to_dict(), indent=2))
    else:
        print(f"[OK] {result.message}")
        print(f"     Description: {record.description}")
        print(f"     Amount:      {money_fmt(record.amount)}")
        print(f"     Category:    {record.category}")
        print(f"     Date:        {record.date}")
        if result.source:
            print(f"     Source:      {result.source}")
        else:
            print("     Source:      manual fallback")
    return 0


if __name__ == "__main__":
    sys.exit(main())
