#!/usr/bin/env python3
"""
ABOUTME: Fills placeholders in a docx template from a JSON data file
ABOUTME: {{expression}} placeholders (template mode) or {key} placeholders (replace mode)
"""

import argparse
import json
import sys
from pathlib import Path

from docx_fill import (
    SYNTAX_EXPRESSION,
    SYNTAX_SIMPLE,
    DocxDocument,
    PrintObserver,
    generate_output_path,
)
from docx_fill.common import format_text_preview


def load_data(data_path: str) -> dict:
    """
    Load placeholder data from a JSON file.

    Raises:
        ValueError: If the file does not hold a JSON object
    """
    with open(data_path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{data_path}: expected a JSON object, got {type(data).__name__}")
    return data


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Fill placeholders in a Word document template"
    )
    parser.add_argument('template', help='Template document (.docx)')
    parser.add_argument('data', help='Placeholder values (JSON object)')
    parser.add_argument('-o', '--output',
                        help='Output file path (default: <template>_output.docx)')
    parser.add_argument('--mode', choices=['template', 'replace'], default='template',
                        help='template: {{expression}} placeholders, replace: {key} placeholders (default: template)')
    parser.add_argument('--list', action='store_true',
                        help='List placeholders found in the template and exit')
    parser.add_argument('--dry-run', action='store_true',
                        help='Process the template, do not save')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()
    syntax = SYNTAX_EXPRESSION if args.mode == 'template' else SYNTAX_SIMPLE

    try:
        data = load_data(args.data)
        output_path = Path(args.output) if args.output else generate_output_path(args.template)

        with DocxDocument.open(args.template, observer=PrintObserver(verbose=args.verbose)) as doc:
            if args.list:
                for key in doc.extract_placeholders(syntax):
                    print(key)
                if syntax == SYNTAX_SIMPLE:
                    missing = doc.validate_placeholders(data)
                    if missing:
                        print(f"\nMissing keys: {', '.join(missing)}")
                return 0

            print(f"Template: {args.template}")
            print(f"Output to: {output_path}")
            if args.verbose:
                print("-" * 50)

            if syntax == SYNTAX_EXPRESSION:
                results = doc.execute_template(data)
            else:
                results = doc.replace_all(data)

            replaced = [r for r in results if r.replaced]
            skipped = [r for r in results if not r.replaced]

            if skipped:
                print("\nLeft unchanged:")
                for r in skipped:
                    print(f"  - {format_text_preview(r.placeholder.token, 50)}: {r.reason}")

            print("-" * 50)
            print(f"Completed: {len(replaced)} replaced, {len(skipped)} left unchanged")

            if not args.dry_run:
                doc.write_to_file(output_path)
                print(f"Saved: {output_path}")

        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
