import argparse
import logging
import os
import sys
from typing import List, Optional

from mailbox_e2e.models import Report
from mailbox_e2e.report_exporter import ReportExporter

here = os.path.dirname(os.path.abspath(__file__))

BANNER = """\
Anytime Mailbox Selenium Tests
===============================

This project contains pytest end-to-end tests for Anytime Mailbox automation.

To run the tests, use one of the following commands:
  pytest e2e                      - Run all tests
  pytest e2e -v -rA               - Run with detailed console output

Test Cases:
  1. test_successful_location_search   - Verifies location search returns results
  2. test_unsuccessful_location_search - Verifies handling of invalid searches
  3. test_failed_login                 - Verifies login failure handling

After a run, the report is written to ./mailbox-report (see --report-dir).
"""


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m mailbox_e2e",
        description="Describes how to run the Anytime Mailbox end-to-end tests, and re-renders their reports.",
    )
    subparsers = parser.add_subparsers(dest="command")
    export = subparsers.add_parser(
        "export-report",
        help="Regenerates a report from an existing report.json using a custom or default template. "
        "This makes it easier to tweak the template without having to run a full test suite each time, "
        "as long as the report.json appears correct.",
    )
    export.add_argument("--input-json", "-i", required=True, help="The path to the report.json you want to load.")
    export.add_argument(
        "--output-dir",
        "-o",
        required=False,
        default=None,
        help="The directory you want the report output to go. If not provided, it will overwrite "
        "the input report artifacts.",
    )
    export.add_argument(
        "--template-filename",
        "-t",
        required=False,
        default=os.path.join(here, "templates", "report.html"),
        help="The name of a template to use when generating the report.",
    )
    return parser


def export_report(input_json: str, output_dir: Optional[str], template_filename: str) -> str:
    output_dir = output_dir or os.path.dirname(os.path.abspath(input_json))
    exporter = ReportExporter(
        template_dir=os.path.dirname(template_filename), root_template=os.path.basename(template_filename)
    )
    with open(input_json) as f:
        report = Report.model_validate_json(f.read())
    exporter.export_all(report, output_dir)
    return output_dir


def main(argv: Optional[List[str]] = None) -> int:
    args = get_parser().parse_args(argv)
    if args.command == "export-report":
        logging.basicConfig(level=logging.INFO)
        output_dir = export_report(args.input_json, args.output_dir, args.template_filename)
        print(f"Exported artifacts to {output_dir}")
    else:
        print(BANNER)
    return 0


if __name__ == "__main__":
    sys.exit(main())
