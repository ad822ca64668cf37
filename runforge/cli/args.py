from __future__ import annotations

import argparse

from runforge.config import OutputFormat


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="runforge")

    parser.add_argument(
        "--config",
        default="runforge.yml",
        help="Path to config file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
    )

    # run
    run = subparsers.add_parser("run", help="Run projects")
    run.add_argument(
        "--project",
        dest="projects",
        action="append",
        default=[],
        metavar="NAME",
        help="Only run this project (repeatable)",
    )
    run.add_argument(
        "--tag",
        dest="tags",
        action="append",
        default=[],
        metavar="TAG",
        help="Only run projects carrying this tag (repeatable)",
    )
    run.add_argument(
        "--parallel",
        action="store_true",
        default=None,
        help="Run projects in parallel",
    )
    run.add_argument(
        "--max-parallel",
        type=int,
        default=None,
        metavar="N",
        help="Maximum number of projects running at once",
    )
    run.add_argument(
        "--stop-on-first-failure",
        action="store_true",
        default=None,
        help="Do not start new projects after a failure",
    )
    run.add_argument(
        "--report",
        default=None,
        metavar="PATH",
        help="Write a report file",
    )
    run.add_argument(
        "--format",
        choices=[f.value for f in OutputFormat],
        default=None,
        help="Report format",
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would run without running it",
    )

    # list
    list_ = subparsers.add_parser("list", help="List projects")
    list_.add_argument(
        "--sort",
        choices=["config", "name", "priority"],
        default="config",
        help="Order of the listed projects",
    )

    # validate
    subparsers.add_parser("validate", help="Validate the config file")

    # detect
    detect = subparsers.add_parser("detect", help="Detect projects in a directory")
    detect.add_argument("--path", default=".", help="Directory to scan")
    detect.add_argument("--depth", type=int, default=3, help="Maximum directory depth")
    detect.add_argument("--output", default=None, help="Save the detected projects as config")

    # init
    init = subparsers.add_parser("init", help="Create a config file")
    init.add_argument("--path", default=".", help="Directory to scan with --auto")
    init.add_argument("--auto", action="store_true", help="Detect projects instead of examples")
    init.add_argument("--force", action="store_true", help="Overwrite an existing config file")

    return parser
