"""Command-line interface for generating kiteg bindings.

Notes:
    - Without arguments the program behaves as a protoc plugin, e.g.
      `protoc --plugin=protoc-gen-kite --kite_out=paths=source_relative:. service.proto`.
    - With `--descriptor-sets`, it generates from descriptor sets written by
      `protoc --include_imports --include_source_info --descriptor_set_out=...`.
"""

from __future__ import annotations

import argparse
import logging
import os.path
import sys
from collections.abc import Sequence

from protoc_gen_kite.run import run, run_plugin

logger = logging.getLogger(__name__)


def _add_recursive_argument(parser: argparse.ArgumentParser):
    """Add a recursive argument to a parser.

    Args:
        parser (argparse.ArgumentParser): The parser to add the argument to.
    """
    parser.add_argument(
        "-r",
        "--recursive",
        dest="recursive",
        default=False,
        action="store_true",
        help="recursively search for descriptor sets with a given glob expression.",
    )


def setup_parser() -> argparse.ArgumentParser:
    """Setup for the parser.

    Returns:
        argparse.ArgumentParser: The parser after setup.
    """
    parser = argparse.ArgumentParser(description="Generate kiteg client and server bindings for proto services.")

    parser.add_argument(
        "-d",
        "--descriptor-sets",
        dest="descriptor_sets",
        type=str,
        nargs="+",
        default=[],
        help="path or glob expressions that match FileDescriptorSet files; run as protoc plugin if omitted.",
    )

    parser.add_argument(
        "-f",
        "--files",
        type=str,
        nargs="+",
        default=[],
        help="proto file names to generate bindings for; defaults to all files in the descriptor sets.",
    )

    parser.add_argument(
        "-c",
        "--clean",
        type=str,
        nargs="+",
        default=[],
        help="path or glob expressions that match files to clean up before generation.",
    )

    parser.add_argument(
        "-o",
        "--output-dir",
        type=str,
        default="",
        help="directory to write all generated outputs; defaults to the working directory.",
    )

    parser.add_argument(
        "--parameter",
        type=str,
        default="",
        help="generator parameters in protoc syntax, e.g. 'paths=source_relative,gen_new=true'.",
    )

    parser.add_argument(
        "--no-gofmt",
        dest="skip_gofmt",
        default=False,
        action="store_true",
        help="skip gofmt formatting of generated files.",
    )

    _add_recursive_argument(parser)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the generator.

    Args:
        argv (Sequence[str] | None, optional): Run arguments. Defaults to None.

    Returns:
        int: Error code.
    """
    parser = setup_parser()
    args = parser.parse_args(argv)

    if not args.descriptor_sets:
        # stdout carries the plugin response, log output goes to stderr.
        logging.basicConfig(level=logging.WARNING)
        run_plugin(sys.stdin.buffer, sys.stdout.buffer)
        return 0

    logging.basicConfig(level=logging.INFO)

    root_directory = os.getcwd()
    logging.info("Working from root directory: %s", root_directory)

    run(args, root_directory)

    return 0
