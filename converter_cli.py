#!/usr/bin/env python3

"""
Command-line interface for the annotation converter.

One subcommand per conversion direction, plus a generic ``convert`` that
sniffs formats and a ``validate`` that only checks the input. ``-`` stands
for standard input or output.
"""

import argparse
import contextlib
import gzip
import itertools
import json
import logging
import os
import sys
from typing import Iterable, List, Optional, Tuple

from annotation_converter.core.config import (
    ATTRIBUTE_DIALECTS, CONFLICT_POLICIES, EMPTY_TRANSCRIPT_POLICIES, MALFORMED_POLICIES,
    UNSUPPORTED_POLICIES, ConversionConfig, load_config
)
from annotation_converter.core.exceptions import ConversionError
from annotation_converter.core.parsers import (
    GFF3_FORMAT, GTF_FORMAT, REFFLAT_FORMAT, SUPPORTED_FORMATS, detect_format
)
from annotation_converter.core.pipeline import ConversionPipeline
from annotation_converter.core.report import ConversionReport

STDIO = '-'
SNIFF_LINES = 20

# subcommand -> (input format, output format)
DIRECTIONS = {
    'gff2refflat': (GFF3_FORMAT, REFFLAT_FORMAT),
    'gtf2refflat': (GTF_FORMAT, REFFLAT_FORMAT),
    'refflat2gff': (REFFLAT_FORMAT, GFF3_FORMAT),
    'refflat2gtf': (REFFLAT_FORMAT, GTF_FORMAT),
    'gff2gtf': (GFF3_FORMAT, GTF_FORMAT),
    'gtf2gff': (GTF_FORMAT, GFF3_FORMAT),
}


def setup_logging(log_level: str = "WARNING") -> None:
    """Set up logging configuration; log records go to standard error."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr
    )


def _add_common_options(parser: argparse.ArgumentParser, with_output: bool = True) -> None:
    parser.add_argument('-i', '--input', default=STDIO,
                        help='Input annotation file, "-" for standard input (default: -)')
    if with_output:
        parser.add_argument('-o', '--output', default=STDIO,
                            help='Output file, "-" for standard output (default: -)')
    parser.add_argument('--config', help='Configuration file (JSON or YAML)')
    parser.add_argument('--report', help='Write the conversion report as JSON to this path')
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default='WARNING', help='Logging level (default: WARNING)')

    policies = parser.add_argument_group('error policies')
    policies.add_argument('--on-malformed', choices=MALFORMED_POLICIES,
                          help='Malformed lines: skip, collect and continue, or abort')
    policies.add_argument('--on-conflict', choices=CONFLICT_POLICIES,
                          help='Structural conflicts: warn and write, or abort before writing')
    policies.add_argument('--on-unsupported', choices=UNSUPPORTED_POLICIES,
                          help='Records the output format cannot carry: warn or abort')
    policies.add_argument('--empty-transcripts', choices=EMPTY_TRANSCRIPT_POLICIES,
                          help='Transcripts without exons: error or warn')

    reading = parser.add_argument_group('reader options')
    reading.add_argument('--attribute-dialect', choices=ATTRIBUTE_DIALECTS,
                         help='Column 9 syntax (default: inferred per line)')
    reading.add_argument('--strict-parents', action='store_true',
                         help='Report children that appear before their parent')
    reading.add_argument('--gene-id-attribute', help='GTF gene ID key (default: gene_id)')
    reading.add_argument('--transcript-id-attribute',
                         help='GTF transcript ID key (default: transcript_id)')
    reading.add_argument('--seq-prefix', help='Prefix added to every sequence name')
    reading.add_argument('--seq-lstrip', help='Prefix removed from every sequence name')
    reading.add_argument('--memory-limit', type=int, help='Memory limit in MB (default: 4096)')


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Convert and validate gene annotations (GFF3, GTF, refFlat)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # GFF3 to refFlat
  python converter_cli.py gff2refflat -i genes.gff3 -o genes.refFlat

  # Sniff both formats, keep going past bad lines, save the report
  python converter_cli.py convert -i genes.gtf -o genes.gff3 --on-conflict warn --report report.json

  # Only check an annotation
  python converter_cli.py validate -i genes.gff3
        """
    )
    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    for command, (source, target) in DIRECTIONS.items():
        sub = subparsers.add_parser(command, help=f"Convert {source} to {target}")
        _add_common_options(sub)

    sub = subparsers.add_parser('convert', help='Convert between any two formats')
    _add_common_options(sub)
    sub.add_argument('--from', dest='input_format', choices=SUPPORTED_FORMATS,
                     help='Input format (default: sniffed from name and content)')
    sub.add_argument('--to', dest='output_format', choices=SUPPORTED_FORMATS,
                     help='Output format (default: from the output file extension)')

    sub = subparsers.add_parser('validate', help='Check an annotation without converting it')
    _add_common_options(sub, with_output=False)
    sub.add_argument('--from', dest='input_format', choices=SUPPORTED_FORMATS,
                     help='Input format (default: sniffed from name and content)')

    return parser


def build_config(args) -> ConversionConfig:
    """Load configuration, then apply command line overrides."""
    config = load_config(config_path=args.config, use_env=True)

    overrides = {
        'on_malformed_record': args.on_malformed,
        'on_structural_conflict': args.on_conflict,
        'on_unsupported_feature': args.on_unsupported,
        'empty_transcript_policy': args.empty_transcripts,
        'attribute_dialect': args.attribute_dialect,
        'gene_id_attribute': args.gene_id_attribute,
        'transcript_id_attribute': args.transcript_id_attribute,
        'seq_name_prefix': args.seq_prefix,
        'seq_name_lstrip': args.seq_lstrip,
        'memory_limit_mb': args.memory_limit,
    }
    for field_name, value in overrides.items():
        if value is not None:
            setattr(config, field_name, value)
    if args.strict_parents:
        config.allow_out_of_order_parents = False
    if args.log_level == 'DEBUG':
        config.debug_mode = True

    # Re-validate after CLI overrides.
    config.validate()
    return config


def open_input(path: str):
    if path == STDIO:
        return contextlib.nullcontext(sys.stdin)
    if path.endswith('.gz'):
        return gzip.open(path, 'rt', encoding='utf-8')
    return open(path, 'r', encoding='utf-8')


def resolve_formats(args, head: List[str]) -> Tuple[str, Optional[str]]:
    """Input and output format for this command, sniffing where not given."""
    if args.command in DIRECTIONS:
        return DIRECTIONS[args.command]

    input_path = None if args.input == STDIO else args.input
    input_format = args.input_format or detect_format(input_path, head)
    if input_format is None:
        raise ConversionError(f"Cannot determine the format of {args.input}; use --from")

    if args.command == 'validate':
        return input_format, None

    output_format = args.output_format
    if output_format is None and args.output != STDIO:
        output_format = detect_format(args.output)
    if output_format is None:
        raise ConversionError(f"Cannot determine the output format of {args.output}; use --to")
    return input_format, output_format


def run(args, config: ConversionConfig) -> ConversionReport:
    """Run the selected command and return its report."""
    with open_input(args.input) as stream:
        head = list(itertools.islice(stream, SNIFF_LINES))
        input_format, output_format = resolve_formats(args, head)
        lines: Iterable[str] = itertools.chain(head, stream)

        pipeline = ConversionPipeline(config)
        if output_format is None:
            return pipeline.validate(lines, input_format)
        if args.output == STDIO:
            return pipeline.convert(lines, input_format, sys.stdout, output_format)
        return convert_to_file(pipeline, lines, input_format, args.output, output_format)


def convert_to_file(pipeline: ConversionPipeline, lines: Iterable[str], input_format: str,
                    output_path: str, output_format: str) -> ConversionReport:
    """Convert into ``output_path``; the file is removed unless fully written."""
    written = False
    try:
        with open(output_path, 'w') as out:
            report = pipeline.convert(lines, input_format, out, output_format)
        written = report.written
    finally:
        if not written and os.path.exists(output_path):
            os.remove(output_path)
            logging.info(f"Removed incomplete output {output_path}")
    return report


def write_report(report: ConversionReport, path: str) -> None:
    with open(path, 'w') as f:
        json.dump(report.to_dict(), f, indent=2)
    logging.info(f"Report written to {path}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point; returns the process exit code."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        config = build_config(args)
        report = run(args, config)
    except ConversionError as e:
        logger.error(f"Conversion error: {e}")
        return 1
    except OSError as e:
        logger.error(f"File error: {e}")
        return 1
    except UnicodeDecodeError as e:
        logger.error(f"Input is not valid UTF-8 text: {e}")
        return 1

    print(report.summary(), file=sys.stderr)
    if args.report:
        try:
            write_report(report, args.report)
        except OSError as e:
            logger.error(f"Could not write report: {e}")
            return 1

    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
