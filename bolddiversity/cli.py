#!/usr/bin/env python3
"""
BOLDDiversity Command-Line Interface

Runs the latitudinal diversity pipeline on a BOLD TSV export and writes the
result tables to an output directory.
"""

import argparse
import sys
import logging
from pathlib import Path

from . import __version__, config, core, records, reports, utils

logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace) -> config.PipelineConfig:
    """
    Build the run configuration.

    Precedence (lowest to highest): defaults, --config file,
    BOLDDIVERSITY_* environment variables, command-line options.
    """
    if args.config:
        cfg = config.load_config_from_file(args.config)
    else:
        cfg = config.get_default_config()

    env_overrides = config.load_config_from_env()
    if env_overrides:
        cfg = cfg.update(**env_overrides)

    overrides = {}
    if args.min_specimens is not None:
        overrides['diversity__min_specimens'] = args.min_specimens
    if args.rarefaction_depth is not None:
        overrides['diversity__rarefaction_depth'] = args.rarefaction_depth
    if args.permutations is not None:
        overrides['rarefaction__permutations'] = args.permutations
    if args.seed is not None:
        overrides['rarefaction__seed'] = args.seed
        overrides['ordination__seed'] = args.seed
    if args.threads is not None:
        overrides['n_threads'] = args.threads
    if args.dense_network:
        overrides['network__dense'] = True
    if args.log_level is not None:
        overrides['log_level'] = args.log_level

    return cfg.update(**overrides) if overrides else cfg


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='BOLDDiversity: latitudinal biodiversity analysis of BOLD barcode records',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic usage (output directory inferred from filename)
  bolddiversity data/Lepidoptera_BOLD.tsv

  # Publish every country regardless of sample size
  bolddiversity data/Lepidoptera_BOLD.tsv --min-specimens 0

  # Fixed rarefaction depth and more accumulation permutations
  bolddiversity data/Lepidoptera_BOLD.tsv --rarefaction-depth 1000 --permutations 1000

  # Settings from a configuration file
  bolddiversity data/Lepidoptera_BOLD.tsv --config my_config.yaml

  # Write a configuration template and exit
  bolddiversity --write-config-template bolddiversity.yaml

Notes:
  - Zones are |latitude| bands: Tropical <= 20 < Sub-tropical <= 40 <
    Temperate <= 60 < Extreme. A value on a boundary falls in the lower band.
  - Countries are assigned the zone of their mean specimen latitude.
        """
    )

    parser.add_argument(
        'tsv',
        type=Path,
        nargs='?',
        help='Input BOLD TSV export'
    )

    parser.add_argument(
        '--output', '--output-dir',
        type=Path,
        default=None,
        help='Output directory (default: {dataset}_diversity in current directory)'
    )

    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='YAML or JSON configuration file'
    )

    parser.add_argument(
        '--min-specimens',
        type=int,
        default=None,
        help='Publish only sites with more than this many specimens (default: 500)'
    )

    parser.add_argument(
        '--rarefaction-depth',
        type=int,
        default=None,
        help='Subsample size for rarefied richness (default: smallest published site)'
    )

    parser.add_argument(
        '--permutations',
        type=int,
        default=None,
        help='Random site orderings for species accumulation (default: 200)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Random seed for accumulation and NMDS starts (default: 42)'
    )

    parser.add_argument(
        '--threads',
        type=int,
        default=None,
        help='Worker processes for accumulation permutations (default: 1)'
    )

    parser.add_argument(
        '--dense-network',
        action='store_true',
        help='Write zero-weight edges in the shared-BIN network'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Logging level (default: INFO)'
    )

    parser.add_argument(
        '--write-config-template',
        type=Path,
        default=None,
        metavar='PATH',
        help='Write a configuration template to PATH and exit'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'BOLDDiversity {__version__}'
    )

    args = parser.parse_args(argv)

    if args.write_config_template:
        fmt = 'json' if args.write_config_template.suffix == '.json' else 'yaml'
        config.create_config_template(args.write_config_template, format=fmt)
        print(f"Configuration template written to {args.write_config_template}")
        return 0

    if args.tsv is None:
        parser.error("the following arguments are required: tsv")

    # Validate input file
    if not args.tsv.exists():
        print(f"Error: Input TSV file not found: {args.tsv}", file=sys.stderr)
        return 1

    try:
        cfg = build_config(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    dataset = utils.extract_dataset_name(args.tsv)
    output_dir = (args.output or Path(f"{dataset}_diversity")).resolve()
    cfg = cfg.update(output_dir=output_dir)

    output_dir.mkdir(parents=True, exist_ok=True)
    log_file = output_dir / f"{dataset}_pipeline.log"
    utils.setup_logging(log_level=cfg.log_level, log_file=str(log_file))

    logger.info(f"Dataset: {dataset}")
    logger.info(f"Input: {args.tsv}")
    logger.info(f"Output: {output_dir}")

    try:
        raw = records.read_bold_tsv(args.tsv)
        context = core.run_pipeline(raw, cfg)
        reports.write_results(context, output_dir)
        return 0

    except KeyboardInterrupt:
        print("\n\nPipeline interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(f"Pipeline failed with error: {e}", exc_info=True)
        print(f"\nError: Pipeline failed. Check log file: {log_file}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
