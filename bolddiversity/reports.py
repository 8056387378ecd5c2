"""
Result Tables and Hand-off Files

Writes the outputs of a pipeline run to an output directory so that plotting
and report tools can pick them up without re-running the analysis.

Files written (TSV unless noted):
- summary.tsv                  metric / value counts
- cleaning_report.json         exclusion counts of the cleaning pass
- countries.tsv                country, mean-latitude zone, specimen count
- diversity_country.tsv        published country sites
- diversity_zone.tsv           published zones
- rarefaction_curves.tsv       grouping, site_id, sample_size, expected_richness
- accumulation_curves.tsv      grouping, method, sites, mean/sd richness
- ordination_<grouping>.tsv    site_id, NMDS1, NMDS2
- ordination_<grouping>.json   stress, convergence flag and status
- network_vertices.tsv         zone, unique_unit_count
- network_edges.tsv            zone_a, zone_b, shared_unit_count
- network.json                 vertices and edges for graph drawing
- spatial_density.tsv          specimens and BINs per rounded coordinate
- records.tsv                  cleaned records with zones
- config.yaml                  configuration of the run

Undefined statistics stay empty in the TSVs (never written as 0).
"""

import logging
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union
import math

import pandas as pd

from . import utils
from .records import records_to_frame

logger = logging.getLogger(__name__)


def _write_table(df: pd.DataFrame, path: Path) -> Path:
    df.to_csv(path, sep='\t', index=False, na_rep='')
    logger.info(f"  ✓ {path.name} ({len(df)} rows)")
    return path


def _write_json(payload: Dict[str, Any], path: Path) -> Path:
    with open(path, 'w') as f:
        json.dump(payload, f, indent=2)
    logger.info(f"  ✓ {path.name}")
    return path


def _finite_or_none(value: float) -> Optional[float]:
    """JSON has no NaN; undefined numbers become null."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    return float(value)


def ordination_summary(result) -> Dict[str, Any]:
    """Stress and convergence details of an OrdinationResult as a dict."""
    return {
        'grouping': result.grouping,
        'n_sites': int(len(result.coordinates)),
        'stress': _finite_or_none(result.stress),
        'converged': bool(result.converged),
        'n_iter': int(result.n_iter),
        'n_init': int(result.n_init),
        'status': result.status,
    }


def network_summary(graph, dense: bool = False) -> Dict[str, Any]:
    """Vertices and edges of a NetworkGraph as a JSON-ready dict."""
    return {
        'dense': dense,
        'vertices': [
            {'zone': zone, 'unique_unit_count': int(size)}
            for zone, size in graph.vertices.items()
        ],
        'edges': [
            {'zone_a': a, 'zone_b': b, 'shared_unit_count': int(weight)}
            for a, b, weight in graph.edge_list(dense)
        ],
    }


def write_results(context, output_dir: Optional[Union[str, Path]] = None) -> Dict[str, Path]:
    """
    Write every table of an AnalysisContext to ``output_dir``.

    Parameters
    ----------
    context : AnalysisContext
        Completed pipeline run
    output_dir : Optional[Union[str, Path]]
        Destination (default: ``context.config.output_dir``); created if missing

    Returns
    -------
    Dict[str, Path]
        Artifact name -> written path
    """
    cfg = context.config
    out = utils.create_output_directory(output_dir if output_dir is not None else cfg.output_dir)
    dense = cfg.network.dense

    logger.info("")
    logger.info(f"Writing results to {out}")
    logger.info("-" * 80)

    written: Dict[str, Path] = {}

    written['summary'] = _write_table(context.summary, out / 'summary.tsv')
    written['cleaning_report'] = _write_json(
        context.cleaning_report.to_dict(), out / 'cleaning_report.json'
    )
    written['records'] = _write_table(records_to_frame(context.records), out / 'records.tsv')
    written['countries'] = _write_table(context.country_table(), out / 'countries.tsv')

    written['diversity_country'] = _write_table(
        context.country_diversity, out / 'diversity_country.tsv'
    )
    written['diversity_zone'] = _write_table(context.zone_diversity, out / 'diversity_zone.tsv')

    written['rarefaction_curves'] = _write_table(
        context.rarefaction_curves, out / 'rarefaction_curves.tsv'
    )
    written['accumulation_curves'] = _write_table(
        context.accumulation_table(), out / 'accumulation_curves.tsv'
    )

    for grouping, result in context.ordinations.items():
        name = utils.sanitize_filename(grouping)
        written[f'ordination_{name}'] = _write_table(
            result.to_frame(), out / f'ordination_{name}.tsv'
        )
        written[f'ordination_{name}_stress'] = _write_json(
            ordination_summary(result), out / f'ordination_{name}.json'
        )

    written['network_vertices'] = _write_table(
        context.network.vertex_table(), out / 'network_vertices.tsv'
    )
    written['network_edges'] = _write_table(
        context.network.edge_table(dense), out / 'network_edges.tsv'
    )
    network_payload = network_summary(context.network, dense)
    network_payload['generated'] = utils.get_timestamp()
    written['network'] = _write_json(network_payload, out / 'network.json')

    written['spatial_density'] = _write_table(context.spatial_density, out / 'spatial_density.tsv')

    config_path = out / 'config.yaml'
    cfg.to_yaml(config_path)
    written['config'] = config_path

    logger.info(f"  ✓ {len(written)} files written")
    return written
