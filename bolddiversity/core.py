"""
Core Pipeline Orchestration for BOLDDiversity

This module runs the complete latitudinal diversity analysis on one record set
and collects every output in an AnalysisContext.

Pipeline phases:
1. Record cleaning (drop records without BIN or country, fill "Unknown")
2. Zone classification of records and countries
3. Community matrix construction (country, zone, overall)
4. Diversity tables (richness, rarefied richness, Shannon, Simpson)
5. Rarefaction and species accumulation curves
6. NMDS ordination of countries and zones
7. Shared-BIN zone network

Each call to :func:`run_pipeline` builds a fresh context. Nothing is kept at
module level between runs, and no stage modifies the outputs of an earlier
stage: records are frozen dataclasses and community matrices are read-only.

Example Usage:
    >>> from bolddiversity.core import run_pipeline
    >>> from bolddiversity.records import read_bold_tsv
    >>> context = run_pipeline(read_bold_tsv("Lepidoptera_BOLD.tsv"))
    >>> context.zone_diversity[['site_id', 'richness', 'shannon']]
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging
import time

import pandas as pd

from . import community, config, diversity, network, ordination, rarefaction, records, zones, utils
from .community import CommunityMatrix
from .config import PipelineConfig
from .network import NetworkGraph
from .ordination import OrdinationResult
from .rarefaction import AccumulationCurve
from .records import CleaningReport, SpecimenRecord

logger = logging.getLogger(__name__)


@dataclass
class AnalysisContext:
    """
    Inputs and outputs of one pipeline run.

    Attributes
    ----------
    config : PipelineConfig
        Configuration the run used
    records : List[SpecimenRecord]
        Cleaned records with zones assigned
    cleaning_report : CleaningReport
        Exclusion counts of the cleaning pass
    country_zones : Dict[str, str]
        Country -> zone from mean latitude
    matrices : Dict[str, CommunityMatrix]
        'country', 'zone' and 'overall' matrices
    summary : pd.DataFrame
        Summary counts table (metric, value)
    country_diversity, zone_diversity : pd.DataFrame
        Diversity tables of the published sites
    rarefaction_curves : pd.DataFrame
        Long table (grouping, site_id, sample_size, expected_richness)
    accumulation : Dict[str, AccumulationCurve]
        Random-order accumulation curves per grouping
    exact_accumulation : Dict[str, AccumulationCurve]
        Closed-form expected accumulation per grouping
    ordinations : Dict[str, OrdinationResult]
        NMDS results per grouping
    network : NetworkGraph
        Shared-BIN zone network
    spatial_density : pd.DataFrame
        Presentation copy of specimen counts per rounded coordinate cell
    """
    config: PipelineConfig
    records: List[SpecimenRecord] = field(default_factory=list)
    cleaning_report: Optional[CleaningReport] = None
    country_zones: Dict[str, str] = field(default_factory=dict)
    matrices: Dict[str, CommunityMatrix] = field(default_factory=dict)
    summary: Optional[pd.DataFrame] = None
    country_diversity: Optional[pd.DataFrame] = None
    zone_diversity: Optional[pd.DataFrame] = None
    rarefaction_curves: Optional[pd.DataFrame] = None
    accumulation: Dict[str, AccumulationCurve] = field(default_factory=dict)
    exact_accumulation: Dict[str, AccumulationCurve] = field(default_factory=dict)
    ordinations: Dict[str, OrdinationResult] = field(default_factory=dict)
    network: Optional[NetworkGraph] = None
    spatial_density: Optional[pd.DataFrame] = None

    def accumulation_table(self) -> pd.DataFrame:
        """All accumulation curves as one long table with a ``method`` column."""
        frames = []
        for curves in (self.accumulation, self.exact_accumulation):
            for curve in curves.values():
                frame = curve.to_frame()
                frame.insert(1, 'method', curve.method)
                frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=['grouping', 'method', 'sites', 'mean_richness', 'sd_richness'])
        return pd.concat(frames, ignore_index=True)

    def country_table(self) -> pd.DataFrame:
        """Countries with their mean-latitude zone and specimen counts."""
        totals = self.matrices['country'].site_totals()
        return pd.DataFrame({
            'country': totals.index,
            'zone': [self.country_zones.get(c) for c in totals.index],
            'specimen_count': totals.values,
        })


def run_pipeline(
    raw_records: Union[pd.DataFrame, Iterable[Mapping[str, Any]]],
    cfg: Optional[PipelineConfig] = None,
) -> AnalysisContext:
    """
    Run the complete BOLDDiversity analysis on one record set.

    Parameters
    ----------
    raw_records : DataFrame or iterable of mappings
        Specimen records with the input-contract fields (see
        :data:`bolddiversity.records.RECORD_FIELDS`)
    cfg : Optional[PipelineConfig]
        Configuration (default: ``get_default_config()``). Invalid settings
        have already been rejected when the config object was constructed.

    Returns
    -------
    AnalysisContext
        Fresh context holding every table, curve, ordination and network
        of the run

    Notes
    -----
    Stage-local problems do not abort the run: excluded records are
    counted, undefined statistics are marked on their rows, and NMDS
    non-convergence is flagged on the ordination result.
    """
    cfg = cfg or config.get_default_config()
    context = AnalysisContext(config=cfg)
    start = time.time()

    if isinstance(raw_records, pd.DataFrame):
        raw = raw_records
        n_total = len(raw_records)
    else:
        raw = list(raw_records)
        n_total = len(raw)

    logger.info("=" * 80)
    logger.info("BOLDDiversity Pipeline")
    logger.info("=" * 80)
    logger.info(f"Input records: {n_total}")
    logger.info(f"Zone boundaries: {cfg.zones.boundaries}")
    logger.info(f"Minimum specimens per published site: > {cfg.diversity.min_specimens}")
    logger.info(f"Accumulation permutations: {cfg.rarefaction.permutations} (seed {cfg.rarefaction.seed})")
    logger.info("")

    for warning in config.validate_config(cfg):
        logger.warning(f"Config: {warning}")

    try:
        # =====================================================================
        # Phase 1: Record Cleaning
        # =====================================================================

        logger.info("PHASE 1: Record Cleaning")
        logger.info("-" * 80)

        cleaned, context.cleaning_report = records.clean_records(raw, cfg.cleaning)

        # =====================================================================
        # Phase 2: Zone Classification
        # =====================================================================

        logger.info("")
        logger.info("PHASE 2: Zone Classification")
        logger.info("-" * 80)

        context.records = zones.assign_record_zones(cleaned, cfg.zones)
        context.country_zones = zones.assign_country_zones(context.records, cfg.zones)
        context.summary = records.summarize_records(n_total, context.records, cfg.cleaning.unknown_label)
        logger.info(f"  ✓ {len(context.country_zones)} countries assigned to zones")

        # =====================================================================
        # Phase 3: Community Matrices
        # =====================================================================

        logger.info("")
        logger.info("PHASE 3: Community Matrices")
        logger.info("-" * 80)

        context.matrices = community.build_matrices(context.records, cfg.zones)
        context.spatial_density = community.spatial_density(context.records)

        # =====================================================================
        # Phase 4: Diversity Tables
        # =====================================================================

        logger.info("")
        logger.info("PHASE 4: Diversity Indices")
        logger.info("-" * 80)

        context.country_diversity = diversity.diversity_table(
            context.matrices['country'], cfg.diversity, context.country_zones
        )
        context.zone_diversity = diversity.diversity_table(
            context.matrices['zone'], cfg.diversity
        )
        logger.info(
            f"  ✓ {len(context.country_diversity)} countries and "
            f"{len(context.zone_diversity)} zones published"
        )

        # =====================================================================
        # Phase 5: Rarefaction and Accumulation
        # =====================================================================

        logger.info("")
        logger.info("PHASE 5: Rarefaction and Species Accumulation")
        logger.info("-" * 80)

        curve_frames = []
        for grouping in ('country', 'zone'):
            matrix = context.matrices[grouping]
            frame = rarefaction.curves_to_frame(rarefaction.rarefaction_curves(matrix, cfg.rarefaction))
            frame.insert(0, 'grouping', grouping)
            curve_frames.append(frame)

            context.accumulation[grouping] = rarefaction.species_accumulation(
                matrix,
                permutations=cfg.rarefaction.permutations,
                seed=cfg.rarefaction.seed,
                n_threads=cfg.n_threads,
            )
            context.exact_accumulation[grouping] = rarefaction.exact_accumulation(matrix)

        context.rarefaction_curves = pd.concat(curve_frames, ignore_index=True)
        logger.info(f"  ✓ {len(context.rarefaction_curves)} rarefaction curve points")

        # =====================================================================
        # Phase 6: Ordination
        # =====================================================================

        logger.info("")
        logger.info("PHASE 6: NMDS Ordination")
        logger.info("-" * 80)

        for grouping in ('country', 'zone'):
            context.ordinations[grouping] = ordination.ordinate(
                context.matrices[grouping], cfg.ordination
            )

        # =====================================================================
        # Phase 7: Shared-BIN Network
        # =====================================================================

        logger.info("")
        logger.info("PHASE 7: Shared-BIN Zone Network")
        logger.info("-" * 80)

        context.network = network.network_from_matrix(context.matrices['zone'])

    except Exception as e:
        logger.error(f"Pipeline failed with error: {e}", exc_info=True)
        raise

    logger.info("")
    logger.info("=" * 80)
    logger.info(f"✓ Pipeline completed in {utils.format_elapsed_time(time.time() - start)}")
    logger.info(f"  Records: {len(context.records)} retained / {n_total} total")
    logger.info(f"  BINs: {len(context.matrices['overall'].units)}")
    logger.info("=" * 80)

    return context
