"""
BOLDDiversity: Latitudinal Biodiversity Analysis of BOLD Barcode Records

BOLDDiversity is a Python package for comparing biodiversity across latitude
zones and countries from BOLD (Barcode of Life Data System) specimen records.
BINs (Barcode Index Numbers) serve as the taxonomic unit throughout.

Core functionality includes:
- Record cleaning with an auditable report of excluded records
- Latitude zone classification of records and countries
- Community matrices (site x BIN abundance) by country, zone and overall
- Richness, Hurlbert rarefied richness, Shannon and Simpson indices
- Rarefaction and species accumulation curves
- NMDS ordination on Bray-Curtis dissimilarities
- Shared-BIN network between latitude zones
"""

__version__ = "0.1.0"
__author__ = "SymbioSeas"

# Import main modules for easy access
from . import config
from . import utils
from . import records
from . import zones
from . import community
from . import diversity
from . import rarefaction
from . import ordination
from . import network
from . import core
from . import reports

from .core import AnalysisContext, run_pipeline

__all__ = [
    "config",
    "utils",
    "records",
    "zones",
    "community",
    "diversity",
    "rarefaction",
    "ordination",
    "network",
    "core",
    "reports",
    "AnalysisContext",
    "run_pipeline",
]
