"""
Configuration Management for BOLDDiversity

This module provides the configuration system for the diversity pipeline using
frozen dataclasses. The configuration system supports:

1. Default parameter values matching the published latitudinal analysis
2. Loading configuration from YAML/JSON files
3. Environment variable overrides
4. Validation at construction time (invalid settings never reach the pipeline)
5. Hierarchical configuration with component-specific settings

Configuration Structure:
- CleaningConfig: Record filtering policy
- ZoneConfig: Absolute-latitude zone boundaries and names
- DiversityConfig: Minimum-sample policy and rarefaction depth
- RarefactionConfig: Rarefaction curve grid and accumulation permutations
- OrdinationConfig: NMDS iteration budget, restarts and stress tolerance
- NetworkConfig: Shared-unit network representation
- PipelineConfig: Master configuration combining all components

Example Usage:
    >>> from bolddiversity.config import get_default_config, load_config_from_file
    >>>
    >>> config = get_default_config()
    >>> print(config.diversity.min_specimens)
    500
    >>>
    >>> custom_config = config.update(
    ...     diversity__min_specimens=100,
    ...     rarefaction__permutations=500,
    ... )
"""

from dataclasses import dataclass, field, fields, asdict, replace
from pathlib import Path
from typing import Optional, List, Dict, Any, Tuple, Union
import os
import json
import logging

import yaml

logger = logging.getLogger(__name__)


def _require_int(obj: Any, name: str) -> None:
    """Normalize an integral field in place, rejecting non-integers."""
    value = getattr(obj, name)
    # YAML and the env parser can hand back 100.0 for 100
    if isinstance(value, float) and value.is_integer():
        value = int(value)
        object.__setattr__(obj, name, value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _require_number(obj: Any, name: str) -> None:
    value = getattr(obj, name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")


def _require_bool(obj: Any, name: str) -> None:
    value = getattr(obj, name)
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be true or false, got {value!r}")


# ============================================================================
# Record Cleaning Configuration
# ============================================================================

@dataclass(frozen=True)
class CleaningConfig:
    """
    Configuration for specimen record cleaning.

    Attributes
    ----------
    unknown_label : str
        Sentinel written into missing family/genus/species/region fields
        (default: "Unknown").

    drop_duplicate_ids : bool
        Keep only the first record for each specimen id (default: True).

    Notes
    -----
    Records without a BIN (taxonomic unit) or a country are always dropped;
    that filter is not configurable because every downstream grouping needs
    both fields.
    """
    unknown_label: str = "Unknown"
    drop_duplicate_ids: bool = True

    def __post_init__(self):
        """Validate configuration parameters."""
        if not isinstance(self.unknown_label, str) or not self.unknown_label.strip():
            raise ValueError("unknown_label must be a non-empty string")
        _require_bool(self, 'drop_duplicate_ids')


# ============================================================================
# Zone Configuration
# ============================================================================

@dataclass(frozen=True)
class ZoneConfig:
    """
    Configuration for absolute-latitude zone classification.

    Attributes
    ----------
    boundaries : Tuple[float, ...]
        Upper bounds (inclusive) of each zone band in degrees of absolute
        latitude (default: (20, 40, 60)).

    names : Tuple[str, ...]
        Zone names from the equator polewards; one more name than boundaries
        (default: Tropical, Sub-tropical, Temperate, Extreme).

    Notes
    -----
    A latitude exactly on a boundary belongs to the lower band, so 20.0 is
    Tropical and 60.0 is Temperate.
    """
    boundaries: Tuple[float, ...] = (20.0, 40.0, 60.0)
    names: Tuple[str, ...] = ("Tropical", "Sub-tropical", "Temperate", "Extreme")

    def __post_init__(self):
        """Validate configuration parameters."""
        # YAML/JSON round-trips hand back lists
        if isinstance(self.boundaries, (str, bytes)) or isinstance(self.names, (str, bytes)):
            raise ValueError("boundaries and names must be lists")
        try:
            object.__setattr__(self, 'boundaries', tuple(float(b) for b in self.boundaries))
            object.__setattr__(self, 'names', tuple(str(n) for n in self.names))
        except TypeError:
            raise ValueError(
                f"boundaries must be a list of numbers, got {self.boundaries!r}"
            ) from None

        if not self.boundaries:
            raise ValueError("boundaries must contain at least one threshold")
        if len(self.names) != len(self.boundaries) + 1:
            raise ValueError(
                f"names must have exactly one more entry than boundaries "
                f"(got {len(self.names)} names for {len(self.boundaries)} boundaries)"
            )
        if len(set(self.names)) != len(self.names):
            raise ValueError("zone names must be unique")
        if any(b <= 0 or b > 90 for b in self.boundaries):
            raise ValueError("zone boundaries must lie in (0, 90]")
        if any(lo >= hi for lo, hi in zip(self.boundaries, self.boundaries[1:])):
            raise ValueError(
                f"zone boundaries must be strictly increasing, got {self.boundaries}"
            )


# ============================================================================
# Diversity Configuration
# ============================================================================

@dataclass(frozen=True)
class DiversityConfig:
    """
    Configuration for per-site diversity statistics.

    Attributes
    ----------
    min_specimens : int
        Sites are published in diversity tables only when their specimen
        count is strictly greater than this value (default: 500). Small
        samples give unstable Shannon/Simpson estimates.

    rarefaction_depth : Optional[int]
        Reference sample size m for rarefied richness. If None, the smallest
        specimen count among the published sites is used (default: None).
    """
    min_specimens: int = 500
    rarefaction_depth: Optional[int] = None

    def __post_init__(self):
        """Validate configuration parameters."""
        _require_int(self, 'min_specimens')
        if self.rarefaction_depth is not None:
            _require_int(self, 'rarefaction_depth')

        if self.min_specimens < 0:
            raise ValueError("min_specimens must be non-negative")
        if self.rarefaction_depth is not None and self.rarefaction_depth < 1:
            raise ValueError("rarefaction_depth must be a positive sample size")


# ============================================================================
# Rarefaction Configuration
# ============================================================================

@dataclass(frozen=True)
class RarefactionConfig:
    """
    Configuration for rarefaction and species-accumulation curves.

    Attributes
    ----------
    curve_points : int
        Number of sample sizes evaluated per rarefaction curve (default: 50).
        The full sample size N is always included.

    grid : str
        Spacing of curve sample sizes: "linear" or "geometric" (default: "linear").

    permutations : int
        Number of random site orderings for accumulation curves (default: 200).

    seed : int
        Root seed for the accumulation permutations (default: 42).
    """
    curve_points: int = 50
    grid: str = "linear"
    permutations: int = 200
    seed: int = 42

    def __post_init__(self):
        """Validate configuration parameters."""
        for name in ('curve_points', 'permutations', 'seed'):
            _require_int(self, name)

        if self.curve_points < 2:
            raise ValueError("curve_points must be at least 2")
        if self.grid not in ["linear", "geometric"]:
            raise ValueError(f"Invalid grid: {self.grid}")
        if self.permutations < 1:
            raise ValueError("permutations must be at least 1")
        if self.seed < 0:
            raise ValueError("seed must be non-negative")


# ============================================================================
# Ordination Configuration
# ============================================================================

@dataclass(frozen=True)
class OrdinationConfig:
    """
    Configuration for non-metric multidimensional scaling.

    Attributes
    ----------
    n_components : int
        Ordination dimensions (default: 2).

    n_init : int
        Random restarts; the lowest-stress configuration is kept (default: 20).

    max_iter : int
        Maximum SMACOF iterations per restart (default: 300).

    eps : float
        Convergence threshold on the stress improvement between iterations
        (default: 1e-6).

    stress_tolerance : float
        Final stress above this value is reported as non-convergence
        (default: 0.2, the conventional limit for an interpretable NMDS).

    seed : int
        Seed for the random starting configurations (default: 42).
    """
    n_components: int = 2
    n_init: int = 20
    max_iter: int = 300
    eps: float = 1e-6
    stress_tolerance: float = 0.2
    seed: int = 42

    def __post_init__(self):
        """Validate configuration parameters."""
        for name in ('n_components', 'n_init', 'max_iter', 'seed'):
            _require_int(self, name)
        _require_number(self, 'eps')
        _require_number(self, 'stress_tolerance')

        if self.n_components < 1:
            raise ValueError("n_components must be at least 1")
        if self.n_init < 1:
            raise ValueError("n_init must be at least 1")
        if self.max_iter < 1:
            raise ValueError("max_iter must be at least 1")
        if self.eps <= 0:
            raise ValueError("eps must be positive")
        if not 0 < self.stress_tolerance <= 1:
            raise ValueError("stress_tolerance must be between 0 and 1")
        if self.seed < 0:
            raise ValueError("seed must be non-negative")


# ============================================================================
# Network Configuration
# ============================================================================

@dataclass(frozen=True)
class NetworkConfig:
    """
    Configuration for the shared-unit zone network.

    Attributes
    ----------
    dense : bool
        Report every zone pair, including zero-weight edges (default: False).
        The sparse form omits pairs sharing no units, so the two forms give
        different edge counts downstream.
    """
    dense: bool = False

    def __post_init__(self):
        """Validate configuration parameters."""
        _require_bool(self, 'dense')


# ============================================================================
# Master Pipeline Configuration
# ============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """
    Master configuration for the complete BOLDDiversity pipeline.

    Attributes
    ----------
    cleaning : CleaningConfig
    zones : ZoneConfig
    diversity : DiversityConfig
    rarefaction : RarefactionConfig
    ordination : OrdinationConfig
    network : NetworkConfig

    log_level : str
        Logging level (default: "INFO")

    n_threads : int
        Worker processes for accumulation permutations (default: 1)

    output_dir : Path
        Base output directory for the table hand-off (default: "results")
    """
    cleaning: CleaningConfig = field(default_factory=CleaningConfig)
    zones: ZoneConfig = field(default_factory=ZoneConfig)
    diversity: DiversityConfig = field(default_factory=DiversityConfig)
    rarefaction: RarefactionConfig = field(default_factory=RarefactionConfig)
    ordination: OrdinationConfig = field(default_factory=OrdinationConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    log_level: str = "INFO"
    n_threads: int = 1
    output_dir: Path = field(default_factory=lambda: Path("results"))

    def __post_init__(self):
        """Validate and normalize configuration."""
        if isinstance(self.output_dir, str):
            object.__setattr__(self, 'output_dir', Path(self.output_dir))

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if not isinstance(self.log_level, str) or self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")

        _require_int(self, 'n_threads')
        if self.n_threads < 1:
            raise ValueError("n_threads must be at least 1")

    def update(self, **kwargs) -> 'PipelineConfig':
        """
        Create a new configuration with updated values.

        Supports nested updates using double underscore notation:
        config.update(diversity__min_specimens=100)

        Parameters
        ----------
        **kwargs
            Configuration parameters to update.

        Returns
        -------
        PipelineConfig
            New configuration object with updates (validated again)

        Raises
        ------
        ValueError
            If a key names no configuration field, or a value is invalid
        """
        top_level = {}
        nested = {}

        for key, value in kwargs.items():
            if '__' in key:
                component, param = key.split('__', 1)
                if component not in _COMPONENTS:
                    raise ValueError(f"Unknown configuration key: {key}")
                nested.setdefault(component, {})[param] = value
            else:
                top_level[key] = value

        _check_keys(PipelineConfig, top_level)
        for component, updates in nested.items():
            _check_keys(_COMPONENTS[component], updates, prefix=f"{component}__")
            top_level[component] = replace(getattr(self, component), **updates)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary."""
        return asdict(self)

    def to_yaml(self, output_path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        config_dict = _convert_paths_to_strings(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {path}")

    def to_json(self, output_path: Union[str, Path]) -> None:
        """Save configuration to a JSON file."""
        config_dict = _convert_paths_to_strings(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(config_dict, f, indent=2)

        logger.info(f"Configuration saved to {path}")


# ============================================================================
# Helper Functions
# ============================================================================

_COMPONENTS = {
    'cleaning': CleaningConfig,
    'zones': ZoneConfig,
    'diversity': DiversityConfig,
    'rarefaction': RarefactionConfig,
    'ordination': OrdinationConfig,
    'network': NetworkConfig,
}


def get_default_config() -> PipelineConfig:
    """
    Get default pipeline configuration.

    Examples
    --------
    >>> config = get_default_config()
    >>> config.zones.boundaries
    (20.0, 40.0, 60.0)
    """
    return PipelineConfig()


def load_config_from_file(config_path: Union[str, Path]) -> PipelineConfig:
    """
    Load configuration from YAML or JSON file.

    Parameters
    ----------
    config_path : Union[str, Path]
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    PipelineConfig
        Loaded configuration

    Raises
    ------
    FileNotFoundError
        If configuration file doesn't exist
    ValueError
        If file format is not supported or a value is invalid
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()

    with open(path, 'r') as f:
        if suffix in ['.yaml', '.yml']:
            config_dict = yaml.safe_load(f) or {}
        elif suffix == '.json':
            config_dict = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

    logger.info(f"Loaded configuration from {path}")
    return _dict_to_config(config_dict)


def _dict_to_config(config_dict: Dict[str, Any]) -> PipelineConfig:
    """Convert a (possibly partial) dictionary to a PipelineConfig."""
    if not isinstance(config_dict, dict):
        raise ValueError("Configuration file must contain a mapping of settings")

    config_dict = dict(config_dict)
    _check_keys(PipelineConfig, config_dict)
    nested_configs = {}

    for name, cls in _COMPONENTS.items():
        if name in config_dict:
            section = config_dict.pop(name) or {}
            if not isinstance(section, dict):
                raise ValueError(f"Configuration section '{name}' must be a mapping")
            _check_keys(cls, section, prefix=f"{name}.")
            nested_configs[name] = cls(**section)

    if config_dict.get('output_dir') is not None:
        config_dict['output_dir'] = Path(config_dict['output_dir'])

    return PipelineConfig(**nested_configs, **config_dict)


def _check_keys(cls: type, keys: Any, prefix: str = "") -> None:
    """Raise ValueError for the first key that is not a field of ``cls``."""
    known = {f.name for f in fields(cls)}
    for key in keys:
        if key not in known:
            raise ValueError(f"Unknown configuration key: {prefix}{key}")


def _convert_paths_to_strings(obj: Any) -> Any:
    """Recursively convert Path objects (and tuples) for serialization."""
    if isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, dict):
        return {k: _convert_paths_to_strings(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_convert_paths_to_strings(item) for item in obj]
    else:
        return obj


def load_config_from_env() -> Dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Environment variables are prefixed with BOLDDIVERSITY_ and use double
    underscores for nesting:

    BOLDDIVERSITY_DIVERSITY__MIN_SPECIMENS=100
    BOLDDIVERSITY_N_THREADS=4

    Returns
    -------
    Dict[str, Any]
        Overrides suitable for ``PipelineConfig.update(**overrides)``
    """
    prefix = "BOLDDIVERSITY_"
    overrides = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            overrides[config_key] = _parse_env_value(value)

    if overrides:
        logger.debug(f"Loaded {len(overrides)} configuration overrides from environment")

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    if value.lower() in ['true', 'yes']:
        return True
    if value.lower() in ['false', 'no']:
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def validate_config(config: PipelineConfig) -> List[str]:
    """
    Check a configuration for unusual (but legal) settings.

    Parameters
    ----------
    config : PipelineConfig
        Configuration to validate

    Returns
    -------
    List[str]
        List of warning messages (empty if no issues)
    """
    warnings = []

    if config.rarefaction.permutations < 50:
        warnings.append(
            f"Only {config.rarefaction.permutations} accumulation permutations; "
            "mean/sd estimates will be noisy."
        )

    if config.diversity.min_specimens < 50:
        warnings.append(
            f"min_specimens ({config.diversity.min_specimens}) is low; "
            "Shannon/Simpson estimates for small sites are unstable."
        )

    if config.ordination.n_init < 5:
        warnings.append(
            f"Only {config.ordination.n_init} NMDS restarts; "
            "the ordination may settle in a local minimum."
        )

    cpu_count = os.cpu_count() or 1
    if config.n_threads > cpu_count:
        warnings.append(
            f"Thread count ({config.n_threads}) exceeds available CPUs ({cpu_count})"
        )

    return warnings


def create_config_template(output_path: Union[str, Path], format: str = "yaml") -> None:
    """
    Write the default configuration to a file as an editable template.

    Parameters
    ----------
    output_path : Union[str, Path]
        Output file path
    format : str
        File format: "yaml" or "json" (default: "yaml")
    """
    config = get_default_config()

    if format.lower() == "yaml":
        config.to_yaml(output_path)
    elif format.lower() == "json":
        config.to_json(output_path)
    else:
        raise ValueError(f"Unsupported format: {format}")

    logger.info(f"Created configuration template: {output_path}")
