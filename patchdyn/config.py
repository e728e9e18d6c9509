"""Configuration system for patchdyn.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

One `simulation` section selects the model and the landscape; each model
reads its own section (`niche`, `competition`, `markov`) and ignores the
others.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from patchdyn.competition import validate_competition_params
from patchdyn.errors import SuccessionValidationError
from patchdyn.markov import validate_initial_proportions, validate_transition_matrix
from patchdyn.niche import NicheParams, validate_niche_params
from patchdyn.types import validate_landscape

VALID_MODELS = {"niche", "competition", "markov"}


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Model choice, landscape and run control."""
    model: str = "niche"         # 'niche', 'competition' or 'markov'
    seed: int = 42
    tmax: int = 50               # Recorded steps, including the initial one
    rows: int = 100
    cols: int = 100
    record_history: bool = True  # Keep full grids (niche, markov)


@dataclass
class NicheSection:
    """Successional niche model (Pacala & Rees 1998)."""
    c1: float = 0.2     # Late-successional colonization rate
    c2: float = 0.8     # Early-successional colonization rate
    ec: float = 0.5     # Competitive exclusion rate
    dst: float = 0.04   # Disturbance rate
    er: float = 0.08    # Initial early fraction
    sc: float = 0.02    # Initial susceptible fraction
    mx: float = 0.0     # Initial mixed fraction
    rs: float = 0.0     # Initial resistant fraction

    def to_params(self) -> NicheParams:
        return NicheParams(**dataclasses.asdict(self))


@dataclass
class CompetitionSection:
    """Competition–colonization trade-off (Tilman 1994)."""
    n_species: int = 10
    fi: Union[float, List[float]] = 1.0  # Scalar or one fraction per species
    fsp1: float = 0.2                     # Best competitor abundance
    pe: float = 0.01                      # Mortality rate
    fr: float = 0.0                       # Disturbance frequency
    intensity: float = 0.0                # Disturbance intensity


@dataclass
class MarkovSection:
    """Markov succession matrix; transition[j][i] = P(stage i → stage j)."""
    transition: List[List[float]] = field(
        default_factory=lambda: [[0.5, 0.5], [0.5, 0.5]]
    )
    init_prop: List[float] = field(default_factory=lambda: [0.5, 0.5])


@dataclass
class SimulationConfig:
    """Complete run configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    niche: NicheSection = field(default_factory=NicheSection)
    competition: CompetitionSection = field(default_factory=CompetitionSection)
    markov: MarkovSection = field(default_factory=MarkovSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values (including lists such as matrices) are replaced
    - Keys in override but not base are added
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'niche': NicheSection,
    'competition': CompetitionSection,
    'markov': MarkovSection,
}


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


def validate_config(config: SimulationConfig) -> None:
    """Validate the selected model's parameters.

    Raises the same errors the engines raise (SuccessionValidationError and
    its subclasses), so a bad config fails at load time rather than at run
    time. Sections of unselected models are not checked.
    """
    sim = config.simulation
    if sim.model not in VALID_MODELS:
        raise SuccessionValidationError(
            f"simulation.model must be one of {sorted(VALID_MODELS)}, "
            f"got '{sim.model}'"
        )
    if sim.seed < 0:
        raise SuccessionValidationError("simulation.seed must be non-negative")
    validate_landscape(sim.tmax, sim.rows, sim.cols)

    if sim.model == "niche":
        validate_niche_params(config.niche.to_params())
    elif sim.model == "competition":
        c = config.competition
        validate_competition_params(c.n_species, c.fi, c.fsp1, c.pe, c.fr, c.intensity)
    else:
        mat = validate_transition_matrix(config.markov.transition)
        validate_initial_proportions(config.markov.init_prop, mat.shape[0])


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        SuccessionValidationError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
