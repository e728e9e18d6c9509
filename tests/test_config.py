"""Tests for patchdyn.config — configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from patchdyn.config import (
    CompetitionSection,
    MarkovSection,
    NicheSection,
    SimulationConfig,
    SimulationSection,
    deep_merge,
    default_config,
    load_config,
    validate_config,
)
from patchdyn.errors import (
    InvalidInitialDistributionError,
    InvalidProbabilityMassError,
    SuccessionValidationError,
)
from patchdyn.niche import NicheParams

REPO_CONFIG = Path(__file__).resolve().parent.parent / "configs" / "default.yaml"


def _write_yaml(path, content):
    with open(path, 'w') as f:
        yaml.dump(content, f)
    return path


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_simple_override(self):
        assert deep_merge({'a': 1, 'b': 2}, {'b': 3}) == {'a': 1, 'b': 3}

    def test_nested_merge(self):
        base = {'x': {'a': 1, 'b': 2}, 'y': 10}
        result = deep_merge(base, {'x': {'b': 3, 'c': 4}})
        assert result == {'x': {'a': 1, 'b': 3, 'c': 4}, 'y': 10}

    def test_matrix_replaced_not_merged(self):
        base = {'markov': {'transition': [[1.0, 0.0], [0.0, 1.0]]}}
        deep_merge(base, {'markov': {'transition': [[0.5, 0.5], [0.5, 0.5]]}})
        assert base['markov']['transition'] == [[0.5, 0.5], [0.5, 0.5]]

    def test_empty_override(self):
        assert deep_merge({'a': 1}, {}) == {'a': 1}


# ── default_config tests ─────────────────────────────────────────────

class TestDefaultConfig:
    def test_creates_valid_config(self):
        config = default_config()
        assert isinstance(config, SimulationConfig)

    def test_default_values(self):
        config = default_config()
        assert config.simulation.model == "niche"
        assert config.simulation.seed == 42
        assert config.niche.c1 == 0.2
        assert config.competition.n_species == 10
        assert config.markov.init_prop == [0.5, 0.5]

    def test_niche_section_to_params(self):
        params = NicheSection(c1=0.3, dst=0.1).to_params()
        assert isinstance(params, NicheParams)
        assert params.c1 == 0.3
        assert params.dst == 0.1


# ── YAML loading tests ───────────────────────────────────────────────

class TestLoadConfig:
    def test_load_from_yaml(self, tmp_path):
        path = _write_yaml(tmp_path / "run.yaml", {
            'simulation': {'model': 'competition', 'seed': 99, 'tmax': 20},
            'competition': {'n_species': 4, 'fi': [0.1, 0.1, 0.1, 0.1]},
        })
        config = load_config(path)
        assert config.simulation.model == 'competition'
        assert config.simulation.seed == 99
        assert config.competition.n_species == 4
        # Unspecified sections get defaults
        assert config.niche.c2 == 0.8
        assert config.simulation.rows == 100

    def test_scenario_override(self, tmp_path):
        base = _write_yaml(tmp_path / "base.yaml", {
            'simulation': {'model': 'niche'},
            'niche': {'c1': 0.2, 'dst': 0.04},
        })
        scenario = _write_yaml(tmp_path / "scenario.yaml", {'niche': {'dst': 0.2}})
        config = load_config(base, scenario_path=scenario)
        assert config.niche.dst == 0.2
        assert config.niche.c1 == 0.2

    def test_missing_scenario_ignored(self, tmp_path):
        base = _write_yaml(tmp_path / "base.yaml", {'simulation': {'seed': 3}})
        config = load_config(base, scenario_path=tmp_path / "nope.yaml")
        assert config.simulation.seed == 3

    def test_sweep_overrides(self, tmp_path):
        base = _write_yaml(tmp_path / "base.yaml", {'simulation': {'model': 'niche'}})
        config = load_config(base, sweep_overrides={'niche': {'ec': 0.9}})
        assert config.niche.ec == 0.9

    def test_unknown_keys_ignored(self, tmp_path):
        path = _write_yaml(tmp_path / "run.yaml", {
            'simulation': {'seed': 5, 'colour_map': 'viridis'},
            'plotting': {'dpi': 300},
        })
        config = load_config(path)
        assert config.simulation.seed == 5

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == default_config()

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_repo_default_config_loads(self):
        config = load_config(REPO_CONFIG)
        assert config.simulation.model == "niche"
        assert len(config.markov.transition) == 3


# ── Validation tests ─────────────────────────────────────────────────

class TestValidateConfig:
    def test_unknown_model(self):
        config = SimulationConfig(simulation=SimulationSection(model="lattice"))
        with pytest.raises(SuccessionValidationError, match="simulation.model"):
            validate_config(config)

    def test_negative_seed(self):
        config = SimulationConfig(simulation=SimulationSection(seed=-1))
        with pytest.raises(SuccessionValidationError, match="seed"):
            validate_config(config)

    def test_bad_markov_matrix_at_load(self, tmp_path):
        path = _write_yaml(tmp_path / "bad.yaml", {
            'simulation': {'model': 'markov'},
            'markov': {'transition': [[0.4, 0.5], [0.5, 0.5]], 'init_prop': [0.5, 0.5]},
        })
        with pytest.raises(InvalidProbabilityMassError):
            load_config(path)

    def test_bad_niche_fractions(self):
        config = SimulationConfig(niche=NicheSection(er=0.8, sc=0.8))
        with pytest.raises(InvalidInitialDistributionError):
            validate_config(config)

    def test_unselected_model_not_checked(self):
        config = SimulationConfig(
            simulation=SimulationSection(model="niche"),
            markov=MarkovSection(transition=[[0.1, 0.1], [0.1, 0.1]]),
        )
        validate_config(config)

    def test_bad_competition(self):
        config = SimulationConfig(
            simulation=SimulationSection(model="competition"),
            competition=CompetitionSection(fsp1=1.0),
        )
        with pytest.raises(SuccessionValidationError, match="fsp1"):
            validate_config(config)
