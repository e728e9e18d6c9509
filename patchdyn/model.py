"""Run whichever succession model a configuration selects.

    config = load_config("configs/default.yaml",
                         sweep_overrides={'simulation': {'model': 'markov'}})
    result = run_simulation(config)
"""

from __future__ import annotations

from typing import Optional, Union

from patchdyn.competition import CompetitionResult, run_competition_simulation
from patchdyn.config import SimulationConfig, default_config, validate_config
from patchdyn.markov import MarkovResult, run_markov_simulation
from patchdyn.niche import NicheResult, run_niche_simulation

SimResult = Union[NicheResult, CompetitionResult, MarkovResult]


def run_simulation(config: Optional[SimulationConfig] = None) -> SimResult:
    """Validate config and run the model named by config.simulation.model."""
    if config is None:
        config = default_config()
    validate_config(config)
    sim = config.simulation

    if sim.model == "niche":
        return run_niche_simulation(
            tmax=sim.tmax,
            rows=sim.rows,
            cols=sim.cols,
            params=config.niche.to_params(),
            seed=sim.seed,
            record_history=sim.record_history,
        )
    if sim.model == "competition":
        c = config.competition
        return run_competition_simulation(
            rows=sim.rows,
            cols=sim.cols,
            n_species=c.n_species,
            fi=c.fi,
            fsp1=c.fsp1,
            pe=c.pe,
            fr=c.fr,
            intensity=c.intensity,
            tmax=sim.tmax,
            seed=sim.seed,
        )
    m = config.markov
    return run_markov_simulation(
        mat_trans=m.transition,
        init_prop=m.init_prop,
        rows=sim.rows,
        cols=sim.cols,
        tmax=sim.tmax,
        seed=sim.seed,
        record_history=sim.record_history,
    )
