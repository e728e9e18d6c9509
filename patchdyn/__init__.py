"""patchdyn: Mean-field patch-occupancy models of ecological succession.

Three well-mixed landscape models sharing one stochastic transition engine:
  - Successional niche model (Pacala & Rees 1998): free / early /
    susceptible / mixed / resistant patches
  - Multispecies competition–colonization trade-off (Tilman 1994) with
    periodic disturbance pulses
  - Generic N-stage Markov succession matrix with stable-stage analysis

Each step resamples every patch from probabilities that depend only on the
landscape-wide state frequencies of the previous step.
"""

__version__ = "0.1.0"
