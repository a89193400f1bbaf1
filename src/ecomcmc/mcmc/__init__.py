"""
Sweep engine subpackage.

Modules:
- types: UnitArrays, UnitArrays2C, PriorParams, RunParams, SweepState
- links: Logit / probit / complementary log-log transforms
- bounds: Feasible intervals and tomography grids (host side)
- latent: Latent proportion samplers
- niw: Normal/Inverse-Wishart algebra and draws
- recorder: Burn-in / thinning control and draw storage
- config: Run configuration and state initialization
- scan: The sweep body
- compile: Kernel compilation and caching
- single_run: run_eco entry point
"""

from .types import UnitArrays, UnitArrays2C, PriorParams, RunParams, SweepState
from .links import Link
from .recorder import DrawRecorder, n_stored, should_record
from .single_run import run_eco, CancellationToken

__all__ = [
    'UnitArrays',
    'UnitArrays2C',
    'PriorParams',
    'RunParams',
    'SweepState',
    'Link',
    'DrawRecorder',
    'n_stored',
    'should_record',
    'run_eco',
    'CancellationToken',
]
