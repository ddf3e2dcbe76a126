"""Public API surface for multispline.

Defines package metadata and exported interfaces.
"""

import logging
from typing import Final

# Private API imports (accessible but not in __all__)
# Users can access private functions via: multispline._basis_impl._function_name, etc.
from . import (
    _basis_impl,  # noqa: F401
    _knots_impl,  # noqa: F401
)

# Public API imports
from ._domain_reduction import bisect, iter_subdomain_splines
from ._fitting import roughness_penalty
from .basis_1D import BsplineBasis1D
from .bspline import Bspline, BsplineType, KnotSpacing
from .comparison import bsplines_agree_on_domain, bsplines_are_identical
from .datatable import DataTable, DuplicatePolicy
from .errors import (
    DimensionMismatchError,
    InvalidKnotVectorError,
    OutOfDomainError,
    SingularFitError,
    SplineError,
)
from .knots import (
    KnotVector,
    create_equidistant_knot_vector,
    create_sample_knot_vector,
    create_uniform_open_knot_vector,
)
from .tensor_basis import TensorProductBasis
from .tolerance import (
    get_comparison_tolerance,
    get_domain_tolerance,
    get_knot_tolerance,
    get_machine_epsilon,
    get_rank_tolerance,
)

# Library logging: applications decide where records go.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Package metadata
__version__: Final[str] = "0.1.0"
__license__: Final[str] = "MIT"
__author__: Final[str] = "Pablo Antolin <pablo.antolin@epfl.ch>"

# Public interface: only functions/classes that don't start with _
__all__ = [
    "Bspline",
    "BsplineBasis1D",
    "BsplineType",
    "DataTable",
    "DimensionMismatchError",
    "DuplicatePolicy",
    "InvalidKnotVectorError",
    "KnotSpacing",
    "KnotVector",
    "OutOfDomainError",
    "SingularFitError",
    "SplineError",
    "TensorProductBasis",
    "__author__",
    "__license__",
    "__version__",
    "bisect",
    "bsplines_agree_on_domain",
    "bsplines_are_identical",
    "create_equidistant_knot_vector",
    "create_sample_knot_vector",
    "create_uniform_open_knot_vector",
    "get_comparison_tolerance",
    "get_domain_tolerance",
    "get_knot_tolerance",
    "get_machine_epsilon",
    "get_rank_tolerance",
    "iter_subdomain_splines",
    "roughness_penalty",
]
