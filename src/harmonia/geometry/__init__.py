from .exponential_family.base import (
    Analytic,
    Differentiable,
    ExponentialFamily,
    Generative,
    Mean,
    Natural,
    Source,
)
from .exponential_family.combinators import (
    LocationShape,
    Product,
)
from .exponential_family.conditional import ConditionalHarmonium
from .exponential_family.harmonium import (
    DeepHarmonium,
    HarmoniumStructureError,
    Sample,
    layer_statistics,
)
from .exponential_family.learning import (
    conditional_expectation_maximization_ascent,
    conditional_harmonium_conjugation_differential,
    conjugation_curve,
    contrastive_divergence,
    expectation_maximization,
    expectation_maximization_ascent,
    fit_contrastive_divergence,
    harmonium_information_projection_differential,
    stochastic_rectified_harmonium_differential,
)
from .manifold.base import (
    CoordinateError,
    Coordinates,
    DimensionError,
    Dual,
    Manifold,
    Point,
    dual_coordinates,
    expand_dual,
    reduce_dual,
)
from .manifold.combinators import (
    Pair,
    Sum,
)
from .manifold.convex import DuallyFlat, Legendre
from .manifold.linear import (
    AffineMap,
    LinearMap,
    SquareMap,
)
from .manifold.matrix import (
    Diagonal,
    MatrixRep,
    PositiveDefinite,
    Rectangular,
    Scale,
    Square,
    Symmetric,
)
from .manifold.optimizer import Optimizer, OptState, gradient_sequence

__all__ = [
    "AffineMap",
    "Analytic",
    "ConditionalHarmonium",
    "CoordinateError",
    "Coordinates",
    "DeepHarmonium",
    "Diagonal",
    "Differentiable",
    "DimensionError",
    "Dual",
    "DuallyFlat",
    "ExponentialFamily",
    "Generative",
    "HarmoniumStructureError",
    "Legendre",
    "LinearMap",
    "LocationShape",
    "Manifold",
    "MatrixRep",
    "Mean",
    "Natural",
    "OptState",
    "Optimizer",
    "Pair",
    "Point",
    "PositiveDefinite",
    "Product",
    "Rectangular",
    "Sample",
    "Scale",
    "Source",
    "Square",
    "SquareMap",
    "Sum",
    "Symmetric",
    "conditional_expectation_maximization_ascent",
    "conditional_harmonium_conjugation_differential",
    "conjugation_curve",
    "contrastive_divergence",
    "dual_coordinates",
    "expand_dual",
    "expectation_maximization",
    "expectation_maximization_ascent",
    "fit_contrastive_divergence",
    "gradient_sequence",
    "harmonium_information_projection_differential",
    "layer_statistics",
    "reduce_dual",
    "stochastic_rectified_harmonium_differential",
]
