"""
Weight functions for probability-based embedding.

Weight functions convert a matrix of squared distances into similarities,
which are in turn normalized into probabilities by the embedding method.
All functions here are pure: they work on the squared distances and never
modify their input.

Parameters may be a scalar (shared by all points) or a vector with one value
per point. Per-point values apply row-wise, so entry (i, j) of the output uses
the parameter of point i.

References:
- Hinton & Roweis (2002): "Stochastic Neighbor Embedding"
- van der Maaten & Hinton (2008): "Visualizing Data using t-SNE"
- Yang, King, Xu & Oja (2009): "Heavy-tailed symmetric stochastic neighbor embedding"
- Kitazono, Grozavu, Rogovschi, Omori & Ozawa (2016): "t-Distributed Stochastic
  Neighbor Embedding with Inhomogeneous Degrees of Freedom"
- Yang, Peltonen & Kaski (2014): "Optimization equivalence of divergences
  improves neighbor embedding"
"""

from types import MappingProxyType

import torch
from torch import Tensor

from simkernels.types import Symmetry

# sqrt(float64 machine epsilon): the smallest tail heaviness we evaluate with.
# At this value the heavy-tailed function is indistinguishable from exp_weight.
ALPHA_FLOOR = float(torch.finfo(torch.float64).eps) ** 0.5

# Static symmetry class of each raw weight function. itsne_weight is asymmetric
# because its degrees of freedom are conventionally per point. step_weight is
# not classified: it is only used directly, e.g. by a perplexity search.
WEIGHT_SYMMETRY = MappingProxyType(
    {
        "exp_weight": Symmetry.SYMMETRIC,
        "sqrt_exp_weight": Symmetry.SYMMETRIC,
        "tdist_weight": Symmetry.SYMMETRIC,
        "heavy_tail_weight": Symmetry.SYMMETRIC,
        "itsne_weight": Symmetry.ASYMMETRIC,
        "identity_weight": Symmetry.SYMMETRIC,
    }
)


def per_row(param: float | Tensor, d2m: Tensor) -> Tensor:
    """
    Shape a parameter so that it broadcasts row-wise against d2m.

    Parameters
    ----------
    param : float or Tensor
        Scalar or per-point parameter value(s)
    d2m : Tensor
        Squared distances the parameter will be combined with

    Returns
    -------
    Tensor
        0-dim tensor for a scalar, otherwise shape (n, 1, ...) on the device and
        dtype of d2m. A length mismatch is left for torch to report when the
        tensors are combined.
    """
    param = torch.as_tensor(param, dtype=d2m.dtype, device=d2m.device)
    if param.numel() == 1:
        return param.reshape(())
    return param.reshape(-1, *([1] * (d2m.dim() - 1)))


def clamp_alpha(alpha: float | Tensor) -> Tensor:
    """Clamp tail heaviness to ALPHA_FLOOR, elementwise for vectors."""
    alpha = torch.as_tensor(alpha, dtype=torch.float64)
    return torch.clamp(alpha, min=ALPHA_FLOOR)


def _min_distance(d2m: Tensor) -> Tensor:
    # Self-distances are excluded for a full square matrix
    if d2m.dim() == 2 and d2m.shape[0] == d2m.shape[1] and d2m.shape[0] > 1:
        mask = ~torch.eye(d2m.shape[0], dtype=torch.bool, device=d2m.device)
        return d2m[mask].min()
    return d2m.min()


# Weight functions -----------------------------------------------------------


def exp_weight(d2m: Tensor, beta: float | Tensor = 1.0) -> Tensor:
    """
    Exponential weighted similarity.

    W = exp(-beta * D2)

    Parameters
    ----------
    d2m : Tensor
        Matrix of squared distances
    beta : float or Tensor
        Exponential (precision) parameter

    Returns
    -------
    Tensor
        Weight matrix, same shape as d2m
    """
    return torch.exp(-per_row(beta, d2m) * d2m)


def sqrt_exp_weight(d2m: Tensor, beta: float | Tensor = 1.0) -> Tensor:
    """
    Exponential weighting of the distances rather than the squared distances.

    W = exp(-beta * sqrt(D2))

    Matches the weighting used by the R tsne package.
    """
    return torch.exp(-per_row(beta, d2m) * torch.sqrt(d2m))


def tdist_weight(d2m: Tensor) -> Tensor:
    """
    Student-t distribution similarity with one degree of freedom.

    W = 1 / (1 + D2)

    Compared to exp_weight this has a much heavier tail. Used in t-SNE.
    """
    return 1.0 / (1.0 + d2m)


def heavy_tail_weight(
    d2m: Tensor, beta: float | Tensor = 1.0, alpha: float | Tensor = 1.5e-8
) -> Tensor:
    """
    Heavy-tailed similarity.

    W = ((alpha * beta * D2) + 1) ^ (-1 / alpha)

    As alpha approaches 0 this becomes exp_weight with the same beta. At
    alpha = 1 (and beta = 1) it is tdist_weight. Intermediate values give an
    intermediate degree of tail heaviness.

    Parameters
    ----------
    d2m : Tensor
        Matrix of squared distances
    beta : float or Tensor
        Precision. Equivalent to the exponential precision as alpha -> 0.
    alpha : float or Tensor
        Tail heaviness. Values below ALPHA_FLOOR (including zero) are clamped
        to ALPHA_FLOOR.

    Returns
    -------
    Tensor
        Weight matrix, same shape as d2m
    """
    # alpha * beta * D2 + 1 rounds to 1 in float32 near the alpha floor
    d2m64 = d2m.to(torch.float64)
    alpha = per_row(clamp_alpha(alpha), d2m64)
    beta = per_row(beta, d2m64)
    return torch.pow(alpha * beta * d2m64 + 1.0, -1.0 / alpha).to(d2m.dtype)


def itsne_weight(d2m: Tensor, dof: float | Tensor = 1.0) -> Tensor:
    """
    Student-t similarity with inhomogeneous degrees of freedom.

    W = (1 + D2 / dof) ^ (-0.5 * (dof + 1))
    """
    dof = per_row(dof, d2m)
    return torch.pow(1.0 + d2m / dof, -0.5 * (dof + 1.0))


def step_weight(d2m: Tensor, beta: float | Tensor = 1.0) -> Tensor:
    """
    Step function similarity.

    Returns one for squared distances less than or equal to beta, and zero
    otherwise. Useful for emulating k-nearest neighbor style weighting.

    beta is clamped so it is never smaller than the smallest distance in d2m
    (ignoring self-distances on the diagonal of a square matrix). Otherwise all
    weights could be zero, giving a uniform probability and a large
    perplexity, which breaks a bisection search for a target perplexity.
    """
    cutoff = torch.maximum(per_row(beta, d2m), _min_distance(d2m))
    return (d2m <= cutoff).to(d2m.dtype)


def identity_weight(d2m: Tensor) -> Tensor:
    """No-op weighting: the squared distances are returned unchanged."""
    return d2m


# Gradients with respect to the squared distances ------------------------------


def exp_gr(d2m: Tensor, beta: float | Tensor = 1.0) -> Tensor:
    """Gradient of exp_weight with respect to d2m: -beta * W."""
    return -per_row(beta, d2m) * exp_weight(d2m, beta)


def sqrt_exp_gr(d2m: Tensor, beta: float | Tensor = 1.0) -> Tensor:
    """
    Gradient of sqrt_exp_weight with respect to d2m.

    dW/dD2 = -beta / (2 * sqrt(D2)) * W

    Not defined at D2 = 0, where the result is -inf.
    """
    return -per_row(beta, d2m) / (2.0 * torch.sqrt(d2m)) * sqrt_exp_weight(d2m, beta)


def tdist_gr(d2m: Tensor) -> Tensor:
    """Gradient of tdist_weight with respect to d2m: -W^2."""
    return -(tdist_weight(d2m) ** 2)


def heavy_tail_gr(
    d2m: Tensor, beta: float | Tensor = 1.0, alpha: float | Tensor = 1.5e-8
) -> Tensor:
    """Gradient of heavy_tail_weight with respect to d2m: -beta * W^(alpha + 1)."""
    d2m64 = d2m.to(torch.float64)
    weight = heavy_tail_weight(d2m64, beta, alpha)
    alpha = per_row(clamp_alpha(alpha), d2m64)
    gradient = -per_row(beta, d2m64) * torch.pow(weight, alpha + 1.0)
    return gradient.to(d2m.dtype)


def itsne_gr(d2m: Tensor, dof: float | Tensor = 1.0) -> Tensor:
    """Gradient of itsne_weight with respect to d2m."""
    weight = itsne_weight(d2m, dof)
    dof = per_row(dof, d2m)
    return -(0.5 * (dof + 1.0) / (d2m + dof)) * weight


def step_gr(d2m: Tensor, beta: float | Tensor = 1.0) -> Tensor:
    """Gradient of step_weight: zero everywhere except at the cutoff."""
    return torch.zeros_like(d2m)


def identity_gr(d2m: Tensor) -> Tensor:
    """Gradient of identity_weight: one everywhere."""
    return torch.ones_like(d2m)
