import torch
from torch import Tensor


def squared_distance_matrix(X: Tensor) -> Tensor:
    """
    Compute pairwise squared Euclidean distances using vectorized operations.

    This uses the formula: ||x - y||^2 = ||x||^2 + ||y||^2 - 2<x,y>

    Parameters
    ----------
    X : Tensor, shape (N, D)
        Input data points where N is number of points and D is dimensionality

    Returns
    -------
    Tensor, shape (N, N)
        Symmetric, non-negative squared distance matrix with a zero diagonal,
        on the same device as X
    """
    # Shape: (N, 1)
    squared_norms = (X**2).sum(dim=1, keepdim=True)

    # Broadcasting: (N, 1) + (1, N) - (N, N) = (N, N)
    squared_distances = squared_norms + squared_norms.t() - 2 * torch.mm(X, X.t())

    # Clamp to avoid negative values due to numerical errors
    squared_distances = torch.clamp(squared_distances, min=0.0)
    squared_distances = (squared_distances + squared_distances.t()) / 2
    squared_distances.fill_diagonal_(0.0)

    return squared_distances


def random_squared_distances(
    n_points: int,
    n_dims: int = 2,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float64,
) -> Tensor:
    """
    Squared distances between normally distributed random points.

    Parameters
    ----------
    n_points : int
        Number of points
    n_dims : int
        Dimensionality of the random points
    generator : torch.Generator, optional
        Source of randomness, for reproducible matrices
    dtype : torch.dtype
        Floating point type of the result

    Returns
    -------
    Tensor, shape (n_points, n_points)
    """
    X = torch.randn(n_points, n_dims, generator=generator, dtype=dtype)
    return squared_distance_matrix(X)


def off_diagonal_mask(n_points: int, device: torch.device | str | None = None) -> Tensor:
    """Boolean mask selecting every entry except the diagonal."""
    return ~torch.eye(n_points, dtype=torch.bool, device=device)
