"""
Finite difference checks of the kernel gradients.

Only intended for testing: the closed-form gradients in simkernels.weights
exist so that an optimizer never needs a finite difference pass.
"""

from dataclasses import dataclass
from typing import Iterable

import torch
from torch import Tensor
from tqdm import tqdm

from simkernels.kernels import Kernel


@dataclass
class GradientCheckResult:
    """Outcome of comparing a kernel's gradient to its finite difference estimate."""

    name: str
    max_abs_error: float
    passed: bool


def kernel_gr_fd(kernel: Kernel, d2m: Tensor, diff: float = 1e-4) -> Tensor:
    """
    Finite difference gradient of a kernel.

    (fn(D2 + diff) - fn(D2 - diff)) / (2 * diff), entrywise.

    Parameters
    ----------
    kernel : Kernel
        Similarity kernel, scalar or per-point parameters
    d2m : Tensor
        Matrix of squared distances
    diff : float
        Step size of the central difference

    Returns
    -------
    Tensor
        Gradient matrix, same shape as d2m
    """
    if diff <= 0:
        raise ValueError(f"Finite difference step must be positive, got {diff}")

    fwd = kernel.fn(d2m + diff)
    back = kernel.fn(d2m - diff)

    return (fwd - back) / (2 * diff)


def check_kernel_gradient(
    kernel: Kernel,
    d2m: Tensor,
    diff: float = 1e-4,
    atol: float = 1e-6,
    mask: Tensor | None = None,
    verbose: bool = False,
) -> GradientCheckResult:
    """
    Compare the analytic gradient of a kernel with its finite difference estimate.

    Parameters
    ----------
    kernel : Kernel
        Kernel to check
    d2m : Tensor
        Matrix of squared distances
    diff : float
        Step size of the central difference
    atol : float
        Largest absolute difference accepted
    mask : Tensor, optional
        Boolean mask of the entries to compare. Use an off-diagonal mask for
        kernels whose gradient is singular at zero distance.
        The heavy-tailed kernel close to ALPHA_FLOOR amplifies rounding error
        by 1 / alpha and cannot be checked this way at the usual tolerances.
    verbose : bool
        Print the outcome

    Returns
    -------
    GradientCheckResult
    """
    analytic = kernel.gr(d2m)
    numeric = kernel_gr_fd(kernel, d2m, diff=diff)

    errors = torch.abs(analytic - numeric)
    if mask is not None:
        errors = errors[mask]
    max_abs_error = errors.max().item() if errors.numel() > 0 else 0.0
    # NaN errors never pass
    passed = max_abs_error <= atol

    if verbose:
        status = "ok" if passed else "FAILED"
        print(f"{kernel.name}: max abs error={max_abs_error:.3e} (atol={atol:.1e}) {status}")

    return GradientCheckResult(kernel.name, max_abs_error, passed)


def check_kernels(
    kernels: Iterable[Kernel],
    d2m: Tensor,
    diff: float = 1e-4,
    atol: float = 1e-6,
    mask: Tensor | None = None,
    verbose: bool = True,
) -> list[GradientCheckResult]:
    """
    Run check_kernel_gradient for several kernels on the same distances.

    Returns
    -------
    list[GradientCheckResult]
        One result per kernel, in input order
    """
    kernels = list(kernels)
    results = []

    pbar = tqdm(kernels, disable=not verbose, desc="Checking gradients")
    for kernel in pbar:
        result = check_kernel_gradient(kernel, d2m, diff=diff, atol=atol, mask=mask)
        results.append(result)
        if verbose:
            pbar.set_postfix({"kernel": kernel.name, "error": f"{result.max_abs_error:.2e}"})

    return results
