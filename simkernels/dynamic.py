"""
Dynamic kernel extension point.

A dynamic kernel has its parameters recomputed during the embedding
optimization instead of being fixed when the input probabilities are
initialized. The optimization itself lives with the embedding method; this
module only prepares the method state and dispatches to the kernel's hook.

A hook takes the embedding method (any object with a ``kernel`` attribute)
and returns the modified method.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Sequence

import torch

if TYPE_CHECKING:
    from simkernels.kernels import Kernel


class KernelNotDynamicError(RuntimeError):
    """Raised when a kernel without a dynamic hook is asked to become dynamic."""


@dataclass
class EmbeddingMethod:
    """Minimal embedding method state used by the dynamic kernel hooks."""

    kernel: "Kernel"
    n_points: Optional[int] = None
    dynamic_parameters: tuple[str, ...] = ()
    dynamic: bool = False


def make_kernel_dynamic(method: Any) -> Any:
    """
    Convert the kernel of an embedding method into a dynamic kernel.

    Should be called by the method before its optimization starts.

    Parameters
    ----------
    method : EmbeddingMethod or any object with a ``kernel`` attribute
        The embedding method whose kernel should become dynamic

    Returns
    -------
    Any
        The method returned by the kernel's hook

    Raises
    ------
    KernelNotDynamicError
        If the kernel does not support dynamic conversion
    """
    return method.kernel.make_dynamic(method)


def _dynamize(method: Any, names: Sequence[str]) -> Any:
    # Uniform parameters now may become per-point later, so the kernel must not
    # be treated as symmetric by the optimizer.
    kernel = method.kernel.set_asymmetric()

    n_points = getattr(method, "n_points", None)
    if n_points is not None:
        for name in names:
            value = getattr(kernel, name)
            if value.numel() == 1:
                setattr(
                    kernel,
                    name,
                    torch.full(
                        (n_points,),
                        value.item(),
                        dtype=value.dtype,
                        device=value.device,
                    ),
                )

    method.kernel = kernel
    method.dynamic_parameters = tuple(names)
    method.dynamic = True
    return method


def dynamize_exp_kernel(method: Any) -> Any:
    """Make the precision of an exponential kernel per-point and dynamic."""
    return _dynamize(method, ("beta",))


def dynamize_heavy_tail_kernel(method: Any) -> Any:
    """Make both precision and tail heaviness of a heavy-tailed kernel dynamic."""
    return _dynamize(method, ("beta", "alpha"))


def dynamize_inhomogeneous_kernel(method: Any) -> Any:
    """Make the degrees of freedom of an inhomogeneous kernel dynamic."""
    return _dynamize(method, ("dof",))
