"""
Similarity kernels for probability-based embedding.

A kernel bundles a weight function (see simkernels.weights) with its gradient
with respect to the squared distances, the current parameter values and a
symmetry classification. The embedding optimizer uses the classification to
decide whether the simplified, symmetric-only derivative expressions are
valid, so it must always reflect the current parameters:

- a kernel is symmetric iff all of its parameters are scalars
- assigning a parameter rechecks the symmetry automatically
- set_asymmetric() forces the kernel asymmetric until a new kernel is built

References:
- van der Maaten & Hinton (2008): "Visualizing Data using t-SNE"
- Yang, King, Xu & Oja (2009): "Heavy-tailed symmetric stochastic neighbor embedding"
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import torch
from torch import Tensor

from simkernels.dynamic import (
    KernelNotDynamicError,
    dynamize_exp_kernel,
    dynamize_heavy_tail_kernel,
    dynamize_inhomogeneous_kernel,
)
from simkernels.types import KernelType, Symmetry
from simkernels.weights import (
    clamp_alpha,
    exp_gr,
    exp_weight,
    heavy_tail_gr,
    heavy_tail_weight,
    identity_gr,
    identity_weight,
    itsne_gr,
    itsne_weight,
    sqrt_exp_gr,
    sqrt_exp_weight,
    step_gr,
    step_weight,
    tdist_gr,
    tdist_weight,
)

DynamicHook = Callable[[Any], Any]


class KernelParameter:
    """Kernel attribute holding a scalar or per-point parameter tensor."""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, kernel, owner=None):
        if kernel is None:
            return self
        return kernel.parameters[self.name]

    def __set__(self, kernel: "Kernel", value) -> None:
        kernel.set_parameter(self.name, value)


class Kernel(ABC):
    """
    Base class for similarity kernels.

    Subclasses declare their parameters as KernelParameter class attributes
    and implement fn and gr.
    """

    name: str = ""
    default_dynamic_hook: Optional[DynamicHook] = None

    def __init__(self, dynamic_hook: Optional[DynamicHook] = None, **parameters):
        """
        Initialize kernel with the given parameter values.

        Parameters
        ----------
        dynamic_hook : callable, optional
            Hook used by make_dynamic. Defaults to the family's own hook, if any.
        **parameters
            Initial value of every parameter of the kernel family

        Raises
        ------
        TypeError
            If a parameter is not declared by the kernel family
        """
        self.parameters: dict[str, Tensor] = {}
        self.forced_asymmetric = False
        self.symmetry = Symmetry.SYMMETRIC
        if dynamic_hook is None:
            dynamic_hook = type(self).default_dynamic_hook
        self.dynamic_hook = dynamic_hook

        for name, value in parameters.items():
            if not isinstance(getattr(type(self), name, None), KernelParameter):
                raise TypeError(f"{type(self).__name__} has no parameter '{name}'")
            setattr(self, name, value)
        self.check_symmetry()

    @abstractmethod
    def fn(self, d2m: Tensor) -> Tensor:
        """
        Compute the weight matrix.

        Parameters
        ----------
        d2m : Tensor, shape (n_points, n_points)
            Matrix of squared distances

        Returns
        -------
        Tensor
            Weight matrix, same shape as d2m
        """
        pass

    @abstractmethod
    def gr(self, d2m: Tensor) -> Tensor:
        """
        Compute the gradient of the weights with respect to d2m.

        Parameters are held fixed.

        Parameters
        ----------
        d2m : Tensor, shape (n_points, n_points)
            Matrix of squared distances

        Returns
        -------
        Tensor
            Gradient matrix, same shape as d2m
        """
        pass

    def _convert(self, name: str, value) -> Tensor:
        return torch.as_tensor(value, dtype=torch.float64).clone()

    def set_parameter(self, name: str, value) -> None:
        """Store a parameter value and recheck the kernel symmetry."""
        self.parameters[name] = self._convert(name, value)
        self.check_symmetry()

    def _parameters_symmetric(self) -> bool:
        return all(value.numel() == 1 for value in self.parameters.values())

    def check_symmetry(self) -> "Kernel":
        """
        Recompute the symmetry tag from the current parameters.

        Values written directly into parameters (numbers, lists, arrays) are
        converted to tensors first. A forced asymmetric tag (see set_asymmetric)
        is never reset here.

        Returns
        -------
        Kernel
            This kernel, for chaining
        """
        for name, value in list(self.parameters.items()):
            self.parameters[name] = self._convert(name, value)
        if self.forced_asymmetric or not self._parameters_symmetric():
            self.symmetry = Symmetry.ASYMMETRIC
        else:
            self.symmetry = Symmetry.SYMMETRIC
        return self

    def set_asymmetric(self) -> "Kernel":
        """Force the kernel to be treated as asymmetric, even with uniform parameters."""
        self.forced_asymmetric = True
        self.symmetry = Symmetry.ASYMMETRIC
        return self

    def is_symmetric(self) -> bool:
        return self.symmetry == Symmetry.SYMMETRIC

    def is_asymmetric(self) -> bool:
        return self.symmetry == Symmetry.ASYMMETRIC

    def supports_dynamic(self) -> bool:
        """Whether this kernel can be converted into a dynamic kernel."""
        return self.dynamic_hook is not None

    def make_dynamic(self, method: Any) -> Any:
        """
        Apply this kernel's dynamic hook to an embedding method.

        Raises
        ------
        KernelNotDynamicError
            If the kernel has no dynamic hook
        """
        if self.dynamic_hook is None:
            raise KernelNotDynamicError(
                f"Kernel cannot be made dynamic: '{self.name}' has no dynamic hook"
            )
        return self.dynamic_hook(method)

    def __repr__(self) -> str:
        shapes = ", ".join(
            f"{name}={'scalar' if value.numel() == 1 else tuple(value.shape)}"
            for name, value in self.parameters.items()
        )
        details = f"name='{self.name}', symmetry={self.symmetry.value}"
        if shapes:
            details = f"{details}, {shapes}"
        return f"{type(self).__name__}({details})"


class ExpKernel(Kernel):
    """Exponential kernel: W = exp(-beta * D2)."""

    name = "exp"
    default_dynamic_hook = staticmethod(dynamize_exp_kernel)
    beta = KernelParameter()

    def fn(self, d2m: Tensor) -> Tensor:
        return exp_weight(d2m, beta=self.beta)

    def gr(self, d2m: Tensor) -> Tensor:
        return exp_gr(d2m, beta=self.beta)


class SqrtExpKernel(Kernel):
    """Exponential kernel on distances: W = exp(-beta * sqrt(D2))."""

    name = "sqrt_exp"
    beta = KernelParameter()

    def fn(self, d2m: Tensor) -> Tensor:
        return sqrt_exp_weight(d2m, beta=self.beta)

    def gr(self, d2m: Tensor) -> Tensor:
        return sqrt_exp_gr(d2m, beta=self.beta)


class TDistKernel(Kernel):
    """Student-t kernel with one degree of freedom: W = 1 / (1 + D2)."""

    name = "tdist"

    def fn(self, d2m: Tensor) -> Tensor:
        return tdist_weight(d2m)

    def gr(self, d2m: Tensor) -> Tensor:
        return tdist_gr(d2m)


class HeavyTailKernel(Kernel):
    """
    Heavy-tailed kernel: W = ((alpha * beta * D2) + 1) ^ (-1 / alpha).

    alpha is clamped to ALPHA_FLOOR whenever it is assigned.
    """

    name = "heavy"
    default_dynamic_hook = staticmethod(dynamize_heavy_tail_kernel)
    beta = KernelParameter()
    alpha = KernelParameter()

    def _convert(self, name: str, value) -> Tensor:
        value = super()._convert(name, value)
        if name == "alpha":
            value = clamp_alpha(value)
        return value

    def fn(self, d2m: Tensor) -> Tensor:
        return heavy_tail_weight(d2m, beta=self.beta, alpha=self.alpha)

    def gr(self, d2m: Tensor) -> Tensor:
        return heavy_tail_gr(d2m, beta=self.beta, alpha=self.alpha)


class InhomogeneousKernel(Kernel):
    """Student-t kernel with (possibly per-point) degrees of freedom."""

    name = "inhomogeneous"
    default_dynamic_hook = staticmethod(dynamize_inhomogeneous_kernel)
    dof = KernelParameter()

    def fn(self, d2m: Tensor) -> Tensor:
        return itsne_weight(d2m, dof=self.dof)

    def gr(self, d2m: Tensor) -> Tensor:
        return itsne_gr(d2m, dof=self.dof)


class StepKernel(Kernel):
    """Step kernel: one for D2 <= max(beta, min(D2)), zero otherwise."""

    name = "step"
    beta = KernelParameter()

    def fn(self, d2m: Tensor) -> Tensor:
        return step_weight(d2m, beta=self.beta)

    def gr(self, d2m: Tensor) -> Tensor:
        return step_gr(d2m, beta=self.beta)


class NoKernel(Kernel):
    """Identity kernel: the squared distances are used as the weights."""

    name = "none"

    def fn(self, d2m: Tensor) -> Tensor:
        return identity_weight(d2m)

    def gr(self, d2m: Tensor) -> Tensor:
        return identity_gr(d2m)


# Factory functions -----------------------------------------------------------


def exp_kernel(
    beta: float | Tensor = 1.0, dynamic_hook: Optional[DynamicHook] = None
) -> ExpKernel:
    """Create an exponential kernel with precision beta."""
    return ExpKernel(dynamic_hook=dynamic_hook, beta=beta)


def sqrt_exp_kernel(
    beta: float | Tensor = 1.0, dynamic_hook: Optional[DynamicHook] = None
) -> SqrtExpKernel:
    """Create an exponential kernel acting on the (unsquared) distances."""
    return SqrtExpKernel(dynamic_hook=dynamic_hook, beta=beta)


def tdist_kernel(dynamic_hook: Optional[DynamicHook] = None) -> TDistKernel:
    """Create the t-SNE Student-t kernel."""
    return TDistKernel(dynamic_hook=dynamic_hook)


def heavy_tail_kernel(
    beta: float | Tensor = 1.0,
    alpha: float | Tensor = 0.0,
    dynamic_hook: Optional[DynamicHook] = None,
) -> HeavyTailKernel:
    """
    Create a heavy-tailed kernel.

    Parameters
    ----------
    beta : float or Tensor
        Decay constant. The larger the value, the faster the function decays.
    alpha : float or Tensor
        Tail heaviness. The default of zero is clamped to ALPHA_FLOOR, which
        behaves like the exponential kernel. alpha = 1 gives the t-distribution.
    dynamic_hook : callable, optional
        Replacement for the default dynamic hook

    Returns
    -------
    HeavyTailKernel
    """
    return HeavyTailKernel(dynamic_hook=dynamic_hook, beta=beta, alpha=alpha)


def itsne_kernel(
    dof: float | Tensor = 1.0, dynamic_hook: Optional[DynamicHook] = None
) -> InhomogeneousKernel:
    """Create an inhomogeneous t-SNE kernel with dof degrees of freedom."""
    return InhomogeneousKernel(dynamic_hook=dynamic_hook, dof=dof)


def step_kernel(
    beta: float | Tensor = 1.0, dynamic_hook: Optional[DynamicHook] = None
) -> StepKernel:
    """Create a step kernel with cutoff beta."""
    return StepKernel(dynamic_hook=dynamic_hook, beta=beta)


def no_kernel(dynamic_hook: Optional[DynamicHook] = None) -> NoKernel:
    """Create the identity kernel."""
    return NoKernel(dynamic_hook=dynamic_hook)


def create_kernel(kernel_type: KernelType | str, **kwargs) -> Kernel:
    """
    Factory function to create kernels.

    Parameters
    ----------
    kernel_type : KernelType or str
        Kernel family: 'exp', 'sqrt_exp', 'tdist', 'heavy', 'inhomogeneous',
        'step' or 'none'
    **kwargs
        Parameters of the kernel family:
        - beta (float): precision for exp, sqrt_exp, heavy; cutoff for step
        - alpha (float): tail heaviness for heavy
        - dof (float): degrees of freedom for inhomogeneous
        - dynamic_hook (callable): replacement dynamic hook
        Parameters the family does not use are ignored.

    Returns
    -------
    Kernel
        Configured kernel instance

    Raises
    ------
    ValueError
        If kernel_type is not recognized
    """
    if isinstance(kernel_type, KernelType):
        kernel_type = kernel_type.value
    kernel_type = kernel_type.lower().strip()
    dynamic_hook = kwargs.get("dynamic_hook")

    if kernel_type == "exp":
        return exp_kernel(kwargs.get("beta", 1.0), dynamic_hook=dynamic_hook)
    elif kernel_type == "sqrt_exp":
        return sqrt_exp_kernel(kwargs.get("beta", 1.0), dynamic_hook=dynamic_hook)
    elif kernel_type == "tdist":
        return tdist_kernel(dynamic_hook=dynamic_hook)
    elif kernel_type == "heavy":
        return heavy_tail_kernel(
            kwargs.get("beta", 1.0), kwargs.get("alpha", 0.0), dynamic_hook=dynamic_hook
        )
    elif kernel_type == "inhomogeneous":
        return itsne_kernel(kwargs.get("dof", 1.0), dynamic_hook=dynamic_hook)
    elif kernel_type == "step":
        return step_kernel(kwargs.get("beta", 1.0), dynamic_hook=dynamic_hook)
    elif kernel_type == "none":
        return no_kernel(dynamic_hook=dynamic_hook)
    else:
        raise ValueError(
            f"Unknown kernel_type: {kernel_type}. "
            f"Use one of {[t.value for t in KernelType]}."
        )


# Kernel protocol --------------------------------------------------------------


def evaluate(kernel: Kernel, d2m: Tensor) -> Tensor:
    """Weight matrix of kernel for the squared distances d2m."""
    return kernel.fn(d2m)


def gradient(kernel: Kernel, d2m: Tensor) -> Tensor:
    """Gradient of the kernel weights with respect to d2m."""
    return kernel.gr(d2m)


def check_symmetry(kernel: Kernel) -> Kernel:
    """
    Ensure the kernel has the correct symmetry for its parameters.

    Must be called after a parameter changes between scalar and per-point.
    Assigning through the kernel attributes already does this; the call is
    needed when a parameter tensor is replaced in kernel.parameters directly.
    Always use the returned kernel.
    """
    return kernel.check_symmetry()


def set_kernel_asymmetric(kernel: Kernel) -> Kernel:
    """
    Force a kernel to be treated as asymmetric.

    Needed for dynamic kernels, which may start with uniform parameters and
    become asymmetric during optimization, invalidating any simplified
    symmetric gradient expressions.
    """
    return kernel.set_asymmetric()


def is_symmetric_kernel(kernel: Kernel) -> bool:
    return kernel.is_symmetric()


def is_asymmetric_kernel(kernel: Kernel) -> bool:
    """True if the kernel is asymmetric, e.g. has per-point parameters."""
    return kernel.is_asymmetric()
