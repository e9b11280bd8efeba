"""Type definitions and enums for the similarity kernel module."""

from enum import Enum


class Symmetry(Enum):
    """Symmetry classification of a weight function or kernel."""

    SYMMETRIC = "symm"  # Same parameters from every point's perspective
    ASYMMETRIC = "asymm"  # Parameters vary per point


class KernelType(Enum):
    """Similarity kernel families."""

    EXP = "exp"  # Exponential (Gaussian on distances), used in SNE
    SQRT_EXP = "sqrt_exp"  # Exponential on (unsquared) distances
    TDIST = "tdist"  # Student-t with one degree of freedom, used in t-SNE
    HEAVY = "heavy"  # Heavy-tailed generalization of exp and tdist
    INHOMOGENEOUS = "inhomogeneous"  # Student-t with variable degrees of freedom
    STEP = "step"  # k-nearest-neighbor style step function
    NONE = "none"  # Identity: distances are used unchanged
