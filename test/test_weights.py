"""
Tests for the raw weight functions and their closed-form gradients.

Tests cover:
- Weight values against their formulas, scalar and per-point parameters
- Step cutoff clamping and the identity no-op
- Heavy-tailed reduction to the exponential and t-distribution
- Monotonicity in the squared distance
- Gradients against torch autograd
"""

import pytest
import torch

from simkernels.types import Symmetry
from simkernels.weights import (
    ALPHA_FLOOR,
    WEIGHT_SYMMETRY,
    clamp_alpha,
    exp_gr,
    exp_weight,
    heavy_tail_gr,
    heavy_tail_weight,
    identity_gr,
    identity_weight,
    itsne_gr,
    itsne_weight,
    per_row,
    sqrt_exp_gr,
    sqrt_exp_weight,
    step_gr,
    step_weight,
    tdist_gr,
    tdist_weight,
)


class TestWeightValues:
    """Tests for weight function values."""

    def test_exp_weight(self, d2m):
        """Test exponential weights against the formula."""
        W = exp_weight(d2m, beta=2.0)
        assert torch.allclose(W, torch.exp(-2.0 * d2m))

    def test_exp_weight_diagonal_is_one(self, d2m):
        """Test self-similarity is one for zero distance."""
        W = exp_weight(d2m, beta=3.0)
        assert torch.allclose(torch.diagonal(W), torch.ones(d2m.shape[0], dtype=d2m.dtype))

    def test_sqrt_exp_weight(self, d2m):
        """Test distance-exponential weights use the unsquared distances."""
        W = sqrt_exp_weight(d2m, beta=0.5)
        assert torch.allclose(W, torch.exp(-0.5 * torch.sqrt(d2m)))

    def test_tdist_weight(self):
        """Test Student-t weights on known values."""
        d2m = torch.tensor([[0.0, 1.0], [1.0, 0.0]], dtype=torch.float64)
        expected = torch.tensor([[1.0, 0.5], [0.5, 1.0]], dtype=torch.float64)
        assert torch.allclose(tdist_weight(d2m), expected)

    def test_heavy_tail_weight(self, d2m):
        """Test heavy-tailed weights against the formula."""
        W = heavy_tail_weight(d2m, beta=2.0, alpha=0.5)
        assert torch.allclose(W, (0.5 * 2.0 * d2m + 1.0) ** (-1.0 / 0.5))

    def test_itsne_weight(self, d2m):
        """Test inhomogeneous weights against the formula."""
        W = itsne_weight(d2m, dof=3.0)
        assert torch.allclose(W, (1.0 + d2m / 3.0) ** (-0.5 * 4.0))

    def test_itsne_weight_dof_one_is_tdist(self, d2m):
        """Test one degree of freedom gives the t-SNE kernel."""
        assert torch.allclose(itsne_weight(d2m, dof=1.0), tdist_weight(d2m))

    def test_output_shape(self, d2m):
        """Test all weight functions preserve the input shape."""
        for W in [
            exp_weight(d2m),
            sqrt_exp_weight(d2m),
            tdist_weight(d2m),
            heavy_tail_weight(d2m),
            itsne_weight(d2m),
            step_weight(d2m),
            identity_weight(d2m),
        ]:
            assert W.shape == d2m.shape

    def test_input_not_modified(self, d2m):
        """Test weight functions are pure."""
        original = d2m.clone()
        exp_weight(d2m, beta=2.0)
        step_weight(d2m, beta=0.1)
        heavy_tail_weight(d2m, alpha=0.0)
        assert torch.equal(d2m, original)


class TestPerPointParameters:
    """Tests for row-wise application of per-point parameters."""

    def test_per_row_scalar(self, d2m):
        """Test single values become 0-dim tensors."""
        assert per_row(2.0, d2m).dim() == 0
        assert per_row(torch.tensor([2.0]), d2m).dim() == 0

    def test_per_row_vector(self, d2m, per_point):
        """Test vectors become column vectors."""
        assert per_row(per_point, d2m).shape == (d2m.shape[0], 1)

    def test_per_row_follows_dtype(self, d2m):
        """Test parameters take the dtype of the distances."""
        d2m32 = d2m.to(torch.float32)
        assert per_row(torch.tensor(1.0, dtype=torch.float64), d2m32).dtype == torch.float32

    def test_exp_weight_rows(self, d2m, per_point):
        """Test row i of the weights uses the parameter of point i."""
        W = exp_weight(d2m, beta=per_point)
        for i in range(d2m.shape[0]):
            assert torch.allclose(W[i], torch.exp(-per_point[i] * d2m[i]))

    def test_per_point_weights_asymmetric(self, d2m, per_point):
        """Test per-point parameters break the symmetry of the weights."""
        W = exp_weight(d2m, beta=per_point)
        assert not torch.allclose(W, W.t())

    def test_itsne_weight_rows(self, d2m, per_point):
        """Test row i of the inhomogeneous weights uses dof of point i."""
        W = itsne_weight(d2m, dof=per_point)
        for i in range(d2m.shape[0]):
            assert torch.allclose(W[i], itsne_weight(d2m[i], dof=per_point[i].item()))

    def test_length_mismatch_raises(self, d2m):
        """Test a parameter vector of the wrong length fails on combination."""
        beta = torch.ones(d2m.shape[0] + 1, dtype=torch.float64)
        with pytest.raises(RuntimeError):
            exp_weight(d2m, beta=beta)


class TestStepWeight:
    """Tests for the step weight and its cutoff clamp."""

    def test_cutoff_clamped_to_smallest_distance(self):
        """Test a cutoff below every distance keeps the nearest pairs."""
        d2m = torch.tensor([[0.0, 4.0], [4.0, 0.0]], dtype=torch.float64)
        W = step_weight(d2m, beta=1.0)
        assert torch.equal(W, torch.ones(2, 2, dtype=torch.float64))

    def test_cutoff_above_minimum(self):
        """Test entries above the cutoff get zero weight."""
        d2m = torch.tensor(
            [[0.0, 1.0, 9.0], [1.0, 0.0, 4.0], [9.0, 4.0, 0.0]], dtype=torch.float64
        )
        W = step_weight(d2m, beta=4.0)
        expected = torch.tensor(
            [[1.0, 1.0, 0.0], [1.0, 1.0, 1.0], [0.0, 1.0, 1.0]], dtype=torch.float64
        )
        assert torch.equal(W, expected)

    def test_inclusive_cutoff(self):
        """Test a distance equal to the cutoff gets weight one."""
        d2m = torch.tensor([[0.0, 2.0], [2.0, 0.0]], dtype=torch.float64)
        assert torch.equal(step_weight(d2m, beta=2.0), torch.ones(2, 2, dtype=torch.float64))

    def test_never_all_zero_off_diagonal(self, d2m):
        """Test every row keeps at least one neighbor for a tiny cutoff."""
        W = step_weight(d2m, beta=1e-12)
        off_diagonal = W.masked_fill(torch.eye(d2m.shape[0], dtype=torch.bool), 0.0)
        assert off_diagonal.sum() > 0

    def test_single_row(self):
        """Test a row of neighbor distances is clamped to its minimum."""
        distances = torch.tensor([3.0, 5.0, 8.0], dtype=torch.float64)
        W = step_weight(distances, beta=1.0)
        assert torch.equal(W, torch.tensor([1.0, 0.0, 0.0], dtype=torch.float64))

    def test_per_point_cutoff(self):
        """Test per-point cutoffs apply row-wise."""
        d2m = torch.tensor(
            [[0.0, 1.0, 9.0], [1.0, 0.0, 4.0], [9.0, 4.0, 0.0]], dtype=torch.float64
        )
        W = step_weight(d2m, beta=torch.tensor([9.0, 1.0, 4.0]))
        expected = torch.tensor(
            [[1.0, 1.0, 1.0], [1.0, 1.0, 0.0], [0.0, 1.0, 1.0]], dtype=torch.float64
        )
        assert torch.equal(W, expected)

    def test_values_binary(self, d2m):
        """Test step weights are only zero or one."""
        W = step_weight(d2m, beta=2.0)
        assert ((W == 0) | (W == 1)).all()

    def test_gradient_zero(self, d2m):
        """Test step gradient is zero everywhere."""
        assert torch.equal(step_gr(d2m), torch.zeros_like(d2m))


class TestIdentityWeight:
    """Tests for the no-op weighting."""

    def test_returns_input(self, d2m):
        """Test identity weights equal the squared distances exactly."""
        assert torch.equal(identity_weight(d2m), d2m)

    def test_gradient_is_one(self, d2m):
        """Test identity gradient is one everywhere."""
        assert torch.equal(identity_gr(d2m), torch.ones_like(d2m))


class TestHeavyTailLimits:
    """Tests for the limiting behaviour of the heavy-tailed weights."""

    def test_alpha_floor_value(self):
        """Test the floor is sqrt of float64 machine epsilon."""
        assert ALPHA_FLOOR == pytest.approx(1.4901161193847656e-08)

    def test_clamp_alpha(self):
        """Test zero and negative alpha are clamped, larger values untouched."""
        alpha = clamp_alpha(torch.tensor([0.0, -1.0, 0.5]))
        assert alpha[0].item() == ALPHA_FLOOR
        assert alpha[1].item() == ALPHA_FLOOR
        assert alpha[2].item() == 0.5

    @pytest.mark.parametrize("beta", [0.5, 1.0, 2.0])
    def test_floor_matches_exp(self, d2m, beta):
        """Test alpha at its floor reproduces the exponential weights."""
        W_heavy = heavy_tail_weight(d2m, beta=beta, alpha=ALPHA_FLOOR)
        W_exp = exp_weight(d2m, beta=beta)
        assert torch.allclose(W_heavy, W_exp, atol=1e-6)

    def test_zero_alpha_matches_exp(self, d2m):
        """Test alpha = 0 is treated as the exponential limit, not a failure."""
        W_heavy = heavy_tail_weight(d2m, beta=1.0, alpha=0.0)
        assert torch.isfinite(W_heavy).all()
        assert torch.allclose(W_heavy, exp_weight(d2m, beta=1.0), atol=1e-6)

    def test_floor_matches_exp_float32(self, d2m):
        """Test the exponential limit also holds for float32 distances."""
        d2m32 = d2m.float()
        W_heavy = heavy_tail_weight(d2m32, beta=1.0, alpha=0.0)
        gr_heavy = heavy_tail_gr(d2m32, beta=1.0, alpha=0.0)

        assert W_heavy.dtype == torch.float32
        assert gr_heavy.dtype == torch.float32
        assert torch.allclose(W_heavy, exp_weight(d2m32, beta=1.0), atol=1e-6)
        assert torch.allclose(gr_heavy, exp_gr(d2m32, beta=1.0), atol=1e-6)

    def test_alpha_one_matches_tdist(self, d2m):
        """Test alpha = 1 with beta = 1 is the t-distribution."""
        W_heavy = heavy_tail_weight(d2m, beta=1.0, alpha=1.0)
        assert torch.allclose(W_heavy, tdist_weight(d2m))


class TestMonotonicity:
    """Tests that larger distances never give larger weights."""

    @pytest.mark.parametrize(
        "weight_fn",
        [
            lambda d: exp_weight(d, beta=1.5),
            lambda d: sqrt_exp_weight(d, beta=1.5),
            tdist_weight,
            lambda d: heavy_tail_weight(d, beta=1.5, alpha=0.5),
            lambda d: itsne_weight(d, dof=2.5),
        ],
    )
    def test_non_increasing(self, weight_fn):
        """Test weights are non-increasing along sorted distances."""
        distances = torch.linspace(0.0, 50.0, 501, dtype=torch.float64)
        W = weight_fn(distances)
        assert (W[1:] <= W[:-1]).all()


class TestGradientsAutograd:
    """Tests for closed-form gradients against torch autograd."""

    @pytest.mark.parametrize(
        "weight_fn, gr_fn",
        [
            (lambda d: exp_weight(d, beta=1.5), lambda d: exp_gr(d, beta=1.5)),
            (lambda d: sqrt_exp_weight(d, beta=1.5), lambda d: sqrt_exp_gr(d, beta=1.5)),
            (tdist_weight, tdist_gr),
            (
                lambda d: heavy_tail_weight(d, beta=1.5, alpha=0.5),
                lambda d: heavy_tail_gr(d, beta=1.5, alpha=0.5),
            ),
            (lambda d: itsne_weight(d, dof=2.5), lambda d: itsne_gr(d, dof=2.5)),
        ],
    )
    def test_matches_autograd(self, d2m, off_diagonal, weight_fn, gr_fn):
        """Test elementwise gradient matches autograd of the summed weights."""
        d = d2m.clone().requires_grad_(True)
        weight_fn(d).sum().backward()
        assert d.grad is not None

        expected = d.grad[off_diagonal]
        actual = gr_fn(d2m)[off_diagonal]
        assert torch.allclose(actual, expected, atol=1e-10)

    def test_sqrt_exp_gradient_singular_at_zero(self):
        """Test sqrt-exponential gradient is -inf at zero distance."""
        gr = sqrt_exp_gr(torch.zeros(1, dtype=torch.float64))
        assert torch.isinf(gr).all()


class TestStaticSymmetry:
    """Tests for the static classification of the raw weight functions."""

    def test_itsne_asymmetric(self):
        """Test the inhomogeneous weight function is tagged asymmetric."""
        assert WEIGHT_SYMMETRY["itsne_weight"] == Symmetry.ASYMMETRIC

    def test_others_symmetric(self):
        """Test the remaining classified weight functions are symmetric."""
        for name in [
            "exp_weight",
            "sqrt_exp_weight",
            "tdist_weight",
            "heavy_tail_weight",
            "identity_weight",
        ]:
            assert WEIGHT_SYMMETRY[name] == Symmetry.SYMMETRIC

    def test_read_only(self):
        """Test the classification cannot be mutated."""
        with pytest.raises(TypeError):
            WEIGHT_SYMMETRY["exp_weight"] = Symmetry.ASYMMETRIC  # type: ignore
