import sys

import torch

from simkernels.config import kernel_from_config, load_config, validate_config
from simkernels.gradcheck import check_kernels
from simkernels.kernels import (
    exp_kernel,
    heavy_tail_kernel,
    itsne_kernel,
    no_kernel,
    sqrt_exp_kernel,
    tdist_kernel,
)
from simkernels.matrices import off_diagonal_mask, random_squared_distances


def main() -> int:
    print("Hello from simkernels!")

    config = load_config()
    is_valid, error_message = validate_config(config)
    if not is_valid:
        print(f"Invalid config.toml: {error_message}")
        return 1

    check_config = config["gradient_check"]
    n_points = check_config["n_points"]

    generator = torch.Generator().manual_seed(check_config["seed"])
    d2m = random_squared_distances(n_points, check_config["n_dims"], generator=generator)
    print(f"Squared distance matrix shape: {tuple(d2m.shape)}, dtype: {d2m.dtype}")

    # Per-point parameters, as produced by a bandwidth search
    betas = torch.rand(n_points, generator=generator, dtype=torch.float64) + 0.5
    dofs = torch.rand(n_points, generator=generator, dtype=torch.float64) + 0.5

    kernels = [
        kernel_from_config(config),
        exp_kernel(),
        exp_kernel(betas),
        sqrt_exp_kernel(),
        tdist_kernel(),
        heavy_tail_kernel(alpha=0.5),
        heavy_tail_kernel(betas, 1.0),
        itsne_kernel(),
        itsne_kernel(dofs),
        no_kernel(),
    ]

    print(f"\n{'=' * 60}")
    print("Checking analytic gradients against finite differences")
    print(f"{'=' * 60}")

    # sqrt_exp has no gradient at zero distance and large derivatives close to it
    mask = off_diagonal_mask(n_points) & (d2m > 0.1)
    results = check_kernels(
        kernels,
        d2m,
        diff=check_config["step"],
        atol=check_config["atol"],
        mask=mask,
    )

    for kernel, result in zip(kernels, results):
        status = "ok" if result.passed else "FAILED"
        print(f"{kernel!r}: max abs error={result.max_abs_error:.3e} {status}")

    return 0 if all(result.passed for result in results) else 1


if __name__ == "__main__":
    sys.exit(main())
