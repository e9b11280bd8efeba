"""Configuration management for kernel construction and gradient checks."""

import copy
from pathlib import Path
from typing import Any, Dict

import toml
import tomllib

from simkernels.kernels import Kernel, create_kernel
from simkernels.types import KernelType

VALID_KERNELS = [kernel_type.value for kernel_type in KernelType]

DEFAULT_CONFIG = {
    "kernel": {
        "type": "exp",
        "beta": 1.0,
        "alpha": 0.5,
        "dof": 1.0,
    },
    "gradient_check": {
        "step": 1e-4,
        "atol": 1e-6,
        "n_points": 20,
        "n_dims": 2,
        "seed": 42,
    },
}


def get_config_path() -> Path:
    """Get the path to config.toml."""
    return Path(__file__).parent.parent / "config.toml"


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load configuration from a TOML file.

    Parameters
    ----------
    path : Path, optional
        Config file location. Defaults to config.toml in the project root.

    Returns
    -------
    Dict[str, Any]
        Configuration dictionary
    """
    config_path = path if path is not None else get_config_path()

    if not config_path.exists():
        # Create default config if it doesn't exist
        save_config(DEFAULT_CONFIG, config_path)
        return get_default_config()

    with open(config_path, "rb") as f:
        config = tomllib.load(f)

    return config


def save_config(config: Dict[str, Any], path: Path | None = None) -> None:
    """
    Save configuration to a TOML file.

    Parameters
    ----------
    config : Dict[str, Any]
        Configuration dictionary to save
    path : Path, optional
        Config file location. Defaults to config.toml in the project root.
    """
    config_path = path if path is not None else get_config_path()

    with open(config_path, "w") as f:
        toml.dump(config, f)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_parameter(value: Any) -> bool:
    # A scalar, or one value per point
    if isinstance(value, list):
        return len(value) > 0 and all(_is_number(v) for v in value)
    return _is_number(value)


def _values(value: Any) -> list:
    return value if isinstance(value, list) else [value]


def validate_config(config: Dict[str, Any]) -> tuple[bool, str]:
    """
    Validate configuration values.

    Parameters
    ----------
    config : Dict[str, Any]
        Configuration dictionary to validate

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    # Validate kernel section
    if "kernel" not in config:
        return False, "Missing 'kernel' section"

    kernel = config["kernel"]
    if not isinstance(kernel, dict):
        return False, "'kernel' section must be a table"

    if kernel.get("type") not in VALID_KERNELS:
        return False, f"Invalid kernel type. Must be one of {VALID_KERNELS}"

    for name in ("beta", "alpha", "dof"):
        if name in kernel and not _is_parameter(kernel[name]):
            return False, f"{name} must be a number or a non-empty list of numbers"

    # The step cutoff is clamped to the data, so any value is usable there
    betas = _values(kernel.get("beta", 1.0))
    if kernel["type"] != "step" and any(v <= 0 for v in betas):
        return False, "beta must be positive"

    # Zero is allowed: it is clamped to the smallest usable tail heaviness
    if any(v < 0 for v in _values(kernel.get("alpha", 0.0))):
        return False, "alpha must be non-negative"

    if any(v <= 0 for v in _values(kernel.get("dof", 1.0))):
        return False, "dof must be positive"

    # Validate gradient check section
    if "gradient_check" not in config:
        return False, "Missing 'gradient_check' section"

    check = config["gradient_check"]
    if not isinstance(check, dict):
        return False, "'gradient_check' section must be a table"

    step = check.get("step")
    if not _is_number(step) or step <= 0:
        return False, "step must be a positive number"

    atol = check.get("atol")
    if not _is_number(atol) or atol <= 0:
        return False, "atol must be a positive number"

    n_points = check.get("n_points")
    if not isinstance(n_points, int) or n_points < 2:
        return False, "n_points must be an integer of at least 2"

    n_dims = check.get("n_dims")
    if not isinstance(n_dims, int) or n_dims < 1:
        return False, "n_dims must be a positive integer"

    if not isinstance(check.get("seed", 0), int):
        return False, "seed must be an integer"

    return True, ""


def get_default_config() -> Dict[str, Any]:
    """
    Get a copy of the default configuration.

    Returns
    -------
    Dict[str, Any]
        Default configuration dictionary
    """
    return copy.deepcopy(DEFAULT_CONFIG)


def kernel_from_config(config: Dict[str, Any]) -> Kernel:
    """
    Build the kernel described by the 'kernel' section of a configuration.

    Raises
    ------
    ValueError
        If the configuration is invalid
    """
    is_valid, error_message = validate_config(config)
    if not is_valid:
        raise ValueError(f"Invalid configuration: {error_message}")

    kernel = config["kernel"]
    params = {name: kernel[name] for name in ("beta", "alpha", "dof") if name in kernel}
    return create_kernel(kernel["type"], **params)
