"""
Global configuration for the cluster simulator.

This module contains environment-specific settings that apply across all subpackages.
"""

import os

_SUPPORTED_ENVS: list[str] = ["prod", "test"]

LES_SIM_ENV = os.environ.get("LES_SIM_ENV", "prod").lower()
"""The environment flag ('prod' or 'test'). Defaults to 'prod'."""

if LES_SIM_ENV not in _SUPPORTED_ENVS:
    raise ValueError(
        f"Invalid LES_SIM_ENV environment variable: '{LES_SIM_ENV}'. "
        f"Supported values: {_SUPPORTED_ENVS}"
    )
