"""Registered program targets.

Adapters are imported lazily so listing targets or planning cases does not
require the Solana SDK to be installed.
"""

from __future__ import annotations

import importlib
from typing import Dict, List

from cubench.benchmark.exceptions import ConfigurationError
from cubench.targets.base import ProgramAdapter

TARGETS: Dict[str, str] = {
    "manifest": "cubench.targets.manifest:ManifestAdapter",
    "phoenix": "cubench.targets.phoenix:PhoenixAdapter",
}


def available_targets() -> List[str]:
    return sorted(TARGETS)


def register_target(name: str, path: str) -> None:
    """Register ``module:Class`` under ``name``."""
    TARGETS[name] = path


def get_adapter(name: str) -> ProgramAdapter:
    try:
        path = TARGETS[name]
    except KeyError as exc:
        raise ConfigurationError(
            f"Unknown target {name!r}; available: {', '.join(available_targets())}",
            config_key="target",
            config_value=name,
            reason="unknown target",
        ) from exc
    module_path, _, attr = path.partition(":")
    module = importlib.import_module(module_path)
    adapter_cls = getattr(module, attr)
    return adapter_cls()
