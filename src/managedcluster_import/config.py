"""Config file loading and auto-discovery for managedcluster-import.

Searches for ``import-controller.yaml`` in the current directory and parent
directories, parses it, and resolves a relative kubeconfig path against the
config file's location.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "import-controller.yaml"

DEFAULT_AUTO_IMPORT_MAX_RETRY = 5
DEFAULT_AUTO_IMPORT_REQUEUE_SECONDS = 10.0
DEFAULT_EXPECTED_KLUSTERLET_WORKS = 2
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_CONCURRENT_RECONCILES = 4


@dataclass(frozen=True)
class ImportControllerConfig:
    """Parsed controller configuration."""

    config_path: Path | None = None
    auto_import_max_retry: int = DEFAULT_AUTO_IMPORT_MAX_RETRY
    auto_import_requeue_seconds: float = DEFAULT_AUTO_IMPORT_REQUEUE_SECONDS
    expected_klusterlet_works: int = DEFAULT_EXPECTED_KLUSTERLET_WORKS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_concurrent_reconciles: int = DEFAULT_MAX_CONCURRENT_RECONCILES
    kubeconfig: str | None = None
    context: str | None = None
    in_cluster: bool = False
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["config_path"] = str(self.config_path) if self.config_path else None
        return data


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``import-controller.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> ImportControllerConfig:
    """Load a controller config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``ImportControllerConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return ImportControllerConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> ImportControllerConfig:
    """Read and parse a YAML config file."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    kubeconfig = data.get("kubeconfig")
    if kubeconfig is not None:
        kubeconfig = str((config_path.parent / Path(kubeconfig).expanduser()).resolve())

    return ImportControllerConfig(
        config_path=config_path,
        auto_import_max_retry=_non_negative_int(
            data, "auto_import_max_retry", DEFAULT_AUTO_IMPORT_MAX_RETRY,
        ),
        auto_import_requeue_seconds=_positive_float(
            data, "auto_import_requeue_seconds", DEFAULT_AUTO_IMPORT_REQUEUE_SECONDS,
        ),
        expected_klusterlet_works=_non_negative_int(
            data, "expected_klusterlet_works", DEFAULT_EXPECTED_KLUSTERLET_WORKS,
        ),
        request_timeout=_positive_float(data, "request_timeout", DEFAULT_REQUEST_TIMEOUT),
        max_concurrent_reconciles=max(
            1,
            _non_negative_int(
                data, "max_concurrent_reconciles", DEFAULT_MAX_CONCURRENT_RECONCILES,
            ),
        ),
        kubeconfig=kubeconfig,
        context=data.get("context"),
        in_cluster=bool(data.get("in_cluster", False)),
        log_level=str(data.get("log_level", "INFO")).upper(),
    )


def _non_negative_int(data: dict[str, Any], key: str, default: int) -> int:
    val = data.get(key, default)
    if isinstance(val, bool) or not isinstance(val, int) or val < 0:
        msg = f"'{key}' must be a non-negative integer, got {val!r}"
        raise ValueError(msg)
    return val


def _positive_float(data: dict[str, Any], key: str, default: float) -> float:
    val = data.get(key, default)
    if isinstance(val, bool) or not isinstance(val, int | float) or val <= 0:
        msg = f"'{key}' must be a positive number, got {val!r}"
        raise ValueError(msg)
    return float(val)
