#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import json
import os
from typing import Dict, Optional

from piecespan.errors import ConfigurationError

OUTPUT_FORMATS = ("json", "pieces", "ids", "text")
LOG_LEVELS = ("debug", "info", "warning", "error")

DEFAULTS: Dict[str, object] = {
    "model": "",
    "encode_extra_options": "",
    "decode_extra_options": "",
    "output": "pieces",
    "nbest_size": 4,
    "alpha": 0.1,
    "seed": None,
    "log_file": "",
    "log_level": "warning",
}


def load_config(path: Optional[str]) -> Dict[str, object]:
    """Read a JSON config object. A missing file is an empty config."""
    if not path or not os.path.isfile(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as ex:
        raise ConfigurationError(f"cannot read config {path}: {ex}") from ex
    if not isinstance(data, dict):
        raise ConfigurationError(f"config {path} must contain a JSON object")
    unknown = sorted(k for k in data if k not in DEFAULTS)
    if unknown:
        raise ConfigurationError(f"unknown config keys in {path}: {', '.join(unknown)}")
    return data


def merge_config(
    defaults: Dict[str, object],
    file_cfg: Optional[Dict[str, object]] = None,
    cli: Optional[Dict[str, object]] = None,
) -> Dict[str, object]:
    """CLI values win over the file, the file wins over defaults. None on the CLI means "not given"."""
    cfg = dict(defaults)
    cfg.update(file_cfg or {})
    for key, value in (cli or {}).items():
        if value is not None:
            cfg[key] = value

    if cfg.get("output") not in OUTPUT_FORMATS:
        raise ConfigurationError(f"output must be one of {', '.join(OUTPUT_FORMATS)}")
    if str(cfg.get("log_level", "")).lower() not in LOG_LEVELS:
        raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
    try:
        cfg["nbest_size"] = int(cfg["nbest_size"])  # type: ignore[arg-type]
        cfg["alpha"] = float(cfg["alpha"])  # type: ignore[arg-type]
        if cfg.get("seed") is not None:
            cfg["seed"] = int(cfg["seed"])  # type: ignore[arg-type]
    except (TypeError, ValueError) as ex:
        raise ConfigurationError(f"invalid numeric config value: {ex}") from ex
    return cfg
