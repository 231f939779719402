#!/usr/bin/env python3
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

_BASE_DIR = Path(__file__).resolve().parent
_CONFIG_PATH = Path(os.environ.get("CONQUEST_CONFIG", _BASE_DIR / "config" / "sim_config.json"))


def _load_config(path: Path = _CONFIG_PATH) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


SIM_CONFIG: Dict[str, Any] = _load_config()
AI_CONFIG: Dict[str, Any] = SIM_CONFIG.get("ai", {})
