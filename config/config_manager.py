"""
config_manager.py

統一設定載入器：從 YAML 讀取使用者設定，安全地覆蓋 config 模組中允許的參數。

使用方式（於主程式最早期呼叫，建立求解器前）：

    import config.config as config
    from config.config_manager import apply_overrides
    apply_overrides(config)

可用環境變數：
- STABLE_FLUID_CONFIG: 指定 YAML 路徑（預設: config/config.yaml）
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Tuple

import yaml


DEFAULT_CONFIG_PATH = os.environ.get(
    "STABLE_FLUID_CONFIG", os.path.join(os.path.dirname(__file__), "config.yaml")
)


# 禁止覆寫的參數（數值保護常數）
PROHIBITED = {
    "EPSILON",
}

# YAML -> config 模組屬性映射
MAPPING: Dict[str, str] = {
    # domain
    "domain.nx": "NX",
    "domain.ny": "NY",
    "domain.display_scale": "DISPLAY_SCALE",
    # pressure solve
    "pressure.iterations": "PRESSURE_ITERATIONS",
    "pressure.alpha": "PRESSURE_ALPHA",
    "pressure.beta": "PRESSURE_BETA",
    # interaction
    "force.attenuation": "FORCE_ATTENUATION",
    "force.radius": "FORCE_RADIUS",
    # seeding
    "seed.velocity_min": "VELOCITY_SEED_MIN",
    "seed.velocity_max": "VELOCITY_SEED_MAX",
    "seed.velocity_noise_scale": "VELOCITY_NOISE_SCALE",
    "seed.dye": "SEED_DYE",
    "seed.dye_noise_scale": "DYE_NOISE_SCALE",
    # simulation
    "simulation.arch": "TAICHI_ARCH",
    "simulation.target_fps": "TARGET_FPS",
    "simulation.max_steps": "MAX_STEPS",
    "simulation.output_freq": "OUTPUT_FREQ",
    "simulation.diag_freq": "DIAG_FREQ",
    "simulation.check_stability": "CHECK_STABILITY",
    "simulation.results_dir": "RESULTS_DIR",
}


def _flatten(d: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in d.items():
        key = f"{prefix}.{k}" if prefix else k
        if isinstance(v, dict):
            out.update(_flatten(v, key))
        else:
            out[key] = v
    return out


def _load_yaml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _coerce(old: Any, new: Any) -> Any:
    # bool 必須先於 int 判斷
    if isinstance(old, bool):
        return bool(new)
    if isinstance(old, int):
        return int(new)
    if isinstance(old, float):
        return float(new)
    return new


def apply_overrides(config_module, path: Optional[str] = None, verbose: bool = True) -> List[Tuple[str, str, Any, Any]]:
    """讀取YAML並套用允許的覆寫到 config 模組。

    必須在任何求解器/場初始化之前呼叫（即在 main.py 開頭）。
    返回已套用的 (yaml鍵, 屬性, 舊值, 新值) 列表。
    """
    path = path or DEFAULT_CONFIG_PATH
    data = _load_yaml(path)
    if not data:
        if verbose:
            print(f"⚙️  使用預設設定（未找到或未讀取: {path}）")
        return []

    flat = _flatten(data)
    applied = []
    skipped = []

    for ykey, value in flat.items():
        attr = MAPPING.get(ykey)
        if attr is None:
            skipped.append((ykey, "-", "unmapped"))
            continue
        if attr in PROHIBITED:
            skipped.append((ykey, attr, "prohibited"))
            continue
        if not hasattr(config_module, attr):
            skipped.append((ykey, attr, "unknown"))
            continue
        old = getattr(config_module, attr)
        try:
            new_val = _coerce(old, value)
        except (TypeError, ValueError):
            skipped.append((ykey, attr, "type"))
            continue
        setattr(config_module, attr, new_val)
        applied.append((ykey, attr, old, new_val))

    if verbose and applied:
        print("🧩 套用YAML覆寫：")
        for ykey, attr, old, new in applied:
            if old != new:
                print(f"   - {ykey} → {attr}: {old} → {new}")
    if verbose and skipped:
        print("ℹ️  略過的設定：")
        for ykey, attr, reason in skipped:
            print(f"   - {ykey} → {attr} ({reason})")

    return applied
