# config/__init__.py - 統一配置系統入口
"""
穩定流體模擬配置入口

- config.config: 核心預設參數
- config.config_manager: YAML覆寫
"""

from . import config
from .config import validate_core_parameters, get_core_summary
from .config_manager import apply_overrides, DEFAULT_CONFIG_PATH

__all__ = [
    "config",
    "validate_core_parameters",
    "get_core_summary",
    "apply_overrides",
    "DEFAULT_CONFIG_PATH",
]
