"""
測試共用設定：整個測試階段只初始化一次Taichi (CPU)
"""

# 設置Python路徑以便導入模組
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest

from init import initialize_taichi_once, is_taichi_initialized


@pytest.fixture(scope="session", autouse=True)
def setup_taichi():
    """設置Taichi測試環境"""
    initialize_taichi_once(arch="cpu", random_seed=42)
    assert is_taichi_initialized()
    yield


@pytest.fixture
def dye_blob():
    """64×64 中心高斯染料團 (RGBA)"""
    def make(width=64, height=64, center=(32, 32), sigma=3.0):
        x = np.arange(width)[:, None]
        y = np.arange(height)[None, :]
        blob = np.exp(-((x - center[0]) ** 2 + (y - center[1]) ** 2) / (2.0 * sigma ** 2))
        dye = np.zeros((width, height, 4), dtype=np.float32)
        dye[..., 0] = blob
        dye[..., 3] = 1.0
        return dye
    return make
