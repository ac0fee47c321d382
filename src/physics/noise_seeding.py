# noise_seeding.py
"""
噪聲種子場

以二維Perlin梯度噪聲產生平滑的偽隨機場，用於初始化速度與染料。
- 每個通道使用 (125·c, 3021·c) 的座標偏移，使通道互不相關
- 噪聲值 [0, 1] 線性插值到 [min, max]
- 相同的 NoiseOrigin (原點與置換表種子) 產生相同的場
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from src.core.fields import Field, FieldKind

CHANNEL_OFFSET_X = 125.0
CHANNEL_OFFSET_Y = 3021.0

_KINDS = {1: FieldKind.SCALAR, 2: FieldKind.VEC2, 4: FieldKind.VEC4}


@dataclass(frozen=True)
class NoiseOrigin:
    """噪聲原點狀態"""
    x: float = 0.0
    y: float = 0.0
    seed: int = 0


def _fade(t):
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def perlin_noise(x: np.ndarray, y: np.ndarray, seed: int = 0) -> np.ndarray:
    """向量化2D Perlin噪聲，輸出約在 [0, 1]"""
    rng = np.random.default_rng(seed)
    perm = rng.permutation(256)
    perm = np.concatenate([perm, perm])
    angles = rng.uniform(0.0, 2.0 * np.pi, 256)
    gradients = np.stack([np.cos(angles), np.sin(angles)], axis=-1)

    xi = np.floor(x).astype(np.int64)
    yi = np.floor(y).astype(np.int64)
    xf = x - xi
    yf = y - yi
    xi &= 255
    yi &= 255

    def corner(dx, dy):
        h = perm[perm[(xi + dx) & 255] + ((yi + dy) & 255)]
        g = gradients[h]
        return g[..., 0] * (xf - dx) + g[..., 1] * (yf - dy)

    u = _fade(xf)
    v = _fade(yf)
    n00 = corner(0, 0)
    n10 = corner(1, 0)
    n01 = corner(0, 1)
    n11 = corner(1, 1)
    nx0 = n00 + u * (n10 - n00)
    nx1 = n01 + u * (n11 - n01)
    n = nx0 + v * (nx1 - nx0)
    # 單位梯度的2D Perlin值域為 [-√2/2, √2/2]
    return np.clip(n * np.sqrt(2.0) * 0.5 + 0.5, 0.0, 1.0)


def seed_array(width: int, height: int, min_value: float, max_value: float, scale: float = 1.0,
               components: int = 1, origin: Optional[NoiseOrigin] = None) -> np.ndarray:
    """
    產生平滑偽隨機陣列

    Args:
        width, height: 網格尺寸
        min_value, max_value: 輸出範圍
        scale: 整個網格橫跨的噪聲晶格數
        components: 通道數 (1, 2, 4)
        origin: 噪聲原點，決定輸出

    Returns:
        components == 1 時形狀 (W, H)，否則 (W, H, components)
    """
    origin = origin or NoiseOrigin()
    xs = np.arange(width, dtype=np.float64)[:, None] / width * scale
    ys = np.arange(height, dtype=np.float64)[None, :] / height * scale
    xs, ys = np.broadcast_arrays(xs, ys)

    channels = []
    for c in range(components):
        sample = perlin_noise(origin.x + xs + CHANNEL_OFFSET_X * c,
                              origin.y + ys + CHANNEL_OFFSET_Y * c,
                              seed=origin.seed)
        channels.append(min_value + (max_value - min_value) * sample)

    if components == 1:
        return channels[0].astype(np.float32)
    return np.stack(channels, axis=-1).astype(np.float32)


def seed_field(width: int, height: int, min_value: float, max_value: float, scale: float = 1.0,
               components: int = 1, origin: Optional[NoiseOrigin] = None) -> Field:
    """產生平滑偽隨機場 (新配置的 Field，呼叫端負責釋放)"""
    if components not in _KINDS:
        raise ValueError(f"不支援的通道數: {components}")
    field = Field(width, height, _KINDS[components], name="seed")
    field.from_numpy(seed_array(width, height, min_value, max_value, scale, components, origin))
    return field
