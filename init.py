# init.py
"""
Taichi初始化模組
統一的後端選擇：優先GPU，失敗時回落到CPU，整個行程只初始化一次
"""

import logging

import taichi as ti

logger = logging.getLogger('StableFluid.Init')

# 全域變數追蹤初始化狀態
_taichi_initialized = False
_active_arch = None

_ARCHES = {
    "gpu": ti.gpu,
    "cpu": ti.cpu,
    "cuda": ti.cuda,
    "metal": ti.metal,
    "vulkan": ti.vulkan,
}


def resolve_arch(name: str):
    """將設定字串轉換為Taichi後端"""
    try:
        return _ARCHES[name.lower()]
    except KeyError:
        raise ValueError(f"不支援的Taichi後端: {name} (可用: {', '.join(_ARCHES)})") from None


def initialize_taichi_once(arch: str = "gpu", random_seed: int = 0) -> str:
    """統一的Taichi初始化函數 - 避免重複初始化

    Returns:
        實際使用的後端名稱
    """
    global _taichi_initialized, _active_arch

    if _taichi_initialized:
        logger.debug("✓ Taichi已初始化，跳過重複初始化")
        return _active_arch

    requested = resolve_arch(arch)
    # NaN/Inf 檢查需要嚴格的IEEE語義，因此不開啟 fast_math
    try:
        ti.init(arch=requested, default_fp=ti.f32, fast_math=False,
                random_seed=random_seed, offline_cache=True)
        _active_arch = arch.lower()
    except Exception as e:
        if requested == ti.cpu:
            raise
        logger.warning(f"⚠️  {arch} 後端初始化失敗 ({e})，回落到CPU")
        ti.init(arch=ti.cpu, default_fp=ti.f32, fast_math=False,
                random_seed=random_seed, offline_cache=True)
        _active_arch = "cpu"

    _taichi_initialized = True
    logger.info(f"✓ Taichi初始化完成 (arch={_active_arch})")
    return _active_arch


def is_taichi_initialized() -> bool:
    return _taichi_initialized
