# config.py - 穩定流體模擬預設參數
"""
穩定流體 (Stable Fluids) 模擬核心參數

參數在初始化時綁定為 SimulationParameters，執行期間不再以名稱查找。
YAML覆寫由 config.config_manager.apply_overrides 套用於本模組。
"""

import math

# ==============================================
# 網格參數
# ==============================================

NX = 128                 # 模擬網格寬度 (格點)
NY = 128                 # 模擬網格高度 (格點)
DISPLAY_SCALE = 1.0      # 模擬網格 / 顯示尺寸比例 (游標座標 → 網格座標)

# ==============================================
# 壓力求解 (Jacobi)
# ==============================================

PRESSURE_ITERATIONS = 20     # 固定迭代次數，以精度換取穩定的幀時間
PRESSURE_ALPHA = 1.0         # 鄰居和權重
PRESSURE_BETA = 0.25         # 正規化係數 (1/4 對應五點Laplacian)

# ==============================================
# 互動外力
# ==============================================

FORCE_ATTENUATION = 1.0      # 注入速度衰減係數 (0, 1]
FORCE_RADIUS = 4.0           # 高斯衰減半徑 (格點)

# ==============================================
# 初始場 (噪聲種子)
# ==============================================

VELOCITY_SEED_MIN = -1.0
VELOCITY_SEED_MAX = 1.0
VELOCITY_NOISE_SCALE = 4.0   # 噪聲晶格數 (越大越細碎)
SEED_DYE = True
DYE_NOISE_SCALE = 6.0

# ==============================================
# 執行與輸出
# ==============================================

TAICHI_ARCH = "gpu"          # gpu | cpu | cuda | metal | vulkan
TARGET_FPS = 60.0
MAX_STEPS = 600
OUTPUT_FREQ = 60             # 每N步輸出一次快照 (0 = 不輸出)
DIAG_FREQ = 10               # 每N步更新一次診斷
CHECK_STABILITY = True       # 每步檢查NaN/Inf
RESULTS_DIR = "results"

# 數值保護 (外力半徑²與顯示比例的除法下限，綁定到 SimulationParameters.epsilon)
EPSILON = 1e-8


def validate_core_parameters():
    """核心參數驗證，返回 (是否通過, 錯誤列表)"""
    errors = []

    if NX <= 0 or NY <= 0:
        errors.append(f"網格尺寸必須為正值: {NX}×{NY}")
    if PRESSURE_ITERATIONS < 1:
        errors.append(f"壓力迭代次數必須 ≥ 1: {PRESSURE_ITERATIONS}")
    if not (0.0 < FORCE_ATTENUATION <= 1.0):
        errors.append(f"衰減係數必須在 (0, 1]: {FORCE_ATTENUATION}")
    if FORCE_RADIUS <= 0.0:
        errors.append(f"外力半徑必須為正值: {FORCE_RADIUS}")
    if DISPLAY_SCALE <= 0.0:
        errors.append(f"顯示比例必須為正值: {DISPLAY_SCALE}")
    if VELOCITY_SEED_MIN > VELOCITY_SEED_MAX:
        errors.append(f"速度種子範圍錯誤: [{VELOCITY_SEED_MIN}, {VELOCITY_SEED_MAX}]")
    if not math.isfinite(PRESSURE_ALPHA) or not math.isfinite(PRESSURE_BETA):
        errors.append("Jacobi 權重必須為有限值")
    if not EPSILON > 0.0:
        errors.append(f"數值下限必須為正值: {EPSILON}")

    return len(errors) == 0, errors


def get_core_summary():
    """獲取核心參數摘要"""
    return {
        'grid': (NX, NY),
        'cells': NX * NY,
        'display_scale': DISPLAY_SCALE,
        'pressure_iterations': PRESSURE_ITERATIONS,
        'jacobi_weights': (PRESSURE_ALPHA, PRESSURE_BETA),
        'force': {'attenuation': FORCE_ATTENUATION, 'radius': FORCE_RADIUS},
        'arch': TAICHI_ARCH,
    }
