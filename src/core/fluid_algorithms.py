"""
穩定流體統一算法庫 - Taichi kernels
==================================

每個kernel對所有格點做一次資料平行運算，格點之間沒有寫入依賴：
每個格點只寫入自己在 target 中的位置，只讀取 source 類的場。

邊界條件：所有鄰居讀取與回溯取樣都夾取到最近的合法格點
(Neumann型邊界，不做週期性環繞)。

座標慣例：格點 (i, j) 的位置就是 (i, j)，因此零位移的雙線性取樣
恰好回傳原值。
"""

import taichi as ti


# ===========================================
# 取樣函數
# ===========================================

@ti.func
def fetch_clamped(field: ti.template(), i, j):
    """越界索引夾取到最近的合法格點"""
    ii = ti.max(0, ti.min(field.shape[0] - 1, i))
    jj = ti.max(0, ti.min(field.shape[1] - 1, j))
    return field[ii, jj]


@ti.func
def sample_bilinear(field: ti.template(), x, y):
    """
    雙線性插值取樣

    取樣位置先夾取到 [0, W-1] × [0, H-1]，因此落在網格外的回溯位置
    取得最近邊緣格點的值。
    """
    max_x = ti.cast(field.shape[0] - 1, ti.f32)
    max_y = ti.cast(field.shape[1] - 1, ti.f32)
    px = ti.max(0.0, ti.min(max_x, x))
    py = ti.max(0.0, ti.min(max_y, y))

    # 非有限的回溯位置也不可產生越界索引
    i0 = ti.max(0, ti.min(field.shape[0] - 1, ti.cast(ti.floor(px), ti.i32)))
    j0 = ti.max(0, ti.min(field.shape[1] - 1, ti.cast(ti.floor(py), ti.i32)))
    i1 = ti.min(i0 + 1, field.shape[0] - 1)
    j1 = ti.min(j0 + 1, field.shape[1] - 1)

    fx = px - ti.cast(i0, ti.f32)
    fy = py - ti.cast(j0, ti.f32)

    bottom = field[i0, j0] * (1.0 - fx) + field[i1, j0] * fx
    top = field[i0, j1] * (1.0 - fx) + field[i1, j1] * fx
    return bottom * (1.0 - fy) + top * fy


# ===========================================
# 階段kernels
# ===========================================

@ti.kernel
def copy_kernel(source: ti.types.ndarray(), target: ti.types.ndarray()):
    for i, j in ti.ndrange(target.shape[0], target.shape[1]):
        target[i, j] = source[i, j]


@ti.kernel
def advect_kernel(velocity: ti.types.ndarray(), source: ti.types.ndarray(),
                  target: ti.types.ndarray(), trace_scale: ti.f32):
    """
    半拉格朗日回溯

    pos' = pos - dt * scale * u(pos)，在 source 上以雙線性取樣。
    trace_scale = dt * scale 由主機端預先計算。
    """
    for i, j in ti.ndrange(target.shape[0], target.shape[1]):
        u = velocity[i, j]
        x = ti.cast(i, ti.f32) - trace_scale * u[0]
        y = ti.cast(j, ti.f32) - trace_scale * u[1]
        target[i, j] = sample_bilinear(source, x, y)


@ti.kernel
def interaction_force_kernel(source: ti.types.ndarray(), target: ti.types.ndarray(),
                             cx: ti.f32, cy: ti.f32, ix: ti.f32, iy: ti.f32,
                             inv_radius_sq: ti.f32):
    """游標注入：u += impulse * exp(-d² / r²)，d=0 時權重為1"""
    for i, j in ti.ndrange(target.shape[0], target.shape[1]):
        dx = ti.cast(i, ti.f32) - cx
        dy = ti.cast(j, ti.f32) - cy
        w = ti.exp(-(dx * dx + dy * dy) * inv_radius_sq)
        target[i, j] = source[i, j] + ti.Vector([ix, iy]) * w


@ti.kernel
def divergence_kernel(velocity: ti.types.ndarray(), target: ti.types.ndarray()):
    """中心差分散度: ((ux(x+1)-ux(x-1)) + (uy(y+1)-uy(y-1))) / 2"""
    for i, j in ti.ndrange(target.shape[0], target.shape[1]):
        left = fetch_clamped(velocity, i - 1, j)
        right = fetch_clamped(velocity, i + 1, j)
        bottom = fetch_clamped(velocity, i, j - 1)
        top = fetch_clamped(velocity, i, j + 1)
        target[i, j] = 0.5 * ((right[0] - left[0]) + (top[1] - bottom[1]))


@ti.kernel
def jacobi_pressure_kernel(pressure: ti.types.ndarray(), divergence: ti.types.ndarray(),
                           target: ti.types.ndarray(),
                           alpha: ti.f32, beta: ti.f32, inv_scale: ti.f32):
    """
    Jacobi鬆弛一次

    p' = beta * (alpha * (pL + pR + pB + pT) - div / scale)
    alpha=1, beta=1/4 時即為 ∇²p = div / scale 的五點Jacobi迭代。
    只讀取上一次迭代的 pressure，寫入 target。
    """
    for i, j in ti.ndrange(target.shape[0], target.shape[1]):
        neighbours = (fetch_clamped(pressure, i - 1, j) + fetch_clamped(pressure, i + 1, j)
                      + fetch_clamped(pressure, i, j - 1) + fetch_clamped(pressure, i, j + 1))
        target[i, j] = beta * (alpha * neighbours - divergence[i, j] * inv_scale)


@ti.kernel
def subtract_gradient_kernel(velocity: ti.types.ndarray(), pressure: ti.types.ndarray(),
                             target: ti.types.ndarray(),
                             scale: ti.f32):
    """投影: u' = u - scale * ∇p，梯度使用與散度相同的中心差分"""
    for i, j in ti.ndrange(target.shape[0], target.shape[1]):
        gx = 0.5 * (fetch_clamped(pressure, i + 1, j) - fetch_clamped(pressure, i - 1, j))
        gy = 0.5 * (fetch_clamped(pressure, i, j + 1) - fetch_clamped(pressure, i, j - 1))
        target[i, j] = velocity[i, j] - scale * ti.Vector([gx, gy])
