"""Sub-pixel sampling, bilinear resizing and image pyramids for grey images."""

from __future__ import annotations

import math

import numpy as np


def _gray(img) -> np.ndarray:
    a = np.asarray(img)
    if a.ndim != 2:
        raise ValueError("expected a single-channel (2D) image")
    if a.size == 0:
        raise ValueError("image is empty")
    return a


def pixel_value_clamped(img, x: float, y: float) -> float:
    """Bilinear sample with coordinates clamped to the image.

    Neighbours are read from the row-major pixel buffer, so a sample in the
    last column blends with the first pixel of the next row; reads past the
    end of the buffer use its last pixel.
    """
    a = _gray(img)
    rows, cols = a.shape
    x, y = float(x), float(y)
    if x < 0:
        x = 0.0
    if y < 0:
        y = 0.0
    if x >= cols:
        x = cols - 1.0
    if y >= rows:
        y = rows - 1.0

    flat = a.ravel()
    last = flat.size - 1
    base = int(y) * cols + int(x)
    xx = x - math.floor(x)
    yy = y - math.floor(y)

    def at(index: int) -> float:
        return float(flat[min(index, last)])

    return (
        (1 - xx) * (1 - yy) * at(base)
        + xx * (1 - yy) * at(base + 1)
        + (1 - xx) * yy * at(base + cols)
        + xx * yy * at(base + cols + 1)
    )


def pixel_value(img, x: float, y: float) -> float:
    """Bilinear sample that keeps the 2x2 neighbourhood inside the image."""
    a = _gray(img)
    rows, cols = a.shape
    if rows < 2 or cols < 2:
        raise ValueError("image must be at least 2x2")
    x, y = float(x), float(y)
    if x < 0:
        x = 0.0
    if y < 0:
        y = 0.0
    if x >= cols - 1:
        x = cols - 2.0
    if y >= rows - 1:
        y = rows - 2.0

    xx = x - math.floor(x)
    yy = y - math.floor(y)
    xi, yi = int(x), int(y)
    x_a1 = min(cols - 1, xi + 1)
    y_a1 = min(rows - 1, yi + 1)

    return (
        (1 - xx) * (1 - yy) * float(a[yi, xi])
        + xx * (1 - yy) * float(a[yi, x_a1])
        + (1 - xx) * yy * float(a[y_a1, xi])
        + xx * yy * float(a[y_a1, x_a1])
    )


def _axis_weights(src_len: int, dst_len: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    scale = src_len / dst_len
    s = (np.arange(dst_len) + 0.5) * scale - 0.5
    i0 = np.floor(s).astype(int)
    frac = s - i0
    low = i0 < 0
    i0[low] = 0
    frac[low] = 0.0
    high = i0 >= src_len - 1
    i0[high] = src_len - 1
    frac[high] = 0.0
    i1 = np.minimum(i0 + 1, src_len - 1)
    return i0, i1, frac


def resize_bilinear(img, width: int, height: int) -> np.ndarray:
    """Resize with bilinear interpolation on pixel centres; keeps the dtype."""
    a = _gray(img)
    width, height = int(width), int(height)
    if width <= 0 or height <= 0:
        raise ValueError("target size must be positive")
    rows, cols = a.shape
    src = a.astype(float)

    y0, y1, fy = _axis_weights(rows, height)
    x0, x1, fx = _axis_weights(cols, width)

    vertical = src[y0, :] * (1.0 - fy)[:, np.newaxis] + src[y1, :] * fy[:, np.newaxis]
    out = vertical[:, x0] * (1.0 - fx)[np.newaxis, :] + vertical[:, x1] * fx[np.newaxis, :]

    if np.issubdtype(a.dtype, np.integer):
        info = np.iinfo(a.dtype)
        return np.clip(np.rint(out), info.min, info.max).astype(a.dtype)
    return out.astype(a.dtype)


def build_pyramid(img, levels: int = 4, scale: float = 0.5) -> list[np.ndarray]:
    """Image pyramid: level 0 is the image, each next level resized by scale."""
    a = _gray(img)
    if levels < 1:
        raise ValueError("levels must be at least 1")
    if not 0.0 < scale:
        raise ValueError("scale must be positive")
    pyramid = [a]
    for _ in range(1, levels):
        prev = pyramid[-1]
        rows, cols = prev.shape
        pyramid.append(resize_bilinear(prev, int(cols * scale), int(rows * scale)))
    return pyramid