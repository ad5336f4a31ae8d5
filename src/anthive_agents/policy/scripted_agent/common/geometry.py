from __future__ import annotations

import math

# Axial offsets in canonical order: E, NE, NW, W, SW, SE.
HEX_DIRECTIONS: list[tuple[int, int]] = [
    (1, 0),
    (1, -1),
    (0, -1),
    (-1, 0),
    (-1, 1),
    (0, 1),
]

DIRECTION_NAMES = ["east", "northeast", "northwest", "west", "southwest", "southeast"]


def hex_distance(a: tuple[int, int], b: tuple[int, int]) -> int:
    dq = a[0] - b[0]
    dr = a[1] - b[1]
    return max(abs(dq), abs(dr), abs(dq + dr))


def is_adjacent(pos1: tuple[int, int], pos2: tuple[int, int]) -> bool:
    return (pos2[0] - pos1[0], pos2[1] - pos1[1]) in HEX_DIRECTIONS


def neighbors(pos: tuple[int, int]) -> list[tuple[int, int]]:
    return [(pos[0] + dq, pos[1] + dr) for dq, dr in HEX_DIRECTIONS]


def ring(center: tuple[int, int], radius: int) -> list[tuple[int, int]]:
    """All cells at exactly ``radius`` from ``center``, walking the ring
    from the cell ``radius`` steps east."""
    if radius <= 0:
        return [center]
    cells: list[tuple[int, int]] = []
    q, r = center[0] + radius, center[1]
    # Starting east, the ring sides run SW, W, NW, NE, E, SE.
    for side in (4, 3, 2, 1, 0, 5):
        dq, dr = HEX_DIRECTIONS[side]
        for _ in range(radius):
            cells.append((q, r))
            q += dq
            r += dr
    return cells


def ring_corners(center: tuple[int, int], radius: int) -> list[tuple[int, int]]:
    """The six corner cells of a ring, in direction-table order."""
    return [(center[0] + dq * radius, center[1] + dr * radius) for dq, dr in HEX_DIRECTIONS]


def spiral(center: tuple[int, int], max_radius: int) -> list[tuple[int, int]]:
    """Center first, then every ring out to ``max_radius``."""
    cells = [center]
    for radius in range(1, max_radius + 1):
        cells.extend(ring(center, radius))
    return cells


def cells_within(center: tuple[int, int], radius: int) -> list[tuple[int, int]]:
    cells: list[tuple[int, int]] = []
    for dq in range(-radius, radius + 1):
        for dr in range(max(-radius, -dq - radius), min(radius, -dq + radius) + 1):
            cells.append((center[0] + dq, center[1] + dr))
    return cells


def polar_offset(center: tuple[int, int], angle: float, distance: float) -> tuple[int, int]:
    """Round a polar offset applied directly to axial coordinates."""
    return (
        int(round(center[0] + math.cos(angle) * distance)),
        int(round(center[1] + math.sin(angle) * distance)),
    )


def lerp_cell(a: tuple[int, int], b: tuple[int, int], t: float) -> tuple[int, int]:
    return (int(round(a[0] + (b[0] - a[0]) * t)), int(round(a[1] + (b[1] - a[1]) * t)))


def step_toward(current: tuple[int, int], target: tuple[int, int]) -> tuple[int, int]:
    """Neighbour of ``current`` closest to ``target``; first in direction order on ties."""
    best = current
    best_dist = hex_distance(current, target)
    for cell in neighbors(current):
        d = hex_distance(cell, target)
        if d < best_dist:
            best = cell
            best_dist = d
    return best
