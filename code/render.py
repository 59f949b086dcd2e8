from __future__ import annotations
from typing import Dict, Tuple
import os

from PIL import Image, ImageDraw

from motorways import CarColor, MotorwaysEnv, ResourceKind, TileType

RGB = Tuple[int, int, int]

TILE_COLORS: Dict[TileType, RGB] = {
    TileType.EMPTY: (26, 26, 26),
    TileType.HOUSE: (204, 51, 51),
    TileType.BUSINESS: (51, 51, 204),
    TileType.ROAD: (128, 128, 128),
    TileType.MOTORWAY: (51, 204, 51),
    TileType.BRIDGE: (153, 102, 51),
    TileType.ROUNDABOUT: (204, 153, 51),
    TileType.TRAFFIC_LIGHT: (204, 204, 51),
}

CAR_COLORS: Dict[CarColor, RGB] = {
    CarColor.RED: (255, 0, 0),
    CarColor.BLUE: (0, 0, 255),
    CarColor.GREEN: (0, 255, 0),
    CarColor.YELLOW: (255, 255, 0),
    CarColor.PURPLE: (255, 0, 255),
    CarColor.ORANGE: (255, 128, 0),
}

RESOURCE_COLORS: Dict[ResourceKind, RGB] = {
    ResourceKind.ROADS: TILE_COLORS[TileType.ROAD],
    ResourceKind.MOTORWAYS: TILE_COLORS[TileType.MOTORWAY],
    ResourceKind.BRIDGES: TILE_COLORS[TileType.BRIDGE],
    ResourceKind.ROUNDABOUTS: TILE_COLORS[TileType.ROUNDABOUT],
    ResourceKind.TRAFFIC_LIGHTS: TILE_COLORS[TileType.TRAFFIC_LIGHT],
}

BACKGROUND: RGB = (26, 26, 26)
PANEL_TILES = 5  # status panel width, in tiles

ASCII_TILES = {
    TileType.EMPTY: ".",
    TileType.HOUSE: "H",
    TileType.BUSINESS: "B",
    TileType.ROAD: "#",
    TileType.MOTORWAY: "=",
    TileType.BRIDGE: "^",
    TileType.ROUNDABOUT: "O",
    TileType.TRAFFIC_LIGHT: "T",
}


def blend(a: RGB, b: RGB, weight: float) -> RGB:
    """Mix `weight` of a with the remainder of b."""
    return tuple(int(a[i] * weight + b[i] * (1.0 - weight)) for i in range(3))


def render_ascii(env: MotorwaysEnv) -> str:
    """
    Legend:
      . empty   H house   B business   # road   = motorway   ^ bridge
      O roundabout   T traffic light   c car (on infrastructure tiles)
    Buildings keep their symbol when a car stands on them.
    """
    car_positions = {c.position for c in env.cars}
    rows = []
    for y in range(env.grid.h):
        line = []
        for x in range(env.grid.w):
            t = env.grid.tile_at((x, y))
            if (x, y) in car_positions and t not in (TileType.HOUSE, TileType.BUSINESS):
                line.append("c")
            else:
                line.append(ASCII_TILES[t])
        rows.append("".join(line))
    return "\n".join(rows)


def _inset(x0: float, y0: float, scale: int, fraction: float):
    pad = scale * (1.0 - fraction) / 2.0
    return [x0 + pad, y0 + pad, x0 + scale - pad, y0 + scale - pad]


def render_image(env: MotorwaysEnv, scale: int = 24, panel: bool = True) -> Image.Image:
    """Draw tiles, buildings, cars (at their visual coordinates) and a status panel."""
    w, h = env.grid.w, env.grid.h
    width = (w + (PANEL_TILES if panel else 0)) * scale
    img = Image.new("RGB", (width, h * scale), BACKGROUND)
    draw = ImageDraw.Draw(img)

    for p, tile in env.grid.cells():
        draw.rectangle(_inset(p.x * scale, p.y * scale, scale, 0.9), fill=TILE_COLORS[tile])

    for b in env.buildings:
        color = blend(TILE_COLORS[b.kind], CAR_COLORS[b.color], 0.7)
        draw.rectangle(_inset(b.position.x * scale, b.position.y * scale, scale, 0.8), fill=color)

    for car in env.cars:
        cx = (car.visual_x + 0.5) * scale
        cy = (car.visual_y + 0.5) * scale
        r = 0.15 * scale
        draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=CAR_COLORS[car.color])

    if panel:
        _draw_panel(env, draw, w * scale, scale)
    return img


def _draw_panel(env: MotorwaysEnv, draw: ImageDraw.ImageDraw, x0: int, scale: int):
    white = (240, 240, 240)
    bar_w = (PANEL_TILES - 1) * scale
    y = scale // 2
    draw.text((x0 + scale // 2, y), f"score {env.score}", fill=white)
    y += scale
    draw.text((x0 + scale // 2, y), f"step {env.current_step}", fill=white)
    y += scale
    draw.text((x0 + scale // 2, y), f"cars {env.car_count}", fill=white)
    y += scale

    for kind, color in RESOURCE_COLORS.items():
        initial = max(1, env.ledger.initial[kind])
        frac = min(1.0, env.ledger[kind] / initial)
        top = y + scale // 4
        draw.rectangle([x0 + scale // 2, top, x0 + scale // 2 + bar_w, top + scale // 2], outline=white)
        if frac > 0:
            draw.rectangle([x0 + scale // 2, top, x0 + scale // 2 + int(bar_w * frac), top + scale // 2],
                           fill=color)
        y += scale

    if env.is_done():
        draw.text((x0 + scale // 2, y + scale // 2), "GAME OVER", fill=(255, 80, 80))


def save_frame(env: MotorwaysEnv, path: str, scale: int = 24) -> str:
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    render_image(env, scale=scale).save(path)
    return path
