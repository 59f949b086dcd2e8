from __future__ import annotations

import pytest

from motorways import Building, CarColor, GridWorld, MotorwaysEnv, Position, TileType


def road_layout(house: Position = Position(2, 5), business: Position = Position(8, 5)) -> list[Building]:
    """A red house and a red business on the same row."""
    return [
        Building(house, CarColor.RED, TileType.HOUSE),
        Building(business, CarColor.RED, TileType.BUSINESS),
    ]


def fill(grid: GridWorld, tile: TileType) -> None:
    for x in range(grid.w):
        for y in range(grid.h):
            grid.set_tile((x, y), tile)


@pytest.fixture
def env() -> MotorwaysEnv:
    e = MotorwaysEnv(seed=7)
    e.reset()
    return e


@pytest.fixture
def road_env() -> MotorwaysEnv:
    e = MotorwaysEnv(seed=3)
    e.reset(layout=road_layout())
    return e
