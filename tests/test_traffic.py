"""Tests for TrafficSimulator: movement, stuck accounting and spawning."""

from __future__ import annotations

from random import Random

import pytest

from motorways import (
    Building,
    CarColor,
    CarStatus,
    EnvConfig,
    GridWorld,
    Position,
    TileType,
    TrafficSimulator,
)


def corridor(length: int = 6) -> GridWorld:
    """House at x=0, business at x=length-1, road in between, on row 0."""
    grid = GridWorld(length, 3)
    grid.set_tile((0, 0), TileType.HOUSE)
    for x in range(1, length - 1):
        grid.set_tile((x, 0), TileType.ROAD)
    grid.set_tile((length - 1, 0), TileType.BUSINESS)
    return grid


class TestMovement:
    def test_car_advances_one_cell_per_tick(self) -> None:
        sim = TrafficSimulator(corridor(6), EnvConfig())
        car = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        assert car.status == CarStatus.NO_PATH
        sim.tick()
        assert car.position == Position(1, 0)
        assert car.path[0] == car.position
        assert car.status == CarStatus.MOVING
        sim.tick()
        assert car.position == Position(2, 0)

    def test_trip_completes_and_car_leaves_active_set(self) -> None:
        sim = TrafficSimulator(corridor(6), EnvConfig())
        car = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        completed = [sim.tick() for _ in range(5)]
        assert completed == [0, 0, 0, 0, 1]
        assert car.completed
        assert car.id not in sim.cars

    def test_visual_position_eases_toward_cell(self) -> None:
        sim = TrafficSimulator(corridor(6), EnvConfig(visual_smoothing=0.5))
        car = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        sim.tick()
        assert car.visual_x == pytest.approx(0.5)
        assert car.visual_y == pytest.approx(0.0)
        sim.tick()
        assert car.visual_x == pytest.approx(1.25)

    def test_cars_may_share_a_cell(self) -> None:
        sim = TrafficSimulator(corridor(6), EnvConfig())
        a = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        b = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        sim.tick()
        assert a.position == b.position == Position(1, 0)

    def test_route_is_not_recomputed_while_non_empty(self) -> None:
        grid = corridor(6)
        sim = TrafficSimulator(grid, EnvConfig())
        car = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        sim.tick()
        for x in range(1, 5):
            grid.set_tile((x, 1), TileType.ROAD)
        detour = [Position(1, 0), Position(1, 1), Position(2, 1), Position(3, 1),
                  Position(4, 1), Position(4, 0), Position(5, 0)]
        car.path = list(detour)
        sim.tick()
        assert car.position == Position(1, 1)
        assert car.path == detour[1:]


class TestStuckAccounting:
    def test_blocked_route_counts_stuck_ticks(self) -> None:
        grid = corridor(6)
        sim = TrafficSimulator(grid, EnvConfig())
        car = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        sim.tick()
        grid.set_tile((2, 0), TileType.EMPTY)
        sim.tick()
        sim.tick()
        assert car.position == Position(1, 0)
        assert car.stuck_time == 2
        assert car.status == CarStatus.STUCK

    def test_moving_again_resets_stuck_time(self) -> None:
        grid = corridor(6)
        sim = TrafficSimulator(grid, EnvConfig())
        car = sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED)
        sim.tick()
        grid.set_tile((2, 0), TileType.EMPTY)
        sim.tick()
        grid.set_tile((2, 0), TileType.ROAD)
        sim.tick()
        assert car.position == Position(2, 0)
        assert car.stuck_time == 0

    def test_penalty_once_per_car_per_tick_past_threshold(self) -> None:
        grid = corridor(6)
        sim = TrafficSimulator(grid, EnvConfig(penalty_stuck_threshold=10))
        cars = [sim.add_car(Position(0, 0), Position(5, 0), CarColor.RED) for _ in range(2)]
        sim.tick()
        grid.set_tile((2, 0), TileType.EMPTY)
        history = []
        for _ in range(15):
            before = sim.congestion_penalty
            sim.tick()
            history.append(sim.congestion_penalty - before)
        assert all(delta <= len(cars) for delta in history)
        assert history == [0] * 10 + [2] * 5
        assert sim.congestion_penalty == 10

    def test_unreachable_destination_counts_as_stuck(self) -> None:
        grid = GridWorld(5, 5)
        grid.set_tile((0, 0), TileType.HOUSE)
        grid.set_tile((4, 4), TileType.BUSINESS)
        sim = TrafficSimulator(grid, EnvConfig(penalty_stuck_threshold=3))
        car = sim.add_car(Position(0, 0), Position(4, 4), CarColor.BLUE)
        for _ in range(5):
            sim.tick()
        assert car.path == []
        assert car.status == CarStatus.NO_PATH
        assert car.stuck_time == 5
        assert sim.congestion_penalty == 2

    def test_count_stuck(self) -> None:
        sim = TrafficSimulator(GridWorld(3, 3), EnvConfig())
        for stuck in (0, 20, 21, 30):
            sim.add_car(Position(0, 0), Position(2, 2), CarColor.RED).stuck_time = stuck
        assert sim.count_stuck(20) == 2


class TestSpawning:
    def buildings(self) -> list[Building]:
        return [
            Building(Position(0, 0), CarColor.RED, TileType.HOUSE),
            Building(Position(1, 0), CarColor.GREEN, TileType.HOUSE),
            Building(Position(4, 0), CarColor.RED, TileType.BUSINESS),
            Building(Position(4, 4), CarColor.RED, TileType.BUSINESS),
        ]

    def test_only_on_interval_ticks(self) -> None:
        sim = TrafficSimulator(GridWorld(5, 5), EnvConfig(spawn_probability=1.0))
        buildings = self.buildings()
        for step in (1, 2, 3, 4, 6):
            assert sim.spawn(step, buildings, Random(0)) == []
        assert len(sim.spawn(5, buildings, Random(0))) == 1

    def test_first_matching_business_wins(self) -> None:
        sim = TrafficSimulator(GridWorld(5, 5), EnvConfig(spawn_probability=1.0))
        buildings = self.buildings()
        (car,) = sim.spawn(5, buildings, Random(0))
        assert car.position == Position(0, 0)
        assert car.destination == Position(4, 0)
        assert car.color == CarColor.RED
        assert buildings[0].cars_spawned == 1
        assert buildings[1].cars_spawned == 0

    def test_spawn_cap(self) -> None:
        sim = TrafficSimulator(GridWorld(5, 5), EnvConfig(spawn_probability=1.0))
        buildings = self.buildings()
        buildings[0].max_cars = 2
        for step in range(5, 50, 5):
            sim.spawn(step, buildings, Random(step))
        assert buildings[0].cars_spawned == 2
        assert len(sim.cars) == 2

    def test_zero_probability_never_spawns(self) -> None:
        sim = TrafficSimulator(GridWorld(5, 5), EnvConfig(spawn_probability=0.0))
        buildings = self.buildings()
        for step in range(0, 100, 5):
            assert sim.spawn(step, buildings, Random(step)) == []

    def test_car_ids_are_unique_and_increasing(self) -> None:
        sim = TrafficSimulator(GridWorld(5, 5), EnvConfig(spawn_probability=1.0))
        buildings = self.buildings()
        ids = [c.id for step in (5, 10, 15) for c in sim.spawn(step, buildings, Random(0))]
        assert ids == [1, 2, 3]

    def test_reset_clears_cars_and_penalty(self) -> None:
        sim = TrafficSimulator(GridWorld(5, 5), EnvConfig(spawn_probability=1.0))
        sim.spawn(5, self.buildings(), Random(0))
        sim.congestion_penalty = 4
        sim.reset()
        assert sim.cars == {}
        assert sim.congestion_penalty == 0
        assert sim.add_car(Position(0, 0), Position(1, 0), CarColor.RED).id == 1
