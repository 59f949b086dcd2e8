from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple
import logging
import random

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pathfinder import PathFinder

log = logging.getLogger(__name__)

DIR4 = [(0, 1), (1, 0), (0, -1), (-1, 0)]
GRID_WIDTH = 20
GRID_HEIGHT = 20


class TileType(IntEnum):
    EMPTY = 0
    HOUSE = 1
    BUSINESS = 2
    ROAD = 3
    MOTORWAY = 4
    BRIDGE = 5
    ROUNDABOUT = 6
    TRAFFIC_LIGHT = 7


PASSABLE_TILES = frozenset(t for t in TileType if t != TileType.EMPTY)
MAX_TILE_VALUE = float(max(TileType))


class CarColor(IntEnum):
    RED = 0
    BLUE = 1
    GREEN = 2
    YELLOW = 3
    PURPLE = 4
    ORANGE = 5


class ResourceKind(Enum):
    ROADS = "roads"
    MOTORWAYS = "motorways"
    BRIDGES = "bridges"
    ROUNDABOUTS = "roundabouts"
    TRAFFIC_LIGHTS = "traffic_lights"
    UPGRADES = "upgrades"


STARTING_RESOURCES: Dict[ResourceKind, int] = {
    ResourceKind.ROADS: 20,
    ResourceKind.MOTORWAYS: 3,
    ResourceKind.BRIDGES: 2,
    ResourceKind.ROUNDABOUTS: 1,
    ResourceKind.TRAFFIC_LIGHTS: 2,
    ResourceKind.UPGRADES: 1,
}

# observation divisors, fixed for compatibility with trained consumers
RESOURCE_SCALE: Dict[ResourceKind, float] = {k: float(v) for k, v in STARTING_RESOURCES.items()}
SCORE_SCALE = 100.0
CAR_COUNT_SCALE = 50.0
PENALTY_SCALE = 100.0
CAR_DENSITY_SCALE = 5.0


class ActionType(IntEnum):
    ROAD = 0
    MOTORWAY = 1
    BRIDGE = 2
    ROUNDABOUT = 3
    TRAFFIC_LIGHT = 4
    REMOVE = 5
    PASS = 6


# action -> (resource consumed, tile placed, tile required underneath)
PLACEMENT_RULES: Dict[ActionType, Tuple[ResourceKind, TileType, TileType]] = {
    ActionType.ROAD: (ResourceKind.ROADS, TileType.ROAD, TileType.EMPTY),
    ActionType.MOTORWAY: (ResourceKind.MOTORWAYS, TileType.MOTORWAY, TileType.EMPTY),
    ActionType.BRIDGE: (ResourceKind.BRIDGES, TileType.BRIDGE, TileType.EMPTY),
    ActionType.ROUNDABOUT: (ResourceKind.ROUNDABOUTS, TileType.ROUNDABOUT, TileType.EMPTY),
    ActionType.TRAFFIC_LIGHT: (ResourceKind.TRAFFIC_LIGHTS, TileType.TRAFFIC_LIGHT, TileType.ROAD),
}

REMOVAL_REFUNDS: Dict[TileType, ResourceKind] = {
    TileType.ROAD: ResourceKind.ROADS,
    TileType.MOTORWAY: ResourceKind.MOTORWAYS,
}


class TerminationReason(Enum):
    GRIDLOCK = "gridlock"
    RESOURCES_EXHAUSTED = "resources_exhausted"
    STEP_BUDGET = "step_budget"


class CarStatus(Enum):
    NO_PATH = "no_path"
    MOVING = "moving"
    STUCK = "stuck"
    COMPLETED = "completed"


class OutOfBoundsError(IndexError):
    """Raised for tile reads/writes outside the grid."""


class Position(NamedTuple):
    x: int
    y: int


# ---------- Configuration ----------

class EnvConfig(BaseModel):
    """Engine constants. Defaults reproduce the standard 20x20 game."""

    model_config = ConfigDict(frozen=True)

    grid_width: int = Field(default=GRID_WIDTH, ge=1)
    grid_height: int = Field(default=GRID_HEIGHT, ge=1)
    max_steps: int = Field(default=1000, ge=1)
    spawn_interval: int = Field(default=5, ge=1)
    spawn_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    max_cars_per_house: int = Field(default=5, ge=0)
    penalty_stuck_threshold: int = Field(default=10, ge=0)
    gridlock_stuck_threshold: int = Field(default=20, ge=0)
    gridlock_car_limit: int = Field(default=10, ge=0)
    exhausted_car_limit: int = Field(default=15, ge=0)
    placement_attempts: int = Field(default=100, ge=1)
    visual_smoothing: float = Field(default=0.1, ge=0.0, le=1.0)
    starting_resources: Dict[ResourceKind, int] = Field(
        default_factory=lambda: dict(STARTING_RESOURCES))
    house_colors: Tuple[CarColor, ...] = (CarColor.RED, CarColor.BLUE, CarColor.GREEN)
    business_colors: Tuple[CarColor, ...] = (CarColor.RED, CarColor.BLUE)

    @field_validator("starting_resources")
    @classmethod
    def _complete_allocation(cls, value: Dict[ResourceKind, int]) -> Dict[ResourceKind, int]:
        allocation = {kind: 0 for kind in ResourceKind}
        for kind, amount in value.items():
            if amount < 0:
                raise ValueError(f"starting allocation for {kind.value} must be >= 0")
            allocation[kind] = amount
        return allocation

    @property
    def observation_size(self) -> int:
        return 2 * self.grid_width * self.grid_height + len(ResourceKind) + 4


class Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_type: ActionType = Field(description="0-4 place, 5 remove, 6 pass.")
    x: int = Field(description="x-coordinate in the grid.")
    y: int = Field(description="y-coordinate in the grid.")

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)


# ---------- Entities ----------

@dataclass
class Building:
    position: Position
    color: CarColor
    kind: TileType  # HOUSE or BUSINESS
    cars_spawned: int = 0
    max_cars: int = 5

    @property
    def has_capacity(self) -> bool:
        return self.cars_spawned < self.max_cars


@dataclass
class Car:
    id: int
    position: Position
    destination: Position
    color: CarColor
    path: List[Position] = field(default_factory=list)  # path[0] is the current cell
    stuck_time: int = 0
    completed: bool = False
    visual_x: float = field(init=False)
    visual_y: float = field(init=False)

    def __post_init__(self):
        self.visual_x = float(self.position.x)
        self.visual_y = float(self.position.y)

    @property
    def status(self) -> CarStatus:
        if self.completed:
            return CarStatus.COMPLETED
        if not self.path:
            return CarStatus.NO_PATH
        if self.stuck_time > 0:
            return CarStatus.STUCK
        return CarStatus.MOVING


# ---------- Grid ----------

class GridWorld:
    """Fixed-size tile grid, indexed grid[x][y]."""

    def __init__(self, width: int = GRID_WIDTH, height: int = GRID_HEIGHT):
        self.w, self.h = width, height
        self.grid: List[List[TileType]] = [[TileType.EMPTY for _ in range(self.h)] for _ in range(self.w)]

    def in_bounds(self, p) -> bool:
        x, y = p
        return 0 <= x < self.w and 0 <= y < self.h

    def tile_at(self, p) -> TileType:
        if not self.in_bounds(p):
            raise OutOfBoundsError(f"{tuple(p)} outside {self.w}x{self.h} grid")
        return self.grid[p[0]][p[1]]

    def set_tile(self, p, tile: TileType):
        if not self.in_bounds(p):
            raise OutOfBoundsError(f"{tuple(p)} outside {self.w}x{self.h} grid")
        self.grid[p[0]][p[1]] = tile

    @staticmethod
    def is_passable(tile: TileType) -> bool:
        return tile in PASSABLE_TILES

    def can_move_to(self, p) -> bool:
        return self.in_bounds(p) and self.grid[p[0]][p[1]] in PASSABLE_TILES

    def neighbors4(self, p) -> Iterator[Position]:
        x, y = p
        for dx, dy in DIR4:
            q = Position(x + dx, y + dy)
            if self.in_bounds(q):
                yield q

    def cells(self) -> Iterator[Tuple[Position, TileType]]:
        """Row-major walk: y outer, x inner."""
        for y in range(self.h):
            for x in range(self.w):
                yield Position(x, y), self.grid[x][y]

    def clear(self):
        for column in self.grid:
            for y in range(self.h):
                column[y] = TileType.EMPTY

    def __len__(self) -> int:
        return self.w * self.h


# ---------- Resources ----------

class ResourceLedger:
    """Counts of placeable infrastructure. Counters never go negative."""

    def __init__(self, allocation: Dict[ResourceKind, int]):
        self.initial: Dict[ResourceKind, int] = {kind: allocation.get(kind, 0) for kind in ResourceKind}
        self.counts: Dict[ResourceKind, int] = dict(self.initial)

    def __getitem__(self, kind: ResourceKind) -> int:
        return self.counts[kind]

    def can_afford(self, kind: ResourceKind, cost: int = 1) -> bool:
        return self.counts[kind] >= cost

    def try_place(self, kind: ResourceKind, cost: int = 1) -> bool:
        if self.can_afford(kind, cost):
            self.counts[kind] -= cost
            return True
        return False

    def refund(self, kind: ResourceKind, amount: int = 1):
        self.counts[kind] += amount

    def total(self) -> int:
        return sum(self.counts.values())

    def reset(self):
        self.counts = dict(self.initial)

    def snapshot(self) -> Dict[str, int]:
        return {kind.value: count for kind, count in self.counts.items()}


# ---------- Traffic ----------

class TrafficSimulator:
    """Moves active cars one cell per tick and spawns new ones from houses."""

    def __init__(self, grid: GridWorld, config: EnvConfig, pathfinder: Optional[PathFinder] = None):
        self.grid = grid
        self.config = config
        self.pathfinder = pathfinder or PathFinder()
        self.cars: Dict[int, Car] = {}
        self.next_car_id = 1
        self.congestion_penalty = 0

    def reset(self):
        self.cars.clear()
        self.next_car_id = 1
        self.congestion_penalty = 0

    def add_car(self, position: Position, destination: Position, color: CarColor) -> Car:
        car_id = self.next_car_id
        self.next_car_id += 1
        car = Car(car_id, Position(*position), Position(*destination), color)
        self.cars[car_id] = car
        return car

    def _mark_stuck(self, car: Car):
        car.stuck_time += 1
        if car.stuck_time > self.config.penalty_stuck_threshold:
            self.congestion_penalty += 1

    def _advance(self, car: Car, nxt: Position):
        car.position = nxt
        car.path.pop(0)
        car.stuck_time = 0
        k = self.config.visual_smoothing
        car.visual_x += (nxt.x - car.visual_x) * k
        car.visual_y += (nxt.y - car.visual_y) * k

    def tick(self) -> int:
        """Advance every active car once. Returns the number of trips completed."""
        to_remove = []
        for car_id in sorted(self.cars.keys()):
            car = self.cars[car_id]
            if car.completed:
                continue

            if car.position != car.destination:
                if not car.path:
                    car.path = self.pathfinder.find_path(car.position, car.destination, self.grid)

                if len(car.path) > 1:
                    nxt = car.path[1]
                    if self.grid.can_move_to(nxt):
                        self._advance(car, nxt)
                    else:
                        self._mark_stuck(car)
                else:
                    self._mark_stuck(car)

            if car.position == car.destination:
                car.completed = True
                to_remove.append(car_id)
                log.debug("car %d reached %s", car_id, car.destination)

        for cid in to_remove:
            del self.cars[cid]
        return len(to_remove)

    def spawn(self, step: int, buildings: Sequence[Building], rng: random.Random) -> List[Car]:
        if step % self.config.spawn_interval != 0:
            return []
        spawned = []
        for house in buildings:
            if house.kind != TileType.HOUSE or not house.has_capacity:
                continue
            if rng.random() >= self.config.spawn_probability:
                continue
            business = next((b for b in buildings
                             if b.kind == TileType.BUSINESS and b.color == house.color), None)
            if business is None:
                continue
            car = self.add_car(house.position, business.position, house.color)
            house.cars_spawned += 1
            spawned.append(car)
            log.debug("spawned car %d at %s -> %s", car.id, house.position, business.position)
        return spawned

    def count_stuck(self, threshold: int) -> int:
        return sum(1 for car in self.cars.values() if car.stuck_time > threshold)


# ---------- Episode ----------

class MotorwaysEnv:
    """
    Reset/step/observe controller for the grid traffic game.

    Rules:
      - Roads, motorways, bridges and roundabouts are built on empty tiles only.
      - Traffic lights convert an existing road tile in place.
      - Only roads and motorways can be removed, and not from under a car.
        Each removal refunds one unit.
      - Cars travel from a house to the first business of the same color,
        one cell per tick, along an A* route computed when they have none.
    """

    def __init__(self, seed: Optional[int] = None, config: Optional[EnvConfig] = None,
                 rng: Optional[random.Random] = None):
        self.config = config or EnvConfig()
        self.seed = seed
        self.rng = rng if rng is not None else random.Random(self.seed)
        self.grid = GridWorld(self.config.grid_width, self.config.grid_height)
        self.ledger = ResourceLedger(self.config.starting_resources)
        self.pathfinder = PathFinder()
        self.traffic = TrafficSimulator(self.grid, self.config, self.pathfinder)
        self._buildings: List[Building] = []

        self.score = 0
        self.current_step = 0
        self.game_over = False
        self.termination_reason: Optional[TerminationReason] = None

    # ----- Render surface -----
    @property
    def buildings(self) -> Tuple[Building, ...]:
        return tuple(self._buildings)

    @property
    def cars(self) -> Tuple[Car, ...]:
        return tuple(self.traffic.cars.values())

    @property
    def resources(self) -> Dict[str, int]:
        return self.ledger.snapshot()

    @property
    def congestion_penalty(self) -> int:
        return self.traffic.congestion_penalty

    @property
    def car_count(self) -> int:
        return len(self.traffic.cars)

    def is_done(self) -> bool:
        return self.game_over

    # ----- Lifecycle -----
    def reset(self, layout: Optional[Sequence[Building]] = None) -> List[float]:
        """Start a new episode. `layout` replaces the random building spawn."""
        self.grid.clear()
        self.traffic.reset()
        self._buildings = []
        self.ledger.reset()

        self.score = 0
        self.current_step = 0
        self.game_over = False
        self.termination_reason = None

        if layout is None:
            self.spawn_initial_buildings()
        else:
            for b in layout:
                self._place_building(Position(*b.position), b.color, b.kind, b.max_cars)
        return self.get_observation()

    def step(self, action) -> List[float]:
        if self.game_over:
            return self.get_observation()
        parsed = self.parse_action(action)
        if parsed is None:
            log.debug("ignored malformed action %r", action)
            return self.get_observation()

        self.current_step += 1
        if parsed.action_type != ActionType.PASS:
            self.execute_action(parsed.action_type, parsed.x, parsed.y)

        self.score += self.traffic.tick()
        self.traffic.spawn(self.current_step, self._buildings, self.rng)

        self.termination_reason = self.check_game_over()
        if self.termination_reason is not None:
            self.game_over = True
            log.debug("episode over at step %d: %s", self.current_step, self.termination_reason.value)
        return self.get_observation()

    def parse_action(self, action) -> Optional[Action]:
        try:
            values = tuple(action)
        except TypeError:
            return None
        if len(values) != 3:
            return None
        try:
            parsed = Action(action_type=values[0], x=values[1], y=values[2])
        except ValidationError:
            return None
        if not self.grid.in_bounds(parsed.position):
            return None
        return parsed

    # ----- Editing -----
    def execute_action(self, action_type: int, x: int, y: int) -> bool:
        p = Position(x, y)
        if not self.grid.in_bounds(p):
            return False
        try:
            action_type = ActionType(action_type)
        except ValueError:
            return False
        if action_type == ActionType.REMOVE:
            return self.remove(p)
        if action_type == ActionType.PASS:
            return False
        return self.place(action_type, p)

    def can_place(self, action_type: ActionType, p: Position) -> bool:
        kind, _, required = PLACEMENT_RULES[action_type]
        return self.grid.tile_at(p) == required and self.ledger.can_afford(kind)

    def place(self, action_type: ActionType, p: Position) -> bool:
        kind, tile, required = PLACEMENT_RULES[action_type]
        if self.grid.tile_at(p) != required:
            return False
        if not self.ledger.try_place(kind):
            return False
        self.grid.set_tile(p, tile)
        log.debug("placed %s at %s", tile.name, p)
        return True

    def is_occupied(self, p: Position) -> bool:
        return any(car.position == p for car in self.traffic.cars.values())

    def can_remove(self, p: Position) -> bool:
        return self.grid.tile_at(p) in REMOVAL_REFUNDS and not self.is_occupied(p)

    def remove(self, p: Position) -> bool:
        removed = self.grid.tile_at(p)
        kind = REMOVAL_REFUNDS.get(removed)
        if kind is None:
            return False
        if self.is_occupied(p):
            return False
        self.grid.set_tile(p, TileType.EMPTY)
        self.ledger.refund(kind)
        log.debug("removed %s at %s", removed.name, p)
        return True

    def valid_actions(self) -> List[Tuple[int, int, int]]:
        """Actions that would change the grid right now, plus one pass action."""
        out = []
        for p, _ in self.grid.cells():
            for action_type in PLACEMENT_RULES:
                if self.can_place(action_type, p):
                    out.append((int(action_type), p.x, p.y))
            if self.can_remove(p):
                out.append((int(ActionType.REMOVE), p.x, p.y))
        out.append((int(ActionType.PASS), 0, 0))
        return out

    # ----- World generation -----
    def find_empty_position(self) -> Optional[Position]:
        for _ in range(self.config.placement_attempts):
            p = Position(self.rng.randrange(self.grid.w), self.rng.randrange(self.grid.h))
            if self.grid.tile_at(p) == TileType.EMPTY:
                return p
        return None

    def _place_building(self, p: Position, color: CarColor, kind: TileType, max_cars: int) -> Building:
        building = Building(p, color, kind, max_cars=max_cars)
        self._buildings.append(building)
        self.grid.set_tile(p, kind)
        return building

    def spawn_initial_buildings(self):
        for kind, colors in ((TileType.HOUSE, self.config.house_colors),
                             (TileType.BUSINESS, self.config.business_colors)):
            for color in colors:
                p = self.find_empty_position()
                if p is None:
                    log.debug("no empty cell found for %s %s", color.name, kind.name)
                    continue
                self._place_building(p, color, kind, self.config.max_cars_per_house)

    # ----- Termination -----
    def check_game_over(self) -> Optional[TerminationReason]:
        cfg = self.config
        if self.traffic.count_stuck(cfg.gridlock_stuck_threshold) > cfg.gridlock_car_limit:
            return TerminationReason.GRIDLOCK
        if self.ledger.total() == 0 and self.car_count > cfg.exhausted_car_limit:
            return TerminationReason.RESOURCES_EXHAUSTED
        if self.current_step >= cfg.max_steps:
            return TerminationReason.STEP_BUDGET
        return None

    # ----- Observation -----
    def get_observation(self) -> List[float]:
        obs: List[float] = [float(tile) / MAX_TILE_VALUE for _, tile in self.grid.cells()]

        density: Dict[Position, int] = {}
        for car in self.traffic.cars.values():
            if self.grid.in_bounds(car.position):
                density[car.position] = density.get(car.position, 0) + 1
        obs.extend(min(density.get(p, 0) / CAR_DENSITY_SCALE, 1.0) for p, _ in self.grid.cells())

        obs.extend(self.ledger[kind] / RESOURCE_SCALE[kind] for kind in ResourceKind)

        obs.append(self.score / SCORE_SCALE)
        obs.append(self.car_count / CAR_COUNT_SCALE)
        obs.append(self.congestion_penalty / PENALTY_SCALE)
        obs.append(self.current_step / float(self.config.max_steps))
        return obs

    # ----- Inspection -----
    def snapshot(self) -> Dict:
        return {
            "step": self.current_step,
            "score": self.score,
            "congestion_penalty": self.congestion_penalty,
            "game_over": self.game_over,
            "termination_reason": self.termination_reason.value if self.termination_reason else None,
            "resources": self.resources,
            "cars": [
                {"id": c.id, "pos": tuple(c.position), "dest": tuple(c.destination),
                 "color": c.color.name, "stuck": c.stuck_time, "path_len": len(c.path)}
                for c in self.traffic.cars.values()
            ],
            "buildings": [
                {"pos": tuple(b.position), "color": b.color.name, "kind": b.kind.name,
                 "spawned": b.cars_spawned}
                for b in self._buildings
            ],
        }
