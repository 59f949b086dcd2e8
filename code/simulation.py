from collections import deque
from typing import Dict, Iterable, List, Sequence, Tuple

from motorways import MotorwaysEnv, Position, TileType


def check_state(env: MotorwaysEnv):
    car_state = {car.id: car.position for car in env.cars}
    return car_state, len(car_state)


def count_tiles(env: MotorwaysEnv, kinds: Iterable[TileType] = (TileType.ROAD,)) -> int:
    kinds = set(kinds)
    return sum(1 for _, tile in env.grid.cells() if tile in kinds)


def tile_histogram(env: MotorwaysEnv) -> Dict[str, int]:
    counts = {t.name: 0 for t in TileType}
    for _, tile in env.grid.cells():
        counts[tile.name] += 1
    return counts


def unconnected_houses(env: MotorwaysEnv) -> List[Position]:
    """
    Houses that cannot reach any business of their own color.

    Cars may drive through any passable tile, buildings included, so the
    search walks every non-empty cell (4-directional movement).
    """
    grid = env.grid
    businesses: Dict[object, set] = {}
    for b in env.buildings:
        if b.kind == TileType.BUSINESS:
            businesses.setdefault(b.color, set()).add(b.position)

    def is_connected(start: Position, targets: set) -> bool:
        """BFS from start to see if any target is reachable."""
        visited = {start}
        queue = deque([start])
        while queue:
            cur = queue.popleft()
            for neighbor in grid.neighbors4(cur):
                if neighbor in visited:
                    continue
                if neighbor in targets:
                    return True
                if grid.is_passable(grid.tile_at(neighbor)):
                    visited.add(neighbor)
                    queue.append(neighbor)
        return False

    non_connected = []
    for house in env.buildings:
        if house.kind != TileType.HOUSE:
            continue
        targets = businesses.get(house.color, set())
        if not targets or not is_connected(house.position, targets):
            non_connected.append(house.position)
    return non_connected


def rollout(env: MotorwaysEnv, actions: Sequence[Tuple[int, int, int]]) -> List[List[float]]:
    """Feed a scripted action list to env, stopping early once the episode ends."""
    observations = []
    for action in actions:
        if env.is_done():
            break
        observations.append(env.step(action))
    return observations


def summary(env: MotorwaysEnv) -> str:
    missing = unconnected_houses(env)
    if not missing:
        connect_comment = 'Every house can reach a business of its color.'
    else:
        connect_comment = f'Houses at {[tuple(p) for p in missing]} cannot reach a business of their color.'
    _, car_num = check_state(env)
    return (f"step: {env.current_step}  score: {env.score}  cars: {car_num}\n"
            f"congestion penalty: {env.congestion_penalty}\n"
            f"road tiles: {count_tiles(env)}  resources: {env.resources}\n"
            f"connection: {connect_comment}")
