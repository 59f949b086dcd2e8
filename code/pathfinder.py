from __future__ import annotations
from typing import Dict, List, Set, Tuple
import heapq
import itertools

Pos = Tuple[int, int]


def manhattan(a: Pos, b: Pos) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


class PathFinder:
    """
    A* over the four orthogonal neighbours of a grid.

    Every passable tile costs 1 to enter, whatever its kind. The grid is only
    read: any object with `neighbors4(p)`, `tile_at(p)` and `is_passable(tile)`
    works.
    """

    def find_path(self, start, goal, grid) -> List:
        """Return the route start..goal inclusive, or [] if the goal is unreachable."""
        if start == goal:
            return [start]

        tie = itertools.count()  # equal f-costs pop in insertion order
        open_set: List[Tuple[int, int, Pos]] = [(manhattan(start, goal), next(tie), start)]
        came_from: Dict[Pos, Pos] = {}
        g_score: Dict[Pos, int] = {start: 0}
        closed: Set[Pos] = set()

        while open_set:
            _, _, cur = heapq.heappop(open_set)
            if cur == goal:
                return self._reconstruct(came_from, start, goal)
            if cur in closed:
                continue
            closed.add(cur)

            for q in grid.neighbors4(cur):
                if q in closed:
                    continue
                if not grid.is_passable(grid.tile_at(q)):
                    continue
                ng = g_score[cur] + 1
                if q not in g_score or ng < g_score[q]:
                    came_from[q] = cur
                    g_score[q] = ng
                    heapq.heappush(open_set, (ng + manhattan(q, goal), next(tie), q))

        return []

    @staticmethod
    def _reconstruct(came_from: Dict[Pos, Pos], start, goal) -> List:
        path = [goal]
        cur = goal
        while cur != start:
            cur = came_from[cur]
            path.append(cur)
        path.reverse()
        return path
