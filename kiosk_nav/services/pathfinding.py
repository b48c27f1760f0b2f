import logging
from typing import Iterable

from kiosk_nav.db.store import LocalStore
from kiosk_nav.schemas.navigation import ConnectionSchema, NavigationResult, PathStep, WaypointSchema
from kiosk_nav.utils.math_utils import euclidean_distance

logger = logging.getLogger(__name__)

__all__ = [
    "Pathfinder",
    "build_graph",
    "astar",
    "heuristic",
    "build_navigation_result",
    "VERTICAL_EDGE_COST",
    "FLOOR_CHANGE_PENALTY",
    "AVERAGE_WALKING_SPEED",
]

VERTICAL_TYPES = frozenset({"stairs", "elevator"})

# Фиксированная стоимость перехода между этажами по лестнице/лифту
VERTICAL_EDGE_COST = 50.0
# Штраф эвристики за другой этаж. Эвристика допустима, только пока
# штраф не превышает реальную стоимость перехода (VERTICAL_EDGE_COST).
FLOOR_CHANGE_PENALTY = 100.0
# Средняя скорость ходьбы, единиц плана в минуту
AVERAGE_WALKING_SPEED = 50.0

Graph = dict[str, list[tuple[str, float]]]


def build_graph(
    waypoints: Iterable[WaypointSchema],
    connections: Iterable[ConnectionSchema],
    vertical_cost: float = VERTICAL_EDGE_COST,
) -> Graph:
    """
    Неориентированный список смежности:
    - каждое ребро добавляется в обе стороны со своей длиной;
    - для stairs/elevator с connects_to_waypoint добавляется вертикальное
      ребро в обе стороны с фиксированной стоимостью.
    """
    graph: Graph = {}
    for conn in connections:
        graph.setdefault(conn.from_waypoint_id, []).append((conn.to_waypoint_id, conn.distance))
        graph.setdefault(conn.to_waypoint_id, []).append((conn.from_waypoint_id, conn.distance))

    for wp in waypoints:
        if wp.type in VERTICAL_TYPES and wp.connects_to_waypoint:
            graph.setdefault(wp.id, []).append((wp.connects_to_waypoint, vertical_cost))
            graph.setdefault(wp.connects_to_waypoint, []).append((wp.id, vertical_cost))

    return graph


def heuristic(node: WaypointSchema, goal: WaypointSchema, floor_penalty: float = FLOOR_CHANGE_PENALTY) -> float:
    penalty = floor_penalty if node.floor_id != goal.floor_id else 0.0
    return euclidean_distance((node.x, node.y), (goal.x, goal.y)) + penalty


def astar(
    graph: Graph,
    waypoint_map: dict[str, WaypointSchema],
    start_id: str,
    goal_id: str,
    floor_penalty: float = FLOOR_CHANGE_PENALTY,
) -> tuple[list[str], float] | None:
    """
    A* по графу точек.

    Открытое множество: словарь id → f, минимум ищется линейным проходом:
    для графа здания (десятки-сотни точек) этого достаточно, при росте графа
    его можно заменить на heapq без изменения контракта.
    При равных f выигрывает узел, раньше попавший в словарь.

    Returns:
        (список id от start до goal, длина пути) или None, если пути нет.
    """
    goal = waypoint_map[goal_id]

    def h(node_id: str) -> float:
        return heuristic(waypoint_map[node_id], goal, floor_penalty)

    open_set: dict[str, float] = {start_id: h(start_id)}
    came_from: dict[str, str] = {}
    g_score: dict[str, float] = {start_id: 0.0}

    while open_set:
        current = min(open_set, key=open_set.__getitem__)
        if current == goal_id:
            return reconstruct_path(came_from, current), g_score[current]

        del open_set[current]
        for neighbor_id, distance in graph.get(current, ()):
            if neighbor_id not in waypoint_map:
                # ребро ведёт в точку, которой нет в базе
                continue
            tentative_g = g_score[current] + distance
            if tentative_g < g_score.get(neighbor_id, float("inf")):
                came_from[neighbor_id] = current
                g_score[neighbor_id] = tentative_g
                open_set[neighbor_id] = tentative_g + h(neighbor_id)

    return None


def reconstruct_path(came_from: dict[str, str], end_id: str) -> list[str]:
    path = [end_id]
    while path[-1] in came_from:
        path.append(came_from[path[-1]])
    path.reverse()
    return path


def build_instruction(wp: WaypointSchema) -> str | None:
    if wp.type == "stairs":
        return "Take the stairs"
    if wp.type == "elevator":
        return "Take the elevator"
    if wp.type == "room" and wp.label:
        return f'Go to "{wp.label}"'
    return None


def build_navigation_result(
    path_ids: list[str],
    total_distance: float,
    waypoint_map: dict[str, WaypointSchema],
    walking_speed: float = AVERAGE_WALKING_SPEED,
) -> NavigationResult:
    steps: list[PathStep] = []
    for waypoint_id in path_ids:
        wp = waypoint_map[waypoint_id]
        steps.append(
            PathStep(
                waypoint_id=wp.id,
                floor_id=wp.floor_id,
                x=wp.x,
                y=wp.y,
                type=wp.type,
                label=wp.label,
                instruction=build_instruction(wp),
            )
        )

    floor_changes = sum(1 for prev, step in zip(steps, steps[1:]) if prev.floor_id != step.floor_id)
    return NavigationResult(
        path=steps,
        total_distance=total_distance,
        floor_changes=floor_changes,
        estimated_time_minutes=total_distance / walking_speed,
    )


class Pathfinder:
    """
    Офлайн-поиск пути по локальной реплике.
    Граф строится заново на каждый запрос из полного снимка базы
    и живёт только в рамках запроса; база не изменяется.
    """

    def __init__(
        self,
        store: LocalStore,
        vertical_cost: float = VERTICAL_EDGE_COST,
        floor_penalty: float = FLOOR_CHANGE_PENALTY,
        walking_speed: float = AVERAGE_WALKING_SPEED,
    ):
        self.store = store
        self.vertical_cost = vertical_cost
        self.floor_penalty = floor_penalty
        self.walking_speed = walking_speed

    def find_path_between_waypoints(self, start_id: str, end_id: str) -> NavigationResult | None:
        waypoints = self.store.get_all_waypoints()
        connections = self.store.get_all_connections()
        logger.debug(
            f"Pathfinding: {start_id} -> {end_id} "
            f"(waypoints: {len(waypoints)}, connections: {len(connections)})"
        )

        waypoint_map = {wp.id: wp for wp in waypoints}
        if start_id not in waypoint_map or end_id not in waypoint_map:
            logger.warning(f"Pathfinding: waypoint not found ({start_id} -> {end_id})")
            return None

        graph = build_graph(waypoints, connections, self.vertical_cost)
        found = astar(graph, waypoint_map, start_id, end_id, self.floor_penalty)
        if found is None:
            logger.info(f"Pathfinding: no path {start_id} -> {end_id}")
            return None

        path_ids, total_distance = found
        return build_navigation_result(path_ids, total_distance, waypoint_map, self.walking_speed)

    def find_path_from_kiosk(self, kiosk_id: int, end_room_id: int) -> NavigationResult | None:
        kiosk = self.store.get_kiosk(kiosk_id)
        end_room = self.store.get_room(end_room_id)
        if not kiosk or not kiosk.waypoint_id or not end_room or not end_room.waypoint_id:
            logger.info(
                f"Missing waypoint: kiosk={kiosk.waypoint_id if kiosk else None}, "
                f"room={end_room.waypoint_id if end_room else None}"
            )
            return None
        return self.find_path_between_waypoints(kiosk.waypoint_id, end_room.waypoint_id)

    def find_path_offline(self, start_room_id: int, end_room_id: int) -> NavigationResult | None:
        start_room = self.store.get_room(start_room_id)
        end_room = self.store.get_room(end_room_id)
        if not start_room or not start_room.waypoint_id or not end_room or not end_room.waypoint_id:
            logger.info(f"Missing waypoint for rooms {start_room_id} -> {end_room_id}")
            return None
        return self.find_path_between_waypoints(start_room.waypoint_id, end_room.waypoint_id)
