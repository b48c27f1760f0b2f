import copy
import json

import httpx
import pytest

from kiosk_nav.core.config import Settings
from kiosk_nav.db.store import LocalStore
from kiosk_nav.services.api_sync import SyncService

FLOOR_IMAGE = b"\x89PNG\r\n\x1a\n-ground-floor-plan"

# Два этажа, связанные лестницей s1 <-> s2
BUILDING = {
    "floors": [
        {"id": 1, "name": "Ground", "floor_number": 1, "image_url": "/media/floors/ground.png",
         "image_width": 800, "image_height": 600},
        {"id": 2, "name": "First", "floor_number": 2, "image_url": None,
         "image_width": None, "image_height": None},
    ],
    "waypoints": {
        1: [
            {"id": "k1", "floor_id": 1, "x": 0, "y": 0, "type": "corridor", "label": "Entrance"},
            {"id": "c1", "floor_id": 1, "x": 100, "y": 0, "type": "corridor"},
            {"id": "r101", "floor_id": 1, "x": 100, "y": 50, "type": "room", "label": "Library"},
            {"id": "s1", "floor_id": 1, "x": 200, "y": 0, "type": "stairs",
             "connects_to_floor": 2, "connects_to_waypoint": "s2"},
        ],
        2: [
            {"id": "s2", "floor_id": 2, "x": 200, "y": 0, "type": "stairs",
             "connects_to_floor": 1, "connects_to_waypoint": "s1"},
            {"id": "c2", "floor_id": 2, "x": 200, "y": 100, "type": "corridor"},
            {"id": "r201", "floor_id": 2, "x": 150, "y": 100, "type": "room", "label": "Dean's office"},
        ],
    },
    "connections": {
        1: [
            {"id": "e1", "from_waypoint_id": "k1", "to_waypoint_id": "c1", "distance": 100},
            {"id": "e2", "from_waypoint_id": "c1", "to_waypoint_id": "r101", "distance": 50},
            {"id": "e3", "from_waypoint_id": "c1", "to_waypoint_id": "s1", "distance": 100},
        ],
        2: [
            {"id": "e4", "from_waypoint_id": "s2", "to_waypoint_id": "c2", "distance": 100},
            {"id": "e5", "from_waypoint_id": "c2", "to_waypoint_id": "r201", "distance": 50},
        ],
    },
    "rooms": [
        {"id": 1, "name": "Library", "waypoint_id": "r101", "floor_id": 1, "keywords": "books reading"},
        {"id": 2, "name": "Dean's office", "waypoint_id": "r201", "floor_id": 2, "keywords": "administration"},
        {"id": 3, "name": "Cafeteria", "waypoint_id": None, "floor_id": 1, "keywords": "food lunch"},
    ],
    "kiosks": [
        {"id": 1, "name": "Main entrance", "floor_id": 1, "waypoint_id": "k1", "description": "Lobby"},
    ],
}


class FakeRemote:
    """
    Удалённый сервер навигации на httpx.MockTransport.
    failing: пути, которые отвечают 500. calls: все запрошенные пути.
    """

    def __init__(self, building: dict):
        self.building = building
        self.online = True
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.path_requests: list[dict] = []
        self.path_response = {"path": [], "total_distance": 0, "floor_changes": 0, "estimated_time_minutes": 0}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def routes(self) -> dict:
        routes = {
            "/api/floors/": self.building["floors"],
            "/api/rooms/": self.building["rooms"],
            "/api/kiosks/": self.building["kiosks"],
        }
        for floor in self.building["floors"]:
            floor_id = floor["id"]
            routes[f"/api/waypoints/floor/{floor_id}"] = self.building["waypoints"].get(floor_id, [])
            routes[f"/api/waypoints/connections/floor/{floor_id}"] = self.building["connections"].get(floor_id, [])
        return routes

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)

        if path in ("/api/health", "/health"):
            return httpx.Response(200 if self.online else 503, json={"status": "ok"})
        if not self.online or path in self.failing:
            return httpx.Response(500, json={"detail": "boom"})
        if path == "/api/navigation/find-path" and request.method == "POST":
            self.path_requests.append(json.loads(request.content))
            return httpx.Response(200, json=self.path_response)
        if path == "/media/floors/ground.png":
            return httpx.Response(200, content=FLOOR_IMAGE)

        routes = self.routes()
        if path in routes:
            return httpx.Response(200, json=routes[path])
        return httpx.Response(404, json={"detail": "Not Found"})


@pytest.fixture
def building() -> dict:
    return copy.deepcopy(BUILDING)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ENV="testing",
        API_URL="http://remote.test/api/",
        DATA_DIR=tmp_path / "data",
        LOG_DIR=tmp_path / "logs",
        # окно больше любого теста: запись только через flush_save()
        SAVE_DEBOUNCE_MS=60_000,
        SYNC_ENABLED=False,
    )


@pytest.fixture
def store(settings):
    store = LocalStore(settings)
    store.init()
    yield store
    store.close()


@pytest.fixture
def seeded_store(store, building):
    store.upsert_floors(building["floors"])
    for items in building["waypoints"].values():
        store.upsert_waypoints(items)
    for items in building["connections"].values():
        store.upsert_connections(items)
    store.upsert_rooms(building["rooms"])
    store.upsert_kiosks(building["kiosks"])
    return store


@pytest.fixture
def remote(building) -> FakeRemote:
    return FakeRemote(building)


@pytest.fixture
def sync_service(settings, store, remote) -> SyncService:
    return SyncService(settings, store, transport=remote.transport)
