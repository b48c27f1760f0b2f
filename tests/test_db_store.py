import time

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

from kiosk_nav.db.store import LocalStore


def test_init_creates_database_file(settings):
    store = LocalStore(settings)
    store.init()
    try:
        assert settings.db_path.exists()
        assert store.save_count == 1
        assert store.get_floors() == []
    finally:
        store.close()


def test_debounced_save_coalesces_writes(store, settings, building):
    ground, first = building["floors"]
    before = store.save_count

    store.upsert_floors([ground])
    store.upsert_floors([first])
    store.upsert_floors([{**ground, "name": "Lobby"}])

    # Внутри окна на диск ничего не пишется
    assert store.save_pending
    assert store.save_count == before

    assert store.flush_save() is True
    assert store.save_count == before + 1
    assert not store.save_pending
    # Повторный flush без изменений диск не трогает
    assert store.flush_save() is False

    reopened = LocalStore(settings)
    reopened.init()
    try:
        floors = reopened.get_floors()
        assert [f.id for f in floors] == [1, 2]
        assert floors[0].name == "Lobby"
    finally:
        reopened.close()


def test_debounce_timer_flushes_after_quiet_window(settings, building):
    store = LocalStore(settings.model_copy(update={"SAVE_DEBOUNCE_MS": 50}))
    store.init()
    try:
        before = store.save_count
        for floor in building["floors"]:
            store.upsert_floors([floor])

        deadline = time.monotonic() + 3
        while store.save_count == before and time.monotonic() < deadline:
            time.sleep(0.02)

        assert store.save_count == before + 1
        assert not store.save_pending
    finally:
        store.close()


def test_failed_flush_keeps_data_in_memory(store, building, monkeypatch):
    def fail_replace(src, dst):
        raise OSError("disk full")

    store.upsert_floors(building["floors"])
    before = store.save_count

    monkeypatch.setattr("kiosk_nav.db.store.os.replace", fail_replace)
    assert store.flush_save() is False
    assert store.save_count == before
    assert len(store.get_floors()) == 2

    monkeypatch.undo()
    assert store.flush_save() is True
    assert store.save_count == before + 1


def test_get_floors_ordered_by_floor_number(store):
    store.upsert_floors([
        {"id": 7, "name": "Roof", "floor_number": 10},
        {"id": 3, "name": "Basement", "floor_number": -1},
        {"id": 5, "name": "Ground", "floor_number": 1},
    ])
    assert [f.name for f in store.get_floors()] == ["Basement", "Ground", "Roof"]
    assert store.get_floor(5).name == "Ground"
    assert store.get_floor(404) is None


def test_search_rooms_matches_name_or_keywords_case_insensitive(store):
    store.upsert_rooms([
        {"id": 1, "name": "Reading hall", "keywords": "LIB annex, quiet"},
        {"id": 2, "name": "Library"},
        {"id": 3, "name": "Cafeteria", "keywords": "food"},
    ])

    assert [r.name for r in store.search_rooms("lib")] == ["Library", "Reading hall"]
    assert [r.name for r in store.search_rooms("LIB")] == ["Library", "Reading hall"]
    assert store.search_rooms("gym") == []


def test_search_rooms_caps_results_at_twenty(store):
    store.upsert_rooms([{"id": i, "name": f"Room {i:02d}"} for i in range(30, 0, -1)])

    found = store.search_rooms("room")
    assert len(found) == 20
    assert [r.name for r in found] == [f"Room {i:02d}" for i in range(1, 21)]
    assert len(store.search_rooms("room", limit=100)) == 20


def test_search_rooms_escapes_like_wildcards(store):
    store.upsert_rooms([
        {"id": 1, "name": "100% Fitness"},
        {"id": 2, "name": "Gym"},
        {"id": 3, "name": "Lab_2"},
        {"id": 4, "name": "Lab 3"},
    ])
    assert [r.name for r in store.search_rooms("%")] == ["100% Fitness"]
    assert [r.name for r in store.search_rooms("b_")] == ["Lab_2"]


def test_waypoint_ids_round_trip_as_strings(store):
    store.upsert_floors([{"id": 1, "name": "Ground", "floor_number": 1}])
    store.upsert_waypoints([{"id": 42, "floor_id": 1, "x": 1.5, "y": 2, "type": "corridor"}])
    store.upsert_connections([{"id": 7, "from_waypoint_id": 42, "to_waypoint_id": "wp-b", "distance": 3.25}])

    waypoint = store.get_waypoint("42")
    assert waypoint is not None and waypoint.id == "42"
    assert waypoint.x == 1.5
    connection = store.get_all_connections()[0]
    assert (connection.id, connection.from_waypoint_id, connection.distance) == ("7", "42", 3.25)


def test_connections_by_floor_include_cross_floor_edges(seeded_store):
    seeded_store.upsert_connections([
        {"id": "x1", "from_waypoint_id": "s1", "to_waypoint_id": "s2", "distance": 40},
    ])

    floor1 = {c.id for c in seeded_store.get_connections_by_floor(1)}
    floor2 = {c.id for c in seeded_store.get_connections_by_floor(2)}
    assert floor1 == {"e1", "e2", "e3", "x1"}
    assert floor2 == {"e4", "e5", "x1"}


def test_clear_by_floor_only_touches_that_floor(seeded_store):
    assert seeded_store.clear_connections_by_floor(2) == 2
    assert seeded_store.clear_waypoints_by_floor(2) == 3

    assert seeded_store.get_waypoints_by_floor(2) == []
    assert len(seeded_store.get_waypoints_by_floor(1)) == 4
    assert len(seeded_store.get_all_connections()) == 3



def test_replace_connections_replaces_whole_table(seeded_store):
    seeded_store.replace_connections([
        {"id": "e1", "from_waypoint_id": "k1", "to_waypoint_id": "c1", "distance": 7},
        {"id": "x1", "from_waypoint_id": "s1", "to_waypoint_id": "s2", "distance": 40},
    ])

    assert {c.id: c.distance for c in seeded_store.get_all_connections()} == {"e1": 7, "x1": 40}
    assert {c.id for c in seeded_store.get_connections_by_floor(2)} == {"x1"}


def test_ping(store, monkeypatch):
    assert store.ping() is True

    def broken_session():
        raise OperationalError("SELECT 1", {}, Exception("gone"))

    monkeypatch.setattr(store, "SessionLocal", broken_session)
    assert store.ping() is False


def test_replace_floors_keeps_existing_local_image(store, tmp_path):
    image = tmp_path / "floor_1_ground.png"
    image.write_bytes(b"png")
    ground = {"id": 1, "name": "Ground", "floor_number": 1, "image_url": "/media/floors/ground.png"}
    store.upsert_floors([ground])
    assert store.set_floor_local_image_path(1, str(image)) is True
    assert store.set_floor_local_image_path(1, str(image)) is False

    store.replace_floors([{**ground, "name": "Ground floor"}])
    floor = store.get_floor(1)
    assert floor.name == "Ground floor"
    assert floor.local_image_path == str(image)

    image.unlink()
    store.replace_floors([ground])
    assert store.get_floor(1).local_image_path is None


def test_replace_floors_drops_image_when_plan_removed(store, tmp_path):
    image = tmp_path / "floor_1_ground.png"
    image.write_bytes(b"png")
    store.upsert_floors([{"id": 1, "name": "Ground", "floor_number": 1, "image_url": "/media/floors/ground.png"}])
    store.set_floor_local_image_path(1, str(image))

    store.replace_floors([{"id": 1, "name": "Ground", "floor_number": 1, "image_url": None}])

    floor = store.get_floor(1)
    assert floor.image_url is None
    assert floor.local_image_path is None


def test_cleanup_orphans_enforces_references(store):
    store.upsert_floors([{"id": 1, "name": "Ground", "floor_number": 1}])
    store.upsert_waypoints([
        {"id": "a", "floor_id": 1, "x": 0, "y": 0, "type": "corridor"},
        {"id": "a2", "floor_id": 1, "x": 5, "y": 0, "type": "corridor"},
        {"id": "b", "floor_id": 9, "x": 0, "y": 0, "type": "corridor"},
    ])
    store.upsert_connections([
        {"id": "ab", "from_waypoint_id": "a", "to_waypoint_id": "b", "distance": 1},
        {"id": "aa2", "from_waypoint_id": "a", "to_waypoint_id": "a2", "distance": 5},
    ])
    store.upsert_rooms([
        {"id": 1, "name": "Kept", "floor_id": 1},
        {"id": 2, "name": "Orphan", "floor_id": 9},
        {"id": 3, "name": "No floor", "floor_id": None},
    ])
    store.upsert_kiosks([
        {"id": 1, "name": "Kept", "floor_id": 1, "waypoint_id": "a"},
        {"id": 2, "name": "Orphan", "floor_id": 9},
    ])

    removed = store.cleanup_orphans()

    assert removed == {"waypoints": 1, "connections": 1, "rooms": 1, "kiosks": 1}
    floor_ids = {f.id for f in store.get_floors()}
    waypoint_ids = {w.id for w in store.get_all_waypoints()}
    assert all(w.floor_id in floor_ids for w in store.get_all_waypoints())
    assert all(
        c.from_waypoint_id in waypoint_ids and c.to_waypoint_id in waypoint_ids
        for c in store.get_all_connections()
    )
    assert all(r.floor_id is None or r.floor_id in floor_ids for r in store.get_rooms())
    assert [k.id for k in store.get_kiosks()] == [1]

    # Второй проход ничего не находит
    assert store.cleanup_orphans() == {"waypoints": 0, "connections": 0, "rooms": 0, "kiosks": 0}


def test_sync_info_upsert(store):
    assert store.get_sync_info("last_sync") is None
    store.set_sync_info("last_sync", "2026-01-01T00:00:00+00:00")
    store.set_sync_info("last_sync", "2026-01-02T00:00:00+00:00")

    assert store.get_sync_info("last_sync") == "2026-01-02T00:00:00+00:00"
    info = store.get_all_sync_info()
    assert [i.key for i in info] == ["last_sync"]
    assert info[0].updated_at is not None


def test_additive_migration_adds_missing_columns(settings):
    # Файл базы старой версии: без floors.local_image_path и rooms.keywords
    settings.db_path.parent.mkdir(parents=True)
    engine = create_engine(f"sqlite:///{settings.db_path}")
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE floors (id INTEGER PRIMARY KEY, name TEXT NOT NULL, floor_number INTEGER NOT NULL, "
            "image_url TEXT, image_width INTEGER, image_height INTEGER)"
        ))
        conn.execute(text(
            "CREATE TABLE rooms (id INTEGER PRIMARY KEY, name TEXT NOT NULL, waypoint_id TEXT, floor_id INTEGER)"
        ))
        conn.execute(text("INSERT INTO floors (id, name, floor_number) VALUES (1, 'Ground', 1)"))
        conn.execute(text("INSERT INTO rooms (id, name, floor_id) VALUES (5, 'Library', 1)"))
    engine.dispose()

    store = LocalStore(settings)
    store.init()
    try:
        # схема обновлена и сразу сохранена
        assert store.save_count == 1
        floor = store.get_floor(1)
        assert floor.name == "Ground"
        assert floor.local_image_path is None
        assert store.get_room(5).keywords is None

        store.upsert_rooms([{"id": 5, "name": "Library", "floor_id": 1, "keywords": "books"}])
        assert [r.id for r in store.search_rooms("books")] == [5]
    finally:
        store.close()

    reopened = LocalStore(settings)
    reopened.init()
    try:
        # повторный запуск миграции не требует
        assert reopened.save_count == 0
        assert reopened.get_room(5).keywords == "books"
    finally:
        reopened.close()


def test_search_rooms_empty_query_lists_rooms_by_name(seeded_store):
    assert [r.name for r in seeded_store.search_rooms("")] == ["Cafeteria", "Dean's office", "Library"]
    assert seeded_store.search_rooms("   ") == []
