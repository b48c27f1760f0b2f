from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class FloorSchema(BaseModel):
    id: int = Field(..., description="ID этажа")
    name: str = Field(..., description="Название этажа")
    floor_number: int = Field(..., description="Номер этажа (ключ сортировки)")
    image_url: Optional[str] = Field(None, description="Адрес плана этажа на сервере")
    image_width: Optional[int] = Field(None, description="Ширина плана в пикселях")
    image_height: Optional[int] = Field(None, description="Высота плана в пикселях")

    model_config = {"from_attributes": True}


class FloorOut(FloorSchema):
    local_image_path: Optional[str] = Field(None, description="Путь к локальной копии плана")


class WaypointSchema(BaseModel):
    id: str = Field(..., description="Глобально уникальный ID точки")
    floor_id: int = Field(..., description="ID этажа")
    x: float = Field(..., description="X-координата (пиксели плана)")
    y: float = Field(..., description="Y-координата (пиксели плана)")
    type: str = Field(..., description="Тип точки: room, stairs, elevator, corridor и т.д.")
    label: Optional[str] = Field(None, description="Подпись точки")
    connects_to_floor: Optional[int] = Field(None, description="Этаж парной точки (stairs/elevator)")
    connects_to_waypoint: Optional[str] = Field(None, description="ID парной точки (stairs/elevator)")

    # Сервер может отдавать числовые ID, храним их как строки
    model_config = {"from_attributes": True, "coerce_numbers_to_str": True}


class ConnectionSchema(BaseModel):
    id: str = Field(..., description="ID ребра")
    from_waypoint_id: str
    to_waypoint_id: str
    distance: float = Field(..., ge=0, description="Длина ребра в единицах плана")

    model_config = {"from_attributes": True, "coerce_numbers_to_str": True}


class RoomSchema(BaseModel):
    id: int = Field(..., description="ID помещения")
    name: str = Field(..., description="Название помещения")
    waypoint_id: Optional[str] = Field(None, description="Точка графа, к которой привязано помещение")
    floor_id: Optional[int] = Field(None, description="ID этажа")
    keywords: Optional[str] = Field(None, description="Ключевые слова для поиска")

    model_config = {"from_attributes": True, "coerce_numbers_to_str": True}


class KioskSchema(BaseModel):
    id: int = Field(..., description="ID киоска")
    name: str = Field(..., description="Название киоска")
    floor_id: int = Field(..., description="Этаж, на котором стоит киоск")
    waypoint_id: Optional[str] = Field(None, description="Точка графа, где стоит киоск")
    description: Optional[str] = None

    model_config = {"from_attributes": True, "coerce_numbers_to_str": True}


class SyncInfoOut(BaseModel):
    key: str
    value: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PathStep(BaseModel):
    waypoint_id: str
    floor_id: int
    x: float
    y: float
    type: str
    label: Optional[str] = None
    instruction: Optional[str] = None


class NavigationResult(BaseModel):
    path: List[PathStep]
    total_distance: float
    floor_changes: int
    estimated_time_minutes: float


class FindPathRequest(BaseModel):
    start_room_id: int = Field(0, description="Начальное помещение (0, если не задано)")
    end_room_id: int = Field(..., description="Конечное помещение")
    kiosk_id: Optional[int] = Field(None, description="Киоск, от которого строится маршрут")


class PathResponse(BaseModel):
    success: bool
    # ответ сервера передаётся как есть, офлайн-результат моделью
    data: Optional[Dict[str, Any] | NavigationResult] = Field(None, union_mode="left_to_right")
    offline: bool = False
    error: Optional[str] = None


class SyncReport(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    resources: Dict[str, str] = Field(
        default_factory=dict,
        description="Результат по каждому ресурсу: synced, unchanged или failed",
    )
    errors: List[str] = Field(default_factory=list)
    orphans_removed: Dict[str, int] = Field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


class SyncResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    report: Optional[SyncReport] = None


class SyncStatus(BaseModel):
    api_url: str
    kiosk_id: int
    online: Optional[bool] = None
    in_progress: bool
    save_count: int
    sync_info: List[SyncInfoOut]
