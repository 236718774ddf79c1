from collections.abc import AsyncGenerator, Callable
from datetime import UTC, date, datetime
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.config import Settings
from src.core.dependencies import get_refresher
from src.main import app
from src.schemas.facility import FacilityMetadata
from src.services.upstream import ReportRefresher, UpstreamClient


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 1, 20, 12, 0, tzinfo=UTC)


@pytest.fixture
def week() -> tuple[date, date]:
    return date(2024, 1, 1), date(2024, 1, 7)


@pytest.fixture
def settings() -> Settings:
    return Settings(timezone="UTC", default_window_days=30)


@pytest.fixture
def facility() -> FacilityMetadata:
    return FacilityMetadata(facility_id="12", total_capacity=10, zone_capacities={"A": 5})


@pytest.fixture
def history_rows() -> list[dict[str, Any]]:
    """Four stays inside 2024-01-01..07, one in the preceding week, one still parked."""
    return [
        {
            "hist_id": 1,
            "entrada": "2024-01-02T10:00:00",
            "salida": "2024-01-02T12:00:00",
            "pag_monto": 100,
            "mepa_metodo": "efectivo",
            "veh_patente": "AAA111",
            "pla_zona": "A",
            "catv_segmento": "AUT",
        },
        {
            "hist_id": 2,
            "entrada": "2024-01-03T09:00:00",
            "salida": "2024-01-03T09:30:00",
            "pag_monto": 50,
            "mepa_metodo": "Tarjeta de débito",
            "veh_patente": "aaa 111",
            "pla_zona": "A",
            "catv_segmento": "AUT",
        },
        {
            "hist_id": 3,
            "entrada": "2024-01-05T08:00:00",
            "salida": "2024-01-05T16:00:00",
            "pag_monto": 200,
            "mepa_metodo": "Mercado Pago",
            "veh_patente": "BBB222",
            "pla_zona": "A",
            "catv_segmento": "MOT",
        },
        {
            "hist_id": 4,
            "entrada": "2023-12-28T10:00:00",
            "salida": "2023-12-28T11:00:00",
            "pag_monto": 80,
            "mepa_metodo": "efectivo",
            "veh_patente": "CCC333",
            "pla_zona": "A",
        },
        {
            "hist_id": 5,
            "entrada": "2024-01-06T10:00:00",
            "pla_zona": "B",
        },
    ]


@pytest.fixture
def subscription_rows() -> list[dict[str, Any]]:
    return [
        {
            "abo_nro": 1,
            "conductor_nombre": "Ana",
            "conductor_apellido": "Paz",
            "tipo_abono": "mensual",
            "fecha_inicio": "2023-12-15T00:00:00",
            "fecha_fin": "2024-01-10T00:00:00",
            "estado": "Activo",
            "zona": "A",
        },
        {
            "abo_nro": 2,
            "tipo_abono": "SEMANAL",
            "fecha_inicio": "2024-01-03T00:00:00",
            "fecha_fin": "2024-01-20T00:00:00",
            "estado": "activo",
        },
        {
            "abo_nro": 3,
            "tipo_abono": "mensual",
            "fecha_inicio": "2023-11-01T00:00:00",
            "fecha_fin": "2023-11-30T00:00:00",
            "estado": "vencido",
        },
    ]


@pytest.fixture
def shift_rows() -> list[dict[str, Any]]:
    return [
        {
            "tur_id": 1,
            "tur_fecha": "2024-01-02",
            "tur_hora_entrada": "08:00",
            "tur_hora_salida": "16:00",
            "usuario": {"nombre": "Ana", "apellido": "Paz"},
        },
        {
            "tur_id": 2,
            "tur_fecha": "2024-01-05",
            "tur_hora_entrada": "14:00",
            "tur_hora_salida": "22:00",
            "play_id": 7,
        },
    ]


def json_response(payload: Any) -> httpx.Response:
    return httpx.Response(200, json=payload)


# Four car spots and two motorcycle spots
SPOTS = [{"pla_numero": n, "plantillas": {"catv_segmento": "AUT"}} for n in range(1, 5)] + [
    {"pla_numero": n, "plantillas": {"catv_segmento": "MOT"}} for n in (5, 6)
]


def fake_upstream(
    history: list[dict[str, Any]], failing: tuple[str, ...] = ()
) -> Callable[[httpx.Request], httpx.Response]:
    """Fake upstream backend serving one facility."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path in failing:
            return httpx.Response(500, json={"detail": "boom"})
        if path.endswith("/config"):
            return json_response({"estacionamiento": {"est_capacidad": 10, "plazas_abonadas": 0}})
        if path.endswith("/horarios"):
            return json_response([])
        if path.endswith("/plazas"):
            return json_response({"plazas": SPOTS})
        if path.endswith("/history"):
            return json_response({"history": history})
        if path.endswith("/abonos/list"):
            return json_response({"abonos": []})
        if path.endswith("/turnos/gestion"):
            return json_response({"turnos": []})
        return httpx.Response(404)

    return handler


def build_refresher(handler, settings: Settings) -> ReportRefresher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://upstream")
    return ReportRefresher(UpstreamClient(client, settings), settings)


@pytest_asyncio.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def use_refresher():
    def install(refresher: ReportRefresher) -> ReportRefresher:
        app.dependency_overrides[get_refresher] = lambda: refresher
        return refresher

    return install


@pytest.fixture
def upstream_handler():
    return fake_upstream


@pytest.fixture
def make_refresher(settings: Settings):
    return lambda handler: build_refresher(handler, settings)
