"""
test_api.py

Testes das rotas HTTP com uma fachada montada sobre conexões falsas.
A ponte não é iniciada: a fachada é injetada em criar_app.
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from scale_bridge.api.fachada import StatusFacade
from scale_bridge.api.main import criar_app
from scale_bridge.core.schemas import LeituraMensagem
from scale_bridge.database.repositorio import LeituraRepositorio
from scale_bridge.mqtt.ponte import BridgeStats


def _leitura(scale_id: str, timestamp: int, weight_kg: float = 1.0, location: str = "WAREHOUSE_A"):
    return LeituraMensagem(
        scale_id=scale_id,
        location=location,
        item_type="COMPONENTS",
        weight_kg=weight_kg,
        item_count=2,
        item_weight=0.5,
        timestamp=timestamp,
        status="active",
    )


@pytest.fixture
def ponte_falsa(conexao_falsa):
    return SimpleNamespace(
        local=conexao_falsa("local", conectada=True),
        nuvem=conexao_falsa("cloud", conectada=False),
        repositorio=LeituraRepositorio(),
        stats=BridgeStats(persistidas=3),
    )


@pytest.fixture
def cliente(ponte_falsa):
    relogio = iter([100.0, 142.5])
    fachada = StatusFacade(ponte_falsa, "edge_001", "Warehouse", relogio_monotonico=lambda: next(relogio))
    with TestClient(criar_app(fachada)) as cliente:
        yield cliente


def test_health(cliente):
    resposta = cliente.get("/health")

    assert resposta.status_code == 200
    corpo = resposta.json()
    assert corpo["status"] == "healthy"
    assert corpo["node_id"] == "edge_001"
    assert corpo["timestamp"] > 0


def test_status_reflete_as_duas_conexoes(cliente):
    corpo = cliente.get("/api/status").json()

    assert corpo["local"]["connected"] is True
    assert corpo["local"]["state"] == "connected"
    assert corpo["cloud"]["connected"] is False
    assert corpo["cloud"]["last_connected_at"] is None
    assert corpo["node_identity"] == {"node_id": "edge_001", "location": "Warehouse"}
    assert corpo["uptime_seconds"] == pytest.approx(42.5)
    assert corpo["stats"]["persistidas"] == 3


def test_lista_balancas(cliente, ponte_falsa):
    ponte_falsa.repositorio.insert(_leitura("SCALE_002", 1, location="WAREHOUSE_B"))
    ponte_falsa.repositorio.insert(_leitura("SCALE_001", 2))
    ponte_falsa.repositorio.insert(_leitura("SCALE_001", 3))

    corpo = cliente.get("/api/scales").json()

    assert corpo == [
        {"scale_id": "SCALE_001", "location": "WAREHOUSE_A"},
        {"scale_id": "SCALE_002", "location": "WAREHOUSE_B"},
    ]


def test_leituras_de_uma_balanca(cliente, ponte_falsa):
    for ts in (10, 30, 20):
        ponte_falsa.repositorio.insert(_leitura("SCALE_001", ts, weight_kg=ts / 10))
    ponte_falsa.repositorio.insert(_leitura("SCALE_002", 40))

    corpo = cliente.get("/api/scales/SCALE_001/readings", params={"limit": 2}).json()

    assert [item["timestamp"] for item in corpo] == [30, 20]
    assert corpo[0]["weight_kg"] == 3.0
    assert corpo[0]["status"] == "active"


def test_leituras_de_balanca_desconhecida(cliente):
    resposta = cliente.get("/api/scales/SCALE_999/readings")

    assert resposta.status_code == 200
    assert resposta.json() == []


@pytest.mark.parametrize("limit", [0, 1001, -5])
def test_limite_fora_do_intervalo(cliente, limit):
    resposta = cliente.get("/api/readings/recent", params={"limit": limit})

    assert resposta.status_code == 422


def test_dashboard_ultima_leitura_por_balanca(cliente, ponte_falsa):
    ponte_falsa.repositorio.insert(_leitura("SCALE_001", 10, weight_kg=1.0))
    ponte_falsa.repositorio.insert(_leitura("SCALE_001", 50, weight_kg=5.0))
    ponte_falsa.repositorio.insert(_leitura("SCALE_002", 20, weight_kg=2.0))

    corpo = cliente.get("/api/dashboard").json()

    assert [(item["scale_id"], item["weight_kg"]) for item in corpo] == [
        ("SCALE_001", 5.0),
        ("SCALE_002", 2.0),
    ]


def test_leituras_recentes_em_ordem_de_chegada(cliente, ponte_falsa):
    ponte_falsa.repositorio.insert(_leitura("SCALE_001", 50))
    ponte_falsa.repositorio.insert(_leitura("SCALE_002", 10))

    corpo = cliente.get("/api/readings/recent", params={"limit": 10}).json()

    assert [item["scale_id"] for item in corpo] == ["SCALE_002", "SCALE_001"]
