"""
main.py

API de leitura do gateway usando FastAPI.

A API não tem lógica própria: todas as rotas chamam a StatusFacade.
No ciclo de vida da aplicação a ponte MQTT é iniciada e encerrada.

Rotas principais:
- GET /health
- GET /api/status
- GET /api/scales
- GET /api/scales/{scale_id}/readings
- GET /api/dashboard
- GET /api/readings/recent
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request

from scale_bridge.api.fachada import StatusFacade
from scale_bridge.api.schemas import BalancaOut, GatewayStatusOut, HealthOut, LeituraOut
from scale_bridge.config.settings import settings
from scale_bridge.mqtt.ponte import iniciar_ponte
from scale_bridge.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def _ciclo_de_vida(app: FastAPI):
    """
    Inicia a ponte junto com a API, a menos que uma fachada já tenha sido
    injetada (testes ou composição externa).
    """
    ponte = None
    if getattr(app.state, "fachada", None) is None:
        ponte = iniciar_ponte()
        app.state.fachada = StatusFacade(ponte, settings.EDGE_NODE_ID, settings.LOCATION)
        logger.info("API iniciada para o nó %s (%s).", settings.EDGE_NODE_ID, settings.LOCATION)

    try:
        yield
    finally:
        if ponte is not None:
            ponte.stop()


def get_fachada(request: Request) -> StatusFacade:
    return request.app.state.fachada


def criar_app(fachada: Optional[StatusFacade] = None) -> FastAPI:
    app = FastAPI(
        title="edge-scale-bridge API",
        version="0.1.0",
        description="API de leitura das balanças e da saúde das conexões do gateway.",
        lifespan=_ciclo_de_vida,
    )
    app.state.fachada = fachada

    # ------------------- HEALTHCHECK ------------------- #

    @app.get("/health", response_model=HealthOut)
    def health(fachada: StatusFacade = Depends(get_fachada)):
        return fachada.health()

    @app.get(
        "/api/status",
        response_model=GatewayStatusOut,
        summary="Saúde das conexões local e nuvem",
    )
    def status(fachada: StatusFacade = Depends(get_fachada)):
        return fachada.status()

    # ------------------- BALANÇAS ------------------- #

    @app.get(
        "/api/scales",
        response_model=List[BalancaOut],
        summary="Lista balanças conhecidas",
    )
    def listar_balancas(fachada: StatusFacade = Depends(get_fachada)):
        return [BalancaOut(scale_id=s, location=loc) for s, loc in fachada.list_scales()]

    @app.get(
        "/api/scales/{scale_id}/readings",
        response_model=List[LeituraOut],
        summary="Lista as últimas leituras de uma balança",
    )
    def listar_leituras(
        scale_id: str,
        limit: int = Query(100, ge=1, le=1000, description="Quantidade de leituras"),
        fachada: StatusFacade = Depends(get_fachada),
    ):
        return fachada.list_readings(scale_id, limit)

    @app.get(
        "/api/dashboard",
        response_model=List[LeituraOut],
        summary="Última leitura de cada balança",
    )
    def dashboard(fachada: StatusFacade = Depends(get_fachada)):
        return fachada.latest_per_scale()

    @app.get(
        "/api/readings/recent",
        response_model=List[LeituraOut],
        summary="Últimas leituras de todas as balanças",
    )
    def listar_recentes(
        limit: int = Query(100, ge=1, le=1000, description="Quantidade de leituras"),
        fachada: StatusFacade = Depends(get_fachada),
    ):
        return fachada.list_recent(limit)

    return app


app = criar_app()
