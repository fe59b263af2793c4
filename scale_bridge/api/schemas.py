"""
schemas.py

Modelos Pydantic usados nas respostas da API.
São independentes do modelo ORM (LeituraBalanca), mas compatíveis
para conversão via from_attributes.
"""

from datetime import datetime
from typing import Dict

from pydantic import BaseModel, ConfigDict

from scale_bridge.core.schemas import ConnectionStatus


class LeituraOut(BaseModel):
    """
    Representa uma leitura de balança retornada pela API.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    scale_id: str
    location: str
    item_type: str
    weight_kg: float
    item_count: int
    item_weight: float
    timestamp: int
    status: str
    received_at: datetime


class BalancaOut(BaseModel):
    """
    Uma balança conhecida (id e localização).
    """

    scale_id: str
    location: str


class NodeIdentityOut(BaseModel):
    node_id: str
    location: str


class GatewayStatusOut(BaseModel):
    """
    Snapshot de saúde do gateway: as duas conexões, identidade e uptime.
    """

    local: ConnectionStatus
    cloud: ConnectionStatus
    node_identity: NodeIdentityOut
    uptime_seconds: float
    timestamp: int
    stats: Dict[str, int]


class HealthOut(BaseModel):
    status: str
    timestamp: int
    node_id: str
