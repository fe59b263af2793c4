"""
schemas.py

Schemas Pydantic do núcleo do gateway:

- LeituraMensagem: validação do payload de telemetria publicado pelas balanças.
- ConnectionStatus: snapshot imutável da saúde de uma conexão MQTT.
- BrokerConfig: parâmetros de conexão com um broker.

Compatível com Pydantic v2.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StatusBalanca(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"
    ERROR = "error"
    UNKNOWN = "unknown"


class LeituraMensagem(BaseModel):
    """
    Representa uma única leitura de balança recebida via MQTT.

    Compatível com o payload publicado pelo firmware (ESP32):

        {
          "scale_id": "SCALE_001",
          "location": "WAREHOUSE_A",
          "item_type": "COMPONENTS",
          "weight_kg": 2.5,
          "item_count": 5,
          "item_weight": 0.5,
          "timestamp": 1700000000000,
          "status": "active"
        }

    Campos extras enviados pelo dispositivo são tolerados e ignorados.
    """

    model_config = ConfigDict(extra="ignore")

    scale_id: str = Field(min_length=1)
    location: str
    item_type: str
    weight_kg: float = Field(ge=0)
    item_count: int = Field(ge=0)
    item_weight: float = Field(ge=0)
    # epoch em milissegundos, atribuído pelo produtor; cabe em BigInteger
    timestamp: int = Field(ge=0, lt=2**63)
    status: StatusBalanca

    @field_validator("status", mode="before")
    @classmethod
    def status_desconhecido(cls, v):
        """
        Valores de status fora do enum viram 'unknown' em vez de descartar a leitura.
        """
        if isinstance(v, str):
            try:
                return StatusBalanca(v.strip().lower())
            except ValueError:
                return StatusBalanca.UNKNOWN
        return v


class EstadoConexao(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    OFFLINE = "offline"


class ConnectionStatus(BaseModel):
    """
    Snapshot imutável da saúde de uma conexão com broker.

    Cada BrokerConnection substitui o snapshot inteiro a cada mudança;
    leitores nunca veem um estado parcialmente atualizado.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    host: Optional[str] = None
    port: Optional[int] = None
    state: EstadoConexao = EstadoConexao.DISCONNECTED
    connected: bool = False
    last_connected_at: Optional[datetime] = None
    last_error: Optional[str] = None
    reconnect_attempts: int = 0


class BrokerConfig(BaseModel):
    """
    Parâmetros de conexão com um broker MQTT.

    - Autenticação só é usada se usuário E senha estiverem definidos.
    - reconnect_period == 0 desativa a reconexão automática (diagnósticos).
    """

    host: str
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    connect_timeout: float = Field(30.0, gt=0)
    reconnect_period: float = Field(5.0, ge=0)
    keepalive: int = 60
    client_id: str = ""

    @property
    def usa_autenticacao(self) -> bool:
        return bool(self.username) and bool(self.password)

    @property
    def url(self) -> str:
        return f"mqtt://{self.host}:{self.port}"
