"""
fachada.py

Fachada somente-leitura sobre a ponte, consumida pela API HTTP.

- status(): saúde das duas conexões, identidade do nó, uptime e contadores.
- Consultas de leituras delegadas ao repositório.

Não expõe nenhuma operação que altere estado.
"""

import time
from typing import Callable, List, Tuple

from scale_bridge.api.schemas import GatewayStatusOut, HealthOut, NodeIdentityOut
from scale_bridge.database.modelagem_banco import LeituraBalanca
from scale_bridge.mqtt.ponte import RoutingBridge


def _agora_ms() -> int:
    return int(time.time() * 1000)


class StatusFacade:
    def __init__(
        self,
        ponte: RoutingBridge,
        node_id: str,
        location: str,
        relogio_monotonico: Callable[[], float] = time.monotonic,
    ):
        self._ponte = ponte
        self._identidade = NodeIdentityOut(node_id=node_id, location=location)
        self._relogio_monotonico = relogio_monotonico
        self._inicio = relogio_monotonico()

    def uptime(self) -> float:
        return self._relogio_monotonico() - self._inicio

    def status(self) -> GatewayStatusOut:
        return GatewayStatusOut(
            local=self._ponte.local.status(),
            cloud=self._ponte.nuvem.status(),
            node_identity=self._identidade,
            uptime_seconds=self.uptime(),
            timestamp=_agora_ms(),
            stats=self._ponte.stats.snapshot(),
        )

    def health(self) -> HealthOut:
        return HealthOut(status="healthy", timestamp=_agora_ms(), node_id=self._identidade.node_id)

    # ---------------- CONSULTAS ---------------- #

    def list_scales(self) -> List[Tuple[str, str]]:
        return self._ponte.repositorio.list_distinct_scales()

    def list_readings(self, scale_id: str, limit: int = 100) -> List[LeituraBalanca]:
        return self._ponte.repositorio.list_readings(scale_id, limit)

    def latest_per_scale(self) -> List[LeituraBalanca]:
        return self._ponte.repositorio.latest_per_scale()

    def list_recent(self, limit: int = 100) -> List[LeituraBalanca]:
        return self._ponte.repositorio.list_recent(limit)
