"""
publisher.py

Simulador de balanças (ESP32) para o gateway.

Responsável por:
- Conectar ao broker local usando uma BrokerConnection.
- Simular balanças publicando leituras em inventory/scale/{id}.
- Publicar periodicamente mensagens de saúde em inventory/scale/{id}/status.

Útil para exercitar a ponte sem hardware: as leituras publicadas aqui
devem aparecer no banco e, com a nuvem conectada, no broker remoto.
"""

import json
import random
import time
from typing import Dict, List

from scale_bridge.config.settings import settings
from scale_bridge.core.erros import PublishError
from scale_bridge.core.topicos import topico_status, topico_telemetria
from scale_bridge.mqtt.conexao import BrokerConnection
from scale_bridge.utils.logger import get_logger

logger = get_logger(__name__)

# Peso unitário (kg) de cada tipo de item simulado.
TIPOS_DE_ITEM: Dict[str, float] = {
    "COMPONENTS": 0.5,
    "SCREWS": 0.01,
    "BOLTS": 0.05,
    "CABLES": 0.2,
}

# Uma mensagem de status a cada N rodadas de leituras.
RODADAS_POR_STATUS = 6


class BalancaSimulada:
    """
    Representa uma balança simulada que publica leituras no broker local.

    Cada instância desta classe:
    - possui um scale_id e um tipo de item fixos;
    - mantém uma contagem de itens que varia entre publicações;
    - usa a conexão compartilhada para publicar os dados.
    """

    def __init__(self, scale_id: str, location: str, item_type: str, conexao: BrokerConnection):
        self.scale_id = scale_id
        self.location = location
        self.item_type = item_type
        self.conexao = conexao
        self.item_count = random.randint(0, 50)
        self._inicio = time.monotonic()

        # SCALE_001 → inventory/scale/001
        self.dispositivo = scale_id.lower().replace("scale_", "").replace("_", "")
        self.topic = topico_telemetria(self.dispositivo)

    def gerar_payload(self) -> dict:
        """
        Gera uma leitura no formato publicado pelo firmware.

        A contagem de itens anda aleatoriamente (retiradas e reposições) e o
        peso total é derivado dela, com um pequeno ruído de medição.
        """
        self.item_count = max(0, self.item_count + random.randint(-3, 3))
        item_weight = TIPOS_DE_ITEM[self.item_type]
        ruido = random.uniform(-0.005, 0.005)
        weight_kg = max(0.0, round(self.item_count * item_weight + ruido, 3))

        return {
            "scale_id": self.scale_id,
            "location": self.location,
            "item_type": self.item_type,
            "weight_kg": weight_kg,
            "item_count": self.item_count,
            "item_weight": item_weight,
            "timestamp": int(time.time() * 1000),
            "status": "active" if self.item_count > 0 else "idle",
        }

    def gerar_status(self) -> dict:
        return {
            "scale_id": self.scale_id,
            "status": "online",
            "uptime": round(time.monotonic() - self._inicio, 1),
            "timestamp": int(time.time() * 1000),
        }

    def publicar(self):
        self._publicar(self.topic, self.gerar_payload())

    def publicar_status(self):
        self._publicar(topico_status(self.dispositivo), self.gerar_status())

    def _publicar(self, topic: str, payload: dict):
        payload_str = json.dumps(payload)
        try:
            self.conexao.publish(topic, payload_str.encode("utf-8"), qos=1)
        except PublishError as exc:
            logger.warning("Simulador não publicou: %s", exc)
            return
        logger.debug("Publicado em %s: %s", topic, payload_str)


def criar_balancas_simuladas(conexao: BrokerConnection) -> List[BalancaSimulada]:
    """
    Cria uma balança simulada por scale_id de SIMULATOR_SCALE_IDS,
    alternando os tipos de item.
    """
    tipos = list(TIPOS_DE_ITEM)
    return [
        BalancaSimulada(
            scale_id=scale_id,
            location=settings.SIMULATOR_LOCATION,
            item_type=tipos[i % len(tipos)],
            conexao=conexao,
        )
        for i, scale_id in enumerate(settings.SIMULATOR_SCALE_IDS)
    ]


def run_simulator():
    """
    Função principal do simulador.

    Fluxo:
    - conecta ao broker local (com reconexão automática);
    - cria as balanças simuladas;
    - publica uma leitura por balança a cada SIMULATOR_INTERVAL_SECONDS
      e, de tempos em tempos, uma mensagem de status.
    """
    conexao = BrokerConnection("simulador")
    config = settings.broker_local().model_copy(
        update={"client_id": f"{settings.EDGE_NODE_ID}-simulador"}
    )
    conexao.connect(config)

    balancas = criar_balancas_simuladas(conexao)
    intervalo = settings.SIMULATOR_INTERVAL_SECONDS

    logger.info(
        "Iniciando simulador com %s balanças (%s), intervalo %ss.",
        len(balancas),
        settings.SIMULATOR_SCALE_IDS,
        intervalo,
    )

    if not conexao.esperar_conexao(config.connect_timeout):
        logger.warning("Broker local ainda indisponível; o simulador seguirá tentando.")

    rodada = 0
    try:
        while True:
            for balanca in balancas:
                balanca.publicar()
                if rodada % RODADAS_POR_STATUS == 0:
                    balanca.publicar_status()
            rodada += 1

            time.sleep(intervalo)

    except KeyboardInterrupt:
        logger.info("Encerrando simulador (Ctrl+C recebido).")
    finally:
        conexao.close()


if __name__ == "__main__":
    run_simulator()
