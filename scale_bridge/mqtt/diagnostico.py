"""
diagnostico.py

Diagnóstico único de conexão com um broker (local ou nuvem).

Conecta com reconexão desativada (reconnect_period=0), assina um filtro de
teste, publica uma mensagem de prova com QoS 1 e imprime um resumo
PASS/FAIL. Sai com código 1 se algum passo falhar.

Uso:

    python -m scale_bridge.mqtt.diagnostico local
    python -m scale_bridge.mqtt.diagnostico cloud --quick
"""

import argparse
import json
import queue
import sys
import time
from dataclasses import dataclass, field
from typing import List, Optional

from scale_bridge.config.settings import settings
from scale_bridge.core.erros import ConfigurationError, PublishError, SubscriptionError
from scale_bridge.core.schemas import BrokerConfig
from scale_bridge.mqtt.conexao import BrokerConnection, EventoConexao, TipoEvento, criar_cliente_paho
from scale_bridge.utils.logger import get_logger

logger = get_logger(__name__)

TOPICO_PROVA = "test/edge-processor"
TIMEOUT_HANDSHAKE = 10.0
TIMEOUT_ACK = 5.0
TIMEOUT_ECO = 5.0


@dataclass
class ResultadoDiagnostico:
    conexao: Optional[bool] = None
    assinatura: Optional[bool] = None
    publicacao: Optional[bool] = None
    erros: List[str] = field(default_factory=list)

    def aprovado(self, rapido: bool = False) -> bool:
        if rapido:
            return bool(self.conexao)
        return bool(self.conexao and self.assinatura and self.publicacao)


class DiagnosticoConexao:
    def __init__(self, nome: str, config: BrokerConfig, fabrica_cliente=criar_cliente_paho):
        self.config = config.model_copy(
            update={
                "reconnect_period": 0,
                "connect_timeout": min(config.connect_timeout, TIMEOUT_HANDSHAKE),
                "client_id": f"{config.client_id or settings.EDGE_NODE_ID}-diag",
            }
        )
        self.canal: "queue.Queue[EventoConexao]" = queue.Queue()
        self.conexao = BrokerConnection(nome, self.canal, fabrica_cliente)
        self.resultado = ResultadoDiagnostico()

    def testar_conexao(self) -> bool:
        logger.info("Testando conexão com %s...", self.config.url)
        inicio = time.monotonic()
        self.conexao.connect(self.config)

        if self.conexao.esperar_conexao(self.config.connect_timeout + 1.0):
            logger.info("Conectado em %.0fms.", (time.monotonic() - inicio) * 1000)
            self.resultado.conexao = True
        else:
            erro = self.conexao.status().last_error or "timeout"
            logger.error("Falha na conexão: %s", erro)
            self.resultado.conexao = False
            self.resultado.erros.append(f"Conexão: {erro}")
        return self.resultado.conexao

    def testar_assinatura(self) -> bool:
        filtro = f"{TOPICO_PROVA}/+"
        try:
            self.conexao.subscribe(filtro, qos=1)
        except SubscriptionError as exc:
            self.resultado.assinatura = False
            self.resultado.erros.append(f"Assinatura: {exc}")
            return False

        self.resultado.assinatura = True
        logger.info("Assinado %s.", filtro)
        return True

    def testar_publicacao(self) -> bool:
        topico = f"{TOPICO_PROVA}/{settings.EDGE_NODE_ID}"
        mensagem = {
            "test": True,
            "timestamp": int(time.time() * 1000),
            "nodeId": settings.EDGE_NODE_ID,
            "message": "MQTT connection test from edge gateway",
        }
        try:
            info = self.conexao.publish(topico, json.dumps(mensagem).encode("utf-8"), qos=1)
            info.wait_for_publish(TIMEOUT_ACK)
        except (PublishError, RuntimeError, ValueError) as exc:
            self.resultado.publicacao = False
            self.resultado.erros.append(f"Publicação: {exc}")
            return False

        self.resultado.publicacao = info.is_published()
        if not self.resultado.publicacao:
            self.resultado.erros.append(f"Publicação: sem PUBACK em {TIMEOUT_ACK}s")
            return False

        logger.info("Publicado em %s (PUBACK recebido).", topico)
        self._aguardar_eco(topico)
        return True

    def _aguardar_eco(self, topico: str) -> None:
        limite = time.monotonic() + TIMEOUT_ECO
        while True:
            restante = limite - time.monotonic()
            if restante <= 0:
                break
            try:
                evento = self.canal.get(timeout=restante)
            except queue.Empty:
                break
            if evento.tipo == TipoEvento.MESSAGE and evento.topic == topico:
                logger.info("Eco recebido em %s.", topico)
                return
        logger.warning("Nenhum eco recebido em %ss (pode ser normal com ACLs).", TIMEOUT_ECO)

    def executar(self, rapido: bool = False) -> ResultadoDiagnostico:
        try:
            if self.testar_conexao() and not rapido:
                self.testar_assinatura()
                self.testar_publicacao()
        finally:
            self.conexao.close()
        return self.resultado


def _imprimir_resultado(resultado: ResultadoDiagnostico, rapido: bool) -> None:
    def _marca(valor: Optional[bool]) -> str:
        return "PASS" if valor else "FAIL"

    logger.info("=" * 60)
    logger.info("Conexão:    %s", _marca(resultado.conexao))
    if not rapido:
        logger.info("Assinatura: %s", _marca(resultado.assinatura))
        logger.info("Publicação: %s", _marca(resultado.publicacao))
    for erro in resultado.erros:
        logger.error("  - %s", erro)
    logger.info("Resultado: %s", "APROVADO" if resultado.aprovado(rapido) else "REPROVADO")
    logger.info("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="scale-bridge-diag",
        description="Testa a conexão com o broker local ou da nuvem",
    )
    parser.add_argument("alvo", choices=["local", "cloud"])
    parser.add_argument("--quick", "-q", action="store_true", help="Testa apenas a conexão.")
    args = parser.parse_args(argv)

    config = settings.broker_local() if args.alvo == "local" else settings.broker_nuvem()
    if config is None:
        logger.error("CLOUD_MQTT_HOST não configurado.")
        return 1

    try:
        resultado = DiagnosticoConexao(args.alvo, config).executar(rapido=args.quick)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    _imprimir_resultado(resultado, args.quick)
    return 0 if resultado.aprovado(args.quick) else 1


if __name__ == "__main__":
    sys.exit(main())
