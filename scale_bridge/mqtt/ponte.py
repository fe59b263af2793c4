"""
ponte.py

Ponte de roteamento entre o broker local e o broker na nuvem.

Responsável por:
- Possuir as duas BrokerConnection (local e nuvem) e o repositório.
- Consumir, em uma única thread, o canal de eventos das duas conexões.
- Telemetria local: validar, gravar no banco e, se a nuvem estiver
  conectada naquele instante, publicar o mesmo payload na nuvem (QoS 1).
- Comandos da nuvem: repassar ao broker local se ele estiver conectado;
  caso contrário, descartar (comandos antigos não são reenviados).
- Status das balanças: apenas log.

O banco local é o único mecanismo de durabilidade: não existe fila de
leituras pendentes e uma reconexão com a nuvem não reenvia o que foi
perdido.
"""

import json
import queue
import signal
import threading
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from pydantic import ValidationError

from scale_bridge.config.settings import settings, Settings
from scale_bridge.core.erros import ParseError, PublishError, StorageError
from scale_bridge.core.schemas import BrokerConfig, LeituraMensagem
from scale_bridge.core.topicos import (
    FILTRO_COMANDOS,
    FILTRO_STATUS,
    FILTRO_TELEMETRIA,
    TipoTopico,
    classificar,
)
from scale_bridge.database.modelagem_banco import inicializar_banco
from scale_bridge.database.repositorio import LeituraRepositorio
from scale_bridge.mqtt.conexao import BrokerConnection, EventoConexao, TipoEvento
from scale_bridge.utils.logger import get_logger

logger = get_logger(__name__)

ORIGEM_LOCAL = "local"
ORIGEM_NUVEM = "cloud"

# Sentinela que encerra o loop de consumo.
_FIM = object()


def converter_payload_para_leitura(payload: bytes) -> LeituraMensagem:
    """
    Converte o payload recebido via MQTT em uma LeituraMensagem.

    Regras:
    - Espera JSON UTF-8 representando um único objeto.
    - O objeto deve seguir o schema LeituraMensagem (Pydantic);
      campos extras são ignorados.
    - Qualquer violação levanta ParseError; nada é gravado nem encaminhado.
    """
    try:
        texto = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Payload não é UTF-8 válido: {exc}") from exc

    try:
        dados = json.loads(texto)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Erro ao decodificar JSON: {exc}") from exc

    if not isinstance(dados, dict):
        raise ParseError("Payload inválido: esperado um objeto JSON com uma leitura.")

    try:
        return LeituraMensagem.model_validate(dados)
    except ValidationError as exc:
        raise ParseError(f"Payload inválido para LeituraMensagem: {exc}") from exc


@dataclass
class BridgeStats:
    """Contadores da ponte. Só a thread de consumo escreve."""

    recebidas_local: int = 0
    recebidas_nuvem: int = 0
    persistidas: int = 0
    encaminhadas_nuvem: int = 0
    nao_encaminhadas_nuvem_offline: int = 0
    comandos_encaminhados: int = 0
    comandos_descartados: int = 0
    erros_parse: int = 0
    erros_gravacao: int = 0
    erros_publicacao: int = 0

    def snapshot(self) -> Dict[str, int]:
        return asdict(self)


class RoutingBridge:
    """
    Liga as duas conexões MQTT tendo o banco local como âncora de consistência.
    """

    def __init__(
        self,
        local: BrokerConnection,
        nuvem: BrokerConnection,
        repositorio: LeituraRepositorio,
        canal: "queue.Queue[EventoConexao]",
        qos_encaminhamento: int = 1,
        salvar_payload_bruto: bool = False,
    ):
        self.local = local
        self.nuvem = nuvem
        self.repositorio = repositorio
        self.stats = BridgeStats()

        self._canal = canal
        self._qos = qos_encaminhamento
        self._salvar_payload_bruto = salvar_payload_bruto
        self._thread: Optional[threading.Thread] = None

    # ---------------- CICLO DE VIDA ---------------- #

    def start(self, config_local: BrokerConfig, config_nuvem: Optional[BrokerConfig] = None) -> None:
        """
        Registra as assinaturas, inicia o consumo do canal e conecta aos brokers.

        Sem config_nuvem o link com a nuvem fica desconectado e as leituras
        são apenas gravadas localmente. ConfigurationError do broker local
        aborta a inicialização.
        """
        self.local.subscribe(FILTRO_TELEMETRIA, self._qos)
        self.local.subscribe(FILTRO_STATUS, self._qos)
        self.nuvem.subscribe(FILTRO_COMANDOS, self._qos)

        self._thread = threading.Thread(target=self._consumir, name="ponte", daemon=True)
        self._thread.start()

        self.local.connect(config_local)

        if config_nuvem is None:
            logger.warning("Broker na nuvem não configurado; leituras serão apenas gravadas localmente.")
        else:
            self.nuvem.connect(config_nuvem)

        logger.info(
            "Ponte iniciada. Telemetria=%s, Status=%s, Comandos=%s, QoS=%s",
            FILTRO_TELEMETRIA,
            FILTRO_STATUS,
            FILTRO_COMANDOS,
            self._qos,
        )

    def stop(self, timeout: float = 10.0) -> None:
        """
        Encerramento cooperativo.

        Fecha as duas conexões, processa as mensagens que já estavam no canal
        (gravações pendentes terminam) e só então fecha o banco.

        Se a thread de consumo não terminar em `timeout`, o banco é fechado
        mesmo assim e o que ainda estiver no canal é perdido (com warning).
        """
        logger.info("Encerrando ponte...")
        self.local.close()
        self.nuvem.close()

        if self._thread is not None:
            self._canal.put(_FIM)
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(
                    "Thread da ponte não terminou em %ss; cerca de %s eventos no canal "
                    "não serão gravados.",
                    timeout,
                    self._canal.qsize(),
                )
            self._thread = None

        self.repositorio.close()
        logger.info("Ponte encerrada. Estatísticas: %s", self.stats.snapshot())

    def _consumir(self) -> None:
        while True:
            evento = self._canal.get()
            try:
                if evento is _FIM:
                    return
                self.processar_evento(evento)
            except Exception:
                logger.exception("Erro inesperado ao processar evento %r.", evento)
            finally:
                self._canal.task_done()

    # ---------------- ROTEAMENTO ---------------- #

    def processar_evento(self, evento: EventoConexao) -> None:
        if evento.tipo == TipoEvento.MESSAGE:
            if evento.origem == self.local.nome:
                self.tratar_mensagem_local(evento.topic, evento.payload)
            elif evento.origem == self.nuvem.nome:
                self.tratar_mensagem_nuvem(evento.topic, evento.payload)
            return

        if evento.origem == self.nuvem.nome:
            if evento.tipo == TipoEvento.CONNECT:
                logger.info("Link com a nuvem ativo: leituras voltam a ser encaminhadas.")
            elif evento.tipo in (TipoEvento.OFFLINE, TipoEvento.DISCONNECT):
                logger.warning("Link com a nuvem indisponível: leituras serão apenas gravadas localmente.")
        elif evento.origem == self.local.nome:
            if evento.tipo in (TipoEvento.OFFLINE, TipoEvento.DISCONNECT):
                logger.warning("Broker local indisponível: comandos da nuvem serão descartados.")

        if evento.tipo == TipoEvento.ERROR:
            logger.debug("Erro reportado por %s: %s", evento.origem, evento.mensagem)

    def tratar_mensagem_local(self, topic: str, payload: bytes) -> None:
        """
        Mensagem do broker local.

        - Status: apenas log.
        - Telemetria: parse → grava → encaminha se a nuvem estiver conectada.
        - Qualquer outro tópico é ignorado.
        """
        self.stats.recebidas_local += 1
        classificado = classificar(topic)

        if classificado.tipo == TipoTopico.STATUS:
            logger.info(
                "Status da balança %s: %s",
                classificado.dispositivo,
                payload.decode("utf-8", errors="replace"),
            )
            return

        if classificado.tipo != TipoTopico.TELEMETRIA:
            logger.debug("Tópico local ignorado: %s", topic)
            return

        try:
            leitura = converter_payload_para_leitura(payload)
        except ParseError as exc:
            self.stats.erros_parse += 1
            logger.warning("Mensagem descartada em %s: %s", topic, exc)
            return

        raw_payload = payload.decode("utf-8") if self._salvar_payload_bruto else None
        try:
            registro = self.repositorio.insert(leitura, raw_payload=raw_payload)
        except StorageError as exc:
            self.stats.erros_gravacao += 1
            logger.error("Leitura perdida: %s", exc)
            return

        self.stats.persistidas += 1
        logger.info(
            "Leitura gravada: %s %.3fkg (%s itens), id=%s",
            leitura.scale_id,
            leitura.weight_kg,
            leitura.item_count,
            registro.id,
        )

        self._encaminhar_para_nuvem(topic, payload)

    def _encaminhar_para_nuvem(self, topic: str, payload: bytes) -> None:
        if not self.nuvem.status().connected:
            self.stats.nao_encaminhadas_nuvem_offline += 1
            logger.debug("Nuvem desconectada; %s mantida apenas localmente.", topic)
            return

        try:
            self.nuvem.publish(topic, payload, qos=self._qos)
        except PublishError as exc:
            self.stats.erros_publicacao += 1
            logger.error("Falha ao encaminhar para a nuvem (leitura segue gravada localmente): %s", exc)
            return

        self.stats.encaminhadas_nuvem += 1
        logger.debug("Encaminhado para a nuvem: %s", topic)

    def tratar_mensagem_nuvem(self, topic: str, payload: bytes) -> None:
        """
        Mensagem do broker na nuvem: só comandos são repassados ao broker local.
        """
        self.stats.recebidas_nuvem += 1
        classificado = classificar(topic)

        if classificado.tipo != TipoTopico.COMANDO:
            logger.debug("Tópico da nuvem ignorado: %s", topic)
            return

        if not self.local.status().connected:
            self.stats.comandos_descartados += 1
            logger.error(
                "Broker local desconectado; comando para %s descartado.",
                classificado.dispositivo,
            )
            return

        try:
            self.local.publish(topic, payload, qos=self._qos)
        except PublishError as exc:
            self.stats.comandos_descartados += 1
            self.stats.erros_publicacao += 1
            logger.error("Comando para %s descartado: %s", classificado.dispositivo, exc)
            return

        self.stats.comandos_encaminhados += 1
        logger.info("Comando repassado para %s em %s.", classificado.dispositivo, topic)


def criar_ponte(config: Settings = settings) -> RoutingBridge:
    """
    Monta a ponte a partir das configurações (sem conectar).
    """
    canal: "queue.Queue[EventoConexao]" = queue.Queue(maxsize=config.EVENT_QUEUE_SIZE)
    return RoutingBridge(
        local=BrokerConnection(ORIGEM_LOCAL, canal),
        nuvem=BrokerConnection(ORIGEM_NUVEM, canal),
        repositorio=LeituraRepositorio(),
        canal=canal,
        qos_encaminhamento=config.MQTT_FORWARD_QOS,
        salvar_payload_bruto=config.SAVE_RAW_PAYLOAD,
    )


def iniciar_ponte(config: Settings = settings) -> RoutingBridge:
    """
    Inicializa o banco, monta a ponte e conecta aos brokers.
    """
    inicializar_banco()
    ponte = criar_ponte(config)
    ponte.start(config.broker_local(), config.broker_nuvem())
    return ponte


def run_bridge():
    """
    Executa a ponte sem a API HTTP até SIGINT/SIGTERM.
    """
    ponte = iniciar_ponte()
    encerrar = threading.Event()

    def _ao_sinal(signum, frame):
        logger.info("Sinal %s recebido.", signum)
        encerrar.set()

    signal.signal(signal.SIGTERM, _ao_sinal)

    try:
        while not encerrar.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Encerrando ponte (Ctrl+C).")
    finally:
        ponte.stop()


if __name__ == "__main__":
    run_bridge()
