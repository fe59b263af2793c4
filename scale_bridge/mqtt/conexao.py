"""
conexao.py

Conexão gerenciada com um broker MQTT (local ou nuvem).

Responsável por:
- Conectar ao broker e manter a conexão viva (loop de rede do paho).
- Reconectar em intervalo fixo quando a conexão cai ou o handshake falha.
- Reaplicar as assinaturas registradas a cada conexão bem-sucedida.
- Publicar mensagens, falhando com PublishError quando desconectado.
- Manter um snapshot imutável de ConnectionStatus.
- Entregar os eventos da conexão, em ordem de chegada, em um canal
  (queue.Queue) consumido por um único loop da ponte.

Máquina de estados:

    Disconnected → Connecting → Connected → {Offline, Disconnected}

Cada conexão roda uma thread supervisora que executa o loop de rede do
paho (`Client.loop`) e a espera entre tentativas. A espera é um
`threading.Event.wait`, então `close()` a cancela imediatamente.
"""

import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional

from paho.mqtt import client as mqtt

from scale_bridge.core.erros import (
    ConfigurationError,
    ConnectError,
    PublishError,
    SubscriptionError,
)
from scale_bridge.core.schemas import BrokerConfig, ConnectionStatus, EstadoConexao
from scale_bridge.utils.logger import get_logger, mascarar_segredo

logger = get_logger(__name__)

# Intervalo máximo de cada chamada ao loop de rede do paho.
_INTERVALO_LOOP = 1.0


class TipoEvento(str, Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    OFFLINE = "offline"
    RECONNECT_ATTEMPT = "reconnect_attempt"
    MESSAGE = "message"
    ERROR = "error"


@dataclass(frozen=True)
class EventoConexao:
    """
    Evento emitido por uma BrokerConnection.

    - origem: nome da conexão ("local" ou "cloud").
    - topic/payload: preenchidos apenas em MESSAGE.
    - mensagem: descrição do erro em ERROR.
    """

    origem: str
    tipo: TipoEvento
    topic: Optional[str] = None
    payload: Optional[bytes] = None
    mensagem: Optional[str] = None


def _agora_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def criar_cliente_paho(config: BrokerConfig) -> mqtt.Client:
    """
    Cria o cliente paho para um broker.

    Credenciais só são usadas se usuário e senha estiverem definidos;
    caso contrário a conexão é anônima.
    """
    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=config.client_id,
        protocol=mqtt.MQTTv311,
    )
    if config.usa_autenticacao:
        client.username_pw_set(config.username, config.password)
    client.connect_timeout = config.connect_timeout
    return client


def _validar_filtro(filtro: str) -> None:
    if not filtro or len(filtro.encode("utf-8")) > 65535:
        raise SubscriptionError(f"Filtro de tópico inválido: {filtro!r}")

    niveis = filtro.split("/")
    for i, nivel in enumerate(niveis):
        if "#" in nivel and (nivel != "#" or i != len(niveis) - 1):
            raise SubscriptionError(f"Uso inválido de '#' no filtro {filtro!r}")
        if "+" in nivel and nivel != "+":
            raise SubscriptionError(f"Uso inválido de '+' no filtro {filtro!r}")


class BrokerConnection:
    """
    Uma conexão com um broker MQTT e o seu estado de saúde.

    O ConnectionStatus só é alterado pelos callbacks desta conexão; qualquer
    thread pode ler `status()` sem bloquear.
    """

    def __init__(
        self,
        nome: str,
        canal: Optional["queue.Queue[EventoConexao]"] = None,
        fabrica_cliente: Callable[[BrokerConfig], mqtt.Client] = criar_cliente_paho,
        relogio: Callable[[], datetime] = _agora_utc,
    ):
        self.nome = nome
        self._canal = canal
        self._fabrica_cliente = fabrica_cliente
        self._relogio = relogio

        self._lock_status = threading.Lock()
        self._status = ConnectionStatus(name=nome)

        self._lock_assinaturas = threading.Lock()
        self._assinaturas: Dict[str, int] = {}

        self._config: Optional[BrokerConfig] = None
        self._client: Optional[mqtt.Client] = None
        self._thread: Optional[threading.Thread] = None

        self._parar = threading.Event()
        self._conectado = threading.Event()
        self._connack = threading.Event()
        self._connack_recusado: Optional[str] = None

    # ---------------- API PÚBLICA ---------------- #

    def connect(self, config: BrokerConfig) -> None:
        """
        Inicia a conexão em segundo plano e retorna imediatamente.

        Levanta ConfigurationError se o host não estiver configurado.
        """
        if not config.host:
            raise ConfigurationError(f"Host do broker '{self.nome}' não configurado.")

        if self._thread is not None and self._thread.is_alive():
            logger.warning("Conexão '%s' já está em execução; connect ignorado.", self.nome)
            return

        self._config = config
        self._parar.clear()

        client = self._fabrica_cliente(config)
        client.on_connect = self._ao_conectar
        client.on_disconnect = self._ao_desconectar
        client.on_message = self._ao_receber
        client.on_subscribe = self._ao_confirmar_assinatura
        self._client = client

        self._atualizar(host=config.host, port=config.port)

        logger.info(
            "Conectando ao broker %s em %s (usuário=%s, senha=%s, reconexão=%ss).",
            self.nome,
            config.url,
            config.username or "-",
            mascarar_segredo(config.password),
            config.reconnect_period,
        )

        self._thread = threading.Thread(
            target=self._executar,
            name=f"mqtt-{self.nome}",
            daemon=True,
        )
        self._thread.start()

    def subscribe(self, filtro: str, qos: int = 1) -> None:
        """
        Registra interesse em um filtro de tópicos.

        O filtro fica registrado e é reaplicado a cada reconexão. Registrar
        de novo o mesmo filtro com o mesmo QoS não faz nada. Se o transporte
        recusar, o registro anterior do filtro é restaurado.
        """
        _validar_filtro(filtro)

        with self._lock_assinaturas:
            anterior = self._assinaturas.get(filtro)
            if anterior == qos:
                return
            self._assinaturas[filtro] = qos

        client = self._client
        if client is None or not self._status.connected:
            logger.debug("Assinatura %s em %s aplicada na próxima conexão.", filtro, self.nome)
            return

        try:
            self._enviar_assinatura(client, filtro, qos)
        except SubscriptionError:
            with self._lock_assinaturas:
                if self._assinaturas.get(filtro) == qos:
                    if anterior is None:
                        del self._assinaturas[filtro]
                    else:
                        self._assinaturas[filtro] = anterior
            raise

    def publish(self, topic: str, payload: bytes, qos: int = 1) -> mqtt.MQTTMessageInfo:
        """
        Publica uma mensagem.

        Levanta PublishError se a conexão não estiver ativa ou se o
        transporte recusar a publicação. Quem chama decide se tenta de novo.
        """
        client = self._client
        if client is None or not self._status.connected:
            raise PublishError(f"Broker {self.nome} desconectado; publicação em {topic} não enviada.")

        try:
            info = client.publish(topic, payload, qos=qos)
        except ValueError as exc:
            raise PublishError(f"Publicação recusada em {topic} ({self.nome}): {exc}") from exc

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(
                f"Falha ao publicar em {topic} ({self.nome}): {mqtt.error_string(info.rc)}"
            )
        return info

    def status(self) -> ConnectionStatus:
        """Snapshot atual; nunca parcialmente atualizado."""
        return self._status

    def esperar_conexao(self, timeout: float) -> bool:
        """Bloqueia até a conexão estar ativa ou o timeout expirar."""
        return self._conectado.wait(timeout)

    def close(self, timeout: float = 5.0) -> None:
        """
        Encerra a conexão: cancela a próxima tentativa, envia DISCONNECT
        (melhor esforço) e aguarda a thread supervisora terminar.
        """
        self._parar.set()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Thread da conexão %s não terminou em %ss.", self.nome, timeout)

        self._conectado.clear()
        self._atualizar(state=EstadoConexao.DISCONNECTED, connected=False)
        logger.info("Conexão %s encerrada.", self.nome)

    # ---------------- SUPERVISOR ---------------- #

    def _executar(self) -> None:
        primeira_tentativa = True

        while not self._parar.is_set():
            if not primeira_tentativa:
                periodo = self._config.reconnect_period
                if periodo <= 0:
                    logger.info(
                        "Reconexão desativada para %s; conexão permanece desconectada.",
                        self.nome,
                    )
                    break
                if self._parar.wait(periodo):
                    break
                self._registrar_tentativa()
            primeira_tentativa = False

            try:
                self._conectar_uma_vez()
            except ConnectError as exc:
                logger.warning("Falha ao conectar ao broker %s: %s", self.nome, exc)
                self._encerrar_socket()
                self._atualizar(state=EstadoConexao.DISCONNECTED, connected=False)
                self._registrar_erro(str(exc))
                continue

            self._manter_conexao()

        self._atualizar(state=EstadoConexao.DISCONNECTED, connected=False)

    def _conectar_uma_vez(self) -> None:
        config = self._config
        self._atualizar(state=EstadoConexao.CONNECTING, connected=False)
        self._connack.clear()
        self._connack_recusado = None

        try:
            self._client.connect(config.host, config.port, keepalive=config.keepalive)
        except (OSError, ValueError) as exc:
            raise ConnectError(f"{config.url}: {exc}") from exc

        limite = time.monotonic() + config.connect_timeout
        while not self._connack.is_set():
            if self._parar.is_set():
                raise ConnectError(f"{config.url}: encerrada durante o handshake")

            restante = limite - time.monotonic()
            if restante <= 0:
                raise ConnectError(
                    f"{config.url}: timeout de {config.connect_timeout}s aguardando CONNACK"
                )

            rc = self._client.loop(timeout=min(restante, _INTERVALO_LOOP))
            if rc != mqtt.MQTT_ERR_SUCCESS and not self._connack.is_set():
                raise ConnectError(f"{config.url}: {mqtt.error_string(rc)}")

        if self._connack_recusado is not None:
            raise ConnectError(f"{config.url}: conexão recusada ({self._connack_recusado})")

    def _manter_conexao(self) -> None:
        while self._status.state == EstadoConexao.CONNECTED:
            if self._parar.is_set():
                self._desconectar_limpo()
                return

            rc = self._client.loop(timeout=_INTERVALO_LOOP)
            if rc != mqtt.MQTT_ERR_SUCCESS and self._status.state == EstadoConexao.CONNECTED:
                # o paho normalmente já chamou on_disconnect
                self._marcar_offline(mqtt.error_string(rc))

    def _desconectar_limpo(self) -> None:
        try:
            self._client.disconnect()
            for _ in range(10):
                if self._status.state != EstadoConexao.CONNECTED:
                    break
                self._client.loop(timeout=0.1)
        except (OSError, ValueError):
            logger.warning("Erro ao enviar DISCONNECT para %s.", self.nome, exc_info=True)

        if self._status.state == EstadoConexao.CONNECTED:
            self._conectado.clear()
            self._atualizar(state=EstadoConexao.DISCONNECTED, connected=False)
            self._emitir(EventoConexao(self.nome, TipoEvento.DISCONNECT))

    def _encerrar_socket(self) -> None:
        try:
            self._client.disconnect()
        except (OSError, ValueError):
            logger.debug("Socket de %s já estava fechado.", self.nome, exc_info=True)

    # ---------------- CALLBACKS DO PAHO ---------------- #

    def _ao_conectar(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connack_recusado = str(reason_code)
            self._connack.set()
            return

        with self._lock_status:
            anterior = self._status.last_connected_at
            agora = self._relogio()
            if anterior is not None and agora < anterior:
                agora = anterior
            self._status = self._status.model_copy(
                update={
                    "state": EstadoConexao.CONNECTED,
                    "connected": True,
                    "last_connected_at": agora,
                    "last_error": None,
                    "reconnect_attempts": 0,
                }
            )

        self._connack.set()
        self._conectado.set()
        logger.info("Conectado ao broker %s (%s).", self.nome, self._config.url)

        self._reassinar(client)
        self._emitir(EventoConexao(self.nome, TipoEvento.CONNECT))

    def _ao_desconectar(self, client, userdata, flags, reason_code, properties=None):
        anterior = self._status.state
        self._conectado.clear()

        if anterior != EstadoConexao.CONNECTED:
            # handshake recusado ou já encerrada: o supervisor trata
            self._atualizar(connected=False)
            return

        if self._parar.is_set():
            self._atualizar(state=EstadoConexao.DISCONNECTED, connected=False)
            logger.info("Desconectado do broker %s.", self.nome)
            self._emitir(EventoConexao(self.nome, TipoEvento.DISCONNECT))
            return

        self._marcar_offline(str(reason_code))

    def _ao_receber(self, client, userdata, msg: mqtt.MQTTMessage):
        self._emitir(
            EventoConexao(
                self.nome,
                TipoEvento.MESSAGE,
                topic=msg.topic,
                payload=bytes(msg.payload),
            )
        )

    def _ao_confirmar_assinatura(self, client, userdata, mid, reason_code_list, properties=None):
        for reason_code in reason_code_list:
            if reason_code.is_failure:
                self._registrar_erro(f"Assinatura recusada pelo broker (mid={mid}): {reason_code}")

    # ---------------- AUXILIARES ---------------- #

    def _marcar_offline(self, motivo: str) -> None:
        self._conectado.clear()
        self._atualizar(state=EstadoConexao.OFFLINE, connected=False)
        logger.warning("Broker %s offline: %s", self.nome, motivo)
        self._emitir(EventoConexao(self.nome, TipoEvento.OFFLINE, mensagem=motivo))

    def _reassinar(self, client) -> None:
        with self._lock_assinaturas:
            assinaturas = dict(self._assinaturas)

        for filtro, qos in assinaturas.items():
            try:
                self._enviar_assinatura(client, filtro, qos)
            except SubscriptionError as exc:
                logger.error("%s", exc)

    def _enviar_assinatura(self, client, filtro: str, qos: int) -> None:
        try:
            result, _mid = client.subscribe(filtro, qos)
        except ValueError as exc:
            mensagem = f"Assinatura de {filtro} recusada em {self.nome}: {exc}"
            self._registrar_erro(mensagem)
            raise SubscriptionError(mensagem) from exc

        if result != mqtt.MQTT_ERR_SUCCESS:
            mensagem = f"Assinatura de {filtro} falhou em {self.nome}: {mqtt.error_string(result)}"
            self._registrar_erro(mensagem)
            raise SubscriptionError(mensagem)

        logger.info("Assinado %s em %s (QoS %s).", filtro, self.nome, qos)

    def _registrar_tentativa(self) -> None:
        with self._lock_status:
            tentativas = self._status.reconnect_attempts + 1
            self._status = self._status.model_copy(update={"reconnect_attempts": tentativas})

        logger.info("Tentando reconectar ao broker %s (tentativa %s)...", self.nome, tentativas)
        self._emitir(EventoConexao(self.nome, TipoEvento.RECONNECT_ATTEMPT))

    def _registrar_erro(self, mensagem: str) -> None:
        """Registra last_error sem forçar transição de estado."""
        self._atualizar(last_error=mensagem)
        self._emitir(EventoConexao(self.nome, TipoEvento.ERROR, mensagem=mensagem))

    def _atualizar(self, **campos) -> None:
        with self._lock_status:
            self._status = self._status.model_copy(update=campos)

    def _emitir(self, evento: EventoConexao) -> None:
        if self._canal is None:
            return
        try:
            self._canal.put_nowait(evento)
        except queue.Full:
            logger.error(
                "Canal de eventos cheio; evento %s de %s descartado.",
                evento.tipo.value,
                self.nome,
            )
