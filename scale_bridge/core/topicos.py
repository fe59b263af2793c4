"""
topicos.py

Namespace de tópicos MQTT do gateway.

    inventory/scale/{id}          telemetria, local → nuvem
    inventory/scale/{id}/status   saúde do dispositivo, apenas local (só log)
    inventory/{id}/commands       comandos, nuvem → local

Tópicos são apenas chaves de roteamento; nenhuma entidade é dona deles.
"""

from enum import Enum
from typing import NamedTuple, Optional

from paho.mqtt.client import topic_matches_sub

PREFIXO = "inventory"
SEGMENTO_BALANCA = "scale"

FILTRO_TELEMETRIA = f"{PREFIXO}/{SEGMENTO_BALANCA}/+"
FILTRO_STATUS = f"{PREFIXO}/{SEGMENTO_BALANCA}/+/status"
FILTRO_COMANDOS = f"{PREFIXO}/+/commands"


class TipoTopico(str, Enum):
    TELEMETRIA = "telemetry"
    STATUS = "status"
    COMANDO = "command"
    DESCONHECIDO = "unknown"


class TopicoClassificado(NamedTuple):
    tipo: TipoTopico
    dispositivo: Optional[str] = None


def topico_telemetria(dispositivo: str) -> str:
    return f"{PREFIXO}/{SEGMENTO_BALANCA}/{dispositivo}"


def topico_status(dispositivo: str) -> str:
    return f"{topico_telemetria(dispositivo)}/status"


def topico_comandos(dispositivo: str) -> str:
    return f"{PREFIXO}/{dispositivo}/commands"


def classificar(topico: str) -> TopicoClassificado:
    """
    Classifica um tópico recebido e extrai o id do dispositivo.

    Ids vazios nunca são roteáveis. 'inventory/scale/commands' pertence ao
    namespace de telemetria: 'scale' não é um alvo válido de comando, o que
    impede que um comando da nuvem volte para ela como telemetria.
    """
    partes = topico.split("/")

    if topic_matches_sub(FILTRO_TELEMETRIA, topico) and partes[2]:
        return TopicoClassificado(TipoTopico.TELEMETRIA, partes[2])

    if topic_matches_sub(FILTRO_STATUS, topico) and partes[2]:
        return TopicoClassificado(TipoTopico.STATUS, partes[2])

    if (
        topic_matches_sub(FILTRO_COMANDOS, topico)
        and partes[1]
        and partes[1] != SEGMENTO_BALANCA
    ):
        return TopicoClassificado(TipoTopico.COMANDO, partes[1])

    return TopicoClassificado(TipoTopico.DESCONHECIDO)
