"""
logger.py

Logs do gateway, configurados uma única vez por processo.

- Nível e formato vêm de `settings.LOG_LEVEL` e `settings.LOG_JSON`;
  o CLI pode sobrescrever o nível com `configurar_logging(nivel)`.
- Cada linha leva a thread de origem: as conexões rodam em "mqtt-local" e
  "mqtt-cloud", o consumo da ponte em "ponte".
- Em JSON, cada registro carrega também o id do nó de borda.
- Senhas nunca aparecem: use `mascarar_segredo(valor)`.
"""

import json
import logging
import threading
from typing import Any, Dict, Optional

from scale_bridge.config.settings import settings

_FORMATO_TEXTO = "%(asctime)s [%(levelname)s] %(name)s (%(threadName)s) - %(message)s"
_FORMATO_DATA = "%Y-%m-%d %H:%M:%S"

_trava = threading.Lock()
_configurado = False


class JSONFormatter(logging.Formatter):
    """
    Uma linha JSON por registro, pronta para coleta de logs do gateway.
    """

    def __init__(self, node_id: str):
        super().__init__()
        self.node_id = node_id

    def format(self, record: logging.LogRecord) -> str:
        registro: Dict[str, Any] = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "node_id": self.node_id,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            registro["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(registro, ensure_ascii=False)


def _criar_formatter() -> logging.Formatter:
    if settings.LOG_JSON:
        return JSONFormatter(settings.EDGE_NODE_ID)
    return logging.Formatter(fmt=_FORMATO_TEXTO, datefmt=_FORMATO_DATA)


def configurar_logging(nivel: Optional[str] = None) -> None:
    """
    (Re)configura o root logger com um único handler de console.

    Chamadas repetidas apenas ajustam o nível.
    """
    global _configurado

    with _trava:
        root = logging.getLogger()
        root.setLevel((nivel or settings.LOG_LEVEL).upper())

        if _configurado:
            return

        handler = logging.StreamHandler()
        handler.setFormatter(_criar_formatter())
        root.handlers.clear()
        root.addHandler(handler)

        # O paho registra cada pacote; só interessa a partir de WARNING.
        logging.getLogger("paho").setLevel(logging.WARNING)

        _configurado = True


def get_logger(name: str) -> logging.Logger:
    if not _configurado:
        configurar_logging()
    return logging.getLogger(name)


def mascarar_segredo(valor: Optional[str]) -> str:
    return "[SET]" if valor else "[NOT SET]"
