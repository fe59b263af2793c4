"""
repositorio.py

Camada de acesso a dados (Repository) para o modelo LeituraBalanca.

Objetivos:
- Isolar a lógica de persistência (insert, consultas, tratamento de erro).
- Serializar as gravações: um único escritor por vez, o que mantém
  `received_at` em ordem não decrescente com a ordem de inserção.
- Facilitar testes unitários (podemos mockar o repositório).
"""

import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from scale_bridge.core.erros import StorageError
from scale_bridge.core.schemas import LeituraMensagem
from scale_bridge.database import modelagem_banco
from scale_bridge.database.modelagem_banco import criar_sessao, LeituraBalanca
from scale_bridge.utils.logger import get_logger

logger = get_logger(__name__)


def _agora_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def _como_utc(valor: Optional[datetime]) -> Optional[datetime]:
    # SQLite devolve datetimes sem tzinfo
    if valor is not None and valor.tzinfo is None:
        return valor.replace(tzinfo=timezone.utc)
    return valor


class LeituraRepositorio:
    """
    Repositório responsável pelas operações sobre LeituraBalanca.

    A tabela é append-only: nada aqui atualiza ou apaga linhas.
    """

    def __init__(self, relogio: Callable[[], datetime] = _agora_utc):
        self._relogio = relogio
        self._lock_escrita = threading.Lock()
        self._ultimo_received_at: Optional[datetime] = None
        self._ultimo_carregado = False

    # ---------------- GRAVAÇÃO ---------------- #

    def insert(self, leitura: LeituraMensagem, raw_payload: Optional[str] = None) -> LeituraBalanca:
        """
        Grava uma leitura e devolve a linha persistida (com id e received_at).

        Levanta StorageError em qualquer falha de I/O (disco cheio, permissão,
        banco indisponível), após rollback.
        """
        with self._lock_escrita:
            sessao = criar_sessao()
            try:
                registro = LeituraBalanca(
                    scale_id=leitura.scale_id,
                    location=leitura.location,
                    item_type=leitura.item_type,
                    weight_kg=leitura.weight_kg,
                    item_count=leitura.item_count,
                    item_weight=leitura.item_weight,
                    timestamp=leitura.timestamp,
                    status=leitura.status.value,
                    received_at=self._proximo_received_at(sessao),
                    raw_payload=raw_payload,
                )
                sessao.add(registro)
                sessao.commit()
            except (SQLAlchemyError, OverflowError, ValueError) as exc:
                # o driver levanta OverflowError/ValueError sem embrulhar
                sessao.rollback()
                raise StorageError(
                    f"Erro ao gravar leitura de {leitura.scale_id}: {exc}"
                ) from exc
            finally:
                sessao.close()

            self._ultimo_received_at = registro.received_at
            return registro

    def _proximo_received_at(self, sessao) -> datetime:
        """
        Relógio de parede, mas nunca anterior ao último received_at gravado.
        """
        if not self._ultimo_carregado:
            maximo = sessao.execute(select(func.max(LeituraBalanca.received_at))).scalar()
            self._ultimo_received_at = _como_utc(maximo)
            self._ultimo_carregado = True

        agora = _como_utc(self._relogio())
        if self._ultimo_received_at is not None and agora < self._ultimo_received_at:
            return self._ultimo_received_at
        return agora

    # ---------------- LEITURA ---------------- #

    def list_distinct_scales(self) -> List[Tuple[str, str]]:
        """
        Retorna os pares (scale_id, location) já observados, ordenados por scale_id.
        """
        sessao = criar_sessao()
        try:
            stmt = (
                select(LeituraBalanca.scale_id, LeituraBalanca.location)
                .distinct()
                .order_by(LeituraBalanca.scale_id, LeituraBalanca.location)
            )
            return [(row[0], row[1]) for row in sessao.execute(stmt).all()]
        finally:
            sessao.close()

    def list_readings(self, scale_id: str, limit: int = 100) -> List[LeituraBalanca]:
        """
        Retorna até `limit` leituras mais recentes de uma balança, mais nova primeiro.

        "Mais recente" segue o timestamp do dispositivo; empates ficam com a
        última inserção.
        """
        sessao = criar_sessao()
        try:
            stmt = (
                select(LeituraBalanca)
                .where(LeituraBalanca.scale_id == scale_id)
                .order_by(LeituraBalanca.timestamp.desc(), LeituraBalanca.id.desc())
                .limit(limit)
            )
            return list(sessao.execute(stmt).scalars().all())
        finally:
            sessao.close()

    def latest_per_scale(self) -> List[LeituraBalanca]:
        """
        Para cada balança conhecida, a leitura de maior timestamp.
        """
        sessao = criar_sessao()
        try:
            ordem = (
                func.row_number()
                .over(
                    partition_by=LeituraBalanca.scale_id,
                    order_by=(LeituraBalanca.timestamp.desc(), LeituraBalanca.id.desc()),
                )
                .label("ordem")
            )
            sub = select(LeituraBalanca, ordem).subquery()
            ultima = aliased(LeituraBalanca, sub)
            stmt = select(ultima).where(sub.c.ordem == 1).order_by(ultima.scale_id)
            return list(sessao.execute(stmt).scalars().all())
        finally:
            sessao.close()

    def list_recent(self, limit: int = 100) -> List[LeituraBalanca]:
        """
        Retorna as últimas `limit` leituras de todas as balanças, por ordem de inserção.
        """
        sessao = criar_sessao()
        try:
            stmt = select(LeituraBalanca).order_by(LeituraBalanca.id.desc()).limit(limit)
            return list(sessao.execute(stmt).scalars().all())
        finally:
            sessao.close()

    # ---------------- CICLO DE VIDA ---------------- #

    def close(self) -> None:
        """
        Libera o pool de conexões. Chamado pela ponte depois que as gravações pendentes terminam.
        """
        with self._lock_escrita:
            modelagem_banco.engine.dispose()
            logger.info("Conexões com o banco encerradas.")
