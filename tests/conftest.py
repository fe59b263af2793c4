"""
conftest.py

Configuração de testes do gateway.

Aqui:
- Criamos um banco SQLite em memória para os testes.
- Reconfiguramos o engine e o SessionLocal do módulo modelagem_banco
  para usar esse banco de teste.
- Limpamos a tabela antes de cada teste.
- Oferecemos conexões MQTT falsas para testar a ponte sem broker.
"""

import pytest
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scale_bridge.core.erros import PublishError
from scale_bridge.core.schemas import ConnectionStatus, EstadoConexao
from scale_bridge.database import modelagem_banco as db


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """
    Fixture de sessão de testes que:

    - Cria um engine SQLite em memória compartilhado entre threads
      (a ponte grava a partir da sua própria thread).
    - Substitui o engine e o SessionLocal do módulo modelagem_banco.
    - Cria todas as tabelas definidas em Base.metadata.
    """

    engine = create_engine(
        "sqlite://",
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    db.engine = engine
    db.SessionLocal = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )

    db.Base.metadata.create_all(engine)

    yield

    engine.dispose()


@pytest.fixture(autouse=True)
def tabela_limpa():
    """
    Cada teste começa com a tabela scale_readings vazia.
    """
    sessao = db.criar_sessao()
    try:
        sessao.execute(delete(db.LeituraBalanca))
        sessao.commit()
    finally:
        sessao.close()
    yield


class ConexaoFalsa:
    """
    Substituto de BrokerConnection: registra publicações e assinaturas.
    """

    def __init__(self, nome: str, conectada: bool = True):
        self.nome = nome
        self.conectada = conectada
        self.falhar_publicacao = False
        self.publicadas = []
        self.assinaturas = []
        self.configs = []
        self.fechada = False

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            name=self.nome,
            state=EstadoConexao.CONNECTED if self.conectada else EstadoConexao.DISCONNECTED,
            connected=self.conectada,
        )

    def publish(self, topic, payload, qos=1):
        if not self.conectada:
            raise PublishError(f"Broker {self.nome} desconectado")
        if self.falhar_publicacao:
            raise PublishError(f"Falha ao publicar em {topic}")
        self.publicadas.append((topic, payload, qos))

    def subscribe(self, filtro, qos=1):
        self.assinaturas.append((filtro, qos))

    def connect(self, config):
        self.configs.append(config)

    def close(self, timeout=5.0):
        self.fechada = True


@pytest.fixture
def conexao_falsa():
    """Fábrica de ConexaoFalsa: conexao_falsa("local", conectada=False)."""
    return ConexaoFalsa
