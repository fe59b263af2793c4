"""
Testes do diagnóstico de conexão.

O cliente paho é substituído por um que sempre recusa o socket:
o diagnóstico deve reprovar sem tentar reconectar.
"""

from scale_bridge.core.schemas import BrokerConfig
from scale_bridge.mqtt.diagnostico import DiagnosticoConexao, ResultadoDiagnostico


class ClienteSemBroker:
    def __init__(self):
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.on_subscribe = None
        self.connect_calls = 0

    def connect(self, host, port, keepalive=60):
        self.connect_calls += 1
        raise ConnectionRefusedError("[Errno 111] Connection refused")

    def loop(self, timeout=1.0):
        return 0

    def disconnect(self):
        return 0


def test_diagnostico_reprova_sem_reconectar():
    clientes = []

    def _fabrica(config):
        cliente = ClienteSemBroker()
        clientes.append(cliente)
        return cliente

    config = BrokerConfig(host="localhost", port=1, connect_timeout=0.1, reconnect_period=5)
    diagnostico = DiagnosticoConexao("local", config, fabrica_cliente=_fabrica)

    resultado = diagnostico.executar()

    assert diagnostico.config.reconnect_period == 0
    assert resultado.conexao is False
    assert resultado.assinatura is None
    assert not resultado.aprovado()
    assert any("refused" in erro for erro in resultado.erros)
    assert sum(cliente.connect_calls for cliente in clientes) == 1


def test_diagnostico_limita_timeout_do_handshake():
    config = BrokerConfig(host="localhost", connect_timeout=30)

    diagnostico = DiagnosticoConexao("cloud", config)

    assert diagnostico.config.connect_timeout == 10.0
    assert diagnostico.config.client_id.endswith("-diag")


def test_resultado_rapido_so_exige_conexao():
    resultado = ResultadoDiagnostico(conexao=True)

    assert resultado.aprovado(rapido=True)
    assert not resultado.aprovado()
