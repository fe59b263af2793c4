"""
Testes do simulador de balanças: formato das leituras e tópicos usados.
"""

import json

from scale_bridge.mqtt.ponte import converter_payload_para_leitura
from scale_bridge.mqtt.simulator.publisher import TIPOS_DE_ITEM, BalancaSimulada


def test_leitura_simulada_e_aceita_pela_ponte(conexao_falsa):
    conexao = conexao_falsa("simulador")
    balanca = BalancaSimulada("SCALE_001", "WAREHOUSE_A", "SCREWS", conexao)

    balanca.publicar()

    topic, payload, qos = conexao.publicadas[0]
    assert topic == "inventory/scale/001"
    assert qos == 1

    leitura = converter_payload_para_leitura(payload)
    assert leitura.scale_id == "SCALE_001"
    assert leitura.item_weight == TIPOS_DE_ITEM["SCREWS"]
    assert leitura.weight_kg >= 0


def test_status_simulado_no_topico_de_status(conexao_falsa):
    conexao = conexao_falsa("simulador")
    balanca = BalancaSimulada("SCALE_002", "WAREHOUSE_A", "BOLTS", conexao)

    balanca.publicar_status()

    topic, payload, _ = conexao.publicadas[0]
    assert topic == "inventory/scale/002/status"
    assert json.loads(payload)["status"] == "online"


def test_simulador_desconectado_nao_levanta(conexao_falsa):
    conexao = conexao_falsa("simulador", conectada=False)
    balanca = BalancaSimulada("SCALE_001", "WAREHOUSE_A", "CABLES", conexao)

    balanca.publicar()

    assert conexao.publicadas == []
