"""
Testes para a função converter_payload_para_leitura.

Objetivo:
- Garantir que o JSON correto vira uma LeituraMensagem correta.
- Garantir que qualquer payload malformado levanta ParseError.
- Garantir que campos extras do firmware são ignorados.
"""

import json

import pytest

from scale_bridge.core.erros import ParseError
from scale_bridge.core.schemas import LeituraMensagem, StatusBalanca
from scale_bridge.mqtt.ponte import converter_payload_para_leitura


def _payload(**alteracoes) -> dict:
    dados = {
        "scale_id": "SCALE_001",
        "location": "WAREHOUSE_A",
        "item_type": "COMPONENTS",
        "weight_kg": 2.5,
        "item_count": 5,
        "item_weight": 0.5,
        "timestamp": 1700000000000,
        "status": "active",
    }
    dados.update(alteracoes)
    return dados


def test_converter_payload_leitura_valida():
    # Arrange
    raw_payload = json.dumps(_payload()).encode("utf-8")

    # Act
    leitura = converter_payload_para_leitura(raw_payload)

    # Assert
    assert isinstance(leitura, LeituraMensagem)
    assert leitura.scale_id == "SCALE_001"
    assert leitura.location == "WAREHOUSE_A"
    assert leitura.weight_kg == 2.5
    assert leitura.item_count == 5
    assert leitura.timestamp == 1700000000000
    assert leitura.status == StatusBalanca.ACTIVE


def test_converter_payload_campos_extras_ignorados():
    raw_payload = json.dumps(_payload(firmware="1.2.3", rssi=-61)).encode("utf-8")

    leitura = converter_payload_para_leitura(raw_payload)

    assert leitura.scale_id == "SCALE_001"
    assert not hasattr(leitura, "firmware")


def test_converter_payload_json_invalido():
    with pytest.raises(ParseError):
        converter_payload_para_leitura(b"{nao e um json valido}")


def test_converter_payload_nao_utf8():
    with pytest.raises(ParseError):
        converter_payload_para_leitura(b"\xff\xfe\x00")


def test_converter_payload_lista_em_vez_de_objeto():
    raw_payload = json.dumps([_payload()]).encode("utf-8")

    with pytest.raises(ParseError):
        converter_payload_para_leitura(raw_payload)


def test_converter_payload_sem_campo_obrigatorio():
    dados = _payload()
    del dados["item_type"]

    with pytest.raises(ParseError):
        converter_payload_para_leitura(json.dumps(dados).encode("utf-8"))


def test_converter_payload_peso_negativo():
    with pytest.raises(ParseError):
        converter_payload_para_leitura(json.dumps(_payload(weight_kg=-0.1)).encode("utf-8"))


def test_converter_payload_status_desconhecido_vira_unknown():
    leitura = converter_payload_para_leitura(
        json.dumps(_payload(status="calibrating")).encode("utf-8")
    )

    assert leitura.status == StatusBalanca.UNKNOWN


def test_converter_payload_status_ausente():
    dados = _payload()
    del dados["status"]

    with pytest.raises(ParseError):
        converter_payload_para_leitura(json.dumps(dados).encode("utf-8"))


def test_converter_payload_timestamp_acima_do_bigint():
    with pytest.raises(ParseError):
        converter_payload_para_leitura(
            json.dumps(_payload(timestamp=99999999999999999999)).encode("utf-8")
        )


def test_converter_payload_timestamp_negativo():
    with pytest.raises(ParseError):
        converter_payload_para_leitura(json.dumps(_payload(timestamp=-1)).encode("utf-8"))
