"""
erros.py

Taxonomia de erros do gateway.

Nenhum destes erros, quando gerado durante o tratamento de uma mensagem,
pode derrubar o loop de uma conexão ou o processo. Apenas
ConfigurationError pode abortar a inicialização.
"""


class BridgeError(Exception):
    """Erro base de todo o gateway."""


class ConfigurationError(BridgeError):
    """Configuração obrigatória ausente ou inválida (só na inicialização)."""


class ConnectError(BridgeError):
    """Falha no handshake com o broker: socket, CONNACK recusado ou timeout."""


class SubscriptionError(BridgeError):
    """O transporte rejeitou a assinatura de um filtro de tópicos."""


class PublishError(BridgeError):
    """Publicação impossível (desconectado) ou recusada pelo transporte."""


class ParseError(BridgeError):
    """Payload malformado: não é JSON UTF-8 ou não segue o schema de leitura."""


class StorageError(BridgeError):
    """Falha de I/O ao gravar uma leitura no banco."""
