"""Erros de domínio devolvidos como JSON pelas rotas."""
import json

from flask import Response


class ApiError(Exception):
    """
    Erro com código estável (`error`) e status HTTP.
    Campos extras (ex.: `field`) vão junto no corpo da resposta.
    """

    status = 400

    def __init__(self, error, status=None, message=None, **extra):
        self.error = error
        if status is not None:
            self.status = status
        self.message = message
        self.extra = extra
        super().__init__(message or error)

    def to_dict(self):
        body = {"error": self.error}
        if self.message:
            body["message"] = self.message
        body.update(self.extra)
        return body


class PollNotFoundError(ApiError):
    """Pesquisa inexistente."""

    def __init__(self, poll_id):
        self.poll_id = poll_id
        super().__init__("poll_not_found", status=404)


class OptionNotFoundError(ApiError):
    """Opção inexistente (ou de outra pesquisa)."""

    def __init__(self, option_id):
        self.option_id = option_id
        super().__init__("option_not_found", status=404)


class StorageError(Exception):
    """Falha no armazenamento (tabela desconhecida, arquivo corrompido...)."""


def json_response(data, status=200):
    """JSON com acentos preservados (ensure_ascii=False)."""
    return Response(json.dumps(data, ensure_ascii=False), status=status, mimetype="application/json")
