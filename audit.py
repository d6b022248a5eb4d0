import hmac, hashlib, json

from flask import current_app, has_request_context, request, session

import storage
from errors import StorageError

ACTION_LABELS = {
    "poll_create": "Pesquisa criada",
    "poll_update": "Pesquisa editada",
    "status_change": "Status alterado",
    "visibility_change": "Visibilidade dos resultados",
    "option_create": "Opção criada",
    "option_update": "Opção editada",
    "option_delete": "Opção removida",
    "featured_change": "Pesquisa em destaque",
}

SIGNED_FIELDS = ("poll_id", "action", "old_value", "new_value", "actor", "created_at")


def _sign(data: dict) -> str:
    key = str(current_app.config["SECRET_KEY"]).encode()
    msg = json.dumps(data, sort_keys=True, ensure_ascii=False).encode()
    return hmac.new(key, msg, hashlib.sha256).hexdigest()


def _signed_data(row: dict) -> dict:
    return {k: row.get(k) for k in SIGNED_FIELDS}


def _actor() -> str:
    if not has_request_context():
        return "system"
    return session.get("admin_email") or ("token" if request.args.get("token") or request.headers.get("X-Admin-Token") else "-")


def log_admin_action(poll_id, action, old_value=None, new_value=None):
    """
    Registra uma ação administrativa assinada (HMAC-SHA256).
    Falha ao gravar a auditoria não derruba a requisição.
    """
    row = {
        "poll_id": poll_id,
        "action": action,
        "old_value": None if old_value is None else str(old_value),
        "new_value": None if new_value is None else str(new_value),
        "actor": _actor(),
        "created_at": storage.iso(storage.now_utc()),
    }
    row["ip"] = (request.remote_addr or "-") if has_request_context() else "-"
    row["sig"] = _sign(_signed_data(row))
    try:
        return storage.insert("admin_audit_logs", row)
    except (StorageError, OSError):
        current_app.logger.exception("admin_audit_logs insert error (%s %s)", action, poll_id)
        return None


def verify_entry(row: dict) -> bool:
    sig = row.get("sig")
    if not sig:
        return False
    return hmac.compare_digest(sig, _sign(_signed_data(row)))


def list_audit_logs(poll_id=None, limit=100):
    filters = {"poll_id": poll_id} if poll_id else {}
    logs = storage.select("admin_audit_logs", order_by="created_at", desc=True, limit=limit, **filters)

    poll_ids = sorted({l["poll_id"] for l in logs if l.get("poll_id")})
    titles = {}
    if poll_ids:
        titles = {p["id"]: p.get("title") for p in storage.select("polls", id=poll_ids)}

    for l in logs:
        l["poll_title"] = titles.get(l.get("poll_id"))
        l["label"] = ACTION_LABELS.get(l["action"], l["action"])
        l["verified"] = verify_entry(l)
        l.pop("sig", None)
    return logs
