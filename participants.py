"""Participantes anônimos: sincronização, atributos de perfil e log de acesso."""
import hashlib

from flask import current_app

import storage
from errors import ApiError

ATTRIBUTE_FIELDS = ("age_range", "education_level", "region", "income_range")

ALLOWED_EVENT_TYPES = {"landing", "poll_open", "vote_start", "vote_submit"}


def sync_participant(participant_id):
    """Cria o participante ou atualiza last_seen_at."""
    ts = storage.iso(storage.now_utc())
    with storage.transaction():
        if storage.get_one("participants", id=participant_id):
            storage.update("participants", {"last_seen_at": ts}, id=participant_id)
        else:
            storage.insert("participants", {"id": participant_id, "last_seen_at": ts})


def save_attributes(body) -> dict:
    if not isinstance(body, dict) or not body.get("participant_id"):
        raise ApiError("missing_participant", message="participant_id é obrigatório")
    row = {"participant_id": str(body["participant_id"])}
    for k in ATTRIBUTE_FIELDS:
        row[k] = body.get(k) or None
    row["updated_at"] = storage.iso(storage.now_utc())
    return storage.upsert("participant_attributes", row, on_conflict="participant_id")


def has_attributes(participant_id) -> bool:
    return storage.get_one("participant_attributes", participant_id=participant_id) is not None


def get_profile(participant_id):
    row = storage.get_one("participant_attributes", participant_id=participant_id)
    if not row:
        return None
    return {k: row.get(k) for k in ATTRIBUTE_FIELDS}


# =============== Log de acesso ===============
def truncate_trim(v, max_len=256):
    if v is None:
        return None
    s = str(v).strip()
    if not s:
        return None
    return s[:max_len]


def client_ip(headers, remote_addr) -> str:
    xff = headers.get("X-Forwarded-For")
    if xff:
        return xff.split(",")[0].strip()
    real_ip = headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return remote_addr or ""


def hash_ip(ip: str):
    if not ip:
        return None
    salt = current_app.config.get("ACCESS_LOG_IP_SALT") or ""
    raw = f"{ip}::{salt}" if salt else ip
    return hashlib.sha256(raw.encode()).hexdigest()


def record_access(body, headers, remote_addr) -> dict:
    body = body if isinstance(body, dict) else {}
    event_type = str(body.get("event_type") or "").strip()
    if event_type not in ALLOWED_EVENT_TYPES:
        event_type = "landing"

    row = {
        "event_type": event_type,
        "source": truncate_trim(body.get("source") or "direct", 128) or "direct",
        "medium": truncate_trim(body.get("medium"), 64),
        "campaign": truncate_trim(body.get("campaign"), 128),
        "poll_id": truncate_trim(body.get("poll_id"), 64),
        "participant_id": truncate_trim(body.get("participant_id"), 64),
        "user_agent": truncate_trim(body.get("user_agent") or headers.get("User-Agent"), 512),
        "referrer": truncate_trim(body.get("referrer") or headers.get("Referer"), 512),
        "ip_hash": hash_ip(client_ip(headers, remote_addr)),
    }
    return storage.insert("access_logs", row)
