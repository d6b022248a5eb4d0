"""
Regras de cadastro e edição de pesquisas (datas, limites de voto, status),
gestão de opções e escolha da pesquisa em destaque.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from flask import current_app

import storage
from audit import log_admin_action
from errors import ApiError, OptionNotFoundError, PollNotFoundError

VALID_STATUS = ("draft", "open", "paused", "closed")
VOTING_TYPES = ("single", "multiple", "ranking")

# Campos que o admin pode alterar via PUT (evita sobrescrever colunas indevidas)
UPDATABLE_FIELDS = (
    "title",
    "description",
    "type",
    "status",
    "allow_multiple",
    "max_votes_per_user",
    "allow_custom_option",
    "closes_at",
    "vote_cooldown_seconds",
    "voting_type",
    "start_date",
    "end_date",
    "show_partial_results",
    "icon_name",
    "icon_url",
)

FEATURED_WINDOW = timedelta(hours=24)


# =============== Datas ===============
def empty_to_none(v) -> Optional[str]:
    """"" / None / não-string -> None; string -> string sem espaços nas pontas."""
    if not isinstance(v, str):
        return None
    t = v.strip()
    return t or None


def parse_datetime(s: str) -> Optional[datetime]:
    if s[-1:] in ("z", "Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        # datetime-local (sem fuso): horário local da aplicação
        dt = dt.replace(tzinfo=ZoneInfo(current_app.config["APP_TIMEZONE"]))
    return dt.astimezone(timezone.utc)


def parse_date_or_none(value, field: str) -> Optional[datetime]:
    """None se vazio; ApiError se vier string não vazia porém inválida."""
    s = empty_to_none(value)
    if not s:
        return None
    dt = parse_datetime(s)
    if dt is None:
        raise ApiError(
            "invalid_date_format",
            field=field,
            message=f"Formato de data inválido em {field}.",
        )
    return dt


def to_iso_or_none(value) -> Optional[str]:
    s = empty_to_none(value)
    if not s:
        return None
    dt = parse_datetime(s)
    return storage.iso(dt) if dt else None


def to_local(value) -> Optional[datetime]:
    s = empty_to_none(value)
    dt = parse_datetime(s) if s else None
    return dt.astimezone(ZoneInfo(current_app.config["APP_TIMEZONE"])) if dt else None


def to_local_input(value) -> str:
    """ISO gravado -> valor de <input type="datetime-local"> no fuso da aplicação."""
    dt = to_local(value)
    return dt.strftime("%Y-%m-%dT%H:%M") if dt else ""


def _check_date_order(start, end, closes):
    if end and end < start:
        raise ApiError("invalid_end_date_before_start",
                       message="end_date não pode ser menor que start_date.")
    if closes and closes < start:
        raise ApiError("invalid_closes_at_before_start",
                       message="closes_at não pode ser menor que start_date.")
    if end and closes and closes < end:
        raise ApiError("invalid_closes_at_before_end",
                       message="closes_at não pode ser menor que end_date.")


# =============== Números ===============
def _to_number(v) -> Optional[float]:
    if isinstance(v, bool):
        return float(v)
    if isinstance(v, (int, float)):
        n = float(v)
    elif isinstance(v, str):
        try:
            n = float(v.strip() or "0")
        except ValueError:
            return None
    else:
        return None
    if math.isnan(n) or math.isinf(n):
        return None
    return n


def _plain(n: float):
    return int(n) if n == int(n) else n


def _max_votes(allow_multiple: bool, raw) -> int:
    # allow_multiple=false => 1; allow_multiple=true => obrigatório e >= 2
    if not allow_multiple:
        return 1
    n = _to_number(raw)
    if n is None or n < 2:
        raise ApiError(
            "invalid_max_votes_per_user",
            message="max_votes_per_user deve ser >= 2 quando allow_multiple=true",
        )
    return _plain(n)


def _cooldown(raw):
    if raw is None:
        return 0
    n = _to_number(raw)
    if n is None or n < 0:
        raise ApiError("invalid_vote_cooldown_seconds")
    return _plain(n)


def _check_choice(field, value, allowed):
    if value not in allowed:
        raise ApiError(f"invalid_{field}", message=f"{field} deve ser um de: {', '.join(allowed)}")


# =============== Validação ===============
def build_new_poll(body, now: Optional[datetime] = None) -> dict:
    """Valida o corpo de criação e devolve a linha a inserir em `polls`."""
    if not isinstance(body, dict):
        raise ApiError("invalid_body")
    now = now or storage.now_utc()

    title = str(body.get("title") or "").strip()
    if not title:
        raise ApiError("missing_title")

    voting_type = body.get("voting_type") or "single"
    _check_choice("voting_type", voting_type, VOTING_TYPES)
    status = body.get("status") or "draft"
    _check_choice("status", status, VALID_STATUS)

    allow_multiple = bool(body.get("allow_multiple"))
    max_votes = _max_votes(allow_multiple, body.get("max_votes_per_user"))

    start = parse_date_or_none(body.get("start_date"), "start_date")
    end = parse_date_or_none(body.get("end_date"), "end_date")
    closes = parse_date_or_none(body.get("closes_at"), "closes_at")

    if not start:
        raise ApiError("missing_start_date", message="start_date é obrigatório.")

    # tolerância para o admin que demora a clicar em salvar
    tolerance = timedelta(seconds=current_app.config["START_DATE_TOLERANCE_SECONDS"])
    if start < now - tolerance:
        raise ApiError(
            "invalid_start_date_in_past",
            message="start_date não pode ser menor que agora (confirme a data/hora de início da votação).",
        )
    _check_date_order(start, end, closes)

    return {
        "title": title,
        "description": body.get("description"),
        "type": body.get("type"),
        "status": status,
        "voting_type": voting_type,
        "allow_multiple": allow_multiple,
        "max_votes_per_user": max_votes,
        "allow_custom_option": bool(body.get("allow_custom_option")),
        "start_date": storage.iso(start),
        "end_date": storage.iso(end) if end else None,
        "closes_at": storage.iso(closes) if closes else None,
        "vote_cooldown_seconds": _cooldown(body.get("vote_cooldown_seconds")),
        "show_partial_results": bool(body.get("show_partial_results")),
        "icon_name": body.get("icon_name") or None,
        "icon_url": body.get("icon_url") or None,
        "is_featured": False,
        "created_at": storage.iso(now),
    }


def build_poll_update(current: dict, body) -> dict:
    """
    Valida uma atualização parcial contra o estado atual da pesquisa.
    Datas não podem ser anteriores a created_at e mantêm a ordem
    start_date <= end_date <= closes_at.
    """
    if not isinstance(body, dict):
        raise ApiError("invalid_body")

    update = {k: body[k] for k in UPDATABLE_FIELDS if k in body}

    if "title" in update:
        t = str(update["title"] or "").strip()
        if not t:
            raise ApiError("missing_title")
        update["title"] = t

    if "status" in update:
        _check_choice("status", update["status"], VALID_STATUS)
    if "voting_type" in update:
        _check_choice("voting_type", update["voting_type"], VOTING_TYPES)

    if update.get("max_votes_per_user") is not None:
        n = _to_number(update["max_votes_per_user"])
        if n is None or n < 1:
            raise ApiError("invalid_max_votes_per_user", message="max_votes_per_user deve ser >= 1")
        update["max_votes_per_user"] = _plain(n)

    if "allow_multiple" in update or "max_votes_per_user" in update:
        allow_multiple = bool(update.get("allow_multiple", current.get("allow_multiple")))
        if "allow_multiple" in update:
            update["allow_multiple"] = allow_multiple
        raw = update.get("max_votes_per_user", current.get("max_votes_per_user"))
        update["max_votes_per_user"] = _max_votes(allow_multiple, raw)

    if "vote_cooldown_seconds" in update and update["vote_cooldown_seconds"] is not None:
        update["vote_cooldown_seconds"] = _cooldown(update["vote_cooldown_seconds"])

    for k in ("show_partial_results", "allow_custom_option"):
        if k in update:
            update[k] = bool(update[k])

    date_keys = ("start_date", "end_date", "closes_at")
    for k in date_keys:
        if k in update:
            update[k] = empty_to_none(update[k])
    if "start_date" in update and not update["start_date"]:
        raise ApiError("missing_start_date", message="start_date é obrigatório.")

    nxt = {k: update[k] if k in update else current.get(k) for k in date_keys}
    start = parse_date_or_none(nxt["start_date"], "start_date")
    end = parse_date_or_none(nxt["end_date"], "end_date")
    closes = parse_date_or_none(nxt["closes_at"], "closes_at")
    created = parse_date_or_none(current.get("created_at"), "created_at")

    if created is None:
        raise ApiError("invalid_created_at", status=500,
                       message="created_at inválido (não foi possível validar as datas).")
    if start is None:
        raise ApiError("missing_start_date", message="start_date é obrigatório.")

    for k, dt in (("start_date", start), ("end_date", end), ("closes_at", closes)):
        if dt and dt < created:
            raise ApiError(f"invalid_{k}_before_created_at",
                           message=f"{k} não pode ser menor que created_at.")
    _check_date_order(start, end, closes)

    # datas gravadas sempre em ISO UTC
    for k, dt in (("start_date", start), ("end_date", end), ("closes_at", closes)):
        if k in update:
            update[k] = storage.iso(dt) if dt else None
    return update


# =============== Pesquisas ===============
def get_poll(poll_id) -> dict:
    poll = storage.get_one("polls", id=poll_id) if poll_id else None
    if not poll:
        raise PollNotFoundError(poll_id)
    return poll


def list_polls(include_drafts: bool = True) -> List[dict]:
    polls = storage.select("polls", order_by="created_at", desc=True)
    if not include_drafts:
        polls = [p for p in polls if p.get("status") != "draft"]
    return polls


def create_poll(body) -> dict:
    """Cria a pesquisa (e opções iniciais, se vierem em `options`)."""
    row = build_new_poll(body)
    texts = body.get("options") or []
    if not isinstance(texts, list):
        raise ApiError("invalid_options")
    texts = [t.strip() for t in texts if isinstance(t, str) and t.strip()]

    poll = storage.insert("polls", row)
    poll["options"] = storage.insert_many(
        "poll_options", [{"poll_id": poll["id"], "option_text": t} for t in texts]
    ) if texts else []
    log_admin_action(poll["id"], "poll_create", None, poll["title"])
    current_app.logger.info("poll created %s (%s)", poll["id"], poll["voting_type"])
    return poll


def update_poll(poll_id, body) -> dict:
    with storage.transaction():
        current = get_poll(poll_id)
        update = build_poll_update(current, body)
        if not update:
            return current
        poll = storage.update("polls", update, id=poll_id)[0]
    changed = sorted(k for k in update if current.get(k) != update[k])
    if changed:
        log_admin_action(poll_id, "poll_update", None, ",".join(changed))
    return poll


def set_poll_status(poll_id, status) -> dict:
    _check_choice("status", status, VALID_STATUS)
    with storage.transaction():
        old = get_poll(poll_id).get("status")
        poll = storage.update("polls", {"status": status}, id=poll_id)[0]
    log_admin_action(poll_id, "status_change", old, status)
    return poll


def set_partial_results(poll_id, show_partial_results: bool) -> dict:
    with storage.transaction():
        old = get_poll(poll_id).get("show_partial_results")
        poll = storage.update("polls", {"show_partial_results": show_partial_results}, id=poll_id)[0]
    log_admin_action(poll_id, "visibility_change", str(old).lower(), str(show_partial_results).lower())
    return poll


# =============== Opções ===============
def list_options(poll_id) -> List[dict]:
    return storage.select("poll_options", order_by="option_text", poll_id=poll_id)


def _option_text(text) -> str:
    t = str(text or "").strip()
    if not t:
        raise ApiError("missing_option_text")
    return t


def add_option(poll_id, text) -> dict:
    text = _option_text(text)
    get_poll(poll_id)
    option = storage.insert("poll_options", {"poll_id": poll_id, "option_text": text})
    log_admin_action(poll_id, "option_create", None, text)
    return option


def update_option(poll_id, option_id, text) -> dict:
    text = _option_text(text)
    with storage.transaction():
        existing = storage.get_one("poll_options", id=option_id, poll_id=poll_id)
        if not existing:
            raise OptionNotFoundError(option_id)
        option = storage.update("poll_options", {"option_text": text}, id=option_id)[0]
    log_admin_action(poll_id, "option_update", existing["option_text"], text)
    return option


def delete_option(poll_id, option_id):
    """Remove a opção e as marcações/rankings que apontam para ela."""
    with storage.transaction():
        existing = storage.get_one("poll_options", id=option_id, poll_id=poll_id)
        if not existing:
            raise OptionNotFoundError(option_id)
        storage.delete("poll_options", id=option_id)
        storage.delete("vote_options", option_id=option_id)
        storage.delete("vote_rankings", option_id=option_id)
    log_admin_action(poll_id, "option_delete", existing["option_text"], None)


# =============== Destaque ===============
def pick_featured_poll(open_polls: List[dict], votes: List[dict]) -> Tuple[Optional[str], int]:
    """
    Vence a pesquisa aberta com mais participantes distintos (user_hash).
    `open_polls` vem da mais recente para a mais antiga, então o empate
    fica com a mais recente.
    """
    distinct = {}
    for v in votes:
        if v.get("poll_id") and v.get("user_hash"):
            distinct.setdefault(v["poll_id"], set()).add(v["user_hash"])

    winner_id, winner_score = None, -1
    for p in open_polls:
        score = len(distinct.get(p["id"], ()))
        if score > winner_score:
            winner_id, winner_score = p["id"], score
    return winner_id, max(winner_score, 0)


def refresh_featured_poll(now: Optional[datetime] = None) -> Tuple[Optional[str], int]:
    now = now or storage.now_utc()
    since = storage.iso(now - FEATURED_WINDOW)

    with storage.transaction():
        open_polls = storage.select("polls", order_by="created_at", desc=True, status="open")
        previous = [p["id"] for p in storage.select("polls", is_featured=True)]
        storage.update("polls", {"is_featured": False}, is_featured=True)
        if not open_polls:
            current_app.logger.info("No open polls found. Setting all is_featured=false.")
            return None, 0

        recent = [
            v for v in storage.select("votes", poll_id=[p["id"] for p in open_polls])
            if (v.get("created_at") or "") >= since
        ]
        winner_id, score = pick_featured_poll(open_polls, recent)
        storage.update("polls", {"is_featured": True}, id=winner_id)

    current_app.logger.info("Featured poll selected: %s (unique participants last 24h: %s)", winner_id, score)
    if previous != [winner_id]:
        log_admin_action(winner_id, "featured_change", ",".join(previous) or None, winner_id)
    return winner_id, score
