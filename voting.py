"""
Registro de votos: toda a regra de negócio do voto fica aqui e roda dentro
de `storage.transaction()` (checagem + escrita atômicas no processo).
"""
import math
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional

from flask import current_app

import storage
from polls import parse_datetime

MSG_NOT_FOUND = "Pesquisa não encontrada"
MSG_PAUSED = "Votação pausada"
MSG_CLOSED = "Votação encerrada"
MSG_NOT_STARTED = "Votação ainda não iniciada"
MSG_INVALID_OPTION = "Opção inválida"
MSG_COOLDOWN = "Aguarde para votar novamente"
MSG_LIMIT = "Limite de participações atingido"
MSG_CREATED = "Voto registrado"
MSG_UPDATED = "Voto atualizado"


@dataclass
class CastVoteResult:
    ok: bool
    http_status: int
    message: str
    vote_id: Optional[str] = None
    remaining_seconds: Optional[int] = None
    resolved_voting_type: Optional[str] = None

    def to_dict(self):
        return asdict(self)


def _date(value) -> Optional[datetime]:
    return parse_datetime(value) if isinstance(value, str) and value.strip() else None


def _window_error(poll: dict, now: datetime) -> Optional[CastVoteResult]:
    vt = poll.get("voting_type") or "single"
    status = poll.get("status")
    if status == "draft":
        return CastVoteResult(False, 404, MSG_NOT_FOUND, resolved_voting_type=vt)
    if status == "paused":
        return CastVoteResult(False, 403, MSG_PAUSED, resolved_voting_type=vt)
    if status != "open":
        return CastVoteResult(False, 403, MSG_CLOSED, resolved_voting_type=vt)

    start = _date(poll.get("start_date"))
    if start and now < start:
        return CastVoteResult(False, 403, MSG_NOT_STARTED, resolved_voting_type=vt)
    for k in ("closes_at", "end_date"):
        limit = _date(poll.get(k))
        if limit and now >= limit:
            return CastVoteResult(False, 403, MSG_CLOSED, resolved_voting_type=vt)
    return None


def _resolve_choice(voting_type: str, valid_ids: set, option_id, option_ids) -> Optional[List[str]]:
    """Lista de opções escolhidas (na ordem) ou None se a escolha é inválida."""
    if voting_type == "single":
        return [option_id] if option_id in valid_ids else None

    chosen = option_ids if option_ids is not None else ([option_id] if option_id else [])
    if not chosen or len(set(chosen)) != len(chosen):
        return None
    if any(c not in valid_ids for c in chosen):
        return None
    return list(chosen)


def _write_children(vote_id: str, voting_type: str, chosen: List[str]):
    if voting_type == "multiple":
        storage.insert_many("vote_options", [{"vote_id": vote_id, "option_id": c} for c in chosen])
    elif voting_type == "ranking":
        storage.insert_many(
            "vote_rankings",
            [{"vote_id": vote_id, "option_id": c, "ranking": i + 1} for i, c in enumerate(chosen)],
        )


def _vote_fields(voting_type: str, chosen: List[str]) -> dict:
    if voting_type == "single":
        return {"option_id": chosen[0], "option_ids": None}
    return {"option_id": None, "option_ids": chosen}


def cast_vote(poll_id, participant_id, user_hash, option_id=None, option_ids=None,
              now: Optional[datetime] = None) -> CastVoteResult:
    now = now or storage.now_utc()
    with storage.transaction():
        poll = storage.get_one("polls", id=poll_id)
        if not poll:
            return CastVoteResult(False, 404, MSG_NOT_FOUND)
        blocked = _window_error(poll, now)
        if blocked:
            return blocked

        vt = poll.get("voting_type") or "single"
        valid_ids = {o["id"] for o in storage.select("poll_options", poll_id=poll_id)}
        chosen = _resolve_choice(vt, valid_ids, option_id, option_ids)
        if chosen is None:
            return CastVoteResult(False, 400, MSG_INVALID_OPTION, resolved_voting_type=vt)

        existing = storage.select("votes", order_by="created_at", poll_id=poll_id, user_hash=user_hash)
        last = existing[-1] if existing else None

        cooldown = int(poll.get("vote_cooldown_seconds") or 0)
        if last and cooldown > 0:
            last_at = _date(last.get("updated_at") or last.get("created_at"))
            elapsed = (now - last_at).total_seconds() if last_at else cooldown
            if elapsed < cooldown:
                return CastVoteResult(
                    False, 429, MSG_COOLDOWN, vote_id=last["id"],
                    remaining_seconds=int(math.ceil(cooldown - elapsed)), resolved_voting_type=vt,
                )

        max_votes = int(poll.get("max_votes_per_user") or 1) if poll.get("allow_multiple") else 1
        ts = storage.iso(now)

        if max_votes == 1 and last:
            # voto único: substitui o voto anterior (e suas marcações)
            storage.delete("vote_options", vote_id=last["id"])
            storage.delete("vote_rankings", vote_id=last["id"])
            values = _vote_fields(vt, chosen)
            values.update({"participant_id": participant_id, "updated_at": ts})
            storage.update("votes", values, id=last["id"])
            _write_children(last["id"], vt, chosen)
            current_app.logger.info("vote updated poll=%s vote=%s", poll_id, last["id"])
            return CastVoteResult(True, 200, MSG_UPDATED, vote_id=last["id"], resolved_voting_type=vt)

        if len(existing) >= max_votes:
            return CastVoteResult(False, 403, MSG_LIMIT, vote_id=last["id"], resolved_voting_type=vt)

        row = {
            "poll_id": poll_id,
            "participant_id": participant_id,
            "user_hash": user_hash,
            "created_at": ts,
            "updated_at": None,
        }
        row.update(_vote_fields(vt, chosen))
        vote = storage.insert("votes", row)
        _write_children(vote["id"], vt, chosen)

    current_app.logger.info("vote registered poll=%s vote=%s type=%s", poll_id, vote["id"], vt)
    return CastVoteResult(True, 201, MSG_CREATED, vote_id=vote["id"], resolved_voting_type=vt)
