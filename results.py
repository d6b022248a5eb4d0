"""
Resultados por tipo de votação (single / multiple / ranking), na visão
pública (respeitando a visibilidade) e na visão detalhada do admin.
"""
import io
import csv
import math
from typing import Dict, List, Set

import storage
from borda import coerce_rank, tally_orderings, tally_ranking_rows
from errors import ApiError
from polls import get_poll


def can_show_results(poll: dict) -> bool:
    status = poll.get("status")
    return status == "closed" or (status in ("open", "paused") and bool(poll.get("show_partial_results")))


def effective_max_votes(poll: dict) -> int:
    # allow_multiple=false => 1; allow_multiple=true => max_votes_per_user (fallback 1)
    if not poll.get("allow_multiple"):
        return 1
    return int(poll.get("max_votes_per_user") or 1)


def pct(part: int, total: int) -> int:
    """Percentual inteiro, arredondando .5 para cima."""
    if total <= 0:
        return 0
    return int(math.floor(part * 100.0 / total + 0.5))


def _totals(votes: List[dict]) -> Dict[str, int]:
    return {
        "totalParticipants": len({v.get("participant_id") for v in votes}),
        "totalSubmissions": len(votes),
    }


def _poll_summary(poll: dict) -> dict:
    keys = ("id", "title", "voting_type", "status", "allow_multiple",
            "max_votes_per_user", "show_partial_results")
    return {k: poll.get(k) for k in keys}


# =============== Público ===============
def public_results(poll_id) -> dict:
    """Resultados exibidos ao público; ApiError 403 se ainda não divulgados."""
    poll = get_poll(poll_id)
    if not can_show_results(poll):
        raise ApiError("results_hidden", status=403,
                       message="Os resultados serão divulgados ao final da votação.")

    vt = poll.get("voting_type") or "single"
    options = storage.select("poll_options", poll_id=poll_id)
    votes = storage.select("votes", poll_id=poll_id)
    totals = _totals(votes)

    if vt == "ranking":
        rows = tally_orderings(options, (v.get("option_ids") for v in votes))
    elif vt == "multiple":
        marks = storage.select("vote_options", vote_id=[v["id"] for v in votes]) if votes else []
        count: Dict[str, int] = {}
        for m in marks:
            count[m["option_id"]] = count.get(m["option_id"], 0) + 1
        totals["totalMarks"] = len(marks)
        rows = [{
            "option_id": o["id"],
            "option_text": o["option_text"],
            "marks": count.get(o["id"], 0),
            "pct_marks": pct(count.get(o["id"], 0), len(marks)),
        } for o in options]
        rows.sort(key=lambda r: r["marks"], reverse=True)
    else:
        count = {}
        for v in votes:
            if v.get("option_id"):
                count[v["option_id"]] = count.get(v["option_id"], 0) + 1
        rows = [{
            "option_id": o["id"],
            "option_text": o["option_text"],
            "votes": count.get(o["id"], 0),
            "pct_votes": pct(count.get(o["id"], 0), len(votes)),
        } for o in options]
        rows.sort(key=lambda r: r["votes"], reverse=True)

    is_partial = poll.get("status") in ("open", "paused")
    return {
        "poll": _poll_summary(poll),
        "is_partial": is_partial,
        "label": "Resultado Final" if poll.get("status") == "closed" else "Resultados parciais",
        "effective_max_votes": effective_max_votes(poll),
        "totals": totals,
        "rows": rows,
    }


def ranking_api_results(poll_id) -> dict:
    """Borda sobre vote_rankings, com contagem por posição."""
    poll = get_poll(poll_id)
    if not can_show_results(poll):
        raise ApiError("results_hidden", status=403,
                       message="Os resultados serão divulgados ao final da votação.")
    options = storage.select("poll_options", poll_id=poll_id)
    if not options:
        raise ApiError("no_options", status=404, message="No options found for poll")
    rankings = storage.select("vote_rankings", option_id=[o["id"] for o in options])
    return {
        "poll_id": poll_id,
        "num_options": len(options),
        "result": tally_ranking_rows(options, rankings),
    }


# =============== Admin ===============
def _unique_by_option(pairs, participant_by_vote) -> Dict[str, Set[str]]:
    unique: Dict[str, Set[str]] = {}
    for option_id, vote_id in pairs:
        participant = participant_by_vote.get(vote_id)
        if participant:
            unique.setdefault(option_id, set()).add(participant)
    return unique


def admin_results(poll_id) -> dict:
    """Visão detalhada (sempre disponível ao admin)."""
    poll = get_poll(poll_id)
    vt = poll.get("voting_type") or "single"
    options = storage.select("poll_options", poll_id=poll_id)
    votes = storage.select("votes", poll_id=poll_id)
    totals = _totals(votes)
    participants = totals["totalParticipants"]
    participant_by_vote = {v["id"]: v.get("participant_id") for v in votes if v.get("participant_id")}
    vote_ids = [v["id"] for v in votes]

    if vt == "single":
        count: Dict[str, int] = {}
        for v in votes:
            if v.get("option_id"):
                count[v["option_id"]] = count.get(v["option_id"], 0) + 1
        unique = _unique_by_option(((v.get("option_id"), v["id"]) for v in votes if v.get("option_id")),
                                   participant_by_vote)
        rows = []
        for o in options:
            n = len(unique.get(o["id"], ()))
            rows.append({
                "option_id": o["id"],
                "option_text": o["option_text"],
                "unique_voters": n,
                "pct_participants": pct(n, participants),
                "votes": count.get(o["id"], 0),
            })
        rows.sort(key=lambda r: r["unique_voters"], reverse=True)

    elif vt == "multiple":
        marks = storage.select("vote_options", vote_id=vote_ids) if vote_ids else []
        marks = [m for m in marks if m.get("option_id") and m.get("vote_id")]
        count = {}
        for m in marks:
            count[m["option_id"]] = count.get(m["option_id"], 0) + 1
        unique = _unique_by_option(((m["option_id"], m["vote_id"]) for m in marks), participant_by_vote)
        totals["totalMarks"] = len(marks)
        rows = []
        for o in options:
            n = len(unique.get(o["id"], ()))
            rows.append({
                "option_id": o["id"],
                "option_text": o["option_text"],
                "unique_voters": n,
                "pct_participants": pct(n, participants),
                "marks": count.get(o["id"], 0),
                "pct_marks": pct(count.get(o["id"], 0), len(marks)),
            })
        rows.sort(key=lambda r: r["unique_voters"], reverse=True)

    else:
        rankings = storage.select("vote_rankings", vote_id=vote_ids) if vote_ids else []
        rankings = [r for r in rankings if r.get("option_id") and r.get("vote_id")]
        rank_sum: Dict[str, int] = {}
        appearances: Dict[str, int] = {}
        for r in rankings:
            rank_sum[r["option_id"]] = rank_sum.get(r["option_id"], 0) + coerce_rank(r.get("ranking"))
            appearances[r["option_id"]] = appearances.get(r["option_id"], 0) + 1
        unique = _unique_by_option(((r["option_id"], r["vote_id"]) for r in rankings), participant_by_vote)
        rows = []
        for o in options:
            seen = appearances.get(o["id"], 0)
            n = len(unique.get(o["id"], ()))
            rows.append({
                "option_id": o["id"],
                "option_text": o["option_text"],
                "unique_voters": n,
                "pct_participants": pct(n, participants),
                "appearances": seen,
                "avg_rank": round(rank_sum[o["id"]] / seen, 2) if seen else None,
            })
        # melhor ranking primeiro (menor avg_rank); desempate por mais votos únicos
        rows.sort(key=lambda r: (r["avg_rank"] is None, r["avg_rank"] or 0, -r["unique_voters"]))

    return {"poll": _poll_summary(poll), "totals": totals, "rows": rows}


def admin_results_csv(poll_id) -> str:
    data = admin_results(poll_id)
    rows = data["rows"]
    out = io.StringIO()
    w = csv.writer(out)
    header = list(rows[0].keys()) if rows else ["option_id", "option_text"]
    w.writerow(["posicao"] + header)
    for i, r in enumerate(rows, start=1):
        w.writerow([i] + ["" if r.get(k) is None else r.get(k) for k in header])
    w.writerow([])
    for k, v in data["totals"].items():
        w.writerow([k, v])
    return out.getvalue()
