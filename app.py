import os, uuid, logging
from logging import StreamHandler
from datetime import datetime
from flask import (
    Flask, render_template, request, redirect, url_for,
    flash, Response, abort, send_from_directory
)
from werkzeug.exceptions import HTTPException

import polls
import results
import participants
from admin import admin_bp, admin_api_bp
from errors import ApiError, PollNotFoundError, StorageError, json_response
from storage import select
from voting import cast_vote

# =============== App & Config ===============
app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "mude-isto")

# Versão para cache busting (css/ícones)
APP_VERSION = os.environ.get("APP_VERSION", datetime.utcnow().strftime("%Y%m%d%H%M%S"))
app.jinja_env.globals["APP_VERSION"] = APP_VERSION

DATA_DIR = os.environ.get("DATA_DIR", "data")
app.config.update(
    DATA_DIR=DATA_DIR,
    UPLOAD_DIR=os.environ.get("UPLOAD_DIR", os.path.join(DATA_DIR, "uploads")),
    ADMIN_TOKEN=os.environ.get("ADMIN_TOKEN", ""),
    ADMIN_EMAILS=os.environ.get("ADMIN_EMAILS", ""),
    ADMIN_PASSWORD_HASH=os.environ.get("ADMIN_PASSWORD_HASH", ""),
    ACCESS_LOG_IP_SALT=os.environ.get("ACCESS_LOG_IP_SALT", ""),
    APP_TIMEZONE=os.environ.get("APP_TIMEZONE", "America/Sao_Paulo"),
    START_DATE_TOLERANCE_SECONDS=int(os.environ.get("START_DATE_TOLERANCE_SECONDS", "60")),
    MAX_UPLOAD_BYTES=int(os.environ.get("MAX_UPLOAD_BYTES", str(2 * 1024 * 1024))),
)

app.register_blueprint(admin_bp)
app.register_blueprint(admin_api_bp)

# identidade anônima do navegador
PARTICIPANT_COOKIE = "auditavel_participant_id"
USER_HASH_COOKIE = "auditavel_uid"
COOKIE_MAX_AGE = 365 * 24 * 3600

STATUS_LABELS = {"draft": "Rascunho", "open": "Aberta", "paused": "Pausada", "closed": "Encerrada"}
app.jinja_env.globals["STATUS_LABELS"] = STATUS_LABELS


# =============== Filtros de template ===============
@app.template_filter("local_dt")
def local_dt(value):
    dt = polls.to_local(value)
    return dt.strftime("%d/%m/%Y %H:%M") if dt else ""


app.add_template_filter(polls.to_local_input, "local_input")


# =============== Handlers de erro com logging ===============
if not app.logger.handlers:
    app.logger.addHandler(StreamHandler())
app.logger.setLevel(logging.INFO)


def _wants_json():
    return request.path.startswith("/api/")


@app.errorhandler(ApiError)
def handle_api_error(e):
    if _wants_json():
        return json_response(e.to_dict(), e.status)
    return Response(
        f"<h3>{e.status} • {e.message or e.error}</h3><p><a href='/'>Início</a></p>",
        status=e.status, mimetype="text/html"
    )


@app.errorhandler(StorageError)
def handle_storage_error(e):
    app.logger.exception("storage error on %s", request.path)
    if _wants_json():
        return json_response({"error": "db_error", "details": str(e)}, 500)
    return Response(
        "<h3>Erro interno (500)</h3><p>Verifique os logs do servidor para detalhes.</p>",
        status=500, mimetype="text/html"
    )


@app.errorhandler(404)
def handle_404(e):
    app.logger.warning("404 on %s?%s", request.path, request.query_string.decode("utf-8", errors="ignore"))
    if _wants_json():
        return json_response({"error": "not_found"}, 404)
    return Response(
        "<h3>404 • Página não encontrada</h3><p><a href='/'>Início</a></p>",
        status=404, mimetype="text/html"
    )


@app.errorhandler(Exception)
def handle_500(e):
    if isinstance(e, HTTPException):
        return e
    app.logger.exception("500 on %s", request.path)
    if _wants_json():
        return json_response({"error": "internal_error", "details": str(e)}, 500)
    return Response(
        "<h3>Erro interno (500)</h3><p>Verifique os logs do servidor para detalhes.</p>",
        status=500, mimetype="text/html"
    )


# =============== Identidade do participante ===============
def _identity():
    """(participant_id, user_hash, cookies novos a gravar)"""
    new = {}
    participant_id = request.cookies.get(PARTICIPANT_COOKIE)
    if not participant_id:
        participant_id = new[PARTICIPANT_COOKIE] = str(uuid.uuid4())
    user_hash = request.cookies.get(USER_HASH_COOKIE)
    if not user_hash:
        user_hash = new[USER_HASH_COOKIE] = str(uuid.uuid4())
    return participant_id, user_hash, new


def _set_cookies(resp, new):
    for name, value in new.items():
        resp.set_cookie(name, value, max_age=COOKIE_MAX_AGE, httponly=True, samesite="Lax")
    return resp


def parse_ranking_form(form, option_ids):
    """
    Ordem do ranking a partir do formulário: lista `ranking` (já ordenada)
    ou campos numéricos rank_<option_id> (1 = melhor; vazio = não ranqueado).
    """
    posted = form.getlist("ranking")
    if posted:
        ordered = []
        for oid in posted:
            if oid in option_ids and oid not in ordered:
                ordered.append(oid)
        return ordered

    ranks = []
    for oid in option_ids:
        raw = (form.get(f"rank_{oid}") or "").strip()
        if not raw:
            continue
        try:
            n = int(raw)
        except ValueError:
            continue
        if n >= 1:
            ranks.append((n, oid))
    return [oid for _, oid in sorted(ranks, key=lambda t: t[0])]


# =============== Rotas Públicas ===============
@app.route("/")
def index():
    visible = polls.list_polls(include_drafts=False)
    featured = next((p for p in visible if p.get("is_featured")), None)
    if featured is None:
        featured = next((p for p in visible if p.get("status") == "open"), None)
    return render_template("index.html", featured=featured, polls=visible)


@app.route("/poll")
def poll_list():
    return render_template("poll_list.html", polls=polls.list_polls(include_drafts=False))


def _public_poll(poll_id):
    try:
        poll = polls.get_poll(poll_id)
    except PollNotFoundError:
        abort(404)
    if poll.get("status") == "draft":
        abort(404)
    return poll


@app.route("/poll/<poll_id>")
def poll_page(poll_id):
    poll = _public_poll(poll_id)
    participant_id, user_hash, new = _identity()
    options = polls.list_options(poll_id)
    my_votes = participants_votes(poll_id, user_hash)
    resp = Response(render_template(
        "poll.html",
        poll=poll,
        options=options,
        my_votes=my_votes,
        can_show_results=results.can_show_results(poll),
        max_votes=results.effective_max_votes(poll),
    ))
    return _set_cookies(resp, new)


def participants_votes(poll_id, user_hash):
    return select("votes", order_by="created_at", poll_id=poll_id, user_hash=user_hash)


@app.route("/poll/<poll_id>/vote", methods=["POST"])
def vote_form(poll_id):
    poll = _public_poll(poll_id)
    participant_id, user_hash, new = _identity()
    option_ids = [o["id"] for o in polls.list_options(poll_id)]

    vt = poll.get("voting_type") or "single"
    if vt == "ranking":
        r = cast_vote(poll_id, participant_id, user_hash, option_ids=parse_ranking_form(request.form, option_ids))
    elif vt == "multiple":
        r = cast_vote(poll_id, participant_id, user_hash, option_ids=request.form.getlist("option_ids"))
    else:
        r = cast_vote(poll_id, participant_id, user_hash, option_id=request.form.get("option_id"))

    if not r.ok:
        msg = r.message
        if r.remaining_seconds:
            msg = f"{msg} ({r.remaining_seconds}s)"
        flash(msg, "error")
        return _set_cookies(redirect(url_for("poll_page", poll_id=poll_id)), new)

    participants.sync_participant(participant_id)
    flash(r.message, "success")
    target = url_for("results_page", poll_id=poll_id, from_vote=1)
    if not results.can_show_results(poll):
        target = url_for("poll_page", poll_id=poll_id)
    return _set_cookies(redirect(target), new)


@app.route("/results/<poll_id>")
def results_page(poll_id):
    poll = _public_poll(poll_id)
    if not results.can_show_results(poll):
        return render_template("results.html", poll=poll, data=None, show_attributes=False)

    participant_id = request.cookies.get(PARTICIPANT_COOKIE)
    from_vote = request.args.get("from_vote") == "1"
    show_attributes = bool(from_vote and participant_id and not participants.has_attributes(participant_id))
    return render_template(
        "results.html",
        poll=poll,
        data=results.public_results(poll_id),
        show_attributes=show_attributes,
    )


@app.route("/results/<poll_id>/attributes", methods=["POST"])
def results_attributes(poll_id):
    participant_id = request.cookies.get(PARTICIPANT_COOKIE)
    body = {k: request.form.get(k) for k in participants.ATTRIBUTE_FIELDS}
    body["participant_id"] = participant_id
    try:
        participants.save_attributes(body)
        flash("Obrigado! Perfil salvo.", "success")
    except ApiError as e:
        flash(e.message or e.error, "error")
    return redirect(url_for("results_page", poll_id=poll_id))


# =============== API pública ===============
@app.route("/api/vote", methods=["POST"])
def api_vote():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return json_response({"error": "invalid_payload", "details": "corpo JSON inválido"}, 400)

    poll_id = body.get("poll_id")
    participant_id = body.get("participant_id")
    user_hash = body.get("user_hash")
    option_id = body.get("option_id")
    option_ids = body.get("option_ids")

    if not poll_id or not participant_id or not user_hash:
        return json_response({"error": "missing_data"}, 400)

    # compat: option_ids para single (pega o primeiro)
    if not option_id and isinstance(option_ids, list) and option_ids:
        option_id = option_ids[0]
    if not isinstance(option_id, str):
        option_id = None
    safe_option_ids = (
        option_ids if isinstance(option_ids, list) and all(isinstance(x, str) for x in option_ids) else None
    )

    r = cast_vote(str(poll_id), str(participant_id), str(user_hash), option_id, safe_option_ids)

    if not r.ok:
        if r.http_status == 429:
            return json_response({
                "error": "cooldown_active",
                "remaining_seconds": r.remaining_seconds,
                "vote_id": r.vote_id,
                "voting_type": r.resolved_voting_type,
                "message": r.message,
            }, 429)
        return json_response({
            "error": "vote_rejected",
            "vote_id": r.vote_id,
            "voting_type": r.resolved_voting_type,
            "message": r.message,
        }, r.http_status)

    # só sincroniza depois do voto aceito (evita escrita quando bloqueado)
    participants.sync_participant(str(participant_id))
    return json_response({
        "success": True,
        "updated": r.message == "Voto atualizado",
        "vote_id": r.vote_id,
        "voting_type": r.resolved_voting_type,
    }, r.http_status)


@app.route("/api/results/<poll_id>")
def api_results(poll_id):
    return json_response(results.ranking_api_results(poll_id))


@app.route("/api/participant-attributes", methods=["POST"])
def api_participant_attributes():
    participants.save_attributes(request.get_json(silent=True))
    return json_response({"success": True})


@app.route("/api/participant-attributes/check")
def api_participant_attributes_check():
    participant_id = request.args.get("participant_id")
    if not participant_id:
        return json_response({"error": "missing_participant_id"}, 400)
    return json_response({"exists": participants.has_attributes(participant_id)})


@app.route("/api/participant-profile")
def api_participant_profile():
    participant_id = request.args.get("participant_id")
    if not participant_id:
        return json_response({"error": "missing_participant_id"}, 400)
    return json_response({"profile": participants.get_profile(participant_id)})


@app.route("/api/access-log", methods=["POST"])
def api_access_log():
    row = participants.record_access(request.get_json(silent=True), request.headers, request.remote_addr)
    return json_response({"ok": True, "access_id": row["id"]}, 201)


# =============== Arquivos & Health ===============
@app.route("/uploads/<path:filename>")
def uploaded_file(filename):
    return send_from_directory(os.path.abspath(app.config["UPLOAD_DIR"]), filename)


@app.route("/healthz")
@app.route("/ping")
def healthz():
    return Response('{"ok":true}', mimetype="application/json")


# ---------- Debug local ----------
if __name__ == "__main__":
    # Em produção, o servidor (gunicorn) importa app:app
    app.run(host="0.0.0.0", port=5000, debug=True)
