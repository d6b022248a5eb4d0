from flask import (
    render_template, request, redirect, url_for,
    flash, current_app, session
)

# importa o blueprint criado no __init__.py
from . import admin_bp
from .auth import admin_page_required, check_credentials, safe_next

import polls
import results
from audit import list_audit_logs
from errors import ApiError
from uploads import save_poll_icon


def _token():
    return request.args.get("token") or None


def _home():
    return redirect(url_for("admin.home", token=_token()))


def _poll_form_body(form) -> dict:
    """Converte o formulário HTML no corpo aceito por polls.create_poll/update_poll."""
    return {
        "title": form.get("title", ""),
        "description": (form.get("description") or "").strip() or None,
        "type": (form.get("type") or "").strip() or None,
        "status": form.get("status") or "draft",
        "voting_type": form.get("voting_type") or "single",
        "allow_multiple": form.get("allow_multiple") == "on",
        "max_votes_per_user": form.get("max_votes_per_user") or None,
        "allow_custom_option": form.get("allow_custom_option") == "on",
        "start_date": form.get("start_date", ""),
        "end_date": form.get("end_date", ""),
        "closes_at": form.get("closes_at", ""),
        "vote_cooldown_seconds": form.get("vote_cooldown_seconds") or None,
        "show_partial_results": form.get("show_partial_results") == "on",
        "icon_name": (form.get("icon_name") or "").strip() or None,
    }


# ================== ROTAS ==================

@admin_bp.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        email = (request.form.get("email") or "").strip().lower()
        if check_credentials(email, request.form.get("password") or ""):
            session["admin_email"] = email
            current_app.logger.info("admin login %s from %s", email, request.remote_addr or "-")
            return redirect(safe_next(request.args.get("next"), url_for("admin.home")))
        current_app.logger.warning("admin login failed for %s from %s", email or "-", request.remote_addr or "-")
        flash("E-mail ou senha inválidos.", "error")
        return redirect(url_for("admin.login"))
    return render_template("admin_login.html")


@admin_bp.route("/logout")
def logout():
    session.pop("admin_email", None)
    flash("Sessão encerrada.", "info")
    return redirect(url_for("index"))


@admin_bp.route("/")
@admin_page_required
def home():
    """Lista de pesquisas com status e visibilidade dos resultados"""
    return render_template(
        "admin_home.html",
        polls=polls.list_polls(),
        statuses=polls.VALID_STATUS,
        token=_token(),
    )


@admin_bp.route("/polls/<poll_id>/status", methods=["POST"])
@admin_page_required
def poll_status(poll_id):
    try:
        polls.set_poll_status(poll_id, request.form.get("status"))
        flash("Status atualizado.", "success")
    except ApiError as e:
        flash(f"Erro: {e.message or e.error}", "error")
    return _home()


@admin_bp.route("/polls/<poll_id>/visibility", methods=["POST"])
@admin_page_required
def poll_visibility(poll_id):
    try:
        polls.set_partial_results(poll_id, request.form.get("show_partial_results") == "on")
        flash("Visibilidade atualizada.", "success")
    except ApiError as e:
        flash(f"Erro: {e.message or e.error}", "error")
    return _home()


@admin_bp.route("/poll-registration", methods=["GET", "POST"])
@admin_page_required
def poll_registration():
    """Cadastro de pesquisa (com opções iniciais, uma por linha)"""
    form = request.form if request.method == "POST" else {}
    if request.method == "POST":
        body = _poll_form_body(request.form)
        body["options"] = [ln.strip() for ln in (request.form.get("options") or "").splitlines()]
        try:
            icon = request.files.get("icon")
            if icon and icon.filename:
                body["icon_url"] = save_poll_icon(icon)
            poll = polls.create_poll(body)
        except ApiError as e:
            flash(f"Erro: {e.message or e.error}", "error")
        else:
            flash("Pesquisa cadastrada com sucesso!", "success")
            return redirect(url_for("admin.edit_poll", poll_id=poll["id"], token=_token()))

    return render_template(
        "admin_poll_form.html",
        poll=None, options=[], form=form,
        statuses=polls.VALID_STATUS, voting_types=polls.VOTING_TYPES,
        token=_token(),
    )


@admin_bp.route("/polls/<poll_id>", methods=["GET", "POST"])
@admin_page_required
def edit_poll(poll_id):
    """Edição da pesquisa e gestão das opções"""
    if request.method == "POST":
        action = request.form.get("action", "")
        try:
            if action == "save_poll":
                body = _poll_form_body(request.form)
                # datetime-local perde os segundos: só envia a data se mudou
                current = polls.get_poll(poll_id)
                for k in ("start_date", "end_date", "closes_at"):
                    if body[k] == polls.to_local_input(current.get(k)):
                        del body[k]
                icon = request.files.get("icon")
                if icon and icon.filename:
                    body["icon_url"] = save_poll_icon(icon)
                polls.update_poll(poll_id, body)
                flash("Pesquisa salva.", "success")
            elif action == "add_option":
                polls.add_option(poll_id, request.form.get("option_text"))
                flash("Opção adicionada.", "success")
            elif action == "update_option":
                polls.update_option(poll_id, request.form.get("option_id"), request.form.get("option_text"))
                flash("Opção atualizada.", "success")
            elif action == "delete_option":
                polls.delete_option(poll_id, request.form.get("option_id"))
                flash("Opção removida.", "success")
        except ApiError as e:
            flash(f"Erro: {e.message or e.error}", "error")
        return redirect(url_for("admin.edit_poll", poll_id=poll_id, token=_token()))

    poll = polls.get_poll(poll_id)
    return render_template(
        "admin_poll_form.html",
        poll=poll, options=polls.list_options(poll_id), form=poll,
        statuses=polls.VALID_STATUS, voting_types=polls.VOTING_TYPES,
        token=_token(),
    )


@admin_bp.route("/audit")
@admin_page_required
def audit():
    poll_id = request.args.get("poll_id") or None
    return render_template(
        "admin_audit.html",
        logs=list_audit_logs(poll_id),
        poll_id=poll_id,
        token=_token(),
    )


@admin_bp.route("/results/<poll_id>")
@admin_page_required
def poll_results(poll_id):
    return render_template("admin_results.html", data=results.admin_results(poll_id), token=_token())
