from flask import Response, request

from . import admin_api_bp
from .auth import admin_api_required

import polls
import results
from audit import list_audit_logs
from errors import ApiError, json_response
from uploads import save_poll_icon

DASHBOARD_MENU = [
    {"name": "Cadastro de Pesquisas", "path": "/admin/poll-registration"},
    {"name": "Pesquisas", "path": "/admin"},
    {"name": "Logs de Auditoria", "path": "/admin/audit"},
]


def _body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ApiError("invalid_body")
    return body


# ================== ROTAS ==================

@admin_api_bp.route("/dashboard")
def dashboard():
    return json_response({"title": "Painel Administrativo - Auditável", "menu": DASHBOARD_MENU})


@admin_api_bp.route("/polls")
@admin_api_required
def list_polls():
    return json_response({"success": True, "polls": polls.list_polls()})


@admin_api_bp.route("/create-poll", methods=["POST"])
@admin_api_required
def create_poll():
    poll = polls.create_poll(_body())
    return json_response(
        {"message": "Pesquisa cadastrada com sucesso!", "data": {"id": poll["id"]}, "poll": poll},
        201,
    )


@admin_api_bp.route("/polls/<poll_id>", methods=["GET"])
@admin_api_required
def get_poll(poll_id):
    return json_response({"success": True, "poll": polls.get_poll(poll_id)})


@admin_api_bp.route("/polls/<poll_id>", methods=["PUT"])
@admin_api_required
def update_poll(poll_id):
    return json_response({"success": True, "poll": polls.update_poll(poll_id, _body())})


@admin_api_bp.route("/polls/<poll_id>/options", methods=["GET"])
@admin_api_required
def list_options(poll_id):
    return json_response({"success": True, "options": polls.list_options(poll_id)})


@admin_api_bp.route("/polls/<poll_id>/options", methods=["POST"])
@admin_api_required
def add_option(poll_id):
    body = request.get_json(silent=True) or {}
    option = polls.add_option(poll_id, body.get("option_text"))
    return json_response({"success": True, "option": option}, 201)


@admin_api_bp.route("/polls/<poll_id>/options/<option_id>", methods=["PUT"])
@admin_api_required
def update_option(poll_id, option_id):
    body = request.get_json(silent=True) or {}
    option = polls.update_option(poll_id, option_id, body.get("option_text"))
    return json_response({"success": True, "option": option})


@admin_api_bp.route("/polls/<poll_id>/options/<option_id>", methods=["DELETE"])
@admin_api_required
def delete_option(poll_id, option_id):
    polls.delete_option(poll_id, option_id)
    return json_response({"success": True})


@admin_api_bp.route("/poll-status", methods=["POST"])
@admin_api_required
def poll_status():
    body = request.get_json(silent=True) or {}
    if not body.get("poll_id") or not body.get("status"):
        raise ApiError("missing_data")
    polls.set_poll_status(body["poll_id"], body["status"])
    return json_response({"success": True})


@admin_api_bp.route("/poll-visibility", methods=["POST"])
@admin_api_required
def poll_visibility():
    body = request.get_json(silent=True) or {}
    show = body.get("show_partial_results")
    if not body.get("poll_id") or not isinstance(show, bool):
        raise ApiError("missing_data")
    polls.set_partial_results(body["poll_id"], show)
    return json_response({"success": True})


@admin_api_bp.route("/results/<poll_id>")
@admin_api_required
def poll_results(poll_id):
    return json_response(results.admin_results(poll_id.strip()))


@admin_api_bp.route("/results/<poll_id>/csv")
@admin_api_required
def poll_results_csv(poll_id):
    resp = Response(results.admin_results_csv(poll_id), mimetype="text/csv")
    resp.headers["Content-Disposition"] = f'attachment; filename="results_{poll_id}.csv"'
    return resp


@admin_api_bp.route("/audit-logs")
@admin_api_required
def audit_logs():
    limit = request.args.get("limit", type=int) or 100
    logs = list_audit_logs(request.args.get("poll_id") or None, limit=min(limit, 500))
    return json_response({"logs": logs})


@admin_api_bp.route("/upload-image", methods=["POST"])
@admin_api_required
def upload_image():
    url = save_poll_icon(request.files.get("file"))
    return json_response({"ok": True, "url": url}, 201)
