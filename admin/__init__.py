from flask import Blueprint

# páginas do admin em /admin e API JSON em /api/admin
admin_bp = Blueprint("admin", __name__, url_prefix="/admin")
admin_api_bp = Blueprint("admin_api", __name__, url_prefix="/api/admin")

# importa as rotas definidas em views.py e api.py
from . import views, api
