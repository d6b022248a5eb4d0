"""Base comum dos testes: app Flask apontando para um DATA_DIR temporário."""

# pylint: disable=missing-function-docstring, import-error
import os
import tempfile
import unittest
from datetime import timedelta

import storage
from app import app

ADMIN_TOKEN = "tok-test"


class AppTestCase(unittest.TestCase):
    """Cada teste roda com tabelas vazias e um app_context ativo."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        app.config.update(
            TESTING=True,
            SECRET_KEY="test-secret",
            DATA_DIR=self.tmp.name,
            UPLOAD_DIR=os.path.join(self.tmp.name, "uploads"),
            ADMIN_TOKEN=ADMIN_TOKEN,
            ADMIN_EMAILS="",
            ADMIN_PASSWORD_HASH="",
            ACCESS_LOG_IP_SALT="",
            APP_TIMEZONE="America/Sao_Paulo",
            START_DATE_TOLERANCE_SECONDS=60,
            MAX_UPLOAD_BYTES=2 * 1024 * 1024,
        )
        self.app = app
        self.client = app.test_client()
        self.ctx = app.app_context()
        self.ctx.push()

    def tearDown(self):
        self.ctx.pop()
        self.tmp.cleanup()

    # ----- fixtures -----
    def make_poll(self, **overrides) -> dict:
        now = storage.now_utc()
        row = {
            "title": "Pesquisa teste",
            "description": None,
            "type": None,
            "status": "open",
            "voting_type": "single",
            "allow_multiple": False,
            "max_votes_per_user": 1,
            "allow_custom_option": False,
            "start_date": storage.iso(now - timedelta(hours=1)),
            "end_date": None,
            "closes_at": None,
            "vote_cooldown_seconds": 0,
            "show_partial_results": False,
            "icon_name": None,
            "icon_url": None,
            "is_featured": False,
            "created_at": storage.iso(now - timedelta(days=1)),
        }
        row.update(overrides)
        return storage.insert("polls", row)

    def make_options(self, poll_id, *texts):
        return [storage.insert("poll_options", {"poll_id": poll_id, "option_text": t}) for t in texts]
