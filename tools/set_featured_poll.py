#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Recalcula a pesquisa em destaque (mais participantes distintos nas últimas 24h).

Uso (cron):
    python tools/set_featured_poll.py --data-dir /srv/auditavel/data
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app  # noqa: E402
from polls import refresh_featured_poll  # noqa: E402


def main(argv=None):
    ap = argparse.ArgumentParser(description="Atualiza a pesquisa em destaque.")
    ap.add_argument("--data-dir", help="diretório das tabelas JSON (padrão: DATA_DIR)")
    args = ap.parse_args(argv)

    if args.data_dir:
        app.config["DATA_DIR"] = args.data_dir

    with app.app_context():
        winner_id, score = refresh_featured_poll()

    if winner_id is None:
        print("Nenhuma pesquisa aberta. Destaque removido.")
    else:
        print(f"Destaque: {winner_id} ({score} participantes nas últimas 24h)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
