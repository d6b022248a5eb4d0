"""
Contagem de Borda para votos de ranking.

Os votos de ranking existem em duas representações:
  - votes.option_ids: lista ordenada (1º colocado primeiro)
  - vote_rankings: uma linha por opção com `ranking` (1 = melhor)
Ambas passam pelo mesmo acumulador (`BordaTally`).
"""
import math
from typing import Dict, Iterable, List, Optional


def coerce_rank(value) -> int:
    """Converte o ranking armazenado em inteiro; inválido vira 0."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(n) or math.isinf(n):
        return 0
    return int(n)


def clamp_rank(rank: int, n: int) -> int:
    return min(max(rank, 1), n)


def points_for_rank(rank, n: int) -> int:
    """Pontos de uma posição (1 = melhor): n - rank + 1, com rank limitado a [1, n]."""
    return n - clamp_rank(coerce_rank(rank), n) + 1


class BordaTally:
    """Acumula pontos por opção, na ordem em que as opções foram dadas."""

    def __init__(self, options: List[dict]):
        self.options = list(options)
        self.n = len(self.options)
        self.scores: Dict[str, int] = {o["id"]: 0 for o in self.options}
        self.total_rankings: Dict[str, int] = {o["id"]: 0 for o in self.options}
        self.counts_per_position: Dict[str, Dict[int, int]] = {o["id"]: {} for o in self.options}

    def add(self, option_id, points: int, position: Optional[int] = None):
        # ids fora da pesquisa não entram no resultado
        if option_id not in self.scores:
            return
        self.scores[option_id] += points
        self.total_rankings[option_id] += 1
        if position is not None:
            counts = self.counts_per_position[option_id]
            counts[position] = counts.get(position, 0) + 1

    def rows(self, detailed: bool = False) -> List[dict]:
        out = []
        for o in self.options:
            row = {
                "option_id": o["id"],
                "option_text": o.get("option_text", ""),
                "score": self.scores[o["id"]],
            }
            if detailed:
                row["total_rankings"] = self.total_rankings[o["id"]]
                row["counts_per_position"] = dict(sorted(self.counts_per_position[o["id"]].items()))
            out.append(row)
        # sort estável: empates mantêm a ordem das opções
        out.sort(key=lambda r: r["score"], reverse=True)
        return out


def tally_orderings(options: List[dict], orderings: Iterable) -> List[dict]:
    """
    Borda sobre listas ordenadas: a posição i (base 0) vale max(n - i, 0).
    Valores que não são listas são ignorados.
    """
    tally = BordaTally(options)
    if tally.n == 0:
        return []
    for ordered in orderings:
        if not isinstance(ordered, list):
            continue
        for i, option_id in enumerate(ordered):
            if isinstance(option_id, str):
                tally.add(option_id, max(tally.n - i, 0))
    return tally.rows()


def tally_ranking_rows(options: List[dict], rows: Iterable[dict]) -> List[dict]:
    """
    Borda sobre linhas (option_id, ranking). O ranking é limitado a [1, n]
    antes de pontuar; a contagem por posição usa o ranking já limitado.
    """
    tally = BordaTally(options)
    if tally.n == 0:
        return []
    for row in rows:
        rank = clamp_rank(coerce_rank(row.get("ranking")), tally.n)
        tally.add(row.get("option_id"), points_for_rank(rank, tally.n), position=rank)
    return tally.rows(detailed=True)

