"""Unit tests for the Borda count."""

# pylint: disable=missing-function-docstring, import-error
import unittest

from borda import BordaTally, coerce_rank, points_for_rank, tally_orderings, tally_ranking_rows

OPTIONS = [
    {"id": "a", "option_text": "Alfa"},
    {"id": "b", "option_text": "Beta"},
    {"id": "c", "option_text": "Gama"},
]


class CoerceRankTest(unittest.TestCase):

    def test_numeric_values(self):
        self.assertEqual(coerce_rank("2"), 2)
        self.assertEqual(coerce_rank(2.7), 2)
        self.assertEqual(coerce_rank(3), 3)

    def test_invalid_values_become_zero(self):
        self.assertEqual(coerce_rank(None), 0)
        self.assertEqual(coerce_rank("x"), 0)
        self.assertEqual(coerce_rank(float("nan")), 0)

    def test_points_clamp_rank(self):
        self.assertEqual(points_for_rank(1, 3), 3)
        self.assertEqual(points_for_rank(3, 3), 1)
        self.assertEqual(points_for_rank(9, 3), 1)
        self.assertEqual(points_for_rank(0, 3), 3)
        self.assertEqual(points_for_rank("lixo", 3), 3)


class TallyOrderingsTest(unittest.TestCase):

    def test_position_points(self):
        rows = tally_orderings(OPTIONS, [["a", "b", "c"], ["b", "a"]])
        scores = {r["option_id"]: r["score"] for r in rows}
        self.assertEqual(scores, {"a": 5, "b": 5, "c": 1})

    def test_ties_keep_option_order(self):
        rows = tally_orderings(OPTIONS, [["a", "b", "c"], ["b", "a"]])
        self.assertEqual([r["option_id"] for r in rows], ["a", "b", "c"])

    def test_ignores_garbage(self):
        rows = tally_orderings(OPTIONS, [None, "a", ["zz", "c", 7]])
        scores = {r["option_id"]: r["score"] for r in rows}
        # "zz" ocupa a 1ª posição mesmo sendo desconhecido
        self.assertEqual(scores, {"a": 0, "b": 0, "c": 2})

    def test_no_options(self):
        self.assertEqual(tally_orderings([], [["a"]]), [])


class TallyRankingRowsTest(unittest.TestCase):

    def test_scores_and_positions(self):
        rows = tally_ranking_rows(OPTIONS, [
            {"option_id": "a", "ranking": 1},
            {"option_id": "b", "ranking": 2},
            {"option_id": "a", "ranking": 9},
            {"option_id": "fora", "ranking": 1},
        ])
        by_id = {r["option_id"]: r for r in rows}
        self.assertEqual(by_id["a"]["score"], 4)
        self.assertEqual(by_id["a"]["total_rankings"], 2)
        self.assertEqual(by_id["a"]["counts_per_position"], {1: 1, 3: 1})
        self.assertEqual(by_id["b"]["score"], 2)
        self.assertEqual(by_id["c"]["score"], 0)
        self.assertEqual(by_id["c"]["counts_per_position"], {})
        self.assertEqual(rows[0]["option_id"], "a")

    def test_tally_add_ignores_unknown(self):
        tally = BordaTally(OPTIONS)
        tally.add("x", 10)
        self.assertEqual(sum(tally.scores.values()), 0)


if __name__ == "__main__":
    unittest.main()
