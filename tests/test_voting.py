"""Unit tests for cast_vote."""

# pylint: disable=missing-function-docstring, import-error
from datetime import timedelta

import storage
from voting import MSG_UPDATED, cast_vote
from tests.support import AppTestCase


class CastVoteWindowTest(AppTestCase):

    def test_unknown_poll(self):
        r = cast_vote("nao-existe", "p1", "u1", option_id="x")
        self.assertFalse(r.ok)
        self.assertEqual(r.http_status, 404)

    def test_draft_poll_is_not_found(self):
        poll = self.make_poll(status="draft")
        a, = self.make_options(poll["id"], "A")
        self.assertEqual(cast_vote(poll["id"], "p1", "u1", option_id=a["id"]).http_status, 404)

    def test_paused_and_closed(self):
        for status in ("paused", "closed"):
            poll = self.make_poll(status=status)
            a, = self.make_options(poll["id"], "A")
            r = cast_vote(poll["id"], "p1", "u1", option_id=a["id"])
            self.assertEqual(r.http_status, 403, status)
            self.assertEqual(r.resolved_voting_type, "single")

    def test_not_started(self):
        future = storage.iso(storage.now_utc() + timedelta(hours=2))
        poll = self.make_poll(start_date=future)
        a, = self.make_options(poll["id"], "A")
        r = cast_vote(poll["id"], "p1", "u1", option_id=a["id"])
        self.assertEqual(r.http_status, 403)
        self.assertEqual(r.message, "Votação ainda não iniciada")

    def test_past_closes_at(self):
        past = storage.iso(storage.now_utc() - timedelta(minutes=1))
        poll = self.make_poll(closes_at=past)
        a, = self.make_options(poll["id"], "A")
        self.assertEqual(cast_vote(poll["id"], "p1", "u1", option_id=a["id"]).http_status, 403)

    def test_past_end_date(self):
        past = storage.iso(storage.now_utc() - timedelta(minutes=1))
        poll = self.make_poll(end_date=past)
        a, = self.make_options(poll["id"], "A")
        r = cast_vote(poll["id"], "p1", "u1", option_id=a["id"])
        self.assertEqual(r.http_status, 403)
        self.assertEqual(r.message, "Votação encerrada")

        future = storage.iso(storage.now_utc() + timedelta(hours=1))
        storage.update("polls", {"end_date": future}, id=poll["id"])
        self.assertEqual(cast_vote(poll["id"], "p1", "u1", option_id=a["id"]).http_status, 201)

    def test_option_from_other_poll(self):
        poll = self.make_poll()
        other = self.make_poll()
        self.make_options(poll["id"], "A")
        x, = self.make_options(other["id"], "X")
        r = cast_vote(poll["id"], "p1", "u1", option_id=x["id"])
        self.assertEqual(r.http_status, 400)
        self.assertEqual(storage.select("votes"), [])


class CastVoteSingleTest(AppTestCase):

    def setUp(self):
        super().setUp()
        self.poll = self.make_poll()
        self.a, self.b = self.make_options(self.poll["id"], "A", "B")

    def test_new_vote(self):
        r = cast_vote(self.poll["id"], "p1", "u1", option_id=self.a["id"])
        self.assertTrue(r.ok)
        self.assertEqual(r.http_status, 201)
        vote = storage.get_one("votes", id=r.vote_id)
        self.assertEqual(vote["option_id"], self.a["id"])
        self.assertIsNone(vote["option_ids"])

    def test_second_vote_updates(self):
        first = cast_vote(self.poll["id"], "p1", "u1", option_id=self.a["id"])
        second = cast_vote(self.poll["id"], "p1", "u1", option_id=self.b["id"])
        self.assertEqual(second.http_status, 200)
        self.assertEqual(second.message, MSG_UPDATED)
        self.assertEqual(second.vote_id, first.vote_id)
        votes = storage.select("votes")
        self.assertEqual(len(votes), 1)
        self.assertEqual(votes[0]["option_id"], self.b["id"])
        self.assertIsNotNone(votes[0]["updated_at"])

    def test_other_user_gets_own_vote(self):
        cast_vote(self.poll["id"], "p1", "u1", option_id=self.a["id"])
        r = cast_vote(self.poll["id"], "p2", "u2", option_id=self.a["id"])
        self.assertEqual(r.http_status, 201)
        self.assertEqual(len(storage.select("votes")), 2)

    def test_cooldown(self):
        storage.update("polls", {"vote_cooldown_seconds": 60}, id=self.poll["id"])
        now = storage.now_utc()
        cast_vote(self.poll["id"], "p1", "u1", option_id=self.a["id"], now=now)

        r = cast_vote(self.poll["id"], "p1", "u1", option_id=self.b["id"], now=now + timedelta(seconds=10))
        self.assertEqual(r.http_status, 429)
        self.assertEqual(r.remaining_seconds, 50)

        r = cast_vote(self.poll["id"], "p1", "u1", option_id=self.b["id"], now=now + timedelta(seconds=61))
        self.assertEqual(r.http_status, 200)


class CastVoteMultipleTest(AppTestCase):

    def setUp(self):
        super().setUp()
        self.poll = self.make_poll(voting_type="multiple", allow_multiple=True, max_votes_per_user=2)
        self.a, self.b, self.c = self.make_options(self.poll["id"], "A", "B", "C")

    def test_marks_and_limit(self):
        ids = [self.a["id"], self.b["id"]]
        self.assertEqual(cast_vote(self.poll["id"], "p1", "u1", option_ids=ids).http_status, 201)
        self.assertEqual(cast_vote(self.poll["id"], "p1", "u1", option_ids=[self.c["id"]]).http_status, 201)

        r = cast_vote(self.poll["id"], "p1", "u1", option_ids=[self.c["id"]])
        self.assertEqual(r.http_status, 403)
        self.assertEqual(r.message, "Limite de participações atingido")
        self.assertEqual(len(storage.select("vote_options")), 3)

    def test_duplicate_ids_rejected(self):
        r = cast_vote(self.poll["id"], "p1", "u1", option_ids=[self.a["id"], self.a["id"]])
        self.assertEqual(r.http_status, 400)

    def test_empty_choice_rejected(self):
        self.assertEqual(cast_vote(self.poll["id"], "p1", "u1", option_ids=[]).http_status, 400)


class CastVoteRankingTest(AppTestCase):

    def setUp(self):
        super().setUp()
        self.poll = self.make_poll(voting_type="ranking")
        self.a, self.b, self.c = self.make_options(self.poll["id"], "A", "B", "C")

    def test_stores_order_and_rows(self):
        order = [self.b["id"], self.a["id"]]
        r = cast_vote(self.poll["id"], "p1", "u1", option_ids=order)
        self.assertEqual(r.http_status, 201)
        self.assertEqual(storage.get_one("votes", id=r.vote_id)["option_ids"], order)
        ranks = {x["option_id"]: x["ranking"] for x in storage.select("vote_rankings", vote_id=r.vote_id)}
        self.assertEqual(ranks, {self.b["id"]: 1, self.a["id"]: 2})

    def test_update_replaces_rankings(self):
        cast_vote(self.poll["id"], "p1", "u1", option_ids=[self.a["id"], self.b["id"], self.c["id"]])
        r = cast_vote(self.poll["id"], "p1", "u1", option_ids=[self.c["id"]])
        self.assertEqual(r.http_status, 200)
        rows = storage.select("vote_rankings")
        self.assertEqual([(x["option_id"], x["ranking"]) for x in rows], [(self.c["id"], 1)])
