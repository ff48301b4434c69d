# tests/test_fetch_guard.py

"""
Ce qu'on teste :
→ Seul le dernier fetch lancé est appliqué, quel que soit l'ordre d'arrivée
→ Un fetch périmé côté store ne touche pas l'état
"""

from services.fetch_guard import FetchSequencer
from services.sav_requests import SavRequestStore

from conftest import make_supabase


class TestFetchSequencer:

    def test_tags_increase(self):
        sequencer = FetchSequencer()
        assert sequencer.issue() == 1
        assert sequencer.issue() == 2
        assert sequencer.latest == 2

    def test_out_of_order_arrival_keeps_latest(self):
        sequencer = FetchSequencer()
        applied = []

        tags = [sequencer.issue() for _ in range(3)]
        # Arrivée : 3, 1, 2
        for tag in (tags[2], tags[0], tags[1]):
            sequencer.apply(tag, applied.append, tag)

        assert applied == [3]

    def test_apply_returns_false_when_stale(self):
        sequencer = FetchSequencer()
        first = sequencer.issue()
        sequencer.issue()
        assert sequencer.apply(first, lambda: None) is False
        assert sequencer.is_current(first) is False


class TestStoreStaleFetch:

    def test_stale_result_is_ignored(self, sample_sav_requests):
        client = make_supabase({"sav_requests": sample_sav_requests})
        store = SavRequestStore(client)
        store.requests = [{"id": "déjà_affiché"}]

        query = client.table("sav_requests")

        # Un autre fetch est lancé pendant l'exécution de celui-ci
        def execute_then_supersede():
            store._sequencer.issue()
            return type("Result", (), {"data": sample_sav_requests})()

        query.execute.side_effect = execute_then_supersede

        store.fetch()

        assert store.requests == [{"id": "déjà_affiché"}]
