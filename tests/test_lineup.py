"""Unit tests for the balanced lineup optimizer and the legacy generator."""
import numpy as np
import pytest

from pelada.lineup import (
    APTITUDES, INSUFFICIENT_PLAYERS, INVALID_INPUT, assign_roles, formation, imbalance_cost,
    iter_feasible_rosters, legacy_lineup, optimize_lineup, primary_aptitude, score_player,
    validate_lineup_inputs, universal_scores, COST_WEIGHTS,
)


@pytest.fixture
def squad(make_stats):
    return [
        make_stats("gk1", games=10, saves=40, fouls=1),
        make_stats("gk2", games=10, saves=30, goals=1),
        make_stats("st1", games=10, goals=15, assists=4),
        make_stats("st2", games=10, goals=9, assists=2, fouls=3),
        make_stats("df1", games=10, tackles=30, fouls=4),
        make_stats("df2", games=10, tackles=22, assists=1),
        make_stats("mf1", games=10, goals=3, assists=10, tackles=8),
        make_stats("mf2", games=10, goals=4, assists=6, tackles=12),
        make_stats("wg1", games=10, goals=6, assists=8),
        make_stats("new", games=0),
        make_stats("inj", games=10, goals=20, status="Lesionado"),
    ]


def brute_force_best_cost(players, size, roles):
    scored = [score_player(p) for p in players if p.status != "Lesionado"]
    aptitudes = np.array([[s.aptitudes[a] for a in APTITUDES] for s in scored])
    universal = np.array([[s.rating, s.attack, s.defense] for s in scored])
    rosters = [set(m) for m, _ in iter_feasible_rosters(aptitudes, size, roles)]
    best = np.inf
    for a in rosters:
        for b in rosters:
            if a & b:
                continue
            diff = np.abs(universal[list(a)].sum(axis=0) - universal[list(b)].sum(axis=0))
            best = min(best, float(diff @ COST_WEIGHTS))
    return best


class TestOptimizeLineup:

    def test_valid_split(self, squad):
        roles = {"Goleiro": 1, "Zagueiro": 1}
        outcome = optimize_lineup(squad, 4, roles)

        assert outcome.ok
        result = outcome.value
        ids_a = {p.player.id for p in result.team_a.players}
        ids_b = {p.player.id for p in result.team_b.players}
        assert len(ids_a) == len(ids_b) == 4
        assert ids_a.isdisjoint(ids_b)
        assert "inj" not in ids_a | ids_b

        for team in (result.team_a, result.team_b):
            assigned = [p.assigned_role for p in team.players]
            assert assigned.count("Goleiro") == 1
            assert assigned.count("Zagueiro") == 1

        bench_ids = {p.id for p in result.bench}
        assert "inj" in bench_ids
        assert bench_ids | ids_a | ids_b == {p.id for p in squad}

    def test_cost_is_minimal(self, squad):
        roles = {"Goleiro": 1, "Zagueiro": 1}
        result = optimize_lineup(squad, 4, roles).value

        assert result.imbalance_cost == pytest.approx(brute_force_best_cost(squad, 4, roles))
        assert result.imbalance_cost == pytest.approx(
            imbalance_cost(result.team_a.players, result.team_b.players))

    def test_team_totals(self, squad):
        result = optimize_lineup(squad, 4, {"Goleiro": 1}).value
        team = result.team_a
        assert team.rating_total == pytest.approx(sum(p.rating for p in team.players))
        assert sum(int(n) for n in team.formation.split("-")) == 4

    def test_deterministic(self, squad):
        first = optimize_lineup(squad, 4, {"Goleiro": 1}).value
        second = optimize_lineup(squad, 4, {"Goleiro": 1}).value
        assert [p.player.id for p in first.team_a.players] == [p.player.id for p in second.team_a.players]
        assert [p.player.id for p in first.team_b.players] == [p.player.id for p in second.team_b.players]

    def test_injured_players_do_not_count(self, squad):
        outcome = optimize_lineup(squad, 6, {"Goleiro": 1})
        assert not outcome.ok
        assert outcome.error == INSUFFICIENT_PLAYERS

    @pytest.mark.parametrize("size, roles", [
        (3, {"Goleiro": 1}),
        (12, {"Goleiro": 1}),
        (4, {"Goleiro": 2}),
        (4, {"Zagueiro": 1}),
        (4, {"Goleiro": 1, "Zagueiro": 2, "Atacante": 2}),
        (4, {"Goleiro": 1, "Libero": 1}),
    ])
    def test_invalid_input(self, squad, size, roles):
        outcome = optimize_lineup(squad, size, roles)
        assert not outcome.ok
        assert outcome.error == INVALID_INPUT
        assert outcome.detail


class TestValidation:

    def test_valid(self):
        assert validate_lineup_inputs(10, 5, {"Goleiro": 1, "Meia": 2}) == []

    def test_double_lineup_messages(self):
        errors = validate_lineup_inputs(7, 4, {"Goleiro": 1})
        assert any("two teams" in e for e in errors)
        assert any("at most 3" in e for e in errors)

    def test_single_lineup(self):
        assert validate_lineup_inputs(5, 5, {"Goleiro": 1}, double_lineup=False) == []
        assert validate_lineup_inputs(4, 5, {"Goleiro": 1}, double_lineup=False)


class TestRoles:

    def test_greedy_assignment_prefers_aptitude(self, squad):
        scored = [score_player(p) for p in squad[:4]]
        aptitudes = np.array([[s.aptitudes[a] for a in APTITUDES] for s in scored])
        assignments = assign_roles((0, 1, 2, 3), aptitudes, {"Goleiro": 1, "Atacante": 1})
        assert assignments == {0: "Goleiro", 2: "Atacante"}

    def test_ties_keep_input_order(self):
        aptitudes = np.zeros((4, len(APTITUDES)))
        assert assign_roles((0, 1, 2, 3), aptitudes, {"Goleiro": 1, "Zagueiro": 2}) == {
            0: "Goleiro", 1: "Zagueiro", 2: "Zagueiro"}

    def test_quota_larger_than_roster(self):
        aptitudes = np.zeros((2, len(APTITUDES)))
        assert assign_roles((0, 1), aptitudes, {"Goleiro": 1, "Meia": 2}) is None

    def test_primary_aptitude(self, make_stats):
        assert score_player(make_stats("gk", saves=40)).primary_aptitude == "P_GOL"
        assert score_player(make_stats("st", goals=20)).primary_aptitude == "P_ATK"
        # all zero: first role in order wins
        assert primary_aptitude({a: 0.0 for a in APTITUDES}) == "P_GOL"

    def test_universal_scores_without_games(self, make_stats):
        assert universal_scores(make_stats("p", games=0)) == (5.0, 0.0, 0.0)

    def test_formation_uses_primary_aptitude_for_free_players(self, make_stats):
        players = [
            score_player(make_stats("gk", saves=40)).model_copy(update={"assigned_role": "Goleiro"}),
            score_player(make_stats("df", tackles=30)).model_copy(update={"assigned_role": "Zagueiro"}),
            score_player(make_stats("st", goals=20)),
        ]
        assert formation(players) == "1-1-0-1"


class TestLegacyLineup:

    def test_split(self, squad):
        lineup = legacy_lineup(squad)
        ids_a = [p.id for p in lineup.team_a]
        ids_b = [p.id for p in lineup.team_b]

        assert ids_a[0] == "gk1"
        assert ids_b[0] == "gk2"
        assert len(ids_a) == len(ids_b) == 5
        assert set(ids_a).isdisjoint(ids_b)
        assert "inj" in {p.id for p in lineup.bench}
