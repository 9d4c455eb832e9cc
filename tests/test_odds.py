"""Unit tests for the Poisson player markets and the match result odds."""
import pytest

from pelada.database import Match
from pelada.odds import (
    build_odds_board, line_to_count, match_result_odds, player_market_odds,
    poisson_over, poisson_pmf, poisson_under, probability_to_odds,
)


class TestPoisson:

    @pytest.mark.parametrize("lam", [0.0, 0.1, 0.75, 1.0, 2.5, 6.0])
    @pytest.mark.parametrize("threshold", [0, 1, 2, 3, 4])
    def test_over_plus_under_is_one(self, lam, threshold):
        assert poisson_over(threshold, lam) + poisson_under(threshold, lam) == pytest.approx(1.0)

    @pytest.mark.parametrize("lam", [0.2, 1.0, 3.0])
    def test_over_zero_is_certain(self, lam):
        assert poisson_over(0, lam) == 1.0

    def test_zero_rate(self):
        assert poisson_pmf(0, 0) == 1.0
        assert poisson_pmf(2, 0) == 0.0
        assert poisson_over(1, 0) == 0.0

    def test_pmf_value(self):
        # P(X=2 | lam=1) = e^-1 / 2
        assert poisson_pmf(2, 1.0) == pytest.approx(0.18393972)

    @pytest.mark.parametrize("lam", [0.4, 1.7, 5.0])
    def test_over_is_complement_of_summed_pmf(self, lam):
        assert poisson_over(3, lam) == pytest.approx(1 - sum(poisson_pmf(k, lam) for k in range(3)))

    def test_over_odds_decrease_with_rate(self):
        odds = [probability_to_odds(poisson_over(2, lam)) for lam in (0.3, 0.6, 1.0, 1.5, 2.5)]
        assert odds == sorted(odds, reverse=True)
        assert len(set(odds)) == len(odds)

    def test_line_to_count(self):
        assert line_to_count(0.5) == 1
        assert line_to_count(2.5) == 3


class TestProbabilityToOdds:

    def test_fair_odd(self):
        assert probability_to_odds(0.5) == pytest.approx(2.0)

    @pytest.mark.parametrize("p", [0.0, -0.1, 1.2])
    def test_invalid_probability_is_blocked(self, p):
        assert probability_to_odds(p) is None

    def test_capped_at_one_hundred(self):
        assert probability_to_odds(0.0001) == 100.0

    def test_blocked_threshold_applies_when_cap_is_raised(self):
        assert probability_to_odds(0.0001, cap=1e6) is None
        assert probability_to_odds(0.01, cap=1e6) == pytest.approx(100.0)


class TestPlayerMarketOdds:

    def test_player_without_games_has_blocked_overs(self, make_stats):
        markets = player_market_odds(make_stats("p", games=0), lines=[0.5, 1.5])
        assert markets["GOLS"][0.5]["MAIS"] is None
        assert markets["GOLS"][0.5]["MENOS"] == 1.0

    def test_all_stats_and_lines(self, make_stats):
        markets = player_market_odds(make_stats("p", games=10, goals=10, tackles=25), lines=[0.5, 1.5, 2.5])
        assert set(markets) == {"GOLS", "ASSIST", "DESARMES", "DEFESAS"}
        goals = markets["GOLS"]
        # lambda 1: P(X>=1) = 1 - e^-1
        assert goals[0.5]["MAIS"] == pytest.approx(1 / (1 - 0.36787944))
        assert goals[0.5]["MAIS"] < goals[1.5]["MAIS"] < goals[2.5]["MAIS"]
        assert goals[0.5]["MENOS"] > goals[1.5]["MENOS"]


class TestMatchResultOdds:

    def test_even_teams(self):
        odds = match_result_odds([7.0, 7.0], [7.0, 7.0])
        # 0.4 / 0.2 / 0.4 after normalisation, divided by 1.15
        assert odds["VITORIA_A"] == pytest.approx(2.875, abs=0.01)
        assert odds["VITORIA_B"] == odds["VITORIA_A"]
        assert odds["EMPATE"] == pytest.approx(5.75, abs=0.01)

    def test_stronger_team_is_favourite(self):
        odds = match_result_odds([9.0, 8.5, 8.0], [5.0, 5.5, 6.0])
        assert odds["VITORIA_A"] < odds["VITORIA_B"]

    def test_draw_gets_less_likely_with_gap(self):
        close = match_result_odds([7.0], [6.5])
        wide = match_result_odds([9.5], [5.0])
        assert wide["EMPATE"] > close["EMPATE"]

    def test_minimum_odd(self):
        odds = match_result_odds([7.0], [7.0], margin=-0.9, min_odd=1.01)
        assert all(o >= 1.01 for o in odds.values())

    def test_empty_rosters(self):
        odds = match_result_odds([], [])
        assert odds["VITORIA_A"] == odds["VITORIA_B"]


class TestOddsBoard:

    def test_board_covers_rostered_players(self, make_stats):
        players = {p.id: p for p in [
            make_stats("a1", goals=5), make_stats("a2", saves=30),
            make_stats("b1", goals=2), make_stats("b2", tackles=12),
        ]}
        match = Match(id=1, team_a_name="A", team_b_name="B",
                      team_a_players=["a1", "a2"], team_b_players=["b1", "b2", "ghost"])

        board = build_odds_board(match, players, lines=[0.5, 1.5])

        assert set(board.result) == {"VITORIA_A", "EMPATE", "VITORIA_B"}
        # 4 players x 4 stats x 2 lines x 2 directions
        assert len(board.player_markets) == 64
        quote = next(q for q in board.player_markets if q.player_id == "a1" and q.stat == "GOLS"
                     and q.line == 0.5 and q.direction == "MAIS")
        assert quote.detail == "GOLS_MAIS_0.5_a1"
        assert not quote.blocked
