import pytest

from pelada.markets import (
    InvalidBetToken, describe, format_player_token, parse_player_token, parse_result_token,
)


def test_parse_player_token():
    market = parse_player_token("GOLS_MAIS_0.5_3f2a-uuid")
    assert market.stat == "GOLS"
    assert market.direction == "MAIS"
    assert market.line == 0.5
    assert market.player_id == "3f2a-uuid"
    assert market.field == "goals"


def test_player_id_may_contain_underscores():
    market = parse_player_token("DEFESAS_MENOS_2.5_team_b_keeper")
    assert market.player_id == "team_b_keeper"
    assert market.token() == "DEFESAS_MENOS_2.5_team_b_keeper"


def test_format_matches_stored_tokens():
    assert format_player_token("DESARMES", "MAIS", 1.5, "p9") == "DESARMES_MAIS_1.5_p9"


@pytest.mark.parametrize("detail", [
    "GOLS_MAIS_0.5",
    "CHUTES_MAIS_0.5_p1",
    "GOLS_ACIMA_0.5_p1",
    "GOLS_MAIS_abc_p1",
    "GOLS_MAIS_-1_p1",
    "GOLS_MENOS_nan_p1",
    "GOLS_MAIS_inf_p1",
])
def test_invalid_player_tokens(detail):
    with pytest.raises(InvalidBetToken):
        parse_player_token(detail)


def test_predicates():
    over = parse_player_token("GOLS_MAIS_1.5_p1")
    under = parse_player_token("GOLS_MENOS_1.5_p1")
    assert [over.holds(v) for v in (0, 1, 2, 3)] == [False, False, True, True]
    assert [under.holds(v) for v in (0, 1, 2, 3)] == [True, True, False, False]
    assert over.integer_bounds() == (2, None)
    assert under.integer_bounds() == (0, 1)


def test_result_tokens():
    assert parse_result_token("EMPATE") == "EMPATE"
    with pytest.raises(InvalidBetToken):
        parse_result_token("VITORIA_C")


def test_describe():
    assert describe("VITORIA_A") == "Vitória Time A"
    assert describe("ASSIST_MAIS_0.5_p1") == "Assistências +0.5"
    assert describe("GOLS_MENOS_2.5_p1") == "Gols -2.5"
