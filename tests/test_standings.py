from pelada.standings import league_table


def test_ranked_by_rating_then_goals(make_stats):
    players = [
        make_stats("bench", games=10),
        make_stats("star", games=10, goals=12, assists=6),
        make_stats("new", games=0),
        make_stats("keeper", games=10, saves=40),
    ]

    table = league_table(players)

    assert list(table["player_id"]) == ["star", "keeper", "bench", "new"]
    assert list(table["position"]) == [1, 2, 3, 4]
    assert table["rating"].is_monotonic_decreasing


def test_goals_break_rating_ties(make_stats):
    # both at the 5.0 floor
    table = league_table([make_stats("a", games=0), make_stats("b", games=0, goals=1)])
    assert list(table["player_id"]) == ["b", "a"]


def test_empty_table_keeps_columns():
    table = league_table([])
    assert table.empty
    assert "position" in table.columns
    assert "rating" in table.columns
