import pandas as pd
from typing import Iterable

from .ratings import calculate_rating

COLUMNS = ['player_id', 'name', 'rating', 'games', 'goals', 'assists', 'saves', 'tackles', 'fouls', 'status']


def league_table(players: Iterable) -> pd.DataFrame:
    """
    Players ranked by freshly computed rating (goals break ties), with a
    1-based 'position' column.
    """
    rows = []
    for p in players:
        rows.append({
            'player_id': p.id,
            'name': p.name,
            'rating': calculate_rating(p),
            'games': p.games,
            'goals': p.goals,
            'assists': p.assists,
            'saves': p.saves,
            'tackles': p.tackles,
            'fouls': p.fouls,
            'status': p.status,
        })

    if not rows:
        return pd.DataFrame(columns=['position'] + COLUMNS)

    df = pd.DataFrame(rows, columns=COLUMNS)
    df = df.sort_values(by=['rating', 'goals'], ascending=[False, False], kind='mergesort').reset_index(drop=True)
    df.insert(0, 'position', df.index + 1)
    return df
