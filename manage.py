import click
import json
import logging
from datetime import datetime

# Import our internal modules
from pelada.config import settings
from pelada.database import (
    init_db, get_session, Account, Player, Match,
    CATEGORY_MATCH_RESULT, CATEGORY_PLAYER_MARKET, MATCH_SCHEDULED, PLAYER_ACTIVE,
)
from pelada.betting import place_slip, BetPlacementError
from pelada.conflicts import validate_bet_conflicts
from pelada.lineup import optimize_lineup, legacy_lineup, validate_lineup_inputs, AVAILABLE_ROLES
from pelada.markets import RESULT_TOKENS, InvalidBetToken, describe, parse_player_token
from pelada.odds import build_odds_board, player_market_odds
from pelada.ratings import RatingUpdater, calculate_rating, radar_skills
from pelada.schemas import Selection, StatLine
from pelada.settlement import SettlementEngine, MatchAlreadySettledError, MatchNotFoundError
from pelada.standings import league_table

# Setup Logging
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(message)s", force=True)
logger = logging.getLogger(__name__)


def _parse_roles(roles):
    required = {}
    for item in roles:
        name, _, count = item.partition("=")
        if name not in AVAILABLE_ROLES or not count.isdigit():
            raise click.BadParameter(f"Expected ROLE=COUNT with ROLE in {', '.join(AVAILABLE_ROLES)}: {item}")
        required[name] = int(count)
    return required


@click.group()
def cli():
    """Pelada league control tool: ratings, lineups, odds and bets."""
    pass


@cli.command()
def setup():
    """Creates the database and tables."""
    init_db()
    click.echo("✅ Database setup complete.")


@cli.command()
@click.argument('player_id')
@click.argument('name')
@click.option('--status', default=PLAYER_ACTIVE, help='Ativo, Lesionado, ...')
def add_player(player_id, name, status):
    """Registers a player with zeroed counters."""
    session = get_session()
    try:
        session.add(Player(id=player_id, name=name, status=status))
        session.commit()
        click.echo(f"✅ Player {name} added.")
    finally:
        session.close()


@cli.command()
@click.argument('name')
@click.option('--role', default='USER', type=click.Choice(['USER', 'ADMIN']))
def add_account(name, role):
    """Creates a betting account with the starting balance."""
    session = get_session()
    try:
        account = Account(name=name, role=role, balance=settings.STARTING_BALANCE)
        session.add(account)
        session.commit()
        click.echo(f"✅ Account {account.id} created with balance {account.balance:.2f}.")
    finally:
        session.close()


@cli.command()
def standings():
    """Prints the league table ranked by rating."""
    session = get_session()
    try:
        table = league_table(session.query(Player).all())
        if table.empty:
            click.echo("No players registered.")
            return
        click.echo(table.to_string(index=False))
    finally:
        session.close()


@cli.command()
def refresh_ratings():
    """Recomputes and stores every player's rating."""
    session = get_session()
    try:
        report = RatingUpdater(session).refresh()
        click.echo(f"✅ {len(report.updated)} ratings refreshed, {len(report.failed)} failed.")
    finally:
        session.close()


@cli.command()
@click.argument('player_id')
def player(player_id):
    """Profile of a player: rating, radar skills and market odds."""
    session = get_session()
    try:
        p = session.get(Player, player_id)
        if p is None:
            raise click.ClickException(f"Player {player_id} not found.")
        click.echo(f"{p.name} | Nota {calculate_rating(p):.1f} | {p.games} games | {p.status}")
        for skill, value in radar_skills(p).items():
            click.echo(f"  {skill:<12} {value}")
        for stat, by_line in player_market_odds(p).items():
            for line, odds in by_line.items():
                over = f"{odds['MAIS']:.2f}" if odds['MAIS'] else "🔒"
                under = f"{odds['MENOS']:.2f}" if odds['MENOS'] else "🔒"
                click.echo(f"  {stat:<9} {line:>4}  over {over:>7}  under {under:>7}")
    finally:
        session.close()


def _store_match(session, team_a, team_b, ids_a, ids_b, scheduled):
    match = Match(
        team_a_name=team_a,
        team_b_name=team_b,
        scheduled_at=scheduled or datetime.now(),
        status=MATCH_SCHEDULED,
        team_a_players=list(ids_a),
        team_b_players=list(ids_b),
    )
    session.add(match)
    session.commit()
    logger.info(f"Match {match.id} scheduled: {team_a} x {team_b}")
    click.echo(f"✅ Match {match.id} created.")
    return match


@cli.command()
@click.option('--size', default=5, show_default=True, help='Players per team')
@click.option('--role', 'roles', multiple=True, default=['Goleiro=1'], show_default=True,
              help='Required role count, e.g. --role Zagueiro=2')
@click.option('--legacy', is_flag=True, help='Quick single-pass split (2 GK, 4 ST, 4 DM)')
@click.option('--create-match', is_flag=True, help='Store the lineup as a scheduled match')
@click.option('--team-a', default='Time A')
@click.option('--team-b', default='Time B')
@click.option('--date', 'scheduled', type=click.DateTime(), default=None)
def lineup(size, roles, legacy, create_match, team_a, team_b, scheduled):
    """Finds the most balanced pair of teams."""
    required = _parse_roles(roles)
    session = get_session()
    try:
        players = session.query(Player).order_by(Player.name).all()
        if legacy:
            split = legacy_lineup(players)
            for name, team in ((team_a, split.team_a), (team_b, split.team_b)):
                click.echo(f"\n{name}: {', '.join(p.name for p in team) or '-'}")
            click.echo(f"\nReservas: {', '.join(p.name for p in split.bench) or '-'}")
            if create_match:
                _store_match(session, team_a, team_b, [p.id for p in split.team_a],
                             [p.id for p in split.team_b], scheduled)
            return

        outcome = optimize_lineup(players, size, required)
        if not outcome.ok:
            for message in outcome.detail:
                click.echo(f"❌ {message}")
            return

        result = outcome.value
        for team in (result.team_a, result.team_b):
            click.echo(f"\n{team.name} ({team.formation}) | nota {team.rating_total:.1f} "
                       f"| ataque {team.attack_total:.2f} | defesa {team.defense_total:.2f}")
            for p in team.players:
                click.echo(f"  {p.role:<9} {p.player.name} ({p.rating:.1f})")
        click.echo(f"\nReservas: {', '.join(p.name for p in result.bench) or '-'}")
        click.echo(f"Imbalance cost: {result.imbalance_cost:.3f}")

        if create_match:
            _store_match(session, team_a, team_b, [p.player.id for p in result.team_a.players],
                         [p.player.id for p in result.team_b.players], scheduled)
    finally:
        session.close()


@cli.command()
@click.argument('team_a')
@click.argument('team_b')
@click.option('--a', 'ids_a', multiple=True, required=True, help='Player id for the first team (repeatable)')
@click.option('--b', 'ids_b', multiple=True, required=True, help='Player id for the second team (repeatable)')
@click.option('--date', 'scheduled', type=click.DateTime(), default=None)
def create_match(team_a, team_b, ids_a, ids_b, scheduled):
    """Schedules a match from hand-picked rosters."""
    if set(ids_a) & set(ids_b):
        raise click.BadParameter("A player cannot be on both teams.")
    if len(ids_a) != len(ids_b):
        raise click.BadParameter("Both teams must have the same number of players.")
    errors = validate_lineup_inputs(len(ids_a) + len(ids_b), len(ids_a), {'Goleiro': 1})
    if errors:
        raise click.ClickException(" ".join(errors))

    session = get_session()
    try:
        known = {pid for (pid,) in session.query(Player.id).filter(Player.id.in_(ids_a + ids_b))}
        missing = [pid for pid in ids_a + ids_b if pid not in known]
        if missing:
            raise click.ClickException(f"Unknown players: {', '.join(missing)}")
        _store_match(session, team_a, team_b, ids_a, ids_b, scheduled)
    finally:
        session.close()


@cli.command()
@click.argument('match_id', type=int)
def odds(match_id):
    """Odds board for a scheduled match."""
    session = get_session()
    try:
        match = session.get(Match, match_id)
        if match is None:
            raise click.ClickException(f"Match {match_id} not found.")
        ids = list(match.team_a_players or []) + list(match.team_b_players or [])
        players = {p.id: p for p in session.query(Player).filter(Player.id.in_(ids)).all()}
        board = build_odds_board(match, players)

        click.echo(f"\n--- {match.team_a_name} x {match.team_b_name} ---")
        for token, odd in board.result.items():
            click.echo(f"  {describe(token):<16} {odd:.2f}")
        for quote in board.player_markets:
            price = "🔒" if quote.blocked else f"{quote.odd:.2f}"
            click.echo(f"  {quote.player_name:<16} {describe(quote.detail):<20} {price:>7}  [{quote.detail}]")
    finally:
        session.close()


@cli.command()
@click.argument('account_id', type=int)
@click.option('--stake', type=float, required=True)
@click.option('--leg', 'legs', multiple=True, required=True, type=(int, str, float),
              help='MATCH_ID DETAIL ODD, e.g. --leg 3 GOLS_MAIS_0.5_p1 1.85')
def place_bet(account_id, stake, legs):
    """Places a slip; conflicting legs are rejected."""
    selections = []
    for match_id, detail, odd in legs:
        try:
            if detail in RESULT_TOKENS:
                category, target = CATEGORY_MATCH_RESULT, None
            else:
                category, target = CATEGORY_PLAYER_MARKET, parse_player_token(detail).player_id
        except InvalidBetToken as e:
            raise click.BadParameter(str(e))
        new = Selection(match_id=match_id, category=category, detail=detail, odd=odd,
                        target_player_id=target, description=describe(detail))
        conflict = validate_bet_conflicts(new, selections)
        if conflict.has_conflict:
            raise click.ClickException(f"{conflict.kind}: {conflict.message}")
        selections.append(new)

    session = get_session()
    try:
        slip = place_slip(session, account_id, selections, stake)
        click.echo(f"✅ Slip {slip.id} ({slip.slip_type}) @ {slip.total_odd:.2f}, "
                   f"potential return {stake * slip.total_odd:.2f}")
    except BetPlacementError as e:
        raise click.ClickException(str(e))
    finally:
        session.close()


@cli.command()
@click.argument('match_id', type=int)
@click.argument('stats_file', type=click.File('r'))
@click.option('--absent', multiple=True, help='Player id marked absent (repeatable)')
def settle(match_id, stats_file, absent):
    """
    Submits a match result. STATS_FILE is JSON:
    {"player_id": {"goals": 1, "assists": 0, "saves": 0, "tackles": 2, "fouls": 0}, ...}
    """
    stat_lines = {pid: StatLine(**line) for pid, line in json.load(stats_file).items()}
    session = get_session()
    try:
        report = SettlementEngine(session).settle_match(match_id, stat_lines, absent)
        click.echo(f"✅ Match {match_id} final score {report.final_score}.")
        for slip in report.slips:
            click.echo(f"  slip {slip.slip_id}: {slip.status} @ {slip.total_odd:.2f} -> {slip.payout:.2f}")
        if report.failed_writes:
            click.echo(f"⚠️ Failed writes (retry manually): {', '.join(report.failed_writes)}")
    except (MatchNotFoundError, MatchAlreadySettledError) as e:
        raise click.ClickException(str(e))
    finally:
        session.close()


if __name__ == '__main__':
    cli()
