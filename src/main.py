# Entry point for printing a generated bracket from a seed file

import argparse
import sys

import yaml
from brackets.errors import BracketError
from brackets.formats import generate_bracket, validate_tournament_config
from brackets.models import GRAND, LOSERS, WINNERS


def load_seeds(file_path):
    """Seeds file is either a YAML list or a mapping with a 'seeds' list."""
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if isinstance(data, dict):
        data = data.get('seeds')
    return data or []


def describe_slot(slot):
    if slot.seed is not None:
        return slot.seed
    if slot.kind == 'bye':
        return 'BYE'
    source = slot.source
    return f"{source.role.capitalize()} {source.match.match_id}"


def print_bracket(bracket, out=None):
    out = out or sys.stdout
    titles = {WINNERS: 'Winners Bracket', LOSERS: 'Losers Bracket', GRAND: 'Grand Final'}
    if bracket.kind == 'single':
        titles[WINNERS] = 'Bracket'
    for side in (WINNERS, LOSERS, GRAND):
        rounds = bracket.rounds[side]
        if not rounds:
            continue
        print(f"\n--- {titles[side]} ---", file=out)
        for rnd in rounds:
            print(f"\n{rnd.name}", file=out)
            for match in rnd.matches:
                line = f"  {match.id}: {describe_slot(match.slot1)} vs {describe_slot(match.slot2)}"
                if match.winner_id:
                    line += f"  -> {match.winner_id}"
                print(line, file=out)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Print the bracket generated for a list of seeds')
    parser.add_argument('seeds_file', help='YAML file with the ordered participant ids')
    parser.add_argument('--format', default='single', help='single or double (default: single)')
    parser.add_argument('--tournament-id', default='preview', help='Tournament id for the bracket')
    args = parser.parse_args(argv)

    seeds = load_seeds(args.seeds_file)
    try:
        validate_tournament_config(args.format, seeds)
        bracket = generate_bracket(args.tournament_id, seeds, args.format)
    except BracketError as e:
        print(f"Error: {e.reason}", file=sys.stderr)
        return 1

    print_bracket(bracket)
    return 0


if __name__ == '__main__':
    sys.exit(main())
