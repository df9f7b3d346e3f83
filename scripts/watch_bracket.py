#!/usr/bin/env python3
"""
Bracket Watcher

Connects to a running bracket server's stream endpoint and prints a one-line
summary for every bracket snapshot it pushes.

Usage:
    python scripts/watch_bracket.py --tournament <id>
    python scripts/watch_bracket.py --tournament <id> --base-url http://host:5000 --max-events 5

Exit codes:
    0: Success (stream ended or --max-events reached)
    1: Could not connect to the server
    2: Server answered with an HTTP error
"""
import argparse
import json
import sys

import requests


def parse_sse_lines(lines):
    """
    Turn raw SSE lines into (event, data) tuples.

    Comment lines (heartbeats) are skipped; multi-line data is joined with
    newlines as the SSE format prescribes.
    """
    event = None
    data = []
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode('utf-8')
        if line == '':
            if data:
                yield event or 'message', '\n'.join(data)
            event = None
            data = []
            continue
        if line.startswith(':'):
            continue
        field, _, value = line.partition(':')
        if value.startswith(' '):
            value = value[1:]
        if field == 'event':
            event = value
        elif field == 'data':
            data.append(value)
    if data:
        yield event or 'message', '\n'.join(data)


def summarize_snapshot(snapshot):
    """One line describing where a bracket stands."""
    matches = [m for side in snapshot.get('rounds', {}).values() for r in side for m in r.get('matches', [])]
    decided = sum(1 for m in matches if m.get('state') in ('bye', 'reported', 'edited'))
    line = (f"[v{snapshot.get('version')}] {snapshot.get('tournamentId')} "
            f"({snapshot.get('kind')}): {decided}/{len(matches)} matches decided")
    if snapshot.get('champion'):
        line += f", champion {snapshot['champion']}"
    return line


def watch(base_url, tournament_id, max_events=None, timeout=60, out=None):
    """Print snapshot summaries until the stream ends or max_events is reached."""
    out = out or sys.stdout
    url = f"{base_url.rstrip('/')}/api/tournaments/{tournament_id}/bracket/stream"
    seen = 0
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        for event, data in parse_sse_lines(response.iter_lines(decode_unicode=True)):
            if event != 'bracket':
                continue
            print(summarize_snapshot(json.loads(data)), file=out)
            seen += 1
            if max_events is not None and seen >= max_events:
                break
    return seen


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Print live bracket updates from a bracket server'
    )
    parser.add_argument(
        '--tournament',
        required=True,
        help='Tournament id to watch'
    )
    parser.add_argument(
        '--base-url',
        default='http://localhost:5000',
        help='Server base URL (default: http://localhost:5000)'
    )
    parser.add_argument(
        '--max-events',
        type=int,
        help='Stop after this many bracket snapshots'
    )

    args = parser.parse_args(argv)

    try:
        watch(args.base_url, args.tournament, max_events=args.max_events)
    except requests.exceptions.ConnectionError as e:
        print(f"Error: Could not connect to {args.base_url}: {e}", file=sys.stderr)
        return 1
    except requests.exceptions.HTTPError as e:
        print(f"Error: Server returned {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == '__main__':
    sys.exit(main())
