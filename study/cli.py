"""
Spaced repetition CLI over a JSONL progress store.

Usage:
    python -m study.cli --db progress.jsonl --user u1 grade <card_id> <quality>
    python -m study.cli --db progress.jsonl --user u1 due [--limit 20]
    python -m study.cli --db progress.jsonl --user u1 queue [--size N] [--catalog catalog.jsonl]
    python -m study.cli --db progress.jsonl --user u1 stats
    python -m study.cli --db progress.jsonl --user u1 show <card_id>
    python -m study.cli --db progress.jsonl --user u1 reset <card_id>
    python -m study.cli --db progress.jsonl --user u1 session-size
"""

import argparse
import logging
import sys

from study.catalog import CardCatalog
from study.due import find_due, overdue_days
from study.engine import (
    get_card_state,
    get_session_size,
    get_stats,
    get_study_queue,
    grade_card,
    reset_card,
)
from study.errors import SchedulingError
from study.models import utcnow
from study.quality import ReviewQuality
from study.storage import JsonlProgressStore


def _print_state(state):
    reviewed = state.last_reviewed_at.isoformat() if state.last_reviewed_at else 'never'
    print(f"  card={state.card_id}  reps={state.repetitions}  "
          f"ease={state.ease_factor:.2f}  interval={state.interval_days}d")
    print(f"  due={state.due_at.isoformat()}  last_reviewed={reviewed}")
    print(f"  reviews={state.total_reviews} (correct={state.correct_count}, "
          f"incorrect={state.incorrect_count})")
    print(f"  streak={state.correct_streak}  difficulty={state.difficulty_adjustment:+.2f}")


def cmd_grade(args):
    """Grade one card."""
    store = JsonlProgressStore(args.db)
    state = grade_card(store, args.user, args.card_id, args.quality)
    grade = ReviewQuality.parse(args.quality)
    print(f"Graded {args.card_id} as {grade.name} ({int(grade)}).")
    print(f"Next review in {state.interval_days} day(s).")
    _print_state(state)


def cmd_due(args):
    """Show due cards."""
    store = JsonlProgressStore(args.db)
    now = utcnow()
    due = find_due(store, args.user, now, args.limit)
    if not due:
        print("No cards due. Come back later!")
        return
    print(f"\n{len(due)} card(s) due for review:\n")
    for i, state in enumerate(due, 1):
        print(f"  {i}. {state.card_id}  overdue={overdue_days(state, now):.1f}d  "
              f"ease={state.ease_factor:.2f}  reps={state.repetitions}")


def cmd_queue(args):
    """Build the next study queue."""
    store = JsonlProgressStore(args.db)
    catalog = CardCatalog.load(args.catalog) if args.catalog else CardCatalog()
    queue = get_study_queue(store, catalog, args.user, desired_size=args.size)
    if not queue:
        print("Nothing to study right now.")
        return
    print(f"\nStudy queue ({len(queue)} card(s)):")
    for i, card_id in enumerate(queue, 1):
        print(f"  {i}. {card_id}")


def cmd_stats(args):
    """Show progress statistics."""
    store = JsonlProgressStore(args.db)
    stats = get_stats(store, args.user)
    print(f"\nProgress for {args.user} ({args.db})")
    for key in ('new', 'learning', 'reviewing', 'mastered', 'total', 'due'):
        print(f"  {key:<10} {stats[key]}")


def cmd_show(args):
    """Show one card's memory state."""
    store = JsonlProgressStore(args.db)
    _print_state(get_card_state(store, args.user, args.card_id))


def cmd_reset(args):
    """Reset a card to creation defaults."""
    store = JsonlProgressStore(args.db)
    state = reset_card(store, args.user, args.card_id)
    print(f"Reset {args.card_id}; due now.")
    _print_state(state)


def cmd_session_size(args):
    """Show the recommended session size."""
    store = JsonlProgressStore(args.db)
    info = get_session_size(store, args.user)
    print(f"Recommended session size: {info['session_size']} "
          f"(recent accuracy {info['accuracy'] * 100:.0f}% over "
          f"{info['sessions_considered']} session(s))")


COMMANDS = {
    'grade': cmd_grade,
    'due': cmd_due,
    'queue': cmd_queue,
    'stats': cmd_stats,
    'show': cmd_show,
    'reset': cmd_reset,
    'session-size': cmd_session_size,
}


def main(argv=None):
    parser = argparse.ArgumentParser(description='Spaced repetition progress CLI')
    parser.add_argument('--db', default='progress.jsonl',
                        help='Path to progress JSONL (default: progress.jsonl)')
    parser.add_argument('--user', required=True, help='User id')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command')

    grade_parser = subparsers.add_parser('grade', help='Grade a card')
    grade_parser.add_argument('card_id', help='Card ID')
    grade_parser.add_argument('quality', help='0-5 or a grade name such as CORRECT_EASY')

    due_parser = subparsers.add_parser('due', help='Show due cards')
    due_parser.add_argument('--limit', type=int, default=20, help='Max cards (default: 20)')

    queue_parser = subparsers.add_parser('queue', help='Build a study queue')
    queue_parser.add_argument('--size', type=int, default=None,
                              help='Session size (default: recommended size)')
    queue_parser.add_argument('--catalog', default=None,
                              help='Catalog JSON/JSONL used to pick new cards')

    subparsers.add_parser('stats', help='Show progress statistics')

    show_parser = subparsers.add_parser('show', help='Show card progress')
    show_parser.add_argument('card_id', help='Card ID to display')

    reset_parser = subparsers.add_parser('reset', help='Reset card progress')
    reset_parser.add_argument('card_id', help='Card ID to reset')

    subparsers.add_parser('session-size', help='Show recommended session size')

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        handler(args)
    except SchedulingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
