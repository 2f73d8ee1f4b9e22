#!/usr/bin/env python3
"""
Sorter CLI - Run pairwise sorts from the terminal.

Usage:
  python sorter_cli.py start
  python sorter_cli.py start --set category=cat1,cat2 --set spoilers=1
  python sorter_cli.py load
  python sorter_cli.py open "http://localhost/sorter?N4Ig..."
  python sorter_cli.py catalogs
  python sorter_cli.py clear

Keys while sorting:
  h / 1   pick left          l / 2   pick right
  k / t   tie                j / u   undo
  s       save progress      q       quit
"""

import argparse
import logging
import sys
from typing import Callable, Dict, List, Optional

from catalog import CatalogVersion
from config_manager import ConfigManager
from filter_engine import FilterSelection
from run_state import Outcome
from sort_session import SortSession

logger = logging.getLogger(__name__)

PICK_KEYS = {
    'h': Outcome.LEFT, '1': Outcome.LEFT,
    'l': Outcome.RIGHT, '2': Outcome.RIGHT,
    'k': Outcome.TIE, 't': Outcome.TIE,
}
UNDO_KEYS = ('j', 'u')
SAVE_KEYS = ('s',)
QUIT_KEYS = ('q',)


def parse_overrides(catalog: CatalogVersion, overrides: List[str]) -> FilterSelection:
    """
    Apply --set KEY=VALUE overrides on top of the default selection.

    Ungrouped criteria take 0/1. Grouped criteria take 0 to switch the
    group off, 1 to select every subkey, or a comma-separated subkey list.
    """
    values = FilterSelection.defaults(catalog).as_dict()
    criteria = {c.key: c for c in catalog.filter_definitions}

    for override in overrides:
        key, sep, value = override.partition('=')
        if not sep or key not in criteria:
            raise ValueError(f"Unknown filter override: {override}")
        criterion = criteria[key]

        if value in ('0', '1'):
            if criterion.is_grouped and value == '1':
                values[key] = tuple(True for _ in criterion.subcriteria)
            else:
                values[key] = value == '1'
        elif criterion.is_grouped:
            wanted = {v.strip() for v in value.split(',') if v.strip()}
            unknown = wanted - {s.key for s in criterion.subcriteria}
            if unknown:
                raise ValueError(f"Unknown subkeys for {key}: {', '.join(sorted(unknown))}")
            values[key] = tuple(s.key in wanted for s in criterion.subcriteria)
        else:
            raise ValueError(f"{key} takes 0 or 1, got {value!r}")

    return FilterSelection(values)


class SorterCLI:
    """Command-line front end for a SortSession."""

    def __init__(self, config: ConfigManager):
        self.config = config
        self.session = SortSession.from_config(config, progress=self.show_progress, notify=self.show_notice)

    def show_progress(self, label: str, percent: int):
        print(f"[{percent:3d}%] {label}")

    def show_notice(self, message: str):
        print(f"\n!! {message}\n")

    def list_catalogs(self) -> int:
        registry = self.session.registry
        latest = registry.latest().version_id
        for version in registry:
            marker = ' (latest)' if version.version_id == latest else ''
            print(f"{version.version_id}{marker}: {len(version.items)} items, "
                  f"{len(version.filter_definitions)} filters")
            for criterion in version.filter_definitions:
                subs = ', '.join(s.key for s in criterion.subcriteria)
                default = 'on' if criterion.default_checked else 'off'
                print(f"    {criterion.key} [{default}]{': ' + subs if subs else ''} - {criterion.name}")
        return 0

    def show_pair(self):
        pair = self.session.current_items
        if pair is None:
            return
        left, right = pair
        print(f"\n  (h) {left.name:<30s} vs  (l) {right.name}")

    def run_loop(self) -> int:
        """Interactive loop until the run finishes or the user quits."""
        session = self.session

        while not session.is_finished:
            self.show_pair()
            try:
                key = input("choice> ").strip().lower()
            except EOFError:
                key = 'q'

            if key in PICK_KEYS:
                session.pick(PICK_KEYS[key])
            elif key in UNDO_KEYS:
                if not session.undo():
                    print("Nothing to undo.")
            elif key in SAVE_KEYS:
                url = session.save('Progress')
                print(f"You may load this progress later, or use this URL:\n{url}")
            elif key in QUIT_KEYS:
                session.save('Progress')
                print("Progress saved.")
                return 0
            else:
                print("Keys: h/1 left, l/2 right, k/t tie, j/u undo, s save, q quit")

        self.show_results()
        return 0

    def show_results(self):
        session = self.session
        print("\n" + "=" * 60)
        print(session.export_text())
        print("=" * 60)
        print(session.completion_summary())

        url = session.save('Last Result')
        print(f"\nShare this result: {url}")
        print(f"JSON: {session.export_json()}")
        print(f"CSV:  {session.export_csv()}")

    def start(self, overrides: List[str]) -> int:
        try:
            selection = parse_overrides(self.session.catalog, overrides)
        except ValueError as e:
            print(f"Error: {e}")
            return 2

        if not self.session.start(selection):
            return 1
        return self.run_loop()

    def load(self, save_string: Optional[str] = None) -> int:
        if not self.session.load(save_string):
            print("Could not load saved progress.")
            return 1
        return self.run_loop()

    def clear(self) -> int:
        self.session.clear_saved()
        print("Saved progress cleared.")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Rank items by picking between pairs',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--config', default='sorter_config.json', help='Configuration file')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    start_parser = subparsers.add_parser('start', help='Start a new sort')
    start_parser.add_argument('--set', dest='overrides', action='append', default=[],
                              metavar='KEY=VALUE', help='Override a filter selection')

    subparsers.add_parser('load', help='Resume the saved sort')

    open_parser = subparsers.add_parser('open', help='Open a save string or share URL')
    open_parser.add_argument('save', help='Save string or URL')

    subparsers.add_parser('catalogs', help='List catalog versions and filters')
    subparsers.add_parser('clear', help='Clear saved progress')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = ConfigManager(args.config)
    logging.basicConfig(
        level=getattr(logging, config.get('log_level').upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        cli = SorterCLI(config)
    except ValueError as e:
        logger.error(f"Could not load catalogs: {e}")
        return 1

    commands: Dict[str, Callable[[], int]] = {
        'start': lambda: cli.start(args.overrides),
        'load': lambda: cli.load(),
        'open': lambda: cli.load(args.save),
        'catalogs': cli.list_catalogs,
        'clear': cli.clear,
    }
    return commands[args.command]()


if __name__ == '__main__':
    sys.exit(main())
