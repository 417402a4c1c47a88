"""Script to rebuild the synergy map from the attribute catalog."""

import argparse
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from synergy_backend
sys.path.insert(0, str(Path(__file__).parent.parent))

from synergy_backend.config.logger import app_logger
from synergy_backend.services.errors import MissingSourceDataError
from synergy_backend.services.synergy_map import build_synergy_map, map_stats


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Rebuild synergy_state.json and its text export.")
    parser.add_argument("--attributes", type=Path, help="attributes_power_data.json to read")
    parser.add_argument("--exceptions", type=Path, help="synergy_exceptions.json to apply")
    parser.add_argument("--output", type=Path, help="synergy map JSON to write")
    parser.add_argument("--top", type=int, default=10, help="number of largest synergies to print")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        build = build_synergy_map(args.attributes, args.exceptions, args.output)
    except MissingSourceDataError as exc:
        app_logger.error(f"Cannot rebuild synergy map: {exc}")
        print(f"Attribute data unavailable: {exc.path} ({exc.reason})")
        return 1

    diagnostics = build.diagnostics
    stats = map_stats(build.synergy_map, top=args.top)

    print(f"Roots extracted:        {diagnostics.word_count}")
    print(f"Synergies (>1 attr):    {diagnostics.synergy_count}")
    print(f"Attribute mentions:     {stats['total_attribute_mentions']}")
    print(f"Avg attrs per synergy:  {stats['average_attributes_per_word']}")
    print(f"JSON:                   {diagnostics.json_file}")
    print(f"Text:                   {diagnostics.text_file}")
    if diagnostics.exceptions_added or diagnostics.exceptions_removed:
        print(f"Exceptions added:       {diagnostics.exceptions_added}")
        print(f"Exceptions removed:     {diagnostics.exceptions_removed}")

    print(f"\nTop {args.top} synergies:")
    for item in stats["top_words"]:
        print(f"  {item['word']}: {item['count']}")

    if diagnostics.sample:
        print("\nSample:")
        print(diagnostics.sample)
    return 0


if __name__ == "__main__":
    sys.exit(main())
