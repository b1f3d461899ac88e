"""
CLI entry point for tiercache.

Usage:
    python main.py                                   # prompt for tier parameters
    python main.py --capacities 2 5 --read-times 10 50 --write-times 5 25
    python main.py --config config/config.yaml

Then type commands at the ``Input:`` prompt::

    WRITE "key" "value"
    READ "key"
    STAT
    exit
"""

import argparse
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from tiercache.commands import parse_command
from tiercache.config import Settings, get_settings
from tiercache.exceptions import ConfigurationError
from tiercache.library import CacheLibrary
from tiercache.log import configure_logging

ReadLine = Callable[[str], str]


def collect_tier_params(read_line: ReadLine = input) -> Tuple[List[int], List[int], List[int]]:
    """Prompt for the number of levels, then capacities, read and write times.

    Raises:
        ValueError: If any answer is not an integer.
    """
    levels = int(read_line("Enter the number of cache levels: ").strip())
    capacities = [
        int(read_line(f"Enter the capacity for cache level {i + 1}: ").strip())
        for i in range(levels)
    ]
    read_times = [
        int(read_line(f"Enter the read time for cache level {i + 1} (in ms): ").strip())
        for i in range(levels)
    ]
    write_times = [
        int(read_line(f"Enter the write time for cache level {i + 1} (in ms): ").strip())
        for i in range(levels)
    ]
    return capacities, read_times, write_times


def run_session(library: CacheLibrary, read_line: ReadLine = input) -> None:
    """Dispatch commands until ``exit`` or end of input."""
    while True:
        try:
            line = read_line("Input: ")
        except EOFError:
            break

        command = parse_command(line)
        if command.kind == "exit":
            break
        if command.kind == "write":
            library.put(command.key, command.value)
        elif command.kind == "read":
            library.get(command.key)
        elif command.kind == "stat":
            library.display_stats()
        else:
            print(command.error)


def build_library(
    args: argparse.Namespace, settings: Settings, read_line: ReadLine = input
) -> CacheLibrary:
    """Create the library from flags, a config file or interactive prompts."""
    if args.capacities is not None:
        if args.read_times is None or args.write_times is None:
            raise ConfigurationError("--read-times and --write-times are required with --capacities")
        return CacheLibrary(args.capacities, args.read_times, args.write_times)

    if args.config is not None:
        return CacheLibrary.from_settings(settings)

    capacities, read_times, write_times = collect_tier_params(read_line)
    return CacheLibrary(capacities, read_times, write_times)


def main(argv: Optional[List[str]] = None, read_line: ReadLine = input) -> int:
    parser = argparse.ArgumentParser(
        description="tiercache - simulated multi-tier LRU cache"
    )
    parser.add_argument("--capacities", type=int, nargs="+", help="Capacity per tier, fastest first")
    parser.add_argument("--read-times", type=int, nargs="+", help="Read latency (ms) per tier")
    parser.add_argument("--write-times", type=int, nargs="+", help="Write latency (ms) per tier")
    parser.add_argument("--config", type=Path, default=None, help="YAML file with a hierarchy section")

    args = parser.parse_args(argv)

    if args.config is not None:
        settings = get_settings(yaml_path=args.config, _force_reload=True)
    else:
        settings = get_settings()

    try:
        configure_logging(settings.logging)
    except ConfigurationError as exc:
        print(f"Invalid logging configuration: {exc}", file=sys.stderr)
        return 1

    try:
        library = build_library(args, settings, read_line)
    except ConfigurationError as exc:
        print(f"Invalid cache configuration: {exc}", file=sys.stderr)
        return 1
    except ValueError:
        print("Invalid input. Please enter numeric values.", file=sys.stderr)
        return 1
    except EOFError:
        print("Input ended before the cache was configured.", file=sys.stderr)
        return 1

    try:
        run_session(library, read_line)
    finally:
        library.shutdown(wait=settings.hierarchy.shutdown_wait)
    return 0


if __name__ == "__main__":
    sys.exit(main())
