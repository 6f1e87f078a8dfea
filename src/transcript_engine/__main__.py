import argparse
import logging
import sys

from transcript_engine.config import TranscriptEngineConfig
from transcript_engine.domain.projection import MessageListItem, Snapshot
from transcript_engine.log_format import ColoredFormatter


def main() -> None:
    parser = argparse.ArgumentParser(description="Speech-to-text transcript engine")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    replay_parser = subparsers.add_parser("replay", help="Replay recorded chunks")
    replay_parser.add_argument("path", help="JSONL file of recorded chunks")
    replay_parser.add_argument("--agent-uid", help="Sender id of the agent")
    replay_parser.add_argument(
        "--granularity", choices=["auto", "block", "word"], help="Pin the granularity mode"
    )
    replay_parser.add_argument(
        "--final-only", action="store_true", help="Print only the last snapshot"
    )

    args = parser.parse_args()

    config = TranscriptEngineConfig()
    _configure_logging(args.verbose, config.log_file)

    if args.command != "replay":
        parser.print_help()
        sys.exit(1)

    if args.agent_uid:
        config.agent_uid = args.agent_uid
    if args.granularity:
        config.granularity = args.granularity

    try:
        _replay(config, args.path, args.final_only)
    except FileNotFoundError:
        print(f"No such file: {args.path}", file=sys.stderr)
        sys.exit(1)


def _configure_logging(verbose: bool, log_file: str) -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        )
        root.addHandler(file_handler)


def _replay(config: TranscriptEngineConfig, path: str, final_only: bool) -> None:
    from transcript_engine.adapters.jsonl_source import JsonlChunkSource
    from transcript_engine.factory import create_engine

    engine = create_engine(config)
    source = JsonlChunkSource(path)
    emitted = 0

    def on_snapshot(snapshot: Snapshot) -> None:
        nonlocal emitted
        emitted += 1
        if not final_only:
            print(f"--- snapshot {emitted}")
            print(format_snapshot(snapshot))

    engine.start(None, on_snapshot)
    try:
        for chunk in source.read():
            engine.feed(chunk)
        if final_only:
            print(format_snapshot(engine.snapshot))
    finally:
        engine.stop()
    logging.info("Replay done: %d snapshot(s)", emitted)


def format_snapshot(snapshot: Snapshot) -> str:
    lines = [_format_item(item) for item in snapshot.finalized_turns]
    if snapshot.current_turn is not None:
        lines.append(_format_item(snapshot.current_turn) + " ...")
    return "\n".join(lines)


def _format_item(item: MessageListItem) -> str:
    return f"[{item.status.name:<11}] {item.role.value:<5} {item.sender_id}#{item.turn_id}: {item.text}"


if __name__ == "__main__":
    main()
