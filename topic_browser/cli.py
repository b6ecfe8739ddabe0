# topic_browser/cli.py
"""Command-line access to the same operations the HTTP API exposes.

    topic-browser topics
    topic-browser describe orders
    topic-browser consume orders 0:45 1:25
    topic-browser reset orders
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from topic_browser.core.config import Settings
from topic_browser.core.exceptions import TopicBrowserError
from topic_browser.core.logging import configure_logging
from topic_browser.domain.models.consumption import parse_offsets
from topic_browser.domain.services.topic_service import TopicService
from topic_browser.infra.kafka.cluster import KafkaClusterClient

logger = logging.getLogger(__name__)


def _parse_offset_args(pairs: List[str]) -> Dict[int, int]:
    try:
        offsets = parse_offsets(",".join(pairs))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None
    if offsets is None:
        raise argparse.ArgumentTypeError("at least one PARTITION:OFFSET is required")
    return offsets


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="topic-browser", description="Browse and manage Kafka topics.")
    ap.add_argument("--bootstrap", default=None, help="Broker list (default: $KAFKA_BROKER_LIST or localhost:9092).")
    ap.add_argument("--log-level", default=None, help="Logging level (default: settings.log_level).")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("topics", help="List topics with their partition count.")
    p.add_argument("--filter", default=None, help="Substring filter.")

    p = sub.add_parser("describe", help="Show watermarks of one topic, or of all topics.")
    p.add_argument("topic", nargs="?", default=None)

    p = sub.add_parser("consume", help="Read a bounded window from PARTITION:OFFSET starts.")
    p.add_argument("topic")
    p.add_argument("offsets", nargs="+", metavar="PARTITION:OFFSET")
    p.add_argument("--group", default=None)
    p.add_argument("--timeout", type=float, default=None)

    p = sub.add_parser("tail", help="Read the newest window of every partition.")
    p.add_argument("topic")
    p.add_argument("--group", default=None)
    p.add_argument("--timeout", type=float, default=None)

    p = sub.add_parser("produce", help="Send one message.")
    p.add_argument("topic")
    p.add_argument("partition", type=int)
    p.add_argument("message")

    p = sub.add_parser("delete", help="Delete a topic.")
    p.add_argument("topic")

    p = sub.add_parser("reset", help="Delete and recreate a topic with the same partition count.")
    p.add_argument("topic")
    return ap


def _dump(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    return json.dumps(value, indent=2)


def run_command(svc: TopicService, args: argparse.Namespace) -> Any:
    if args.command == "topics":
        return svc.list_topics(args.filter)
    if args.command == "describe":
        return svc.resolve_topics(args.topic)
    if args.command == "consume":
        return svc.consume(args.topic, _parse_offset_args(args.offsets), group_id=args.group, timeout=args.timeout)
    if args.command == "tail":
        return svc.tail(args.topic, group_id=args.group, timeout=args.timeout)
    if args.command == "produce":
        return svc.produce_message(args.topic, args.partition, args.message)
    if args.command == "delete":
        svc.delete_topic(args.topic)
        return {"deleted": args.topic}
    if args.command == "reset":
        return svc.reset_topic(args.topic)
    raise ValueError(f"unknown command {args.command!r}")


def main(argv: Optional[List[str]] = None, service: Optional[TopicService] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    overrides = {"kafka_bootstrap": args.bootstrap} if args.bootstrap else {}
    settings = Settings(**overrides)
    configure_logging((args.log_level or settings.log_level).upper())

    client = None
    if service is None:
        client = KafkaClusterClient(settings)
        service = TopicService(client, settings)
    try:
        result = run_command(service, args)
    except argparse.ArgumentTypeError as exc:
        ap.error(str(exc))
    except TopicBrowserError as exc:
        print(f"error: {exc.title}: {exc.detail}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if client is not None:
            client.close()
    print(_dump(result))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
