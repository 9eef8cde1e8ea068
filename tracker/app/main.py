# tracker/app/main.py
import argparse

import uvicorn

from .broadcaster import get_local_ip, start_broadcast
from .logging_utils import configure_logging, get_logger
from .settings import get_settings

logger = get_logger(__name__)


def parse_args(argv=None):
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Package tracker server")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--no-broadcast", action="store_true", help="disable LAN discovery")
    return parser.parse_args(argv)


def main(argv=None):
    settings = get_settings()
    args = parse_args(argv)
    configure_logging(settings.log_level)

    stop = None
    if settings.broadcast and not args.no_broadcast:
        stop = start_broadcast(host=get_local_ip(), port=args.port,
                               broadcast_port=settings.broadcast_port)
    try:
        uvicorn.run("tracker.app.api:app", host=args.host, port=args.port, log_level=settings.log_level)
    finally:
        if stop is not None:
            stop.set()


if __name__ == "__main__":
    main()
