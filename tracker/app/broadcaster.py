# tracker/app/broadcaster.py
# UDP broadcaster so scanner devices on the LAN can find the server
import socket
import json
import threading

from .logging_utils import get_logger

logger = get_logger(__name__)

BROADCAST_PORT = 37020
BROADCAST_INTERVAL = 5.0
SERVICE_NAME = "package-tracker"


def announcement(host: str, port: int, service_name: str = SERVICE_NAME) -> bytes:
    return json.dumps({"service": service_name, "host": host, "port": port}).encode("utf-8")


def get_local_ip() -> str:
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
    except OSError:
        ip = "127.0.0.1"
    finally:
        s.close()
    return ip


def start_broadcast(host="127.0.0.1", port=8000, service_name=SERVICE_NAME,
                    broadcast_port=BROADCAST_PORT, interval=BROADCAST_INTERVAL) -> threading.Event:
    """Announce the server every ``interval`` seconds until the returned event is set."""
    stop = threading.Event()
    payload = announcement(host, port, service_name)

    def run():
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        try:
            while not stop.is_set():
                try:
                    sock.sendto(payload, ("<broadcast>", broadcast_port))
                except OSError as e:
                    logger.debug("broadcast failed: %s", e)
                stop.wait(interval)
        finally:
            sock.close()

    t = threading.Thread(target=run, name="tracker-broadcast", daemon=True)
    t.start()
    logger.info("announcing %s at %s:%s on udp/%s", service_name, host, port, broadcast_port)
    return stop
