# scanner/scanner_client.py
"""Headless scanning device.

Finds the tracker server on the LAN (or takes --server), joins and connects a
scanning session, then treats every line on stdin as a scanned barcode.
"""
import argparse
import json
import logging
import socket
import sys

import requests

DISCOVERY_PORT = 37020
SERVICE_NAME = "package-tracker"

logger = logging.getLogger("tracker.scanner")


class ScannerError(Exception):
    def __init__(self, status_code, detail):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")


def discover_server(timeout=10.0, port=DISCOVERY_PORT):
    """Wait for a server announcement and return its base url, or None."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    s.settimeout(timeout)
    try:
        s.bind(("", port))
        while True:
            data, addr = s.recvfrom(1024)
            try:
                info = json.loads(data.decode("utf-8"))
            except ValueError:
                continue
            if info.get("service") == SERVICE_NAME:
                return f"http://{info.get('host')}:{info.get('port')}"
    except socket.timeout:
        return None
    finally:
        s.close()


class ScannerClient:
    def __init__(self, base_url, device_name, http=None, timeout=5):
        self.base_url = base_url.rstrip("/")
        self.device_name = device_name
        self.http = http or requests.Session()
        self.timeout = timeout
        self.session_key = None

    def _call(self, method, path, payload=None):
        url = f"{self.base_url}{path}"
        if method == "GET":
            r = self.http.get(url, timeout=self.timeout)
        else:
            r = self.http.post(url, json=payload, timeout=self.timeout)
        if r.status_code >= 400:
            try:
                detail = r.json().get("detail")
            except ValueError:
                detail = r.text
            raise ScannerError(r.status_code, detail)
        return r.json()

    def join(self, session_key):
        data = self._call("POST", "/api/session/join",
                          {"sessionKey": session_key, "deviceName": self.device_name})
        self.session_key = session_key
        return data["session"]

    def connect(self):
        data = self._call("POST", "/api/session/connect",
                          {"sessionKey": self.session_key, "deviceName": self.device_name})
        return data["session"]

    def scan(self, barcode, action, location, employee, notes=None):
        payload = {"sessionKey": self.session_key, "barcode": barcode, "action": action,
                   "location": location, "employee": employee}
        if notes:
            payload["notes"] = notes
        return self._call("POST", "/api/package/scan", payload)["package"]

    def lookup(self, barcode):
        return self._call("GET", f"/api/package/{barcode}")

    def end(self):
        data = self._call("POST", "/api/session/end", {"sessionKey": self.session_key})
        self.session_key = None
        return data


def main(argv=None):
    parser = argparse.ArgumentParser(description="Package scanner client")
    parser.add_argument("session_key")
    parser.add_argument("--server", help="base url, discovered on the LAN when omitted")
    parser.add_argument("--device", default=socket.gethostname())
    parser.add_argument("--action", default="arrived_at_warehouse")
    parser.add_argument("--location", required=True)
    parser.add_argument("--employee", required=True)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    server = args.server or discover_server()
    if not server:
        logger.error("Server not found. Pass --server.")
        return 1
    logger.info("Found server: %s", server)

    client = ScannerClient(server, args.device)
    try:
        client.join(args.session_key)
        client.connect()
    except (ScannerError, requests.RequestException) as e:
        logger.error("Could not pair with session %s: %s", args.session_key, e)
        return 1

    for line in sys.stdin:
        barcode = line.strip()
        if not barcode:
            continue
        try:
            pkg = client.scan(barcode, args.action, args.location, args.employee)
            logger.info("%s -> %s (#%d)", barcode, pkg["currentPublicStatus"],
                        pkg["checkpoints"][-1]["order"])
        except (ScannerError, requests.RequestException) as e:
            logger.error("%s: %s", barcode, e)
    return 0


if __name__ == "__main__":
    sys.exit(main())
