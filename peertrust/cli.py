"""Command-line entry point: run the server, run the client, print fingerprints."""
from __future__ import annotations

import argparse
import logging
import sys
import time

import requests
from cryptography import x509

from .client import create_client
from .config import load_env_vars
from .errors import ConfigLoadError
from .server import start_server, stop_server
from .utils import common_name, fingerprint_pem, load_cert_pem


def run_server(args) -> int:
    server = start_server(args.addr, args.cert, args.key, args.known_clients)
    print(f"[server] Listening on {args.addr}")
    print("[server] Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n[server] KeyboardInterrupt, exiting.")
    finally:
        stop_server(server)
    return 0


def run_client(args) -> int:
    client = create_client(args.url, args.server_cert, args.cert, args.key)
    try:
        body, status = client.send_request()
    except requests.exceptions.RequestException as exc:
        print(f"[client] ERROR: request failed: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()

    print(f"[client] Server Response ({status}):")
    print(body, end="")
    return 0 if status == 200 else 1


def run_fingerprint(args) -> int:
    for path in args.certs:
        pem = load_cert_pem(path)
        cert = x509.load_pem_x509_certificate(pem)
        print(f"{common_name(cert)} {fingerprint_pem(pem)}")
    return 0


def build_parser(env=None) -> argparse.ArgumentParser:
    env = env or load_env_vars()

    parser = argparse.ArgumentParser(
        prog="peertrust",
        description="mTLS between self-signed peers: known-client verification and server pinning.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    srv = sub.add_parser("server", help="Run the mTLS server with known client verification.")
    srv.add_argument("--cert", default=env["server_cert"], help="Server certificate file.")
    srv.add_argument("--key", default=env["server_key"], help="Server private key file.")
    srv.add_argument(
        "--known-clients", default=env["known_clients"],
        help="File listing authorized client CNs and fingerprints.",
    )
    srv.add_argument("--addr", default=env["addr"], help="Address to listen on.")
    srv.set_defaults(func=run_server)

    cli = sub.add_parser("client", help="Run the mTLS client.")
    cli.add_argument("--cert", default=env["client_cert"], help="Client certificate file.")
    cli.add_argument("--key", default=env["client_key"], help="Client private key file.")
    cli.add_argument(
        "--server-cert", default=env["server_cert"],
        help="Server certificate to pin; the only certificate the client trusts.",
    )
    cli.add_argument("--url", default=env["server_url"], help="Server URL to connect to.")
    cli.set_defaults(func=run_client)

    fp = sub.add_parser("fingerprint", help="Print known-clients lines for certificate files.")
    fp.add_argument("certs", nargs="+", help="Certificate PEM files.")
    fp.set_defaults(func=run_fingerprint)

    return parser


def main(argv=None) -> int:
    env = load_env_vars()
    logging.basicConfig(
        level=getattr(logging, env["log_level"], logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser(env).parse_args(argv)

    try:
        return args.func(args)
    except ConfigLoadError as exc:
        print(f"[-] Configuration error: {exc}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        print(f"[-] Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
