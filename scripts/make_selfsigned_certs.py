#!/usr/bin/env python3
"""Generate self-signed server/client certificates and knownClients.txt."""
import argparse

from peertrust.provision import make_selfsigned_certs

parser = argparse.ArgumentParser(description=__doc__)
parser.add_argument("--outdir", default="certs", help="Output directory (recreated).")
parser.add_argument("--server-cn", default="localhost")
parser.add_argument("--client-cn", default="my_secure_client")
args = parser.parse_args()

print("Cleaning up previous certificates...")
paths = make_selfsigned_certs(args.outdir, server_cn=args.server_cn, client_cn=args.client_cn)

print(f"[+] Self-signed certificates and knownClients.txt are in '{args.outdir}'")
print("Known Client Entry:")
with open(paths["known_clients"], encoding="utf-8") as f:
    print(f.read(), end="")
