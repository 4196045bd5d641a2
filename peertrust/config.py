"""Load runtime settings from the environment (and a ``.env`` file, if present)."""
import os

from dotenv import load_dotenv

DEFAULTS = {
    "SERVER_ADDR": ":8443",
    "SERVER_CERT": os.path.join("certs", "server.crt"),
    "SERVER_KEY": os.path.join("certs", "server.key"),
    "KNOWN_CLIENTS": os.path.join("certs", "knownClients.txt"),
    "CLIENT_CERT": os.path.join("certs", "client.crt"),
    "CLIENT_KEY": os.path.join("certs", "client.key"),
    "SERVER_URL": "https://localhost:8443/hello",
    "LOG_LEVEL": "INFO",
}


def load_env_vars(env_file=None):
    """Load environment variables from .env and return them with defaults applied.

    Values already present in the process environment win over the file.
    """
    load_dotenv(env_file)

    return {
        "addr": os.getenv("SERVER_ADDR", DEFAULTS["SERVER_ADDR"]),
        "server_cert": os.getenv("SERVER_CERT", DEFAULTS["SERVER_CERT"]),
        "server_key": os.getenv("SERVER_KEY", DEFAULTS["SERVER_KEY"]),
        "known_clients": os.getenv("KNOWN_CLIENTS", DEFAULTS["KNOWN_CLIENTS"]),
        "client_cert": os.getenv("CLIENT_CERT", DEFAULTS["CLIENT_CERT"]),
        "client_key": os.getenv("CLIENT_KEY", DEFAULTS["CLIENT_KEY"]),
        "server_url": os.getenv("SERVER_URL", DEFAULTS["SERVER_URL"]),
        "log_level": os.getenv("LOG_LEVEL", DEFAULTS["LOG_LEVEL"]).upper(),
    }
