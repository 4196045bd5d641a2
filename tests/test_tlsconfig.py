import ssl

import pytest
from cryptography import x509
from OpenSSL import SSL, crypto

from peertrust.errors import ConfigLoadError, PeerNotAuthorized
from peertrust.store import KnownPeers
from peertrust.tlsconfig import (
    _make_verify_callback,
    build_server_context,
    create_client_context,
    create_server_context,
    load_pinned_certificate,
    peer_identity,
)


class FakeConnection:
    def __init__(self):
        self._app_data = None

    def get_app_data(self):
        return self._app_data

    def set_app_data(self, data):
        self._app_data = data


def to_openssl(cert_pem):
    return crypto.X509.from_cryptography(x509.load_pem_x509_certificate(cert_pem))


def test_server_context_requires_client_cert(certs_dir):
    ctx = create_server_context(certs_dir["known_clients"], certs_dir["server_cert"], certs_dir["server_key"])
    assert isinstance(ctx, SSL.Context)
    assert ctx.get_verify_mode() == SSL.VERIFY_PEER | SSL.VERIFY_FAIL_IF_NO_PEER_CERT
    assert ctx.get_session_cache_mode() == SSL.SESS_CACHE_OFF


def test_server_context_missing_registry(certs_dir, tmp_path):
    with pytest.raises(ConfigLoadError) as excinfo:
        create_server_context(str(tmp_path / "missing.txt"), certs_dir["server_cert"], certs_dir["server_key"])
    assert "missing.txt" in str(excinfo.value)


def test_server_context_mismatched_key(certs_dir):
    with pytest.raises(ConfigLoadError) as excinfo:
        build_server_context(KnownPeers(), certs_dir["server_cert"], certs_dir["client_key"])
    assert excinfo.value.path == certs_dir["client_key"]


def test_server_context_missing_cert(certs_dir, tmp_path):
    with pytest.raises(ConfigLoadError):
        build_server_context(KnownPeers(), str(tmp_path / "server.crt"), certs_dir["server_key"])


def test_verify_callback_records_identity(client_identity):
    seen = []

    def verifier(raw_certs):
        seen.append(raw_certs)
        return "my_secure_client"

    callback = _make_verify_callback(verifier)
    conn = FakeConnection()
    leaf = to_openssl(client_identity[0])

    # Self-signed: OpenSSL reports error 18 at depth 0; the verdict is ours.
    assert callback(conn, leaf, 18, 0, 0) is True
    assert peer_identity(conn) == "my_secure_client"
    assert len(seen) == 1 and len(seen[0]) == 1

    # Further calls for the same leaf do not re-run the verifier.
    assert callback(conn, leaf, 10, 0, 0) is True
    assert len(seen) == 1


def test_verify_callback_rejects_on_verification_error(client_identity):
    def verifier(raw_certs):
        raise PeerNotAuthorized("my_secure_client")

    callback = _make_verify_callback(verifier)
    conn = FakeConnection()
    assert callback(conn, to_openssl(client_identity[0]), 18, 0, 0) is False
    assert peer_identity(conn) is None


def test_verify_callback_ignores_issuer_certificates(client_identity):
    def verifier(raw_certs):
        raise AssertionError("issuer certificates must not be verified")

    callback = _make_verify_callback(verifier)
    assert callback(FakeConnection(), to_openssl(client_identity[0]), 20, 1, 0) is True


def test_client_context_pins_single_certificate(certs_dir):
    ctx = create_client_context(certs_dir["server_cert"], certs_dir["client_cert"], certs_dir["client_key"])
    assert ctx.verify_mode == ssl.CERT_REQUIRED
    assert ctx.check_hostname is True
    assert ctx.minimum_version == ssl.TLSVersion.TLSv1_2

    # The pinned server certificate is the only entry in the trust store.
    assert ctx.cert_store_stats()["x509"] == 1


def test_pinned_file_with_two_certificates_is_rejected(certs_dir, tmp_path):
    bundle = tmp_path / "bundle.pem"
    with open(certs_dir["server_cert"], "rb") as a, open(certs_dir["client_cert"], "rb") as b:
        bundle.write_bytes(a.read() + b.read())
    with pytest.raises(ConfigLoadError) as excinfo:
        load_pinned_certificate(str(bundle))
    assert "exactly one" in str(excinfo.value)


def test_pinned_file_without_certificate_is_rejected(tmp_path):
    empty = tmp_path / "server.crt"
    empty.write_text("not a certificate\n")
    with pytest.raises(ConfigLoadError):
        load_pinned_certificate(str(empty))


def test_client_context_missing_key(certs_dir, tmp_path):
    with pytest.raises(ConfigLoadError):
        create_client_context(certs_dir["server_cert"], certs_dir["client_cert"], str(tmp_path / "client.key"))


def test_client_context_mismatched_key(certs_dir):
    with pytest.raises(ConfigLoadError) as excinfo:
        create_client_context(certs_dir["server_cert"], certs_dir["client_cert"], certs_dir["server_key"])
    assert excinfo.value.path == certs_dir["client_cert"]
