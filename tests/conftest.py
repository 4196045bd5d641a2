import pytest

from peertrust.provision import generate_self_signed, make_selfsigned_certs, write_identity


@pytest.fixture(scope="session")
def client_identity():
    """(cert PEM, key PEM) for CN=my_secure_client."""
    return generate_self_signed("my_secure_client")


@pytest.fixture(scope="session")
def impostor_identity():
    """Same CN as ``client_identity`` but a different key."""
    return generate_self_signed("my_secure_client")


@pytest.fixture
def certs_dir(tmp_path):
    return make_selfsigned_certs(str(tmp_path / "certs"))


@pytest.fixture
def write_cert(tmp_path):
    def _write(basename, identity):
        return write_identity(str(tmp_path), basename, *identity)
    return _write
