import string

import pytest

from pteroprovision.errors import RequestValidationError
from pteroprovision.services.credentials import CredentialService


def test_generated_secret_uses_alphanumeric_alphabet():
    service = CredentialService(length=20)

    secret = service.generate_secret()

    assert len(secret) == 20
    assert set(secret) <= set(string.ascii_letters + string.digits)


def test_generate_only_includes_root_password_when_requested():
    service = CredentialService(length=16)

    assert service.generate().db_root_password is None

    secrets = service.generate(include_root=True)
    assert len(secrets.db_root_password) == 16
    assert secrets.db_root_password != secrets.db_password


def test_generated_secrets_are_not_shown_in_repr():
    secrets = CredentialService(length=24).generate(include_root=True)

    assert secrets.db_password not in repr(secrets)


@pytest.mark.parametrize("length", [15, 25, 0])
def test_secret_length_outside_supported_range_is_rejected(length):
    with pytest.raises(RequestValidationError, match="between 16 and 24"):
        CredentialService(length=length)
