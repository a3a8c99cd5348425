"""Random credential generation for pteroprovision."""

import secrets
import string

from pteroprovision.constants import SECRET_MAX_LENGTH, SECRET_MIN_LENGTH
from pteroprovision.errors import RequestValidationError
from pteroprovision.models import GeneratedSecrets


class CredentialService:
    """Produces alphanumeric secrets that never need shell escaping."""

    ALPHABET = string.ascii_letters + string.digits

    def __init__(self, length: int):
        if not SECRET_MIN_LENGTH <= length <= SECRET_MAX_LENGTH:
            raise RequestValidationError(
                f"Secret length must be between {SECRET_MIN_LENGTH} and {SECRET_MAX_LENGTH}, got {length}."
            )
        self.length = length

    def generate_secret(self) -> str:
        return "".join(secrets.choice(self.ALPHABET) for _ in range(self.length))

    def generate(self, include_root: bool = False) -> GeneratedSecrets:
        return GeneratedSecrets(
            db_password=self.generate_secret(),
            db_root_password=self.generate_secret() if include_root else None,
        )
