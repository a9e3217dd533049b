"""KMS encryption of pass-through environment variables."""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from typing import Any

from botocore.exceptions import ClientError

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class KmsEncryptor:
    """
    Encrypts values with a KMS key so they can be stored as environment variables.

    Ciphertext is base64-encoded; the function decrypts it at runtime with
    ``kms.decrypt``.
    """

    def __init__(self, kms_client: Any, key_arn: str) -> None:
        self._kms = kms_client
        self.key_arn = key_arn

    def encrypt(self, value: str) -> str:
        try:
            response = self._kms.encrypt(KeyId=self.key_arn, Plaintext=value.encode("utf-8"))
        except ClientError as e:
            raise ConfigurationError(
                f"unable to encrypt with {self.key_arn}: {e}", field="kmsEncryptionKeyArn"
            ) from e
        return base64.b64encode(response["CiphertextBlob"]).decode("ascii")

    def encrypt_all(self, values: Mapping[str, str]) -> dict[str, str]:
        encrypted = {key: self.encrypt(str(value)) for key, value in values.items()}
        if encrypted:
            logger.debug("Encrypted %d pass-through variable(s)", len(encrypted))
        return encrypted
