"""
HimKosh treasury wire format.

Requests and responses are pipe-delimited ``key=value`` strings carrying an
MD5 checksum, encrypted with AES-128-CBC (the IV equals the key), PKCS7
padded and base64 encoded. The key is the first 16 bytes of the key file
issued by the treasury.
"""

import base64
import binascii
import hashlib
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from homestay_registry.domain.exceptions import ExternalGatewayError, ValidationError

KEY_SIZE = 16
RESPONSE_CHECKSUM_MARKER = "|checksum="


class HimKoshCrypto:
    """AES-128-CBC cipher keyed from the treasury key file"""

    def __init__(self, key: Optional[bytes] = None, key_file_path: Optional[str] = None):
        self._key = self._normalise_key(key) if key is not None else None
        self.key_file_path = key_file_path

    @staticmethod
    def _normalise_key(raw: bytes) -> bytes:
        # Shorter keys are zero padded, longer ones truncated
        return raw[:KEY_SIZE].ljust(KEY_SIZE, b"\x00")

    @property
    def key(self) -> bytes:
        if self._key is None:
            if not self.key_file_path:
                raise ExternalGatewayError("HimKosh key file is not configured", gateway="himkosh")
            try:
                self._key = self._normalise_key(Path(self.key_file_path).read_bytes())
            except OSError as e:
                raise ExternalGatewayError(
                    f"HimKosh key file not found at {self.key_file_path}", gateway="himkosh"
                ) from e
        return self._key

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self.key), modes.CBC(self.key))

    def encrypt(self, text: str) -> str:
        padder = padding.PKCS7(128).padder()
        padded = padder.update(text.encode("utf-8")) + padder.finalize()
        encryptor = self._cipher().encryptor()
        return base64.b64encode(encryptor.update(padded) + encryptor.finalize()).decode("ascii")

    def decrypt(self, encoded: str) -> str:
        try:
            data = base64.b64decode(encoded, validate=True)
            decryptor = self._cipher().decryptor()
            padded = decryptor.update(data) + decryptor.finalize()
            unpadder = padding.PKCS7(128).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except (binascii.Error, ValueError) as e:
            raise ValidationError("Could not decrypt HimKosh payload", field="encdata") from e

    @staticmethod
    def checksum(data: str) -> str:
        return hashlib.md5(data.encode("ascii", errors="replace")).hexdigest()

    @classmethod
    def verify_checksum(cls, data: str, received: str) -> bool:
        return cls.checksum(data) == (received or "").lower()


def _with_checksum(parts: List[str]) -> str:
    data = "|".join(parts)
    return f"{data}|checkSum={HimKoshCrypto.checksum(data)}"


def build_request_string(
    dept_id: str,
    dept_ref_no: str,
    total_amount: int,
    tender_by: str,
    app_ref_no: str,
    head1: str,
    amount1: int,
    ddo: str,
    period_from: str,
    period_to: str,
    extra_heads: Optional[List[Tuple[str, int]]] = None,
    service_code: Optional[str] = None,
    return_url: Optional[str] = None,
) -> str:
    """Challan request with its checksum appended, ready for encryption"""
    parts = [
        f"DeptID={dept_id}",
        f"DeptRefNo={dept_ref_no}",
        f"TotalAmount={total_amount}",
        f"TenderBy={tender_by}",
        f"AppRefNo={app_ref_no}",
        f"Head1={head1}",
        f"Amount1={amount1}",
        f"Ddo={ddo}",
        f"PeriodFrom={period_from}",
        f"PeriodTo={period_to}",
    ]
    # Secondary heads are numbered from 2 and only sent with a positive amount
    for index, (head, amount) in enumerate(extra_heads or [], start=2):
        if head and amount and amount > 0:
            parts.append(f"Head{index}={head}")
            parts.append(f"Amount{index}={amount}")
    if service_code:
        parts.append(f"Service_code={service_code}")
    if return_url:
        parts.append(f"return_url={return_url}")
    return _with_checksum(parts)


def build_verification_string(app_ref_no: str, service_code: str, merchant_code: str) -> str:
    return _with_checksum(
        [
            f"AppRefNo={app_ref_no}",
            f"Service_code={service_code}",
            f"merchant_code={merchant_code}",
        ]
    )


def parse_pipe_string(value: str) -> Dict[str, str]:
    fields = {}
    for part in value.strip().split("|"):
        key, sep, val = part.partition("=")
        if key and sep:
            fields[key] = val
    return fields


def parse_signed_response(decrypted: str) -> Dict[str, str]:
    """Parse a decrypted response and verify the checksum over the data before it"""
    marker = decrypted.lower().rfind(RESPONSE_CHECKSUM_MARKER)
    if marker == -1:
        raise ValidationError("HimKosh response carries no checksum", field="encdata")
    fields = parse_pipe_string(decrypted)
    received = decrypted[marker + len(RESPONSE_CHECKSUM_MARKER) :].strip()
    if not HimKoshCrypto.verify_checksum(decrypted[:marker], received):
        raise ValidationError("HimKosh response checksum mismatch", field="encdata")
    return fields
