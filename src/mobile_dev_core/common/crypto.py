"""Certificate helpers for device trust stores.

Android looks up user CA certificates by file name ``<subject_hash_old>.0``.
The "old" subject hash is OpenSSL's pre-1.0 ``X509_NAME_hash_old``: MD5 over
the DER encoded subject name, first four bytes read as a little-endian
integer. It is a lookup key, not a security primitive, and must match
``openssl x509 -subject_hash_old`` bit for bit.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization

_PEM_HEADER = "-----BEGIN CERTIFICATE-----"


class CertificateFormatError(ValueError):
    pass


def der_to_pem(der: bytes) -> str:
    try:
        cert = x509.load_der_x509_certificate(bytes(der))
    except ValueError as e:
        raise CertificateFormatError(f"invalid DER certificate: {e}") from e
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def pem_to_der(pem: str) -> bytes:
    if _PEM_HEADER not in (pem or ""):
        raise CertificateFormatError("no PEM certificate block found")
    try:
        cert = x509.load_pem_x509_certificate(pem.encode("ascii", errors="replace"))
    except ValueError as e:
        raise CertificateFormatError(f"invalid PEM certificate: {e}") from e
    return cert.public_bytes(serialization.Encoding.DER)


@dataclass(frozen=True)
class SSLCertificateData:
    der_certificate: bytes
    pem_certificate: Optional[str] = None

    @classmethod
    def from_der(cls, der: bytes) -> "SSLCertificateData":
        return cls(der_certificate=bytes(der))

    @classmethod
    def from_pem(cls, pem: str) -> "SSLCertificateData":
        return cls(der_certificate=pem_to_der(pem), pem_certificate=pem)

    @classmethod
    def from_file(cls, path: Path | str) -> "SSLCertificateData":
        """Load a PEM or DER certificate file."""

        raw = Path(path).read_bytes()
        if _PEM_HEADER.encode("ascii") in raw:
            return cls.from_pem(raw.decode("ascii", errors="replace"))
        return cls.from_der(raw)

    def pem(self) -> str:
        return self.pem_certificate if self.pem_certificate else der_to_pem(self.der_certificate)


def _load(cert: SSLCertificateData) -> x509.Certificate:
    try:
        return x509.load_der_x509_certificate(cert.der_certificate)
    except ValueError as e:
        raise CertificateFormatError(f"invalid DER certificate: {e}") from e


def subject_hash_old(cert: SSLCertificateData) -> str:
    subject_der = _load(cert).subject.public_bytes()
    digest = hashlib.md5(subject_der, usedforsecurity=False).digest()
    (value,) = struct.unpack("<I", digest[:4])
    return f"{value:08x}"


def sha256_fingerprint(cert: SSLCertificateData) -> str:
    """Upper-case hex SHA-256 over the DER certificate."""

    return hashlib.sha256(cert.der_certificate).hexdigest().upper()
