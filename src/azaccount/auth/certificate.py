"""Certificates for service principal logins."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

PKCS12_SUFFIXES = (".pfx", ".p12")

_PEM_BLOCK = re.compile(rb"(-----BEGIN ([A-Z0-9 ]+)-----.+?-----END \2-----)", re.DOTALL)


@dataclass(frozen=True)
class CertificateCredential:
    """A service principal certificate on disk.

    The file is either a combined PEM (certificate and private key) or a
    PKCS#12 bundle (``.pfx``/``.p12``).
    """

    certificate_path: Path
    password: str | None = None


def load_client_certificate(credential: CertificateCredential) -> dict[str, str]:
    """Load a certificate into the client credential format msal expects.

    Args:
        credential: Location and optional password of the certificate.

    Returns:
        A mapping with the PEM ``private_key`` and the SHA-1 ``thumbprint``.

    Raises:
        FileNotFoundError: If the certificate file does not exist.
        ValueError: If the file holds no certificate or no private key.
    """
    path = Path(credential.certificate_path)
    data = path.read_bytes()
    password = credential.password.encode() if credential.password else None

    if path.suffix.lower() in PKCS12_SUFFIXES:
        key, cert, _ = pkcs12.load_key_and_certificates(data, password)
    else:
        blocks = {label: block for block, label in _PEM_BLOCK.findall(data)}
        cert_pem = blocks.get(b"CERTIFICATE")
        key_pem = next((b for label, b in blocks.items() if label.endswith(b"PRIVATE KEY")), None)
        cert = x509.load_pem_x509_certificate(cert_pem) if cert_pem else None
        key = serialization.load_pem_private_key(key_pem, password=password) if key_pem else None

    if cert is None or key is None:
        raise ValueError(f"Certificate file must contain a certificate and a private key: {path}")

    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return {
        "private_key": key_pem.decode("ascii"),
        "thumbprint": cert.fingerprint(hashes.SHA1()).hex().upper(),
    }


def generate_self_signed_certificate(
    common_name: str,
    *,
    organization_name: str | None = None,
    validity_days: int = 365,
    key_size: int = 2048,
    combined_pem_path: str | Path | None = None,
) -> tuple[bytes, bytes]:
    """Generate a self-signed certificate to register with a service principal.

    Args:
        common_name: Common Name (CN) for the certificate subject.
        organization_name: Optional Organization Name (O).
        validity_days: Days until the certificate expires.
        key_size: RSA key size in bits.
        combined_pem_path: If given, certificate and key are written there
            as one PEM file usable with :class:`CertificateCredential`.

    Returns:
        A tuple ``(certificate_pem, private_key_pem)``.
    """
    if not common_name:
        raise ValueError("common_name must not be empty.")

    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    if organization_name:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization_name))
    name = x509.Name(attributes)
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .sign(private_key=key, algorithm=hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )

    if combined_pem_path is not None:
        Path(combined_pem_path).write_bytes(cert_pem + key_pem)

    return cert_pem, key_pem
