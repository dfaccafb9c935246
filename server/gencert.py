"""Generate the self-signed certificate and key used for TLS measurements.

Writes ``cert.pem`` and ``key.pem`` into the output directory. The server
loads both; the measurement driver trusts ``cert.pem`` as its CA file.
"""

import argparse
import datetime
import ipaddress
import os
import sys
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from common.constants import DEFAULT_ADDRESS, DEFAULT_CERT_FILE, DEFAULT_KEY_FILE
from common.exceptions import ConfigurationError
from common.logging_config import setup_logging

ORGANIZATION = "h2perf"
VALIDITY_DAYS = 365


def generate_self_signed(ip_addr: str = DEFAULT_ADDRESS, validity_days: int = VALIDITY_DAYS) -> Tuple[bytes, bytes]:
    """
    Create a self-signed certificate valid for ``ip_addr`` and ``localhost``.

    Args:
        ip_addr: IP address placed in the common name and the IP SAN
        validity_days: Certificate lifetime

    Returns:
        Tuple of (certificate PEM, private key PEM)

    Raises:
        ConfigurationError: If ip_addr is not an IP address
    """
    try:
        ip = ipaddress.ip_address(ip_addr)
    except ValueError as e:
        raise ConfigurationError(f"invalid IP address: {ip_addr}") from e

    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, ip_addr),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
    ])
    now = datetime.datetime.now(datetime.timezone.utc)
    public_key = key.public_key()

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=validity_days))
        .add_extension(
            x509.SubjectAlternativeName([x509.IPAddress(ip), x509.DNSName("localhost")]),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(public_key), critical=False)
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def write_files(output_dir: str, cert_pem: bytes, key_pem: bytes) -> Tuple[str, str]:
    """
    Write the PEM files, creating ``output_dir`` if needed.

    Returns:
        Tuple of (cert path, key path)

    Raises:
        ConfigurationError: If the files cannot be written
    """
    cert_path = os.path.join(output_dir, DEFAULT_CERT_FILE)
    key_path = os.path.join(output_dir, DEFAULT_KEY_FILE)
    try:
        os.makedirs(output_dir, mode=0o700, exist_ok=True)
        with open(cert_path, 'wb') as f:
            f.write(cert_pem)
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'wb') as f:
            f.write(key_pem)
    except OSError as e:
        raise ConfigurationError(f"cannot write certificate files to {output_dir}: {e}") from e
    return cert_path, key_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="h2perf-gencert", description="Write a self-signed cert.pem/key.pem pair.")
    parser.add_argument("--ip-addr", default=DEFAULT_ADDRESS, help="IP address to use as SAN")
    parser.add_argument("-o", "--output-dir", default=".", help="directory to write the files to")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logger = setup_logging('server')

    try:
        cert_pem, key_pem = generate_self_signed(args.ip_addr)
        cert_path, key_path = write_files(args.output_dir, cert_pem, key_pem)
    except ConfigurationError as e:
        logger.error(f"gencert: {e}")
        sys.exit(1)

    logger.info(f"gencert: wrote {cert_path}")
    logger.info(f"gencert: wrote {key_path}")


if __name__ == "__main__":
    main()
