#!/usr/bin/env python3
# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""The TLS Manager.

Issues the private certificate authority of a deployment and the two leaf
certificates it signs: the database server certificate and the client
certificate used by the application.

Issuance follows NO_CA -> CA_ISSUED -> (server, client in any order) -> DONE.
Private keys are written owner-only, certificates world-readable, and the
CA certificate is copied next to each leaf so that every consumer has the
full chain.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from enum import Enum

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from stack_provisioner.config.literals import (
    CA_ROLE,
    CERTIFICATE_MODE,
    CLIENT_ROLE,
    LEAF_ROLES,
    PRIVATE_KEY_MODE,
    SERVER_ROLE,
    Services,
    CertificateRole,
)
from stack_provisioner.core.host_workload import HostWorkload
from stack_provisioner.core.structured_config import CertificatePolicy
from stack_provisioner.exceptions import (
    CertificateAuthorityMissingError,
    CertificateChainError,
    IncompleteCertificateSetError,
)
from stack_provisioner.state.tls_state import TLSState

logger = logging.getLogger(__name__)

SERVER_SANS = [Services.DATABASE.value, "localhost"]


class IssuerState(str, Enum):
    """Progress of the certificate issuance."""

    NO_CA = "no-ca"
    CA_ISSUED = "ca-issued"
    SERVER_LEAF_ISSUED = "server-leaf-issued"
    CLIENT_LEAF_ISSUED = "client-leaf-issued"
    DONE = "done"


@dataclass(frozen=True)
class IssuedCertificate:
    """A certificate and its private key."""

    role: CertificateRole
    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey

    @property
    def serial_number(self) -> int:
        """Serial number of the certificate."""
        return self.certificate.serial_number


class SerialAllocator:
    """Random serial numbers, never repeated within one CA."""

    def __init__(self) -> None:
        self.allocated: set[int] = set()

    def allocate(self) -> int:
        """A fresh serial number."""
        while True:
            serial = x509.random_serial_number()
            if serial not in self.allocated:
                self.allocated.add(serial)
                return serial

    def reserve(self, serial: int) -> None:
        """Marks a serial of an existing certificate as used."""
        self.allocated.add(serial)


def generate_private_key(key_size: int) -> rsa.RSAPrivateKey:
    """Generates an RSA private key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


def generate_csr(
    private_key: rsa.RSAPrivateKey, subject: x509.Name, sans: list[str] | None = None
) -> x509.CertificateSigningRequest:
    """Generates a certificate signing request for `subject`."""
    builder = x509.CertificateSigningRequestBuilder().subject_name(subject)
    if sans:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(san) for san in sans]), critical=False
        )
    return builder.sign(private_key, hashes.SHA256())


class TLSManager:
    """Manager for building the TLS files of a deployment."""

    def __init__(self, workload: HostWorkload, policy: CertificatePolicy) -> None:
        self.workload = workload
        self.paths = workload.paths
        self.policy = policy
        self.state = TLSState(self.paths)
        self.serials = SerialAllocator()
        self.issuer_state = IssuerState.NO_CA
        self.ca: IssuedCertificate | None = None
        self.leaves: dict[str, IssuedCertificate] = {}

    def ensure_certificates(self) -> None:
        """Issues the full certificate set, or reuses a complete one.

        Raises:
            IncompleteCertificateSetError if only part of a set is on disk.
        """
        if self.state.is_complete:
            logger.info("Reusing the certificate set in %s", self.paths.ssl_path)
            self.load_existing()
            self.verify_chain()
            return
        if not self.state.is_empty:
            present = ", ".join(str(path) for path in self.state.present_files)
            raise IncompleteCertificateSetError(
                f"partial certificate set found ({present}); remove {self.paths.ssl_path} and re-run"
            )

        logger.info("Generating the certificate authority.")
        self.issue_ca()
        for role in LEAF_ROLES:
            logger.info(f"Generating the {role.name} certificate.")
            self.issue_leaf(role)
        self.verify_chain()

    def issue_ca(self) -> IssuedCertificate:
        """Creates the self-signed CA and writes it to the CA directory."""
        key = generate_private_key(self.policy.key_size)
        subject = self.subject(CA_ROLE.common_name)
        now = datetime.datetime.now(datetime.timezone.utc)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(self.serials.allocate())
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=self.policy.validity_days))
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=False,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            .sign(key, hashes.SHA256())
        )
        self.ca = IssuedCertificate(role=CA_ROLE, certificate=certificate, private_key=key)
        self._write(self.ca)
        self.issuer_state = IssuerState.CA_ISSUED
        return self.ca

    def issue_leaf(self, role: CertificateRole) -> IssuedCertificate:
        """Issues the leaf certificate of `role`, signed by the CA.

        Raises:
            CertificateAuthorityMissingError if the CA was not issued first.
        """
        if self.ca is None:
            raise CertificateAuthorityMissingError(
                f"cannot sign the {role.name} certificate before the CA exists"
            )

        key = generate_private_key(self.policy.key_size)
        sans = SERVER_SANS if role == SERVER_ROLE else None
        csr = generate_csr(key, self.subject(role.common_name), sans)
        certificate = self.sign(csr, role)
        leaf = IssuedCertificate(role=role, certificate=certificate, private_key=key)

        self._write(leaf)
        self.workload.copy(
            self.paths.cert_file(CA_ROLE), self.paths.ca_copy(role), CERTIFICATE_MODE
        )
        self.leaves[role.name] = leaf
        self._advance()
        return leaf

    def sign(self, csr: x509.CertificateSigningRequest, role: CertificateRole) -> x509.Certificate:
        """Signs a request against the CA."""
        assert self.ca is not None
        now = datetime.datetime.now(datetime.timezone.utc)
        usage = ExtendedKeyUsageOID.SERVER_AUTH if role == SERVER_ROLE else ExtendedKeyUsageOID.CLIENT_AUTH
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(self.ca.certificate.subject)
            .public_key(csr.public_key())
            .serial_number(self.serials.allocate())
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=self.policy.validity_days))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(self.ca.private_key.public_key()),
                critical=False,
            )
        )
        for extension in csr.extensions:
            builder = builder.add_extension(extension.value, critical=extension.critical)
        return builder.sign(self.ca.private_key, hashes.SHA256())

    def verify_chain(self) -> None:
        """Checks that every leaf was issued by this deployment's CA.

        Raises:
            CertificateChainError
        """
        if self.ca is None:
            raise CertificateAuthorityMissingError("no CA to verify against")
        serials = {self.ca.serial_number}
        for leaf in self.leaves.values():
            try:
                leaf.certificate.verify_directly_issued_by(self.ca.certificate)
            except (ValueError, TypeError, InvalidSignature) as e:
                raise CertificateChainError(
                    f"{leaf.role.name} certificate is not signed by the deployment CA"
                ) from e
            if leaf.serial_number in serials:
                raise CertificateChainError(f"{leaf.role.name} certificate reuses serial {leaf.serial_number}")
            serials.add(leaf.serial_number)

    def load_existing(self) -> None:
        """Loads a complete certificate set from disk."""
        self.ca = self._load(CA_ROLE)
        self.serials.reserve(self.ca.serial_number)
        for role in LEAF_ROLES:
            leaf = self._load(role)
            self.serials.reserve(leaf.serial_number)
            self.leaves[role.name] = leaf
        self.issuer_state = IssuerState.DONE

    def subject(self, common_name: str) -> x509.Name:
        """Distinguished name of a certificate of this deployment."""
        return x509.Name(
            [
                x509.NameAttribute(NameOID.COUNTRY_NAME, self.policy.country),
                x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, self.policy.state),
                x509.NameAttribute(NameOID.LOCALITY_NAME, self.policy.locality),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.policy.organization),
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            ]
        )

    def _advance(self) -> None:
        issued = set(self.leaves)
        if issued == {role.name for role in LEAF_ROLES}:
            self.issuer_state = IssuerState.DONE
        elif issued == {SERVER_ROLE.name}:
            self.issuer_state = IssuerState.SERVER_LEAF_ISSUED
        elif issued == {CLIENT_ROLE.name}:
            self.issuer_state = IssuerState.CLIENT_LEAF_ISSUED

    def _write(self, issued: IssuedCertificate) -> None:
        key = issued.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        self.workload.write(
            key.decode("utf-8"),
            self.paths.key_file(issued.role),
            PRIVATE_KEY_MODE,
            owner=issued.role.key_owner,
        )
        cert = issued.certificate.public_bytes(serialization.Encoding.PEM)
        self.workload.write(cert.decode("utf-8"), self.paths.cert_file(issued.role), CERTIFICATE_MODE)

    def _load(self, role: CertificateRole) -> IssuedCertificate:
        certificate = x509.load_pem_x509_certificate(self.paths.cert_file(role).read_bytes())
        key = serialization.load_pem_private_key(self.paths.key_file(role).read_bytes(), password=None)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise CertificateChainError(f"{role.name} key is not an RSA key")
        return IssuedCertificate(role=role, certificate=certificate, private_key=key)
