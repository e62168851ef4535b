"""Discovering Apple development teams from the signing certificates in the keychain."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from cryptography import x509
from cryptography.x509.oid import NameOID, ObjectIdentifier

from .command import Command
from .output import CommandError, Output

logger = logging.getLogger(__name__)

_PEM_RE = re.compile(
    rb"-----BEGIN CERTIFICATE-----.*?-----END CERTIFICATE-----", re.S
)
_NICE_NAME_RE = re.compile(r"Apple Develop\w+: (.*) \(.+\)")


def _quoted(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class TeamsError(Exception):
    """Looking up development teams failed."""


class X509FieldError(Exception):
    """A field of a certificate's subject was missing or unreadable."""


class FromX509Error(Exception):
    """A certificate doesn't describe a development team."""

    def __init__(self, message: str, cause: X509FieldError) -> None:
        super().__init__(message)
        self.cause = cause


def get_pem_list(name_substr: str) -> Output:
    """All keychain certificates whose name contains ``name_substr``, as PEM."""
    return (
        Command.impure("security")
        .with_args(["find-certificate", "-p", "-a", "-c", name_substr])
        .run_and_wait_for_output()
    )


def get_pem_list_old_name_scheme() -> Output:
    return get_pem_list("Developer:")


def get_pem_list_new_name_scheme() -> Output:
    return get_pem_list("Development:")


def get_x509_field(
    subject_name: x509.Name, field_name: str, field_oid: ObjectIdentifier
) -> str:
    """The first value of ``field_oid`` in a certificate subject."""
    attributes = subject_name.get_attributes_for_oid(field_oid)
    if not attributes:
        raise X509FieldError(
            f"Missing X509 field {_quoted(field_name)} ({field_oid.dotted_string})"
        )
    value = attributes[0].value
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as cause:
            raise X509FieldError(f"Field contained invalid UTF-8: {cause}") from cause
    return str(value)


@dataclass(frozen=True, order=True)
class Team:
    """A development team: its display name and its team ID."""

    name: str
    id: str

    @classmethod
    def from_x509(cls, cert: x509.Certificate) -> Team:
        subject = cert.subject
        try:
            common_name = get_x509_field(subject, "Common Name", NameOID.COMMON_NAME)
        except X509FieldError as cause:
            raise FromX509Error(f"skipping cert: {cause}", cause) from cause
        try:
            name = get_x509_field(subject, "Organization", NameOID.ORGANIZATION_NAME)
            logger.info("found cert %r with organization %r", common_name, name)
        except X509FieldError:
            logger.warning(
                "found cert %r but failed to get organization; "
                "falling back to displaying common name",
                common_name,
            )
            match = _NICE_NAME_RE.search(common_name)
            if match is not None:
                name = match.group(1)
            else:
                logger.warning(
                    "regex failed to capture nice part of name in cert %r; "
                    "falling back to displaying full name",
                    common_name,
                )
                name = common_name
        try:
            team_id = get_x509_field(
                subject, "Organizational Unit", NameOID.ORGANIZATIONAL_UNIT_NAME
            )
        except X509FieldError as cause:
            raise FromX509Error(
                f"skipping cert {_quoted(common_name)}: {cause}", cause
            ) from cause
        return cls(name=name, id=team_id)


def _load_certificates(pem_data: bytes) -> list[x509.Certificate]:
    certificates = []
    for block in _PEM_RE.finditer(pem_data):
        try:
            certificates.append(x509.load_pem_x509_certificate(block.group()))
        except ValueError as cause:
            raise TeamsError(f"Failed to parse X509 cert: {cause}") from cause
    return certificates


def _teams_from_certs(certificates: Iterable[x509.Certificate]) -> list[Team]:
    teams = set()
    for cert in certificates:
        try:
            teams.add(Team.from_x509(cert))
        except FromX509Error as err:
            logger.error("%s", err)
    return sorted(teams)


def teams_from_pem(pem_data: bytes | str) -> list[Team]:
    """Sorted, unique teams described by the certificates in ``pem_data``."""
    if isinstance(pem_data, str):
        pem_data = pem_data.encode("utf-8")
    return _teams_from_certs(_load_certificates(pem_data))


def _pem_list(lookup) -> bytes:
    try:
        return lookup().stdout
    except CommandError as cause:
        raise TeamsError(f"Failed to call `security` command: {cause}") from cause


def find_development_teams() -> list[Team]:
    """All development teams with a signing certificate in the keychain."""
    certificates = _load_certificates(_pem_list(get_pem_list_new_name_scheme))
    certificates += _load_certificates(_pem_list(get_pem_list_old_name_scheme))
    return _teams_from_certs(certificates)