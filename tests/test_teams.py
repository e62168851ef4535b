import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from mobilekit.teams import (
    FromX509Error,
    Team,
    TeamsError,
    X509FieldError,
    get_x509_field,
    teams_from_pem,
)

_KEY = ec.generate_private_key(ec.SECP256R1())


def _cert(common_name=None, organization=None, unit=None):
    attributes = []
    if common_name is not None:
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    if organization is not None:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization))
    if unit is not None:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, unit))
    name = x509.Name(attributes)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(_KEY.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.datetime(2020, 1, 1))
        .not_valid_after(datetime.datetime(2030, 1, 1))
        .sign(_KEY, hashes.SHA256())
    )


def _pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def test_organization_is_used_as_name():
    cert = _cert("Apple Development: Jane Roe (ABC123)", "Example Org", "TEAM123")
    assert Team.from_x509(cert) == Team(name="Example Org", id="TEAM123")


def test_common_name_nice_part_used_without_organization():
    cert = _cert("Apple Development: Jane Roe (ABC123)", None, "TEAM123")
    assert Team.from_x509(cert) == Team(name="Jane Roe", id="TEAM123")


def test_full_common_name_used_when_regex_fails():
    cert = _cert("Some Cert", None, "TEAM9")
    assert Team.from_x509(cert) == Team(name="Some Cert", id="TEAM9")


def test_missing_common_name_is_error():
    with pytest.raises(FromX509Error) as info:
        Team.from_x509(_cert(None, "Example Org", "TEAM1"))
    assert str(info.value).startswith("skipping cert:")
    assert isinstance(info.value.cause, X509FieldError)


def test_missing_unit_is_error():
    with pytest.raises(FromX509Error) as info:
        Team.from_x509(_cert("Some Cert", "Example Org", None))
    assert "Some Cert" in str(info.value)


def test_get_x509_field_missing():
    cert = _cert("Some Cert")
    with pytest.raises(X509FieldError) as info:
        get_x509_field(cert.subject, "Organization", NameOID.ORGANIZATION_NAME)
    assert "Organization" in str(info.value)


def test_get_x509_field_present():
    cert = _cert("Some Cert", "Example Org", "TEAM1")
    assert get_x509_field(cert.subject, "Common Name", NameOID.COMMON_NAME) == "Some Cert"


def test_teams_from_pem_sorted_and_unique():
    pem = b"".join(
        [
            _pem(_cert("B cert", "Zeta Org", "Z1")),
            _pem(_cert("A cert", "Alpha Org", "A1")),
            _pem(_cert("B again", "Zeta Org", "Z1")),
            _pem(_cert("No unit", "Beta Org")),
        ]
    )
    teams = teams_from_pem(pem)
    assert teams == [Team("Alpha Org", "A1"), Team("Zeta Org", "Z1")]


def test_teams_from_pem_accepts_text():
    pem = _pem(_cert("A cert", "Alpha Org", "A1")).decode("ascii")
    assert teams_from_pem(pem) == [Team("Alpha Org", "A1")]


def test_teams_from_empty_pem():
    assert teams_from_pem(b"") == []


def test_bad_pem_block_is_error():
    pem = b"-----BEGIN CERTIFICATE-----\nnot a cert\n-----END CERTIFICATE-----\n"
    with pytest.raises(TeamsError):
        teams_from_pem(pem)


def test_team_ordering_by_name_then_id():
    assert sorted([Team("b", "1"), Team("a", "2"), Team("a", "1")]) == [
        Team("a", "1"),
        Team("a", "2"),
        Team("b", "1"),
    ]