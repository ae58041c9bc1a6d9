"""Tests for the click CLI: check, fetch, push."""

import certifi
import pytest
from click.testing import CliRunner
from pytest_httpx import HTTPXMock

from cardbridge.cli import cli

ROOT_URL = "https://contacts.icloud.com/"
WELL_KNOWN_URL = "https://contacts.icloud.com/.well-known/carddav"
PRINCIPAL_URL = "https://contacts.icloud.com/1234567/principal/"
ADDRESSBOOK_URL = "https://contacts.icloud.com/1234567/carddavhome/"

PRINCIPAL_RESPONSE = b"""<?xml version="1.0" encoding="UTF-8"?>
<d:multistatus xmlns:d="DAV:"><d:response><d:href>/</d:href><d:propstat><d:prop>
<d:current-user-principal><d:href>/1234567/principal/</d:href></d:current-user-principal>
</d:prop></d:propstat></d:response></d:multistatus>"""

HOME_RESPONSE = b"""<?xml version="1.0" encoding="UTF-8"?>
<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:carddav"><d:response>
<d:href>/1234567/principal/</d:href><d:propstat><d:prop>
<c:addressbook-home-set><d:href>/1234567/carddavhome/</d:href></c:addressbook-home-set>
</d:prop></d:propstat></d:response></d:multistatus>"""

REPORT_RESPONSE = b"""<?xml version="1.0" encoding="UTF-8"?>
<d:multistatus xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:carddav">
<d:response><d:href>/1234567/carddavhome/card/a.vcf</d:href><d:propstat><d:prop>
<c:address-data>BEGIN:VCARD
VERSION:3.0
FN:Alice Smith
N:Smith;Alice;;;
UID:uid-alice
END:VCARD</c:address-data></d:prop></d:propstat></d:response>
<d:response><d:href>/1234567/carddavhome/card/b.vcf</d:href><d:propstat><d:prop>
<c:address-data>BEGIN:VCARD
VERSION:3.0
FN:Bob Jones
N:Jones;Bob;;;
UID:uid-bob
END:VCARD</c:address-data></d:prop></d:propstat></d:response>
</d:multistatus>"""

VCARD_WITH_UID = "BEGIN:VCARD\r\nVERSION:3.0\r\nFN:Jane Smith\r\nN:Smith;Jane;;;\r\nUID:form-42\r\nEND:VCARD\r\n"
VCARD_NO_UID = "BEGIN:VCARD\r\nVERSION:3.0\r\nFN:Jane Smith\r\nN:Smith;Jane;;;\r\nEND:VCARD\r\n"


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Credentials in env, a pinned CA bundle and quiet logging in config.yaml."""
    config = tmp_path / "config.yaml"
    config.write_text(
        f"trust:\n  ca_bundle: {certifi.where()}\nlogging:\n  level: warning\n"
    )
    monkeypatch.setenv("CARDBRIDGE_CONFIG", str(config))
    monkeypatch.setenv("CARDBRIDGE_USERNAME", "user@icloud.com")
    monkeypatch.setenv("CARDBRIDGE_PASSWORD", "app-password")


def _mock_discovery(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        method="PROPFIND", url=ROOT_URL, status_code=207, content=PRINCIPAL_RESPONSE
    )
    httpx_mock.add_response(
        method="PROPFIND", url=PRINCIPAL_URL, status_code=207, content=HOME_RESPONSE
    )


class TestCheck:
    def test_check_prints_addressbook(self, env, httpx_mock: HTTPXMock):
        _mock_discovery(httpx_mock)

        result = CliRunner().invoke(cli, ["check"])

        assert result.exit_code == 0, result.output
        assert "Credentials OK" in result.output
        assert "/1234567/carddavhome/" in result.output

    def test_check_failure_exits_1(self, env, httpx_mock: HTTPXMock):
        httpx_mock.add_response(method="PROPFIND", url=ROOT_URL, status_code=401)
        httpx_mock.add_response(method="PROPFIND", url=WELL_KNOWN_URL, status_code=401)

        result = CliRunner().invoke(cli, ["check"])

        assert result.exit_code == 1
        assert "Unable to discover the address book" in result.output

    def test_missing_credentials_exits_1(self, env, monkeypatch):
        monkeypatch.delenv("CARDBRIDGE_PASSWORD")

        result = CliRunner().invoke(cli, ["check"])

        assert result.exit_code == 1
        assert "CARDBRIDGE_PASSWORD" in result.output


class TestFetch:
    def test_fetch_prints_raw_vcards(self, env, httpx_mock: HTTPXMock):
        _mock_discovery(httpx_mock)
        httpx_mock.add_response(
            method="REPORT", url=ADDRESSBOOK_URL, status_code=207, content=REPORT_RESPONSE
        )

        result = CliRunner().invoke(cli, ["fetch"])

        assert result.exit_code == 0, result.output
        assert result.output.count("BEGIN:VCARD") == 2

    def test_fetch_summary_prints_names(self, env, httpx_mock: HTTPXMock):
        _mock_discovery(httpx_mock)
        httpx_mock.add_response(
            method="REPORT", url=ADDRESSBOOK_URL, status_code=207, content=REPORT_RESPONSE
        )

        result = CliRunner().invoke(cli, ["fetch", "--summary"])

        assert result.exit_code == 0, result.output
        assert "Alice Smith" in result.output
        assert "Bob Jones" in result.output
        assert "2 contacts" in result.output
        assert "BEGIN:VCARD" not in result.output


class TestPush:
    def test_push_uses_vcard_uid(self, env, tmp_path, httpx_mock: HTTPXMock):
        vcf = tmp_path / "jane.vcf"
        vcf.write_text(VCARD_WITH_UID)
        _mock_discovery(httpx_mock)
        httpx_mock.add_response(
            method="PUT", url=f"{ADDRESSBOOK_URL}card/form-42.vcf", status_code=201
        )

        result = CliRunner().invoke(cli, ["push", str(vcf)])

        assert result.exit_code == 0, result.output
        assert "Created form-42" in result.output

    def test_push_uid_option_overrides(self, env, tmp_path, httpx_mock: HTTPXMock):
        vcf = tmp_path / "jane.vcf"
        vcf.write_text(VCARD_NO_UID)
        _mock_discovery(httpx_mock)
        httpx_mock.add_response(
            method="PUT", url=f"{ADDRESSBOOK_URL}card/explicit-1.vcf", status_code=201
        )

        result = CliRunner().invoke(cli, ["push", str(vcf), "--uid", "explicit-1"])

        assert result.exit_code == 0, result.output

    def test_push_without_uid_is_usage_error(self, env, tmp_path):
        vcf = tmp_path / "jane.vcf"
        vcf.write_text(VCARD_NO_UID)

        result = CliRunner().invoke(cli, ["push", str(vcf)])

        assert result.exit_code == 2
        assert "--uid" in result.output

    def test_push_server_rejection_exits_1(self, env, tmp_path, httpx_mock: HTTPXMock):
        vcf = tmp_path / "jane.vcf"
        vcf.write_text(VCARD_WITH_UID)
        _mock_discovery(httpx_mock)
        httpx_mock.add_response(
            method="PUT", url=f"{ADDRESSBOOK_URL}card/form-42.vcf", status_code=403
        )

        result = CliRunner().invoke(cli, ["push", str(vcf)])

        assert result.exit_code == 1
        assert "HTTP Code: 403" in result.output
