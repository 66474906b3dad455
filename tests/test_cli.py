"""Tests for the credreg command line."""

import json
import logging

import httpx
import pytest
import respx
from click.testing import CliRunner
from httpx import Response

from credential_registry import JsonFileStateStore, credential_hash
from credential_registry.cli import main


ADMIN = "ST1ADMIN"
ISSUER = "ST2ISSUER"
SUBJECT = "ST3SUBJECT"
OUTSIDER = "ST4OUTSIDER"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "registry.json"


@pytest.fixture
def credreg(runner, state_path):
    """Invoke credreg against the test state file at height 9999."""

    def invoke(*args, height=9999, input=None):
        options = ["--state", str(state_path)]
        if height is not None:
            options += ["--height", str(height)]
        return runner.invoke(main, [*options, *args], input=input)

    return invoke


@pytest.fixture
def initialized(credreg):
    """Registry with ISSUER whitelisted."""
    assert credreg("init", ADMIN).exit_code == 0
    assert credreg("add-issuer", ADMIN, ISSUER).exit_code == 0
    return credreg


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestInit:
    """Tests for creating a registry."""

    def test_init_creates_state(self, credreg, state_path):
        """Test that init writes an empty registry."""
        result = credreg("init", ADMIN)

        assert result.exit_code == 0
        assert "OK" in result.output
        state = JsonFileStateStore(state_path).load()
        assert state.admin == ADMIN
        assert state.issuers == set()

    def test_init_refuses_overwrite(self, credreg):
        """Test that an existing registry is kept unless forced."""
        credreg("init", ADMIN)

        result = credreg("init", OUTSIDER)
        assert result.exit_code == 2
        assert "already exists" in result.output

        assert credreg("init", OUTSIDER, "--force").exit_code == 0

    def test_state_from_environment(self, runner, state_path):
        """Test that CREDREG_STATE selects the state file."""
        result = runner.invoke(main, ["init", ADMIN], env={"CREDREG_STATE": str(state_path)})

        assert result.exit_code == 0
        assert state_path.exists()


class TestCommands:
    """Tests for registry commands."""

    def test_store_and_check(self, initialized):
        """Test anchoring a hash and checking it."""
        result = initialized("store", ISSUER, "abc123", SUBJECT, "--expires-at", "10000")
        assert result.exit_code == 0
        assert "abc123 stored" in result.output

        assert initialized("check", "abc123").exit_code == 0
        assert initialized("check", "abc123", "--at", "10000").exit_code == 0

        expired = initialized("check", "abc123", "--at", "10001")
        assert expired.exit_code == 1
        assert "EXPIRED" in expired.output

    def test_check_uses_global_height(self, initialized):
        """Test that --height is the default validity height."""
        initialized("store", ISSUER, "abc123", SUBJECT, "--expires-at", "10000")

        assert initialized("check", "abc123", height=10001).exit_code == 1

    def test_non_issuer_rejected(self, initialized):
        """Test that a non-whitelisted caller gets NOT_AUTHORIZED."""
        result = initialized("store", OUTSIDER, "xyz", SUBJECT)

        assert result.exit_code == 1
        assert "NOT_AUTHORIZED (100)" in result.output

    def test_duplicate_rejected(self, initialized):
        """Test that storing a hash twice fails."""
        initialized("store", ISSUER, "abc123", SUBJECT)
        result = initialized("store", ISSUER, "abc123", SUBJECT)

        assert result.exit_code == 1
        assert "DUPLICATE_CREDENTIAL" in result.output

    def test_revoke(self, initialized):
        """Test that a revoked hash no longer checks out."""
        initialized("store", ISSUER, "abc123", SUBJECT)

        assert initialized("revoke", OUTSIDER, "abc123").exit_code == 1
        assert initialized("revoke", ISSUER, "abc123").exit_code == 0

        result = initialized("check", "abc123")
        assert result.exit_code == 1
        assert "REVOKED" in result.output

    def test_remove_issuer(self, initialized, state_path):
        """Test removing an issuer from the whitelist."""
        assert initialized("remove-issuer", ADMIN, ISSUER).exit_code == 0
        assert JsonFileStateStore(state_path).load().issuers == set()

    def test_transfer_admin(self, initialized):
        """Test handing over the admin role."""
        assert initialized("transfer-admin", ADMIN, OUTSIDER).exit_code == 0

        assert initialized("add-issuer", ADMIN, "ST5NEW").exit_code == 1
        assert initialized("add-issuer", OUTSIDER, "ST5NEW").exit_code == 0

    def test_show(self, initialized):
        """Test displaying a record."""
        initialized("store", ISSUER, "abc123", SUBJECT)

        result = initialized("show", "abc123")

        assert result.exit_code == 0
        assert "VALID" in result.output
        assert ISSUER in result.output
        assert "never" in result.output

    def test_show_unknown(self, initialized):
        """Test displaying an unknown hash."""
        result = initialized("show", "missing")

        assert result.exit_code == 1
        assert "NOT_FOUND" in result.output

    def test_uninitialized_state(self, credreg):
        """Test that commands need an initialized registry."""
        result = credreg("add-issuer", ADMIN, ISSUER)

        assert result.exit_code == 2
        assert "No registry state" in result.output

    def test_corrupt_state(self, credreg, state_path):
        """Test that a corrupt state file is reported, not overwritten."""
        state_path.write_text("{oops")

        result = credreg("add-issuer", ADMIN, ISSUER)

        assert result.exit_code == 2
        assert state_path.read_text() == "{oops"

    def test_height_and_node_url_conflict(self, credreg):
        """Test that only one height source may be given."""
        result = credreg("--node-url", "https://node.example.com", "check", "abc123")

        assert result.exit_code == 2

    def test_verbose(self, initialized, restore_logging):
        """Test that --verbose does not change the outcome."""
        assert initialized("-v", "add-issuer", ADMIN, OUTSIDER).exit_code == 0


class TestJsonOutput:
    """Tests for --json-output."""

    def test_success(self, initialized):
        """Test a successful operation as JSON."""
        result = initialized("--json-output", "store", ISSUER, "abc123", SUBJECT)

        assert result.exit_code == 0
        assert json.loads(result.output) == {"value": True}

    def test_error_code(self, initialized):
        """Test that rejections carry the numeric code."""
        result = initialized("--json-output", "check", "missing")

        assert result.exit_code == 1
        assert json.loads(result.output) == {"error": 102, "reason": "NOT_FOUND"}

    def test_show_record(self, initialized):
        """Test that show emits the full record."""
        initialized("store", ISSUER, "abc123", SUBJECT, "--expires-at", "10000")

        result = initialized("--json-output", "show", "abc123")

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "value": {
                "hash": "abc123",
                "issuer": ISSUER,
                "subject": SUBJECT,
                "timestamp": 9999,
                "expires_at": 10000,
                "revoked": False,
            },
            "status": "VALID",
        }

    def test_show_revoked_status(self, initialized):
        """Test that show reports the current validity alongside the record."""
        initialized("store", ISSUER, "abc123", SUBJECT)
        initialized("revoke", ISSUER, "abc123")

        result = initialized("--json-output", "show", "abc123")

        assert result.exit_code == 0
        output = json.loads(result.output)
        assert output["status"] == "REVOKED"
        assert output["value"]["revoked"] is True


class TestNodeHeight:
    """Tests for reading the height from a Stacks node."""

    @respx.mock
    def test_store_with_node_height(self, initialized, state_path):
        """Test that records are stamped with the node's tip height."""
        respx.get("https://node.example.com/v2/info").mock(
            return_value=Response(200, json={"stacks_tip_height": 4242})
        )

        result = initialized(
            "--node-url", "https://node.example.com", "store", ISSUER, "abc123", SUBJECT,
            height=None,
        )

        assert result.exit_code == 0
        record = JsonFileStateStore(state_path).load().credentials["abc123"]
        assert record.timestamp == 4242

    @respx.mock
    def test_node_unreachable(self, initialized):
        """Test that a node failure exits with code 2."""
        respx.get("https://node.example.com/v2/info").mock(return_value=Response(500))
        initialized("store", ISSUER, "abc123", SUBJECT)

        result = initialized(
            "--node-url", "https://node.example.com", "check", "abc123", height=None
        )

        assert result.exit_code == 2
        assert "500" in result.output


class TestHashCommand:
    """Tests for hashing credential documents."""

    def test_hash_file(self, runner, tmp_path):
        """Test hashing a credential file as canonical JSON."""
        path = tmp_path / "credential.json"
        path.write_text('{\n  "issuer": "did:web:example.com",\n  "id": "urn:uuid:1"\n}')

        result = runner.invoke(main, ["hash", str(path)])

        assert result.exit_code == 0
        assert result.output.strip() == credential_hash(
            {"id": "urn:uuid:1", "issuer": "did:web:example.com"}
        )

    def test_hash_stdin_raw(self, runner):
        """Test hashing stdin bytes as-is."""
        result = runner.invoke(main, ["hash", "--raw", "-"], input="abc")

        assert result.exit_code == 0
        assert result.output.strip() == credential_hash(b"abc")

    @respx.mock
    def test_hash_url(self, runner):
        """Test hashing a credential fetched over HTTP."""
        document = {"id": "urn:uuid:2", "type": ["VerifiableCredential"]}
        respx.get("https://example.com/credentials/2").mock(
            return_value=Response(200, json=document)
        )

        result = runner.invoke(main, ["--json-output", "hash", "https://example.com/credentials/2"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"hash": credential_hash(document)}

    def test_hash_invalid_json(self, runner, tmp_path):
        """Test that a non-JSON file exits with code 2."""
        path = tmp_path / "credential.json"
        path.write_text("not json")

        result = runner.invoke(main, ["hash", str(path)])

        assert result.exit_code == 2
        assert "Invalid JSON" in result.output

    def test_hash_missing_file(self, runner, tmp_path):
        """Test that a missing file is reported."""
        result = runner.invoke(main, ["hash", str(tmp_path / "nope.json")])

        assert result.exit_code == 2
        assert "No such file or directory" in result.output

    def test_hash_invalid_utf8(self, runner, tmp_path):
        """Test that undecodable bytes exit with code 2."""
        path = tmp_path / "credential.json"
        path.write_bytes(b'{"id": "\xc3\x28"}')

        result = runner.invoke(main, ["hash", str(path)])

        assert result.exit_code == 2
        assert "Invalid document" in result.output

    def test_hash_directory(self, runner, tmp_path):
        """Test that a directory source exits with code 2."""
        result = runner.invoke(main, ["hash", str(tmp_path)])

        assert result.exit_code == 2
        assert "Is a directory" in result.output

    @respx.mock
    def test_hash_url_no_ssl_verify(self, runner, monkeypatch):
        """Test that --no-ssl-verify reaches the document fetch."""
        client_kwargs = {}
        real_client = httpx.Client

        def client(**kwargs):
            client_kwargs.update(kwargs)
            return real_client(**kwargs)

        monkeypatch.setattr(httpx, "Client", client)
        respx.get("https://example.com/credentials/3").mock(
            return_value=Response(200, json={"id": "urn:uuid:3"})
        )

        result = runner.invoke(
            main, ["--no-ssl-verify", "hash", "https://example.com/credentials/3"]
        )

        assert result.exit_code == 0
        assert client_kwargs["verify"] is False
