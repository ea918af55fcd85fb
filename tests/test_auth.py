import json

import pytest

from engine.auth import (
    INVALID_CREDENTIALS_MESSAGE,
    NOT_ALLOWED_MESSAGE,
    AllowListGate,
    AuthError,
    Authenticator,
    PasswordProgramAuthenticator,
)
from engine.config import AuthConfig, KioskAccount


class RecordingAuthenticator(Authenticator):
    def __init__(self, passwords):
        self.passwords = passwords
        self.calls = []

    def authenticate(self, email, password):
        self.calls.append(email)
        return self.passwords.get(email.casefold()) == password


@pytest.fixture
def authenticator():
    return RecordingAuthenticator({"grandma@example.com": "secret"})


@pytest.fixture
def session_file(tmp_path):
    return tmp_path / "state" / "session.json"


@pytest.fixture
def gate(authenticator, session_file):
    return AllowListGate(["Grandma@example.com"], authenticator, session_file)


class TestSignIn:
    def test_allowed_account(self, gate, session_file):
        assert gate.sign_in("grandma@example.com", "secret") == "grandma@example.com"
        assert gate.current_user == "grandma@example.com"
        assert json.loads(session_file.read_text()) == {"email": "grandma@example.com"}

    def test_not_allowed_rejected_before_credentials(self, gate, authenticator):
        with pytest.raises(AuthError, match=NOT_ALLOWED_MESSAGE):
            gate.sign_in("stranger@example.com", "secret")
        assert authenticator.calls == []
        assert gate.current_user is None

    def test_wrong_password(self, gate):
        with pytest.raises(AuthError, match=INVALID_CREDENTIALS_MESSAGE):
            gate.sign_in("grandma@example.com", "guess")
        assert gate.current_user is None

    def test_allow_list_is_case_insensitive(self, gate):
        assert gate.is_allowed("GRANDMA@example.com")
        assert gate.is_allowed("  grandma@example.com ")
        assert not gate.is_allowed("")

    def test_listeners(self, gate):
        seen = []
        subscription = gate.subscribe(seen.append)
        gate.sign_in("grandma@example.com", "secret")
        gate.sign_out()
        subscription.cancel()
        gate.sign_in("grandma@example.com", "secret")
        assert seen == [None, "grandma@example.com", None]


class TestSession:
    def test_restored_on_restart(self, gate, authenticator, session_file):
        gate.sign_in("grandma@example.com", "secret")
        restored = AllowListGate(["grandma@example.com"], authenticator, session_file)
        assert restored.current_user == "grandma@example.com"

    def test_not_restored_once_removed_from_allow_list(self, gate, authenticator, session_file):
        gate.sign_in("grandma@example.com", "secret")
        restored = AllowListGate(["grandpa@example.com"], authenticator, session_file)
        assert restored.current_user is None

    def test_sign_out_removes_session(self, gate, session_file):
        gate.sign_in("grandma@example.com", "secret")
        gate.sign_out()
        assert gate.current_user is None
        assert not session_file.exists()

    def test_unreadable_session_ignored(self, authenticator, session_file):
        session_file.parent.mkdir(parents=True)
        session_file.write_text("{not json")
        assert AllowListGate(["grandma@example.com"], authenticator, session_file).current_user is None

    def test_without_session_file(self, authenticator):
        gate = AllowListGate(["grandma@example.com"], authenticator)
        gate.sign_in("grandma@example.com", "secret")
        gate.sign_out()
        assert gate.current_user is None


class TestPasswordProgramAuthenticator:
    def make(self, password="hunter2", program="/usr/bin/pass"):
        account = KioskAccount(email="Grandma@example.com", password_key="kiosk/grandma", _password=password)
        return PasswordProgramAuthenticator(AuthConfig(password_program=program, accounts=[account]))

    def test_matching_password(self):
        assert self.make().authenticate("grandma@example.com", "hunter2")

    def test_wrong_password(self):
        assert not self.make().authenticate("grandma@example.com", "hunter3")

    def test_unknown_account(self):
        assert not self.make().authenticate("stranger@example.com", "hunter2")

    def test_missing_password_program(self, tmp_path):
        authenticator = self.make(password=None, program=str(tmp_path / "no-such-program"))
        assert not authenticator.authenticate("grandma@example.com", "hunter2")
