from datetime import datetime

from models.user import User
from tests.conftest import reload


def test_add_officer_creates_verified_officer(app):
    result = app.test_cli_runner().invoke(args=[
        "add-officer", "chief", "Chief@Example.org", "Chief Officer",
        "--password", "Str0ng-Enough", "--officer-id", "OFF-100", "--department", "Roads",
    ])
    assert result.exit_code == 0, result.output
    assert "verified" in result.output

    officer = User.query.filter_by(username="chief").one()
    assert officer.role == "officer"
    assert officer.is_verified is True
    assert officer.email == "chief@example.org"
    assert officer.department == "Roads"


def test_add_officer_rejects_weak_password_and_duplicates(app, officer):
    runner = app.test_cli_runner()

    weak = runner.invoke(args=["add-officer", "newbie", "n@example.org", "Newbie", "--password", "weak"])
    assert weak.exit_code != 0

    dupe = runner.invoke(args=[
        "add-officer", "officer1", "other@example.org", "Dupe", "--password", "Str0ng-Enough",
    ])
    assert dupe.exit_code != 0
    assert "already exists" in dupe.output


def test_verify_officer_command(app, make_user):
    rookie = make_user("rookie", role="officer", verified=False)

    result = app.test_cli_runner().invoke(args=["verify-officer", "rookie"])
    assert result.exit_code == 0, result.output
    assert reload(User, rookie.id).is_verified is True

    missing = app.test_cli_runner().invoke(args=["verify-officer", "nobody"])
    assert missing.exit_code != 0


def test_unlock_account_command(app, make_user):
    user = make_user("locked", failed_login_attempts=5, locked_until=datetime(2099, 1, 1))

    result = app.test_cli_runner().invoke(args=["unlock-account", "locked"])
    assert result.exit_code == 0, result.output

    stored = reload(User, user.id)
    assert stored.failed_login_attempts == 0
    assert stored.locked_until is None
    assert stored.auth_version == 1
