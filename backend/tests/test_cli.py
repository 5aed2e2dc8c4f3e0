# Overview: Pytest coverage for the flask CLI command groups.

from splitledger.models import Group, User


class TestCliCommands:

    def test_bootstrap_flow(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["users", "create", "--email", "asha@example.com", "--name", "Asha"])
        assert "PASS Created user" in result.output
        asha = db_session.query(User).filter_by(email="asha@example.com").one()

        runner.invoke(args=["users", "create", "--email", "ben@example.com", "--name", "Ben"])
        ben = db_session.query(User).filter_by(email="ben@example.com").one()

        result = runner.invoke(args=["groups", "create", "--user-id", str(asha.id), "--name", "Flat"])
        assert "Invite code:" in result.output
        group = db_session.query(Group).filter_by(name="Flat").one()

        result = runner.invoke(args=["groups", "join", "--user-id", str(ben.id), "--code", group.invite_code])
        assert f"joined group {group.id}" in result.output

        result = runner.invoke(args=["users", "issue-token", "--user-id", str(ben.id)])
        token = result.output.strip().splitlines()[-1]
        assert len(token) == 64

        result = runner.invoke(args=["balances", "show", "--user-id", str(ben.id)])
        assert "Owed to you: 0.00" in result.output

    def test_unknown_user_reported(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["balances", "show", "--user-id", "987654"])
        assert "FAIL" in result.output
