# Overview: Pytest coverage for the Flask CLI commands.

from poscore.extensions import db
from poscore.models import BranchInventory, Product, Tenant
from poscore.models.cash import TX_DEPOSIT
from poscore.services import cash_ledger_service


class TestSystemCommands:
    def test_seed_demo(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "seed-demo"])

        assert result.exit_code == 0, result.output
        assert "PASS Created tenant Demo Tenant" in result.output
        db.session.expire_all()
        tenant = db.session.query(Tenant).filter_by(name="Demo Tenant").one()
        assert db.session.query(Product).filter_by(tenant_id=tenant.id).count() == 3
        quantities = {row.quantity for row in db.session.query(BranchInventory).all()}
        assert quantities == {50}

    def test_seed_demo_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["system", "seed-demo"])

        result = runner.invoke(args=["system", "seed-demo"])

        assert result.exit_code == 0
        assert "already exists" in result.output


class TestLedgerCommands:
    def test_verify_intact_chain(self, app, db_session, ctx, branch):
        cash_ledger_service.record_transaction(ctx, TX_DEPOSIT, 1500, "Float")
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "verify", "--branch-id", str(branch.id)])

        assert result.exit_code == 0, result.output
        assert "Cash chain intact" in result.output
        assert "1500 cents" in result.output

    def test_verify_unknown_branch(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["ledger", "verify", "--branch-id", "987654"])
        assert result.exit_code != 0
        assert "not found" in result.output


class TestShiftCommands:
    def test_list_open_shifts(self, app, db_session, open_shift):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["shifts", "list", "--open-only"])

        assert result.exit_code == 0, result.output
        assert "Mona" in result.output
        assert "OPEN" in result.output

    def test_list_empty(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["shifts", "list"])
        assert "No shifts found." in result.output
