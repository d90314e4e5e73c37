from posengine.models import Customer, Product, User


def test_seed_demo_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed-demo"])
    assert result.exit_code == 0
    assert "DONE Demo data ready" in result.output
    assert db_session.query(Product).count() == 5
    assert db_session.query(Customer).count() == 2
    assert db_session.query(User).count() == 1

    result = runner.invoke(args=["system", "seed-demo"])
    assert result.exit_code == 0
    assert "already exists, skipping" in result.output
    assert db_session.query(Product).count() == 5


def test_urgent_holds_command_with_nothing_urgent(app, db_session):
    result = app.test_cli_runner().invoke(args=["holds", "urgent"])
    assert result.exit_code == 0
    assert "No urgent holds." in result.output
