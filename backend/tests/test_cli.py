from storeline.models import Business, User, VariationLocationDetails


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--business", "Corner Mart", "--code", "CM"])
    assert first.exit_code == 0, first.output
    assert "DONE Storeline Initialized Successfully!" in first.output

    second = runner.invoke(args=["system", "init"])
    assert second.exit_code == 0
    assert "already exists" in second.output

    assert [b.code for b in db_session.query(Business).all()] == ["CM"]
    assert db_session.query(User).filter_by(username="admin").count() == 1


def test_check_consistency_passes_then_fails(app, db_session, business_a, stocked_a, location_a1):
    runner = app.test_cli_runner()

    ok = runner.invoke(args=["inventory", "check-consistency", "--business-id", str(business_a.id)])
    assert ok.exit_code == 0
    assert "PASS Ledgers are consistent" in ok.output

    details = db_session.query(VariationLocationDetails).filter_by(
        variation_id=stocked_a.id, location_id=location_a1.id
    ).one()
    details.qty_available = 7
    db_session.commit()

    bad = runner.invoke(args=["inventory", "check-consistency", "--business-id", str(business_a.id)])
    assert bad.exit_code == 1
    assert "FAIL BALANCE_MISMATCH" in bad.output


def test_perms_grant_unknown_role(app, db_session, business_a):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["perms", "grant", "--business-id", str(business_a.id), "Auditor", "report.view"])

    assert "FAIL Role 'Auditor' not found" in result.output


def test_wsgi_module_exposes_app():
    import wsgi

    assert wsgi.app.name == "storeline"
    assert {"sales", "returns", "transfers"} <= set(wsgi.app.blueprints)
