# Overview: Pytest coverage for the flask CLI command groups.

from posledger.services import register_service


def test_create_and_list_registers(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["registers", "create", "--tenant", "acme", "--code", "REG-09", "--name", "Patio"])
    assert "PASS Created register: REG-09 - Patio" in result.output

    result = runner.invoke(args=["registers", "create", "--tenant", "acme", "--code", "REG-09", "--name", "Again"])
    assert "FAIL" in result.output

    result = runner.invoke(args=["registers", "list", "--tenant", "acme"])
    assert "REG-09" in result.output

    result = runner.invoke(args=["registers", "list", "--tenant", "beta"])
    assert "No registers found." in result.output


def test_sessions_and_shift_summary(app, ctx, shift, pos_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["registers", "sessions", "--tenant", "acme", "--status", "active"])
    assert pos_session.session_number in result.output

    result = runner.invoke(args=["shifts", "list", "--tenant", "acme"])
    assert shift.shift_number in result.output

    register_service.close_session(ctx, pos_session.id, 10000)
    register_service.close_shift(ctx, shift.id, 9000)
    result = runner.invoke(args=["shifts", "summary", "--tenant", "acme", str(shift.id)])
    assert "Expected balance:  $100.00" in result.output
    assert "Variance:          $-10.00" in result.output


def test_gift_card_commands(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["giftcards", "issue", "--tenant", "acme", "--number", "GC-77", "--amount-cents", "2500"])
    assert "PASS Issued gift card GC-77 with $25.00" in result.output

    result = runner.invoke(args=["giftcards", "balance", "--tenant", "acme", "GC-77"])
    assert "GC-77: $25.00 (active)" in result.output
    assert "issue" in result.output

    result = runner.invoke(args=["giftcards", "balance", "--tenant", "beta", "GC-77"])
    assert "FAIL Error: Gift card not found" in result.output
