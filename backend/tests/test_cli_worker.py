from conftest import upload

from models import db
from models.statement_model import Statement, StatementState
from statements import status

CSV = (
    "Date,Description,Amount\n"
    "2024-03-01,Whole Foods Market,-82.10\n"
    "2024-03-02,Netflix Subscription,-15.99\n"
)


def _failed_statement(client, auth, app):
    sid = upload(client, auth, CSV).get_json()["upload_id"]
    with app.app_context():
        status.claim(sid)
        status.fail(sid, StatementState.EXTRACTING, "storage offline")
    return sid


def _state(app, sid):
    with app.app_context():
        s = db.session.get(Statement, sid)
        return s.status, s.processing_stage


def test_retry_failed_without_run_only_resets(client, auth, app):
    sid = _failed_statement(client, auth, app)
    result = app.test_cli_runner().invoke(args=["statements", "retry-failed"])
    assert result.exit_code == 0, result.output
    assert f"Reset 1 statement(s): {sid}" in result.output
    assert _state(app, sid) == ("PENDING", "UPLOADED")


def test_retry_failed_with_run_completes(client, auth, app):
    sid = _failed_statement(client, auth, app)
    result = app.test_cli_runner().invoke(args=["statements", "retry-failed", "--run"])
    assert result.exit_code == 0, result.output
    assert "Reset 1 statement(s)" in result.output
    assert f"Statement {sid}: COMPLETED (2/2 records)" in result.output
    assert _state(app, sid) == ("COMPLETED", "DONE")


def test_retry_failed_for_another_user_touches_nothing(client, auth, app):
    sid = _failed_statement(client, auth, app)
    result = app.test_cli_runner().invoke(args=["statements", "retry-failed", "--user-id", "999"])
    assert "Reset 0 statement(s): -" in result.output
    assert _state(app, sid) == ("FAILED", "EXTRACTING")


def test_process_command(client, auth, app):
    sid = upload(client, auth, CSV).get_json()["upload_id"]
    runner = app.test_cli_runner()

    result = runner.invoke(args=["statements", "process", str(sid)])
    assert result.exit_code == 0, result.output
    assert f"Statement {sid}: COMPLETED (2/2 records)" in result.output

    # A second run finds it no longer PENDING.
    again = runner.invoke(args=["statements", "process", str(sid)])
    assert again.exit_code == 0
    assert f"Statement {sid}:" in again.output
    assert "COMPLETED (" not in again.output

    missing = runner.invoke(args=["statements", "process", "9999"])
    assert "not found" in missing.output


def test_worker_skips_a_statement_another_run_holds(client, auth, app):
    sid = upload(client, auth, CSV).get_json()["upload_id"]
    with app.app_context():
        status.claim(sid)

    worker = app.extensions["statement_worker"]
    assert worker.submit(sid).result(timeout=10) is None
    assert _state(app, sid) == ("PROCESSING", "EXTRACTING")


def test_worker_processes_a_pending_statement(client, auth, app):
    sid = upload(client, auth, CSV).get_json()["upload_id"]
    app.extensions["statement_worker"].submit(sid).result(timeout=10)
    assert _state(app, sid) == ("COMPLETED", "DONE")
