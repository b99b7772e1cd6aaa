from mailbox_e2e.__main__ import main
from mailbox_e2e.models import Outcome, Report, TestResult


def test_banner(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert "Anytime Mailbox Selenium Tests" in out
    assert "pytest e2e" in out
    for test_name in (
        "test_successful_location_search",
        "test_unsuccessful_location_search",
        "test_failed_login",
    ):
        assert test_name in out


def test_export_report(tmp_path, capsys):
    report = Report(title="Rerendered", results=[TestResult(test_name="a", outcome=Outcome.success)])
    input_json = tmp_path / "in" / "report.json"
    input_json.parent.mkdir()
    input_json.write_text(report.model_dump_json())
    output_dir = tmp_path / "out"
    output_dir.mkdir()

    assert main(["export-report", "-i", str(input_json), "-o", str(output_dir)]) == 0
    assert f"Exported artifacts to {output_dir}" in capsys.readouterr().out
    assert "Rerendered" in (output_dir / "index.html").read_text()
    assert (output_dir / "report.json").exists()


def test_export_report_in_place(tmp_path):
    report = Report(title="In place", results=[])
    input_json = tmp_path / "report.json"
    input_json.write_text(report.model_dump_json())
    main(["export-report", "-i", str(input_json)])
    assert (tmp_path / "index.html").exists()
