"""Tests for the ``service-matcher`` command line."""

from __future__ import annotations

import pytest

from service_matcher.cli import main


@pytest.fixture
def workdir(tmp_path, monkeypatch, clean_env):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "links.txt").write_text(
        "https://ci/job/deploy_search/\nhttps://ci/job/deploy_billing/\n", encoding="utf-8"
    )
    (tmp_path / "prod.csv").write_text("Service0,Owner\nbilling,team-a\n", encoding="utf-8")
    (tmp_path / "jira.csv").write_text("Summary,Ticket\nRelease billing now,J-7\n", encoding="utf-8")
    return tmp_path


def test_reconcile_writes_csv(workdir, capsys) -> None:
    code = main([
        "reconcile", "--links", "links.txt", "--services", "prod.csv",
        "--sort", "Service0", "--direction", "desc", "-o", "out.csv",
    ])

    assert code == 0
    lines = (workdir / "out.csv").read_text(encoding="utf-8").split("\n")
    assert lines[0] == '"Service0","Jenkins Link","Environment","Owner"'
    assert [line.split(",")[0] for line in lines[1:]] == ['"search"', '"billing"']
    assert "Wrote 2 rows" in capsys.readouterr().out


def test_tracker_limits_rows_unless_all_rows(workdir) -> None:
    base = ["reconcile", "--links", "links.txt", "--tracker", "jira.csv"]

    assert main(base + ["-o", "changes.csv"]) == 0
    assert len((workdir / "changes.csv").read_text(encoding="utf-8").split("\n")) == 2

    assert main(base + ["--all-rows", "-o", "all.csv"]) == 0
    assert len((workdir / "all.csv").read_text(encoding="utf-8").split("\n")) == 3


def test_links_from_settings_file(workdir) -> None:
    (workdir / "settings.yaml").write_text(
        "deployment_links:\n  - https://ci/job/deploy_auth/\n", encoding="utf-8"
    )
    assert main(["reconcile", "--settings", "settings.yaml", "-o", "out.csv"]) == 0
    assert '"auth"' in (workdir / "out.csv").read_text(encoding="utf-8")


def test_errors_exit_with_status_one(workdir, capsys) -> None:
    assert main(["reconcile", "-o", "out.csv"]) == 1
    assert "Deployment links" in capsys.readouterr().err

    assert main(["reconcile", "--links", "links.txt", "--enrich", "health", "-o", "out.csv"]) == 1
    assert "Health API is not configured" in capsys.readouterr().err
    assert not (workdir / "out.csv").exists()


def test_unknown_enrichment_is_rejected(workdir) -> None:
    with pytest.raises(SystemExit):
        main(["reconcile", "--links", "links.txt", "--enrich", "datadog"])
