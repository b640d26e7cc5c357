import pytest

from aedmap.cli import main


def test_cli_help(capsys):
    code = main([])
    captured = capsys.readouterr()
    assert code == 0
    assert "aedmap" in captured.out
    assert "view" in captured.out
    assert "regions" in captured.out


def test_regions_reports_unavailable_dataset(tmp_path, capsys):
    code = main(["--data", str(tmp_path / "missing.geojson"), "regions"])
    assert code == 1
    assert "Dataset unavailable" in capsys.readouterr().out


def test_view_requires_both_coordinates(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["view", "--lat", "35.9"])
    assert excinfo.value.code == 2
    assert "--lat and --lon must be given together" in capsys.readouterr().err
