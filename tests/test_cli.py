import json

from ipagate import cli


def test_check_accepts_local_archive(tmp_path, make_ipa, capsys):
    ipa = tmp_path / "app.ipa"
    ipa.write_bytes(make_ipa("ABC.myapp"))
    rc = cli.main(["check", str(ipa), "--appid", "ABC.myapp", "--json"])
    assert rc == 0
    report = json.loads(capsys.readouterr().out)
    assert report["decisions"][0]["actual"] == "ABC.myapp"
    assert report["members"] == ["Payload/MyApp.app/embedded.mobileprovision"]


def test_check_rejects_mismatch(tmp_path, make_ipa, capsys):
    ipa = tmp_path / "app.ipa"
    ipa.write_bytes(make_ipa("ABC.myapp"))
    rc = cli.main(["check", str(ipa), "--appid", "XYZ.other"])
    assert rc == 2
    out = capsys.readouterr().out
    assert out.startswith("REJECTED (checking)")
    assert "`ABC.myapp` but `XYZ.other` is expected" in out


def test_put_stores_then_reports_duplicate(tmp_path, make_ipa, capsys):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    ipa = tmp_path / "app.ipa"
    ipa.write_bytes(make_ipa("ABC.myapp"))
    args = ["put", str(ipa), "--appid", "ABC.myapp", "--data-dir", str(data_dir)]
    assert cli.main(args) == 0
    stored = capsys.readouterr().out.strip()
    assert stored.startswith(str(data_dir))
    assert cli.main(args) == 2
    assert "already exists" in capsys.readouterr().err


def test_put_requires_data_dir(tmp_path, make_ipa, capsys):
    ipa = tmp_path / "app.ipa"
    ipa.write_bytes(make_ipa())
    rc = cli.main(["put", str(ipa), "--appid", "ABC.myapp", "--data-dir", str(tmp_path / "missing")])
    assert rc == 1
    assert "stat error" in capsys.readouterr().err


def test_serve_refuses_missing_data_dir(tmp_path, capsys, monkeypatch):
    import uvicorn

    def fail_run(*a, **kw):  # pragma: no cover - must not start
        raise AssertionError("server started")

    monkeypatch.setattr(uvicorn, "run", fail_run)
    rc = cli.main(["serve", "--data-dir", str(tmp_path / "missing"), "--appid", "ABC.myapp"])
    assert rc == 1
    assert "stat error" in capsys.readouterr().err


def test_serve_passes_settings_to_uvicorn(tmp_path, monkeypatch):
    import uvicorn
    seen = {}

    def fake_run(app, host, port, log_level):
        seen.update(app=app, host=host, port=port, log_level=log_level)

    monkeypatch.setattr(uvicorn, "run", fake_run)
    rc = cli.main(["serve", "--data-dir", str(tmp_path), "--appid", "ABC.myapp", "--port", "9090", "--debug"])
    assert rc == 0
    assert seen["port"] == 9090
    assert seen["log_level"] == "debug"
    assert seen["app"].state.settings.appid == "ABC.myapp"
