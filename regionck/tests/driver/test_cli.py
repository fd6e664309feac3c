# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Command-line driver: verdict lines, JSON output and exit codes."""

import json

import pytest

from regionck.driver import main

GOOD = """
block fine {
	let s = String::from("a");
	let r = &s;
	print(r);
}
"""

BAD = """
block moved {
	let s = String::from("a");
	let t = s;
	print(s);
}

block fine {
	let n = 1;
	print(n);
}
"""


@pytest.fixture
def write(tmp_path):
	def _write(name, text):
		path = tmp_path / name
		path.write_text(text)
		return path
	return _write


def test_clean_file_exits_zero(write, capsys):
	path = write("good.rck", GOOD)
	assert main([str(path)]) == 0
	out, err = capsys.readouterr()
	assert out.splitlines() == ["block fine: ok"]
	assert err == ""


def test_errors_go_to_stderr_with_location(write, capsys):
	path = write("bad.rck", BAD)
	assert main([str(path)]) == 1
	out, err = capsys.readouterr()
	assert out.splitlines() == ["block moved: rejected", "block fine: ok"]
	(first, *_) = err.splitlines()
	assert first.startswith(f"{path}:")
	assert "error[UseAfterMove]: use of moved value: `s`" in first


def test_json_output(write, capsys):
	path = write("bad.rck", BAD)
	assert main([str(path), "--json"]) == 1
	payload = json.loads(capsys.readouterr().out)
	assert payload["exit_code"] == 1
	moved, fine = payload["results"]
	assert (moved["name"], moved["kind"], moved["ok"]) == ("moved", "block", False)
	(diag,) = moved["diagnostics"]
	assert diag["kind"] == "UseAfterMove"
	assert diag["code"] == "E-USE-AFTER-MOVE"
	assert diag["phase"] == "borrowcheck"
	assert diag["file"] == str(path)
	assert diag["bindings"] == ["s"]
	assert fine["ok"] and fine["diagnostics"] == []


def test_syntax_error_result(write, capsys):
	path = write("broken.rck", "block b { let = 1; }")
	assert main([str(path), "--json"]) == 1
	(res,) = json.loads(capsys.readouterr().out)["results"]
	assert res["kind"] == "source"
	assert res["diagnostics"][0]["kind"] == "SyntaxError"
	assert res["diagnostics"][0]["line"] == 1


def test_several_files_are_independent(write, capsys):
	good = write("good.rck", GOOD)
	bad = write("bad.rck", BAD)
	assert main([str(good), str(bad)]) == 1
	out, _ = capsys.readouterr()
	assert out.splitlines() == ["block fine: ok", "block moved: rejected", "block fine: ok"]


def test_missing_file_exits_two(tmp_path, capsys):
	missing = tmp_path / "absent.rck"
	assert main([str(missing)]) == 2
	assert "cannot read file" in capsys.readouterr().err


def test_fragment_limit_exits_two(write, capsys):
	path = write("bad.rck", BAD)
	assert main([str(path), "--max-fragments", "1"]) == 2
	assert "more than the limit of 1" in capsys.readouterr().err


def test_no_prelude_flag(write, capsys):
	path = write("method.rck", 'block m { let s = String::from("a"); print(s.len()); }')
	assert main([str(path)]) == 0
	capsys.readouterr()
	assert main([str(path), "--no-prelude"]) == 1
	assert "error[UnresolvedName]" in capsys.readouterr().err
