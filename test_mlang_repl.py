import io
import logging
import sys

import mlang as ml
import mlang_repl as repl

def test_session_buffers():
    session = repl.Session()
    assert session.read_and_eval("(define x 2) (add x 3)")
    assert session.parse_result == "['define', 'x', 2]\n['add', 'x', 3]\n"
    assert session.eval_result == "2\n5\n"
    assert session.parse_error == ""
    assert session.eval_error == ""

def test_session_stops_at_eval_error():
    session = repl.Session()
    assert not session.read_and_eval("(add 1 2) nope (add 3 4)")
    assert session.eval_result == "3\n"
    assert session.parse_result == "['add', 1, 2]\n'nope'\n"
    assert session.eval_error == "Undefined('nope')"
    assert session.parse_error == ""

def test_session_stops_at_parse_error():
    session = repl.Session()
    assert not session.read_and_eval("(add 1 2) ) (add 3 4)")
    assert session.eval_result == "3\n"
    assert session.parse_error == "Unexpected(')')"
    # a new run starts from empty buffers but keeps the engine
    assert session.read_and_eval("(define y 1)")
    assert session.parse_error == ""
    assert session.eval_result == "1\n"
    assert session.engine.lookup("y").value == 1

def test_session_sugar():
    session = repl.Session(sugar=True)
    assert session.read_and_eval("$x=add(1, 2) mul($x, $x)")
    assert session.eval_result == "3\n9\n"
    assert session.read_and_eval("(mul x 2)", sugar=False)
    assert session.eval_result == "6\n"

def test_sugar_program():
    session = repl.Session(sugar=True)
    assert session.read_and_eval('''
$l=list_append(list_append(new_list(), 1), 2)
list_map($l, @->{ add($0, 10) })
$double=lambda((v), mul(v, 2))
list_map($l, $double)
apply($double, @[21])
''')
    assert session.eval_result.splitlines()[1:] == ["[11, 12]", "<lambda ['v'] ['mul', 'v', 2]>", "[2, 4]", "42"]

def test_rep():
    engine = ml.Engine()
    out = io.StringIO()
    assert not repl.rep(engine, "(add 1 2) nope (mul 2 3)\n", file=out)
    assert out.getvalue() == " => 3\n! Undefined('nope')\n => 6\n"
    out = io.StringIO()
    assert not repl.rep(engine, "(add 1 2) ) (mul 2 3)", file=out)
    assert out.getvalue() == " => 3\n! Unexpected(')')\n"
    out = io.StringIO()
    assert repl.rep(engine, "   ", file=out)
    assert out.getvalue() == ""

def test_deep_nesting_is_reported():
    depth = sys.getrecursionlimit()
    engine = ml.Engine()
    out = io.StringIO()
    assert not repl.rep(engine, "(" * depth + ")" * depth + " (add 1 2)", file=out)
    assert out.getvalue() == "! TooDeep\n"
    out = io.StringIO()
    assert repl.rep(engine, "(add 1 2)", file=out)
    assert out.getvalue() == " => 3\n"
    session = repl.Session(engine)
    assert not session.read_and_eval("[" * depth + "]" * depth)
    assert session.parse_error == "TooDeep"
    assert session.read_and_eval("(add 2 2)")
    assert session.eval_result == "4\n"

def test_main_reads_lines(monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO("(define x 4)\n(add x 1)\n(oops\n(add x 2)\n"))
    assert repl.main([]) == 0
    assert capsys.readouterr().out == " => 4\n => 5\n! UnexpectedEof\n => 6\n"

def test_main_sugar(monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO("add(1, 2)\n"))
    assert repl.main(["--sugar", "-"]) == 0
    assert capsys.readouterr().out == " => 3\n"

def test_main_script(tmp_path, capsys):
    script = tmp_path / "prog.ml"
    script.write_text("(define sq (lambda (n) (mul n n)))\n(sq\n  7)\n")
    assert repl.main([str(script)]) == 0
    assert capsys.readouterr().out == "<lambda ['n'] ['mul', 'n', 'n']>\n49\n"

def test_main_script_error(tmp_path, capsys):
    script = tmp_path / "bad.ml"
    script.write_text("(add 1 2)\n(div 1 0)\n(add 3 4)\n")
    assert repl.main([str(script)]) == 1
    captured = capsys.readouterr()
    assert captured.out == "3\n"
    assert "! DivideByZero(0)" in captured.err

def test_log_level(monkeypatch):
    monkeypatch.delenv("LOGLEVEL", raising=False)
    assert repl._get_log_level(False) == logging.WARNING
    assert repl._get_log_level(True) == logging.DEBUG
    monkeypatch.setenv("LOGLEVEL", "info")
    assert repl._get_log_level(False) == logging.INFO
    monkeypatch.setenv("LOGLEVEL", "chatty")
    assert repl._get_log_level(False) == logging.WARNING
