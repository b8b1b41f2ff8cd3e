import argparse
import logging
import os
import sys

from mlang import Engine, EvalError, f_write
from mlang_reader import Eof, ParseError, make_reader

logger = logging.getLogger(__name__)

# host-facing wrapper: run source text and keep the text of the last run
class Session:
    def __init__(self, engine=None, sugar=False):
        if engine is None:
            engine = Engine()
        self.engine = engine
        self.sugar = sugar
        self._parsed = []
        self._evaluated = []
        self._parse_error = ""
        self._eval_error = ""

    @property
    def parse_result(self):
        return "".join(self._parsed)

    @property
    def eval_result(self):
        return "".join(self._evaluated)

    @property
    def parse_error(self):
        return self._parse_error

    @property
    def eval_error(self):
        return self._eval_error

    # forms run in order until the first parse or evaluation error
    def read_and_eval(self, source, sugar=None):
        if sugar is None:
            sugar = self.sugar
        self._parsed.clear()
        self._evaluated.clear()
        self._parse_error = ""
        self._eval_error = ""
        reader = make_reader(self.engine, source, sugar)
        while True:
            try:
                expr = reader.read()
            except Eof:
                break
            except ParseError as e:
                self._parse_error = str(e)
                break
            self._parsed.append(f_write(expr) + "\n")
            try:
                value = self.engine.eval(expr)
            except EvalError as e:
                self._eval_error = str(e)
                break
            self._evaluated.append(f_write(value) + "\n")
        return not (self._parse_error or self._eval_error)

# parse and evaluate every form on one line, reporting each result or error
def rep(engine, line, sugar=False, file=None):
    if file is None:
        file = sys.stdout
    reader = make_reader(engine, line, sugar)
    ok = True
    while True:
        try:
            expr = reader.read()
        except Eof:
            break
        except ParseError as e:
            # the rest of the line cannot be trusted
            print(f'! {e}', file=file)
            return False
        try:
            value = engine.eval(expr)
        except EvalError as e:
            print(f'! {e}', file=file)
            ok = False
            continue
        print(f' => {f_write(value)}', file=file)
    return ok

def _get_log_level(debug):
    if debug:
        return logging.DEBUG
    level = getattr(logging, os.getenv("LOGLEVEL", "").upper(), None)
    if isinstance(level, int):
        return level
    return logging.WARNING

def _make_argument_parser():
    parser = argparse.ArgumentParser(prog="mlang", description="Evaluate mlang source.")
    parser.add_argument("script", nargs="?", help="file to run; reads lines from stdin when absent or -")
    parser.add_argument("--sugar", action="store_true", help="use the sugared syntax")
    parser.add_argument("--debug", action="store_true", help="log every eval and apply step")
    parser.add_argument("--recursion-limit", type=int, metavar="N",
        help="host recursion limit; bounds how deeply programs may nest calls")
    return parser

def main(argv=None):
    args = _make_argument_parser().parse_args(argv)
    logging.basicConfig(level=_get_log_level(args.debug), format="%(message)s", stream=sys.stderr)
    if args.recursion_limit is not None:
        sys.setrecursionlimit(args.recursion_limit)

    engine = Engine()

    if args.script is not None and args.script != "-":
        logger.info("running %s", args.script)
        with open(args.script) as file:
            text = file.read()
        session = Session(engine, sugar=args.sugar)
        ok = session.read_and_eval(text)
        sys.stdout.write(session.eval_result)
        if not ok:
            print(f'! {session.parse_error or session.eval_error}', file=sys.stderr)
            return 1
        return 0

    if sys.stdin.isatty():
        print(f'? --- mlang {"sugared" if args.sugar else "canonical"} repl ---')
        print(f'? results are prefixed with => and errors with !')
        print(f'? try typing {"add(1, 2)" if args.sugar else "(add 1 2)"}')
    for line in sys.stdin:
        rep(engine, line, sugar=args.sugar)
    return 0

if __name__ == "__main__":
    sys.exit(main())
