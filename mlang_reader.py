import logging

logger = logging.getLogger(__name__)

_DIGITS = frozenset("0123456789")
_IDENTIFIER = frozenset("0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_")
_SPACES = frozenset(" \t\r\n\v\f")
_CLOSERS = {"(": ")", "[": "]"}

class ParseError(Exception):
    @property
    def char(self):
        return self.args[0] if self.args else None
    def __str__(self):
        if not self.args:
            return type(self).__name__
        return f'{type(self).__name__}({self.args[0]!r})'

# this production does not apply here; never escapes Reader.read
class Continue(ParseError): pass
# no more input before a form started
class Eof(ParseError): pass
# input ended inside a form
class UnexpectedEof(ParseError): pass
class Unexpected(ParseError): pass
class UnsupportedChar(ParseError): pass
# nesting ran out of host stack
class TooDeep(ParseError): pass

class Reader:
    def __init__(self, engine, text):
        assert type(text) is str, f'text must be type str, got: {type(text)}'
        self.engine = engine
        self.text = text
        self.pos = 0

    # current character, "" at end of input
    @property
    def curr(self):
        return self.text[self.pos:self.pos+1]

    # consume the current character and return the one after it
    @property
    def next(self):
        if self.pos >= len(self.text):
            raise ValueError("reading past end of input")
        self.pos += 1
        return self.curr

    @property
    def peek(self):
        return self.text[self.pos+1:self.pos+2]

    def take(self):
        char = self.curr
        if not char:
            raise UnexpectedEof()
        self.next
        return char

    def read(self):
        try:
            return self.read_item()
        except Continue:
            if not self.curr:
                raise UnexpectedEof() from None
            raise Unexpected(self.curr) from None
        except RecursionError:
            raise TooDeep() from None

    def read_item(self):
        self.skip_spaces()
        if not self.curr:
            raise Eof()
        return self._read_form()

    # read_item for positions where a form is required
    def read_operand(self):
        try:
            return self.read_item()
        except Eof:
            raise UnexpectedEof() from None

    def _read_form(self):
        raise NotImplementedError

    def skip_spaces(self):
        while True:
            if self.curr in _SPACES:
                self.next
            elif self.curr == ";":  # comments take up the rest of the line
                while self.curr and self.curr != "\n":
                    self.next
            else:
                break

    def read_number(self, lead=None):
        if lead is None:
            if not self.curr:
                raise UnexpectedEof()
            if self.curr not in _DIGITS:
                raise Continue()
            lead = self.take()
        digits = [lead]
        while self.curr in _DIGITS:
            digits.append(self.take())
        return self.engine.integer(int("".join(digits)))

    # quoted symbols end at their closing ' and reject anything else
    def read_symbol(self, quoted=False):
        if not self.curr:
            raise UnexpectedEof()
        if self.curr not in _IDENTIFIER:
            if quoted:
                raise UnsupportedChar(self.curr)
            raise Unexpected(self.curr)
        chars = []
        while self.curr in _IDENTIFIER:
            chars.append(self.take())
        if quoted:
            char = self.take()
            if char != "'":
                raise UnsupportedChar(char)
        return self.engine.intern("".join(chars))

    def read_list(self, delimiter):
        head = last = None
        while True:
            self.skip_spaces()
            if self.curr == ",":
                self.next
                continue
            if self.curr == delimiter:
                self.next
                break
            cell = self.engine.cons(self.read_operand(), None)
            if head is None:
                head = cell
            else:
                last.tail = cell
            last = cell
        if head is None:
            # empty list value, distinct from nil
            head = self.engine.cons(None, None)
        return head

    def form(self, name, *items):
        result = None
        for item in reversed(items):
            result = self.engine.cons(item, result)
        return self.engine.cons(self.engine.intern(name), result)

class CanonicalReader(Reader):
    def _read_form(self):
        char = self.curr
        if char in _CLOSERS:
            self.next
            return self.read_list(_CLOSERS[char])
        if char in _DIGITS or char == "-" and self.peek in _DIGITS:
            self.next
            return self.read_number(char)
        if char == "'":
            self.next
            return self.form("quote", self.read_symbol(quoted=True))
        return self.read_symbol()

class SugarReader(CanonicalReader):
    def _read_form(self):
        char = self.curr
        if char == "$":
            self.next
            return self._read_scope()
        if char == "@":
            self.next
            return self._read_at()
        if char in _IDENTIFIER and char not in _DIGITS:
            symbol = self.read_symbol()
            if self.curr != "(":
                return symbol
            self.next
            # name() passes the empty list, so the call has one operand
            return self.engine.cons(symbol, self.read_list(")"))
        return super()._read_form()

    # $name, $0 and $name=expr
    def _read_scope(self):
        try:
            name = self.read_number()
        except Continue:
            name = self.read_symbol()
        self.skip_spaces()
        if self.curr == "=":
            self.next
            return self.form("set_scope", name, self.read_operand())
        return self.form("get_scope", name)

    # @[...] and @->{ ... }
    def _read_at(self):
        char = self.take()
        if char == "[":
            return self.read_list("]")
        if char == "-":
            char = self.take()
            if char == ">":
                self.skip_spaces()
                char = self.take()
                if char == "{":
                    # a single form stands for itself, more than one is one list form
                    body = self.read_list("}")
                    if body.tail is None:
                        body = body.head
                    return self.form("lambda_lambda", body)
        raise Unexpected(char)

def make_reader(engine, text, sugar=False):
    if sugar:
        return SugarReader(engine, text)
    return CanonicalReader(engine, text)

def read_all(engine, text, sugar=False):
    reader = make_reader(engine, text, sugar)
    while True:
        try:
            expr = reader.read()
        except Eof:
            return
        logger.debug("read form ending at offset %d", reader.pos)
        yield expr
