import logging

logger = logging.getLogger(__name__)

# owns every value an engine ever allocates; nothing is ever released
class ObjectStore:
    def __init__(self):
        self.objects = []
    def allocate(self, obj):
        self.objects.append(obj)
        return obj
    def __len__(self):
        return len(self.objects)

class Integer:
    def __init__(self, value):
        assert type(value) is int, f'value must be type int, got: {type(value)}'
        self.value = value
    def __repr__(self):
        return f'Integer({self.value})'

class Symbol:
    def __init__(self, name):
        assert type(name) is str, f'name must be type str, got: {type(name)}'
        self.name = name
    def __repr__(self):
        return f'Symbol({self.name!r})'

# list node, call form or association; head and tail may be None (nil)
class Pair:
    def __init__(self, head, tail):
        self.head = head
        self.tail = tail

class Closure:
    def __init__(self, definition, env):
        assert type(definition) is Pair, f'definition must be type Pair, got: {type(definition)}'
        self.definition = definition  # (params . body)
        assert type(env) is Pair, f'env must be type Pair, got: {type(env)}'
        self.env = env  # captured by reference, never copied

class Primitive:
    def __init__(self, func, name, is_fixed):
        assert callable(func), f'primitive function is not callable: {func}'
        self.func = func
        assert type(name) is str, f'name must be type str, got: {type(name)}'
        self.name = name
        # fixed primitives receive their operands unevaluated
        self.is_fixed = bool(is_fixed)

# canonicalizes names to one Symbol per distinct text
class SymbolTable:
    def __init__(self, store):
        self.store = store
        self.symbols = None  # newest first
    def intern(self, name):
        cell = self.symbols
        while cell is not None:
            if cell.head.name == name:
                return cell.head
            cell = cell.tail
        symbol = self.store.allocate(Symbol(name))
        self.symbols = self.store.allocate(Pair(symbol, self.symbols))
        return symbol

class EvalError(Exception):
    @property
    def value(self):
        return self.args[0] if self.args else None
    def __str__(self):
        if not self.args:
            return type(self).__name__
        return f'{type(self).__name__}({f_write(self.args[0])})'

class Undefined(EvalError): pass
class CanNotApply(EvalError): pass
class RequireLong(EvalError): pass
class RequireSymbol(EvalError): pass
class RequirePair(EvalError): pass
class RequireExpr(EvalError): pass
class TooFewArgs(EvalError): pass
class DivideByZero(EvalError): pass
class TooDeep(EvalError): pass

def is_empty_list(obj):
    return type(obj) is Pair and obj.head is None and obj.tail is None

# the global frame is the only cell whose head binding points back at the cell
def is_global_frame(obj):
    return type(obj) is Pair and type(obj.head) is Pair and obj.head.tail is obj

def _car(obj):
    return obj.head if type(obj) is Pair else None

def _cdr(obj):
    return obj.tail if type(obj) is Pair else None

# insert (name . value) right after the frame's head cell
def define(engine, name, value, frame):
    binding = engine.cons(name, value)
    frame.tail = engine.cons(binding, frame.tail)
    return binding

def lookup(name, frame):
    cell = frame
    while type(cell) is Pair:
        binding = cell.head
        if type(binding) is Pair and binding.head is name:
            return binding
        cell = cell.tail
        if cell is frame:
            break
    return None

# scope is an association list pushed for this one application only
def bind_parameters(engine, params, args, env, scope=None):
    while type(scope) is Pair:
        env = engine.cons(scope.head, env)
        scope = scope.tail
    if is_empty_list(params):
        params = None
    while type(params) is Pair:
        name = params.head
        if type(name) is not Symbol:
            raise RequireSymbol(name)
        if type(args) is not Pair:
            raise TooFewArgs()
        env = engine.cons(engine.cons(name, args.head), env)
        params = params.tail
        args = args.tail
    if type(params) is Symbol:
        # variadic tail takes whatever is left
        env = engine.cons(engine.cons(params, args), env)
    elif params is not None:
        raise RequireSymbol(params)
    return env

# recurses on the host stack; Engine.eval reports exhaustion as TooDeep
def f_eval(engine, expr, env):
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("eval %s", f_write(expr))
    if expr is None:
        return None
    if type(expr) is Symbol:
        binding = lookup(expr, env)
        if binding is None:
            raise Undefined(expr)
        return binding.tail
    if type(expr) is Pair:
        operator = f_eval(engine, expr.head, env)
        if type(operator) is Primitive:
            args = expr.tail if operator.is_fixed else evlis(engine, expr.tail, env)
            return f_apply(engine, operator, args, env)
        if type(operator) is Closure:
            return f_apply(engine, operator, evlis(engine, expr.tail, env), env)
        # not a function, so the form is a data list
        return engine.cons(operator, evlis(engine, expr.tail, env))
    return expr

# evaluate operands left to right into a fresh list
def evlis(engine, exprs, env):
    head = last = None
    while exprs is not None:
        if type(exprs) is not Pair:
            raise RequirePair(exprs)
        cell = engine.cons(f_eval(engine, exprs.head, env), None)
        if head is None:
            head = cell
        else:
            last.tail = cell
        last = cell
        exprs = exprs.tail
    return head

def f_apply(engine, func, args, env, scope=None):
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("apply %s to %s", f_write(func), f_write(args))
    if type(func) is Primitive:
        return func.func(engine, args, env)
    if type(func) is Closure:
        call_env = bind_parameters(engine, func.definition.head, args, func.env, scope)
        value = None
        body = func.definition.tail
        while type(body) is Pair:
            value = f_eval(engine, body.head, call_env)
            body = body.tail
        return value
    raise CanNotApply(func)

_ANY = None
_LONG = (Integer, RequireLong)
_LIST = (Pair, RequirePair)
_EXPR = (Closure, RequireExpr)

# take leading arguments, checking presence and then kind of each in turn
def _unpack(args, *kinds):
    values = []
    for kind in kinds:
        if type(args) is not Pair:
            raise TooFewArgs()
        value = args.head
        if kind is not None and type(value) is not kind[0]:
            raise kind[1](value)
        values.append(value)
        args = args.tail
    return values

def _integer_operands(args):
    lhs, rhs = _unpack(args, _ANY, _ANY)
    if type(lhs) is not Integer:
        raise RequireLong(lhs)
    if type(rhs) is not Integer:
        raise RequireLong(rhs)
    return lhs.value, rhs.value

def _primitive_define(engine, args, env):
    name = _car(args)
    if type(name) is not Symbol:
        raise RequireSymbol(name)
    value = f_eval(engine, _car(_cdr(args)), env)
    define(engine, name, value, engine.globals)
    return value

def _primitive_quote(engine, args, env):
    value, = _unpack(args, _ANY)
    return value

def _primitive_lambda(engine, args, env):
    # (params body ...) is already the closure definition
    _unpack(args, _ANY, _ANY)
    return engine.closure(args, env)

def _primitive_lambda_lambda(engine, args, env):
    _unpack(args, _ANY)
    return engine.closure(engine.cons(None, args), env)

def _primitive_get_scope(engine, args, env):
    key, = _unpack(args, _ANY)
    if type(key) is Integer:
        cell = env
        while type(cell) is Pair:
            binding = cell.head
            if type(binding) is Pair and type(binding.head) is Integer and binding.head.value == key.value:
                return binding.tail
            cell = cell.tail
            if cell is env:
                break
    return key

def _primitive_apply(engine, args, env):
    func = _car(args)
    func_args = _car(_cdr(args))
    if is_empty_list(func_args):
        func_args = None
    context = _car(_cdr(_cdr(args)))
    if context is None:
        context = env
    elif type(context) is not Pair:
        raise RequirePair(context)
    return f_apply(engine, func, func_args, context)

def _primitive_add(engine, args, env):
    lhs, rhs = _integer_operands(args)
    return engine.integer(lhs + rhs)

def _primitive_subtract(engine, args, env):
    lhs, rhs = _integer_operands(args)
    return engine.integer(lhs - rhs)

def _primitive_mul(engine, args, env):
    lhs, rhs = _integer_operands(args)
    return engine.integer(lhs * rhs)

def _primitive_div(engine, args, env):
    lhs, rhs = _integer_operands(args)
    if rhs == 0:
        raise DivideByZero(args.tail.head)
    # truncate toward zero like a machine integer
    quotient = abs(lhs) // abs(rhs)
    if (lhs < 0) != (rhs < 0):
        quotient = -quotient
    return engine.integer(quotient)

def _primitive_new_list(engine, args, env):
    return engine.cons(None, None)

def _primitive_list_append(engine, args, env):
    lst, elem = _unpack(args, _LIST, _ANY)
    if is_empty_list(lst):
        lst.head = elem
        return lst
    last = lst
    while last.tail is not None:
        if type(last.tail) is not Pair:
            raise RequirePair(last.tail)
        last = last.tail
    last.tail = engine.cons(elem, None)
    return lst

def _primitive_list_prepend(engine, args, env):
    lst, elem = _unpack(args, _LIST, _ANY)
    if is_empty_list(lst):
        lst.head = elem
        return lst
    # the first cell keeps its identity, so its contents move down
    lst.tail = engine.cons(lst.head, lst.tail)
    lst.head = elem
    return lst

def _primitive_list_count(engine, args, env):
    lst, = _unpack(args, _LIST)
    if is_empty_list(lst):
        return engine.integer(0)
    count = 1
    cell = lst.tail
    while cell is not None:
        if type(cell) is not Pair:
            raise RequirePair(cell)
        count += 1
        cell = cell.tail
    return engine.integer(count)

def _primitive_list_index(engine, args, env):
    lst, index = _unpack(args, _LIST, _LONG)
    remaining = index.value
    if remaining < 0:
        return None
    cell = lst
    while remaining:
        cell = cell.tail
        if cell is None:
            return None
        if type(cell) is not Pair:
            raise RequirePair(cell)
        remaining -= 1
    return cell.head

def _primitive_list_map(engine, args, env):
    lst, func = _unpack(args, _LIST, _EXPR)
    result = engine.cons(None, None)
    if is_empty_list(lst):
        return result
    key = engine.integer(0)
    cell = lst
    out = result
    while True:
        elem = cell.head
        # the element is visible as $0 for this application only
        scope = engine.cons(engine.cons(key, elem), None)
        out.head = f_apply(engine, func, engine.cons(elem, None), env, scope)
        cell = cell.tail
        if cell is None:
            break
        if type(cell) is not Pair:
            raise RequirePair(cell)
        out.tail = out = engine.cons(None, None)
    return result

# name: (is_fixed, routine)
_DEFAULT_PRIMITIVES = {
    "define": (True, _primitive_define),
    "quote": (True, _primitive_quote),
    "lambda": (True, _primitive_lambda),
    "lambda_lambda": (True, _primitive_lambda_lambda),
    "set_scope": (True, _primitive_define),
    "get_scope": (False, _primitive_get_scope),
    "apply": (False, _primitive_apply),
    "lambda_apply": (False, _primitive_apply),
    "add": (False, _primitive_add),
    "subtract": (False, _primitive_subtract),
    "mul": (False, _primitive_mul),
    "div": (False, _primitive_div),
    "new_list": (False, _primitive_new_list),
    "list_append": (False, _primitive_list_append),
    "list_prepend": (False, _primitive_list_prepend),
    "list_count": (False, _primitive_list_count),
    "list_index": (False, _primitive_list_index),
    "list_map": (False, _primitive_list_map),
}

def f_write(obj):
    out = []
    seen = {}
    def _recursive_write(obj, depth):
        if obj is None:
            out.append("nil")
        elif type(obj) is Integer:
            out.append(str(obj.value))
        elif type(obj) is Symbol:
            out.append(f"'{obj.name}'")
        elif type(obj) is Pair:
            if is_global_frame(obj):
                out.append("<globals>")
            elif id(obj) in seen:
                out.append("#"+"."*(depth - seen[id(obj)]))
            elif is_empty_list(obj):
                out.append("[]")
            else:
                remove = []
                out.append("[")
                while True:
                    seen[id(obj)] = depth
                    remove.append(id(obj))
                    _recursive_write(obj.head, depth+1)
                    depth += 1
                    obj = obj.tail
                    if type(obj) is not Pair or id(obj) in seen or is_global_frame(obj):
                        break
                    out.append(", ")
                if obj is not None:
                    out.append(" . ")
                    _recursive_write(obj, depth)
                out.append("]")
                for key in remove:
                    del seen[key]
        elif type(obj) is Closure:
            # parameters, when there are any, then the body forms
            out.append("<lambda")
            if obj.definition.head is not None:
                out.append(" ")
                _recursive_write(obj.definition.head, depth)
            body = obj.definition.tail
            while type(body) is Pair:
                out.append(" ")
                _recursive_write(body.head, depth)
                body = body.tail
            out.append(">")
        elif type(obj) is Primitive:
            out.append(f"<subr {obj.name}>")
        else:
            out.append(f"#unknown{obj!r}")
    try:
        _recursive_write(obj, 0)
    except RecursionError:
        # too deep for the host stack; keep what was written
        out.append(" ...")
    return "".join(out)

# structural equality of trees: integers by value, everything else by identity
def f_equal(a, b):
    while type(a) is Pair and type(b) is Pair:
        if a is b:
            return True
        if not f_equal(a.head, b.head):
            return False
        a, b = a.tail, b.tail
    if type(a) is Integer and type(b) is Integer:
        return a.value == b.value
    return a is b

class Engine:
    def __init__(self, *, primitives=None):
        if primitives is None:
            primitives = _DEFAULT_PRIMITIVES
        self.store = ObjectStore()
        self.symbols = SymbolTable(self.store)
        # global frame is ((globals . <frame>)) so `globals` names itself
        binding = self.cons(self.intern("globals"), None)
        self.globals = self.cons(binding, None)
        binding.tail = self.globals
        for name, (is_fixed, func) in primitives.items():
            define(self, self.intern(name), self.primitive(func, name, is_fixed), self.globals)
        logger.debug("engine ready with %d primitives", len(primitives))

    def intern(self, name):
        return self.symbols.intern(name)

    def integer(self, value):
        return self.store.allocate(Integer(value))

    def cons(self, head, tail):
        return self.store.allocate(Pair(head, tail))

    def closure(self, definition, env):
        return self.store.allocate(Closure(definition, env))

    def primitive(self, func, name, is_fixed):
        return self.store.allocate(Primitive(func, name, is_fixed))

    def lookup(self, name):
        symbol = self.intern(name)
        binding = lookup(symbol, self.globals)
        if binding is None:
            raise Undefined(symbol)
        return binding.tail

    def eval(self, expr, env=None):
        if env is None:
            env = self.globals
        try:
            return f_eval(self, expr, env)
        except RecursionError:
            raise TooDeep() from None

    def apply(self, func, args, env=None):
        if env is None:
            env = self.globals
        try:
            return f_apply(self, func, args, env)
        except RecursionError:
            raise TooDeep() from None
