"""Built-in functions available in expressions.

Each entry of ``FUNCTIONS`` is a plain callable taking already-evaluated
arguments. Argument problems raise ``ValueError``/``TypeError``; the
evaluator reports them as ``FunctionCallError``.

``can`` and ``try`` need unevaluated arguments and live in the evaluator
(see ``LAZY_FUNCTIONS``).
"""

from __future__ import annotations

import ipaddress
import json
import math
import re
from collections.abc import Callable

from ._values import (
    contains_value,
    is_number,
    normalize_number,
    to_display,
    type_name_of,
    values_equal,
)

LAZY_FUNCTIONS = frozenset({"can", "try"})


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------

def _expect_list(value: object, what: str = "argument") -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    raise TypeError(f"{what} must be a list, got {type_name_of(value)}")


def _expect_map(value: object, what: str = "argument") -> dict:
    if isinstance(value, dict):
        return value
    raise TypeError(f"{what} must be a map, got {type_name_of(value)}")


def _expect_string(value: object, what: str = "argument") -> str:
    if isinstance(value, str):
        return value
    if is_number(value) or isinstance(value, bool):
        return to_display(value)
    raise TypeError(f"{what} must be a string, got {type_name_of(value)}")


def _expect_number(value: object, what: str = "argument") -> int | float:
    if is_number(value):
        return value
    if isinstance(value, str):
        return _tonumber(value)
    raise TypeError(f"{what} must be a number, got {type_name_of(value)}")


def _expect_int(value: object, what: str = "argument") -> int:
    number = _expect_number(value, what)
    if isinstance(number, float) and not number.is_integer():
        raise ValueError(f"{what} must be a whole number, got {number}")
    return int(number)


def _numbers(args: tuple) -> list[int | float]:
    # min(var.sizes) reads better than min(var.sizes...), accept both
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        args = tuple(args[0])
    if not args:
        raise ValueError("must have at least one argument")
    return [_expect_number(a) for a in args]


# ---------------------------------------------------------------------------
# Collection functions
# ---------------------------------------------------------------------------

def _length(value: object) -> int:
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    raise TypeError(f"cannot take the length of {type_name_of(value)}")


def _contains(collection: object, value: object) -> bool:
    # Maps test their keys and strings their substrings, as `in` does
    if isinstance(collection, dict):
        return _expect_string(value, "key") in collection
    if isinstance(collection, str):
        return _expect_string(value) in collection
    return contains_value(_expect_list(collection, "first argument"), value)


def _as_bools(values: object) -> list[bool]:
    result = []
    for item in _expect_list(values):
        if isinstance(item, bool):
            result.append(item)
        elif item in ("true", "false"):
            result.append(item == "true")
        else:
            raise TypeError(f"elements must be bool, got {type_name_of(item)}")
    return result


def _alltrue(values: object) -> bool:
    return all(_as_bools(values))


def _anytrue(values: object) -> bool:
    return any(_as_bools(values))


def _keys(mapping: object) -> list[str]:
    return sorted(_expect_map(mapping))


def _values(mapping: object) -> list:
    m = _expect_map(mapping)
    return [m[k] for k in sorted(m)]


_NO_DEFAULT = object()


def _lookup(mapping: object, key: object, default: object = _NO_DEFAULT) -> object:
    m = _expect_map(mapping, "first argument")
    key = _expect_string(key, "key")
    if key in m:
        return m[key]
    if default is _NO_DEFAULT:
        raise KeyError(f"the given key {json.dumps(key)} does not exist in the map")
    return default


def _merge(*maps: object) -> dict:
    result: dict = {}
    for m in maps:
        if m is None:
            continue
        result.update(_expect_map(m))
    return result


def _concat(*lists: object) -> list:
    result: list = []
    for lst in lists:
        result.extend(_expect_list(lst))
    return result


def _distinct(values: object) -> list:
    result: list = []
    for item in _expect_list(values):
        if not contains_value(result, item):
            result.append(item)
    return result


def _flatten(values: object) -> list:
    result: list = []
    for item in _expect_list(values):
        if isinstance(item, (list, tuple)):
            result.extend(_flatten(item))
        else:
            result.append(item)
    return result


def _compact(values: object) -> list:
    return [v for v in _expect_list(values) if v is not None and v != ""]


def _coalesce(*values: object) -> object:
    for value in values:
        if value is not None and value != "":
            return value
    raise ValueError("no non-null, non-empty-string arguments")


def _element(values: object, index: object) -> object:
    items = _expect_list(values)
    if not items:
        raise IndexError("cannot use element function with an empty list")
    return items[_expect_int(index, "index") % len(items)]


def _index(values: object, value: object) -> int:
    for i, item in enumerate(_expect_list(values)):
        if values_equal(item, value):
            return i
    raise ValueError("item not found")


def _one(values: object) -> object:
    items = _expect_list(values)
    if len(items) > 1:
        raise ValueError(f"must be a list with no more than one element, got {len(items)}")
    return items[0] if items else None


def _range(*args: object) -> list:
    nums = [_expect_number(a) for a in args]
    if len(nums) == 1:
        start, limit, step = 0, nums[0], 1
    elif len(nums) == 2:
        start, limit = nums
        step = 1 if limit >= start else -1
    elif len(nums) == 3:
        start, limit, step = nums
    else:
        raise ValueError("must have one, two, or three arguments")
    if step == 0:
        raise ValueError("step must not be zero")
    result = []
    current = start
    while (step > 0 and current < limit) or (step < 0 and current > limit):
        result.append(normalize_number(current))
        current += step
        if len(result) > 1024:
            raise ValueError("more than 1024 values were generated")
    return result


def _reverse(values: object) -> list:
    return list(reversed(_expect_list(values)))


def _sort(values: object) -> list:
    return sorted(_expect_string(v, "element") for v in _expect_list(values))


def _zipmap(keys: object, values: object) -> dict:
    key_list = _expect_list(keys, "keys")
    value_list = _expect_list(values, "values")
    if len(key_list) != len(value_list):
        raise ValueError(
            f"number of keys ({len(key_list)}) does not match number of "
            f"values ({len(value_list)})"
        )
    return {_expect_string(k, "key"): v for k, v in zip(key_list, value_list)}


def _sum(values: object) -> int | float:
    items = _expect_list(values)
    if not items:
        raise ValueError("cannot sum an empty list")
    return normalize_number(sum(_expect_number(v) for v in items))


# ---------------------------------------------------------------------------
# String functions
# ---------------------------------------------------------------------------

def _join(separator: object, values: object) -> str:
    sep = _expect_string(separator, "separator")
    return sep.join(_expect_string(v, "element") for v in _expect_list(values))


def _split(separator: object, text: object) -> list[str]:
    sep = _expect_string(separator, "separator")
    text = _expect_string(text)
    if text == "":
        return [""]
    return text.split(sep)


def _substr(text: object, offset: object, length: object) -> str:
    text = _expect_string(text)
    start = _expect_int(offset, "offset")
    size = _expect_int(length, "length")
    if start < 0:
        start = max(len(text) + start, 0)
    if size < 0:
        return text[start:]
    return text[start:start + size]


def _replace(text: object, search: object, replacement: object) -> str:
    text = _expect_string(text)
    search = _expect_string(search, "substring")
    replacement = _expect_string(replacement, "replacement")
    if len(search) > 1 and search.startswith("/") and search.endswith("/"):
        # $1 / ${name} placeholders become Python group references
        python_repl = re.sub(r"\$\{?(\w+)\}?", r"\\g<\1>", replacement)
        return re.sub(search[1:-1], python_repl, text)
    return text.replace(search, replacement)


def _trim(text: object, chars: object) -> str:
    return _expect_string(text).strip(_expect_string(chars, "cutset"))


def _trimprefix(text: object, prefix: object) -> str:
    return _expect_string(text).removeprefix(_expect_string(prefix))


def _trimsuffix(text: object, suffix: object) -> str:
    return _expect_string(text).removesuffix(_expect_string(suffix))


_FORMAT_VERB_RE = re.compile(r"%(?:(%)|([-+ 0]*)(\d*)(?:\.(\d+))?([sdfvqt]))")


def _format(spec: object, *args: object) -> str:
    spec = _expect_string(spec, "format")
    remaining = list(args)

    def _next_arg() -> object:
        if not remaining:
            raise ValueError("not enough arguments for format string")
        return remaining.pop(0)

    def _render(match: re.Match) -> str:
        if match.group(1):
            return "%"
        flags, width, precision, verb = match.group(2, 3, 4, 5)
        arg = _next_arg()
        if verb == "d":
            body = str(_expect_int(arg))
        elif verb == "f":
            body = f"{_expect_number(arg):.{precision or 6}f}"
        elif verb == "q":
            body = json.dumps(_expect_string(arg))
        elif verb == "t":
            if not isinstance(arg, bool):
                raise TypeError(f"%t requires a bool, got {type_name_of(arg)}")
            body = to_display(arg)
        else:
            body = to_display(arg)
        if width:
            align = "<" if "-" in flags else ">"
            fill = "0" if "0" in flags and align == ">" else " "
            body = f"{body:{fill}{align}{width}}"
        return body

    result = _FORMAT_VERB_RE.sub(_render, spec)
    if remaining:
        raise ValueError(f"too many arguments; only {len(args) - len(remaining)} used")
    return result


# ---------------------------------------------------------------------------
# Regular expressions
# ---------------------------------------------------------------------------

def _match_result(pattern: re.Pattern, match: re.Match) -> object:
    if pattern.groupindex:
        return match.groupdict()
    if pattern.groups:
        return list(match.groups())
    return match.group(0)


def _regex(pattern: object, text: object) -> object:
    compiled = re.compile(_expect_string(pattern, "pattern"))
    match = compiled.search(_expect_string(text))
    if match is None:
        raise ValueError("pattern did not match any part of the given string")
    return _match_result(compiled, match)


def _regexall(pattern: object, text: object) -> list:
    compiled = re.compile(_expect_string(pattern, "pattern"))
    return [
        _match_result(compiled, m)
        for m in compiled.finditer(_expect_string(text))
    ]


# ---------------------------------------------------------------------------
# Numeric functions
# ---------------------------------------------------------------------------

def _min(*args: object) -> int | float:
    return min(_numbers(args))


def _max(*args: object) -> int | float:
    return max(_numbers(args))


def _abs(value: object) -> int | float:
    return abs(_expect_number(value))


def _ceil(value: object) -> int:
    return math.ceil(_expect_number(value))


def _floor(value: object) -> int:
    return math.floor(_expect_number(value))


def _pow(base: object, exponent: object) -> int | float:
    return normalize_number(_expect_number(base) ** _expect_number(exponent))


def _signum(value: object) -> int:
    number = _expect_number(value)
    return (number > 0) - (number < 0)


def _parseint(text: object, base: object) -> int:
    return int(_expect_string(text), _expect_int(base, "base"))


# ---------------------------------------------------------------------------
# Type conversion
# ---------------------------------------------------------------------------

def _tonumber(value: object) -> int | float | None:
    if value is None:
        return None
    if is_number(value):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return normalize_number(float(value))
        except ValueError:
            raise ValueError(f"cannot convert {json.dumps(value)} to number") from None
    raise TypeError(f"cannot convert {type_name_of(value)} to number")


def _tostring(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, (str, bool)) or is_number(value):
        return to_display(value)
    raise TypeError(f"cannot convert {type_name_of(value)} to string")


def _tobool(value: object) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    if value in ("true", "false"):
        return value == "true"
    raise TypeError(f"cannot convert {type_name_of(value)} to bool")


def _tolist(value: object) -> list:
    return _expect_list(value)


def _tomap(value: object) -> dict:
    return dict(_expect_map(value))


def _jsonencode(value: object) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _jsondecode(text: object) -> object:
    return json.loads(_expect_string(text))


# ---------------------------------------------------------------------------
# Network functions
# ---------------------------------------------------------------------------

def _cidrhost(prefix: object, hostnum: object) -> str:
    network = ipaddress.ip_network(_expect_string(prefix, "prefix"), strict=False)
    host = _expect_int(hostnum, "hostnum")
    if host < 0:
        host += network.num_addresses
    if not 0 <= host < network.num_addresses:
        raise ValueError(f"prefix {network} has no host number {hostnum}")
    return str(network.network_address + host)


def _cidrnetmask(prefix: object) -> str:
    network = ipaddress.ip_network(_expect_string(prefix, "prefix"), strict=False)
    if network.version != 4:
        raise ValueError("only IPv4 networks have a netmask")
    return str(network.netmask)


def _cidrsubnet(prefix: object, newbits: object, netnum: object) -> str:
    network = ipaddress.ip_network(_expect_string(prefix, "prefix"), strict=False)
    bits = _expect_int(newbits, "newbits")
    index = _expect_int(netnum, "netnum")
    new_prefixlen = network.prefixlen + bits
    if bits < 0 or new_prefixlen > network.max_prefixlen:
        raise ValueError(
            f"insufficient address space to extend prefix of {network.prefixlen} by {bits}"
        )
    if not 0 <= index < 2 ** bits:
        raise ValueError(f"prefix extension does not accommodate subnet number {netnum}")
    shift = network.max_prefixlen - new_prefixlen
    address = int(network.network_address) + (index << shift)
    return str(type(network)((address, new_prefixlen)))


FUNCTIONS: dict[str, Callable[..., object]] = {
    # collections
    "length": _length,
    "contains": _contains,
    "alltrue": _alltrue,
    "anytrue": _anytrue,
    "keys": _keys,
    "values": _values,
    "lookup": _lookup,
    "merge": _merge,
    "concat": _concat,
    "distinct": _distinct,
    "flatten": _flatten,
    "compact": _compact,
    "coalesce": _coalesce,
    "element": _element,
    "index": _index,
    "one": _one,
    "range": _range,
    "reverse": _reverse,
    "sort": _sort,
    "zipmap": _zipmap,
    "sum": _sum,
    # strings
    "join": _join,
    "split": _split,
    "lower": lambda s: _expect_string(s).lower(),
    "upper": lambda s: _expect_string(s).upper(),
    "title": lambda s: _expect_string(s).title(),
    "trimspace": lambda s: _expect_string(s).strip(),
    "trim": _trim,
    "trimprefix": _trimprefix,
    "trimsuffix": _trimsuffix,
    "startswith": lambda s, p: _expect_string(s).startswith(_expect_string(p)),
    "endswith": lambda s, p: _expect_string(s).endswith(_expect_string(p)),
    "strcontains": lambda s, p: _expect_string(p) in _expect_string(s),
    "substr": _substr,
    "replace": _replace,
    "format": _format,
    "regex": _regex,
    "regexall": _regexall,
    # numbers
    "min": _min,
    "max": _max,
    "abs": _abs,
    "ceil": _ceil,
    "floor": _floor,
    "pow": _pow,
    "signum": _signum,
    "parseint": _parseint,
    # type conversion
    "tonumber": _tonumber,
    "tostring": _tostring,
    "tobool": _tobool,
    "tolist": _tolist,
    "toset": _distinct,
    "tomap": _tomap,
    "jsonencode": _jsonencode,
    "jsondecode": _jsondecode,
    # network
    "cidrhost": _cidrhost,
    "cidrnetmask": _cidrnetmask,
    "cidrsubnet": _cidrsubnet,
}
