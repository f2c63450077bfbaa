"""tfconf authoring framework: public API.

Users import everything from this single flat namespace::

    from tfconf.framework import load_configuration, parse_type, list_of, NUMBER
"""

from ._types import (
    # Primitive type constants
    ANY,
    BOOL,
    NUMBER,
    STRING,
    # Type constructors
    list_of,
    map_of,
    object_of,
    optional,
    set_of,
    tuple_of,
    # Constraint parser
    parse_type,
    TypeParseError,
)

from ._compilation_helpers import CompileError
from ._compiler import compile_expression, compile_template

from ._loader import LoadError, configuration_from_dict, load_configuration

__all__ = [
    "ANY",
    "BOOL",
    "NUMBER",
    "STRING",
    "list_of",
    "map_of",
    "object_of",
    "optional",
    "set_of",
    "tuple_of",
    "parse_type",
    "TypeParseError",
    "CompileError",
    "compile_expression",
    "compile_template",
    "LoadError",
    "configuration_from_dict",
    "load_configuration",
]
