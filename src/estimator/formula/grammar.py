"""Lark grammar definition for estimator formulas.

This grammar supports:
- Arithmetic: +, -, *, / and unary minus/plus
- Comparison: ==, !=, <, >, <=, >=
- Identifiers: field, parameter, material and constant names
- Dotted references: material.property, field.property, out.output (no spaces)
- Function calls: name(arg1, arg2, ...)
- Numeric literals

Precedence (highest first): unary minus, * /, + -, comparisons.
"""

FORMULA_GRAMMAR = r"""
    ?start: expression

    ?expression: comparison

    ?comparison: additive
        | comparison "==" additive -> eq
        | comparison "!=" additive -> ne
        | comparison "<" additive -> lt
        | comparison ">" additive -> gt
        | comparison "<=" additive -> le
        | comparison ">=" additive -> ge

    ?additive: multiplicative
        | additive "+" multiplicative -> add
        | additive "-" multiplicative -> sub

    ?multiplicative: unary
        | multiplicative "*" unary -> mul
        | multiplicative "/" unary -> div

    ?unary: atom
        | "-" unary -> neg
        | "+" unary -> pos

    ?atom: NUMBER -> number
        | DOTTED_NAME -> property_ref
        | IDENTIFIER -> variable
        | function_call
        | "(" expression ")"

    function_call: IDENTIFIER "(" [arguments] ")"

    arguments: expression ("," expression)*

    IDENTIFIER: /[A-Za-z_][A-Za-z0-9_]*/

    // base.property as one token, so no whitespace around the dot
    DOTTED_NAME.2: /[A-Za-z_][A-Za-z0-9_]*\.[A-Za-z_][A-Za-z0-9_]*/

    // Number literals (integer or decimal, with optional scientific notation)
    // Note: negative sign is handled by unary operator, not here
    NUMBER: /(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?/

    %import common.WS
    %ignore WS
"""
