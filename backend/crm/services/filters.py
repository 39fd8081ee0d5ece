"""
Фильтры PocketBase

Построение строк фильтров для запросов к коллекциям и разбор того же
подмножества грамматики для локального хранилища:

    field = 'value'   field != 'value'   field ~ 'value'   field !~ 'value'
    field > 10  field >= 10  field < 10  field <= 10
    field = true      (a = 'x' || b = 'y') && c = false
"""
import re
from typing import Any, Iterable, List, Tuple, Union

# Узлы разобранного фильтра:
#   ("cmp", field, op, value)
#   ("and", [узлы]) / ("or", [узлы])
FilterNode = Tuple

OPERATORS = ("!=", ">=", "<=", "!~", "=", "~", ">", "<")

TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<and>&&)
      | (?P<or>\|\|)
      | (?P<op>!=|>=|<=|!~|=|~|>|<)
      | (?P<string>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<ident>[A-Za-z_][A-Za-z0-9_.]*)
    )
    """,
    re.VERBOSE,
)


# ==================== Построение ====================

def quote(value: Any) -> str:
    """Литерал значения для фильтра"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def eq(field: str, value: Any) -> str:
    return f"{field} = {quote(value)}"


def contains(field: str, value: Any) -> str:
    return f"{field} ~ {quote(value)}"


def one_of(field: str, values: Iterable[Any]) -> str:
    """field равно одному из значений (OR-группа)"""
    values = list(values)
    if not values:
        raise ValueError("one_of: пустой список значений")
    if len(values) == 1:
        return eq(field, values[0])
    return "(" + " || ".join(eq(field, value) for value in values) + ")"


def any_field_contains(fields: Iterable[str], value: Any) -> str:
    return "(" + " || ".join(contains(field, value) for field in fields) + ")"


def join_all(*conditions: str) -> str:
    """Соединить условия через &&, пустые пропускаются"""
    return " && ".join(condition for condition in conditions if condition)


# ==================== Разбор ====================

class FilterSyntaxError(ValueError):
    """Фильтр не соответствует грамматике"""


def _tokenize(expression: str) -> List[Tuple[str, str]]:
    tokens = []
    position = 0
    expression = expression.rstrip()
    while position < len(expression):
        match = TOKEN_RE.match(expression, position)
        if not match or match.end() == position:
            raise FilterSyntaxError(f"Ошибка в фильтре на позиции {position}: {expression!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


def _literal(kind: str, text: str) -> Union[str, int, float, bool, None]:
    if kind == "string":
        body = text[1:-1]
        return re.sub(r"\\(.)", r"\1", body)
    if kind == "number":
        return float(text) if "." in text else int(text)
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    raise FilterSyntaxError(f"Ожидалось значение, получено {text!r}")


class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]]):
        self.tokens = tokens
        self.position = 0

    def peek(self) -> Tuple[str, str]:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return ("end", "")

    def take(self, kind: str) -> str:
        current_kind, text = self.peek()
        if current_kind != kind:
            raise FilterSyntaxError(f"Ожидалось {kind}, получено {text or 'конец строки'!r}")
        self.position += 1
        return text

    def parse(self) -> FilterNode:
        node = self.parse_or()
        if self.peek()[0] != "end":
            raise FilterSyntaxError(f"Лишний текст в фильтре: {self.peek()[1]!r}")
        return node

    def parse_or(self) -> FilterNode:
        nodes = [self.parse_and()]
        while self.peek()[0] == "or":
            self.take("or")
            nodes.append(self.parse_and())
        return nodes[0] if len(nodes) == 1 else ("or", nodes)

    def parse_and(self) -> FilterNode:
        nodes = [self.parse_term()]
        while self.peek()[0] == "and":
            self.take("and")
            nodes.append(self.parse_term())
        return nodes[0] if len(nodes) == 1 else ("and", nodes)

    def parse_term(self) -> FilterNode:
        if self.peek()[0] == "lparen":
            self.take("lparen")
            node = self.parse_or()
            self.take("rparen")
            return node
        field = self.take("ident")
        op = self.take("op")
        kind, text = self.peek()
        if kind not in ("string", "number", "ident"):
            raise FilterSyntaxError(f"Ожидалось значение после {field} {op}")
        self.position += 1
        return ("cmp", field, op, _literal(kind, text))


def parse_filter(expression: str) -> FilterNode:
    """Разобрать строку фильтра; пустая строка -> None"""
    if not expression or not expression.strip():
        return None
    return _Parser(_tokenize(expression)).parse()


def parse_sort(sort: str) -> List[Tuple[str, bool]]:
    """'-date,created' -> [('date', True), ('created', False)] (True = по убыванию)"""
    result = []
    for part in (sort or "").split(","):
        part = part.strip()
        if not part:
            continue
        if part.startswith("-"):
            result.append((part[1:], True))
        else:
            result.append((part.lstrip("+"), False))
    return result
