# Copyright (C) 2018-'25  Frank Sachsenheim
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
The handlers of XSLT instructions. Each handler is called with the running
:class:`_transmute.xslt.processor.Transformation`, the instruction element and the
evaluation context. Results are written to the transformation's output builder.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Optional

from _transmute.exceptions import (
    XPathEvaluationError,
    XPathParsingError,
    XSLTDynamicError,
    XSLTValidationError,
)
from _transmute.grammar import _is_ncname, _is_qualified_name
from _transmute.names import split_qualified_name
from _transmute.nodes import (
    AttributeNode,
    CommentNode,
    DocumentFragmentNode,
    DocumentNode,
    ElementNode,
    NodeBase,
    ProcessingInstructionNode,
    TextNode,
)
from _transmute.plugins import plugin_manager
from _transmute.xpath.context import ScopeKey
from _transmute.xpath.functions import round_half_up
from _transmute.xpath.formatting import format_number_sequence
from _transmute.xpath.extended_functions import compile_regex
from _transmute.xpath.parser import parse
from _transmute.xpath.values import (
    EMPTY,
    MapValue,
    NumberValue,
    StringValue,
    Value,
    atomize,
    items_of,
    make_sequence,
)
from _transmute.xslt.avt import evaluate_value_template
from _transmute.xslt.output import OutputBuilder
from _transmute.xslt.patterns import compile_pattern
from _transmute.xslt.processor import IterationState, _is_yes, value_first
from _transmute.xslt.sorting import (
    reparented_for_iteration,
    share_one_parent,
    sort_order,
)
from _transmute.xslt.stylesheet import is_xslt_element, xslt_children

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Item
    from _transmute.xslt.patterns import Pattern
    from _transmute.xslt.processor import Transformation


logger = logging.getLogger(__name__)

register = plugin_manager.register_xslt_instruction

_pattern: Callable[[str], Pattern] = lru_cache(maxsize=64)(compile_pattern)


# helpers


def _item_string(item: Item) -> str:
    if isinstance(item, NodeBase):
        return item.string_value
    return item.to_string()


def _emit(transformation: Transformation, element: ElementNode, context: ExprContext):
    """Adds the items that the ``select`` attribute yields or executes the content."""
    if (select := element.get_attribute("select")) is None:
        transformation.execute_children(element, context)
        return
    output = transformation.output
    for item in items_of(transformation.evaluate(element, select, context)):
        output.add_item(item)


def _sequence(
    transformation: Transformation, element: ElementNode, context: ExprContext
) -> list[Item]:
    """Returns the items that the ``select`` attribute or the content yield."""
    if (select := element.get_attribute("select")) is not None:
        return list(items_of(transformation.evaluate(element, select, context)))
    with transformation.output.capture(collect_items=True) as capture:
        transformation.execute_children(element, context)
    assert capture.items is not None
    return capture.items


def _string_content(
    transformation: Transformation,
    element: ElementNode,
    context: ExprContext,
    default_separator: Optional[str] = None,
) -> str:
    """
    Returns the string that the ``select`` attribute or the content of an element
    produce. With XPath 2.0 and later the selected items are joined by the
    ``separator``, a single space by default.
    """
    if (select := element.get_attribute("select")) is not None:
        value = transformation.evaluate(element, select, context)
        if transformation.xpath_version < 2.0:
            return value.to_string()
        separator = transformation.attribute_value(
            element,
            "separator",
            context,
            " " if default_separator is None else default_separator,
        )
        assert separator is not None
        return separator.join(_item_string(x) for x in items_of(value))

    with transformation.output.capture() as capture:
        transformation.execute_children(element, context)
    return capture.text


def _expanded_name(
    transformation: Transformation,
    element: ElementNode,
    context: ExprContext,
    error_code: str,
) -> tuple[str, str, Optional[str]]:
    """
    Evaluates the ``name`` and ``namespace`` attributes of ``xsl:element`` and
    ``xsl:attribute`` and returns the local name, the namespace and the prefix.
    """
    name = transformation.attribute_value(element, "name", context)
    if name is None:
        raise XSLTValidationError(
            "Missing required attribute `name`.", instruction=element.local_name
        )
    name = name.strip()
    if not _is_qualified_name(name):
        raise XSLTDynamicError(
            f"Invalid name: {name!r}", code=error_code, instruction=element.local_name
        )
    prefix, local_name = split_qualified_name(name)

    namespace = transformation.attribute_value(element, "namespace", context)
    if namespace is None:
        if prefix is None and element.local_name == "attribute":
            namespace = ""
        else:
            namespace = element.lookup_namespace(prefix)
            if namespace is None:
                if prefix is not None:
                    raise XSLTDynamicError(
                        f"The prefix `{prefix}` isn't declared.",
                        code="XTDE0830" if error_code == "XTDE0820" else "XTDE0860",
                        instruction=element.local_name,
                    )
                namespace = ""
    elif not namespace:
        prefix = None
    return local_name, namespace, prefix


def _item_context(context: ExprContext, items: Sequence[Item], position: int):
    result = context.clone(items, position)
    result.current_item = items[position]
    return result


# template application


def _mode(element: ElementNode, context: ExprContext) -> str:
    mode = element.get_attribute("mode")
    if mode is None or mode == "#default":
        return "#default"
    if mode == "#current":
        return context.get_scope_data(ScopeKey.CURRENT_MODE, "#default")
    return mode


@register("apply-templates")
def apply_templates(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    if (select := element.get_attribute("select")) is None:
        items: Sequence[Item] = context.node.child_nodes
    else:
        items = items_of(transformation.evaluate(element, select, context))
    items = transformation.sort(element, items, context)
    parameters, tunnel_parameters = transformation.with_parameters(element, context)
    transformation.apply_templates(
        items, _mode(element, context), parameters, tunnel_parameters
    )


def _apply_another_template(
    transformation: Transformation,
    element: ElementNode,
    context: ExprContext,
    next_match: bool,
):
    rule = context.get_scope_data(ScopeKey.CURRENT_TEMPLATE_RULE)
    if rule is None:
        raise XSLTDynamicError(
            "There's no current template rule.",
            code="XTDE0560",
            instruction=element.local_name,
        )
    mode = context.get_scope_data(ScopeKey.CURRENT_MODE, "#default")
    item = context.current_item
    parameters, tunnel_parameters = transformation.with_parameters(element, context)

    if context.item is item:
        item_context = transformation.global_context.clone(
            context.node_list, context.position
        )
    else:
        item_context = transformation.global_context.clone((item,), 0)
    item_context.current_item = item

    if next_match:
        found = transformation.find_template(item, item_context, mode, after=rule)
    else:
        found = transformation.find_template(
            item, item_context, mode, below_precedence=rule.precedence
        )

    if found is None:
        transformation.apply_built_in_template(
            item, item_context, mode, parameters, tunnel_parameters
        )
    else:
        transformation.invoke_template(
            found, item_context, mode, parameters, tunnel_parameters
        )


@register("apply-imports")
def apply_imports(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    _apply_another_template(transformation, element, context, next_match=False)


@register("next-match")
def next_match(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    _apply_another_template(transformation, element, context, next_match=True)


@register("call-template")
def call_template(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    name = transformation.required_attribute(element, "name")
    template = transformation.stylesheet.named_templates.get(name)
    if template is None:
        raise XSLTValidationError(
            f"There's no template named {name}.", instruction="call-template"
        )
    parameters, tunnel_parameters = transformation.with_parameters(element, context)
    transformation.call_template(template, context, parameters, tunnel_parameters)


# control flow


@register("choose")
def choose(transformation: Transformation, element: ElementNode, context: ExprContext):
    for child in element.child_nodes:
        if is_xslt_element(child, "when"):
            assert isinstance(child, ElementNode)
            if transformation.test(child, context):
                transformation.execute_children(child, context)
                return
        elif is_xslt_element(child, "otherwise"):
            assert isinstance(child, ElementNode)
            transformation.execute_children(child, context)
            return


@register("if")
def _if(transformation: Transformation, element: ElementNode, context: ExprContext):
    if transformation.test(element, context):
        transformation.execute_children(element, context)


@register("for-each")
def for_each(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    items = items_of(transformation.select(element, context))
    if not items:
        return
    sorted_items = transformation.sort(element, items, context)

    def process():
        for position in range(len(sorted_items)):
            transformation.execute_children(
                element, _item_context(context, sorted_items, position)
            )

    if not (
        next(xslt_children(element, "sort"), None) is not None
        and all(
            isinstance(x, NodeBase)
            and not isinstance(x, AttributeNode)
            and x.parent is not None
            for x in sorted_items
        )
    ) or (
        share_one_parent(sorted_items)
        and all(a is b for a, b in zip(items, sorted_items))
    ):
        process()
    else:
        # raises for nodes of different parents
        with reparented_for_iteration(sorted_items):  # type: ignore
            process()


def _groups_by_key(
    transformation: Transformation,
    element: ElementNode,
    expression: str,
    context: ExprContext,
    population: Sequence[Item],
) -> list[tuple[Value, list[Item]]]:
    groups: dict[Any, tuple[Value, list[Item]]] = {}
    for position, item in enumerate(population):
        item_context = _item_context(context, population, position)
        for key_item in items_of(
            transformation.evaluate(element, expression, item_context)
        ):
            key = atomize(key_item)
            _, members = groups.setdefault(key.to_key(), (key, []))
            if not members or members[-1] is not item:
                members.append(item)
    return list(groups.values())


def _adjacent_groups(
    transformation: Transformation,
    element: ElementNode,
    expression: str,
    context: ExprContext,
    population: Sequence[Item],
) -> list[tuple[Value, list[Item]]]:
    groups: list[tuple[Value, list[Item]]] = []
    for position, item in enumerate(population):
        value = transformation.evaluate(
            element, expression, _item_context(context, population, position)
        )
        if (first := value_first(value)) is None:
            raise XSLTDynamicError(
                "The grouping key is empty.",
                code="XTTE1100",
                instruction="for-each-group",
            )
        key = atomize(first)
        if groups and groups[-1][0].to_key() == key.to_key():
            groups[-1][1].append(item)
        else:
            groups.append((key, [item]))
    return groups


def _pattern_groups(
    transformation: Transformation,
    element: ElementNode,
    pattern: str,
    context: ExprContext,
    population: Sequence[Item],
    starting: bool,
) -> list[tuple[None, list[Item]]]:
    compiled = _pattern(pattern)
    match_context = transformation.context_for(element, context).clone()
    groups: list[tuple[None, list[Item]]] = []
    close_group = True
    for item in population:
        matches = isinstance(item, NodeBase) and compiled.matches(item, match_context)
        if close_group or (starting and matches):
            groups.append((None, []))
        groups[-1][1].append(item)
        close_group = not starting and matches
    return groups


def _group_context(
    context: ExprContext,
    leaders: Sequence[Item],
    position: int,
    key: Optional[Value],
    members: list[Item],
) -> ExprContext:
    result = _item_context(context, leaders, position)
    result.set_scope_data(ScopeKey.CURRENT_GROUP, tuple(members))
    result.set_scope_data(ScopeKey.CURRENT_GROUPING_KEY, key)
    return result


@register("for-each-group")
def for_each_group(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    population = items_of(transformation.select(element, context))
    groups: Sequence[tuple[Optional[Value], list[Item]]]

    if (expression := element.get_attribute("group-by")) is not None:
        groups = _groups_by_key(
            transformation, element, expression, context, population
        )
    elif (expression := element.get_attribute("group-adjacent")) is not None:
        groups = _adjacent_groups(
            transformation, element, expression, context, population
        )
    elif (pattern := element.get_attribute("group-starting-with")) is not None:
        groups = _pattern_groups(
            transformation, element, pattern, context, population, starting=True
        )
    elif (pattern := element.get_attribute("group-ending-with")) is not None:
        groups = _pattern_groups(
            transformation, element, pattern, context, population, starting=False
        )
    else:
        raise XSLTValidationError(
            "One of the attributes group-by, group-adjacent, group-starting-with or "
            "group-ending-with is required.",
            instruction="for-each-group",
        )

    if not groups:
        return

    leaders = [members[0] for _, members in groups]
    contexts = [
        _group_context(context, leaders, position, *group)
        for position, group in enumerate(groups)
    ]

    if sort_elements := list(xslt_children(element, "sort")):
        order = sort_order(
            transformation,
            sort_elements,
            contexts,
            transformation.context_for(element, context),
        )
    else:
        order = list(range(len(groups)))

    ordered_leaders = [leaders[i] for i in order]
    for position, index in enumerate(order):
        transformation.execute_children(
            element,
            _group_context(context, ordered_leaders, position, *groups[index]),
        )


@register("iterate")
def iterate(transformation: Transformation, element: ElementNode, context: ExprContext):
    items = items_of(transformation.select(element, context))
    scope = context.clone()
    transformation.bind_parameters(element, scope, {}, {})
    state = IterationState()
    transformation.iterations.append(state)

    try:
        for position in range(len(items)):
            state.parameters = None
            transformation.execute_children(
                element, _item_context(scope, items, position)
            )
            if state.completed:
                return
            if state.parameters is not None:
                scope.variables.update(state.parameters)
    finally:
        transformation.iterations.pop()

    completion_context = scope.clone(())
    completion_context.current_item = None
    for on_completion in xslt_children(element, "on-completion"):
        _emit(transformation, on_completion, completion_context)


def _current_iteration(
    transformation: Transformation, element: ElementNode
) -> IterationState:
    if not transformation.iterations:
        raise XSLTValidationError(
            "The instruction is only allowed within <xsl:iterate>.",
            instruction=element.local_name,
        )
    return transformation.iterations[-1]


@register("next-iteration")
def next_iteration(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    state = _current_iteration(transformation, element)
    state.parameters, _ = transformation.with_parameters(element, context)


@register("break")
def _break(transformation: Transformation, element: ElementNode, context: ExprContext):
    state = _current_iteration(transformation, element)
    _emit(transformation, element, context)
    state.completed = True


@register("try")
def _try(transformation: Transformation, element: ElementNode, context: ExprContext):
    output = transformation.output
    body = [x for x in element.child_nodes if not is_xslt_element(x, "catch")]
    scope = context.clone()

    try:
        with output.capture(collect_items=output.collects_items) as capture:
            if element.get_attribute("select") is not None:
                _emit(transformation, element, scope)
            else:
                for node in body:
                    transformation.execute_node(node, scope)
    except (XSLTDynamicError, XPathEvaluationError) as error:
        code = getattr(error, "code", "FOER0000")
        for catch in xslt_children(element, "catch"):
            if _catches(catch.get_attribute("errors"), code):
                logger.debug("Caught error %s: %s", code, error)
                catch_context = context.clone()
                catch_context.variables["err:code"] = StringValue(code)
                catch_context.variables["err:description"] = StringValue(
                    getattr(error, "message", str(error))
                )
                catch_context.variables["err:value"] = _error_value(error)
                _emit(transformation, catch, catch_context)
                return
        raise

    output.adopt(capture)


def _catches(errors: Optional[str], code: str) -> bool:
    if errors is None:
        return True
    for token in errors.split():
        if token == "*":
            return True
        local_name = token.rpartition("}")[2] if token.startswith("Q{") else token
        local_name = local_name.rpartition(":")[2]
        if local_name == code:
            return True
    return False


def _error_value(error: Exception) -> Value:
    value = getattr(error, "value", None)
    if value is None:
        return EMPTY
    if isinstance(value, Value):
        return value
    return StringValue(str(value))


@register("assert")
def _assert(transformation: Transformation, element: ElementNode, context: ExprContext):
    if transformation.test(element, context):
        return
    message = _string_content(transformation, element, context)
    raise XSLTDynamicError(
        message or "Assertion failed.",
        code=transformation.attribute_value(
            element, "error-code", context, "XTMM9001"
        ),
        instruction="assert",
    )


# node constructors


@register("attribute")
def attribute(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    local_name, namespace, prefix = _expanded_name(
        transformation, element, context, "XTDE0850"
    )
    if prefix is None and local_name == "xmlns":
        raise XSLTDynamicError(
            "An attribute can't be named xmlns.",
            code="XTDE0855",
            instruction="attribute",
        )
    if namespace and prefix is None:
        prefix = "ns0"
    value = _string_content(
        transformation,
        element,
        context,
        " " if element.get_attribute("select") is not None else "",
    )
    transformation.output.add_attribute(local_name, value, namespace, prefix)


@register("comment")
def comment(transformation: Transformation, element: ElementNode, context: ExprContext):
    content = _string_content(transformation, element, context)
    content = content.replace("--", "- -")
    if content.endswith("-"):
        content += " "
    transformation.output.add_comment(content)


@register("copy")
def copy(transformation: Transformation, element: ElementNode, context: ExprContext):
    if (select := element.get_attribute("select")) is not None:
        item = value_first(transformation.evaluate(element, select, context))
    else:
        item = context.item
    output = transformation.output

    match item:
        case None:
            return
        case DocumentNode() | DocumentFragmentNode():
            transformation.execute_children(element, context)
        case ElementNode():
            declarations = (
                {}
                if element.get_attribute("copy-namespaces") == "no"
                else dict(item.namespace_declarations)
            )
            with output.element(
                item.local_name, item.namespace, item.prefix, declarations
            ):
                if names := element.get_attribute("use-attribute-sets"):
                    transformation.use_attribute_sets(names, context)
                transformation.execute_children(element, context)
        case NodeBase():
            output.copy_node(item, False)
        case _:
            output.add_atomic(item)


@register("copy-of")
def copy_of(transformation: Transformation, element: ElementNode, context: ExprContext):
    output = transformation.output
    for item in items_of(transformation.select(element, context)):
        if not isinstance(item, NodeBase):
            output.add_atomic(item)
        elif output.collects_items:
            output.add_item(item.clone(deep=True))
        else:
            output.copy_node(item, True)


@register("document")
def document(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    with transformation.output.capture() as capture:
        transformation.execute_children(element, context)
    result = DocumentNode()
    for node in list(capture.fragment.child_nodes):
        result.append_child(node.detach())
    transformation.output.add_item(result)


@register("element")
def _element(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    local_name, namespace, prefix = _expanded_name(
        transformation, element, context, "XTDE0820"
    )
    with transformation.output.element(local_name, namespace, prefix):
        if names := element.get_attribute("use-attribute-sets"):
            transformation.use_attribute_sets(names, context)
        transformation.execute_children(element, context)


@register("namespace")
def namespace(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    prefix = transformation.attribute_value(element, "name", context, "")
    assert prefix is not None
    prefix = prefix.strip()
    if prefix and not _is_ncname(prefix) or prefix == "xmlns":
        raise XSLTDynamicError(
            f"Invalid namespace prefix: {prefix!r}",
            code="XTDE0920",
            instruction="namespace",
        )
    uri = _string_content(transformation, element, context, "")
    transformation.output.add_namespace(prefix, uri)


@register("processing-instruction")
def processing_instruction(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    name = transformation.attribute_value(element, "name", context)
    if name is None or not _is_ncname(name := name.strip()) or name.lower() == "xml":
        raise XSLTDynamicError(
            f"Invalid processing instruction target: {name!r}",
            code="XTDE0890",
            instruction="processing-instruction",
        )
    content = _string_content(transformation, element, context).lstrip()
    transformation.output.add_processing_instruction(
        name, content.replace("?>", "? >")
    )


@register("text")
def text(transformation: Transformation, element: ElementNode, context: ExprContext):
    content = element.string_value
    if transformation.stylesheet.expands_text(element):
        content = evaluate_value_template(
            content, transformation.context_for(element, context)
        )
    transformation.output.add_text(
        content, _is_yes(element.get_attribute("disable-output-escaping"))
    )


@register("value-of")
def value_of(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    content = _string_content(
        transformation,
        element,
        context,
        " " if element.get_attribute("select") is not None else "",
    )
    transformation.output.add_text(
        content, _is_yes(element.get_attribute("disable-output-escaping"))
    )


@register("sequence")
def sequence(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    _emit(transformation, element, context)


@register("where-populated")
def where_populated(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    output = transformation.output
    with output.capture(collect_items=output.collects_items) as capture:
        transformation.execute_children(element, context)
    output.adopt(
        capture, [x for x in capture.fragment.child_nodes if _is_populated(x)]
    )


def _is_populated(node: NodeBase) -> bool:
    match node:
        case ElementNode() | DocumentNode():
            return len(node) > 0
        case TextNode() | CommentNode() | ProcessingInstructionNode():
            return node.string_value != ""
        case _:
            return True


# maps


@register("map")
def _map(transformation: Transformation, element: ElementNode, context: ExprContext):
    entries: dict[Any, Value] = {}
    with transformation.output.capture(collect_items=True) as capture:
        transformation.execute_children(element, context)
    assert capture.items is not None
    for item in capture.items:
        if not isinstance(item, MapValue):
            raise XSLTDynamicError(
                "The content of <xsl:map> must consist of maps.",
                code="XTTE3375",
                instruction="map",
            )
        for key, value in item.entries.items():
            if key in entries:
                raise XSLTDynamicError(
                    f"The map key {key!r} is used twice.",
                    code="XTDE3365",
                    instruction="map",
                )
            entries[key] = value
    transformation.output.add_item(MapValue(entries))


@register("map-entry")
def map_entry(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    key = value_first(transformation.select(element, context, "key"))
    if key is None:
        raise XSLTDynamicError(
            "The map key is empty.", code="XTTE0570", instruction="map-entry"
        )
    value = make_sequence(_sequence(transformation, element, context))
    transformation.output.add_item(MapValue({atomize(key).to_key(): value}))


# sorting


@register("perform-sort")
def perform_sort(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    if element.get_attribute("select") is not None:
        items: Sequence[Item] = _sequence(transformation, element, context)
    else:
        with transformation.output.capture(collect_items=True) as capture:
            for node in element.child_nodes:
                if not is_xslt_element(node, "sort"):
                    transformation.execute_node(node, context)
        assert capture.items is not None
        items = capture.items
    for item in transformation.sort(element, items, context):
        transformation.output.add_item(item)


# strings


@register("analyze-string")
def analyze_string(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    string = _string_content(transformation, element, context, "")
    regex = transformation.attribute_value(element, "regex", context)
    if regex is None:
        raise XSLTValidationError(
            "Missing required attribute `regex`.", instruction="analyze-string"
        )
    flags = transformation.attribute_value(element, "flags", context, "")
    assert flags is not None
    try:
        pattern = compile_regex(regex, flags)
    except XPathEvaluationError as e:
        raise XSLTDynamicError(
            str(e), code="XTDE1140", instruction="analyze-string"
        ) from e
    if pattern.fullmatch(""):
        raise XSLTDynamicError(
            "The regular expression matches an empty string.",
            code="XTDE1150",
            instruction="analyze-string",
        )

    segments: list[tuple[str, Optional[Any]]] = []
    position = 0
    for match in pattern.finditer(string):
        if match.start() > position:
            segments.append((string[position : match.start()], None))
        segments.append((match.group(), match))
        position = match.end()
    if position < len(string):
        segments.append((string[position:], None))

    matching = next(xslt_children(element, "matching-substring"), None)
    non_matching = next(xslt_children(element, "non-matching-substring"), None)
    items = [StringValue(x) for x, _ in segments]
    for index, (_, match) in enumerate(segments):
        branch = non_matching if match is None else matching
        if branch is None:
            continue
        segment_context = _item_context(context, items, index)
        segment_context.set_scope_data(
            ScopeKey.REGEX_GROUPS,
            ()
            if match is None
            else (match.group(),) + tuple(x or "" for x in match.groups()),
        )
        transformation.execute_children(branch, segment_context)


# numbering


def _same_kind_as(node: NodeBase) -> Callable[[NodeBase], bool]:
    match node:
        case ElementNode() | AttributeNode():
            kind = type(node)
            namespace, local_name = node.namespace, node.local_name
            return lambda x: (
                isinstance(x, kind)
                and x.namespace == namespace  # type: ignore
                and x.local_name == local_name  # type: ignore
            )
        case ProcessingInstructionNode():
            target = node.target
            return lambda x: (
                isinstance(x, ProcessingInstructionNode) and x.target == target
            )
        case _:
            kind = type(node)
            return lambda x: type(x) is kind


def _count_siblings(node: NodeBase, counts: Callable[[NodeBase], bool]) -> int:
    return 1 + sum(1 for x in node._iterate_preceding_siblings() if counts(x))


def _ancestors_or_self(node: NodeBase, stop: Callable[[NodeBase], bool]):
    yield node
    if stop(node):
        return
    for ancestor in node._iterate_ancestors():
        yield ancestor
        if stop(ancestor):
            return


def _number_node(
    node: NodeBase,
    level: str,
    counts: Callable[[NodeBase], bool],
    stop: Callable[[NodeBase], bool],
) -> list[int]:
    match level:
        case "single":
            for candidate in _ancestors_or_self(node, stop):
                if counts(candidate):
                    return [_count_siblings(candidate, counts)]
            return []
        case "multiple":
            return [
                _count_siblings(x, counts)
                for x in reversed(list(_ancestors_or_self(node, stop)))
                if counts(x)
            ]
        case "any":
            number = 0
            root = node.root
            for candidate in (root, *root._iterate_descendants()):
                if stop(candidate):
                    number = 0
                if counts(candidate):
                    number += 1
                if candidate is node:
                    break
            return [number] if number else []
        case _:
            raise XSLTValidationError(
                f"Invalid level: {level}", instruction="number"
            )


@register("number")
def number(transformation: Transformation, element: ElementNode, context: ExprContext):
    if (value := element.get_attribute("value")) is not None:
        numbers = []
        for item in items_of(transformation.evaluate(element, value, context)):
            rounded = round_half_up(atomize(item).to_number())
            if math.isnan(rounded) or math.isinf(rounded) or rounded < 0:
                transformation.output.add_text(NumberValue(rounded).to_string())
                return
            numbers.append(int(rounded))
    else:
        if (select := element.get_attribute("select")) is not None:
            node = value_first(transformation.evaluate(element, select, context))
            if not isinstance(node, NodeBase):
                raise XSLTDynamicError(
                    "The selected item isn't a node.",
                    code="XTTE1000",
                    instruction="number",
                )
        else:
            node = context.node

        match_context = transformation.context_for(element, context).clone()
        match_context.return_on_first_match = False
        if (count := element.get_attribute("count")) is None:
            counts = _same_kind_as(node)
        else:
            count_pattern = _pattern(count)
            counts = lambda x: count_pattern.matches(x, match_context)  # noqa: E731
        if (_from := element.get_attribute("from")) is None:
            stop: Callable[[NodeBase], bool] = lambda _: False  # noqa: E731
        else:
            from_pattern = _pattern(_from)
            stop = lambda x: from_pattern.matches(x, match_context)  # noqa: E731

        numbers = _number_node(
            node,
            transformation.attribute_value(element, "level", context, "single"),
            counts,
            stop,
        )

    grouping_size = transformation.attribute_value(
        element, "grouping-size", context, "0"
    )
    transformation.output.add_text(
        format_number_sequence(
            numbers,
            transformation.attribute_value(element, "format", context, "1"),
            transformation.attribute_value(element, "grouping-separator", context),
            int(grouping_size) if grouping_size.strip().isdigit() else 0,
        )
    )


# variables and messages


@register("variable")
def variable(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    name = transformation.required_attribute(element, "name")
    context.variables[name] = transformation.variable_value(element, context)


@register("message")
def message(transformation: Transformation, element: ElementNode, context: ExprContext):
    content = _string_content(transformation, element, context)
    transformation.messages.append(content)
    if _is_yes(transformation.attribute_value(element, "terminate", context, "no")):
        logger.error(content)
        raise XSLTDynamicError(
            content or "The transformation was terminated.",
            code=transformation.attribute_value(
                element, "error-code", context, "XTMM9000"
            ),
            instruction="message",
        )
    logger.info(content)


@register("evaluate")
def evaluate(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    source = transformation.select(element, context, "xpath").to_string()
    try:
        expression = parse(source)
    except XPathParsingError as e:
        raise XSLTDynamicError(
            f"Invalid dynamic expression: {e}", code="XTDE3160", instruction="evaluate"
        ) from e

    if (context_item := element.get_attribute("context-item")) is not None:
        item = value_first(transformation.evaluate(element, context_item, context))
        items: Sequence[Item] = () if item is None else (item,)
    else:
        items = ()
    dynamic_context = transformation.global_context.clone(items, 0)
    dynamic_context.current_item = items[0] if items else None

    if (namespace_context := element.get_attribute("namespace-context")) is not None:
        node = value_first(transformation.evaluate(element, namespace_context, context))
        if isinstance(node, ElementNode):
            dynamic_context.namespaces = node.in_scope_namespaces()
    else:
        dynamic_context.namespaces = transformation.stylesheet.namespaces(element)

    for parameter in xslt_children(element, "with-param"):
        dynamic_context.variables[
            transformation.required_attribute(parameter, "name")
        ] = transformation.variable_value(parameter, context)

    for item in items_of(expression.evaluate(dynamic_context)):
        transformation.output.add_item(item)


@register("result-document")
def result_document(
    transformation: Transformation, element: ElementNode, context: ExprContext
):
    href = transformation.attribute_value(element, "href", context, "")
    assert href is not None
    if not href:
        transformation.execute_children(element, context)
        return
    if href in transformation.result_documents:
        raise XSLTDynamicError(
            f"The result document {href} is written twice.",
            code="XTDE1490",
            instruction="result-document",
        )

    output_name = transformation.attribute_value(element, "format", context, "")
    outputs = transformation.stylesheet.outputs
    if output_name not in outputs and output_name:
        raise XSLTDynamicError(
            f"There's no output definition named {output_name}.",
            code="XTDE1460",
            instruction="result-document",
        )
    properties = dict(outputs.get(output_name, {}))
    for attribute in element.attributes:
        if not attribute.namespace and attribute.local_name not in (
            "format",
            "href",
            "type",
            "validation",
        ):
            properties[attribute.local_name] = transformation.attribute_value(
                element, attribute.local_name, context
            )

    builder = OutputBuilder(DocumentNode(base_url=transformation.resolve_url(href)))
    principal_output = transformation.output
    transformation.output = builder
    try:
        transformation.execute_children(element, context)
    finally:
        transformation.output = principal_output
    logger.debug("Writing the result document %s.", href)
    transformation.result_documents[href] = transformation.serialize_result_document(
        builder.document, properties
    )


# elements that are processed by their parent or that are declarations


def _no_op(transformation: Transformation, element: ElementNode, context: ExprContext):
    pass


for _name in (
    "catch",
    "fallback",
    "matching-substring",
    "non-matching-substring",
    "on-completion",
    "on-empty",
    "on-non-empty",
    "otherwise",
    "param",
    "sort",
    "when",
    "with-param",
):
    register(_name)(_no_op)
