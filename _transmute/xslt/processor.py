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
The interpreter of compiled stylesheets. A :class:`Transformation` holds the state of
one transformation, it dispatches the instructions of templates to the handlers that
are registered with the plugin manager and writes the results with an
:class:`_transmute.xslt.output.OutputBuilder`.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urljoin

from _transmute.builder import parse_document
from _transmute.exceptions import (
    FailedResourceFetching,
    InvalidOperation,
    XPathEvaluationError,
    XSLTDynamicError,
    XSLTUnsupportedFeature,
    XSLTValidationError,
)
from _transmute.grammar import _is_whitespace
from _transmute.loading import load_document
from _transmute.names import XSLT_NAMESPACE, deconstruct_clark_notation
from _transmute.nodes import (
    AttributeNode,
    CommentNode,
    DocumentFragmentNode,
    DocumentNode,
    ElementNode,
    NodeBase,
    ProcessingInstructionNode,
    TextNode,
    _ParentNode,
    sort_in_document_order,
)
from _transmute.plugins import plugin_manager
from _transmute.serializer import SerializationOptions, serialize_with_options
from _transmute.xpath.ast import LocationExpr, PathExpr, StepExpr, UnionExpr
from _transmute.xpath.context import ExprContext, ScopeKey
from _transmute.xpath.extended_functions import cast_atomic
from _transmute.xpath.json_conversion import serialize_json
from _transmute.xpath.values import (
    EMPTY,
    StringValue,
    Value,
    atomize,
    items_of,
    make_sequence,
    to_value,
)
from _transmute.xslt.avt import evaluate_value_template
from _transmute.xslt.output import OutputBuilder
from _transmute.xslt.sorting import sort_items
from _transmute.xslt.stylesheet import (
    Stylesheet,
    is_xslt_element,
    module_references,
    xslt_children,
)


if TYPE_CHECKING:
    from typing import Final

    from _transmute.typing import DocumentLoader, FetchFunction, SyncFetchFunction
    from _transmute.xpath.values import Item
    from _transmute.xslt.stylesheet import TemplateRule


logger = logging.getLogger(__name__)


XPATH_VERSIONS: Final = {1.0: 1.0, 2.0: 2.0, 3.0: 3.1}

FIRST_MATCH_EXPRESSIONS: Final = (LocationExpr, PathExpr, StepExpr, UnionExpr)


def _is_yes(value: Optional[str]) -> bool:
    return value is not None and value.strip() in ("yes", "true", "1")


def value_first(value: Value) -> Optional[Item]:
    items = items_of(value)
    return items[0] if items else None


def _iterate_indexable_nodes(root: NodeBase):
    yield root
    if isinstance(root, ElementNode):
        yield from root.attributes
    if isinstance(root, _ParentNode):
        for node in root.iterate_descendants():
            yield node
            if isinstance(node, ElementNode):
                yield from node.attributes


def serialization_options(
    properties: Mapping[str, str],
    result: NodeBase,
    method: Optional[str] = None,
    self_closing_tags: bool = True,
) -> SerializationOptions:
    """
    Derives the serialization options from the properties of an ``xsl:output``
    declaration. Without a declared method, results with an ``html`` root element in
    no namespace are serialized as HTML.
    """
    method = method or properties.get("method")
    if method is None:
        root = (
            result.document_element if isinstance(result, DocumentNode) else None
        )
        if (
            root is not None
            and not root.namespace
            and root.local_name.lower() == "html"
        ):
            method = "html"
        else:
            method = "xml"
    if method not in ("xml", "html", "xhtml", "text", "json", "adaptive"):
        raise XSLTUnsupportedFeature(
            f"Unknown output method: {method}", instruction="output"
        )

    cdata_section_elements = frozenset(
        deconstruct_clark_notation(x, "")
        for x in properties.get("cdata-section-elements", "").split()
    )
    return SerializationOptions(
        method=method,
        indent=_is_yes(properties.get("indent")),
        omit_xml_declaration=properties.get("omit-xml-declaration", "yes").strip()
        not in ("no", "false", "0"),
        encoding=properties.get("encoding", "UTF-8"),
        standalone=properties.get("standalone"),
        doctype_public=properties.get("doctype-public"),
        doctype_system=properties.get("doctype-system"),
        html_version=properties.get("html-version")
        or (properties.get("version") if method == "html" else None),
        self_closing_tags=self_closing_tags,
        cdata_section_elements=cdata_section_elements,  # type: ignore
    )


class GlobalVariables(dict):
    """
    The bindings of global variables and parameters. These are evaluated when they're
    referenced for the first time, hence the order of their declarations doesn't
    matter.
    """

    __slots__ = ("transformation",)

    def __init__(self, transformation: Transformation):
        super().__init__()
        self.transformation = transformation

    def get(self, name: str, default: Any = None) -> Any:
        if (
            not dict.__contains__(self, name)
            and name in self.transformation.stylesheet.global_variables
        ):
            self.transformation.evaluate_global_variable(name)
        return super().get(name, default)


class IterationState:
    __slots__ = ("completed", "parameters")

    def __init__(self):
        self.completed = False
        self.parameters: Optional[dict[str, Value]] = None


class Transformation:
    """
    The state of one transformation of a source document with a compiled stylesheet.

    :param stylesheet: The compiled stylesheet.
    :param parameters: Values for the stylesheet's global parameters. Strings are
                       bound as string values, other objects are converted.
    :param document_loader: A callable that returns documents for the ``document()``
                            and ``doc()`` functions.
    :param fetch_function: A callable that returns the contents of resources for the
                           ``unparsed-text()`` function.
    """

    __slots__ = (
        "document_loader",
        "fetch_function",
        "global_context",
        "iterations",
        "messages",
        "output",
        "parameters",
        "result_documents",
        "result_items",
        "self_closing_tags",
        "stylesheet",
        "xpath_version",
        "_evaluating_globals",
        "_key_indexes",
    )

    def __init__(
        self,
        stylesheet: Stylesheet,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        document_loader: Optional[DocumentLoader] = None,
        fetch_function: Optional[SyncFetchFunction] = None,
        unbound_variables_are_empty: bool = False,
        self_closing_tags: bool = True,
    ):
        self.stylesheet: Final = stylesheet
        self.xpath_version: Final = XPATH_VERSIONS[stylesheet.version]
        self.document_loader = document_loader
        self.fetch_function = fetch_function
        self.self_closing_tags = self_closing_tags
        self.parameters = {
            k: StringValue(v) if isinstance(v, str) else to_value(v)
            for k, v in (parameters or {}).items()
        }
        self.output = OutputBuilder()
        self.messages: list[str] = []
        self.result_documents: dict[str, str] = {}
        self.result_items: Optional[list[Item]] = None
        self.iterations: list[IterationState] = []
        self._evaluating_globals: set[str] = set()
        self._key_indexes: dict[tuple[str, int], dict[str, list[NodeBase]]] = {}

        self.global_context: Final = ExprContext(
            (),
            namespaces=stylesheet.namespaces(stylesheet.root),
            unbound_variables_are_empty=unbound_variables_are_empty,
            document_loader=document_loader,
            transformation=self,
            xpath_version=self.xpath_version,
        )
        self.global_context.variables = GlobalVariables(self)

    # entry point

    def transform(self, source: DocumentNode, collect_items: bool = False):
        """
        Applies the templates of the default mode to the source document. The result
        is written to :attr:`output`, with ``collect_items`` the top-level items are
        also kept in :attr:`result_items`.
        """
        if self.stylesheet.space_rules:
            source = self.strip_source_whitespace(source)

        context = self.global_context
        context.node_list = (source,)
        context.position = 0
        context.current_item = source

        if collect_items:
            with self.output.capture(collect_items=True) as capture:
                self.apply_templates((source,), "#default", {}, {})
            self.result_items = capture.items
            for node in list(capture.fragment.child_nodes):
                self.output.document.append_child(node.detach())
        else:
            self.apply_templates((source,), "#default", {}, {})

    def strip_source_whitespace(self, source: DocumentNode) -> DocumentNode:
        """
        Returns a copy of the source where whitespace-only text is removed from the
        elements that ``xsl:strip-space`` declarations select.
        """
        source = source.clone(deep=True)
        for node in list(source.iterate_descendants()):
            if (
                isinstance(node, TextNode)
                and _is_whitespace(node.content)
                and isinstance(parent := node.parent, ElementNode)
                and parent.xml_space != "preserve"
                and self.stylesheet.strips_whitespace(parent)
            ):
                parent.remove_child(node)
        return source

    # expressions

    def context_for(self, element: ElementNode, context: ExprContext) -> ExprContext:
        """
        Returns a context that resolves prefixes with the namespaces that are in scope
        for a stylesheet element.
        """
        namespaces = self.stylesheet.namespaces(element)
        if context.namespaces is namespaces:
            return context
        result = context.clone()
        result.namespaces = namespaces
        return result

    def evaluate(
        self, element: ElementNode, expression: str, context: ExprContext
    ) -> Value:
        return self.stylesheet.expression(expression).evaluate(
            self.context_for(element, context)
        )

    def select(
        self, element: ElementNode, context: ExprContext, attribute: str = "select"
    ) -> Value:
        """
        Evaluates the expression of an attribute that must be present.

        :raises XSLTValidationError: If the attribute is missing.
        """
        return self.evaluate(
            element, self.required_attribute(element, attribute), context
        )

    def test(self, element: ElementNode, context: ExprContext) -> bool:
        """Evaluates the ``test`` attribute of an ``xsl:if`` or ``xsl:when``."""
        expression = self.stylesheet.expression(
            self.required_attribute(element, "test")
        )
        test_context = self.context_for(element, context).clone()
        if isinstance(expression, FIRST_MATCH_EXPRESSIONS):
            test_context.set_return_on_first_match(True)
        return expression.evaluate(test_context).to_boolean()

    def attribute_value(
        self,
        element: ElementNode,
        name: str,
        context: ExprContext,
        default: Optional[str] = None,
    ) -> Optional[str]:
        """Returns the expanded attribute value template of an attribute."""
        if (value := element.get_attribute(name)) is None:
            return default
        return evaluate_value_template(value, self.context_for(element, context))

    @staticmethod
    def required_attribute(element: ElementNode, name: str) -> str:
        """
        :raises XSLTValidationError: If the attribute is missing.
        """
        if (value := element.get_attribute(name)) is None:
            raise XSLTValidationError(
                f"Missing required attribute `{name}`.",
                instruction=element.local_name,
            )
        return value

    def sort_key_string(self, element: ElementNode, context: ExprContext) -> str:
        """Computes the key of the context item that an ``xsl:sort`` defines."""
        if (select := element.get_attribute("select")) is None and len(element):
            with self.output.capture() as capture:
                self.execute_children(element, context)
            return capture.text
        value = self.evaluate(element, select or ".", context)
        if self.xpath_version >= 2.0 and (first := value_first(value)) is not None:
            return atomize(first).to_string()
        return value.to_string()

    def sort(
        self, element: ElementNode, items: Sequence[Item], context: ExprContext
    ) -> list[Item]:
        """Sorts items by the ``xsl:sort`` children of an element."""
        sort_elements = list(xslt_children(element, "sort"))
        if not sort_elements:
            return list(items)
        return sort_items(
            self, sort_elements, items, self.context_for(element, context)
        )

    def variable_value(self, element: ElementNode, context: ExprContext) -> Value:
        """
        Computes the value of a variable or parameter binding from its ``select``
        attribute or its content. Without ``as`` attribute the content yields a
        temporary tree.
        """
        as_type = element.get_attribute("as")
        if (select := element.get_attribute("select")) is not None:
            value = self.evaluate(element, select, context)
        elif len(element):
            with self.output.capture(collect_items=as_type is not None) as capture:
                self.execute_children(element, context)
            value = (
                capture.as_temporary_tree()
                if as_type is None
                else capture.as_sequence()
            )
        elif as_type is not None:
            value = EMPTY
        else:
            value = StringValue("")

        if as_type is not None and as_type.startswith("xs:") and value:
            type_name = as_type.rstrip("?*+")
            try:
                value = make_sequence(
                    cast_atomic(atomize(x), type_name) for x in items_of(value)
                )
            except XPathEvaluationError as e:
                raise XSLTDynamicError(
                    f"The value of ${element.get_attribute('name')} doesn't match "
                    f"the type {as_type}: {e}",
                    code="XTTE0570",
                    instruction=element.local_name,
                ) from e
        return value

    def evaluate_global_variable(self, name: str):
        """
        Evaluates a global variable or parameter and binds it in the global context.

        :raises XSLTDynamicError: If the variable's definition depends on itself or if
                                  a required parameter wasn't provided.
        """
        stylesheet = self.stylesheet
        element = stylesheet.global_variables[name]
        if name in self._evaluating_globals:
            raise XSLTDynamicError(
                f"The definition of the global variable ${name} is circular.",
                code="XTDE0640",
            )

        self._evaluating_globals.add(name)
        try:
            if name in stylesheet.global_parameters and name in self.parameters:
                value = self.parameters[name]
            elif name in stylesheet.global_parameters and _is_yes(
                element.get_attribute("required")
            ):
                raise XSLTDynamicError(
                    f"The required parameter ${name} wasn't provided.",
                    code="XTDE0050",
                    instruction="param",
                )
            else:
                value = self.variable_value(element, self.global_context.clone())
        finally:
            self._evaluating_globals.discard(name)

        dict.__setitem__(self.global_context.variables, name, value)

    # functions

    def _expanded_function_name(
        self, name: str, context: ExprContext
    ) -> Optional[str]:
        if name.startswith("{"):
            return name
        prefix, _, local_name = name.rpartition(":")
        if not prefix:
            return None
        if (namespace := context.namespaces.get(prefix)) is None:
            raise XPathEvaluationError(
                f"The prefix `{prefix}` isn't declared.", code="XPST0081"
            )
        return f"{{{namespace}}}{local_name}"

    def has_function(self, name: str, arity: int) -> bool:
        expanded_name = self._expanded_function_name(name, self.global_context)
        return (expanded_name, arity) in self.stylesheet.functions

    def call_function(
        self, name: str, arguments: Sequence[Value], context: ExprContext
    ) -> Value:
        """
        Calls a stylesheet function.

        :raises XPathEvaluationError: If there's no such function.
        """
        expanded_name = self._expanded_function_name(name, context)
        element = self.stylesheet.functions.get((expanded_name, len(arguments)))
        if element is None:
            raise XPathEvaluationError(f"Unknown function: `{name}`", code="XPST0017")

        function_context = self.global_context.clone(())
        function_context.current_item = None
        function_context.namespaces = self.stylesheet.namespaces(element)
        for parameter, argument in zip(xslt_children(element, "param"), arguments):
            function_context.variables[self.required_attribute(parameter, "name")] = (
                argument
            )

        with self.output.capture(collect_items=True) as capture:
            self.execute_children(element, function_context)
        return capture.as_sequence()

    # keys

    def key_index(self, name: str, root: NodeBase) -> dict[str, list[NodeBase]]:
        """
        Returns the index that a key definition yields for a tree.

        :raises XSLTDynamicError: If there's no key with the given name.
        """
        if (index := self._key_indexes.get((name, id(root)))) is not None:
            return index

        definitions = self.stylesheet.keys.get(name)
        if definitions is None:
            raise XSLTDynamicError(f"Unknown key: {name}", code="XTDE1260")

        index = {}
        for node in _iterate_indexable_nodes(root):
            node_context = self.global_context.clone((node,), 0)
            node_context.current_item = node
            for definition in definitions:
                node_context.namespaces = self.stylesheet.namespaces(
                    definition.element
                )
                if not definition.pattern.matches(node, node_context):
                    continue
                if definition.use is None:
                    with self.output.capture(collect_items=True) as capture:
                        self.execute_children(definition.element, node_context)
                    value = capture.as_sequence()
                else:
                    value = self.evaluate(
                        definition.element, definition.use, node_context
                    )
                for item in items_of(value):
                    key = (
                        item.string_value
                        if isinstance(item, NodeBase)
                        else item.to_string()
                    )
                    nodes = index.setdefault(key, [])
                    if not nodes or nodes[-1] is not node:
                        nodes.append(node)

        self._key_indexes[(name, id(root))] = index
        return index

    def lookup_key(self, name: str, value: Value, root: NodeBase) -> list[NodeBase]:
        index = self.key_index(name, root)
        result: dict[int, NodeBase] = {}
        for item in items_of(value):
            key = item.string_value if isinstance(item, NodeBase) else item.to_string()
            for node in index.get(key, ()):
                result[id(node)] = node
        return sort_in_document_order(result.values())

    # resources

    def fetch_text(self, href: str) -> str:
        """
        Returns the contents of a resource, the ``fetch_function`` is used when it was
        provided, local files are read otherwise.

        :raises FailedResourceFetching: If the resource can't be retrieved.
        """
        url = self.resolve_url(href)
        try:
            if self.fetch_function is not None:
                return self.fetch_function(url)
            path = url.removeprefix("file://")
            with open(path, encoding="utf-8") as file:
                return file.read()
        except Exception as e:
            raise FailedResourceFetching(url, e) from e

    def load_external_document(self, href: str) -> Optional[NodeBase]:
        """
        Returns a document from the ``document_loader``. An empty ``href`` refers to the
        stylesheet's document. Without loader or when it fails, :obj:`None` is
        returned.
        """
        if href == "":
            return self.stylesheet.document
        if self.document_loader is None:
            logger.debug("No document loader to load %s.", href)
            return None
        try:
            return self.document_loader(self.resolve_url(href))
        except Exception:
            logger.exception("Failed to load %s.", href)
            return None

    def resolve_url(self, href: str) -> str:
        return urljoin(self.stylesheet.document.base_url or "", href)

    # templates

    def find_template(
        self,
        item: Item,
        context: ExprContext,
        mode: str,
        *,
        after: Optional[TemplateRule] = None,
        below_precedence: Optional[int] = None,
    ) -> Optional[TemplateRule]:
        """
        Finds the template rule with the highest rank that matches an item.

        :param after: Only rules that rank below this one are considered, that's used
                      for ``xsl:next-match``.
        :param below_precedence: Only rules with a lower import precedence are
                                 considered, that's used for ``xsl:apply-imports``.
        """
        if not isinstance(item, NodeBase):
            return None

        rules = self.stylesheet.rules_for_mode(mode)
        passed = after is None
        match_context = context.clone((item,), 0)
        match_context.current_item = item
        match_context.return_on_first_match = False

        for rule in rules:
            if not passed:
                passed = rule is after
                continue
            if after is not None and rule.element is after.element:
                continue
            if below_precedence is not None and rule.precedence >= below_precedence:
                continue
            match_context.namespaces = self.stylesheet.namespaces(rule.element)
            if rule.pattern.matches(item, match_context):
                logger.debug(
                    "The template matching `%s` applies to %r.",
                    rule.pattern.text,
                    item,
                )
                return rule
        return None

    def apply_templates(
        self,
        items: Sequence[Item],
        mode: str,
        parameters: dict[str, Value],
        tunnel_parameters: dict[str, Value],
    ):
        for position, item in enumerate(items):
            context = self.global_context.clone(items, position)
            context.current_item = item
            rule = self.find_template(item, context, mode)
            if rule is None:
                self.apply_built_in_template(
                    item, context, mode, parameters, tunnel_parameters
                )
            else:
                self.invoke_template(
                    rule, context, mode, parameters, tunnel_parameters
                )

    def apply_built_in_template(
        self,
        item: Item,
        context: ExprContext,
        mode: str,
        parameters: dict[str, Value],
        tunnel_parameters: dict[str, Value],
    ):
        """
        Processes an item that no template matches, according to the ``on-no-match``
        property of the mode.
        """
        on_no_match = self.stylesheet.modes.get(mode, "text-only-copy")
        output = self.output

        match item:
            case DocumentNode() | DocumentFragmentNode() | ElementNode():
                match on_no_match:
                    case "fail":
                        raise XSLTDynamicError(
                            f"No template matches {item.node_name} in mode {mode}.",
                            code="XTDE0555",
                        )
                    case "deep-copy":
                        output.copy_node(item, True)
                    case "deep-skip":
                        pass
                    case "shallow-copy" if isinstance(item, ElementNode):
                        with output.element(
                            item.local_name,
                            item.namespace,
                            item.prefix,
                            dict(item.namespace_declarations),
                        ):
                            self.apply_templates(
                                item.attributes + item.child_nodes,
                                mode,
                                parameters,
                                tunnel_parameters,
                            )
                    case _:
                        self.apply_templates(
                            item.child_nodes, mode, parameters, tunnel_parameters
                        )
            case TextNode() | AttributeNode():
                match on_no_match:
                    case "shallow-copy" | "deep-copy":
                        output.copy_node(item, False)
                    case "text-only-copy":
                        output.add_text(item.string_value)
                    case "fail":
                        raise XSLTDynamicError(
                            f"No template matches {item.node_name} in mode {mode}.",
                            code="XTDE0555",
                        )
            case CommentNode() | ProcessingInstructionNode():
                if on_no_match in ("shallow-copy", "deep-copy"):
                    output.copy_node(item, False)
            case Value():
                if on_no_match != "deep-skip" and on_no_match != "shallow-skip":
                    output.add_atomic(item)

    def invoke_template(
        self,
        rule: TemplateRule,
        context: ExprContext,
        mode: str,
        parameters: dict[str, Value],
        tunnel_parameters: dict[str, Value],
    ):
        element = rule.element
        context.namespaces = self.stylesheet.namespaces(element)
        context.set_scope_data(ScopeKey.CURRENT_TEMPLATE_RULE, rule)
        context.set_scope_data(ScopeKey.CURRENT_MODE, mode)
        context.set_scope_data(ScopeKey.TUNNEL_PARAMETERS, tunnel_parameters)
        self.bind_parameters(element, context, parameters, tunnel_parameters)
        self.execute_children(element, context)

    def call_template(
        self,
        element: ElementNode,
        context: ExprContext,
        parameters: dict[str, Value],
        tunnel_parameters: dict[str, Value],
    ):
        """Invokes a named template with the context item of the caller."""
        template_context = self.global_context.clone(
            context.node_list, context.position
        )
        template_context.current_item = context.current_item
        template_context.namespaces = self.stylesheet.namespaces(element)
        for key in (ScopeKey.CURRENT_TEMPLATE_RULE, ScopeKey.CURRENT_MODE):
            template_context.set_scope_data(key, context.get_scope_data(key))
        template_context.set_scope_data(ScopeKey.TUNNEL_PARAMETERS, tunnel_parameters)
        self.bind_parameters(element, template_context, parameters, tunnel_parameters)
        self.execute_children(element, template_context)

    def bind_parameters(
        self,
        element: ElementNode,
        context: ExprContext,
        parameters: Mapping[str, Value],
        tunnel_parameters: Mapping[str, Value],
    ):
        """
        Binds the ``xsl:param`` children of an element. Supplied values take
        precedence over the parameters' defaults.

        :raises XSLTDynamicError: If a required parameter isn't supplied.
        """
        for parameter in xslt_children(element, "param"):
            name = self.required_attribute(parameter, "name")
            supplied = (
                tunnel_parameters
                if _is_yes(parameter.get_attribute("tunnel"))
                else parameters
            )
            if name in supplied:
                value = supplied[name]
            elif _is_yes(parameter.get_attribute("required")):
                raise XSLTDynamicError(
                    f"The required parameter ${name} wasn't supplied.",
                    code="XTDE0700",
                    instruction="param",
                )
            else:
                value = self.variable_value(parameter, context)
            context.variables[name] = value

    def with_parameters(
        self, element: ElementNode, context: ExprContext
    ) -> tuple[dict[str, Value], dict[str, Value]]:
        """
        Evaluates the ``xsl:with-param`` children of an element and returns the
        parameters and the tunnel parameters that are passed on.
        """
        parameters: dict[str, Value] = {}
        tunnel_parameters = dict(
            context.get_scope_data(ScopeKey.TUNNEL_PARAMETERS) or {}
        )
        for child in xslt_children(element, "with-param"):
            value = self.variable_value(child, context)
            target = (
                tunnel_parameters
                if _is_yes(child.get_attribute("tunnel"))
                else parameters
            )
            target[self.required_attribute(child, "name")] = value
        return parameters, tunnel_parameters

    # sequence constructors

    def execute_children(self, element: ElementNode, context: ExprContext):
        """
        Executes the content of an element in a new variable scope. ``xsl:on-empty``
        and ``xsl:on-non-empty`` children are evaluated depending on whether their
        siblings produced something.
        """
        scope = context.clone()
        children = element.child_nodes
        if not any(
            is_xslt_element(x)
            and x.local_name in ("on-empty", "on-non-empty")  # type: ignore
            for x in children
        ):
            for child in children:
                self.execute_node(child, scope)
            return

        self._execute_with_conditional_content(children, scope)

    def _execute_with_conditional_content(
        self, children: Sequence[NodeBase], context: ExprContext
    ):
        target = self.output.current
        start = len(target)
        attributes_count = len(target.attributes)
        last_child = target.last_child
        text_length = (
            len(last_child.content) if isinstance(last_child, TextNode) else None
        )

        leading: list[ElementNode] = []
        trailing: list[ElementNode] = []
        on_empty: list[ElementNode] = []
        for child in children:
            if is_xslt_element(child, "on-empty"):
                on_empty.append(child)  # type: ignore
            elif is_xslt_element(child, "on-non-empty"):
                (trailing if self._has_content_before(child) else leading).append(
                    child  # type: ignore
                )
            else:
                self.execute_node(child, context)

        produced = (
            len(target) > start
            or len(target.attributes) > attributes_count
            or (
                text_length is not None
                and isinstance(last_child, TextNode)
                and len(last_child.content) > text_length
            )
        )

        if not produced:
            for element in on_empty:
                self.execute_children(element, context)
            return

        if leading:
            with self.output.capture() as capture:
                for element in leading:
                    self.execute_children(element, context)
            for offset, node in enumerate(list(capture.fragment.child_nodes)):
                target.insert_child(start + offset, node.detach())
        for element in trailing:
            self.execute_children(element, context)

    @staticmethod
    def _has_content_before(element: NodeBase) -> bool:
        node = element.previous_sibling
        while node is not None:
            if not (
                is_xslt_element(node)
                and node.local_name in ("on-empty", "on-non-empty")  # type: ignore
            ):
                return True
            node = node.previous_sibling
        return False

    def execute_node(self, node: NodeBase, context: ExprContext):
        match node:
            case TextNode():
                parent = node.parent
                if isinstance(parent, ElementNode) and self.stylesheet.expands_text(
                    parent
                ):
                    self.output.add_text(
                        evaluate_value_template(
                            node.content, self.context_for(parent, context)
                        )
                    )
                else:
                    self.output.add_text(node.content)
            case ElementNode(namespace=namespace) if namespace == XSLT_NAMESPACE:
                self.execute_instruction(node, context)
            case ElementNode(
                namespace=namespace
            ) if namespace in self.stylesheet.extension_namespaces:
                self.execute_fallback(node, context)
            case ElementNode():
                self.literal_result_element(node, context)

    def execute_instruction(self, element: ElementNode, context: ExprContext):
        """
        Dispatches an instruction to its handler.

        :raises XSLTUnsupportedFeature: If there's no handler for the instruction and
                                        no fallback in forwards-compatible mode.
        """
        handler = plugin_manager.xslt_instructions.get(element.local_name)
        if handler is not None:
            handler(self, element, context)
        elif self.stylesheet.forwards_compatible:
            self.execute_fallback(element, context)
        else:
            raise XSLTUnsupportedFeature(
                "Unknown instruction.", instruction=element.local_name
            )

    def execute_fallback(self, element: ElementNode, context: ExprContext):
        """
        Executes the ``xsl:fallback`` children of an unknown instruction.

        :raises XSLTUnsupportedFeature: If there are none.
        """
        fallbacks = list(xslt_children(element, "fallback"))
        if not fallbacks:
            raise XSLTUnsupportedFeature(
                f"The instruction <{element.node_name}> isn't supported and has no "
                "fallback."
            )
        for fallback in fallbacks:
            self.execute_children(fallback, context)

    def literal_result_element(self, element: ElementNode, context: ExprContext):
        stylesheet = self.stylesheet
        aliases = stylesheet.namespace_aliases
        excluded = stylesheet.excluded_namespaces(element)

        namespace, prefix = element.namespace, element.prefix
        if namespace in aliases:
            namespace, prefix = aliases[namespace]

        declarations = {}
        for declared_prefix, uri in element.namespace_declarations.items():
            if uri in aliases:
                uri = aliases[uri][0]
            elif uri in excluded:
                continue
            declarations[declared_prefix] = uri

        with self.output.element(element.local_name, namespace, prefix, declarations):
            if names := element.get_attribute((XSLT_NAMESPACE, "use-attribute-sets")):
                self.use_attribute_sets(names, context)
            attribute_context = self.context_for(element, context)
            for attribute in element.attributes:
                if attribute.namespace == XSLT_NAMESPACE:
                    continue
                attribute_namespace, attribute_prefix = (
                    attribute.namespace,
                    attribute.prefix,
                )
                if attribute_namespace in aliases:
                    attribute_namespace, attribute_prefix = aliases[
                        attribute_namespace
                    ]
                self.output.add_attribute(
                    attribute.local_name,
                    evaluate_value_template(attribute.value, attribute_context),
                    attribute_namespace,
                    attribute_prefix,
                )
            self.execute_children(element, context)

    def use_attribute_sets(self, names: str, context: ExprContext):
        for name in names.split():
            self.apply_attribute_set(name, context, frozenset())

    def apply_attribute_set(
        self, name: str, context: ExprContext, visited: frozenset[str]
    ):
        """
        Adds the attributes of an attribute set and of those that it uses. Cyclic
        references end silently, unknown attribute sets are ignored.
        """
        if name in visited:
            logger.debug("Attribute set %s references itself.", name)
            return
        if (definitions := self.stylesheet.attribute_sets.get(name)) is None:
            logger.debug("Unknown attribute set %s.", name)
            return

        visited |= {name}
        set_context = self.global_context.clone(context.node_list, context.position)
        set_context.current_item = context.current_item
        for definition in definitions:
            if names := definition.get_attribute("use-attribute-sets"):
                for used_name in names.split():
                    self.apply_attribute_set(used_name, context, visited)
            set_context.namespaces = self.stylesheet.namespaces(definition)
            for attribute in xslt_children(definition, "attribute"):
                self.execute_instruction(attribute, set_context)

    # output

    def serialize_result_document(
        self, document: DocumentNode, properties: Mapping[str, str]
    ) -> str:
        return serialize_with_options(
            document,
            serialization_options(
                properties, document, self_closing_tags=self.self_closing_tags
            ),
        )


class XSLTProcessor:
    """
    Transforms XML documents with XSLT stylesheets of the versions 1.0 to 3.0.

    :param output_method: Overrides the ``method`` of the stylesheet's
                          ``xsl:output`` declaration.
    :param self_closing_tags: Whether empty elements are serialized as
                              ``<empty/>``.
    :param fetch_function: A callable that returns the contents of an URL. It's used to
                           resolve ``xsl:include`` and ``xsl:import`` as well as by
                           ``unparsed-text()``. An asynchronous one can only be used
                           with :meth:`process_async`. Without it, modules are loaded
                           with the registered loaders.
    :param document_loader: A callable that returns a document for an URL, used by
                            the ``document()`` and ``doc()`` functions.
    :param unbound_variables_are_empty: References to unbound variables yield an
                                        empty string instead of an error.
    """

    __slots__ = (
        "document_loader",
        "fetch_function",
        "forwards_compatible",
        "messages",
        "output_method",
        "result_documents",
        "self_closing_tags",
        "unbound_variables_are_empty",
        "version",
    )

    def __init__(
        self,
        output_method: Optional[str] = None,
        self_closing_tags: bool = True,
        fetch_function: Optional[FetchFunction | SyncFetchFunction] = None,
        document_loader: Optional[DocumentLoader] = None,
        unbound_variables_are_empty: bool = False,
    ):
        self.output_method = output_method
        self.self_closing_tags = self_closing_tags
        self.fetch_function = fetch_function
        self.document_loader = document_loader
        self.unbound_variables_are_empty = unbound_variables_are_empty
        self.forwards_compatible = False
        self.messages: list[str] = []
        self.result_documents: dict[str, str] = {}
        self.version: Optional[str] = None

    @property
    def _fetches_asynchronously(self) -> bool:
        return inspect.iscoroutinefunction(self.fetch_function)

    @staticmethod
    def _as_document(source: Any) -> DocumentNode:
        match source:
            case DocumentNode():
                return source
            case NodeBase():
                if isinstance(document := source.root, DocumentNode):
                    return document
                return DocumentNode((source.clone(deep=True),))
            case _:
                return load_document(source)

    def _load_module(self, url: str) -> DocumentNode:
        fetch_function = self.fetch_function
        if fetch_function is None:
            return load_document(url, source_url=url)
        if self._fetches_asynchronously:
            raise InvalidOperation(
                "An asynchronous fetch function can only be used with "
                "process_async()."
            )
        try:
            text = fetch_function(url)
        except Exception as e:
            raise FailedResourceFetching(url, e) from e
        return parse_document(text, base_url=url)  # type: ignore

    async def _fetch_modules(self, document: DocumentNode) -> dict[str, DocumentNode]:
        result: dict[str, DocumentNode] = {}
        pending = module_references(document)
        while pending:
            url = pending.pop(0)
            if url in result:
                continue
            logger.debug("Fetching stylesheet module %s", url)
            if self.fetch_function is None or not self._fetches_asynchronously:
                module = self._load_module(url)
            else:
                try:
                    text = await self.fetch_function(url)  # type: ignore
                except Exception as e:
                    raise FailedResourceFetching(url, e) from e
                module = parse_document(text, base_url=url)
            result[url] = module
            pending.extend(module_references(module))
        return result

    def _run(
        self,
        source: Any,
        stylesheet: Stylesheet,
        parameters: Optional[Mapping[str, Any]],
    ) -> Transformation:
        self.messages = []
        self.result_documents = {}
        self.version = stylesheet.declared_version
        self.forwards_compatible = stylesheet.forwards_compatible

        transformation = Transformation(
            stylesheet,
            parameters,
            document_loader=self.document_loader,
            fetch_function=(
                None if self._fetches_asynchronously else self.fetch_function
            ),  # type: ignore
            unbound_variables_are_empty=self.unbound_variables_are_empty,
            self_closing_tags=self.self_closing_tags,
        )
        method = self.output_method or stylesheet.outputs[""].get("method")
        try:
            transformation.transform(
                self._as_document(source),
                collect_items=method in ("json", "adaptive"),
            )
        finally:
            self.messages = transformation.messages
            self.result_documents = transformation.result_documents
        return transformation

    def _serialize(self, transformation: Transformation) -> str:
        document = transformation.output.document
        options = serialization_options(
            transformation.stylesheet.outputs[""],
            document,
            self.output_method,
            self.self_closing_tags,
        )
        if (
            options.method in ("json", "adaptive")
            and transformation.result_items is not None
        ):
            return serialize_json(
                make_sequence(transformation.result_items), indent=options.indent
            )
        return serialize_with_options(document, options)

    def compile(self, stylesheet: Any) -> Stylesheet:
        """
        Compiles a stylesheet, included and imported modules are loaded
        synchronously.
        """
        return Stylesheet(self._as_document(stylesheet), self._load_module)

    def process(
        self,
        source: Any,
        stylesheet: Any,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Transforms a source document and returns the serialized result.

        :param source: The source document or anything that a loader can make one of.
        :param stylesheet: The stylesheet document or anything that a loader can make
                           one of.
        :param parameters: Values of the stylesheet's global parameters. Strings are
                           passed as they are.
        """
        return self._serialize(self._run(source, self.compile(stylesheet), parameters))

    async def process_async(
        self,
        source: Any,
        stylesheet: Any,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Transforms a source document like :meth:`process`, included and imported
        modules are fetched with the asynchronous ``fetch_function`` beforehand.
        """
        document = self._as_document(stylesheet)
        modules = await self._fetch_modules(document)
        compiled = Stylesheet(document, modules.__getitem__)
        return self._serialize(self._run(source, compiled, parameters))

    def transform(
        self,
        source: Any,
        stylesheet: Any,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> DocumentNode:
        """Transforms a source document and returns the unserialized result."""
        return self._run(source, self.compile(stylesheet), parameters).output.document


__all__ = (
    Transformation.__name__,
    XSLTProcessor.__name__,
    serialization_options.__name__,
)
